# src/sitewatch/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


class ConsoleSink:
    """
    DeliverySink that prints to stdout.

    Every destination lands on the same terminal; the destination is shown as a prefix.
    """

    async def send(self, destination: str, text: str) -> None:
        if not text:
            return
        print(f"[{_ts_local()}] [{destination}] {text}", flush=True)


class _StdinReader:
    """
    Reads console lines on a daemon thread and hands them to the event loop.

    input() cannot be interrupted, so the thread must not keep the process
    alive on shutdown. One line is read per readline() so the prompt stays
    below the previous reply.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, prompt: str = ">>> ") -> None:
        self._loop = loop
        self._prompt = prompt
        self._lines: asyncio.Queue[str | None] = asyncio.Queue()
        self._wanted = threading.Event()
        self._thread = threading.Thread(target=self._run, name="console-stdin", daemon=True)

    def start(self) -> None:
        self._thread.start()

    async def readline(self) -> str | None:
        """Next line, or None on EOF / Ctrl+C."""
        self._wanted.set()
        return await self._lines.get()

    def _post(self, line: str | None) -> bool:
        try:
            self._loop.call_soon_threadsafe(self._lines.put_nowait, line)
        except RuntimeError:
            # Event loop already closed.
            return False
        return True

    def _run(self) -> None:
        while True:
            self._wanted.wait()
            self._wanted.clear()
            try:
                line = input(self._prompt)
            except (EOFError, KeyboardInterrupt):
                self._post(None)
                return
            if not self._post(line):
                return


async def run_console_loop(state: AppState) -> None:
    destination = str(getattr(state.settings, "default_destination", "console"))
    logger.info("Console connector started (destination=%s).", destination)
    print(f"[{_ts_local()}] [CONSOLE] Type /help for commands. Use /exit to quit.\n")

    reader = _StdinReader(asyncio.get_running_loop())
    reader.start()

    while True:
        line = await reader.readline()
        if line is None:
            logger.info("Console input closed, exiting.")
            print()
            break

        user_input = line.strip()
        _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = await command_registry.handle(state, user_input, destination)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is None:
            reply = "Not a command. Use /help to list available commands."
        print(f"[{_ts_local()}] {reply}")

    logger.info("Console connector finished.")
