# src/sitewatch/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, arms the scheduler from the stored
tasks, then either runs the console REPL or waits for a signal.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state, shutdown_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..tasks.task_api import refresh_schedule

logger = logging.getLogger(__name__)


async def _amain() -> None:
    settings = get_settings()

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    state.scheduler.start()
    refresh_schedule(state)

    stop_main = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Some platforms (Windows) do not support loop signal handlers.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, _handle_signal, sig)

    try:
        if settings.console_enabled:
            console = asyncio.create_task(run_console_loop(state))
            stopper = asyncio.create_task(stop_main.wait())
            await asyncio.wait({console, stopper}, return_when=asyncio.FIRST_COMPLETED)
            stopper.cancel()
            # The stdin reader is a daemon thread, so a pending input() does not block exit.
            console.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await console
        else:
            logger.info("Console disabled. Running the scheduler only. Press Ctrl+C to stop.")
            await stop_main.wait()
    finally:
        await shutdown_state(state)
        logger.info("Bye.")


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)
    asyncio.run(_amain())


if __name__ == "__main__":
    main()
