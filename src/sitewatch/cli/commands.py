# src/sitewatch/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from ..core.state import AppState
from ..tasks import task_api

# (state, args, destination, text): text is the argument string exactly as typed.
CommandHandler = Callable[[AppState, list[str], str, str], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /list, /run, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str, destination: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].strip().split(maxsplit=1)
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        text = parts[1] if len(parts) > 1 else ""
        args = text.split()

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        return await handler(state, args, destination, text)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _parse_id(args: list[str]) -> int | None:
    if not args:
        return None
    try:
        return int(args[0])
    except ValueError:
        return None


async def cmd_help(state: AppState, args: list[str], destination: str, text: str) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str], destination: str, text: str) -> str:
    st = state.gate.stats()
    models = ", ".join(list(getattr(state.settings, "llm_models", []) or []))
    armed = len(state.scheduler.plan())
    return (
        "Status:\n"
        f"  Running: {st['running']}/{st['max_running']}\n"
        f"  Queued: {st['queued']}/{st['max_queue']}\n"
        f"  Cached results: {st['cached']}\n"
        f"  Cron expressions armed: {armed}\n"
        f"  Models (priority -> fallback): {models}"
    )


async def cmd_list(state: AppState, args: list[str], destination: str, text: str) -> str:
    tasks = state.task_store.list_tasks(destination=destination)
    if not tasks:
        return "No tasks yet. Use /create to add one."
    lines = ["Tasks:"]
    for t in tasks:
        when = t.raw_schedule or t.schedule or "manual"
        lines.append(f"  #{t.id} {t.name} [{when}]")
    return "\n".join(lines)


async def cmd_show(state: AppState, args: list[str], destination: str, text: str) -> str:
    task_id = _parse_id(args)
    if task_id is None:
        return "Usage: /show <id>"
    task = state.task_store.get_task(task_id)
    if task is None or task.destination != destination:
        return f"Task with ID {task_id} not found."
    return task_api.describe_task(task)


async def cmd_create(state: AppState, args: list[str], destination: str, text: str) -> str:
    """
    /create name=...; url=...; tags=...; schedule=daily 09:00; prompt=... {content}
    """
    if not args:
        return (
            "Usage: /create key=value; key=value; ...\n"
            "Keys: name, url, tags, schedule, prompt, alert_if_true\n"
            "Example: /create name=HN; url=https://news.ycombinator.com; tags=.titleline; "
            "schedule=daily 09:00; prompt=Summarize: {content}"
        )
    return task_api.create_task(state, text, destination)


async def cmd_edit(state: AppState, args: list[str], destination: str, text: str) -> str:
    task_id = _parse_id(args)
    if task_id is None or len(args) < 2:
        return "Usage: /edit <id> key=value; key=value; ..."
    config = text.split(maxsplit=1)[1]
    return task_api.edit_task(state, task_id, config, destination)


async def cmd_delete(state: AppState, args: list[str], destination: str, text: str) -> str:
    task_id = _parse_id(args)
    if task_id is None:
        return "Usage: /delete <id>"
    return task_api.delete_task(state, task_id, destination)


async def cmd_run(state: AppState, args: list[str], destination: str, text: str) -> str:
    task_id = _parse_id(args)
    if task_id is None:
        return "Usage: /run <id>"
    return await task_api.run_task_now(state, task_id, destination)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show pool/queue/cache status.")
registry.register("list", cmd_list, help_text="List your tasks.", aliases=["ls"])
registry.register("show", cmd_show, help_text="Show one task: /show <id>.")
registry.register("create", cmd_create, help_text="Create a task: /create key=value; ...")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <id> key=value; ...")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id>.", aliases=["rm"])
registry.register("run", cmd_run, help_text="Run a task now: /run <id>.")
