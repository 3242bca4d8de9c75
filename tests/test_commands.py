# tests/test_commands.py

from __future__ import annotations

import pytest

from sitewatch.cli.commands import registry

CREATE = (
    "/create name=News; url=https://x.test; tags=body, !nav; "
    "schedule=daily 09:00; prompt=Summarize: {content}"
)


@pytest.mark.asyncio
async def test_non_command_returns_none(state) -> None:
    assert await registry.handle(state, "hello there", "console") is None


@pytest.mark.asyncio
async def test_unknown_command(state) -> None:
    reply = await registry.handle(state, "/nope", "console")
    assert reply is not None
    assert reply.startswith("Unknown command: /nope")


@pytest.mark.asyncio
async def test_help_lists_commands(state) -> None:
    reply = await registry.handle(state, "/help", "console")
    assert reply is not None
    for name in ("/create", "/edit", "/delete", "/run", "/list", "/status"):
        assert name in reply


@pytest.mark.asyncio
async def test_create_persists_and_arms_schedule(state) -> None:
    reply = await registry.handle(state, CREATE, "console")

    assert reply == 'Task "News" created with ID 1.'
    task = state.task_store.get_task(1)
    assert task is not None
    assert task.destination == "console"
    assert task.schedule == "0 9 * * *"
    assert task.raw_schedule == "daily 09:00"
    assert task.tag_selectors == "body, !nav"
    assert state.scheduler.plan() == {"0 9 * * *": [(1, 0.0)]}


@pytest.mark.asyncio
async def test_create_with_invalid_config_reports_errors(state) -> None:
    reply = await registry.handle(state, "/create name=News; url=https://x.test; tags=div[; prompt=Hi", "console")

    assert reply is not None
    assert reply.startswith("Invalid task config:")
    assert "tags" in reply
    assert state.task_store.count_tasks() == 0


@pytest.mark.asyncio
async def test_list_and_show_are_scoped_to_destination(state) -> None:
    await registry.handle(state, CREATE, "console")

    listing = await registry.handle(state, "/ls", "console")
    assert listing == "Tasks:\n  #1 News [daily 09:00]"
    assert await registry.handle(state, "/list", "other") == "No tasks yet. Use /create to add one."

    shown = await registry.handle(state, "/show 1", "console")
    assert shown is not None
    assert shown.startswith("#1 News")
    assert await registry.handle(state, "/show 1", "other") == "Task with ID 1 not found."


@pytest.mark.asyncio
async def test_run_returns_result(state) -> None:
    await registry.handle(state, CREATE, "console")

    reply = await registry.handle(state, "/run 1", "console")

    assert reply == 'Task "News" result:\nworld'
    assert state.fetcher.calls == [("https://x.test", ["body"], ["nav"])]


@pytest.mark.asyncio
async def test_run_usage_and_missing_task(state) -> None:
    assert await registry.handle(state, "/run", "console") == "Usage: /run <id>"
    assert await registry.handle(state, "/run abc", "console") == "Usage: /run <id>"
    assert await registry.handle(state, "/run 42", "console") == "Task with ID 42 not found."


@pytest.mark.asyncio
async def test_edit_merges_fields_and_rearms_schedule(state) -> None:
    await registry.handle(state, CREATE, "console")
    await registry.handle(state, "/run 1", "console")
    assert len(state.gate.cache) == 1

    reply = await registry.handle(state, "/edit 1 schedule=*/5 * * * *", "console")

    assert reply == 'Task "News" updated.'
    task = state.task_store.get_task(1)
    assert task is not None
    assert task.schedule == "*/5 * * * *"
    assert task.url == "https://x.test"
    assert state.scheduler.plan() == {"*/5 * * * *": [(1, 0.0)]}
    assert len(state.gate.cache) == 0


@pytest.mark.asyncio
async def test_delete_removes_task_and_schedule(state) -> None:
    await registry.handle(state, CREATE, "console")

    assert await registry.handle(state, "/delete 1", "other") == "Task with ID 1 not found."
    assert await registry.handle(state, "/rm 1", "console") == 'Task "News" deleted.'

    assert state.task_store.get_task(1) is None
    assert state.scheduler.plan() == {}
    assert await registry.handle(state, "/run 1", "console") == "Task with ID 1 not found."


@pytest.mark.asyncio
async def test_status_reports_gate_counters(state) -> None:
    reply = await registry.handle(state, "/status", "console")

    assert reply is not None
    assert "Running: 0/3" in reply
    assert "Queued: 0/10" in reply
    assert "fake-model" in reply


@pytest.mark.asyncio
async def test_create_keeps_prompt_text_as_typed(state) -> None:
    reply = await registry.handle(state, "/create name=Standup;  prompt=Stand   up; then   plan", "console")

    assert reply == 'Task "Standup" created with ID 1.'
    task = state.task_store.get_task(1)
    assert task is not None
    assert task.prompt == "Stand   up; then   plan"


@pytest.mark.asyncio
async def test_edit_keeps_prompt_text_as_typed(state) -> None:
    await registry.handle(state, CREATE, "console")

    reply = await registry.handle(state, "/edit 1 prompt=Summarize;  briefly:  {content}", "console")

    assert reply == 'Task "News" updated.'
    task = state.task_store.get_task(1)
    assert task is not None
    assert task.prompt == "Summarize;  briefly:  {content}"
