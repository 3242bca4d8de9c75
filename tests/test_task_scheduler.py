# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio

import pytest

from sitewatch.core.ports import Judgment
from sitewatch.tasks.task_models import AlertMode, TaskDraft
from sitewatch.tasks.task_scheduler import TaskScheduler


def _draft(name: str = "News", schedule: str | None = "0 9 * * *", **kw) -> TaskDraft:
    return TaskDraft(
        name=name,
        prompt=kw.pop("prompt", "Summarize: {content}"),
        destination=kw.pop("destination", "chat-1"),
        url=kw.pop("url", "https://x.test"),
        tag_selectors=kw.pop("tag_selectors", "body"),
        schedule=schedule,
        **kw,
    )


def _scheduler(state, stagger_seconds: float = 0.0) -> TaskScheduler:
    return TaskScheduler(state.gate, state.sink, state.task_store, stagger_seconds=stagger_seconds)


def test_rebuild_skips_unscheduled_and_invalid_crons(state, make_task) -> None:
    tasks = [
        make_task(1, schedule="0 9 * * *"),
        make_task(2, schedule=None),
        make_task(3, schedule="not a cron"),
        make_task(4, schedule="61 25 * * *"),
    ]

    state.scheduler.rebuild(tasks)

    assert state.scheduler.plan() == {"0 9 * * *": [(1, 0.0)]}


def test_tasks_sharing_an_expression_are_staggered(state, make_task) -> None:
    state.scheduler.rebuild(
        [
            make_task(1, schedule="0 9 * * *"),
            make_task(2, schedule="0 9 * * *"),
            make_task(3, schedule="*/5 * * * *"),
        ]
    )

    assert state.scheduler.plan() == {
        "0 9 * * *": [(1, 0.0), (2, 300.0)],
        "*/5 * * * *": [(3, 0.0)],
    }


def test_rebuild_is_idempotent(state, make_task) -> None:
    aps = state.scheduler._scheduler
    tasks = [make_task(1, schedule="0 9 * * *"), make_task(2, schedule="*/5 * * * *")]

    state.scheduler.rebuild(tasks)
    state.scheduler.rebuild(tasks)

    assert sorted(job.id for job in aps.get_jobs()) == ["cron:*/5 * * * *", "cron:0 9 * * *"]

    state.scheduler.rebuild([])
    assert aps.get_jobs() == []
    assert state.scheduler.plan() == {}


@pytest.mark.asyncio
async def test_fired_task_result_is_delivered(state) -> None:
    task_id = state.task_store.add_task(_draft())
    scheduler = _scheduler(state)
    scheduler.rebuild(state.task_store.list_tasks())

    await asyncio.gather(*scheduler.fire("0 9 * * *"))

    assert state.sink.sent == [("chat-1", 'Task "News" result:\nworld')]
    assert state.fetcher.calls == [("https://x.test", ["body"], [])]
    assert task_id == 1


@pytest.mark.asyncio
async def test_suppressed_alert_is_not_delivered(state) -> None:
    state.summarizer.answer = Judgment(is_show=False, details="same as before")
    state.task_store.add_task(_draft(alert_if_true=AlertMode.YES))
    scheduler = _scheduler(state)
    scheduler.rebuild(state.task_store.list_tasks())

    await asyncio.gather(*scheduler.fire("0 9 * * *"))

    assert state.sink.sent == []
    assert len(state.fetcher.calls) == 1


@pytest.mark.asyncio
async def test_deleted_task_is_skipped_at_fire_time(state) -> None:
    task_id = state.task_store.add_task(_draft())
    scheduler = _scheduler(state)
    scheduler.rebuild(state.task_store.list_tasks())

    state.task_store.delete_task(task_id)
    await asyncio.gather(*scheduler.fire("0 9 * * *"))

    assert state.sink.sent == []
    assert state.fetcher.calls == []


@pytest.mark.asyncio
async def test_fire_uses_latest_task_snapshot(state) -> None:
    task_id = state.task_store.add_task(_draft())
    scheduler = _scheduler(state)
    scheduler.rebuild(state.task_store.list_tasks())

    state.task_store.update_task(task_id, _draft(name="Renamed"))
    await asyncio.gather(*scheduler.fire("0 9 * * *"))

    assert state.sink.sent == [("chat-1", 'Task "Renamed" result:\nworld')]


@pytest.mark.asyncio
async def test_second_task_in_group_runs_after_stagger(state) -> None:
    state.task_store.add_task(_draft(name="First"))
    state.task_store.add_task(_draft(name="Second"))
    scheduler = _scheduler(state, stagger_seconds=0.2)
    scheduler.rebuild(state.task_store.list_tasks())

    runs = scheduler.fire("0 9 * * *")
    await asyncio.sleep(0.05)

    assert state.sink.sent == [("chat-1", 'Task "First" result:\nworld')]

    await asyncio.gather(*runs)
    assert [text for _, text in state.sink.sent] == [
        'Task "First" result:\nworld',
        'Task "Second" result:\nworld',
    ]


@pytest.mark.asyncio
async def test_fire_of_unknown_expression_does_nothing(state) -> None:
    assert state.scheduler.fire("0 0 1 1 *") == []


@pytest.mark.asyncio
async def test_start_and_shutdown(state, make_task) -> None:
    aps = state.scheduler._scheduler
    state.scheduler.rebuild([make_task(1, schedule="0 9 * * *")])

    state.scheduler.start()
    assert aps.running
    assert {job.id for job in aps.get_jobs()} == {"cache-sweep", "cron:0 9 * * *"}

    await state.scheduler.shutdown()
    assert not aps.running
    assert state.scheduler.plan() == {}


@pytest.mark.asyncio
async def test_shutdown_cancels_deferred_runs(state) -> None:
    state.task_store.add_task(_draft(name="First"))
    state.task_store.add_task(_draft(name="Second"))
    scheduler = _scheduler(state, stagger_seconds=60.0)
    scheduler.rebuild(state.task_store.list_tasks())

    runs = scheduler.fire("0 9 * * *")
    await asyncio.sleep(0.05)
    await scheduler.shutdown()

    assert all(r.done() for r in runs)
    assert [text for _, text in state.sink.sent] == ['Task "First" result:\nworld']
