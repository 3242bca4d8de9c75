# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from sitewatch.core.executor import TaskExecutor
from sitewatch.core.gate import TaskGate
from sitewatch.core.state import AppState
from sitewatch.tasks.task_models import AlertMode, Task
from sitewatch.tasks.task_scheduler import TaskScheduler
from sitewatch.tasks.task_store import TaskStore

from .fakes import FakeFetcher, FakeSink, FakeSummarizer


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        default_destination="console",
        llm_models=["fake-model"],
    )


@pytest.fixture()
def task_store(settings: SimpleNamespace) -> TaskStore:
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def make_task():
    def _make(
        task_id: int = 1,
        *,
        name: str = "News",
        url: str | None = "https://x.test",
        tags: str | None = "body",
        schedule: str | None = "*/1 * * * *",
        prompt: str = "Summarize: {content}",
        alert: AlertMode = AlertMode.NO,
        destination: str = "chat-1",
    ) -> Task:
        return Task(
            id=task_id,
            name=name,
            prompt=prompt,
            destination=destination,
            url=url,
            tag_selectors=tags,
            schedule=schedule,
            alert_if_true=alert,
        )

    return _make


@pytest.fixture()
def state(settings: SimpleNamespace, task_store: TaskStore) -> AppState:
    """
    AppState wired with deterministic fakes.

    NOTE: We keep the real SQLite TaskStore here because its correctness
    is part of what we want to test.
    """
    fetcher = FakeFetcher()
    summarizer = FakeSummarizer()
    sink = FakeSink()
    executor = TaskExecutor(fetcher, summarizer, fetch_retry_delay=0.0)
    gate = TaskGate(executor, sink, queue_delay=0.0)
    return AppState(
        settings=settings,
        task_store=task_store,
        fetcher=fetcher,
        summarizer=summarizer,
        sink=sink,
        gate=gate,
        scheduler=TaskScheduler(gate, sink, task_store, stagger_seconds=300.0),
    )
