# src/sitewatch/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..tasks.task_scheduler import TaskScheduler
from ..tasks.task_store import TaskStore
from .gate import TaskGate
from .ports import ContentFetcher, DeliverySink, Summarizer


@dataclass(slots=True)
class AppState:
    """
    Everything a running instance owns, wired once in cli/bootstrap.py.

    Created at startup, torn down at shutdown (timers stopped, gate closed,
    HTTP clients closed).
    """

    settings: Any

    task_store: TaskStore
    fetcher: ContentFetcher
    summarizer: Summarizer
    sink: DeliverySink
    gate: TaskGate
    scheduler: TaskScheduler
