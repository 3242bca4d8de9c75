# src/sitewatch/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState
  (task store, fetcher, summarizer, executor, gate, scheduler, sink),
- tears them down again on shutdown.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.console_connector import ConsoleSink
from ..core.cache import ResultCache
from ..core.executor import TaskExecutor
from ..core.gate import TaskGate
from ..core.ports import DeliverySink, Summarizer
from ..core.state import AppState
from ..fetch.page_fetcher import HtmlPageFetcher
from ..llm.client import OpenAICompatibleSummarizer
from ..llm.offline import OfflineSummarizer
from ..tasks.task_scheduler import TaskScheduler
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, sink: DeliverySink | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    summarizer: Summarizer
    try:
        summarizer = OpenAICompatibleSummarizer(settings)
    except Exception:
        # Fallback for demos / local runs without an LLM endpoint.
        logger.warning("LLM client unavailable, using the offline summarizer.", exc_info=True)
        summarizer = OfflineSummarizer()

    fetcher = HtmlPageFetcher(
        timeout=settings.fetch_timeout_seconds,
        max_chars=settings.fetch_max_chars,
    )
    sink = sink or ConsoleSink()
    task_store = TaskStore(settings.tasks_db_path)

    executor = TaskExecutor(
        fetcher,
        summarizer,
        fetch_retries=settings.fetch_retries,
        fetch_retry_delay=settings.fetch_retry_delay_ms / 1000.0,
        fetch_timeout=settings.fetch_timeout_seconds,
    )
    gate = TaskGate(
        executor,
        sink,
        cache=ResultCache(
            ttl=settings.cache_ttl_ms / 1000.0,
            max_size=settings.max_cache_size,
        ),
        max_running=settings.max_running_tasks,
        max_queue=settings.max_queue_size,
        queue_delay=settings.queue_delay_ms / 1000.0,
    )
    scheduler = TaskScheduler(
        gate,
        sink,
        task_store,
        stagger_seconds=settings.stagger_minutes * 60.0,
        cache_sweep_seconds=settings.cache_sweep_seconds,
    )

    return AppState(
        settings=settings,
        task_store=task_store,
        fetcher=fetcher,
        summarizer=summarizer,
        sink=sink,
        gate=gate,
        scheduler=scheduler,
    )


async def shutdown_state(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.scheduler.shutdown()
    except Exception:
        logger.exception("Scheduler shutdown failed.")

    try:
        await state.gate.close()
    except Exception:
        logger.exception("Gate close failed.")

    for name in ("fetcher", "summarizer"):
        closer = getattr(getattr(state, name, None), "aclose", None)
        if closer is None:
            continue
        try:
            await closer()
        except Exception:
            logger.debug("%s close failed.", name, exc_info=True)

    # TaskStore uses short-lived sqlite connections per call; no explicit close required.
    state.task_store.close()
