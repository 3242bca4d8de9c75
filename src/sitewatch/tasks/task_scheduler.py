# src/sitewatch/tasks/task_scheduler.py

from __future__ import annotations

"""
Task scheduler.

Maps cron expressions to the tasks due on them:
- one APScheduler cron job per distinct expression,
- tasks sharing an expression are staggered (i * stagger) to smooth load,
- the whole job set is rebuilt from the task list on every task mutation,
- on fire, each task runs through the gate as an automatic run and non-empty
  results go to the delivery sink.

Transport routing (destination -> chat/room) belongs to the sink, not the scheduler.
"""

import asyncio
import logging
from collections.abc import Iterable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..core.cache import ResultCache
from ..core.gate import TaskGate
from ..core.ports import DeliverySink, TaskRepo
from .task_models import Task
from .task_validator import is_valid_cron

logger = logging.getLogger(__name__)

_CACHE_SWEEP_JOB_ID = "cache-sweep"


class TaskScheduler:
    def __init__(
        self,
        gate: TaskGate,
        sink: DeliverySink,
        task_repo: TaskRepo,
        *,
        stagger_seconds: float = 300.0,
        cache_sweep_seconds: float = 60.0,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._gate = gate
        self._sink = sink
        self._repo = task_repo
        self._stagger = max(0.0, float(stagger_seconds))
        self._sweep_seconds = max(1.0, float(cache_sweep_seconds))
        self._scheduler = scheduler or AsyncIOScheduler()

        self._groups: dict[str, list[tuple[Task, float]]] = {}
        self._job_ids: list[str] = []
        self._deferred: set[asyncio.Task[None]] = set()

    # ---- lifecycle ----

    def start(self) -> None:
        """Start the timer loop (needs a running event loop)."""
        if self._scheduler.running:
            return
        self._scheduler.add_job(
            self._sweep_cache,
            IntervalTrigger(seconds=self._sweep_seconds),
            id=_CACHE_SWEEP_JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Scheduler started (armed expressions=%d)", len(self._groups))

    async def shutdown(self) -> None:
        self._clear_jobs()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            # AsyncIOScheduler may defer the actual stop to the next loop iteration.
            await asyncio.sleep(0)

        pending = list(self._deferred)
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Scheduler stopped (cancelled deferred runs=%d)", len(pending))

    # ---- schedule building ----

    def rebuild(self, tasks: Iterable[Task]) -> None:
        """
        Replace every cron job with a fresh set built from `tasks`.

        Idempotent and safe to call on every task mutation. Tasks without a
        schedule or with an invalid cron expression are logged and skipped.
        """
        self._clear_jobs()

        groups: dict[str, list[Task]] = {}
        for task in tasks:
            expr = (task.schedule or "").strip()
            if not expr:
                logger.debug("Task not scheduled (no schedule) task_id=%s", task.id)
                continue
            if not is_valid_cron(expr):
                logger.error("Failed to schedule task %s (id=%s): invalid cron %r", task.name, task.id, expr)
                continue
            groups.setdefault(expr, []).append(task)

        for expr, members in groups.items():
            self._groups[expr] = [(task, i * self._stagger) for i, task in enumerate(members)]
            job = self._scheduler.add_job(
                self._on_timer,
                CronTrigger.from_crontab(expr),
                args=[expr],
                id=f"cron:{expr}",
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )
            self._job_ids.append(job.id)

        logger.info(
            "Schedule rebuilt: %d tasks on %d cron expressions",
            sum(len(m) for m in groups.values()),
            len(groups),
        )

    def plan(self) -> dict[str, list[tuple[int, float]]]:
        """expression -> [(task_id, stagger_delay_seconds)] for the armed jobs."""
        return {expr: [(task.id, delay) for task, delay in members] for expr, members in self._groups.items()}

    def _clear_jobs(self) -> None:
        for job_id in self._job_ids:
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError:
                pass
        self._job_ids.clear()
        self._groups.clear()

    # ---- firing ----

    async def _on_timer(self, expression: str) -> None:
        self.fire(expression)

    def fire(self, expression: str) -> list[asyncio.Task[None]]:
        """
        Spawn the deferred runs of one cron group and return them.

        The timer itself never waits for the runs.
        """
        members = self._groups.get(expression, [])
        logger.debug("Cron fired %r (%d tasks)", expression, len(members))

        spawned: list[asyncio.Task[None]] = []
        for task, delay in members:
            t = asyncio.get_running_loop().create_task(self._run_deferred(task.id, delay))
            self._deferred.add(t)
            t.add_done_callback(self._deferred.discard)
            spawned.append(t)
        return spawned

    async def _run_deferred(self, task_id: int, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)

        # Fresh snapshot: the task may have been edited or deleted since the build.
        try:
            task = self._repo.get_task(task_id)
        except Exception:
            logger.exception("get_task failed task_id=%s", task_id)
            return
        if task is None:
            logger.info("Scheduled task no longer exists task_id=%s", task_id)
            return

        result = await self._gate.run_gated(task, is_manual=False)
        if not result:
            logger.debug("Nothing to deliver task_id=%s destination=%s", task.id, task.destination)
            return

        try:
            await self._sink.send(task.destination, result)
        except Exception:
            logger.exception("Delivery failed task_id=%s destination=%s", task.id, task.destination)

    async def _sweep_cache(self) -> None:
        cache: ResultCache = self._gate.cache
        cache.sweep()
