# src/sitewatch/core/gate.py

from __future__ import annotations

"""
Admission layer in front of the executor.

- serves recent results from the cache (re-applying alert suppression)
- joins an identical run that is already in flight instead of starting another
- bounds concurrent executions (non-blocking slot counter)
- queues overflow work, manual entries first, and drains it after every release

run_gated() never raises: every path resolves to a string, possibly empty.

All state here is mutated from the event loop thread only, between await
points, so no locks are needed. Calling into the gate from other threads
is not supported.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..tasks.task_models import Task
from .cache import CacheKey, ResultCache
from .executor import TaskExecutor, TaskOutcome, format_error
from .ports import DeliverySink

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Server is busy, please try again later."


def queued_message(task: Task) -> str:
    return f'Task "{task.name}" is queued, please wait...'


@dataclass(slots=True)
class QueueEntry:
    destination: str
    task_id: int
    task: Task
    is_manual: bool
    future: asyncio.Future[TaskOutcome | None]


class TaskGate:
    def __init__(
        self,
        executor: TaskExecutor,
        sink: DeliverySink,
        *,
        cache: ResultCache | None = None,
        max_running: int = 3,
        max_queue: int = 10,
        queue_delay: float = 10.0,
        manual_queue_delay: float | None = None,
    ) -> None:
        self._executor = executor
        self._sink = sink
        self._cache = cache if cache is not None else ResultCache()
        self._max_running = max(1, int(max_running))
        self._max_queue = max(0, int(max_queue))
        self._queue_delay = max(0.0, float(queue_delay))
        self._manual_queue_delay = (
            self._queue_delay / 2 if manual_queue_delay is None else max(0.0, float(manual_queue_delay))
        )

        self._running = 0
        self._queue: list[QueueEntry] = []
        self._inflight: dict[CacheKey, asyncio.Future[TaskOutcome | None]] = {}
        self._workers: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def running(self) -> int:
        return self._running

    @property
    def queued(self) -> int:
        return len(self._queue)

    def stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "max_running": self._max_running,
            "queued": len(self._queue),
            "max_queue": self._max_queue,
            "cached": len(self._cache),
        }

    # ---- slot counter ----

    def try_acquire(self) -> bool:
        if self._running >= self._max_running:
            return False
        self._running += 1
        return True

    def release(self) -> None:
        self._running = max(0, self._running - 1)
        self._process_queue()

    # ---- public API ----

    async def run_gated(self, task: Task, is_manual: bool) -> str:
        try:
            return await self._run_gated(task, is_manual)
        except Exception as e:
            logger.exception("Gate failure task_id=%s destination=%s", task.id, task.destination)
            return format_error(task, str(e) or e.__class__.__name__) if is_manual else ""

    async def close(self) -> None:
        """Shutdown: reject queued work, cancel delayed runs, flush the cache."""
        self._closed = True

        pending = list(self._queue)
        self._queue.clear()
        for entry in pending:
            if not entry.future.done():
                entry.future.set_result(None)

        workers = list(self._workers)
        for w in workers:
            w.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

        self._cache.clear()
        logger.info("Gate closed (rejected=%d cancelled=%d)", len(pending), len(workers))

    # ---- internals ----

    async def _run_gated(self, task: Task, is_manual: bool) -> str:
        key: CacheKey = (task.destination, task.id)

        entry = self._cache.get(*key)
        if entry is not None:
            return entry.outcome.render(is_manual)

        pending = self._inflight.get(key)
        if pending is not None:
            logger.info("Joining in-flight run task_id=%s destination=%s", task.id, task.destination)
            if is_manual:
                await self._promote_queued(task)
            return self._render(await asyncio.shield(pending), is_manual)

        if self._closed:
            return self._render(None, is_manual)

        fut: asyncio.Future[TaskOutcome | None] = asyncio.get_running_loop().create_future()
        self._inflight[key] = fut
        outcome: TaskOutcome | None = None
        try:
            outcome = await self._admit(task, is_manual)
        finally:
            if self._inflight.get(key) is fut:
                del self._inflight[key]
            if not fut.done():
                fut.set_result(outcome)

        return self._render(outcome, is_manual)

    @staticmethod
    def _render(outcome: TaskOutcome | None, is_manual: bool) -> str:
        # None: rejected (queue full or shutting down).
        if outcome is None:
            return BUSY_MESSAGE if is_manual else ""
        return outcome.render(is_manual)

    async def _admit(self, task: Task, is_manual: bool) -> TaskOutcome | None:
        if self.try_acquire():
            try:
                return await self._execute(task, is_manual)
            finally:
                self.release()
        return await self._enqueue(task, is_manual)

    async def _execute(self, task: Task, is_manual: bool) -> TaskOutcome:
        outcome = await self._executor.run(task, is_manual)
        self._cache.put(task.destination, task.id, outcome)
        return outcome

    async def _enqueue(self, task: Task, is_manual: bool) -> TaskOutcome | None:
        if len(self._queue) >= self._max_queue:
            logger.warning(
                "Queue is full, rejecting task_id=%s destination=%s manual=%s",
                task.id,
                task.destination,
                is_manual,
            )
            return None

        fut: asyncio.Future[TaskOutcome | None] = asyncio.get_running_loop().create_future()
        self._queue.append(
            QueueEntry(
                destination=task.destination,
                task_id=task.id,
                task=task,
                is_manual=is_manual,
                future=fut,
            )
        )
        logger.info(
            "Task queued task_id=%s destination=%s manual=%s position=%d",
            task.id,
            task.destination,
            is_manual,
            len(self._queue),
        )

        if is_manual:
            await self._notify(task.destination, queued_message(task))

        self._process_queue()
        return await fut

    async def _promote_queued(self, task: Task) -> None:
        """A manual caller joined a run that is still waiting in the queue."""
        for entry in self._queue:
            if entry.destination == task.destination and entry.task_id == task.id:
                if not entry.is_manual:
                    entry.is_manual = True
                    logger.info(
                        "Queued run promoted to manual task_id=%s destination=%s",
                        task.id,
                        task.destination,
                    )
                await self._notify(task.destination, queued_message(task))
                return

    def _process_queue(self) -> None:
        while self._queue and not self._closed and self.try_acquire():
            entry = self._next_entry()
            delay = self._manual_queue_delay if entry.is_manual else self._queue_delay
            worker = asyncio.get_running_loop().create_task(self._run_queued(entry, delay))
            self._workers.add(worker)
            worker.add_done_callback(self._workers.discard)

    def _next_entry(self) -> QueueEntry:
        # Manual first, then FIFO. Background entries can starve under sustained manual load.
        for i, entry in enumerate(self._queue):
            if entry.is_manual:
                return self._queue.pop(i)
        return self._queue.pop(0)

    async def _run_queued(self, entry: QueueEntry, delay: float) -> None:
        outcome: TaskOutcome | None = None
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            outcome = await self._execute(entry.task, entry.is_manual)
        finally:
            self.release()
            if not entry.future.done():
                entry.future.set_result(outcome)

    async def _notify(self, destination: str, text: str) -> None:
        try:
            await self._sink.send(destination, text)
        except Exception:
            logger.exception("Delivery failed destination=%s", destination)
