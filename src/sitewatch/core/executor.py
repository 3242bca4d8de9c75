# src/sitewatch/core/executor.py

from __future__ import annotations

"""
Execution engine: run one task to completion.

fetch -> summarize -> format. Every failure becomes a formatted result
string, never an exception, so callers route it to delivery like any other
result. The engine does not touch the result cache; the gate does.
"""

import asyncio
import logging
from dataclasses import dataclass

from ..tasks.task_models import Task
from .errors import FetchError, FetchErrorKind, InferenceError
from .ports import ContentFetcher, Judgment, Summarizer

logger = logging.getLogger(__name__)


def format_result(task: Task, text: str) -> str:
    return f'Task "{task.name}" result:\n{text}'


def format_failure(task: Task, reason: str) -> str:
    return f'Task "{task.name}" failed: {reason}'


def format_error(task: Task, reason: str) -> str:
    return f'Task "{task.name}" error: {reason}'


def format_notification(task: Task) -> str:
    return f'Task "{task.name}" notification:\n{task.prompt}'


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    """
    Full result of one execution.

    text    -> formatted text, never suppressed here
    failed  -> fetch/summarize error; not cacheable
    is_show -> judgment flag for alert tasks, None otherwise
    """

    text: str
    failed: bool = False
    is_show: bool | None = None

    def render(self, is_manual: bool) -> str:
        """Apply suppression: automatic alert runs judged not worth showing yield ''."""
        if self.is_show is False and not is_manual:
            return ""
        return self.text


class TaskExecutor:
    def __init__(
        self,
        fetcher: ContentFetcher,
        summarizer: Summarizer,
        *,
        fetch_retries: int = 2,
        fetch_retry_delay: float = 2.0,
        fetch_timeout: float = 60.0,
    ) -> None:
        self._fetcher = fetcher
        self._summarizer = summarizer
        self._fetch_retries = max(1, int(fetch_retries))
        self._fetch_retry_delay = max(0.0, float(fetch_retry_delay))
        self._fetch_timeout = max(0.001, float(fetch_timeout))

    async def execute(self, task: Task, is_manual: bool) -> str:
        """Run the task and return what should be delivered ('' means suppressed)."""
        outcome = await self.run(task, is_manual)
        return outcome.render(is_manual)

    async def run(self, task: Task, is_manual: bool) -> TaskOutcome:
        try:
            return await self._run(task, is_manual)
        except Exception as e:
            logger.exception("Task execution crashed task_id=%s destination=%s", task.id, task.destination)
            return TaskOutcome(text=format_error(task, str(e) or e.__class__.__name__), failed=True)

    async def _run(self, task: Task, is_manual: bool) -> TaskOutcome:
        if task.is_notification_only:
            logger.warning(
                "Task has no url/tags, sending prompt as a notification task_id=%s destination=%s",
                task.id,
                task.destination,
            )
            return TaskOutcome(text=format_notification(task))

        include, exclude = task.split_selectors()

        try:
            content = await self._fetch_with_retries(task, include, exclude)
        except FetchError as e:
            logger.warning("Fetch failed task_id=%s url=%s kind=%s: %s", task.id, task.url, e.kind.value, e)
            return TaskOutcome(text=format_failure(task, str(e)), failed=True)

        try:
            answer = await self._summarizer.infer(task.prompt, content, task.is_alert)
        except InferenceError as e:
            logger.warning("Summarizer failed task_id=%s: %s", task.id, e)
            return TaskOutcome(text=format_failure(task, str(e)), failed=True)

        if task.is_alert:
            if not isinstance(answer, Judgment):
                logger.warning("Summarizer returned text for an alert task task_id=%s", task.id)
                return TaskOutcome(text=format_failure(task, "Expected a structured judgment"), failed=True)

            if not answer.is_show and not is_manual:
                logger.info("Alert not triggered, suppressing delivery task_id=%s", task.id)

            details = answer.details if answer.is_show else f"No alert. {answer.details}".strip()
            return TaskOutcome(text=format_result(task, details), is_show=answer.is_show)

        text = answer.details if isinstance(answer, Judgment) else str(answer)
        logger.info("Task completed task_id=%s manual=%s", task.id, is_manual)
        return TaskOutcome(text=format_result(task, text))

    async def _fetch_with_retries(self, task: Task, include: list[str], exclude: list[str]) -> str:
        url = task.url or ""
        attempt = 0

        while True:
            attempt += 1
            try:
                return await asyncio.wait_for(
                    self._fetcher.fetch(url, include, exclude),
                    timeout=self._fetch_timeout,
                )
            except asyncio.TimeoutError:
                error = FetchError(
                    FetchErrorKind.TIMEOUT,
                    f"Timed out after {self._fetch_timeout:g}s",
                )
            except FetchError as e:
                if not e.retryable:
                    raise
                error = e

            logger.info(
                "Fetch attempt %d/%d failed task_id=%s url=%s: %s",
                attempt,
                self._fetch_retries,
                task.id,
                url,
                error,
            )
            if attempt >= self._fetch_retries:
                raise error
            await asyncio.sleep(self._fetch_retry_delay)
