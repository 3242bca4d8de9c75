# src/sitewatch/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the execution core.

The core depends on Protocols instead of concrete implementations.
This keeps the fetcher/LLM provider/storage/transport swappable and makes testing easier.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Protocol


@dataclass(frozen=True, slots=True)
class Judgment:
    """Structured answer of the summarizer for alert tasks."""

    is_show: bool
    details: str


class ContentFetcher(Protocol):
    """
    Fetch `url` and return the text of elements matching `include`
    that do not match any of `exclude`.

    Raises FetchError on failure.
    """

    def fetch(self, url: str, include: list[str], exclude: list[str]) -> Awaitable[str]: ...


class Summarizer(Protocol):
    """
    Run the prompt template against extracted content.

    structured=False -> free text
    structured=True  -> Judgment

    Raises InferenceError on failure.
    """

    def infer(self, prompt: str, content: str, structured: bool) -> Awaitable[str | Judgment]: ...


class DeliverySink(Protocol):
    """
    Transport-side port: forward a final text to a task destination.

    Only called with non-empty strings. Retry/fallback (edit vs. new message, etc.)
    is the sink's own business.
    """

    def send(self, destination: str, text: str) -> Awaitable[None]: ...


class TaskRepo(Protocol):
    def list_tasks(self, destination: str | None = None) -> list[Any]: ...
    def get_task(self, task_id: int) -> Any | None: ...
    def add_task(self, draft: Any) -> int: ...
    def update_task(self, task_id: int, draft: Any) -> bool: ...
    def delete_task(self, task_id: int) -> bool: ...
