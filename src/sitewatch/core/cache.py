# src/sitewatch/core/cache.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from .executor import TaskOutcome

logger = logging.getLogger(__name__)

CacheKey = tuple[str, int]  # (destination, task_id)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    outcome: TaskOutcome
    created_at: float

    @property
    def response(self) -> str:
        return self.outcome.text


class ResultCache:
    """
    Short-lived result cache keyed by (destination, task_id).

    - entries expire after ttl seconds (checked lazily on read, plus sweep())
    - when full, the oldest entry is evicted (dicts keep insertion order)
    - failed outcomes are never stored
    """

    def __init__(
        self,
        *,
        ttl: float = 10.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = max(0.0, float(ttl))
        self._max_size = max(1, int(max_size))
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, destination: str, task_id: int) -> CacheEntry | None:
        key = (destination, int(task_id))
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() - entry.created_at > self._ttl:
            del self._entries[key]
            logger.debug("Cached response expired task_id=%s destination=%s", task_id, destination)
            return None

        logger.debug("Cache hit task_id=%s destination=%s", task_id, destination)
        return entry

    def put(self, destination: str, task_id: int, outcome: TaskOutcome) -> bool:
        """Store a successful outcome. Returns False when it was not cacheable."""
        if outcome.failed:
            logger.debug("Skipping cache for failed result task_id=%s destination=%s", task_id, destination)
            return False

        key = (destination, int(task_id))
        self._entries.pop(key, None)
        while len(self._entries) >= self._max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("Evicted oldest cache entry task_id=%s destination=%s", oldest[1], oldest[0])

        self._entries[key] = CacheEntry(outcome=outcome, created_at=self._clock())
        return True

    def forget(self, destination: str, task_id: int) -> None:
        if self._entries.pop((destination, int(task_id)), None) is not None:
            logger.debug("Cleared cache for task task_id=%s destination=%s", task_id, destination)

    def forget_task(self, task_id: int) -> None:
        """Drop the entries of a task for every destination (used after edit/delete)."""
        for key in [k for k in self._entries if k[1] == int(task_id)]:
            del self._entries[key]

    def sweep(self) -> int:
        """Remove expired entries; returns how many were dropped."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.created_at > self._ttl]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Cleared %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
