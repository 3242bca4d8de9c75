# src/sitewatch/core/errors.py

"""Typed failures raised by the collaborators of the execution core.

They never escape the executor: it turns them into result strings.
"""

from __future__ import annotations

from enum import StrEnum


class FetchErrorKind(StrEnum):
    INVALID_SELECTOR = "invalid_selector"
    NOT_REACHABLE = "not_reachable"
    TIMEOUT = "timeout"


class FetchError(Exception):
    """Page could not be fetched or a selector could not be applied."""

    def __init__(self, kind: FetchErrorKind, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self._retryable = retryable

    @property
    def retryable(self) -> bool:
        if self._retryable is not None:
            return self._retryable
        # A broken selector stays broken on the next attempt.
        return self.kind != FetchErrorKind.INVALID_SELECTOR


class InferenceError(RuntimeError):
    """Language model unreachable, refused the request, or returned a malformed judgment."""
