# src/sitewatch/tasks/task_validator.py

"""
Task config parsing and validation.

Users describe a task as `key=value` lines:

    name=HN front page
    url=https://news.ycombinator.com
    tags=.titleline,!.sitebit
    schedule=daily 09:00
    prompt=Summarize these headlines: {content}
    alert_if_true=no

Validation happens once, here, at the store boundary. The result is a
ParseResult (Valid(draft) | Invalid(errors)); nothing downstream re-validates.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict

from apscheduler.triggers.cron import CronTrigger

from ..fetch.page_fetcher import selector_error
from .task_models import AlertMode, FieldError, Invalid, ParseResult, Task, TaskDraft, Valid, split_selectors

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)
_DAILY_RE = re.compile(r"^daily\s+(\d{1,2}):(\d{1,2})$", re.IGNORECASE)
# A ";" separates pairs only when a key follows it; values may contain ";" themselves.
_PAIR_SEP_RE = re.compile(r";\s*(?=[A-Za-z_][A-Za-z0-9_]*\s*=)")

_KEY_ALIASES = {
    "name": "name",
    "url": "url",
    "tags": "tag_selectors",
    "tag_selectors": "tag_selectors",
    "schedule": "schedule",
    "raw_schedule": "raw_schedule",
    "prompt": "prompt",
    "alert_if_true": "alert_if_true",
}
# Accepted but ignored: the destination comes from whoever submits the config.
_IGNORED_KEYS = {"id", "chatid", "chat_id", "destination"}

CONTENT_PLACEHOLDER = "{content}"


def parse_key_value_config(text: str) -> dict[str, str]:
    """
    Parse `key=value` lines. The first '=' splits key from value.

    Single-line input may separate pairs with "; key=" (handy in the console).
    Lines without '=' or with an empty key/value are skipped with a warning.
    """
    raw = (text or "").strip()
    if not raw:
        return {}

    lines = raw.splitlines() if "\n" in raw else _PAIR_SEP_RE.split(raw.rstrip(";"))

    out: dict[str, str] = {}
    for line in (ln.strip() for ln in lines):
        if not line:
            continue
        idx = line.find("=")
        if idx <= 0 or idx == len(line) - 1:
            logger.warning("Invalid key-value line skipped: %r", line)
            continue
        key = line[:idx].strip().lower()
        value = line[idx + 1 :].strip()
        if not key or not value:
            logger.warning("Empty key or value in line: %r", line)
            continue
        out[key] = value
    return out


def convert_schedule_to_cron(schedule: str) -> str:
    """
    'daily HH:MM' -> 'MM HH * * *'. Anything else is returned unchanged.

    Raises ValueError for a malformed daily time.
    """
    s = schedule.strip()
    if not s.lower().startswith("daily"):
        return s

    m = _DAILY_RE.match(s)
    if not m:
        raise ValueError('Invalid time format in schedule. Use "daily HH:MM".')
    hours, minutes = int(m.group(1)), int(m.group(2))
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError('Invalid time format in schedule. Use "daily HH:MM".')
    return f"{minutes} {hours} * * *"


def is_valid_cron(expression: str | None) -> bool:
    """True for a standard 5-field crontab expression."""
    if not expression or not expression.strip():
        return False
    try:
        CronTrigger.from_crontab(expression.strip())
    except (ValueError, TypeError):
        return False
    return True


def is_valid_url(url: str) -> bool:
    return bool(_URL_RE.match(url.strip()))


def validate_draft(draft: TaskDraft) -> list[FieldError]:
    errors: list[FieldError] = []

    if not draft.name.strip():
        errors.append(FieldError("name", "must not be empty"))

    if not draft.destination.strip():
        errors.append(FieldError("destination", "must not be empty"))

    if not draft.prompt.strip():
        errors.append(FieldError("prompt", "must not be empty"))

    if draft.url is not None and not is_valid_url(draft.url):
        errors.append(FieldError("url", f"invalid url: {draft.url}"))

    if draft.schedule is not None and not is_valid_cron(draft.schedule):
        errors.append(FieldError("schedule", f"invalid cron expression: {draft.schedule}"))

    if draft.tag_selectors is not None:
        include, exclude = split_selectors(draft.tag_selectors)
        if not include:
            errors.append(FieldError("tags", "needs at least one include selector"))
        for sel in include + exclude:
            err = selector_error(sel)
            if err:
                errors.append(FieldError("tags", f"invalid selector {sel!r}: {err}"))

    if draft.url and draft.tag_selectors and CONTENT_PLACEHOLDER not in draft.prompt:
        errors.append(FieldError("prompt", f"must contain {CONTENT_PLACEHOLDER}"))

    return errors


def parse_task_config(text: str, destination: str, base: Task | None = None) -> ParseResult:
    """
    Parse and validate a task config.

    base=None -> create: all required fields must be present.
    base=Task -> edit: parsed keys are merged onto the existing task.
    """
    values = parse_key_value_config(text)
    if not values:
        return Invalid([FieldError("config", "no key=value lines found")])

    fields = asdict(base.to_draft()) if base is not None else {
        "name": "",
        "prompt": "",
        "destination": destination,
        "url": None,
        "tag_selectors": None,
        "schedule": None,
        "raw_schedule": None,
        "alert_if_true": AlertMode.NO,
    }
    fields["destination"] = destination or fields["destination"]

    errors: list[FieldError] = []

    for key, value in values.items():
        if key in _IGNORED_KEYS:
            continue
        target = _KEY_ALIASES.get(key)
        if target is None:
            errors.append(FieldError(key, "unknown field"))
            continue

        if target == "alert_if_true":
            if value.lower() not in ("yes", "no"):
                errors.append(FieldError("alert_if_true", "must be yes or no"))
                continue
            fields[target] = AlertMode(value.lower())
        elif target == "schedule":
            try:
                fields["schedule"] = convert_schedule_to_cron(value)
            except ValueError as e:
                errors.append(FieldError("schedule", str(e)))
                continue
            if "raw_schedule" not in values:
                fields["raw_schedule"] = value
        else:
            fields[target] = value

    draft = TaskDraft(**fields)
    errors.extend(validate_draft(draft))

    if errors:
        logger.info("Task config rejected destination=%s errors=%d", destination, len(errors))
        return Invalid(errors)
    return Valid(draft)
