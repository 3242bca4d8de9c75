# tests/test_task_validator.py

from __future__ import annotations

import pytest

from sitewatch.tasks.task_models import AlertMode, Invalid, Valid
from sitewatch.tasks.task_validator import (
    convert_schedule_to_cron,
    is_valid_cron,
    parse_key_value_config,
    parse_task_config,
)

CONFIG = """
name=Prices
url=https://shop.test/item
tags=.price, !.ad
schedule=daily 7:05
prompt=Tell me if the price is below 100: {content}
alert_if_true=yes
"""


def test_parse_key_value_lines() -> None:
    assert parse_key_value_config("a=1\nb = x=y\n\nbroken\nc=") == {"a": "1", "b": "x=y"}


def test_parse_key_value_single_line_with_semicolons() -> None:
    assert parse_key_value_config("name=A; prompt=Hi") == {"name": "A", "prompt": "Hi"}


def test_convert_daily_schedule() -> None:
    assert convert_schedule_to_cron("daily 09:30") == "30 9 * * *"
    assert convert_schedule_to_cron("Daily 7:05") == "5 7 * * *"
    assert convert_schedule_to_cron("*/10 * * * *") == "*/10 * * * *"


@pytest.mark.parametrize("raw", ["daily", "daily 24:00", "daily 9:60", "daily nine"])
def test_convert_daily_schedule_rejects_bad_time(raw: str) -> None:
    with pytest.raises(ValueError):
        convert_schedule_to_cron(raw)


def test_is_valid_cron() -> None:
    assert is_valid_cron("0 9 * * 1-5")
    assert not is_valid_cron("0 9 * *")
    assert not is_valid_cron("99 * * * *")
    assert not is_valid_cron("")
    assert not is_valid_cron(None)


def test_parse_full_config() -> None:
    result = parse_task_config(CONFIG, "chat-1")

    assert isinstance(result, Valid)
    draft = result.draft
    assert draft.name == "Prices"
    assert draft.destination == "chat-1"
    assert draft.tag_selectors == ".price, !.ad"
    assert draft.schedule == "5 7 * * *"
    assert draft.raw_schedule == "daily 7:05"
    assert draft.alert_if_true == AlertMode.YES


def test_notification_only_config_is_valid() -> None:
    result = parse_task_config("name=Standup\nschedule=0 10 * * 1-5\nprompt=Standup time!", "chat-1")

    assert isinstance(result, Valid)
    assert result.draft.url is None
    assert result.draft.tag_selectors is None


def test_destination_comes_from_caller() -> None:
    result = parse_task_config("name=A\nprompt=Hi\ndestination=elsewhere\nid=7", "chat-1")

    assert isinstance(result, Valid)
    assert result.draft.destination == "chat-1"


def _fields(result) -> set[str]:
    assert isinstance(result, Invalid)
    return {e.field for e in result.errors}


def test_prompt_without_placeholder_is_rejected() -> None:
    result = parse_task_config("name=A\nurl=https://x.test\ntags=body\nprompt=Summarize", "chat-1")
    assert _fields(result) == {"prompt"}


def test_invalid_fields_are_all_reported() -> None:
    result = parse_task_config(
        "name=A\nurl=not-a-url\ntags=div[\nschedule=whenever\nalert_if_true=maybe\ncolour=red\nprompt={content}",
        "chat-1",
    )
    assert _fields(result) == {"url", "tags", "schedule", "alert_if_true", "colour"}


def test_exclude_only_selectors_are_rejected() -> None:
    result = parse_task_config("name=A\nurl=https://x.test\ntags=!nav\nprompt={content}", "chat-1")
    assert _fields(result) == {"tags"}


def test_missing_required_fields() -> None:
    assert _fields(parse_task_config("url=https://x.test", "chat-1")) == {"name", "prompt"}
    assert _fields(parse_task_config("", "chat-1")) == {"config"}


def test_edit_merges_onto_existing_task(make_task) -> None:
    base = make_task(7, schedule="0 9 * * *", destination="chat-1")

    result = parse_task_config("schedule=daily 18:00\nalert_if_true=yes", "chat-1", base=base)

    assert isinstance(result, Valid)
    draft = result.draft
    assert draft.name == base.name
    assert draft.url == base.url
    assert draft.prompt == base.prompt
    assert draft.schedule == "0 18 * * *"
    assert draft.raw_schedule == "daily 18:00"
    assert draft.alert_if_true == AlertMode.YES


def test_semicolons_inside_values_are_kept() -> None:
    parsed = parse_key_value_config("name=A; prompt=Watch prices; tell me the lowest: {content};")

    assert parsed == {"name": "A", "prompt": "Watch prices; tell me the lowest: {content}"}
