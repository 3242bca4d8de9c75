# src/sitewatch/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class AlertMode(StrEnum):
    """
    yes -> the summarizer answers with a structured judgment and automatic runs
           are delivered only when it says is_show=true
    no  -> plain text summary, always delivered
    """

    YES = "yes"
    NO = "no"

    @classmethod
    def from_db(cls, raw: str | None) -> AlertMode:
        if not raw:
            return cls.NO
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return cls.NO


def split_selectors(tag_selectors: str | None) -> tuple[list[str], list[str]]:
    """'body > div, !.promo' -> (['body > div'], ['.promo'])"""
    include: list[str] = []
    exclude: list[str] = []
    for raw in (tag_selectors or "").split(","):
        sel = raw.strip()
        if not sel:
            continue
        if sel.startswith("!"):
            sel = sel[1:].strip()
            if sel:
                exclude.append(sel)
        else:
            include.append(sel)
    return include, exclude


@dataclass(slots=True)
class TaskDraft:
    """Validated task fields, not yet persisted."""

    name: str
    prompt: str
    destination: str
    url: str | None = None
    tag_selectors: str | None = None
    schedule: str | None = None
    raw_schedule: str | None = None
    alert_if_true: AlertMode = AlertMode.NO


@dataclass(slots=True)
class Task:
    id: int
    name: str
    prompt: str
    destination: str

    url: str | None = None
    tag_selectors: str | None = None
    schedule: str | None = None
    raw_schedule: str | None = None
    alert_if_true: AlertMode = AlertMode.NO

    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def is_notification_only(self) -> bool:
        return not (self.url and self.url.strip()) or not (self.tag_selectors and self.tag_selectors.strip())

    @property
    def is_alert(self) -> bool:
        return self.alert_if_true == AlertMode.YES

    def split_selectors(self) -> tuple[list[str], list[str]]:
        return split_selectors(self.tag_selectors)

    def to_draft(self) -> TaskDraft:
        return TaskDraft(
            name=self.name,
            prompt=self.prompt,
            destination=self.destination,
            url=self.url,
            tag_selectors=self.tag_selectors,
            schedule=self.schedule,
            raw_schedule=self.raw_schedule,
            alert_if_true=self.alert_if_true,
        )


@dataclass(frozen=True, slots=True)
class FieldError:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass(frozen=True, slots=True)
class Valid:
    draft: TaskDraft


@dataclass(frozen=True, slots=True)
class Invalid:
    errors: list[FieldError] = field(default_factory=list)

    def describe(self) -> str:
        return "\n".join(f"- {e}" for e in self.errors)


ParseResult = Valid | Invalid
