"""
Cadence — Data Models.

Recurring patterns and reminders are owned by their stores and persisted as
plain dicts through the state store. Subjects and generated tasks belong to
the task list; the engine only ever sees snapshots of them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any

from cadence.core.recurrence import CustomRule, DailyRule, MonthlyRule, WeeklyRule, parse_rule

REMINDER_KINDS = ("manual", "deadline-relative", "snoozed")


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class RecurringPattern:
    """A recurring-task definition that materializes into concrete tasks."""

    id: str
    text: str                                    # copied verbatim into each task
    rule: DailyRule | WeeklyRule | MonthlyRule | CustomRule
    created_at: datetime
    time_of_day: str | None = None               # HH:MM, None → midnight
    tags: list[str] = field(default_factory=list)
    priority: str = "normal"
    source: str = "cadence"
    active: bool = True
    last_materialized_at: datetime | None = None
    next_due: datetime | None = None
    materialization_count: int = 0

    @property
    def rule_type(self) -> str:
        return self.rule.type

    def copy(self) -> RecurringPattern:
        return replace(self, tags=list(self.tags))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "rule": self.rule.model_dump(mode="json"),
            "time_of_day": self.time_of_day,
            "tags": list(self.tags),
            "priority": self.priority,
            "source": self.source,
            "active": self.active,
            "created_at": _iso(self.created_at),
            "last_materialized_at": _iso(self.last_materialized_at),
            "next_due": _iso(self.next_due),
            "materialization_count": self.materialization_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecurringPattern:
        return cls(
            id=data["id"],
            text=data["text"],
            rule=parse_rule(data["rule"]),
            time_of_day=data.get("time_of_day"),
            tags=list(data.get("tags") or []),
            priority=data.get("priority", "normal"),
            source=data.get("source", "cadence"),
            active=data.get("active", True),
            created_at=datetime.fromisoformat(data["created_at"]),
            last_materialized_at=_dt(data.get("last_materialized_at")),
            next_due=_dt(data.get("next_due")),
            materialization_count=data.get("materialization_count", 0),
        )


@dataclass
class Reminder:
    """A one-shot, point-in-time trigger for some subject."""

    id: str
    subject_id: str
    text: str                                    # independent of the subject's current text
    trigger_at: datetime
    created_at: datetime
    kind: str = "manual"                         # manual | deadline-relative | snoozed
    priority: str = "medium"
    tags: list[str] = field(default_factory=list)
    snoozed_at: datetime | None = None
    snooze_count: int = 0
    triggered: bool = False

    def copy(self) -> Reminder:
        return replace(self, tags=list(self.tags))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "text": self.text,
            "trigger_at": _iso(self.trigger_at),
            "kind": self.kind,
            "priority": self.priority,
            "tags": list(self.tags),
            "created_at": _iso(self.created_at),
            "snoozed_at": _iso(self.snoozed_at),
            "snooze_count": self.snooze_count,
            "triggered": self.triggered,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Reminder:
        return cls(
            id=data["id"],
            subject_id=data["subject_id"],
            text=data["text"],
            trigger_at=datetime.fromisoformat(data["trigger_at"]),
            kind=data.get("kind", "manual"),
            priority=data.get("priority", "medium"),
            tags=list(data.get("tags") or []),
            created_at=datetime.fromisoformat(data["created_at"]),
            snoozed_at=_dt(data.get("snoozed_at")),
            snooze_count=data.get("snooze_count", 0),
            triggered=data.get("triggered", False),
        )


@dataclass
class Subject:
    """Read-only snapshot of the task a reminder concerns."""

    id: str
    text: str
    priority: str = "medium"
    tags: list[str] = field(default_factory=list)
    due_date: date | None = None
    due_time: str | None = None                  # HH:MM, None → midnight

    def deadline(self) -> datetime | None:
        """Due date combined with due time, or None without a due date."""
        if self.due_date is None:
            return None
        hours, minutes = 0, 0
        if self.due_time:
            hours, minutes = (int(part) for part in self.due_time.split(":"))
        return datetime(self.due_date.year, self.due_date.month, self.due_date.day, hours, minutes)


@dataclass
class GeneratedTask:
    """A concrete task instance materialized from a recurring pattern."""

    id: str
    text: str
    pattern_id: str
    due_date: date
    created_at: datetime
    due_time: str | None = None
    tags: list[str] = field(default_factory=list)
    priority: str = "normal"
    source: str = "cadence"
    completed: bool = False
    is_recurring: bool = True

    def to_subject(self) -> Subject:
        return Subject(
            id=self.id,
            text=self.text,
            priority=self.priority,
            tags=list(self.tags),
            due_date=self.due_date,
            due_time=self.due_time,
        )
