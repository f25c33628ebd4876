"""
Cadence — Recurring pattern store.

Owns the in-memory collection of recurring patterns and persists it through
the state store after every mutation. Due patterns are materialized into
task snapshots; the caller hands those to the task list.

Publishing lifecycle events is left to SchedulingService; nothing here
touches the event bus.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cadence.core.errors import PersistenceError, RecurrenceConfigError, ValidationError
from cadence.core.recurrence import (
    RULE_FIELDS,
    RULE_TYPES,
    CustomHook,
    Rule,
    describe_rule,
    next_occurrence,
    validate_time_of_day,
)
from cadence.data.models import GeneratedTask, RecurringPattern
from cadence.ports.store_port import PersistentStorePort

logger = logging.getLogger(__name__)

STORAGE_KEY = "recurring_patterns"
SCHEMA_VERSION = 1

_EDITABLE_FIELDS = RULE_FIELDS | {"text", "time_of_day", "tags", "priority", "source"}


class PatternSpec(BaseModel):
    """Input contract for creating (or re-validating) a recurring pattern.

    Rule fields may be given flat (``{"text": ..., "type": "weekly",
    "days_of_week": [1, 3]}``) or nested under ``rule``.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    text: str = Field(min_length=1)
    rule: Rule
    time_of_day: str | None = None
    tags: list[str] = []
    priority: str = "normal"
    source: str = "cadence"

    @model_validator(mode="before")
    @classmethod
    def lift_rule_fields(cls, data: Any) -> Any:
        if isinstance(data, dict) and "rule" not in data:
            data = dict(data)
            rule = {k: data.pop(k) for k in list(data) if k in RULE_FIELDS}
            data["rule"] = rule
        return data

    @field_validator("time_of_day", mode="before")
    @classmethod
    def check_time_of_day(cls, v: str | None) -> str | None:
        return validate_time_of_day(v)

    @field_validator("tags", mode="before")
    @classmethod
    def default_tags(cls, v: Any) -> Any:
        return [] if v is None else v


def _to_validation_error(exc: pydantic.ValidationError, what: str) -> ValidationError:
    details = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or what}: {err['msg']}" for err in exc.errors()
    )
    return ValidationError(f"Invalid {what}: {details}")


class PatternStore:
    """In-memory recurring patterns, backed by the persistent store."""

    def __init__(
        self,
        store: PersistentStorePort | None = None,
        clock: Callable[[], datetime] = datetime.now,
        hooks: dict[str, CustomHook] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._hooks: dict[str, CustomHook] = dict(hooks or {})
        self._patterns: dict[str, RecurringPattern] = {}

        if self._store is not None:
            self._store.register_schema(STORAGE_KEY, SCHEMA_VERSION, validate=lambda d: isinstance(d, list))
        self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        if self._store is None:
            return
        try:
            raw = self._store.load(STORAGE_KEY)
            patterns = [RecurringPattern.from_dict(item) for item in raw]
        except (PersistenceError, sqlite3.Error, KeyError, TypeError, ValueError) as exc:
            logger.error("Failed to load recurring patterns, starting empty: %s", exc)
            return
        self._patterns = {p.id: p for p in patterns}
        logger.info("Loaded %d recurring patterns", len(self._patterns))

    def _save(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(STORAGE_KEY, [p.to_dict() for p in self._patterns.values()])
        except (PersistenceError, sqlite3.Error, OSError) as exc:
            logger.error("Failed to save recurring patterns: %s", exc)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def register_hook(self, name: str, hook: CustomHook) -> None:
        """Register a custom recurrence hook referenced by CustomRule.hook."""
        self._hooks[name] = hook
        logger.debug("Custom recurrence hook registered: %s", name)

    def _next(self, pattern: RecurringPattern | PatternSpec, from_date: datetime) -> datetime:
        return next_occurrence(pattern, from_date, self._hooks)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, spec: PatternSpec | dict[str, Any]) -> RecurringPattern:
        """Create a pattern and schedule its first occurrence from now.

        Raises:
            ValidationError: required fields missing or invalid.
            RecurrenceConfigError: custom rule with an unregistered hook.
        """
        if not isinstance(spec, PatternSpec):
            try:
                spec = PatternSpec.model_validate(spec)
            except pydantic.ValidationError as exc:
                err = _to_validation_error(exc, "recurring pattern")
                logger.warning("%s", err)
                raise err from exc

        now = self._clock()
        next_due = self._next(spec, now)

        pattern = RecurringPattern(
            id=uuid.uuid4().hex,
            text=spec.text,
            rule=spec.rule,
            time_of_day=spec.time_of_day,
            tags=list(spec.tags),
            priority=spec.priority,
            source=spec.source,
            active=True,
            created_at=now,
            next_due=next_due,
        )
        self._patterns[pattern.id] = pattern
        self._save()
        logger.info(
            "Pattern created: %s '%s' (%s), next due %s",
            pattern.id, pattern.text, pattern.rule_type, next_due.isoformat(),
        )
        return pattern.copy()

    def update(self, pattern_id: str, changes: dict[str, Any]) -> RecurringPattern | None:
        """Merge ``changes`` into a pattern.

        A changed rule recomputes ``next_due`` from now. Returns None for an
        unknown id. Raises ValidationError without applying anything when the
        merged pattern is invalid.
        """
        pattern = self._patterns.get(pattern_id)
        if pattern is None:
            logger.warning("Pattern %s not found", pattern_id)
            return None

        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update pattern fields: {', '.join(sorted(unknown))}")

        rule_changes = {k: v for k, v in changes.items() if k in RULE_FIELDS}
        new_type = rule_changes.get("type", pattern.rule_type)
        if new_type == pattern.rule_type:
            rule_data = pattern.rule.model_dump()
        else:
            rule_data = {"frequency": pattern.rule.frequency}
        rule_data.update(rule_changes)

        merged = {
            "text": changes.get("text", pattern.text),
            "rule": rule_data,
            "time_of_day": changes.get("time_of_day", pattern.time_of_day),
            "tags": changes.get("tags", pattern.tags),
            "priority": changes.get("priority", pattern.priority),
            "source": changes.get("source", pattern.source),
        }
        try:
            spec = PatternSpec.model_validate(merged)
        except pydantic.ValidationError as exc:
            err = _to_validation_error(exc, "pattern update")
            logger.warning("%s", err)
            raise err from exc

        rule_changed = spec.rule != pattern.rule
        next_due = self._next(spec, self._clock()) if rule_changed else pattern.next_due

        pattern.text = spec.text
        pattern.rule = spec.rule
        pattern.time_of_day = spec.time_of_day
        pattern.tags = list(spec.tags)
        pattern.priority = spec.priority
        pattern.source = spec.source
        pattern.next_due = next_due
        self._save()
        logger.info("Pattern %s updated%s", pattern_id, " (rescheduled)" if rule_changed else "")
        return pattern.copy()

    def pause(self, pattern_id: str) -> RecurringPattern | None:
        pattern = self._patterns.get(pattern_id)
        if pattern is None:
            logger.warning("Pattern %s not found", pattern_id)
            return None
        pattern.active = False
        self._save()
        logger.info("Pattern %s paused", pattern_id)
        return pattern.copy()

    def resume(self, pattern_id: str) -> RecurringPattern | None:
        """Reactivate a pattern, scheduling from now so no backlog fires."""
        pattern = self._patterns.get(pattern_id)
        if pattern is None:
            logger.warning("Pattern %s not found", pattern_id)
            return None
        next_due = self._next(pattern, self._clock())
        pattern.active = True
        pattern.next_due = next_due
        self._save()
        logger.info("Pattern %s resumed, next due %s", pattern_id, next_due.isoformat())
        return pattern.copy()

    def toggle(self, pattern_id: str) -> RecurringPattern | None:
        pattern = self._patterns.get(pattern_id)
        if pattern is None:
            return None
        return self.pause(pattern_id) if pattern.active else self.resume(pattern_id)

    def delete(self, pattern_id: str) -> bool:
        pattern = self._patterns.pop(pattern_id, None)
        if pattern is None:
            return False
        self._save()
        logger.info("Pattern %s '%s' deleted", pattern_id, pattern.text)
        return True

    def clear_all(self) -> None:
        self._patterns.clear()
        self._save()
        logger.info("All recurring patterns cleared")

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def _materialize(self, pattern: RecurringPattern, now: datetime) -> GeneratedTask:
        """Build one task from ``pattern`` and advance its schedule.

        The next occurrence is computed first so a failing hook leaves the
        pattern untouched.
        """
        due = pattern.next_due if pattern.next_due is not None else now
        new_next = self._next(pattern, due)
        if new_next <= due:
            raise RecurrenceConfigError(
                f"Pattern {pattern.id} did not advance past {due.isoformat()}"
            )

        task = GeneratedTask(
            id=uuid.uuid4().hex,
            text=pattern.text,
            pattern_id=pattern.id,
            due_date=due.date(),
            due_time=pattern.time_of_day,
            tags=list(pattern.tags),
            priority=pattern.priority,
            source=pattern.source,
            created_at=now,
        )
        pattern.last_materialized_at = now
        pattern.materialization_count += 1
        pattern.next_due = new_next
        return task

    def materialize_due(self, now: datetime | None = None) -> list[GeneratedTask]:
        """Materialize every active pattern whose ``next_due <= now``."""
        if now is None:
            now = self._clock()

        tasks: list[GeneratedTask] = []
        for pattern in list(self._patterns.values()):
            if not pattern.active or pattern.next_due is None or pattern.next_due > now:
                continue
            try:
                tasks.append(self._materialize(pattern, now))
            except RecurrenceConfigError as exc:
                logger.error("Skipping pattern %s: %s", pattern.id, exc)

        if tasks:
            self._save()
            logger.info("Materialized %d recurring tasks", len(tasks))
        return tasks

    def on_subject_completed(self, task: GeneratedTask) -> GeneratedTask | None:
        """Completing a generated task immediately materializes the next one."""
        pattern_id = getattr(task, "pattern_id", None)
        if not pattern_id:
            return None
        pattern = self._patterns.get(pattern_id)
        if pattern is None or not pattern.active:
            return None

        try:
            next_task = self._materialize(pattern, self._clock())
        except RecurrenceConfigError as exc:
            logger.error("Cannot create next instance of pattern %s: %s", pattern_id, exc)
            return None
        self._save()
        logger.info("Next instance of pattern %s created on completion", pattern_id)
        return next_task

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def get(self, pattern_id: str) -> RecurringPattern | None:
        pattern = self._patterns.get(pattern_id)
        return pattern.copy() if pattern is not None else None

    def list_all(self) -> list[RecurringPattern]:
        return [p.copy() for p in self._patterns.values()]

    def list_active(self) -> list[RecurringPattern]:
        return [p.copy() for p in self._patterns.values() if p.active]

    def list_by_type(self, rule_type: str) -> list[RecurringPattern]:
        return [p.copy() for p in self._patterns.values() if p.rule_type == rule_type]

    def upcoming(self, days: int = 7, now: datetime | None = None) -> list[RecurringPattern]:
        """Active patterns due within the next ``days`` days, soonest first."""
        if now is None:
            now = self._clock()
        horizon = now + timedelta(days=days)
        due = [
            p for p in self._patterns.values()
            if p.active and p.next_due is not None and p.next_due <= horizon
        ]
        due.sort(key=lambda p: p.next_due)
        return [p.copy() for p in due]

    def describe(self, pattern: RecurringPattern) -> str:
        return describe_rule(pattern.rule, pattern.time_of_day)

    def stats(self, now: datetime | None = None) -> dict[str, int]:
        patterns = list(self._patterns.values())
        result = {
            "total": len(patterns),
            "active": sum(1 for p in patterns if p.active),
            "paused": sum(1 for p in patterns if not p.active),
            "total_materializations": sum(p.materialization_count for p in patterns),
            "upcoming": len(self.upcoming(7, now)),
        }
        for rule_type in RULE_TYPES:
            result[rule_type] = sum(1 for p in patterns if p.rule_type == rule_type)
        return result
