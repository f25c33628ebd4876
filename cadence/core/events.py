"""Lifecycle event topics and the publishing layer over the two stores.

The stores return data and never publish. SchedulingService forwards each
operation to its store and publishes the matching topic once the store call
has returned, so store state is final by the time subscribers run.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from cadence.core.patterns import PatternSpec, PatternStore
from cadence.core.reminders import ReminderStore
from cadence.data.models import GeneratedTask, RecurringPattern, Reminder, Subject
from cadence.ports.event_port import EventBusPort

logger = logging.getLogger(__name__)

PATTERN_CREATED = "recurring:pattern_created"
PATTERN_UPDATED = "recurring:pattern_updated"
PATTERN_DELETED = "recurring:pattern_deleted"
TASK_CREATED = "recurring:task_created"
DUE_PATTERNS = "recurring:due_patterns"
NEXT_INSTANCE_CREATED = "recurring:next_instance_created"
PATTERNS_CLEARED = "recurring:cleared"

REMINDER_CREATED = "reminder:created"
REMINDER_SNOOZED = "reminder:snoozed"
REMINDER_CANCELLED = "reminder:cancelled"
SUBJECT_CANCELLED = "reminder:subject_cancelled"
REMINDERS_CHECKED = "reminder:checked"
REMINDER_TRIGGERED = "reminder:triggered"
REMINDER_FALLBACK = "reminder:fallback"
REMINDER_CLICKED = "reminder:clicked"
PERMISSION_CHANGED = "reminder:permission_changed"


class SchedulingService:
    """Pattern and reminder operations with event publication."""

    def __init__(
        self,
        patterns: PatternStore,
        reminders: ReminderStore,
        event_bus: EventBusPort,
    ) -> None:
        self.patterns = patterns
        self.reminders = reminders
        self._bus = event_bus

    def _publish(self, topic: str, payload: Any = None) -> None:
        try:
            self._bus.publish(topic, payload)
        except Exception:
            logger.exception("Publishing %s failed", topic)

    # ------------------------------------------------------------------
    # Patterns
    # ------------------------------------------------------------------

    def create_pattern(self, spec: PatternSpec | dict[str, Any]) -> RecurringPattern:
        pattern = self.patterns.create(spec)
        self._publish(PATTERN_CREATED, pattern)
        return pattern

    def update_pattern(self, pattern_id: str, changes: dict[str, Any]) -> RecurringPattern | None:
        pattern = self.patterns.update(pattern_id, changes)
        if pattern is not None:
            self._publish(PATTERN_UPDATED, pattern)
        return pattern

    def pause_pattern(self, pattern_id: str) -> RecurringPattern | None:
        pattern = self.patterns.pause(pattern_id)
        if pattern is not None:
            self._publish(PATTERN_UPDATED, pattern)
        return pattern

    def resume_pattern(self, pattern_id: str) -> RecurringPattern | None:
        pattern = self.patterns.resume(pattern_id)
        if pattern is not None:
            self._publish(PATTERN_UPDATED, pattern)
        return pattern

    def delete_pattern(self, pattern_id: str) -> bool:
        deleted = self.patterns.delete(pattern_id)
        if deleted:
            self._publish(PATTERN_DELETED, {"pattern_id": pattern_id})
        return deleted

    def clear_patterns(self) -> None:
        self.patterns.clear_all()
        self._publish(PATTERNS_CLEARED)

    def materialize_due(self, now: datetime | None = None) -> list[GeneratedTask]:
        tasks = self.patterns.materialize_due(now)
        for task in tasks:
            self._publish(TASK_CREATED, task)
        if tasks:
            self._publish(DUE_PATTERNS, tasks)
        return tasks

    def on_subject_completed(self, task: GeneratedTask) -> GeneratedTask | None:
        next_task = self.patterns.on_subject_completed(task)
        if next_task is not None:
            self._publish(TASK_CREATED, next_task)
            self._publish(
                NEXT_INSTANCE_CREATED,
                {"completed_task": task, "next_task": next_task},
            )
        return next_task

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def create_reminder(self, **fields: Any) -> Reminder:
        reminder = self.reminders.create(**fields)
        self._publish(REMINDER_CREATED, reminder)
        return reminder

    def snooze(self, subject_id: str, preset: str, subject: Subject) -> Reminder:
        reminder = self.reminders.snooze(subject_id, preset, subject)
        self._publish(
            REMINDER_SNOOZED,
            {
                "subject_id": subject_id,
                "reminder": reminder,
                "preset": preset,
                "snooze_count": reminder.snooze_count,
            },
        )
        return reminder

    def create_deadline_relative(self, subject: Subject, offset_text: str) -> Reminder | None:
        reminder = self.reminders.create_deadline_relative(subject, offset_text)
        if reminder is not None:
            self._publish(REMINDER_CREATED, reminder)
        return reminder

    def cancel_reminder(self, reminder_id: str) -> Reminder | None:
        reminder = self.reminders.cancel(reminder_id)
        if reminder is not None:
            self._publish(REMINDER_CANCELLED, reminder)
        return reminder

    def cancel_for_subject(self, subject_id: str) -> int:
        count = self.reminders.cancel_for_subject(subject_id)
        if count:
            self._publish(SUBJECT_CANCELLED, {"subject_id": subject_id, "count": count})
        return count

    def poll_due(self, now: datetime | None = None) -> list[Reminder]:
        due = self.reminders.poll_due(now)
        if due:
            self._publish(REMINDERS_CHECKED, {"count": len(due), "reminders": due})
        return due

    def purge_old(self, now: datetime | None = None) -> int:
        return self.reminders.purge_old(now)
