"""
Cadence — Reminder store.

Owns point-in-time reminders: manual ones, ones derived from a subject's
deadline, and ones produced by snoozing. Each reminder is returned by
``poll_due`` at most once over its lifetime.

Snoozing a subject replaces every reminder it had, so at most one future
notification exists per snoozed subject.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from cadence.core.errors import FormatError, PersistenceError, ValidationError
from cadence.core.time_offset import parse_offset_delta
from cadence.data.models import Reminder, Subject
from cadence.ports.store_port import PersistentStorePort

logger = logging.getLogger(__name__)

STORAGE_KEY = "reminders"
SCHEMA_VERSION = 1
DEFAULT_RETENTION_DAYS = 7

SNOOZE_PRESETS: dict[str, timedelta] = {
    "10min": timedelta(minutes=10),
    "30min": timedelta(minutes=30),
    "1h": timedelta(hours=1),
    "3h": timedelta(hours=3),
    "1day": timedelta(days=1),
}
_FALLBACK_SNOOZE = timedelta(hours=1)


def _at_nine(d: datetime) -> datetime:
    return d.replace(hour=9, minute=0, second=0, microsecond=0)


def resolve_snooze_time(preset: str, now: datetime) -> datetime:
    """Turn a snooze preset into a trigger time.

    Fixed presets add a duration, ``tomorrow9am``/``nextweek`` land on 09:00,
    anything else goes through the offset parser (``+2h``, ``45min``).
    Unrecognized text falls back to one hour from now; this never raises.
    """
    if preset in SNOOZE_PRESETS:
        return now + SNOOZE_PRESETS[preset]
    if preset == "tomorrow9am":
        return _at_nine(now + timedelta(days=1))
    if preset == "nextweek":
        return _at_nine(now + timedelta(days=7))

    try:
        return now + parse_offset_delta(preset)
    except FormatError:
        logger.warning("Unknown snooze preset %r, using +1h", preset)
        return now + _FALLBACK_SNOOZE


class ReminderRequest(BaseModel):
    """Input contract for creating a reminder."""

    model_config = ConfigDict(str_strip_whitespace=True)

    subject_id: str = Field(min_length=1)
    text: str = Field(min_length=1)
    trigger_at: datetime
    kind: Literal["manual", "deadline-relative", "snoozed"] = "manual"
    priority: str = "medium"
    tags: list[str] = []

    @field_validator("trigger_at")
    @classmethod
    def to_local_naive(cls, v: datetime) -> datetime:
        """Aware timestamps are converted to naive local time, like the clock."""
        if v.tzinfo is not None:
            return v.astimezone().replace(tzinfo=None)
        return v


class ReminderStore:
    """In-memory reminders, backed by the persistent store."""

    def __init__(
        self,
        store: PersistentStorePort | None = None,
        clock: Callable[[], datetime] = datetime.now,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._retention_days = retention_days
        self._reminders: dict[str, Reminder] = {}

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
            reminders = [Reminder.from_dict(item) for item in raw]
        except (PersistenceError, sqlite3.Error, KeyError, TypeError, ValueError) as exc:
            logger.error("Failed to load reminders, starting empty: %s", exc)
            return
        self._reminders = {r.id: r for r in reminders}
        logger.info("Loaded %d reminders", len(self._reminders))
        self.purge_old(self._clock())

    def _save(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(STORAGE_KEY, [r.to_dict() for r in self._reminders.values()])
        except (PersistenceError, sqlite3.Error, OSError) as exc:
            logger.error("Failed to save reminders: %s", exc)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _build(self, **fields: Any) -> Reminder:
        try:
            request = ReminderRequest(**fields)
        except pydantic.ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            logger.warning("Invalid reminder: %s", details)
            raise ValidationError(f"Invalid reminder: {details}") from exc

        now = self._clock()
        if request.trigger_at < now:
            logger.warning(
                "Reminder for %s created with a past trigger time %s, it fires on the next poll",
                request.subject_id, request.trigger_at.isoformat(),
            )
        return Reminder(
            id=uuid.uuid4().hex,
            subject_id=request.subject_id,
            text=request.text,
            trigger_at=request.trigger_at,
            kind=request.kind,
            priority=request.priority,
            tags=list(request.tags),
            created_at=now,
        )

    def create(
        self,
        subject_id: str,
        text: str,
        trigger_at: datetime,
        kind: str = "manual",
        priority: str = "medium",
        tags: list[str] | None = None,
    ) -> Reminder:
        """Create a reminder. A past ``trigger_at`` is accepted and fires on the next poll.

        Raises ValidationError when subject_id, text or trigger_at is missing.
        """
        reminder = self._build(
            subject_id=subject_id,
            text=text,
            trigger_at=trigger_at,
            kind=kind,
            priority=priority,
            tags=tags or [],
        )
        self._reminders[reminder.id] = reminder
        self._save()
        logger.info(
            "Reminder created: %s for %s at %s (%s)",
            reminder.id, reminder.subject_id, reminder.trigger_at.isoformat(), reminder.kind,
        )
        return reminder.copy()

    def snooze(self, subject_id: str, preset: str, subject: Subject) -> Reminder:
        """Replace every reminder for ``subject_id`` with one snoozed reminder."""
        if not subject_id or subject is None:
            raise ValidationError("Snooze requires a subject id and a subject snapshot")

        now = self._clock()
        trigger_at = resolve_snooze_time(preset, now)

        previous = [r for r in self._reminders.values() if r.subject_id == subject_id]
        previous_count = max(
            (r.snooze_count for r in previous if r.kind == "snoozed"), default=0,
        )

        reminder = self._build(
            subject_id=subject_id,
            text=subject.text,
            trigger_at=trigger_at,
            kind="snoozed",
            priority=subject.priority or "medium",
            tags=list(subject.tags or []),
        )
        reminder.snoozed_at = now
        reminder.snooze_count = previous_count + 1

        for old in previous:
            del self._reminders[old.id]
        self._reminders[reminder.id] = reminder
        self._save()
        logger.info(
            "Subject %s snoozed (%s) until %s, snooze #%d",
            subject_id, preset, trigger_at.isoformat(), reminder.snooze_count,
        )
        return reminder.copy()

    def create_deadline_relative(self, subject: Subject, offset_text: str) -> Reminder | None:
        """Remind ``offset_text`` before the subject's deadline.

        Returns None when the subject has no due date or when the reminder
        would already be in the past (a stale due date, not urgency).

        Raises FormatError for an unparseable offset.
        """
        deadline = subject.deadline()
        if deadline is None:
            logger.warning("Cannot create deadline reminder: subject %s has no due date", subject.id)
            return None

        trigger_at = deadline - parse_offset_delta(offset_text)
        if trigger_at < self._clock():
            logger.warning(
                "Deadline reminder for %s would be in the past (%s), not creating",
                subject.id, trigger_at.isoformat(),
            )
            return None

        return self.create(
            subject_id=subject.id,
            text=f"Reminder: {subject.text} (due in {offset_text})",
            trigger_at=trigger_at,
            kind="deadline-relative",
            priority=subject.priority or "medium",
            tags=list(subject.tags or []),
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, reminder_id: str) -> Reminder | None:
        """Remove one reminder. Returns the removed reminder, or None."""
        reminder = self._reminders.pop(reminder_id, None)
        if reminder is None:
            logger.warning("Reminder %s not found", reminder_id)
            return None
        self._save()
        logger.info("Reminder %s cancelled", reminder_id)
        return reminder.copy()

    def cancel_for_subject(self, subject_id: str) -> int:
        """Remove every reminder for a subject. Returns how many were removed."""
        doomed = [rid for rid, r in self._reminders.items() if r.subject_id == subject_id]
        for rid in doomed:
            del self._reminders[rid]
        if doomed:
            self._save()
            logger.info("Cancelled %d reminders for %s", len(doomed), subject_id)
        return len(doomed)

    # ------------------------------------------------------------------
    # Triggering
    # ------------------------------------------------------------------

    def poll_due(self, now: datetime | None = None) -> list[Reminder]:
        """Flip and return untriggered reminders with ``trigger_at <= now``.

        Ordered by trigger time. A reminder is returned by this call once.
        """
        if now is None:
            now = self._clock()

        due = sorted(
            (r for r in self._reminders.values() if not r.triggered and r.trigger_at <= now),
            key=lambda r: r.trigger_at,
        )
        for reminder in due:
            reminder.triggered = True

        if due:
            self._save()
            logger.info("%d reminders due", len(due))
        return [r.copy() for r in due]

    def purge_old(self, now: datetime | None = None, retention_days: int | None = None) -> int:
        """Remove triggered reminders older than the retention window."""
        if now is None:
            now = self._clock()
        if retention_days is None:
            retention_days = self._retention_days
        cutoff = now - timedelta(days=retention_days)

        old = [rid for rid, r in self._reminders.items() if r.triggered and r.trigger_at < cutoff]
        for rid in old:
            del self._reminders[rid]
        if old:
            self._save()
            logger.info("Purged %d old reminders", len(old))
        return len(old)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def get(self, reminder_id: str) -> Reminder | None:
        reminder = self._reminders.get(reminder_id)
        return reminder.copy() if reminder is not None else None

    def list_all(self) -> list[Reminder]:
        return [r.copy() for r in self._reminders.values()]

    def list_active(self, now: datetime | None = None) -> list[Reminder]:
        """Untriggered future reminders, soonest first."""
        if now is None:
            now = self._clock()
        active = [r for r in self._reminders.values() if not r.triggered and r.trigger_at > now]
        active.sort(key=lambda r: r.trigger_at)
        return [r.copy() for r in active]

    def for_subject(self, subject_id: str) -> list[Reminder]:
        return [r.copy() for r in self._reminders.values() if r.subject_id == subject_id]

    def snoozed_reminder(self, subject_id: str) -> Reminder | None:
        for r in self._reminders.values():
            if r.subject_id == subject_id and r.kind == "snoozed" and not r.triggered:
                return r.copy()
        return None

    def stats(self, now: datetime | None = None) -> dict[str, Any]:
        if now is None:
            now = self._clock()
        reminders = list(self._reminders.values())
        active = [r for r in reminders if not r.triggered and r.trigger_at > now]
        return {
            "total": len(reminders),
            "active": len(active),
            "snoozed": sum(1 for r in active if r.kind == "snoozed"),
            "upcoming_24h": sum(1 for r in active if r.trigger_at - now <= timedelta(hours=24)),
            "triggered": sum(1 for r in reminders if r.triggered),
            "by_kind": {
                kind: sum(1 for r in reminders if r.kind == kind)
                for kind in ("manual", "snoozed", "deadline-relative")
            },
        }
