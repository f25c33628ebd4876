"""Tests for cadence.core.reminders — ReminderStore and snooze presets."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from cadence.core.errors import FormatError, PersistenceError, ValidationError
from cadence.core.reminders import ReminderStore, resolve_snooze_time
from cadence.data.models import Reminder, Subject

# Clock fixture starts at Monday 2026-03-02 08:00
NOW = datetime(2026, 3, 2, 8, 0)


def _subject(**overrides):
    fields = {"id": "task-1", "text": "Write report", "priority": "high", "tags": ["work"]}
    fields.update(overrides)
    return Subject(**fields)


# ---------------------------------------------------------------------------
# resolve_snooze_time
# ---------------------------------------------------------------------------


class TestResolveSnoozeTime:
    @pytest.mark.parametrize(
        "preset,expected",
        [
            ("10min", NOW + timedelta(minutes=10)),
            ("30min", NOW + timedelta(minutes=30)),
            ("1h", NOW + timedelta(hours=1)),
            ("3h", NOW + timedelta(hours=3)),
            ("1day", NOW + timedelta(days=1)),
            ("tomorrow9am", datetime(2026, 3, 3, 9, 0)),
            ("nextweek", datetime(2026, 3, 9, 9, 0)),
            ("+2h", NOW + timedelta(hours=2)),
            ("45min", NOW + timedelta(minutes=45)),
        ],
    )
    def test_presets(self, preset, expected):
        assert resolve_snooze_time(preset, NOW) == expected

    def test_tomorrow9am_late_evening(self):
        late = datetime(2026, 3, 2, 23, 30)
        assert resolve_snooze_time("tomorrow9am", late) == datetime(2026, 3, 3, 9, 0)

    def test_unknown_preset_falls_back_to_one_hour(self):
        assert resolve_snooze_time("whenever", NOW) == NOW + timedelta(hours=1)


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


class TestCreate:
    def test_creates_manual_reminder(self, reminder_store):
        trigger = NOW + timedelta(hours=2)
        reminder = reminder_store.create("task-1", "Call Bob", trigger)

        assert reminder.id
        assert reminder.kind == "manual"
        assert reminder.priority == "medium"
        assert reminder.triggered is False
        assert reminder.snooze_count == 0
        assert reminder.created_at == NOW
        assert reminder_store.get(reminder.id).trigger_at == trigger

    def test_missing_subject_id_rejected(self, reminder_store):
        with pytest.raises(ValidationError):
            reminder_store.create("", "Call Bob", NOW)
        assert reminder_store.list_all() == []

    def test_missing_text_rejected(self, reminder_store):
        with pytest.raises(ValidationError):
            reminder_store.create("task-1", None, NOW)

    def test_missing_trigger_rejected(self, reminder_store):
        with pytest.raises(ValidationError):
            reminder_store.create("task-1", "Call Bob", None)

    def test_unknown_kind_rejected(self, reminder_store):
        with pytest.raises(ValidationError):
            reminder_store.create("task-1", "Call Bob", NOW, kind="yearly")

    def test_aware_trigger_converted_to_local_time(self, reminder_store):
        aware = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        reminder = reminder_store.create("s1", "Call Anna", aware)
        assert reminder.trigger_at.tzinfo is None
        assert reminder.trigger_at == aware.astimezone().replace(tzinfo=None)

    def test_iso_string_with_offset_accepted(self, reminder_store):
        reminder = reminder_store.create("s1", "Call Anna", "2026-03-02T09:00:00+00:00")
        expected = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
        assert reminder.trigger_at == expected
        assert len(reminder_store.poll_due(now=expected)) == 1

    def test_past_trigger_accepted_and_fires_next_poll(self, reminder_store):
        reminder = reminder_store.create("task-1", "Overdue", NOW - timedelta(hours=1))
        due = reminder_store.poll_due()
        assert [r.id for r in due] == [reminder.id]


# ---------------------------------------------------------------------------
# snooze
# ---------------------------------------------------------------------------


class TestSnooze:
    def test_snooze_replaces_existing_reminders(self, reminder_store):
        reminder_store.create("task-1", "First", NOW + timedelta(hours=1))
        reminder_store.create("task-1", "Second", NOW + timedelta(hours=2))
        reminder_store.create("task-2", "Other", NOW + timedelta(hours=3))

        snoozed = reminder_store.snooze("task-1", "30min", _subject())

        assert [r.id for r in reminder_store.for_subject("task-1")] == [snoozed.id]
        assert len(reminder_store.for_subject("task-2")) == 1
        assert snoozed.kind == "snoozed"
        assert snoozed.trigger_at == NOW + timedelta(minutes=30)
        assert snoozed.snoozed_at == NOW
        assert snoozed.text == "Write report"
        assert snoozed.priority == "high"
        assert snoozed.tags == ["work"]

    def test_snooze_twice_counts_up(self, reminder_store, clock):
        reminder_store.snooze("task-1", "10min", _subject())
        clock.advance(minutes=5)
        second = reminder_store.snooze("task-1", "1h", _subject())

        remaining = reminder_store.for_subject("task-1")
        assert len(remaining) == 1
        assert remaining[0].snooze_count == 2
        assert second.trigger_at == clock.now + timedelta(hours=1)

    def test_snooze_after_manual_starts_at_one(self, reminder_store):
        reminder_store.create("task-1", "Manual", NOW + timedelta(hours=1))
        assert reminder_store.snooze("task-1", "1h", _subject()).snooze_count == 1

    def test_unknown_preset_still_snoozes(self, reminder_store):
        snoozed = reminder_store.snooze("task-1", "later", _subject())
        assert snoozed.trigger_at == NOW + timedelta(hours=1)

    def test_requires_subject(self, reminder_store):
        with pytest.raises(ValidationError):
            reminder_store.snooze("task-1", "1h", None)
        with pytest.raises(ValidationError):
            reminder_store.snooze("", "1h", _subject())

    def test_snoozed_reminder_lookup(self, reminder_store):
        assert reminder_store.snoozed_reminder("task-1") is None
        snoozed = reminder_store.snooze("task-1", "3h", _subject())
        assert reminder_store.snoozed_reminder("task-1").id == snoozed.id


# ---------------------------------------------------------------------------
# create_deadline_relative
# ---------------------------------------------------------------------------


class TestDeadlineRelative:
    @pytest.fixture(autouse=True)
    def _ten_am(self, clock):
        clock.set(datetime(2026, 3, 2, 10, 0))

    def test_trigger_before_due(self, reminder_store):
        subject = _subject(due_date=date(2026, 3, 2), due_time="12:00")
        reminder = reminder_store.create_deadline_relative(subject, "1h")

        assert reminder.trigger_at == datetime(2026, 3, 2, 11, 0)
        assert reminder.kind == "deadline-relative"
        assert reminder.text == "Reminder: Write report (due in 1h)"
        assert reminder.priority == "high"

    def test_past_trigger_returns_none(self, reminder_store):
        subject = _subject(due_date=date(2026, 3, 2), due_time="10:30")
        assert reminder_store.create_deadline_relative(subject, "1h") is None
        assert reminder_store.list_all() == []

    def test_trigger_exactly_now_is_kept(self, reminder_store):
        subject = _subject(due_date=date(2026, 3, 2), due_time="11:00")
        reminder = reminder_store.create_deadline_relative(subject, "1h")
        assert reminder.trigger_at == datetime(2026, 3, 2, 10, 0)

    def test_due_date_without_time_means_midnight(self, reminder_store):
        subject = _subject(due_date=date(2026, 3, 4))
        reminder = reminder_store.create_deadline_relative(subject, "1day")
        assert reminder.trigger_at == datetime(2026, 3, 3, 0, 0)

    def test_no_due_date_returns_none(self, reminder_store):
        assert reminder_store.create_deadline_relative(_subject(), "1h") is None

    def test_bad_offset_raises(self, reminder_store):
        subject = _subject(due_date=date(2026, 3, 5))
        with pytest.raises(FormatError):
            reminder_store.create_deadline_relative(subject, "soon")


# ---------------------------------------------------------------------------
# poll_due / purge_old
# ---------------------------------------------------------------------------


class TestPollDue:
    def test_returns_due_in_trigger_order(self, reminder_store):
        late = reminder_store.create("a", "Late", NOW + timedelta(minutes=20))
        early = reminder_store.create("b", "Early", NOW + timedelta(minutes=5))
        reminder_store.create("c", "Future", NOW + timedelta(hours=5))

        due = reminder_store.poll_due(now=NOW + timedelta(minutes=30))

        assert [r.id for r in due] == [early.id, late.id]
        assert all(r.triggered for r in due)

    def test_each_reminder_returned_once(self, reminder_store):
        reminder_store.create("a", "Once", NOW + timedelta(minutes=1))
        later = NOW + timedelta(minutes=2)
        assert len(reminder_store.poll_due(now=later)) == 1
        assert reminder_store.poll_due(now=later) == []
        assert reminder_store.poll_due(now=later + timedelta(days=1)) == []

    def test_trigger_equal_to_now_is_due(self, reminder_store):
        reminder_store.create("a", "Exact", NOW + timedelta(minutes=10))
        assert len(reminder_store.poll_due(now=NOW + timedelta(minutes=10))) == 1

    def test_triggered_not_active(self, reminder_store):
        reminder_store.create("a", "Soon", NOW + timedelta(minutes=1))
        reminder_store.poll_due(now=NOW + timedelta(minutes=1))
        assert reminder_store.list_active(now=NOW) == []


class TestPurgeOld:
    def test_removes_only_old_triggered(self, reminder_store):
        old = reminder_store.create("a", "Old", NOW - timedelta(days=10))
        recent = reminder_store.create("b", "Recent", NOW - timedelta(days=2))
        pending = reminder_store.create("c", "Pending", NOW + timedelta(days=1))
        reminder_store.poll_due(now=NOW)

        assert reminder_store.purge_old(now=NOW) == 1
        assert reminder_store.get(old.id) is None
        assert reminder_store.get(recent.id) is not None
        assert reminder_store.get(pending.id) is not None

    def test_untriggered_never_purged(self, reminder_store):
        reminder_store.create("a", "Missed", NOW - timedelta(days=30))
        assert reminder_store.purge_old(now=NOW) == 0

    def test_custom_retention(self, reminder_store):
        reminder_store.create("a", "Recent", NOW - timedelta(days=2))
        reminder_store.poll_due(now=NOW)
        assert reminder_store.purge_old(now=NOW, retention_days=1) == 1

    def test_purged_on_load(self, state_store, clock):
        first = ReminderStore(state_store, clock=clock)
        first.create("a", "Old", NOW - timedelta(days=1))
        first.poll_due(now=NOW)

        clock.advance(days=10)
        second = ReminderStore(state_store, clock=clock)

        assert second.list_all() == []


# ---------------------------------------------------------------------------
# cancel
# ---------------------------------------------------------------------------


class TestCancel:
    def test_cancel_returns_removed(self, reminder_store):
        reminder = reminder_store.create("a", "Cancel me", NOW + timedelta(hours=1))
        removed = reminder_store.cancel(reminder.id)
        assert removed.id == reminder.id
        assert reminder_store.get(reminder.id) is None

    def test_cancel_returns_snapshot(self, reminder_store):
        reminder = reminder_store.create("a", "Cancel me", NOW + timedelta(hours=1))
        original_copy = Reminder.copy
        with patch.object(Reminder, "copy", autospec=True, side_effect=original_copy) as copy_spy:
            removed = reminder_store.cancel(reminder.id)
        copy_spy.assert_called_once()
        assert removed == reminder

    def test_cancel_unknown_returns_none(self, reminder_store):
        assert reminder_store.cancel("missing") is None

    def test_cancel_for_subject(self, reminder_store):
        reminder_store.create("a", "One", NOW + timedelta(hours=1))
        reminder_store.create("a", "Two", NOW + timedelta(hours=2))
        reminder_store.create("b", "Keep", NOW + timedelta(hours=3))

        assert reminder_store.cancel_for_subject("a") == 2
        assert reminder_store.for_subject("a") == []
        assert len(reminder_store.for_subject("b")) == 1
        assert reminder_store.cancel_for_subject("a") == 0


# ---------------------------------------------------------------------------
# Views and persistence
# ---------------------------------------------------------------------------


class TestViews:
    def test_list_active_sorted(self, reminder_store):
        reminder_store.create("a", "Later", NOW + timedelta(hours=5))
        reminder_store.create("b", "Sooner", NOW + timedelta(hours=1))
        assert [r.text for r in reminder_store.list_active()] == ["Sooner", "Later"]

    def test_returned_reminders_are_copies(self, reminder_store):
        reminder = reminder_store.create("a", "Original", NOW + timedelta(hours=1), tags=["x"])
        reminder.text = "mutated"
        reminder.tags.append("y")
        stored = reminder_store.get(reminder.id)
        assert stored.text == "Original"
        assert stored.tags == ["x"]

    def test_stats(self, reminder_store):
        reminder_store.create("a", "Soon", NOW + timedelta(hours=2))
        reminder_store.create("b", "Far", NOW + timedelta(days=3))
        reminder_store.create("c", "Past", NOW - timedelta(hours=1))
        reminder_store.snooze("d", "1h", _subject(id="d"))
        reminder_store.poll_due(now=NOW)

        stats = reminder_store.stats()

        assert stats["total"] == 4
        assert stats["active"] == 3
        assert stats["snoozed"] == 1
        assert stats["upcoming_24h"] == 2
        assert stats["triggered"] == 1
        assert stats["by_kind"] == {"manual": 3, "snoozed": 1, "deadline-relative": 0}


class TestPersistence:
    def test_reload_from_same_store(self, state_store, clock):
        first = ReminderStore(state_store, clock=clock)
        created = first.snooze("task-1", "1h", _subject())

        second = ReminderStore(state_store, clock=clock)

        assert second.get(created.id) == created

    def test_load_failure_starts_empty(self, clock):
        store = MagicMock()
        store.load.side_effect = PersistenceError("corrupt")
        assert ReminderStore(store, clock=clock).list_all() == []

    def test_save_failure_keeps_memory_state(self, clock):
        store = MagicMock()
        store.load.return_value = []
        store.save.side_effect = PersistenceError("disk full")
        reminder_store = ReminderStore(store, clock=clock)

        reminder = reminder_store.create("a", "Still here", NOW + timedelta(hours=1))

        assert reminder_store.get(reminder.id) is not None
