"""Shared test fixtures and configuration.

Sets safe environment defaults before any cadence imports, and provides a
controllable clock plus stores backed by a temp SQLite DB.
"""

import os

# Patch env vars BEFORE any cadence imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("REMINDER_POLL_SECONDS", "30")
os.environ.setdefault("PATTERN_POLL_SECONDS", "3600")
os.environ.setdefault("REMINDER_RETENTION_DAYS", "7")

from datetime import datetime, timedelta

import pytest

# Monday 2 March 2026, 08:00
MONDAY_8AM = datetime(2026, 3, 2, 8, 0)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def clock():
    return FakeClock(MONDAY_8AM)


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_cadence.db")


@pytest.fixture
def state_store(tmp_db_path):
    """Return a StateStore backed by a temp file."""
    from cadence.data.store import StateStore
    return StateStore(db_path=tmp_db_path)


@pytest.fixture
def pattern_store(state_store, clock):
    from cadence.core.patterns import PatternStore
    return PatternStore(state_store, clock=clock)


@pytest.fixture
def reminder_store(state_store, clock):
    from cadence.core.reminders import ReminderStore
    return ReminderStore(state_store, clock=clock)


@pytest.fixture
def event_bus():
    from cadence.adapters.event_bus import InMemoryEventBus
    return InMemoryEventBus()


@pytest.fixture
def service(pattern_store, reminder_store, event_bus):
    from cadence.core.events import SchedulingService
    return SchedulingService(pattern_store, reminder_store, event_bus)
