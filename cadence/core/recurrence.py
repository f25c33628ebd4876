"""Recurrence rules and next-occurrence calculation — pure business logic.

A rule is one of four variants (daily, weekly, monthly, custom), each carrying
only its own fields; fields belonging to another variant are dropped.
``next_occurrence`` advances a base date by the rule and then pins the time
of day (or midnight).

Weekday ordinals follow the Sunday=0 convention used by stored patterns.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import calendar
import logging
import re
from datetime import datetime, timedelta
from typing import Annotated, Callable, Literal, Mapping, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, TypeAdapter, field_validator

from cadence.core.errors import RecurrenceConfigError

logger = logging.getLogger(__name__)

CustomHook = Callable[[datetime], datetime]

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


# ---------------------------------------------------------------------------
# Rule variants
# ---------------------------------------------------------------------------


class _RuleBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    frequency: PositiveInt = 1


class DailyRule(_RuleBase):
    """Every N days."""

    type: Literal["daily"] = "daily"


class WeeklyRule(_RuleBase):
    """Every N weeks, optionally on a set of weekdays (0-6, Sunday=0)."""

    type: Literal["weekly"] = "weekly"
    days_of_week: tuple[int, ...] = ()

    @field_validator("days_of_week", mode="before")
    @classmethod
    def normalize_days(cls, v: object) -> tuple[int, ...]:
        if v is None:
            return ()
        days = sorted({int(d) for d in v})
        for d in days:
            if not 0 <= d <= 6:
                raise ValueError(f"weekday out of range 0-6: {d}")
        return tuple(days)


class MonthlyRule(_RuleBase):
    """Every N months on a day of month, clamped to the month's length."""

    type: Literal["monthly"] = "monthly"
    day_of_month: int = Field(default=1, ge=1, le=31)


class CustomRule(_RuleBase):
    """Delegates to a hook registered under ``hook``."""

    type: Literal["custom"] = "custom"
    hook: str = Field(min_length=1)


Rule = Annotated[
    Union[DailyRule, WeeklyRule, MonthlyRule, CustomRule],
    Field(discriminator="type"),
]

RULE_TYPES = ("daily", "weekly", "monthly", "custom")
RULE_FIELDS = frozenset({"type", "frequency", "days_of_week", "day_of_month", "hook"})

_rule_adapter: TypeAdapter = TypeAdapter(Rule)


def parse_rule(data: Mapping[str, object] | _RuleBase) -> DailyRule | WeeklyRule | MonthlyRule | CustomRule:
    """Validate a rule from a dict (or pass a rule model through).

    Raises pydantic.ValidationError on bad input.
    """
    if isinstance(data, _RuleBase):
        return data
    return _rule_adapter.validate_python(dict(data))


def validate_time_of_day(value: str | None) -> str | None:
    """Normalize ``H:MM``/``HH:MM`` to ``HH:MM``; None passes through."""
    if value is None or value == "":
        return None
    match = _TIME_RE.match(value.strip())
    if match is None:
        raise ValueError(f"time of day must be HH:MM, got {value!r}")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


class Schedulable(Protocol):
    rule: DailyRule | WeeklyRule | MonthlyRule | CustomRule
    time_of_day: str | None


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def weekday_index(d: datetime) -> int:
    """Weekday ordinal with Sunday=0 ... Saturday=6."""
    return d.isoweekday() % 7


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(d: datetime, months: int, day_of_month: int) -> datetime:
    """Move ``d`` forward ``months`` months and land on ``day_of_month``.

    The day is clamped to the target month's length (31 → 30/29/28).
    """
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(day_of_month, days_in_month(year, month))
    return d.replace(year=year, month=month, day=day)


def next_weekday(from_date: datetime, days_of_week: tuple[int, ...], weeks_interval: int = 1) -> datetime:
    """Next date on one of ``days_of_week`` strictly after ``from_date``'s weekday.

    With nothing left this week, wraps to the first listed weekday of the
    next cycle, skipping ``weeks_interval - 1`` whole weeks.
    """
    current = weekday_index(from_date)
    for target in sorted(days_of_week):
        if target > current:
            return from_date + timedelta(days=target - current)

    first = min(days_of_week)
    days_ahead = (7 - current) + first + 7 * (weeks_interval - 1)
    return from_date + timedelta(days=days_ahead)


def apply_time_of_day(d: datetime, time_of_day: str | None) -> datetime:
    """Pin the time to ``HH:MM``, or to midnight when unset."""
    if time_of_day:
        hours, minutes = (int(part) for part in time_of_day.split(":"))
        return d.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    return d.replace(hour=0, minute=0, second=0, microsecond=0)


# ---------------------------------------------------------------------------
# Next occurrence
# ---------------------------------------------------------------------------


def next_occurrence(
    pattern: Schedulable,
    from_date: datetime | None = None,
    hooks: Mapping[str, CustomHook] | None = None,
) -> datetime:
    """Compute the next occurrence of ``pattern`` after ``from_date``.

    Args:
        pattern: Anything carrying ``rule`` and ``time_of_day``.
        from_date: Base date. Defaults to now. After a materialization this is
            the pattern's previous ``next_due``, which keeps the cadence fixed.
        hooks: Registry of custom hooks by name.

    Raises:
        RecurrenceConfigError: custom rule whose hook is not registered.
    """
    base = from_date if from_date is not None else datetime.now()
    rule = pattern.rule

    if isinstance(rule, DailyRule):
        result = base + timedelta(days=rule.frequency)
    elif isinstance(rule, WeeklyRule):
        if rule.days_of_week:
            result = next_weekday(base, rule.days_of_week, rule.frequency)
        else:
            result = base + timedelta(days=7 * rule.frequency)
    elif isinstance(rule, MonthlyRule):
        result = add_months(base, rule.frequency, rule.day_of_month)
    elif isinstance(rule, CustomRule):
        hook = (hooks or {}).get(rule.hook)
        if hook is None:
            raise RecurrenceConfigError(f"No custom recurrence hook registered as {rule.hook!r}")
        result = hook(base)
    else:
        raise RecurrenceConfigError(f"Unknown rule type: {type(rule).__name__}")

    return apply_time_of_day(result, pattern.time_of_day)


# ---------------------------------------------------------------------------
# Human-readable description
# ---------------------------------------------------------------------------


def _every(frequency: int, unit: str) -> str:
    return f"Every {unit}" if frequency == 1 else f"Every {frequency} {unit}s"


def describe_rule(rule: DailyRule | WeeklyRule | MonthlyRule | CustomRule, time_of_day: str | None = None) -> str:
    """Short English summary, e.g. "Every 2 weeks on Mon, Wed at 09:00"."""
    if isinstance(rule, DailyRule):
        desc = _every(rule.frequency, "day")
    elif isinstance(rule, WeeklyRule):
        desc = _every(rule.frequency, "week")
        if rule.days_of_week:
            desc += " on " + ", ".join(_DAY_NAMES[d] for d in rule.days_of_week)
    elif isinstance(rule, MonthlyRule):
        desc = f"{_every(rule.frequency, 'month')} on day {rule.day_of_month}"
    else:
        desc = f"Custom pattern ({rule.hook})"

    if time_of_day:
        desc += f" at {time_of_day}"
    return desc
