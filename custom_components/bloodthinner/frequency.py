"""Dosing-day rules for each medication frequency.

Decides whether a calendar date is a dosing day for a regimen and, if it
is, which zero-based position it holds among all dosing days since the
regimen started. End dates are not checked here; that is the resolver's
job.
"""

from __future__ import annotations

from datetime import date, timedelta
from enum import Enum


class Frequency(str, Enum):
    """How often a medication is taken."""

    ONCE_DAILY = "once_daily"
    TWICE_DAILY = "twice_daily"
    THREE_TIMES_DAILY = "three_times_daily"
    FOUR_TIMES_DAILY = "four_times_daily"
    EVERY_OTHER_DAY = "every_other_day"
    WEEKLY = "weekly"
    AS_NEEDED = "as_needed"
    CUSTOM = "custom"


DAILY_FREQUENCIES = frozenset(
    {
        Frequency.ONCE_DAILY,
        Frequency.TWICE_DAILY,
        Frequency.THREE_TIMES_DAILY,
        Frequency.FOUR_TIMES_DAILY,
    }
)

# No inherent cadence: every day is eligible, the caller decides
ON_DEMAND_FREQUENCIES = frozenset({Frequency.AS_NEEDED, Frequency.CUSTOM})

FREQUENCY_LABELS: dict[str, str] = {
    Frequency.ONCE_DAILY.value: "Once daily",
    Frequency.TWICE_DAILY.value: "Twice daily",
    Frequency.THREE_TIMES_DAILY.value: "Three times daily",
    Frequency.FOUR_TIMES_DAILY.value: "Four times daily",
    Frequency.EVERY_OTHER_DAY.value: "Every other day",
    Frequency.WEEKLY.value: "Weekly",
    Frequency.AS_NEEDED.value: "As needed",
    Frequency.CUSTOM.value: "Custom",
}


def cadence_step(frequency: Frequency | str) -> int:
    """Return the number of calendar days between two dosing days."""
    frequency = Frequency(frequency)
    if frequency in DAILY_FREQUENCIES or frequency in ON_DEMAND_FREQUENCIES:
        return 1
    if frequency is Frequency.EVERY_OTHER_DAY:
        return 2
    if frequency is Frequency.WEEKLY:
        return 7
    raise ValueError(f"Unsupported frequency: {frequency}")


def scheduled_day_index(
    frequency: Frequency | str, start: date, target: date
) -> int | None:
    """Return the zero-based dosing-day index of target, or None.

    None means target is not a dosing day, which includes every date
    before start.
    """
    elapsed = (target - start).days
    if elapsed < 0:
        return None
    step = cadence_step(frequency)
    if elapsed % step:
        return None
    return elapsed // step


def is_scheduled_day(frequency: Frequency | str, start: date, target: date) -> bool:
    """Return True if target is a dosing day."""
    return scheduled_day_index(frequency, start, target) is not None


def next_cadence_day(
    frequency: Frequency | str, anchor: date, boundary: date
) -> date:
    """Return the first day on or after boundary that falls on the cadence.

    The cadence is the one anchored at the regimen start, extended in both
    directions, so boundary may lie before the anchor.
    """
    step = cadence_step(frequency)
    offset = (anchor - boundary).days % step
    return boundary + timedelta(days=offset)
