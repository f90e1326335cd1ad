"""Expected dose resolution, schedules and dose variance.

Combines the frequency rules, the pattern history and the cyclic dose
sequences to answer "what should be taken on this date". Everything here
is pure computation over the values passed in.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from .const import DEFAULT_DOSE_UNIT, VARIANCE_TOLERANCE
from .frequency import (
    Frequency,
    cadence_step,
    next_cadence_day,
    scheduled_day_index,
)
from .history import PatternVersion, active_version_on
from .pattern import dose_at, format_amount, format_pattern, to_decimal

_LOGGER = logging.getLogger(__name__)

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class Regimen:
    """Medication-level dosing configuration.

    dose is the fixed amount used when no pattern version covers a date.
    """

    frequency: Frequency
    start_date: date
    end_date: date | None = None
    active: bool = True
    dose: Decimal | None = None
    unit: str = DEFAULT_DOSE_UNIT

    def __post_init__(self) -> None:
        object.__setattr__(self, "frequency", Frequency(self.frequency))
        if self.dose is not None:
            object.__setattr__(self, "dose", to_decimal(self.dose))
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")


@dataclass(frozen=True)
class ScheduleEntry:
    """One dosing day of a generated schedule."""

    date: date
    dose: Decimal
    scheduled_day_index: int
    unit: str = DEFAULT_DOSE_UNIT
    pattern_day: int | None = None
    pattern_length: int | None = None
    is_pattern_change: bool = False

    @property
    def display_text(self) -> str:
        text = format_amount(self.dose, self.unit)
        if self.pattern_day is None:
            return text
        return f"{text} (Day {self.pattern_day}/{self.pattern_length})"

    def as_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "weekday": self.date.strftime("%A"),
            "dose": float(self.dose),
            "scheduled_day_index": self.scheduled_day_index,
            "pattern_day": self.pattern_day,
            "pattern_length": self.pattern_length,
            "is_pattern_change": self.is_pattern_change,
            "display": self.display_text,
        }


@dataclass(frozen=True)
class ScheduleSummary:
    """Totals over a generated schedule."""

    total: Decimal = Decimal(0)
    average: Decimal = Decimal(0)
    minimum: Decimal = Decimal(0)
    maximum: Decimal = Decimal(0)
    pattern_cycles: Decimal = Decimal(0)

    def as_dict(self) -> dict:
        return {
            "total": float(self.total),
            "average": float(self.average),
            "minimum": float(self.minimum),
            "maximum": float(self.maximum),
            "pattern_cycles": float(self.pattern_cycles),
        }


@dataclass(frozen=True)
class VarianceResult:
    """Difference between an expected and an actual dose."""

    has_variance: bool = False
    amount: Decimal | None = None
    percentage: Decimal | None = None


class DoseStatus(str, Enum):
    """Outcome recorded for a dosing event."""

    TAKEN = "taken"
    MISSED = "missed"
    SKIPPED = "skipped"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DoseLogEntry:
    """Record of a real dosing event.

    expected_dose, pattern_day and scheduled_day_index are captured when
    the entry is built and never recomputed, so later pattern edits do not
    change what was expected at the time.
    """

    scheduled_at: datetime
    status: DoseStatus = DoseStatus.TAKEN
    taken_at: datetime | None = None
    actual_dose: Decimal | None = None
    expected_dose: Decimal | None = None
    pattern_day: int | None = None
    scheduled_day_index: int | None = None
    pattern_version_id: int | None = None
    log_id: int | None = None
    notes: str | None = field(default=None, compare=False)

    @property
    def variance(self) -> VarianceResult:
        return resolve_variance(self.expected_dose, self.actual_dose)

    @property
    def time_variance_minutes(self) -> int | None:
        if self.taken_at is None:
            return None
        return int((self.taken_at - self.scheduled_at).total_seconds() / 60)

    def is_taken_on_time(self, window_minutes: int = 60) -> bool:
        if self.status is not DoseStatus.TAKEN or self.taken_at is None:
            return False
        return abs(self.time_variance_minutes) <= window_minutes

    def with_actual_dose(self, amount: Decimal | float | str | None) -> DoseLogEntry:
        """Return a corrected copy; the expected-dose snapshot is kept."""
        actual = to_decimal(amount) if amount is not None else None
        return replace(self, actual_dose=actual)


def regimen_in_range(regimen: Regimen, target: date) -> bool:
    """Return True if the regimen is active and target is inside its window."""
    if not regimen.active:
        return False
    if target < regimen.start_date:
        return False
    return regimen.end_date is None or target <= regimen.end_date


def _version_day_index(
    regimen: Regimen, version: PatternVersion, target: date
) -> int:
    """Count dosing days from the version's own start up to target.

    Each version starts its cycle at position zero on the first dosing
    day on or after its start date.
    """
    first = next_cadence_day(regimen.frequency, regimen.start_date, version.start_date)
    return (target - first).days // cadence_step(regimen.frequency)


def _resolve(
    regimen: Regimen, versions: Sequence[PatternVersion], target: date
) -> tuple[Decimal, int, PatternVersion | None, int | None] | None:
    """Return (dose, regimen day index, version, version day index) or None."""
    if not regimen_in_range(regimen, target):
        return None

    index = scheduled_day_index(regimen.frequency, regimen.start_date, target)
    if index is None:
        return None

    version = active_version_on(versions, target)
    if version is not None:
        local_index = _version_day_index(regimen, version, target)
        return dose_at(version.sequence, local_index), index, version, local_index

    if regimen.dose is not None:
        return regimen.dose, index, None, None

    return None


def expected_dose(
    regimen: Regimen, versions: Sequence[PatternVersion], target: date
) -> Decimal | None:
    """Return the dose expected on target, or None if none applies.

    None covers dates outside the regimen window, inactive regimens,
    non-dosing days and dates with neither a pattern nor a fixed dose.
    An empty pattern sequence raises EmptySequenceError.
    """
    resolved = _resolve(regimen, versions, target)
    if resolved is None:
        return None
    return resolved[0]


def pattern_day_on(
    regimen: Regimen, versions: Sequence[PatternVersion], target: date
) -> int | None:
    """Return the 1-based cycle position used on target, or None."""
    resolved = _resolve(regimen, versions, target)
    if resolved is None or resolved[2] is None:
        return None
    _dose, _index, version, local_index = resolved
    return local_index % version.length + 1


def future_schedule(
    regimen: Regimen,
    versions: Sequence[PatternVersion],
    from_date: date,
    day_count: int,
) -> Iterator[ScheduleEntry]:
    """Yield the dosing days among the day_count dates from from_date.

    Dates without a dose are skipped, so fewer than day_count entries may
    be produced.
    """
    versions = list(versions)
    previous: PatternVersion | None = None
    first = True
    for offset in range(max(day_count, 0)):
        current = from_date + timedelta(days=offset)
        resolved = _resolve(regimen, versions, current)
        if resolved is None:
            continue

        dose, index, version, local_index = resolved
        pattern_day = None
        pattern_length = None
        if version is not None:
            pattern_day = local_index % version.length + 1
            pattern_length = version.length

        yield ScheduleEntry(
            date=current,
            dose=dose,
            scheduled_day_index=index,
            unit=regimen.unit,
            pattern_day=pattern_day,
            pattern_length=pattern_length,
            is_pattern_change=(
                not first and version is not None and version != previous
            ),
        )
        previous = version
        first = False


def summarize_schedule(
    entries: Iterable[ScheduleEntry],
    day_count: int,
    version: PatternVersion | None = None,
) -> ScheduleSummary:
    """Compute totals over schedule entries."""
    doses = [entry.dose for entry in entries]
    if not doses:
        return ScheduleSummary()

    total = sum(doses, Decimal(0))
    cycles = Decimal(0)
    if version is not None and version.length:
        cycles = (Decimal(day_count) / version.length).quantize(
            _CENT, rounding=ROUND_HALF_UP
        )
    return ScheduleSummary(
        total=total,
        average=(total / len(doses)).quantize(_CENT, rounding=ROUND_HALF_UP),
        minimum=min(doses),
        maximum=max(doses),
        pattern_cycles=cycles,
    )


def resolve_variance(
    expected: Decimal | float | None, actual: Decimal | float | None
) -> VarianceResult:
    """Compare an actual dose with the expected one.

    A difference counts only when it exceeds VARIANCE_TOLERANCE (absolute,
    strictly greater). Without an expected dose nothing can be assessed.
    """
    if expected is None or actual is None:
        return VarianceResult()

    expected = to_decimal(expected)
    actual = to_decimal(actual)
    amount = actual - expected
    percentage = None
    if expected != 0:
        percentage = amount / expected * 100
    return VarianceResult(
        has_variance=abs(amount) > VARIANCE_TOLERANCE,
        amount=amount,
        percentage=percentage,
    )


def build_log_entry(
    regimen: Regimen,
    versions: Sequence[PatternVersion],
    scheduled_at: datetime,
    actual_dose: Decimal | float | str | None = None,
    status: DoseStatus | str = DoseStatus.TAKEN,
    taken_at: datetime | None = None,
    notes: str | None = None,
) -> DoseLogEntry:
    """Create a log entry with its expected-dose snapshot filled in."""
    status = DoseStatus(status)
    if status is DoseStatus.TAKEN and taken_at is None:
        taken_at = scheduled_at

    expected = None
    pattern_day = None
    index = None
    version_id = None
    resolved = _resolve(regimen, versions, scheduled_at.date())
    if resolved is not None:
        expected, index, version, local_index = resolved
        if version is not None:
            pattern_day = local_index % version.length + 1
            version_id = version.version_id

    _LOGGER.debug(
        "Dose on %s: expected %s, actual %s, pattern day %s",
        scheduled_at.date(),
        expected,
        actual_dose,
        pattern_day,
    )
    return DoseLogEntry(
        scheduled_at=scheduled_at,
        status=status,
        taken_at=taken_at,
        actual_dose=to_decimal(actual_dose) if actual_dose is not None else None,
        expected_dose=expected,
        pattern_day=pattern_day,
        scheduled_day_index=index,
        pattern_version_id=version_id,
        notes=notes,
    )


def describe_regimen(
    regimen: Regimen, versions: Sequence[PatternVersion], today: date
) -> str:
    """Short text for the pattern in force on today, or the fixed dose."""
    version = active_version_on(versions, today)
    if version is not None:
        return format_pattern(version.sequence, regimen.unit)
    if regimen.dose is not None:
        return f"{format_amount(regimen.dose, regimen.unit)} fixed"
    return "No dose defined"
