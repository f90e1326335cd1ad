"""Cyclic dose sequences."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal, InvalidOperation

from .const import (
    MAX_PATTERN_DOSE,
    MAX_PATTERN_LENGTH,
    MIN_PATTERN_DOSE,
    MIN_PATTERN_LENGTH,
)
from .exceptions import EmptySequenceError, InvalidIndexError, InvalidPatternError


def to_decimal(value: Decimal | float | int | str) -> Decimal:
    """Convert a dose amount to Decimal without float artifacts."""
    if isinstance(value, Decimal) and value.is_finite():
        return value
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation as err:
        raise ValueError(f"Not a dose amount: {value!r}") from err
    if not result.is_finite():
        raise ValueError(f"Not a dose amount: {value!r}")
    return result


def parse_sequence(value: str | Iterable[Decimal | float | int | str]) -> tuple[Decimal, ...]:
    """Parse "4, 4, 3" or an iterable of amounts into a dose tuple."""
    if isinstance(value, str):
        parts = [p for p in value.replace(";", ",").split(",") if p.strip()]
    else:
        parts = list(value)
    return tuple(to_decimal(p) for p in parts)


def dose_at(sequence: Sequence[Decimal], index: int) -> Decimal:
    """Return the dose at a cyclic position of the sequence.

    Raises EmptySequenceError for an empty sequence and InvalidIndexError
    for a negative index.
    """
    if not sequence:
        raise EmptySequenceError("Pattern sequence is empty")
    if index < 0:
        raise InvalidIndexError(f"Scheduled day index must be >= 0, got {index}")
    return sequence[index % len(sequence)]


def validate_sequence(sequence: Sequence[Decimal]) -> None:
    """Check a sequence against the pattern length and dose bounds."""
    if not sequence:
        raise EmptySequenceError("Pattern must contain at least one dosage value")
    if not MIN_PATTERN_LENGTH <= len(sequence) <= MAX_PATTERN_LENGTH:
        raise InvalidPatternError(
            f"Pattern cannot exceed {MAX_PATTERN_LENGTH} dosages"
        )
    for amount in sequence:
        if not MIN_PATTERN_DOSE <= amount <= MAX_PATTERN_DOSE:
            raise InvalidPatternError(
                f"Each dosage must be between {MIN_PATTERN_DOSE} and "
                f"{MAX_PATTERN_DOSE}, got {amount}"
            )


def format_amount(amount: Decimal, unit: str = "mg") -> str:
    """Render 4.0 as "4mg" and 3.50 as "3.5mg"."""
    text = f"{amount.quantize(Decimal('0.01')).normalize():f}"
    return f"{text}{unit}"


def format_pattern(sequence: Sequence[Decimal], unit: str = "mg") -> str:
    """Human readable pattern, e.g. "4mg, 4mg, 3mg (3-day cycle)"."""
    if not sequence:
        return "Empty pattern"
    values = ", ".join(format_amount(amount, unit) for amount in sequence)
    return f"{values} ({len(sequence)}-day cycle)"
