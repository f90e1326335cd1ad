"""Errors raised by the Blood Thinner Tracker dosage engine."""

from __future__ import annotations


class DosageError(Exception):
    """Base class for dosage calculation errors."""


class EmptySequenceError(DosageError, ValueError):
    """A pattern version has no dose amounts."""


class InvalidIndexError(DosageError, ValueError):
    """A negative scheduled-day index reached the pattern lookup."""


class InvalidPatternError(DosageError, ValueError):
    """A pattern sequence violates the length or amount bounds."""


class AmbiguousPatternWindowError(DosageError):
    """More than one pattern version covers the same date."""


class PatternOverlapError(DosageError):
    """A new pattern version would overlap an existing one."""
