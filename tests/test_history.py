"""Tests for pattern version lookup and editing rules."""

import logging
from datetime import date
from decimal import Decimal

import pytest

from custom_components.bloodthinner.exceptions import (
    AmbiguousPatternWindowError,
    PatternOverlapError,
)
from custom_components.bloodthinner.history import (
    PatternVersion,
    active_version_on,
    currently_active_version,
    find_overlaps,
    plan_new_version,
)
from custom_components.bloodthinner.pattern import parse_sequence

V1 = PatternVersion(
    parse_sequence("4, 3"), date(2024, 10, 1), date(2024, 10, 31), version_id=1
)
V2 = PatternVersion(parse_sequence("5, 4, 3"), date(2024, 11, 1), version_id=2)


@pytest.mark.parametrize("versions", [[V1, V2], [V2, V1]])
def test_lookup_by_date_not_position(versions):
    assert active_version_on(versions, date(2024, 11, 15)) == V2
    assert active_version_on(versions, date(2024, 10, 15)) == V1
    assert active_version_on(versions, date(2024, 10, 31)) == V1
    assert active_version_on(versions, date(2024, 11, 1)) == V2
    assert active_version_on(versions, date(2024, 9, 30)) is None
    assert currently_active_version(versions) == V2


def test_no_history():
    assert active_version_on([], date(2024, 11, 1)) is None
    assert currently_active_version([]) is None
    assert currently_active_version([V1]) is None


def test_overlap_picks_latest_start(caplog):
    older = PatternVersion(parse_sequence("4"), date(2024, 10, 1), version_id=1)
    newer = PatternVersion(parse_sequence("3"), date(2024, 10, 10), version_id=2)

    with caplog.at_level(logging.WARNING):
        assert active_version_on([newer, older], date(2024, 10, 15)) == newer
    assert "Overlapping dosage patterns" in caplog.text

    caplog.clear()
    with caplog.at_level(logging.WARNING):
        assert active_version_on([newer, older], date(2024, 10, 5)) == older
    assert caplog.text == ""


def test_overlap_same_start_newest_id_wins():
    first = PatternVersion(parse_sequence("4"), date(2024, 10, 1), version_id=3)
    second = PatternVersion(parse_sequence("3"), date(2024, 10, 1), version_id=8)
    assert active_version_on([second, first], date(2024, 10, 2)) == second


def test_overlap_strict():
    older = PatternVersion(parse_sequence("4"), date(2024, 10, 1), version_id=1)
    newer = PatternVersion(parse_sequence("3"), date(2024, 10, 10), version_id=2)
    with pytest.raises(AmbiguousPatternWindowError):
        active_version_on([older, newer], date(2024, 10, 15), strict=True)
    assert active_version_on([older, newer], date(2024, 10, 5), strict=True) == older


def test_version_properties():
    assert V2.length == 3
    assert V2.average == Decimal(4)
    assert V2.is_open
    assert not V1.is_open
    assert V1.covers(date(2024, 10, 1))
    assert not V1.covers(date(2024, 11, 1))
    assert V2.display() == "5mg, 4mg, 3mg (3-day cycle)"
    assert V1.as_dict() == {
        "id": 1,
        "sequence": [4.0, 3.0],
        "start_date": "2024-10-01",
        "end_date": "2024-10-31",
        "length": 2,
        "average": 3.5,
        "notes": None,
    }


def test_find_overlaps():
    versions = [V1, V2]
    assert find_overlaps(versions, date(2024, 9, 1), date(2024, 9, 30)) == []
    assert find_overlaps(versions, date(2024, 10, 20), date(2024, 10, 25)) == [V1]
    assert find_overlaps(versions, date(2024, 10, 31)) == [V1, V2]
    assert find_overlaps([V1], date(2024, 11, 1)) == []


def test_plan_closes_open_version():
    closed = plan_new_version([V1, V2], date(2024, 12, 1))
    assert closed == PatternVersion(
        V2.sequence, date(2024, 11, 1), date(2024, 11, 30), version_id=2
    )


def test_plan_after_closed_history():
    assert plan_new_version([V1], date(2024, 11, 1)) is None
    assert plan_new_version([V1], date(2024, 11, 1), close_previous=False) is None
    assert plan_new_version([], date(2024, 11, 1)) is None


def test_plan_overlap_without_closing():
    with pytest.raises(PatternOverlapError):
        plan_new_version([V1, V2], date(2024, 12, 1), close_previous=False)
    with pytest.raises(PatternOverlapError):
        plan_new_version([V1], date(2024, 10, 15), date(2024, 11, 15), False)


def test_plan_cannot_close_before_previous_start():
    with pytest.raises(PatternOverlapError):
        plan_new_version([V1, V2], date(2024, 11, 1))
    with pytest.raises(PatternOverlapError):
        plan_new_version([V1, V2], date(2024, 10, 20))


def test_plan_rejects_reversed_window():
    with pytest.raises(ValueError):
        plan_new_version([], date(2024, 11, 10), date(2024, 11, 1))


def test_plan_fills_gap_before_later_version():
    later = PatternVersion(parse_sequence("3"), date(2024, 12, 1), version_id=2)
    assert plan_new_version([V1, later], date(2024, 11, 1), date(2024, 11, 15)) is None
    with pytest.raises(PatternOverlapError):
        plan_new_version([V1, later], date(2024, 11, 1))
    with pytest.raises(PatternOverlapError):
        plan_new_version([V1, later], date(2024, 11, 1), date(2024, 12, 1))
