"""Tests for the state the coordinator hands to the entities."""

from datetime import date, datetime, timezone
from decimal import Decimal

from custom_components.bloodthinner.coordinator import (
    compute_state,
    log_as_dict,
    regimen_from_config,
)
from custom_components.bloodthinner.dosage import build_log_entry
from custom_components.bloodthinner.frequency import Frequency
from custom_components.bloodthinner.history import PatternVersion
from custom_components.bloodthinner.pattern import parse_sequence

CONFIG = {
    "medication_name": "Warfarin",
    "frequency": "every_other_day",
    "start_date": "2024-11-01",
    "end_date": None,
    "active": True,
    "dose": 4.0,
    "dose_unit": "mg",
}

VERSIONS = [PatternVersion(parse_sequence("5, 4, 3"), date(2024, 11, 1), version_id=1)]


def test_regimen_from_config():
    regimen = regimen_from_config(CONFIG)
    assert regimen.frequency is Frequency.EVERY_OTHER_DAY
    assert regimen.start_date == date(2024, 11, 1)
    assert regimen.end_date is None
    assert regimen.active
    assert regimen.dose == Decimal("4.0")
    assert regimen.unit == "mg"


def test_regimen_from_config_options():
    regimen = regimen_from_config(
        {**CONFIG, "end_date": "2024-12-31", "active": False, "dose": ""}
    )
    assert regimen.end_date == date(2024, 12, 31)
    assert not regimen.active
    assert regimen.dose is None


def test_compute_state_dosing_day():
    regimen = regimen_from_config(CONFIG)
    state = compute_state(regimen, VERSIONS, [], date(2024, 11, 3), 7)

    assert state["expected_dose"] == 4.0
    assert state["is_dosing_day"]
    assert state["pattern_day"] == 2
    assert state["pattern_length"] == 3
    assert state["pattern_display"] == "5mg, 4mg, 3mg (3-day cycle)"
    assert state["current_pattern"]["id"] == 1
    assert [e["date"] for e in state["schedule"]] == [
        "2024-11-03",
        "2024-11-05",
        "2024-11-07",
        "2024-11-09",
    ]
    assert state["schedule_summary"]["total"] == 16.0
    assert state["dose_logs"] == []
    assert state["last_log"] is None


def test_compute_state_rest_day():
    regimen = regimen_from_config(CONFIG)
    state = compute_state(regimen, VERSIONS, [], date(2024, 11, 2), 7)
    assert state["expected_dose"] is None
    assert not state["is_dosing_day"]
    assert state["pattern_day"] is None
    assert state["schedule"][0]["date"] == "2024-11-03"


def test_compute_state_fixed_dose():
    regimen = regimen_from_config({**CONFIG, "frequency": "once_daily"})
    state = compute_state(regimen, [], [], date(2024, 11, 2), 3)
    assert state["expected_dose"] == 4.0
    assert state["pattern_length"] is None
    assert state["pattern_display"] == "4mg fixed"
    assert state["current_pattern"] is None
    assert len(state["schedule"]) == 3


def test_last_log_variance():
    regimen = regimen_from_config(CONFIG)
    scheduled = datetime(2024, 11, 3, 8, 0, tzinfo=timezone.utc)
    log = build_log_entry(regimen, VERSIONS, scheduled, actual_dose="4.5")
    state = compute_state(regimen, VERSIONS, [log], date(2024, 11, 3), 7)

    last = state["last_log"]
    assert last == log_as_dict(log)
    assert last["expected_dose"] == 4.0
    assert last["actual_dose"] == 4.5
    assert last["has_variance"]
    assert last["variance_amount"] == 0.5
    assert last["variance_percentage"] == 12.5
    assert last["taken_on_time"]
    assert last["status"] == "taken"
