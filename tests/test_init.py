"""Tests for entry setup helpers and service handlers."""

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from homeassistant.exceptions import HomeAssistantError

import custom_components.bloodthinner as integration
from custom_components.bloodthinner.coordinator import BloodThinnerCoordinator
from custom_components.bloodthinner.dosage import Regimen, build_log_entry
from custom_components.bloodthinner.frequency import Frequency

ENTRY = "entry_1"
ENTITY = "sensor.warfarin_expected_dose_today"


class _ConfigEntries:
    def async_update_entry(self, entry, data):
        entry.data = data


class _Coordinator:
    """Just enough of the coordinator for the service handlers."""

    async_correct_dose = BloodThinnerCoordinator.async_correct_dose

    def __init__(self, database):
        self.database = database
        self.config_entry = SimpleNamespace(entry_id=ENTRY)
        self.async_request_refresh = AsyncMock()


def _entry(**data):
    return SimpleNamespace(
        entry_id=ENTRY,
        data={"frequency": "once_daily", "start_date": "2024-11-01", **data},
        options={},
    )


async def test_initial_pattern_applied_once(database):
    hass = SimpleNamespace(config_entries=_ConfigEntries())
    entry = _entry(pattern="4, 3")

    await integration.async_apply_initial_pattern(hass, entry, database)
    (version,) = await database.get_patterns(ENTRY)
    assert version.sequence == (Decimal(4), Decimal(3))
    assert version.start_date == date(2024, 11, 1)
    assert "pattern" not in entry.data
    assert entry.data["start_date"] == "2024-11-01"

    # Clearing the history and setting up again keeps it empty
    await database.clear_entry_data(ENTRY)
    await integration.async_apply_initial_pattern(hass, entry, database)
    assert await database.get_patterns(ENTRY) == []


async def test_initial_pattern_not_added_over_history(database):
    hass = SimpleNamespace(config_entries=_ConfigEntries())
    await database.add_pattern(ENTRY, [5], date(2024, 11, 1))
    entry = _entry(pattern="4, 3")

    await integration.async_apply_initial_pattern(hass, entry, database)
    (version,) = await database.get_patterns(ENTRY)
    assert version.sequence == (Decimal(5),)
    assert "pattern" not in entry.data


async def test_invalid_initial_pattern_dropped(database):
    hass = SimpleNamespace(config_entries=_ConfigEntries())
    entry = _entry(pattern="4, 5000")

    await integration.async_apply_initial_pattern(hass, entry, database)
    assert await database.get_patterns(ENTRY) == []
    assert "pattern" not in entry.data


@pytest.fixture
def services(database, monkeypatch):
    coordinator = _Coordinator(database)
    monkeypatch.setattr(
        integration, "_get_coordinator", lambda hass, entity_id: coordinator
    )
    hass = MagicMock()
    integration._register_services(hass)
    handlers = {
        call.args[1]: call.args[2]
        for call in hass.services.async_register.call_args_list
    }
    return handlers, coordinator


async def _log_dose(database, actual_dose):
    regimen = Regimen(Frequency.ONCE_DAILY, date(2024, 11, 1), dose=5)
    scheduled = datetime(2024, 11, 1, 8, 0, tzinfo=timezone.utc)
    return await database.add_dose_log(
        ENTRY, build_log_entry(regimen, [], scheduled, actual_dose=actual_dose)
    )


async def test_delete_unknown_dose_log(services):
    handlers, coordinator = services
    call = SimpleNamespace(data={"entity_id": ENTITY, "log_id": 999})
    with pytest.raises(HomeAssistantError):
        await handlers["delete_dose_log"](call)
    coordinator.async_request_refresh.assert_not_awaited()


async def test_delete_dose_log(services, database):
    handlers, coordinator = services
    stored = await _log_dose(database, 4)
    call = SimpleNamespace(data={"entity_id": ENTITY, "log_id": stored.log_id})

    await handlers["delete_dose_log"](call)
    assert await database.get_dose_logs(ENTRY) == []
    coordinator.async_request_refresh.assert_awaited_once()


async def test_correct_dose(services, database):
    handlers, coordinator = services
    stored = await _log_dose(database, 4)
    call = SimpleNamespace(
        data={
            "entity_id": ENTITY,
            "log_id": stored.log_id,
            "actual_dose": Decimal("5"),
        }
    )

    await handlers["correct_dose"](call)
    (log,) = await database.get_dose_logs(ENTRY)
    assert log.actual_dose == Decimal(5)
    assert log.expected_dose == Decimal(5)
    coordinator.async_request_refresh.assert_awaited_once()


async def test_correct_unknown_dose(services):
    handlers, _coordinator = services
    call = SimpleNamespace(
        data={"entity_id": ENTITY, "log_id": 999, "actual_dose": Decimal("5")}
    )
    with pytest.raises(HomeAssistantError):
        await handlers["correct_dose"](call)
