"""Blood Thinner Tracker integration for Home Assistant."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import voluptuous as vol
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers import entity_registry as er
from homeassistant.util import dt as dt_util

from .const import (
    CONF_PATTERN,
    CONF_START_DATE,
    DATABASE_FILENAME,
    DOMAIN,
    MAX_PATTERN_DOSE,
    PLATFORMS,
    SERVICE_CLEAR_DATA,
    SERVICE_CORRECT_DOSE,
    SERVICE_DELETE_DOSE_LOG,
    SERVICE_LOG_DOSE,
    SERVICE_SET_PATTERN,
)
from .coordinator import BloodThinnerCoordinator
from .database import BloodThinnerDatabase
from .dosage import DoseStatus
from .exceptions import DosageError
from .pattern import parse_sequence, to_decimal

_LOGGER = logging.getLogger(__name__)

_RESERVED_KEYS = ("services_registered", "database", "_setup_lock")


def _dose_amount(value: Any) -> Decimal:
    """Validate a single dose amount."""
    try:
        amount = to_decimal(value)
    except (TypeError, ValueError) as err:
        raise vol.Invalid(f"Invalid dose amount: {value!r}") from err
    if not 0 <= amount <= MAX_PATTERN_DOSE:
        raise vol.Invalid(f"Dose must be between 0 and {MAX_PATTERN_DOSE}")
    return amount


def _dose_sequence(value: Any) -> list:
    """Validate a pattern given as "4, 4, 3" or a list of numbers."""
    try:
        sequence = parse_sequence(value)
    except (TypeError, ValueError) as err:
        raise vol.Invalid(f"Invalid dose pattern: {err}") from err
    if not sequence:
        raise vol.Invalid("Pattern must contain at least one dosage value")
    return list(sequence)


SERVICE_LOG_DOSE_SCHEMA = vol.Schema(
    {
        vol.Required("entity_id"): str,
        vol.Optional("actual_dose"): _dose_amount,
        vol.Optional("status", default=DoseStatus.TAKEN.value): vol.In(
            [s.value for s in DoseStatus]
        ),
        vol.Optional("scheduled_at"): cv.datetime,
        vol.Optional("taken_at"): cv.datetime,
        vol.Optional("notes"): str,
    }
)

SERVICE_SET_PATTERN_SCHEMA = vol.Schema(
    {
        vol.Required("entity_id"): str,
        vol.Required(CONF_PATTERN): _dose_sequence,
        vol.Required("start_date"): cv.date,
        vol.Optional("end_date"): cv.date,
        vol.Optional("close_previous", default=True): bool,
        vol.Optional("notes"): vol.All(str, vol.Length(max=500)),
    }
)

SERVICE_CORRECT_DOSE_SCHEMA = vol.Schema(
    {
        vol.Required("entity_id"): str,
        vol.Required("log_id"): vol.Coerce(int),
        vol.Required("actual_dose"): _dose_amount,
    }
)

SERVICE_DELETE_DOSE_LOG_SCHEMA = vol.Schema(
    {
        vol.Required("entity_id"): str,
        vol.Required("log_id"): vol.Coerce(int),
    }
)

SERVICE_CLEAR_DATA_SCHEMA = vol.Schema(
    {
        vol.Required("entity_id"): str,
    }
)


def _get_coordinator(
    hass: HomeAssistant, entity_id: str
) -> BloodThinnerCoordinator:
    """Resolve coordinator from entity_id."""
    registry = er.async_get(hass)
    entry = registry.async_get(entity_id)
    if entry is None:
        raise ValueError(f"Entity not found: {entity_id}")
    config_entry_id = entry.config_entry_id
    if config_entry_id is None:
        raise ValueError(f"No config entry for entity: {entity_id}")
    coordinator = hass.data[DOMAIN].get(config_entry_id)
    if coordinator is None or not isinstance(coordinator, BloodThinnerCoordinator):
        raise ValueError(f"No coordinator for config entry: {config_entry_id}")
    return coordinator


def _as_local(value):
    return dt_util.as_local(value) if value is not None else None


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Blood Thinner Tracker from a config entry."""
    hass.data.setdefault(DOMAIN, {})

    # Serialize entry setup so only one database connection gets opened
    if "_setup_lock" not in hass.data[DOMAIN]:
        hass.data[DOMAIN]["_setup_lock"] = asyncio.Lock()
    setup_lock: asyncio.Lock = hass.data[DOMAIN]["_setup_lock"]

    async with setup_lock:
        if "database" not in hass.data[DOMAIN]:
            db_path = Path(hass.config.config_dir) / DATABASE_FILENAME
            database = BloodThinnerDatabase(db_path)
            await database.async_setup()
            hass.data[DOMAIN]["database"] = database
        else:
            database = hass.data[DOMAIN]["database"]

        coordinator = BloodThinnerCoordinator(hass, entry, database)
        hass.data[DOMAIN][entry.entry_id] = coordinator

        await async_apply_initial_pattern(hass, entry, database)
        await coordinator.async_config_entry_first_refresh()

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    entry.async_on_unload(entry.add_update_listener(_async_update_listener))

    if "services_registered" not in hass.data[DOMAIN]:
        _register_services(hass)
        hass.data[DOMAIN]["services_registered"] = True

    return True


async def async_apply_initial_pattern(
    hass: HomeAssistant, entry: ConfigEntry, database: BloodThinnerDatabase
) -> None:
    """Store the pattern entered in the config flow, once.

    The pattern is removed from the entry data afterwards so a later
    clear_data leaves the history empty across reloads.
    """
    initial = entry.data.get(CONF_PATTERN)
    if not initial:
        return

    if not await database.get_patterns(entry.entry_id):
        try:
            start = date.fromisoformat(str(entry.data[CONF_START_DATE]))
            await database.add_pattern(entry.entry_id, parse_sequence(initial), start)
        except (DosageError, ValueError) as err:
            _LOGGER.error("Ignoring initial pattern %s: %s", initial, err)

    data = {k: v for k, v in entry.data.items() if k != CONF_PATTERN}
    hass.config_entries.async_update_entry(entry, data=data)


def _register_services(hass: HomeAssistant) -> None:
    """Register blood thinner services."""

    async def handle_log_dose(call: ServiceCall) -> None:
        coord = _get_coordinator(hass, call.data["entity_id"])
        try:
            entry = await coord.async_log_dose(
                actual_dose=call.data.get("actual_dose"),
                status=call.data["status"],
                scheduled_at=_as_local(call.data.get("scheduled_at")),
                taken_at=_as_local(call.data.get("taken_at")),
                notes=call.data.get("notes"),
            )
        except DosageError as err:
            raise HomeAssistantError(str(err)) from err
        if entry.variance.has_variance:
            _LOGGER.info(
                "Dose %s logged with variance %s (expected %s, actual %s)",
                entry.log_id,
                entry.variance.amount,
                entry.expected_dose,
                entry.actual_dose,
            )
        await coord.async_request_refresh()

    async def handle_set_pattern(call: ServiceCall) -> None:
        coord = _get_coordinator(hass, call.data["entity_id"])
        try:
            await coord.async_set_pattern(
                call.data[CONF_PATTERN],
                call.data["start_date"],
                end_date=call.data.get("end_date"),
                close_previous=call.data["close_previous"],
                notes=call.data.get("notes"),
            )
        except (DosageError, ValueError) as err:
            raise HomeAssistantError(str(err)) from err
        await coord.async_request_refresh()

    async def handle_correct_dose(call: ServiceCall) -> None:
        coord = _get_coordinator(hass, call.data["entity_id"])
        corrected = await coord.async_correct_dose(
            call.data["log_id"], call.data["actual_dose"]
        )
        if corrected is None:
            raise HomeAssistantError(f"Dose log not found: {call.data['log_id']}")
        await coord.async_request_refresh()

    async def handle_delete_dose_log(call: ServiceCall) -> None:
        coord = _get_coordinator(hass, call.data["entity_id"])
        deleted = await coord.database.delete_dose_log(
            coord.config_entry.entry_id, call.data["log_id"]
        )
        if not deleted:
            raise HomeAssistantError(f"Dose log not found: {call.data['log_id']}")
        await coord.async_request_refresh()

    async def handle_clear_data(call: ServiceCall) -> None:
        coord = _get_coordinator(hass, call.data["entity_id"])
        await coord.database.clear_entry_data(coord.config_entry.entry_id)
        await coord.async_request_refresh()

    hass.services.async_register(
        DOMAIN, SERVICE_LOG_DOSE, handle_log_dose, schema=SERVICE_LOG_DOSE_SCHEMA
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_SET_PATTERN,
        handle_set_pattern,
        schema=SERVICE_SET_PATTERN_SCHEMA,
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_CORRECT_DOSE,
        handle_correct_dose,
        schema=SERVICE_CORRECT_DOSE_SCHEMA,
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_DELETE_DOSE_LOG,
        handle_delete_dose_log,
        schema=SERVICE_DELETE_DOSE_LOG_SCHEMA,
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_CLEAR_DATA,
        handle_clear_data,
        schema=SERVICE_CLEAR_DATA_SCHEMA,
    )


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        hass.data[DOMAIN].pop(entry.entry_id, None)

    # Close database if no more entries
    remaining = [eid for eid in hass.data[DOMAIN] if eid not in _RESERVED_KEYS]
    if not remaining and "database" in hass.data[DOMAIN]:
        db: BloodThinnerDatabase = hass.data[DOMAIN].pop("database")
        await db.async_close()

    return unload_ok


async def _async_update_listener(
    hass: HomeAssistant, entry: ConfigEntry
) -> None:
    """Handle options update."""
    await hass.config_entries.async_reload(entry.entry_id)
