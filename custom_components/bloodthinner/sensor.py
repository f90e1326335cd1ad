"""Sensor platform for Blood Thinner Tracker."""

from __future__ import annotations

from typing import Any

from homeassistant.components.sensor import SensorEntity, SensorStateClass
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import (
    ATTR_ACTUAL_DOSE,
    ATTR_CURRENT_PATTERN,
    ATTR_DOSE_LOGS,
    ATTR_DOSE_UNIT,
    ATTR_EXPECTED_DOSE,
    ATTR_FREQUENCY,
    ATTR_HAS_VARIANCE,
    ATTR_IS_DOSING_DAY,
    ATTR_MEDICATION_NAME,
    ATTR_PATTERN_DAY,
    ATTR_PATTERN_DISPLAY,
    ATTR_PATTERN_HISTORY,
    ATTR_PATTERN_LENGTH,
    ATTR_SCHEDULE,
    ATTR_SCHEDULE_SUMMARY,
    ATTR_SCHEDULED_AT,
    ATTR_STATUS,
    ATTR_VARIANCE_PERCENTAGE,
    CONF_MEDICATION_NAME,
    DEFAULT_DOSE_UNIT,
    DEFAULT_MEDICATION_NAME,
    DOMAIN,
)
from .coordinator import BloodThinnerCoordinator


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Blood Thinner Tracker sensors from a config entry."""
    coordinator: BloodThinnerCoordinator = hass.data[DOMAIN][entry.entry_id]
    async_add_entities(
        [
            ExpectedDoseSensor(coordinator, entry),
            DoseVarianceSensor(coordinator, entry),
        ]
    )


class _BloodThinnerSensor(CoordinatorEntity[BloodThinnerCoordinator], SensorEntity):
    """Common naming for the medication sensors."""

    _attr_has_entity_name = True
    _key = ""
    _label = ""

    def __init__(
        self,
        coordinator: BloodThinnerCoordinator,
        entry: ConfigEntry,
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        name = entry.data.get(CONF_MEDICATION_NAME, DEFAULT_MEDICATION_NAME)
        self._attr_name = f"{name} {self._label}"
        self._attr_unique_id = f"{entry.entry_id}_{self._key}"
        self._entry = entry

    @property
    def native_unit_of_measurement(self) -> str:
        """Return the dose unit."""
        if self.coordinator.data:
            config = self.coordinator.data.get("config", {})
            return config.get("dose_unit", DEFAULT_DOSE_UNIT)
        return DEFAULT_DOSE_UNIT


class ExpectedDoseSensor(_BloodThinnerSensor):
    """Sensor reporting the dose expected today."""

    _attr_icon = "mdi:pill"
    _key = "expected_dose"
    _label = "Expected Dose Today"

    @property
    def native_value(self) -> float | None:
        """Return today's expected dose, None on non-dosing days."""
        if not self.coordinator.data:
            return None
        return self.coordinator.data.get("expected_dose")

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return pattern and schedule data for the card."""
        if not self.coordinator.data:
            return {}

        data = self.coordinator.data
        config = data.get("config", {})
        return {
            ATTR_MEDICATION_NAME: config.get("medication_name"),
            ATTR_FREQUENCY: config.get("frequency"),
            ATTR_DOSE_UNIT: config.get("dose_unit", DEFAULT_DOSE_UNIT),
            ATTR_IS_DOSING_DAY: data.get("is_dosing_day", False),
            ATTR_PATTERN_DAY: data.get("pattern_day"),
            ATTR_PATTERN_LENGTH: data.get("pattern_length"),
            ATTR_PATTERN_DISPLAY: data.get("pattern_display"),
            ATTR_CURRENT_PATTERN: data.get("current_pattern"),
            ATTR_PATTERN_HISTORY: data.get("pattern_history", []),
            ATTR_SCHEDULE: data.get("schedule", []),
            ATTR_SCHEDULE_SUMMARY: data.get("schedule_summary"),
        }


class DoseVarianceSensor(_BloodThinnerSensor):
    """Sensor reporting the variance of the most recent logged dose."""

    _attr_icon = "mdi:scale-unbalanced"
    _attr_state_class = SensorStateClass.MEASUREMENT
    _key = "dose_variance"
    _label = "Last Dose Variance"

    @property
    def native_value(self) -> float | None:
        """Return actual minus expected for the last log, if assessable."""
        if not self.coordinator.data:
            return None
        last = self.coordinator.data.get("last_log")
        if not last:
            return None
        return last.get("variance_amount")

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the last log and the recent log history."""
        if not self.coordinator.data:
            return {}

        data = self.coordinator.data
        last = data.get("last_log") or {}
        return {
            ATTR_SCHEDULED_AT: last.get("scheduled_at"),
            ATTR_STATUS: last.get("status"),
            ATTR_EXPECTED_DOSE: last.get("expected_dose"),
            ATTR_ACTUAL_DOSE: last.get("actual_dose"),
            ATTR_HAS_VARIANCE: last.get("has_variance", False),
            ATTR_VARIANCE_PERCENTAGE: last.get("variance_percentage"),
            ATTR_DOSE_LOGS: data.get("dose_logs", []),
        }
