"""Button platform for Blood Thinner Tracker."""

from __future__ import annotations

import logging

from homeassistant.components.button import ButtonEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.util import dt as dt_util

from .const import CONF_MEDICATION_NAME, DEFAULT_MEDICATION_NAME, DOMAIN
from .coordinator import BloodThinnerCoordinator
from .dosage import DoseStatus, expected_dose

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Blood Thinner Tracker button entities."""
    coordinator: BloodThinnerCoordinator = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([LogExpectedDoseButton(coordinator, entry)])


class LogExpectedDoseButton(ButtonEntity):
    """Button that records today's expected dose as taken."""

    _attr_has_entity_name = True
    _attr_icon = "mdi:pill-multiple"

    def __init__(
        self,
        coordinator: BloodThinnerCoordinator,
        entry: ConfigEntry,
    ) -> None:
        """Initialize the button."""
        self._coordinator = coordinator
        self._entry = entry
        name = entry.data.get(CONF_MEDICATION_NAME, DEFAULT_MEDICATION_NAME)
        self._attr_name = f"{name} Log Expected Dose"
        self._attr_unique_id = f"{entry.entry_id}_log_expected_dose"

    async def async_press(self) -> None:
        """Handle the button press, log today's dose as taken."""
        coordinator = self._coordinator
        now = dt_util.now()
        versions = await coordinator.database.get_patterns(
            coordinator.config_entry.entry_id
        )
        amount = expected_dose(coordinator.regimen, versions, now.date())
        if amount is None:
            raise HomeAssistantError("No dose is scheduled for today")

        entry = await coordinator.async_log_dose(
            actual_dose=amount, status=DoseStatus.TAKEN, scheduled_at=now
        )
        _LOGGER.info(
            "Logged expected dose %s for %s (log %s)",
            amount,
            self._entry.title,
            entry.log_id,
        )
        await coordinator.async_request_refresh()
