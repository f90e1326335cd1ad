"""Config flow for Blood Thinner Tracker."""

from __future__ import annotations

from datetime import date
from typing import Any

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.util import dt as dt_util

from .const import (
    CONF_ACTIVE,
    CONF_DOSE,
    CONF_DOSE_UNIT,
    CONF_ENABLE_CALENDAR,
    CONF_END_DATE,
    CONF_FREQUENCY,
    CONF_MEDICATION_NAME,
    CONF_PATTERN,
    CONF_SCHEDULE_DAYS,
    CONF_START_DATE,
    DEFAULT_ACTIVE,
    DEFAULT_DOSE,
    DEFAULT_DOSE_UNIT,
    DEFAULT_ENABLE_CALENDAR,
    DEFAULT_FREQUENCY,
    DEFAULT_MEDICATION_NAME,
    DEFAULT_SCHEDULE_DAYS,
    DOMAIN,
    DOSE_UNITS,
    MAX_PATTERN_DOSE,
    MAX_SCHEDULE_DAYS,
    MIN_SCHEDULE_DAYS,
)
from .exceptions import DosageError
from .frequency import FREQUENCY_LABELS
from .pattern import format_amount, parse_sequence, to_decimal, validate_sequence

_DOSE_VALIDATOR = vol.All(
    vol.Coerce(float), vol.Range(min=0.01, max=float(MAX_PATTERN_DOSE))
)
_DAYS_VALIDATOR = vol.All(
    vol.Coerce(int), vol.Range(min=MIN_SCHEDULE_DAYS, max=MAX_SCHEDULE_DAYS)
)


def _check_dates(user_input: dict[str, Any], errors: dict[str, str]) -> None:
    """Validate ISO dates in user_input, filling errors in place."""
    start = None
    try:
        if user_input.get(CONF_START_DATE):
            start = date.fromisoformat(user_input[CONF_START_DATE])
    except ValueError:
        errors[CONF_START_DATE] = "invalid_date"
        return

    end_text = user_input.get(CONF_END_DATE)
    if not end_text:
        user_input.pop(CONF_END_DATE, None)
        return
    try:
        end = date.fromisoformat(end_text)
    except ValueError:
        errors[CONF_END_DATE] = "invalid_date"
        return
    if start is not None and end < start:
        errors[CONF_END_DATE] = "end_before_start"


def _entry_title(data: dict[str, Any]) -> str:
    name = data.get(CONF_MEDICATION_NAME, DEFAULT_MEDICATION_NAME)
    freq = FREQUENCY_LABELS.get(data.get(CONF_FREQUENCY, DEFAULT_FREQUENCY), "")
    if data.get(CONF_PATTERN):
        return f"{name} pattern ({freq})"
    dose = format_amount(
        to_decimal(data.get(CONF_DOSE, DEFAULT_DOSE)),
        data.get(CONF_DOSE_UNIT, DEFAULT_DOSE_UNIT),
    )
    return f"{name} {dose} ({freq})"


class BloodThinnerConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Blood Thinner Tracker."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize the config flow."""
        self._data: dict[str, Any] = {}

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Step 1: Medication, frequency and dates."""
        errors: dict[str, str] = {}

        if user_input is not None:
            _check_dates(user_input, errors)
            if not errors:
                self._data.update(user_input)
                return await self.async_step_dosage()

        today = dt_util.now().date().isoformat()
        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(
                        CONF_MEDICATION_NAME, default=DEFAULT_MEDICATION_NAME
                    ): str,
                    vol.Required(
                        CONF_FREQUENCY, default=DEFAULT_FREQUENCY
                    ): vol.In(FREQUENCY_LABELS),
                    vol.Required(CONF_START_DATE, default=today): str,
                    vol.Optional(CONF_END_DATE): str,
                }
            ),
            errors=errors,
        )

    async def async_step_dosage(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Step 2: Fixed dose and optional repeating pattern."""
        errors: dict[str, str] = {}

        if user_input is not None:
            pattern_text = user_input.get(CONF_PATTERN, "").strip()
            if pattern_text:
                try:
                    validate_sequence(parse_sequence(pattern_text))
                except (DosageError, ValueError):
                    errors[CONF_PATTERN] = "invalid_pattern"
            else:
                user_input.pop(CONF_PATTERN, None)
            if not errors:
                self._data.update(user_input)
                return await self.async_step_settings()

        return self.async_show_form(
            step_id="dosage",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_DOSE, default=DEFAULT_DOSE): _DOSE_VALIDATOR,
                    vol.Required(
                        CONF_DOSE_UNIT, default=DEFAULT_DOSE_UNIT
                    ): vol.In(DOSE_UNITS),
                    vol.Optional(CONF_PATTERN, default=""): str,
                }
            ),
            errors=errors,
        )

    async def async_step_settings(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Step 3: Display settings."""
        if user_input is not None:
            self._data.update(user_input)
            self._data[CONF_ACTIVE] = DEFAULT_ACTIVE
            return self.async_create_entry(
                title=_entry_title(self._data), data=self._data
            )

        return self.async_show_form(
            step_id="settings",
            data_schema=vol.Schema(
                {
                    vol.Required(
                        CONF_ENABLE_CALENDAR, default=DEFAULT_ENABLE_CALENDAR
                    ): bool,
                    vol.Required(
                        CONF_SCHEDULE_DAYS, default=DEFAULT_SCHEDULE_DAYS
                    ): _DAYS_VALIDATOR,
                }
            ),
        )

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> BloodThinnerOptionsFlow:
        """Get the options flow handler."""
        return BloodThinnerOptionsFlow()


class BloodThinnerOptionsFlow(config_entries.OptionsFlow):
    """Handle options for Blood Thinner Tracker.

    Discontinuing a medication is done here: set an end date and clear
    the active flag. Pattern changes go through the set_pattern service.
    """

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Manage integration options."""
        errors: dict[str, str] = {}
        data = {**self.config_entry.data, **self.config_entry.options}

        if user_input is not None:
            _check_dates(
                {**user_input, CONF_START_DATE: data.get(CONF_START_DATE)}, errors
            )
            if not errors:
                if not user_input.get(CONF_END_DATE):
                    user_input[CONF_END_DATE] = None
                self.hass.config_entries.async_update_entry(
                    self.config_entry, title=_entry_title({**data, **user_input})
                )
                return self.async_create_entry(data=user_input)

        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(
                {
                    vol.Required(
                        CONF_FREQUENCY,
                        default=data.get(CONF_FREQUENCY, DEFAULT_FREQUENCY),
                    ): vol.In(FREQUENCY_LABELS),
                    vol.Required(
                        CONF_DOSE,
                        default=data.get(CONF_DOSE, DEFAULT_DOSE),
                    ): _DOSE_VALIDATOR,
                    vol.Required(
                        CONF_DOSE_UNIT,
                        default=data.get(CONF_DOSE_UNIT, DEFAULT_DOSE_UNIT),
                    ): vol.In(DOSE_UNITS),
                    vol.Optional(
                        CONF_END_DATE,
                        description={"suggested_value": data.get(CONF_END_DATE)},
                    ): str,
                    vol.Required(
                        CONF_ACTIVE,
                        default=data.get(CONF_ACTIVE, DEFAULT_ACTIVE),
                    ): bool,
                    vol.Required(
                        CONF_ENABLE_CALENDAR,
                        default=data.get(CONF_ENABLE_CALENDAR, DEFAULT_ENABLE_CALENDAR),
                    ): bool,
                    vol.Required(
                        CONF_SCHEDULE_DAYS,
                        default=data.get(CONF_SCHEDULE_DAYS, DEFAULT_SCHEDULE_DAYS),
                    ): _DAYS_VALIDATOR,
                }
            ),
            errors=errors,
        )
