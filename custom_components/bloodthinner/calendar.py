"""Calendar platform for Blood Thinner Tracker."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, timedelta

from homeassistant.components.calendar import CalendarEntity, CalendarEvent
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity
from homeassistant.util import dt as dt_util

from .const import (
    CONF_ENABLE_CALENDAR,
    CONF_MEDICATION_NAME,
    DEFAULT_ENABLE_CALENDAR,
    DEFAULT_MEDICATION_NAME,
    DOMAIN,
    MAX_SCHEDULE_DAYS,
)
from .coordinator import BloodThinnerCoordinator, regimen_from_config
from .dosage import ScheduleEntry, future_schedule
from .pattern import format_amount, to_decimal


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Blood Thinner Tracker calendar entity."""
    enabled = entry.options.get(
        CONF_ENABLE_CALENDAR,
        entry.data.get(CONF_ENABLE_CALENDAR, DEFAULT_ENABLE_CALENDAR),
    )
    if not enabled:
        return

    coordinator: BloodThinnerCoordinator = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([BloodThinnerCalendar(coordinator, entry)])


class BloodThinnerCalendar(
    CoordinatorEntity[BloodThinnerCoordinator], CalendarEntity
):
    """Calendar entity showing expected doses and logged doses."""

    _attr_has_entity_name = True

    def __init__(
        self,
        coordinator: BloodThinnerCoordinator,
        entry: ConfigEntry,
    ) -> None:
        """Initialize the calendar entity."""
        super().__init__(coordinator)
        self._medication = entry.data.get(CONF_MEDICATION_NAME, DEFAULT_MEDICATION_NAME)
        self._attr_name = f"{self._medication} Dose Schedule"
        self._attr_unique_id = f"{entry.entry_id}_dose_calendar"
        self._entry = entry

    @property
    def event(self) -> CalendarEvent | None:
        """Return today's or the next scheduled dose."""
        if not self.coordinator.data:
            return None
        today = dt_util.now().date()
        upcoming = next(
            self._schedule(today, today + timedelta(days=MAX_SCHEDULE_DAYS)), None
        )
        return self._schedule_event(upcoming) if upcoming else None

    async def async_get_events(
        self,
        hass: HomeAssistant,
        start_date: datetime,
        end_date: datetime,
    ) -> list[CalendarEvent]:
        """Return events in the given date range."""
        if not self.coordinator.data:
            return []

        first = dt_util.as_local(start_date).date()
        last = dt_util.as_local(end_date).date()
        events = [
            self._schedule_event(entry) for entry in self._schedule(first, last)
        ]

        for log in self.coordinator.data.get("dose_logs", []):
            when = datetime.fromisoformat(log["taken_at"] or log["scheduled_at"])
            if start_date <= when < end_date:
                events.append(self._log_event(log, when))

        return events

    def _schedule(self, first: date, last: date) -> Iterator[ScheduleEntry]:
        """Dosing days between first and last, inclusive."""
        data = self.coordinator.data
        regimen = regimen_from_config(data["config"])
        days = min((last - first).days + 1, MAX_SCHEDULE_DAYS)
        return future_schedule(regimen, data.get("pattern_versions", []), first, days)

    def _schedule_event(self, entry: ScheduleEntry) -> CalendarEvent:
        description = f"Expected dose: {entry.display_text}"
        if entry.is_pattern_change:
            description += "\nNew dosage pattern starts"
        return CalendarEvent(
            summary=f"{self._medication} {entry.display_text}",
            start=entry.date,
            end=entry.date + timedelta(days=1),
            description=description,
        )

    def _log_event(self, log: dict, when: datetime) -> CalendarEvent:
        unit = self.coordinator.data["config"].get("dose_unit", "mg")
        actual = log.get("actual_dose")
        amount = format_amount(to_decimal(actual), unit) if actual is not None else "-"
        lines = [f"Status: {log['status']}"]
        if log.get("expected_dose") is not None:
            lines.append(
                f"Expected: {format_amount(to_decimal(log['expected_dose']), unit)}"
            )
        if log.get("has_variance"):
            lines.append(f"Variance: {log['variance_amount']:+g}{unit}")
        return CalendarEvent(
            summary=f"{self._medication} logged: {amount} ({log['status']})",
            start=when,
            end=when + timedelta(minutes=15),
            description="\n".join(lines),
        )
