"""DataUpdateCoordinator for Blood Thinner Tracker."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed
from homeassistant.util import dt as dt_util

from .const import (
    CONF_ACTIVE,
    CONF_DOSE,
    CONF_DOSE_UNIT,
    CONF_ENABLE_CALENDAR,
    CONF_END_DATE,
    CONF_FREQUENCY,
    CONF_MEDICATION_NAME,
    CONF_SCHEDULE_DAYS,
    CONF_START_DATE,
    DEFAULT_ACTIVE,
    DEFAULT_DOSE_UNIT,
    DEFAULT_ENABLE_CALENDAR,
    DEFAULT_FREQUENCY,
    DEFAULT_LOG_HISTORY_DAYS,
    DEFAULT_MEDICATION_NAME,
    DEFAULT_SCHEDULE_DAYS,
    DEFAULT_UPDATE_INTERVAL,
    DOMAIN,
    ON_TIME_WINDOW_MINUTES,
)
from .database import BloodThinnerDatabase
from .dosage import (
    DoseLogEntry,
    DoseStatus,
    Regimen,
    build_log_entry,
    describe_regimen,
    expected_dose,
    future_schedule,
    pattern_day_on,
    summarize_schedule,
)
from .exceptions import DosageError
from .history import PatternVersion, active_version_on, currently_active_version

_LOGGER = logging.getLogger(__name__)


def _parse_date(value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def regimen_from_config(config: dict[str, Any]) -> Regimen:
    """Build the regimen described by a merged entry config."""
    dose = config.get("dose")
    return Regimen(
        frequency=config["frequency"],
        start_date=_parse_date(config["start_date"]),
        end_date=_parse_date(config.get("end_date")),
        active=config.get("active", True),
        dose=Decimal(str(dose)) if dose not in (None, "") else None,
        unit=config.get("dose_unit", DEFAULT_DOSE_UNIT),
    )


def _float(value: Decimal | None) -> float | None:
    return None if value is None else float(value)


def log_as_dict(entry: DoseLogEntry) -> dict[str, Any]:
    """Serializable form of a dose log for entity attributes."""
    variance = entry.variance
    return {
        "id": entry.log_id,
        "scheduled_at": entry.scheduled_at.isoformat(),
        "taken_at": entry.taken_at.isoformat() if entry.taken_at else None,
        "status": entry.status.value,
        "actual_dose": _float(entry.actual_dose),
        "expected_dose": _float(entry.expected_dose),
        "pattern_day": entry.pattern_day,
        "has_variance": variance.has_variance,
        "variance_amount": _float(variance.amount),
        "variance_percentage": (
            round(float(variance.percentage), 1)
            if variance.percentage is not None
            else None
        ),
        "taken_on_time": entry.is_taken_on_time(ON_TIME_WINDOW_MINUTES),
        "notes": entry.notes,
    }


def compute_state(
    regimen: Regimen,
    versions: Sequence[PatternVersion],
    logs: Sequence[DoseLogEntry],
    today: date,
    schedule_days: int,
) -> dict[str, Any]:
    """Compute everything the entities display for one medication."""
    schedule = list(future_schedule(regimen, versions, today, schedule_days))
    current = currently_active_version(versions)
    today_version = active_version_on(versions, today)
    dose_today = expected_dose(regimen, versions, today)
    summary = summarize_schedule(schedule, schedule_days, today_version)
    last_log = logs[-1] if logs else None

    return {
        "today": today.isoformat(),
        "expected_dose": _float(dose_today),
        "is_dosing_day": dose_today is not None,
        "pattern_day": pattern_day_on(regimen, versions, today),
        "pattern_length": today_version.length if today_version else None,
        "pattern_display": describe_regimen(regimen, versions, today),
        "current_pattern": current.as_dict() if current else None,
        "pattern_versions": list(versions),
        "pattern_history": [v.as_dict() for v in versions],
        "schedule": [entry.as_dict() for entry in schedule],
        "schedule_summary": summary.as_dict(),
        "dose_logs": [log_as_dict(entry) for entry in logs],
        "last_log": log_as_dict(last_log) if last_log else None,
    }


class BloodThinnerCoordinator(DataUpdateCoordinator[dict[str, Any]]):
    """Coordinator to manage one medication's data from SQLite."""

    config_entry: ConfigEntry

    def __init__(
        self,
        hass: HomeAssistant,
        entry: ConfigEntry,
        database: BloodThinnerDatabase,
    ) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            name=DOMAIN,
            update_interval=timedelta(seconds=DEFAULT_UPDATE_INTERVAL),
        )
        self.config_entry = entry
        self.database = database

    def _get_config(self) -> dict[str, Any]:
        """Get merged config from entry data + options."""
        data = self.config_entry.data
        opts = self.config_entry.options

        def pick(key: str, default: Any) -> Any:
            return opts.get(key, data.get(key, default))

        return {
            "medication_name": pick(CONF_MEDICATION_NAME, DEFAULT_MEDICATION_NAME),
            "frequency": pick(CONF_FREQUENCY, DEFAULT_FREQUENCY),
            "start_date": data.get(CONF_START_DATE),
            "end_date": pick(CONF_END_DATE, None),
            "active": pick(CONF_ACTIVE, DEFAULT_ACTIVE),
            "dose": pick(CONF_DOSE, None),
            "dose_unit": pick(CONF_DOSE_UNIT, DEFAULT_DOSE_UNIT),
            "enable_calendar": pick(CONF_ENABLE_CALENDAR, DEFAULT_ENABLE_CALENDAR),
            "schedule_days": int(pick(CONF_SCHEDULE_DAYS, DEFAULT_SCHEDULE_DAYS)),
        }

    @property
    def regimen(self) -> Regimen:
        return regimen_from_config(self._get_config())

    async def async_log_dose(
        self,
        actual_dose: Decimal | float | None,
        status: DoseStatus | str = DoseStatus.TAKEN,
        scheduled_at: datetime | None = None,
        taken_at: datetime | None = None,
        notes: str | None = None,
    ) -> DoseLogEntry:
        """Record a dose with the expected dose resolved at this moment."""
        entry_id = self.config_entry.entry_id
        scheduled_at = scheduled_at or dt_util.now()
        versions = await self.database.get_patterns(entry_id)
        entry = build_log_entry(
            self.regimen,
            versions,
            scheduled_at,
            actual_dose=actual_dose,
            status=status,
            taken_at=taken_at,
            notes=notes,
        )
        return await self.database.add_dose_log(entry_id, entry)

    async def async_correct_dose(
        self, log_id: int, actual_dose: Decimal | float
    ) -> DoseLogEntry | None:
        """Correct the actual amount of a logged dose.

        Returns the corrected entry, or None if the log does not exist.
        The expected-dose snapshot is left as it was logged.
        """
        entry_id = self.config_entry.entry_id
        logged = await self.database.get_dose_log(entry_id, log_id)
        if logged is None:
            return None
        corrected = logged.with_actual_dose(actual_dose)
        await self.database.correct_actual_dose(
            entry_id, log_id, corrected.actual_dose
        )
        _LOGGER.info(
            "Corrected dose %s from %s to %s (expected %s)",
            log_id,
            logged.actual_dose,
            corrected.actual_dose,
            corrected.expected_dose,
        )
        return corrected

    async def async_set_pattern(
        self,
        sequence: Sequence[Decimal | float],
        start_date: date,
        end_date: date | None = None,
        close_previous: bool = True,
        notes: str | None = None,
    ) -> PatternVersion:
        """Store a new pattern version for this medication."""
        return await self.database.add_pattern(
            self.config_entry.entry_id,
            list(sequence),
            start_date,
            end_date=end_date,
            notes=notes,
            close_previous=close_previous,
        )

    async def _async_update_data(self) -> dict[str, Any]:
        """Fetch data from SQLite and compute current state."""
        entry_id = self.config_entry.entry_id
        config = self._get_config()
        regimen = regimen_from_config(config)
        now = dt_util.now()

        versions = await self.database.get_patterns(entry_id)
        logs = await self.database.get_dose_logs(
            entry_id, since=now - timedelta(days=DEFAULT_LOG_HISTORY_DAYS)
        )

        try:
            state = compute_state(
                regimen, versions, logs, now.date(), config["schedule_days"]
            )
        except DosageError as err:
            raise UpdateFailed(f"Cannot resolve dosage: {err}") from err
        state["config"] = config
        return state
