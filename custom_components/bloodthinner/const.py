"""Constants for the Blood Thinner Tracker integration."""

from __future__ import annotations

from decimal import Decimal

DOMAIN = "bloodthinner"

PLATFORMS = ["sensor", "calendar", "button"]

DATABASE_FILENAME = "bloodthinner.db"

# ── Config keys ──────────────────────────────────────────────────────────────

CONF_MEDICATION_NAME = "medication_name"
CONF_FREQUENCY = "frequency"
CONF_START_DATE = "start_date"
CONF_END_DATE = "end_date"
CONF_ACTIVE = "active"
CONF_DOSE = "dose"
CONF_DOSE_UNIT = "dose_unit"
CONF_PATTERN = "pattern"
CONF_ENABLE_CALENDAR = "enable_calendar"
CONF_SCHEDULE_DAYS = "schedule_days"

# ── Defaults ─────────────────────────────────────────────────────────────────

DEFAULT_MEDICATION_NAME = "Warfarin"
DEFAULT_FREQUENCY = "once_daily"
DEFAULT_ACTIVE = True
DEFAULT_DOSE = 4.0
DEFAULT_DOSE_UNIT = "mg"
DEFAULT_ENABLE_CALENDAR = True
DEFAULT_SCHEDULE_DAYS = 28
DEFAULT_UPDATE_INTERVAL = 300  # 5 minutes
DEFAULT_LOG_HISTORY_DAYS = 90

DOSE_UNITS = ["mg", "mcg", "IU", "mL"]

# ── Dosage pattern bounds ────────────────────────────────────────────────────

MIN_PATTERN_LENGTH = 1
MAX_PATTERN_LENGTH = 365
MIN_PATTERN_DOSE = Decimal("0.1")
MAX_PATTERN_DOSE = Decimal("1000.0")

MIN_SCHEDULE_DAYS = 1
MAX_SCHEDULE_DAYS = 365

# Absolute, not relative: |actual - expected| must exceed this
VARIANCE_TOLERANCE = Decimal("0.01")

# Taken within this many minutes of the scheduled time counts as on time
ON_TIME_WINDOW_MINUTES = 60

# ── Attribute keys ───────────────────────────────────────────────────────────

ATTR_MEDICATION_NAME = "medication_name"
ATTR_FREQUENCY = "frequency"
ATTR_DOSE_UNIT = "dose_unit"
ATTR_IS_DOSING_DAY = "is_dosing_day"
ATTR_PATTERN_DAY = "pattern_day"
ATTR_PATTERN_LENGTH = "pattern_length"
ATTR_PATTERN_DISPLAY = "pattern_display"
ATTR_CURRENT_PATTERN = "current_pattern"
ATTR_PATTERN_HISTORY = "pattern_history"
ATTR_SCHEDULE = "schedule"
ATTR_SCHEDULE_SUMMARY = "schedule_summary"
ATTR_DOSE_LOGS = "dose_logs"
ATTR_EXPECTED_DOSE = "expected_dose"
ATTR_ACTUAL_DOSE = "actual_dose"
ATTR_HAS_VARIANCE = "has_variance"
ATTR_VARIANCE_PERCENTAGE = "variance_percentage"
ATTR_SCHEDULED_AT = "scheduled_at"
ATTR_STATUS = "status"

# ── Services ─────────────────────────────────────────────────────────────────

SERVICE_LOG_DOSE = "log_dose"
SERVICE_SET_PATTERN = "set_pattern"
SERVICE_CORRECT_DOSE = "correct_dose"
SERVICE_DELETE_DOSE_LOG = "delete_dose_log"
SERVICE_CLEAR_DATA = "clear_data"
