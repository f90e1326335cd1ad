"""Tests for dosing-day rules."""

from datetime import date, timedelta

import pytest

from custom_components.bloodthinner.frequency import (
    Frequency,
    cadence_step,
    is_scheduled_day,
    next_cadence_day,
    scheduled_day_index,
)

START = date(2024, 11, 1)


@pytest.mark.parametrize("offset", range(-10, 101))
def test_every_other_day_boundary(offset):
    target = START + timedelta(days=offset)
    expected = offset >= 0 and offset % 2 == 0
    assert is_scheduled_day(Frequency.EVERY_OTHER_DAY, START, target) is expected


@pytest.mark.parametrize("start", [START + timedelta(days=n) for n in range(7)])
def test_weekly_any_start_weekday(start):
    for week in range(10):
        dosing_day = start + timedelta(weeks=week)
        assert scheduled_day_index(Frequency.WEEKLY, start, dosing_day) == week
        for gap in range(1, 7):
            assert not is_scheduled_day(
                Frequency.WEEKLY, start, dosing_day + timedelta(days=gap)
            )


@pytest.mark.parametrize(
    "frequency",
    [
        Frequency.ONCE_DAILY,
        Frequency.TWICE_DAILY,
        Frequency.THREE_TIMES_DAILY,
        Frequency.FOUR_TIMES_DAILY,
        Frequency.AS_NEEDED,
        Frequency.CUSTOM,
    ],
)
def test_daily_and_on_demand_every_day(frequency):
    for offset in range(30):
        target = START + timedelta(days=offset)
        assert scheduled_day_index(frequency, START, target) == offset


@pytest.mark.parametrize("frequency", list(Frequency))
def test_nothing_before_start(frequency):
    assert scheduled_day_index(frequency, START, START - timedelta(days=1)) is None
    assert scheduled_day_index(frequency, START, START) == 0


def test_string_frequency_accepted():
    assert cadence_step("weekly") == 7
    assert cadence_step("every_other_day") == 2
    assert cadence_step("once_daily") == 1
    with pytest.raises(ValueError):
        cadence_step("hourly")


def test_next_cadence_day():
    # Nov 2 is off cadence for every other day from Nov 1
    assert next_cadence_day(
        Frequency.EVERY_OTHER_DAY, START, date(2024, 11, 2)
    ) == date(2024, 11, 3)
    assert next_cadence_day(Frequency.EVERY_OTHER_DAY, START, START) == START
    assert next_cadence_day(
        Frequency.EVERY_OTHER_DAY, START, date(2024, 10, 30)
    ) == date(2024, 10, 30)
    assert next_cadence_day(Frequency.WEEKLY, START, date(2024, 10, 29)) == START
    assert next_cadence_day(Frequency.ONCE_DAILY, START, date(2024, 12, 5)) == date(
        2024, 12, 5
    )
