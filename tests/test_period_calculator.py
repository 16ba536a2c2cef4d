from datetime import date, timedelta

import pytest

from app.core.exceptions import InvalidDateRange, InvalidPeriodType
from app.models.budget import PeriodType
from app.services.period_calculator import duration_days, next_period, next_period_start, period_end


def test_weekly_period_follows_current_end():
    start = next_period_start(PeriodType.WEEKLY, date(2024, 3, 4), date(2024, 3, 10))
    assert start == date(2024, 3, 11)
    assert period_end(PeriodType.WEEKLY, start) == date(2024, 3, 17)


def test_monthly_period_ends_on_last_day_of_leap_february():
    start, end = next_period(PeriodType.MONTHLY, date(2024, 1, 1), date(2024, 1, 31))
    assert start == date(2024, 2, 1)
    assert end == date(2024, 2, 29)


def test_monthly_start_is_clamped_to_month_length():
    start = next_period_start("monthly", date(2024, 1, 31), date(2024, 2, 29))
    assert start == date(2024, 2, 29)
    assert period_end("monthly", start) == date(2024, 2, 29)


def test_yearly_period_ends_on_december_31():
    start, end = next_period(PeriodType.YEARLY, date(2024, 1, 1), date(2024, 12, 31))
    assert start == date(2025, 1, 1)
    assert end == date(2025, 12, 31)


def test_yearly_leap_day_start_clamps_to_february_28():
    assert next_period_start(PeriodType.YEARLY, date(2024, 2, 29), date(2024, 12, 31)) == date(2025, 2, 28)


def test_custom_period_keeps_window_length():
    start, end = next_period(PeriodType.CUSTOM, date(2024, 1, 1), date(2024, 1, 15))
    assert start == date(2024, 1, 16)
    assert end == date(2024, 1, 30)
    assert duration_days(start, end) == 15


def test_custom_period_end_needs_a_duration():
    with pytest.raises(InvalidDateRange):
        period_end(PeriodType.CUSTOM, date(2024, 1, 1))
    with pytest.raises(InvalidDateRange):
        period_end(PeriodType.CUSTOM, date(2024, 1, 1), 0)


def test_single_day_custom_period():
    start, end = next_period(PeriodType.CUSTOM, date(2024, 5, 1), date(2024, 5, 1))
    assert start == end == date(2024, 5, 2)


def test_unknown_period_type_is_rejected():
    with pytest.raises(InvalidPeriodType):
        next_period_start("quarterly", date(2024, 1, 1), date(2024, 3, 31))
    with pytest.raises(InvalidPeriodType):
        period_end("fortnightly", date(2024, 1, 1), 14)


def test_start_after_end_is_rejected():
    with pytest.raises(InvalidDateRange):
        next_period_start(PeriodType.WEEKLY, date(2024, 1, 10), date(2024, 1, 1))


@pytest.mark.parametrize("period_type", list(PeriodType))
def test_next_period_never_ends_before_it_starts(period_type):
    day = date(2023, 12, 25)
    while day < date(2024, 3, 10):
        current_end = period_end(period_type, day, 10)
        start, end = next_period(period_type, day, current_end)
        assert start <= end
        assert start > day
        day += timedelta(days=3)
