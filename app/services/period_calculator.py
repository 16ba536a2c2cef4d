"""
Budget period boundaries.

One rule pair per period type, kept in a lookup table:

    weekly   next start = current end + 1 day,   end = start + 6 days
    monthly  next start = current start + 1 month (day clamped),
             end = last day of that month
    yearly   next start = current start + 1 year, end = Dec 31 of that year
    custom   next start = current end + 1 day,   end keeps the window length
"""
from datetime import date, timedelta
from typing import Callable, Dict, Optional, Tuple, Union

from dateutil.relativedelta import relativedelta

from app.core.exceptions import InvalidDateRange, InvalidPeriodType
from app.models.budget import PeriodType


def coerce_period_type(period_type: Union[PeriodType, str]) -> PeriodType:
    if isinstance(period_type, PeriodType):
        return period_type
    try:
        return PeriodType(str(period_type).strip().lower())
    except ValueError:
        raise InvalidPeriodType(period_type)


def validate_range(start: date, end: date) -> None:
    if start is None or end is None:
        raise InvalidDateRange("Budget period needs both a start and an end date")
    if start > end:
        raise InvalidDateRange(f"Start date {start} is after end date {end}")


def duration_days(start: date, end: date) -> int:
    validate_range(start, end)
    return (end - start).days + 1


def _day_after_end(current_start: date, current_end: date) -> date:
    return current_end + timedelta(days=1)


def _one_month_later(current_start: date, current_end: date) -> date:
    # relativedelta clamps Jan 31 + 1 month to Feb 28/29
    return current_start + relativedelta(months=1)


def _one_year_later(current_start: date, current_end: date) -> date:
    return current_start + relativedelta(years=1)


def _week_end(start: date, fallback_duration_days: Optional[int]) -> date:
    return start + timedelta(days=6)


def _month_end(start: date, fallback_duration_days: Optional[int]) -> date:
    return start + relativedelta(day=31)


def _year_end(start: date, fallback_duration_days: Optional[int]) -> date:
    return date(start.year, 12, 31)


def _custom_end(start: date, fallback_duration_days: Optional[int]) -> date:
    if fallback_duration_days is None or fallback_duration_days < 1:
        raise InvalidDateRange(
            f"Custom periods need a duration of at least one day, got {fallback_duration_days!r}"
        )
    return start + timedelta(days=fallback_duration_days - 1)


_NEXT_START: Dict[PeriodType, Callable[[date, date], date]] = {
    PeriodType.WEEKLY: _day_after_end,
    PeriodType.MONTHLY: _one_month_later,
    PeriodType.YEARLY: _one_year_later,
    PeriodType.CUSTOM: _day_after_end,
}

_PERIOD_END: Dict[PeriodType, Callable[[date, Optional[int]], date]] = {
    PeriodType.WEEKLY: _week_end,
    PeriodType.MONTHLY: _month_end,
    PeriodType.YEARLY: _year_end,
    PeriodType.CUSTOM: _custom_end,
}


def next_period_start(period_type: Union[PeriodType, str], current_start: date, current_end: date) -> date:
    """First day of the period that follows [current_start, current_end]."""
    rule = _NEXT_START[coerce_period_type(period_type)]
    validate_range(current_start, current_end)
    return rule(current_start, current_end)


def period_end(
    period_type: Union[PeriodType, str],
    start: date,
    fallback_duration_days: Optional[int] = None,
) -> date:
    """Last day of the period starting at start.

    fallback_duration_days is only consulted for custom periods.
    """
    rule = _PERIOD_END[coerce_period_type(period_type)]
    if start is None:
        raise InvalidDateRange("Budget period needs a start date")
    return rule(start, fallback_duration_days)


def next_period(period_type: Union[PeriodType, str], current_start: date, current_end: date) -> Tuple[date, date]:
    """(start, end) of the period following the current window."""
    start = next_period_start(period_type, current_start, current_end)
    end = period_end(period_type, start, duration_days(current_start, current_end))
    return start, end
