"""
Derived figures for a single budget category allocation.

Every function here is a pure function of the allocation figures (and dates,
for daily rates), so the same numbers come out whether they are called from
the ORM model, a report or a test.
"""
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from app.core.money import HUNDRED, ZERO, CENT, percentage, to_money

DEFAULT_ALERT_THRESHOLD = 80

PRIORITY_LABELS = {
    1: "Critical",
    2: "High",
    3: "Medium",
    4: "Low",
    5: "Optional",
}


def usage_percentage(allocated, spent) -> Decimal:
    """Share of the allocation already spent, 0 when nothing was allocated."""
    return percentage(spent, allocated)


def is_over_budget(allocated, spent) -> bool:
    return to_money(spent) > to_money(allocated)


def is_near_limit(allocated, spent, threshold) -> bool:
    """At or past the alert threshold without having gone over."""
    return (
        usage_percentage(allocated, spent) >= Decimal(threshold)
        and to_money(spent) <= to_money(allocated)
    )


def is_at_threshold(allocated, spent, threshold) -> bool:
    return usage_percentage(allocated, spent) >= Decimal(threshold)


def remaining(allocated, spent) -> Decimal:
    return to_money(allocated) - to_money(spent)


variance = remaining


def amount_until_alert(allocated, spent, threshold) -> Decimal:
    alert_amount = (Decimal(threshold) / HUNDRED * to_money(allocated)).quantize(CENT)
    return max(ZERO, alert_amount - to_money(spent))


def alert_type(allocated, spent, threshold, alert_on_overspend: bool = True) -> Optional[str]:
    """'error' when over budget, 'warning' at the threshold, otherwise None."""
    if not alert_on_overspend:
        return None
    if is_over_budget(allocated, spent):
        return "error"
    if is_at_threshold(allocated, spent, threshold):
        return "warning"
    return None


def priority_label(priority: Optional[int]) -> str:
    return PRIORITY_LABELS.get(priority, "Medium")


def previous_period_variance(spent, previous_spent) -> Optional[Decimal]:
    """Spending change against the previous period, None without a comparison."""
    if previous_spent is None or to_money(previous_spent) == ZERO:
        return None
    return to_money(spent) - to_money(previous_spent)


def previous_period_change_percentage(spent, previous_spent) -> Optional[Decimal]:
    change = previous_period_variance(spent, previous_spent)
    if change is None:
        return None
    return percentage(change, previous_spent)


# Day counts below are whole days between the two dates, never less than one,
# so the first day of a period counts as one day passed.

def current_daily_rate(spent, start_date: date, as_of: date) -> Decimal:
    days_passed = max(1, (as_of - start_date).days)
    return (to_money(spent) / Decimal(days_passed)).quantize(CENT, rounding=ROUND_HALF_UP)


def daily_budget_rate(allocated, spent, end_date: date, as_of: date) -> Decimal:
    """Daily spend that uses up what is left of the allocation by end_date."""
    days_left = max(1, (end_date - as_of).days)
    return (remaining(allocated, spent) / Decimal(days_left)).quantize(CENT, rounding=ROUND_HALF_UP)


def spending_projection(allocated, spent, start_date: date, end_date: date, as_of: date) -> Dict[str, Any]:
    """Where spending ends up if the current daily rate holds until end_date."""
    spent = to_money(spent)
    days_passed = max(1, (as_of - start_date).days)
    total_days = (end_date - start_date).days + 1
    days_remaining = max(0, total_days - days_passed)

    projected_total = to_money(spent + spent / Decimal(days_passed) * days_remaining)
    return {
        "current_daily_rate": current_daily_rate(spent, start_date, as_of),
        "projected_total": projected_total,
        "projected_variance": projected_total - to_money(allocated),
        "days_remaining": days_remaining,
        "recommended_daily_rate": daily_budget_rate(allocated, spent, end_date, as_of),
    }
