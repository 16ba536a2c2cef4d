from datetime import date
from decimal import Decimal

from app.services import allocation_metrics as metrics


def test_usage_percentage_is_zero_without_allocation():
    assert metrics.usage_percentage("0", "125.50") == Decimal("0")
    assert metrics.usage_percentage("200", "50") == Decimal("25.00")


def test_over_budget_only_when_spent_exceeds_allocation():
    assert metrics.is_over_budget("100", "100.01")
    assert not metrics.is_over_budget("100", "100")


def test_near_limit_excludes_overspent_allocations():
    assert metrics.is_near_limit("100", "80", 80)
    assert metrics.is_near_limit("100", "100", 80)
    assert not metrics.is_near_limit("100", "79.99", 80)
    assert not metrics.is_near_limit("100", "120", 80)


def test_alert_type():
    assert metrics.alert_type("100", "150", 80) == "error"
    assert metrics.alert_type("100", "85", 80) == "warning"
    assert metrics.alert_type("100", "10", 80) is None
    assert metrics.alert_type("100", "150", 80, alert_on_overspend=False) is None


def test_amount_until_alert_and_remaining():
    assert metrics.amount_until_alert("200", "100", 80) == Decimal("60.00")
    assert metrics.amount_until_alert("200", "190", 80) == Decimal("0.00")
    assert metrics.remaining("200", "250") == Decimal("-50.00")


def test_priority_labels():
    assert metrics.priority_label(1) == "Critical"
    assert metrics.priority_label(5) == "Optional"
    assert metrics.priority_label(9) == "Medium"
    assert metrics.priority_label(None) == "Medium"


def test_previous_period_change():
    assert metrics.previous_period_variance("250", "200") == Decimal("50.00")
    assert metrics.previous_period_change_percentage("250", "200") == Decimal("25.00")
    assert metrics.previous_period_change_percentage("150", "200") == Decimal("-25.00")
    assert metrics.previous_period_variance("250", None) is None
    assert metrics.previous_period_change_percentage("250", "0") is None


def test_daily_rates_count_the_first_day_as_one():
    assert metrics.current_daily_rate("45", date(2024, 1, 1), date(2024, 1, 1)) == Decimal("45.00")
    assert metrics.current_daily_rate("100", date(2024, 1, 1), date(2024, 1, 4)) == Decimal("33.33")
    assert metrics.daily_budget_rate("300", "100", date(2024, 1, 31), date(2024, 1, 21)) == Decimal("20.00")
    assert metrics.daily_budget_rate("300", "100", date(2024, 1, 31), date(2024, 1, 31)) == Decimal("200.00")


def test_spending_projection():
    projection = metrics.spending_projection(
        "300", "150", date(2024, 1, 1), date(2024, 1, 31), date(2024, 1, 16)
    )

    assert projection == {
        "current_daily_rate": Decimal("10.00"),
        "projected_total": Decimal("310.00"),
        "projected_variance": Decimal("10.00"),
        "days_remaining": 16,
        "recommended_daily_rate": Decimal("10.00"),
    }


def test_projection_after_the_period_ends():
    projection = metrics.spending_projection(
        "300", "320", date(2024, 1, 1), date(2024, 1, 31), date(2024, 2, 10)
    )

    assert projection["days_remaining"] == 0
    assert projection["projected_total"] == Decimal("320.00")
    assert projection["projected_variance"] == Decimal("20.00")
