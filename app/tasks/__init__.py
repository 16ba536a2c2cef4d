# Tasks package
from .budget_tasks import (
    recalculate_active_budgets_task,
    roll_over_expired_budgets_task,
    recalculate_budget_task,
)

__all__ = [
    "recalculate_active_budgets_task",
    "roll_over_expired_budgets_task",
    "recalculate_budget_task",
]
