# Import all models here for Alembic
from app.models.user import User
from app.models.category import Category, CategoryType
from app.models.transaction import Transaction, TransactionType
from app.models.budget import Budget, BudgetStatus, PeriodType
from app.models.budget_category import BudgetCategory

__all__ = [
    "User",
    "Category",
    "CategoryType",
    "Transaction",
    "TransactionType",
    "Budget",
    "BudgetStatus",
    "PeriodType",
    "BudgetCategory",
]
