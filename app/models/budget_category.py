from sqlalchemy import (
    Column, DateTime, ForeignKey, Boolean, Integer, Text, CheckConstraint, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from app.core.database import Base
from app.core.money import ZERO
from app.core.types import GUID, Money
from app.services import allocation_metrics


class BudgetCategory(Base):
    """Planned amount for one category inside one budget."""
    __tablename__ = "budget_categories"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    budget_id = Column(GUID(), ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(GUID(), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)

    allocated_amount = Column(Money(), nullable=False, default=ZERO)
    spent_amount = Column(Money(), nullable=False, default=ZERO)  # Recalculated from transactions only
    previous_period_spent = Column(Money(), nullable=True)  # Same-length window just before the budget

    priority = Column(Integer, nullable=False, default=3)  # 1 = highest, 5 = lowest
    is_fixed_amount = Column(Boolean, nullable=False, default=False)
    alert_on_overspend = Column(Boolean, nullable=False, default=True)
    alert_threshold = Column(Integer, nullable=True)  # NULL = use budget alert_percentage
    rollover_unused = Column(Boolean, nullable=True)  # NULL = follow the budget setting
    notes = Column(Text, nullable=True)
    last_calculated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    budget = relationship("Budget", back_populates="budget_categories")
    category = relationship("Category")

    __table_args__ = (
        UniqueConstraint("budget_id", "category_id", name="uq_budget_category"),
        CheckConstraint("allocated_amount >= 0", name="ck_budget_categories_allocated_positive"),
        CheckConstraint("spent_amount >= 0", name="ck_budget_categories_spent_positive"),
        Index("idx_budget_categories_budget_priority", "budget_id", "priority"),
    )

    @property
    def effective_threshold(self) -> int:
        if self.alert_threshold is not None:
            return self.alert_threshold
        if self.budget is not None and self.budget.alert_percentage is not None:
            return self.budget.alert_percentage
        return allocation_metrics.DEFAULT_ALERT_THRESHOLD

    @property
    def usage_percentage(self):
        return allocation_metrics.usage_percentage(self.allocated_amount, self.spent_amount)

    @property
    def remaining_amount(self):
        return allocation_metrics.remaining(self.allocated_amount, self.spent_amount)

    @property
    def is_over_budget(self) -> bool:
        return allocation_metrics.is_over_budget(self.allocated_amount, self.spent_amount)

    @property
    def is_at_threshold(self) -> bool:
        return allocation_metrics.is_at_threshold(
            self.allocated_amount, self.spent_amount, self.effective_threshold
        )

    def is_near_limit(self, threshold=None) -> bool:
        if threshold is None:
            threshold = self.effective_threshold
        return allocation_metrics.is_near_limit(self.allocated_amount, self.spent_amount, threshold)

    @property
    def amount_until_alert(self):
        return allocation_metrics.amount_until_alert(
            self.allocated_amount, self.spent_amount, self.effective_threshold
        )

    @property
    def previous_period_variance(self):
        return allocation_metrics.previous_period_variance(self.spent_amount, self.previous_period_spent)

    @property
    def previous_period_change_percentage(self):
        return allocation_metrics.previous_period_change_percentage(self.spent_amount, self.previous_period_spent)

    @property
    def priority_label(self) -> str:
        return allocation_metrics.priority_label(self.priority)

    @property
    def alert_type(self):
        return allocation_metrics.alert_type(
            self.allocated_amount,
            self.spent_amount,
            self.effective_threshold,
            bool(self.alert_on_overspend),
        )

    def alert_message(self):
        """Human readable alert text, or None when no alert should fire."""
        kind = self.alert_type
        if kind is None:
            return None

        category_name = self.category.name if self.category else str(self.category_id)
        budget_name = self.budget.name if self.budget else ""
        if kind == "error":
            over_amount = self.spent_amount - self.allocated_amount
            return f"'{category_name}' in '{budget_name}' is over budget by {over_amount:,.2f}"
        return f"'{category_name}' in '{budget_name}' has reached {self.effective_threshold}% of budget"

    def __repr__(self):
        return f"<BudgetCategory {self.category_id}: {self.spent_amount}/{self.allocated_amount}>"
