from sqlalchemy import (
    Column, String, DateTime, Date, ForeignKey, Boolean, Integer, Text, Index, CheckConstraint,
    Enum as SQLEnum, event,
)
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func
import uuid
import enum

from app.core.database import Base
from app.core.exceptions import BusinessLogicError, ValidationError
from app.core.money import ZERO
from app.core.types import GUID, Money


class PeriodType(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class BudgetStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    COMPLETED = "completed"


class Budget(Base):
    __tablename__ = "budgets"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), ForeignKey("users.id"), nullable=False)
    name = Column(String, nullable=False)
    period_type = Column(
        SQLEnum(PeriodType, name="periodtype", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")  # Fixed at creation

    # Planned vs actual totals
    planned_income = Column(Money(), nullable=False, default=ZERO)
    actual_income = Column(Money(), nullable=False, default=ZERO)
    planned_expenses = Column(Money(), nullable=False, default=ZERO)
    actual_expenses = Column(Money(), nullable=False, default=ZERO)

    status = Column(
        SQLEnum(BudgetStatus, name="budgetstatus", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=BudgetStatus.DRAFT,
    )
    is_template = Column(Boolean, nullable=False, default=False)
    template_name = Column(String, nullable=True)

    # Rollover settings
    rollover_unused = Column(Boolean, nullable=False, default=False)
    deduct_overspent = Column(Boolean, nullable=False, default=False)
    alert_percentage = Column(Integer, nullable=False, default=80)

    # Approval
    created_by = Column(GUID(), ForeignKey("users.id"), nullable=True)
    approved_by = Column(GUID(), ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # Soft delete

    # Relationships
    user = relationship("User", back_populates="budgets", foreign_keys=[user_id])
    budget_categories = relationship(
        "BudgetCategory",
        back_populates="budget",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BudgetCategory.priority",
    )

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_budgets_date_range"),
        CheckConstraint("alert_percentage >= 0 AND alert_percentage <= 100", name="ck_budgets_alert_percentage"),
        Index("idx_budgets_user_period", "user_id", "start_date", "end_date"),
        Index("idx_budgets_user_status", "user_id", "status"),
    )

    @validates("currency")
    def validate_currency(self, key, value):
        value = (value or "").strip().upper()
        if len(value) != 3:
            raise ValidationError(f"Invalid currency code: {value!r}")
        if self.currency is not None and value != self.currency:
            raise BusinessLogicError("Budget currency cannot be changed after creation")
        return value

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    @property
    def planned_net_income(self):
        return self.planned_income - self.planned_expenses

    @property
    def actual_net_income(self):
        return self.actual_income - self.actual_expenses

    @property
    def is_overspent(self) -> bool:
        return self.actual_expenses > self.planned_expenses

    @property
    def remaining_budget(self):
        return max(ZERO, self.planned_expenses - self.actual_expenses)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def ordered_allocations(self):
        """Allocations by priority, largest allocation first within a priority."""
        return sorted(
            self.budget_categories,
            key=lambda allocation: (allocation.priority, -allocation.allocated_amount),
        )

    def allocation_for(self, category_id):
        """Return the allocation for category_id, or None."""
        for allocation in self.budget_categories:
            if allocation.category_id == category_id:
                return allocation
        return None

    def generate_default_name(self) -> str:
        start, end = self.start_date, self.end_date
        if self.period_type == PeriodType.WEEKLY:
            return f"Week of {start:%b} {start.day}, {start.year}"
        if self.period_type == PeriodType.MONTHLY:
            return f"{start:%B %Y} Budget"
        if self.period_type == PeriodType.YEARLY:
            return f"{start.year} Annual Budget"
        return f"{start:%b} {start.day} - {end:%b} {end.day}, {end.year} Budget"

    def __repr__(self):
        return f"<Budget {self.name}: {self.start_date} to {self.end_date} ({self.status.value if self.status else None})>"


@event.listens_for(Budget, "before_insert")
def _set_default_name(mapper, connection, target):
    if not target.name:
        target.name = target.generate_default_name()
