from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime, date
from decimal import Decimal
import uuid

from app.models.budget import BudgetStatus, PeriodType


class BudgetCategoryBase(BaseModel):
    category_id: uuid.UUID
    allocated_amount: Decimal = Field(Decimal("0.00"), ge=0)
    priority: int = Field(3, ge=1, le=5)
    is_fixed_amount: bool = False
    alert_on_overspend: bool = True
    alert_threshold: Optional[int] = Field(None, ge=0, le=100)
    rollover_unused: Optional[bool] = None  # None = follow the budget setting
    notes: Optional[str] = None


class BudgetCategoryCreate(BudgetCategoryBase):
    pass


class BudgetCategory(BudgetCategoryBase):
    id: uuid.UUID
    budget_id: uuid.UUID
    spent_amount: Decimal
    previous_period_spent: Optional[Decimal] = None
    remaining_amount: Decimal
    usage_percentage: Decimal
    amount_until_alert: Decimal
    is_over_budget: bool
    priority_label: str
    last_calculated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BudgetBase(BaseModel):
    name: Optional[str] = None  # Generated from the period when omitted
    period_type: PeriodType
    start_date: date
    end_date: Optional[date] = None  # Derived from the period type when omitted
    currency: str = Field("USD", min_length=3, max_length=3)
    is_template: bool = False
    template_name: Optional[str] = None
    rollover_unused: bool = False
    deduct_overspent: bool = False
    alert_percentage: Optional[int] = Field(None, ge=0, le=100)
    description: Optional[str] = None
    notes: Optional[str] = None


class BudgetCreate(BudgetBase):
    categories: List[BudgetCategoryCreate] = []


class Budget(BudgetBase):
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    end_date: date
    alert_percentage: int
    status: BudgetStatus
    planned_income: Decimal
    actual_income: Decimal
    planned_expenses: Decimal
    actual_expenses: Decimal
    created_by: Optional[uuid.UUID] = None
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    budget_categories: List[BudgetCategory] = []

    class Config:
        from_attributes = True


class PeriodSummary(BaseModel):
    start_date: date
    end_date: date
    duration_days: int
    progress_percentage: Decimal


class IncomeSummary(BaseModel):
    planned: Decimal
    actual: Decimal
    variance: Decimal
    percentage: Decimal


class ExpenseSummary(IncomeSummary):
    remaining: Decimal


class NetSummary(BaseModel):
    planned: Decimal
    actual: Decimal
    variance: Decimal


class StatusSummary(BaseModel):
    is_over_threshold: bool
    is_overspent: bool
    alert_percentage: int


class BudgetPerformanceSummary(BaseModel):
    """Planned vs actual report for one budget"""
    budget_id: uuid.UUID
    currency: str
    period: PeriodSummary
    income: IncomeSummary
    expenses: ExpenseSummary
    net: NetSummary
    status: StatusSummary


class BudgetCategoryAlert(BaseModel):
    allocation: BudgetCategory
    alert_type: str  # "warning" (at threshold) or "error" (over budget)
    message: str


class BulkRunResult(BaseModel):
    processed: int
    failed: int
    failed_ids: List[uuid.UUID] = []
    created_ids: List[uuid.UUID] = []


class AllocationAdjust(BaseModel):
    allocated_amount: Decimal = Field(..., ge=0)
    reason: Optional[str] = None


class AllocationTransfer(BaseModel):
    from_category_id: uuid.UUID
    to_category_id: uuid.UUID
    amount: Optional[Decimal] = Field(None, ge=0)  # None = everything still unused


class AllocationTransferResult(BaseModel):
    transferred: Decimal
    budget: Budget


class PreviousPeriodComparison(BaseModel):
    previous_spent: Optional[Decimal] = None
    variance: Optional[Decimal] = None
    change_percentage: Optional[Decimal] = None


class SpendingProjection(BaseModel):
    current_daily_rate: Decimal
    projected_total: Decimal
    projected_variance: Decimal
    days_remaining: int
    recommended_daily_rate: Decimal


class AllocationPerformanceSummary(BaseModel):
    """Planned vs actual report for one category allocation"""
    category_id: uuid.UUID
    category: str
    allocated: Decimal
    spent: Decimal
    remaining: Decimal
    usage_percentage: Decimal
    variance: Decimal
    is_over_budget: bool
    is_at_threshold: bool
    priority: str
    previous_period_comparison: PreviousPeriodComparison
    projection: SpendingProjection
