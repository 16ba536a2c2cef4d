from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
import uuid
import logging

from app.core.database import get_db
from app.core.deps import get_current_active_user
from app.core.exceptions import (
    BaseAppException,
    BusinessLogicError,
    DataIntegrityError,
    NotFoundError,
    ValidationError,
)
from app.models.budget import BudgetStatus
from app.models.user import User
from app.schemas.budget import (
    AllocationAdjust,
    AllocationPerformanceSummary,
    AllocationTransfer,
    AllocationTransferResult,
    Budget as BudgetSchema,
    BudgetCategory as BudgetCategorySchema,
    BudgetCategoryAlert,
    BudgetCreate,
    BudgetPerformanceSummary,
)
from app.services.budget_service import BudgetService

logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: BaseAppException) -> HTTPException:
    """Map service exceptions onto HTTP status codes"""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, BusinessLogicError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, DataIntegrityError):
        logger.error(f"Data integrity error: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


def _load(service: BudgetService, user: User, budget_id: uuid.UUID):
    try:
        return service.get_budget(user.id, budget_id)
    except NotFoundError as e:
        raise _http_error(e)


@router.get("/", response_model=List[BudgetSchema])
async def get_budgets(
    status_filter: Optional[BudgetStatus] = Query(None, alias="status"),
    include_templates: bool = True,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Get all budgets for the current user"""
    return BudgetService(db).list_budgets(current_user.id, status_filter, include_templates)


@router.post("/", response_model=BudgetSchema, status_code=status.HTTP_201_CREATED)
async def create_budget(
    budget_create: BudgetCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Create a new draft budget with its category allocations"""
    try:
        return BudgetService(db).create_budget(current_user.id, budget_create, created_by=current_user.id)
    except BaseAppException as e:
        raise _http_error(e)


@router.get("/current", response_model=List[BudgetSchema])
async def get_current_budgets(
    as_of: Optional[date] = None,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Active budgets covering today (or as_of)"""
    return BudgetService(db).get_current_budgets(current_user.id, as_of)


@router.get("/{budget_id}", response_model=BudgetSchema)
async def get_budget(
    budget_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Get a specific budget"""
    return _load(BudgetService(db), current_user, budget_id)


@router.delete("/{budget_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_budget(
    budget_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Soft-delete a budget"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    try:
        service.delete_budget(budget)
    except BaseAppException as e:
        raise _http_error(e)


@router.post("/{budget_id}/submit", response_model=BudgetSchema)
async def submit_budget(
    budget_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Send a draft budget for approval"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    try:
        return service.submit_for_approval(budget)
    except BaseAppException as e:
        raise _http_error(e)


@router.post("/{budget_id}/approve", response_model=BudgetSchema)
async def approve_budget(
    budget_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Approve and activate a budget"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    try:
        return service.approve(budget, current_user.id)
    except BaseAppException as e:
        raise _http_error(e)


@router.post("/{budget_id}/complete", response_model=BudgetSchema)
async def complete_budget(
    budget_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Run the final recalculation and close the budget"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    try:
        return service.complete(budget)
    except BaseAppException as e:
        raise _http_error(e)


@router.post("/{budget_id}/recalculate", response_model=BudgetSchema)
async def recalculate_budget(
    budget_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Recompute actual income/expenses and category spending from transactions"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    try:
        return service.recalculate_actuals(budget)
    except BaseAppException as e:
        raise _http_error(e)


@router.post("/{budget_id}/next-period", response_model=BudgetSchema, status_code=status.HTTP_201_CREATED)
async def create_next_period_budget(
    budget_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Create the following period's draft budget, applying rollover settings"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    try:
        return service.create_next_period_budget(budget)
    except BaseAppException as e:
        raise _http_error(e)


@router.post("/{budget_id}/apply-template/{template_id}", response_model=BudgetSchema)
async def apply_template(
    budget_id: uuid.UUID,
    template_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Copy category allocations from another budget"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    template = _load(service, current_user, template_id)
    try:
        service.create_categories_from_template(budget, template)
        return budget
    except BaseAppException as e:
        raise _http_error(e)


@router.get("/{budget_id}/performance", response_model=BudgetPerformanceSummary)
async def get_budget_performance(
    budget_id: uuid.UUID,
    as_of: Optional[date] = None,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Planned vs actual report"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    return service.get_performance_summary(budget, as_of=as_of)


@router.get("/{budget_id}/over-budget", response_model=List[BudgetCategorySchema])
async def get_over_budget_categories(
    budget_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Categories whose spending exceeds their allocation"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    return service.get_over_budget_categories(budget)


@router.get("/{budget_id}/near-limit", response_model=List[BudgetCategorySchema])
async def get_near_limit_categories(
    budget_id: uuid.UUID,
    threshold: int = Query(80, ge=0, le=100),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Categories at or past the threshold but not yet over budget"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    return service.get_near_limit_categories(budget, threshold)


@router.get("/{budget_id}/alerts", response_model=List[BudgetCategoryAlert])
async def get_budget_alerts(
    budget_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Category alerts for overspending and reached thresholds"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    return service.get_category_alerts(budget)


@router.post("/{budget_id}/previous-period", response_model=BudgetSchema)
async def calculate_previous_period_spending(
    budget_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Store each category's spending in the period before this budget for comparison"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    try:
        return service.calculate_previous_period_spending(budget)
    except BaseAppException as e:
        raise _http_error(e)


@router.put("/{budget_id}/categories/{category_id}", response_model=BudgetCategorySchema)
async def adjust_allocation(
    budget_id: uuid.UUID,
    category_id: uuid.UUID,
    adjustment: AllocationAdjust,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Change a category's allocated amount"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    try:
        return service.adjust_allocation(budget, category_id, adjustment.allocated_amount, adjustment.reason)
    except BaseAppException as e:
        raise _http_error(e)


@router.post("/{budget_id}/transfer", response_model=AllocationTransferResult)
async def transfer_unused(
    budget_id: uuid.UUID,
    transfer: AllocationTransfer,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Move unused allocation between two categories of the budget"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    try:
        transferred = service.transfer_unused(
            budget, transfer.from_category_id, transfer.to_category_id, transfer.amount
        )
    except BaseAppException as e:
        raise _http_error(e)
    return {"transferred": transferred, "budget": budget}


@router.get("/{budget_id}/categories/{category_id}/performance", response_model=AllocationPerformanceSummary)
async def get_allocation_performance(
    budget_id: uuid.UUID,
    category_id: uuid.UUID,
    as_of: Optional[date] = None,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Planned vs actual, previous period comparison and projection for one category"""
    service = BudgetService(db)
    budget = _load(service, current_user, budget_id)
    try:
        return service.get_allocation_performance(budget, category_id, as_of=as_of)
    except BaseAppException as e:
        raise _http_error(e)
