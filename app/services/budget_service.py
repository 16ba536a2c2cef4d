from sqlalchemy.orm import Session
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional
import logging
import uuid

from app.core.config import settings
from app.core.exceptions import (
    BudgetPeriodConflictError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from app.core.money import ZERO, CENT, HUNDRED, percentage, require_non_negative, sum_money, to_money
from app.models.budget import Budget, BudgetStatus
from app.models.budget_category import BudgetCategory
from app.models.category import Category
from app.models.transaction import TransactionType
from app.schemas.budget import (
    AllocationPerformanceSummary,
    BudgetCategory as BudgetCategorySchema,
    BudgetCategoryAlert,
    BudgetCreate,
    BudgetPerformanceSummary,
    BulkRunResult,
    ExpenseSummary,
    IncomeSummary,
    NetSummary,
    PeriodSummary,
    PreviousPeriodComparison,
    SpendingProjection,
    StatusSummary,
)
from app.services import allocation_metrics, period_calculator
from app.services.actuals_service import ActualsService, DateRange
from app.utils.audit import audit
from app.utils.budget_lock import budget_lock

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BudgetService:
    """Budget lifecycle: creation, recalculation, approval, completion and rollover.

    Every mutating operation holds the budget's single-writer lock, re-reads the
    row FOR UPDATE, validates the requested transition before touching
    anything and commits once. Any failure rolls the session back, so the
    budget and its allocations stay as they were before the call.
    """

    def __init__(self, db: Session, approval_required: Optional[bool] = None, lock_factory=budget_lock):
        self.db = db
        self.approval_required = (
            settings.BUDGET_APPROVAL_REQUIRED if approval_required is None else approval_required
        )
        self.lock_factory = lock_factory
        self.actuals = ActualsService(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_budget(self, user_id: uuid.UUID, budget_id: uuid.UUID) -> Budget:
        budget = self.db.query(Budget).filter(
            Budget.id == budget_id,
            Budget.user_id == user_id,
            Budget.deleted_at.is_(None),
        ).first()
        if not budget:
            raise NotFoundError("Budget not found", details=str(budget_id))
        return budget

    def list_budgets(
        self,
        user_id: uuid.UUID,
        status: Optional[BudgetStatus] = None,
        include_templates: bool = True,
    ) -> List[Budget]:
        query = self.db.query(Budget).filter(
            Budget.user_id == user_id,
            Budget.deleted_at.is_(None),
        )
        if status is not None:
            query = query.filter(Budget.status == status)
        if not include_templates:
            query = query.filter(Budget.is_template.is_(False))
        return query.order_by(Budget.start_date.desc()).all()

    def get_current_budgets(self, user_id: uuid.UUID, as_of: Optional[date] = None) -> List[Budget]:
        """Active budgets whose window contains as_of (default: today)."""
        as_of = as_of or date.today()
        return self.db.query(Budget).filter(
            Budget.user_id == user_id,
            Budget.status == BudgetStatus.ACTIVE,
            Budget.is_template.is_(False),
            Budget.deleted_at.is_(None),
            Budget.start_date <= as_of,
            Budget.end_date >= as_of,
        ).order_by(Budget.start_date.desc()).all()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_budget(
        self,
        user_id: uuid.UUID,
        budget_in: BudgetCreate,
        created_by: Optional[uuid.UUID] = None,
    ) -> Budget:
        """Create a draft budget together with its category allocations."""
        period_type = period_calculator.coerce_period_type(budget_in.period_type)
        start_date = budget_in.start_date
        end_date = budget_in.end_date or period_calculator.period_end(period_type, start_date)
        period_calculator.validate_range(start_date, end_date)

        alert_percentage = budget_in.alert_percentage
        if alert_percentage is None:
            alert_percentage = settings.DEFAULT_ALERT_PERCENTAGE
        if not 0 <= alert_percentage <= 100:
            raise ValidationError(f"Alert percentage must be between 0 and 100, got {alert_percentage}")

        if not budget_in.is_template:
            self._ensure_window_free(user_id, start_date, end_date)

        allocations = []
        seen = set()
        for item in budget_in.categories:
            if item.category_id in seen:
                raise ValidationError(f"Category {item.category_id} is allocated more than once")
            seen.add(item.category_id)
            category = self._get_category(user_id, item.category_id)
            allocations.append(BudgetCategory(
                category=category,
                category_id=category.id,
                allocated_amount=require_non_negative(item.allocated_amount, "allocated_amount"),
                spent_amount=ZERO,
                priority=item.priority,
                is_fixed_amount=item.is_fixed_amount,
                alert_on_overspend=item.alert_on_overspend,
                alert_threshold=item.alert_threshold,
                rollover_unused=item.rollover_unused,
                notes=item.notes,
            ))

        budget = Budget(
            id=uuid.uuid4(),
            user_id=user_id,
            name=budget_in.name,
            period_type=period_type,
            start_date=start_date,
            end_date=end_date,
            currency=budget_in.currency,
            planned_income=ZERO,
            actual_income=ZERO,
            planned_expenses=ZERO,
            actual_expenses=ZERO,
            status=BudgetStatus.DRAFT,
            is_template=budget_in.is_template,
            template_name=budget_in.template_name,
            rollover_unused=budget_in.rollover_unused,
            deduct_overspent=budget_in.deduct_overspent,
            alert_percentage=alert_percentage,
            created_by=created_by or user_id,
            description=budget_in.description,
            notes=budget_in.notes,
        )
        budget.budget_categories.extend(allocations)

        try:
            self.db.add(budget)
            self.update_planned_totals(budget)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(budget)

        logger.info(f"Created budget {budget.id} ({budget.name}) for user {user_id}")
        audit("budget_created", user_id=user_id, budget_id=budget.id,
              start_date=budget.start_date, end_date=budget.end_date)
        return budget

    def delete_budget(self, budget: Budget, as_of: Optional[datetime] = None) -> Budget:
        """Soft-retire a budget; it disappears from lookups and bulk jobs."""
        with self._unit_of_work(budget):
            budget.deleted_at = as_of or _utcnow()
        audit("budget_deleted", user_id=budget.user_id, budget_id=budget.id)
        return budget

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def submit_for_approval(self, budget: Budget) -> Budget:
        with self._unit_of_work(budget):
            if budget.status != BudgetStatus.DRAFT:
                raise InvalidStateTransition(budget.status, "submit for approval")
            budget.status = BudgetStatus.PENDING_APPROVAL
        audit("budget_submitted", user_id=budget.user_id, budget_id=budget.id)
        return budget

    def approve(self, budget: Budget, approver_id: uuid.UUID, as_of: Optional[datetime] = None) -> Budget:
        """Activate a budget awaiting approval (or a draft when approval is not required)."""
        allowed = {BudgetStatus.PENDING_APPROVAL}
        if not self.approval_required:
            allowed.add(BudgetStatus.DRAFT)

        with self._unit_of_work(budget):
            if budget.status not in allowed:
                raise InvalidStateTransition(budget.status, "approve")
            budget.status = BudgetStatus.ACTIVE
            budget.approved_by = approver_id
            budget.approved_at = as_of or _utcnow()

        logger.info(f"Budget {budget.id} approved by {approver_id}")
        audit("budget_approved", user_id=budget.user_id, budget_id=budget.id, approved_by=approver_id)
        return budget

    def complete(self, budget: Budget, as_of: Optional[datetime] = None) -> Budget:
        """Final recalculation, then mark completed.

        Completing an already completed budget only re-runs the final
        recalculation.
        """
        with self._unit_of_work(budget):
            if budget.status not in (BudgetStatus.ACTIVE, BudgetStatus.COMPLETED):
                raise InvalidStateTransition(budget.status, "complete")
            self._recalculate(budget, as_of)
            budget.status = BudgetStatus.COMPLETED

        logger.info(f"Budget {budget.id} completed: income {budget.actual_income}, expenses {budget.actual_expenses}")
        audit("budget_completed", user_id=budget.user_id, budget_id=budget.id,
              actual_income=budget.actual_income, actual_expenses=budget.actual_expenses)
        return budget

    # ------------------------------------------------------------------
    # Recalculation
    # ------------------------------------------------------------------

    def recalculate_actuals(self, budget: Budget, as_of: Optional[datetime] = None) -> Budget:
        """Re-derive actual totals and every allocation's spent amount from transactions."""
        with self._unit_of_work(budget):
            if budget.status == BudgetStatus.COMPLETED:
                raise InvalidStateTransition(budget.status, "recalculate")
            self._recalculate(budget, as_of)
        return budget

    def _recalculate(self, budget: Budget, as_of: Optional[datetime] = None) -> None:
        date_range = DateRange(budget.start_date, budget.end_date)

        # Read everything first so a failing query leaves no half-updated objects
        actual_income = self.actuals.sum_by_type(budget.user_id, date_range, TransactionType.INCOME)
        actual_expenses = self.actuals.sum_by_type(budget.user_id, date_range, TransactionType.EXPENSE)

        spent: Dict[uuid.UUID, Decimal] = {}
        for allocation in budget.budget_categories:
            tx_type = self._tracked_type(allocation)
            spent[allocation.id] = require_non_negative(
                self.actuals.sum_by_category(budget.user_id, date_range, allocation.category_id, tx_type),
                f"spent amount of category {allocation.category_id}",
            )

        budget.actual_income = require_non_negative(actual_income, "actual_income")
        budget.actual_expenses = require_non_negative(actual_expenses, "actual_expenses")
        calculated_at = as_of or _utcnow()
        for allocation in budget.budget_categories:
            allocation.spent_amount = spent[allocation.id]
            allocation.last_calculated_at = calculated_at

        logger.debug(
            f"Recalculated budget {budget.id}: income {budget.actual_income}, "
            f"expenses {budget.actual_expenses}, {len(spent)} categories"
        )

    def update_planned_totals(self, budget: Budget) -> None:
        """Planned income/expenses = sum of income/expense category allocations.

        Does not commit; callers run it inside their own unit of work.
        """
        income, expenses = [], []
        for allocation in budget.budget_categories:
            category = self._allocation_category(allocation)
            amount = require_non_negative(allocation.allocated_amount, "allocated_amount")
            (income if category.is_income else expenses).append(amount)

        budget.planned_income = sum_money(income, "planned_income")
        budget.planned_expenses = sum_money(expenses, "planned_expenses")

    def calculate_previous_period_spending(self, budget: Budget) -> Budget:
        """Store each allocation's spending over the same-length window just before the budget."""
        with self._unit_of_work(budget):
            length = budget.duration_days
            previous = DateRange(
                budget.start_date - timedelta(days=length),
                budget.start_date - timedelta(days=1),
            )
            totals: Dict[uuid.UUID, Decimal] = {}
            for allocation in budget.budget_categories:
                totals[allocation.id] = require_non_negative(
                    self.actuals.sum_by_category(
                        budget.user_id, previous, allocation.category_id, self._tracked_type(allocation)
                    ),
                    f"previous period spending of category {allocation.category_id}",
                )
            for allocation in budget.budget_categories:
                allocation.previous_period_spent = totals[allocation.id]

        logger.info(f"Stored previous period spending ({previous.start} to {previous.end}) for budget {budget.id}")
        return budget

    # ------------------------------------------------------------------
    # Allocation changes
    # ------------------------------------------------------------------

    def adjust_allocation(
        self,
        budget: Budget,
        category_id: uuid.UUID,
        new_amount,
        reason: Optional[str] = None,
        as_of: Optional[datetime] = None,
    ) -> BudgetCategory:
        """Change one allocated amount, note the reason and refresh planned totals."""
        new_amount = to_money(new_amount, "allocated_amount")
        if new_amount < ZERO:
            raise ValidationError(f"Allocated amount cannot be negative, got {new_amount}")

        with self._unit_of_work(budget):
            if budget.status == BudgetStatus.COMPLETED:
                raise InvalidStateTransition(budget.status, "adjust allocations of")
            allocation = self._get_allocation(budget, category_id)
            old_amount = allocation.allocated_amount
            self._set_allocated(allocation, new_amount, reason, as_of or _utcnow())
            self.update_planned_totals(budget)

        audit("allocation_adjusted", user_id=budget.user_id, budget_id=budget.id,
              category_id=category_id, old_amount=old_amount, new_amount=new_amount, reason=reason)
        return allocation

    def transfer_unused(
        self,
        budget: Budget,
        from_category_id: uuid.UUID,
        to_category_id: uuid.UUID,
        amount=None,
        as_of: Optional[datetime] = None,
    ) -> Decimal:
        """Move unused allocation from one category to another in the same budget.

        Without an amount everything still unused moves. The amount is capped
        at what remains unused; the amount actually moved is returned.
        """
        if from_category_id == to_category_id:
            raise ValidationError("Cannot transfer an allocation to itself")
        requested = None if amount is None else to_money(amount, "amount")
        if requested is not None and requested < ZERO:
            raise ValidationError(f"Transfer amount cannot be negative, got {requested}")

        with self._unit_of_work(budget):
            if budget.status == BudgetStatus.COMPLETED:
                raise InvalidStateTransition(budget.status, "transfer allocations of")
            source = self._get_allocation(budget, from_category_id)
            target = self._get_allocation(budget, to_category_id)

            available = max(ZERO, source.remaining_amount)
            transferred = available if requested is None else min(requested, available)
            if transferred > ZERO:
                at = as_of or _utcnow()
                source_name = self._allocation_category(source).name
                target_name = self._allocation_category(target).name
                self._set_allocated(source, source.allocated_amount - transferred,
                                    f"Transferred {transferred:.2f} to {target_name}", at)
                self._set_allocated(target, target.allocated_amount + transferred,
                                    f"Received {transferred:.2f} from {source_name}", at)
                self.update_planned_totals(budget)

        if transferred > ZERO:
            audit("allocation_transferred", user_id=budget.user_id, budget_id=budget.id,
                  from_category_id=from_category_id, to_category_id=to_category_id, amount=transferred)
        else:
            logger.info(f"Nothing unused to transfer from category {from_category_id} in budget {budget.id}")
        return transferred

    def _set_allocated(self, allocation: BudgetCategory, new_amount: Decimal, reason: Optional[str], at: datetime) -> None:
        old_amount = allocation.allocated_amount
        allocation.allocated_amount = new_amount
        if reason:
            note = f"[{at:%Y-%m-%d %H:%M}] Adjusted from {old_amount:.2f} to {new_amount:.2f}: {reason}"
            allocation.notes = f"{allocation.notes}\n{note}" if allocation.notes else note

    # ------------------------------------------------------------------
    # Templates and next period
    # ------------------------------------------------------------------

    def create_categories_from_template(self, target: Budget, template: Budget) -> List[BudgetCategory]:
        """Copy the template's allocations onto target and refresh its planned totals."""
        if template.is_deleted or template.user_id != target.user_id:
            raise NotFoundError("Template budget not found", details=str(template.id))

        with self._unit_of_work(target):
            if target.status == BudgetStatus.COMPLETED:
                raise InvalidStateTransition(target.status, "apply a template to")
            created = self._copy_allocations(target, template)

        logger.info(f"Copied {len(created)} allocations from budget {template.id} to {target.id}")
        return created

    def _copy_allocations(self, target: Budget, template: Budget) -> List[BudgetCategory]:
        created = []
        for source in template.ordered_allocations():
            # One allocation per (budget, category)
            if target.allocation_for(source.category_id) is not None:
                continue
            category = self._allocation_category(source)

            allocation = BudgetCategory(
                id=uuid.uuid4(),
                category=category,
                category_id=source.category_id,
                allocated_amount=require_non_negative(source.allocated_amount, "allocated_amount"),
                spent_amount=ZERO,
                priority=source.priority,
                is_fixed_amount=source.is_fixed_amount,
                alert_on_overspend=source.alert_on_overspend,
                alert_threshold=source.alert_threshold,
                rollover_unused=source.rollover_unused,
            )
            target.budget_categories.append(allocation)
            created.append(allocation)

        self.update_planned_totals(target)
        return created

    def create_next_period_budget(self, current: Budget) -> Budget:
        """Create the draft budget for the period after current, with rollover."""
        with self._unit_of_work(current):
            start_date, end_date = period_calculator.next_period(
                current.period_type, current.start_date, current.end_date
            )
            self._ensure_window_free(current.user_id, start_date, end_date)

            next_budget = Budget(
                id=uuid.uuid4(),
                user_id=current.user_id,
                period_type=current.period_type,
                start_date=start_date,
                end_date=end_date,
                currency=current.currency,
                planned_income=ZERO,
                actual_income=ZERO,
                planned_expenses=ZERO,
                actual_expenses=ZERO,
                status=BudgetStatus.DRAFT,
                is_template=False,
                alert_percentage=current.alert_percentage,
                rollover_unused=current.rollover_unused,
                deduct_overspent=current.deduct_overspent,
                created_by=current.created_by,
            )
            next_budget.name = next_budget.generate_default_name()
            self.db.add(next_budget)

            self._copy_allocations(next_budget, current)
            if current.rollover_unused:
                self._apply_rollovers(current, next_budget)

        logger.info(f"Created next period budget {next_budget.id} ({start_date} to {end_date}) from {current.id}")
        audit("budget_rolled_forward", user_id=current.user_id, budget_id=next_budget.id,
              source_budget_id=current.id, start_date=start_date, end_date=end_date,
              planned_income=next_budget.planned_income, planned_expenses=next_budget.planned_expenses)
        return next_budget

    def apply_rollovers(self, source: Budget, target: Budget) -> Budget:
        """Carry unused (and optionally deduct overspent) amounts from source into target.

        Only categories allocated in both budgets take part; amounts for
        categories missing from target are dropped.
        """
        with self._unit_of_work(target):
            if target.status == BudgetStatus.COMPLETED:
                raise InvalidStateTransition(target.status, "roll amounts into")
            self._apply_rollovers(source, target)
        return target

    def _apply_rollovers(self, source: Budget, target: Budget) -> None:
        adjustments = []
        for current in source.budget_categories:
            allocated = require_non_negative(current.allocated_amount, "allocated_amount")
            spent = require_non_negative(current.spent_amount, "spent_amount")

            upcoming = target.allocation_for(current.category_id)
            if upcoming is None:
                dropped = max(ZERO, allocated - spent)
                logger.warning(
                    f"Category {current.category_id} is not allocated in budget {target.id}; "
                    f"{dropped} unused from budget {source.id} not rolled over"
                )
                continue

            new_amount = require_non_negative(upcoming.allocated_amount, "allocated_amount")

            unused = max(ZERO, allocated - spent)
            if unused > ZERO and current.rollover_unused is not False:
                new_amount += unused

            if source.deduct_overspent:
                overspent = max(ZERO, spent - allocated)
                if overspent > ZERO:
                    new_amount -= min(new_amount, overspent)

            adjustments.append((upcoming, new_amount))

        for upcoming, new_amount in adjustments:
            upcoming.allocated_amount = new_amount
        self.update_planned_totals(target)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_performance_summary(self, budget: Budget, as_of: Optional[date] = None) -> BudgetPerformanceSummary:
        as_of = as_of or date.today()
        duration = budget.duration_days

        if as_of < budget.start_date:
            days_passed = 0
        else:
            days_passed = (min(as_of, budget.end_date) - budget.start_date).days + 1
        progress = min(HUNDRED, (Decimal(days_passed) / Decimal(duration) * HUNDRED).quantize(CENT))

        planned_expenses = budget.planned_expenses
        is_over_threshold = (
            planned_expenses > ZERO
            and percentage(budget.actual_expenses, planned_expenses) >= Decimal(budget.alert_percentage)
        )

        return BudgetPerformanceSummary(
            budget_id=budget.id,
            currency=budget.currency,
            period=PeriodSummary(
                start_date=budget.start_date,
                end_date=budget.end_date,
                duration_days=duration,
                progress_percentage=progress,
            ),
            income=IncomeSummary(
                planned=budget.planned_income,
                actual=budget.actual_income,
                variance=budget.actual_income - budget.planned_income,
                percentage=percentage(budget.actual_income, budget.planned_income),
            ),
            expenses=ExpenseSummary(
                planned=planned_expenses,
                actual=budget.actual_expenses,
                variance=budget.actual_expenses - planned_expenses,
                percentage=percentage(budget.actual_expenses, planned_expenses),
                remaining=budget.remaining_budget,
            ),
            net=NetSummary(
                planned=budget.planned_net_income,
                actual=budget.actual_net_income,
                variance=budget.actual_net_income - budget.planned_net_income,
            ),
            status=StatusSummary(
                is_over_threshold=is_over_threshold,
                is_overspent=budget.is_overspent,
                alert_percentage=budget.alert_percentage,
            ),
        )

    def get_allocation_performance(
        self,
        budget: Budget,
        category_id: uuid.UUID,
        as_of: Optional[date] = None,
    ) -> AllocationPerformanceSummary:
        as_of = as_of or date.today()
        allocation = self._get_allocation(budget, category_id)
        allocated, spent = allocation.allocated_amount, allocation.spent_amount

        return AllocationPerformanceSummary(
            category_id=allocation.category_id,
            category=self._allocation_category(allocation).name,
            allocated=allocated,
            spent=spent,
            remaining=allocation.remaining_amount,
            usage_percentage=allocation.usage_percentage,
            variance=allocation_metrics.variance(allocated, spent),
            is_over_budget=allocation.is_over_budget,
            is_at_threshold=allocation.is_at_threshold,
            priority=allocation.priority_label,
            previous_period_comparison=PreviousPeriodComparison(
                previous_spent=allocation.previous_period_spent,
                variance=allocation.previous_period_variance,
                change_percentage=allocation.previous_period_change_percentage,
            ),
            projection=SpendingProjection(**allocation_metrics.spending_projection(
                allocated, spent, budget.start_date, budget.end_date, as_of
            )),
        )

    def get_over_budget_categories(self, budget: Budget) -> List[BudgetCategory]:
        return [a for a in budget.ordered_allocations() if a.is_over_budget]

    def get_near_limit_categories(self, budget: Budget, threshold: int = 80) -> List[BudgetCategory]:
        return [a for a in budget.ordered_allocations() if a.is_near_limit(threshold)]

    def get_category_alerts(self, budget: Budget) -> List[BudgetCategoryAlert]:
        alerts = []
        for allocation in budget.ordered_allocations():
            kind = allocation.alert_type
            if kind is None:
                continue
            alerts.append(BudgetCategoryAlert(
                allocation=BudgetCategorySchema.model_validate(allocation),
                alert_type=kind,
                message=allocation.alert_message(),
            ))
        return alerts

    # ------------------------------------------------------------------
    # Bulk jobs
    # ------------------------------------------------------------------

    def recalculate_active_budgets(self, as_of: Optional[date] = None) -> BulkRunResult:
        """Recalculate every active budget, one independent unit of work each.

        With as_of, only budgets whose window contains that day are touched.
        """
        query = self.db.query(Budget.id).filter(
            Budget.status == BudgetStatus.ACTIVE,
            Budget.deleted_at.is_(None),
            Budget.is_template.is_(False),
        )
        if as_of is not None:
            query = query.filter(Budget.start_date <= as_of, Budget.end_date >= as_of)
        budget_ids = [row.id for row in query.all()]

        result = BulkRunResult(processed=0, failed=0)
        for budget_id in budget_ids:
            try:
                budget = self.db.get(Budget, budget_id)
                self.recalculate_actuals(budget)
                result.processed += 1
            except Exception as e:
                logger.error(f"Failed to recalculate budget {budget_id}: {str(e)}")
                result.failed += 1
                result.failed_ids.append(budget_id)

        logger.info(f"Recalculated {result.processed} active budgets ({result.failed} failed)")
        return result

    def roll_over_expired_budgets(self, as_of: date) -> BulkRunResult:
        """Close every active budget that ended before as_of and open its next period."""
        budget_ids = [
            row.id for row in self.db.query(Budget.id).filter(
                Budget.status == BudgetStatus.ACTIVE,
                Budget.deleted_at.is_(None),
                Budget.is_template.is_(False),
                Budget.end_date < as_of,
            ).all()
        ]

        result = BulkRunResult(processed=0, failed=0)
        for budget_id in budget_ids:
            try:
                budget = self.db.get(Budget, budget_id)
                # Spent amounts must be current before they feed the rollover
                self.recalculate_actuals(budget)
                start_date, end_date = period_calculator.next_period(
                    budget.period_type, budget.start_date, budget.end_date
                )
                if self._find_window(budget.user_id, start_date, end_date) is None:
                    next_budget = self.create_next_period_budget(budget)
                    result.created_ids.append(next_budget.id)
                else:
                    logger.info(f"Next period for budget {budget_id} already exists, skipping creation")
                self.complete(budget)
                result.processed += 1
            except Exception as e:
                logger.error(f"Failed to roll over budget {budget_id}: {str(e)}")
                result.failed += 1
                result.failed_ids.append(budget_id)

        logger.info(
            f"Rolled over {result.processed} expired budgets, created {len(result.created_ids)} "
            f"({result.failed} failed)"
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, budget: Budget):
        """Single-writer lock + row lock + one commit, rolled back on any error."""
        with self.lock_factory(budget.id):
            try:
                self.db.query(Budget).filter(Budget.id == budget.id).with_for_update().populate_existing().one()
                yield budget
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    def _find_window(self, user_id: uuid.UUID, start_date: date, end_date: date) -> Optional[Budget]:
        return self.db.query(Budget).filter(
            Budget.user_id == user_id,
            Budget.start_date == start_date,
            Budget.end_date == end_date,
            Budget.is_template.is_(False),
            Budget.deleted_at.is_(None),
        ).first()

    def _ensure_window_free(self, user_id: uuid.UUID, start_date: date, end_date: date) -> None:
        existing = self._find_window(user_id, start_date, end_date)
        if existing is not None:
            raise BudgetPeriodConflictError(
                f"A budget for {start_date} to {end_date} already exists",
                details=str(existing.id),
            )

    def _get_category(self, user_id: uuid.UUID, category_id: uuid.UUID) -> Category:
        category = self.db.query(Category).filter(
            Category.id == category_id,
            (Category.user_id == user_id) | Category.user_id.is_(None),
        ).first()
        if not category:
            raise NotFoundError("Category not found", details=str(category_id))
        return category

    def _allocation_category(self, allocation: BudgetCategory) -> Category:
        category = allocation.category
        if category is None:
            raise NotFoundError("Category not found", details=str(allocation.category_id))
        return category

    def _tracked_type(self, allocation: BudgetCategory) -> TransactionType:
        """Income categories track income transactions, the rest track expenses."""
        category = self._allocation_category(allocation)
        return TransactionType.INCOME if category.is_income else TransactionType.EXPENSE

    def _get_allocation(self, budget: Budget, category_id: uuid.UUID) -> BudgetCategory:
        allocation = budget.allocation_for(category_id)
        if allocation is None:
            raise NotFoundError("Category is not allocated in this budget", details=str(category_id))
        return allocation
