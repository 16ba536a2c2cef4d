from celery import shared_task
from datetime import date, datetime
from typing import Optional
import logging
import uuid

import pytz

from app.core.config import settings
from app.core.database import SessionLocal
from app.models.budget import Budget
from app.services.budget_service import BudgetService

logger = logging.getLogger(__name__)


def local_today() -> date:
    """Today's date in the configured scheduler timezone."""
    tz = pytz.timezone(settings.TIMEZONE)
    return datetime.now(tz).date()


def _parse_day(value: Optional[str]) -> date:
    return date.fromisoformat(value) if value else local_today()


@shared_task
def recalculate_active_budgets_task(as_of: Optional[str] = None):
    """Celery task to refresh actuals of budgets covering as_of (default: today)"""
    as_of_day = _parse_day(as_of)
    logger.info(f"Starting active budget recalculation for {as_of_day}")

    db = SessionLocal()
    try:
        result = BudgetService(db).recalculate_active_budgets(as_of=as_of_day)
        logger.info(f"Budget recalculation completed: {result.processed} processed, {result.failed} failed")
        return {
            "status": "success",
            "processed": result.processed,
            "failed": result.failed,
            "failed_ids": [str(i) for i in result.failed_ids],
        }
    except Exception as e:
        logger.error(f"Error recalculating active budgets: {str(e)}")
        return {"status": "error", "error": str(e)}
    finally:
        db.close()


@shared_task
def roll_over_expired_budgets_task(as_of: Optional[str] = None):
    """Celery task that closes ended budgets and opens their next period"""
    as_of_day = _parse_day(as_of)
    logger.info(f"Starting budget rollover for budgets ending before {as_of_day}")

    db = SessionLocal()
    try:
        result = BudgetService(db).roll_over_expired_budgets(as_of=as_of_day)
        logger.info(
            f"Budget rollover completed: {result.processed} processed, "
            f"{len(result.created_ids)} created, {result.failed} failed"
        )
        return {
            "status": "success",
            "processed": result.processed,
            "created_ids": [str(i) for i in result.created_ids],
            "failed": result.failed,
            "failed_ids": [str(i) for i in result.failed_ids],
        }
    except Exception as e:
        logger.error(f"Error rolling over budgets: {str(e)}")
        return {"status": "error", "error": str(e)}
    finally:
        db.close()


@shared_task
def recalculate_budget_task(budget_id: str):
    """Celery task to recalculate a single budget, e.g. after a transaction import"""
    db = SessionLocal()
    try:
        budget = db.query(Budget).filter(
            Budget.id == uuid.UUID(budget_id),
            Budget.deleted_at.is_(None),
        ).first()
        if not budget:
            return {"status": "failed", "error": "Budget not found"}

        BudgetService(db).recalculate_actuals(budget)
        return {
            "status": "success",
            "budget_id": budget_id,
            "actual_income": str(budget.actual_income),
            "actual_expenses": str(budget.actual_expenses),
        }
    except Exception as e:
        logger.error(f"Error recalculating budget {budget_id}: {str(e)}")
        return {"status": "error", "error": str(e)}
    finally:
        db.close()
