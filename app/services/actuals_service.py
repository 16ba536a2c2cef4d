from sqlalchemy.orm import Session
from sqlalchemy import func
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Union
import logging
import uuid

from app.core.exceptions import InvalidTransactionType
from app.core.money import to_money
from app.models.transaction import Transaction, TransactionType
from app.services.period_calculator import validate_range

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DateRange:
    """Inclusive [start, end] window over transaction dates."""
    start: date
    end: date

    def __post_init__(self):
        validate_range(self.start, self.end)


def coerce_transaction_type(transaction_type: Union[TransactionType, str]) -> TransactionType:
    if isinstance(transaction_type, TransactionType):
        return transaction_type
    try:
        return TransactionType(str(transaction_type).strip().lower())
    except ValueError:
        raise InvalidTransactionType(transaction_type)


class ActualsService:
    """Read-only totals over a user's transaction history.

    Amounts are summed as stored, in whatever currency each row carries.
    """

    def __init__(self, db: Session):
        self.db = db

    def sum_by_type(
        self,
        user_id: uuid.UUID,
        date_range: DateRange,
        transaction_type: Union[TransactionType, str],
    ) -> Decimal:
        """Sum of transactions of one type dated within date_range (inclusive)."""
        tx_type = coerce_transaction_type(transaction_type)
        query = self._base_query(user_id, date_range, tx_type)
        return self._scalar_total(query, f"{tx_type.value} total")

    def sum_by_category(
        self,
        user_id: uuid.UUID,
        date_range: DateRange,
        category_id: uuid.UUID,
        transaction_type: Union[TransactionType, str],
    ) -> Decimal:
        """Same as sum_by_type, restricted to one category."""
        query = self._base_query(user_id, date_range, coerce_transaction_type(transaction_type))
        query = query.filter(Transaction.category_id == category_id)
        return self._scalar_total(query, f"category {category_id} total")

    def _base_query(self, user_id, date_range: DateRange, transaction_type: TransactionType):
        return self.db.query(func.coalesce(func.sum(Transaction.amount), 0)).filter(
            Transaction.user_id == user_id,
            Transaction.type == transaction_type,
            Transaction.transaction_date >= date_range.start,
            Transaction.transaction_date <= date_range.end,
        )

    def _scalar_total(self, query, label: str) -> Decimal:
        total = to_money(query.scalar(), label)
        logger.debug(f"Aggregated {label}: {total}")
        return total
