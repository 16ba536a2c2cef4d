from sqlalchemy import Column, String, DateTime, Date, ForeignKey, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum

from app.core.database import Base
from app.core.types import GUID, Money


class TransactionType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class Transaction(Base):
    """Ledger entry owned by the transactions module; budgets only read these."""
    __tablename__ = "transactions"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), ForeignKey("users.id"), nullable=False)
    account_id = Column(GUID(), nullable=True)  # Accounts live outside this service
    category_id = Column(GUID(), ForeignKey("categories.id"), nullable=True)
    type = Column(
        SQLEnum(TransactionType, name="transactiontype", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    amount = Column(Money(), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")  # Summed as stored, never converted
    transaction_date = Column(Date, nullable=False)
    description = Column(String)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="transactions")
    category = relationship("Category")

    __table_args__ = (
        Index("idx_transactions_user_type_date", "user_id", "type", "transaction_date"),
        Index("idx_transactions_category_date", "category_id", "transaction_date"),
    )
