from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum

from app.core.database import Base
from app.core.types import GUID


class CategoryType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Category(Base):
    __tablename__ = "categories"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), ForeignKey("users.id"), nullable=True)  # Nullable for system categories
    name = Column(String, nullable=False)
    type = Column(
        SQLEnum(CategoryType, name="categorytype", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=CategoryType.EXPENSE,
    )
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="categories")

    @property
    def is_income(self) -> bool:
        return self.type == CategoryType.INCOME

    def __repr__(self):
        return f"<Category {self.name} ({self.type.value if self.type else None})>"
