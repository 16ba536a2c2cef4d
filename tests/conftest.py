import os

# Must be set before app.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BUDGET_LOCK_BACKEND"] = "local"
os.environ["BUDGET_APPROVAL_REQUIRED"] = "false"

import uuid
from decimal import Decimal

import pytest

from app import models  # noqa: F401  registers every table
from app.core.database import Base, SessionLocal, engine
from app.models.budget import PeriodType
from app.models.category import Category, CategoryType
from app.models.transaction import Transaction, TransactionType
from app.models.user import User
from app.schemas.budget import BudgetCategoryCreate, BudgetCreate
from app.services.budget_service import BudgetService


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user(db_session):
    owner = User(id=uuid.uuid4(), email="owner@example.com", is_active=True)
    db_session.add(owner)
    db_session.commit()
    return owner


@pytest.fixture
def categories(db_session, user):
    created = {
        "groceries": Category(id=uuid.uuid4(), user_id=user.id, name="Groceries", type=CategoryType.EXPENSE),
        "dining": Category(id=uuid.uuid4(), user_id=user.id, name="Dining", type=CategoryType.EXPENSE),
        "rent": Category(id=uuid.uuid4(), user_id=user.id, name="Rent", type=CategoryType.EXPENSE),
        "salary": Category(id=uuid.uuid4(), user_id=user.id, name="Salary", type=CategoryType.INCOME),
    }
    db_session.add_all(created.values())
    db_session.commit()
    return created


@pytest.fixture
def add_transaction(db_session, user):
    def _add(amount, on, tx_type=TransactionType.EXPENSE, category=None, owner=None):
        tx = Transaction(
            id=uuid.uuid4(),
            user_id=(owner or user).id,
            category_id=category.id if category else None,
            type=tx_type,
            amount=Decimal(str(amount)),
            currency="USD",
            transaction_date=on,
        )
        db_session.add(tx)
        db_session.commit()
        return tx
    return _add


@pytest.fixture
def service(db_session):
    return BudgetService(db_session, approval_required=False)


@pytest.fixture
def make_budget(service, user):
    def _make(start, allocations=(), period_type=PeriodType.MONTHLY, end=None, **options):
        budget_in = BudgetCreate(
            period_type=period_type,
            start_date=start,
            end_date=end,
            categories=[
                BudgetCategoryCreate(category_id=category.id, allocated_amount=Decimal(str(amount)))
                for category, amount in allocations
            ],
            **options,
        )
        return service.create_budget(user.id, budget_in)
    return _make
