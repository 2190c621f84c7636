from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import (
    Bill,
    BillingPeriod,
    Category,
    EntryType,
    Income,
    PaymentSource,
    PaymentSourceType,
)


@pytest.fixture
def session():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    engine.dispose()


@pytest.fixture
def seeded(session):
    """One checking account, three bills and two incomes.

    In 2025-01 this yields Rent 120000, Power 8000 and Gym 5 x 1000 as bills,
    Salary 300000 and Bonus 50000 as incomes.
    """
    checking = PaymentSource(
        name="Checking", type=PaymentSourceType.bank_account, balance=100000
    )
    home = Category(name="Home", type=EntryType.bill, color="#3b82f6", sort_order=0)
    utilities = Category(
        name="Utilities", type=EntryType.bill, color="#10b981", sort_order=1
    )
    salary = Category(
        name="Salary", type=EntryType.income, color="#22c55e", sort_order=0
    )
    session.add_all([checking, home, utilities, salary])
    session.flush()

    session.add_all(
        [
            Bill(
                name="Rent",
                amount=120000,
                day_of_month=1,
                payment_source_id=checking.id,
                category_id=home.id,
            ),
            Bill(
                name="Power",
                amount=8000,
                day_of_month=10,
                due_day=15,
                payment_source_id=checking.id,
                category_id=utilities.id,
            ),
            Bill(
                name="Gym",
                amount=1000,
                billing_period=BillingPeriod.weekly,
                start_date=date(2025, 1, 3),
                payment_source_id=checking.id,
            ),
            Income(
                name="Salary",
                amount=300000,
                day_of_month=25,
                payment_source_id=checking.id,
                category_id=salary.id,
            ),
            Income(
                name="Bonus",
                amount=50000,
                billing_period=BillingPeriod.semi_annually,
                start_date=date(2024, 7, 15),
                payment_source_id=checking.id,
            ),
        ]
    )
    session.commit()
    return session
