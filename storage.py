import logging
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from errors import InternalError, NotFoundError
from models import (
    Bill,
    BillInstance,
    Category,
    EntryType,
    Income,
    IncomeInstance,
    MonthlyData,
    PaymentSource,
)


logger = logging.getLogger(__name__)


class MonthStore:
    """Loads and saves month records; every call reads fresh from the session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_monthly_data(self, month: str) -> Optional[MonthlyData]:
        stmt = (
            select(MonthlyData)
            .options(
                selectinload(MonthlyData.bill_instances).selectinload(
                    BillInstance.payments
                ),
                selectinload(MonthlyData.income_instances).selectinload(
                    IncomeInstance.payments
                ),
                selectinload(MonthlyData.variable_expenses),
                selectinload(MonthlyData.free_flowing_expenses),
                selectinload(MonthlyData.bank_balances),
            )
            .where(MonthlyData.month == month)
            .execution_options(populate_existing=True)
        )
        return self.session.scalar(stmt)

    def require_monthly_data(self, month: str) -> MonthlyData:
        data = self.get_monthly_data(month)
        if data is None:
            raise NotFoundError(
                f"Monthly data for {month} not found. Generate it first."
            )
        return data

    def is_month_read_only(self, month: str) -> bool:
        flag = self.session.scalar(
            select(MonthlyData.is_read_only).where(MonthlyData.month == month)
        )
        return bool(flag)

    def get_entity_by_id(
        self, entry_type: EntryType, entity_id: Optional[int]
    ) -> Optional[Union[Bill, Income]]:
        if entity_id is None:
            return None
        model = Bill if entry_type == EntryType.bill else Income
        return self.session.get(model, entity_id)

    def entities_by_id(self, entry_type: EntryType) -> dict[int, Union[Bill, Income]]:
        model = Bill if entry_type == EntryType.bill else Income
        return {e.id: e for e in self.session.scalars(select(model)).all()}

    def payment_sources_by_id(self) -> dict[int, PaymentSource]:
        return {s.id: s for s in self.session.scalars(select(PaymentSource)).all()}

    def categories_for(self, entry_type: EntryType) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.type == entry_type)
            .order_by(Category.sort_order, Category.name)
        )
        return self.session.scalars(stmt).all()

    def save(self, data: MonthlyData) -> MonthlyData:
        try:
            self.session.add(data)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"month_save_failed: month={data.month} error={exc}")
            raise InternalError(f"Failed to save month {data.month}") from exc
        self.session.refresh(data)
        return data

    def delete(self, data: MonthlyData) -> None:
        try:
            self.session.delete(data)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"month_delete_failed: month={data.month} error={exc}")
            raise InternalError(f"Failed to delete month {data.month}") from exc
