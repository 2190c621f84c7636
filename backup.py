from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import ConflictError, InternalError, ValidationError
from models import (
    BankBalance,
    Bill,
    BillInstance,
    Category,
    FreeFlowingExpense,
    Income,
    IncomeInstance,
    MonthlyData,
    Payment,
    PaymentSource,
    UndoEntry,
    VariableExpense,
)
from schemas import (
    BackupFile,
    CategoryRecord,
    ExpenseRecord,
    InstanceRecord,
    MonthRecord,
    PaymentRecord,
    PaymentSourceRecord,
    RecurringRecord,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackupImportSummary:
    categories: int
    payment_sources: int
    bills: int
    incomes: int
    months: int


def _instance_record(
    instance: Union[BillInstance, IncomeInstance], parent_id: Optional[int]
) -> InstanceRecord:
    return InstanceRecord(
        parent_id=parent_id,
        expected_amount=instance.expected_amount,
        actual_amount=instance.actual_amount,
        payments=[
            PaymentRecord(amount=p.amount, date=p.date, created_at=p.created_at)
            for p in instance.payments
        ],
        is_default=instance.is_default,
        is_paid=instance.is_paid,
        is_closed=instance.is_closed,
        is_adhoc=instance.is_adhoc,
        due_date=instance.due_date,
        closed_date=instance.closed_date,
        name=instance.name,
        category_id=instance.category_id,
        payment_source_id=instance.payment_source_id,
    )


def _recurring_record(entity: Union[Bill, Income]) -> RecurringRecord:
    return RecurringRecord(
        id=entity.id,
        name=entity.name,
        amount=entity.amount,
        billing_period=entity.billing_period,
        start_date=entity.start_date,
        day_of_month=entity.day_of_month,
        recurrence_week=entity.recurrence_week,
        recurrence_day=entity.recurrence_day,
        due_day=entity.due_day,
        payment_source_id=entity.payment_source_id,
        category_id=entity.category_id,
        is_active=entity.is_active,
    )


def _check_references(backup: BackupFile) -> list[str]:
    errors: list[str] = []
    category_ids = {c.id for c in backup.categories}
    source_ids = {s.id for s in backup.payment_sources}
    bill_ids = {b.id for b in backup.bills}
    income_ids = {i.id for i in backup.incomes}

    for label, records in (("bill", backup.bills), ("income", backup.incomes)):
        for rec in records:
            if rec.payment_source_id not in source_ids:
                errors.append(
                    f"{label} {rec.id}: unknown payment source {rec.payment_source_id}"
                )
            if rec.category_id is not None and rec.category_id not in category_ids:
                errors.append(f"{label} {rec.id}: unknown category {rec.category_id}")

    seen_months: set[str] = set()
    for month in backup.months:
        if month.month in seen_months:
            errors.append(f"month {month.month}: duplicated")
        seen_months.add(month.month)
        for rec in month.bill_instances:
            if rec.parent_id is not None and rec.parent_id not in bill_ids:
                errors.append(f"month {month.month}: unknown bill {rec.parent_id}")
        for rec in month.income_instances:
            if rec.parent_id is not None and rec.parent_id not in income_ids:
                errors.append(f"month {month.month}: unknown income {rec.parent_id}")
        for rec in [*month.bill_instances, *month.income_instances]:
            if rec.category_id is not None and rec.category_id not in category_ids:
                errors.append(
                    f"month {month.month}: unknown category {rec.category_id}"
                )
            if (
                rec.payment_source_id is not None
                and rec.payment_source_id not in source_ids
            ):
                errors.append(
                    f"month {month.month}: unknown payment source {rec.payment_source_id}"
                )
        for expense in [*month.variable_expenses, *month.free_flowing_expenses]:
            if (
                expense.payment_source_id is not None
                and expense.payment_source_id not in source_ids
            ):
                errors.append(
                    f"month {month.month}: expense '{expense.name}' has unknown "
                    f"payment source {expense.payment_source_id}"
                )
        for source_id in month.bank_balances:
            if source_id not in source_ids:
                errors.append(
                    f"month {month.month}: unknown payment source {source_id}"
                )
    return errors


class BackupService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def export(self) -> BackupFile:
        categories = self.session.scalars(select(Category).order_by(Category.id)).all()
        sources = self.session.scalars(
            select(PaymentSource).order_by(PaymentSource.id)
        ).all()
        bills = self.session.scalars(select(Bill).order_by(Bill.id)).all()
        incomes = self.session.scalars(select(Income).order_by(Income.id)).all()
        months = self.session.scalars(
            select(MonthlyData).order_by(MonthlyData.month)
        ).all()

        return BackupFile(
            export_date=datetime.utcnow(),
            categories=[
                CategoryRecord(
                    id=c.id,
                    name=c.name,
                    type=c.type,
                    color=c.color,
                    sort_order=c.sort_order,
                    is_predefined=c.is_predefined,
                )
                for c in categories
            ],
            payment_sources=[
                PaymentSourceRecord(
                    id=s.id,
                    name=s.name,
                    type=s.type,
                    balance=s.balance,
                    is_active=s.is_active,
                )
                for s in sources
            ],
            bills=[_recurring_record(b) for b in bills],
            incomes=[_recurring_record(i) for i in incomes],
            months=[
                MonthRecord(
                    month=m.month,
                    is_read_only=m.is_read_only,
                    bill_instances=[
                        _instance_record(b, b.bill_id) for b in m.bill_instances
                    ],
                    income_instances=[
                        _instance_record(i, i.income_id) for i in m.income_instances
                    ],
                    variable_expenses=[
                        ExpenseRecord(
                            name=e.name,
                            amount=e.amount,
                            payment_source_id=e.payment_source_id,
                        )
                        for e in m.variable_expenses
                    ],
                    free_flowing_expenses=[
                        ExpenseRecord(
                            name=e.name,
                            amount=e.amount,
                            payment_source_id=e.payment_source_id,
                        )
                        for e in m.free_flowing_expenses
                    ],
                    bank_balances=m.bank_balance_map,
                )
                for m in months
            ],
        )

    def export_json(self) -> str:
        return self.export().model_dump_json(indent=2)

    def has_data(self) -> bool:
        for model in (Category, PaymentSource, Bill, Income, MonthlyData):
            if self.session.scalar(select(model.id).limit(1)) is not None:
                return True
        return False

    def import_(
        self, payload: Union[str, bytes, dict], *, replace: bool = False
    ) -> BackupImportSummary:
        try:
            if isinstance(payload, (str, bytes)):
                backup = BackupFile.model_validate_json(payload)
            else:
                backup = BackupFile.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid backup file: {exc}") from exc

        problems = _check_references(backup)
        if problems:
            raise ValidationError("Invalid backup file: " + "; ".join(problems))

        if self.has_data() and not replace:
            raise ConflictError(
                "Database already contains data; pass replace=True to overwrite"
            )

        try:
            if replace:
                self._wipe()
            self._write(backup)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"backup_import_failed: error={exc}")
            raise InternalError("Failed to import backup") from exc
        summary = BackupImportSummary(
            categories=len(backup.categories),
            payment_sources=len(backup.payment_sources),
            bills=len(backup.bills),
            incomes=len(backup.incomes),
            months=len(backup.months),
        )
        logger.info(
            f"backup_imported: categories={summary.categories} "
            f"sources={summary.payment_sources} bills={summary.bills} "
            f"incomes={summary.incomes} months={summary.months}"
        )
        return summary

    def _wipe(self) -> None:
        for month in self.session.scalars(select(MonthlyData)).all():
            self.session.delete(month)
        self.session.flush()
        for model in (UndoEntry, Bill, Income, PaymentSource, Category):
            self.session.execute(delete(model))
        self.session.flush()

    def _write(self, backup: BackupFile) -> None:
        for c in backup.categories:
            self.session.add(
                Category(
                    id=c.id,
                    name=c.name,
                    type=c.type,
                    color=c.color,
                    sort_order=c.sort_order,
                    is_predefined=c.is_predefined,
                )
            )
        for s in backup.payment_sources:
            self.session.add(
                PaymentSource(
                    id=s.id,
                    name=s.name,
                    type=s.type,
                    balance=s.balance,
                    is_active=s.is_active,
                )
            )
        self.session.flush()
        for model, records in ((Bill, backup.bills), (Income, backup.incomes)):
            for rec in records:
                self.session.add(model(**rec.model_dump()))
        self.session.flush()

        for month in backup.months:
            data = MonthlyData(month=month.month, is_read_only=month.is_read_only)
            for rec in month.bill_instances:
                data.bill_instances.append(
                    BillInstance(bill_id=rec.parent_id, **self._instance_fields(rec))
                )
            for rec in month.income_instances:
                data.income_instances.append(
                    IncomeInstance(income_id=rec.parent_id, **self._instance_fields(rec))
                )
            for expense in month.variable_expenses:
                data.variable_expenses.append(VariableExpense(**expense.model_dump()))
            for expense in month.free_flowing_expenses:
                data.free_flowing_expenses.append(
                    FreeFlowingExpense(**expense.model_dump())
                )
            for source_id, balance in month.bank_balances.items():
                data.bank_balances.append(
                    BankBalance(payment_source_id=source_id, balance=balance)
                )
            self.session.add(data)

    @staticmethod
    def _instance_fields(rec: InstanceRecord) -> dict[str, object]:
        fields = rec.model_dump(exclude={"parent_id", "payments"})
        fields["payments"] = [
            Payment(
                amount=p.amount,
                date=p.date,
                created_at=p.created_at or datetime.utcnow(),
            )
            for p in rec.payments
        ]
        return fields
