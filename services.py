from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ReadOnlyMonthError,
    ValidationError,
)
from leftover import build_breakdown
from models import (
    BankBalance,
    Bill,
    BillInstance,
    Category,
    EntryType,
    FreeFlowingExpense,
    Income,
    IncomeInstance,
    MonthlyData,
    Payment,
    PaymentSource,
    UndoEntityType,
    UndoEntry,
    VariableExpense,
)
from months import MonthKey, parse_month
from recurrence import (
    due_date_for,
    expected_amount_for,
    local_today,
    occurrences_in_month,
)
from schemas import AdhocInstanceIn, CategoryIn, ExpenseIn, LeftoverBreakdown, PaymentIn
from sections import (
    BillDetail,
    CategorySection,
    IncomeDetail,
    build_bill_sections,
    build_income_sections,
    detail_bill,
    detail_income,
)
from storage import MonthStore
from tally import (
    SectionTally,
    adhoc_bills_tally,
    adhoc_income_tally,
    combine_tallies,
    regular_bills_tally,
    regular_income_tally,
)


logger = logging.getLogger(__name__)

Instance = Union[BillInstance, IncomeInstance]


def parse_entry_type(kind: Union[str, EntryType]) -> EntryType:
    try:
        return EntryType(kind)
    except ValueError as exc:
        raise ValidationError(
            f"Unknown instance kind '{kind}'. Expected 'bill' or 'income'"
        ) from exc


def validate_amount(amount: object, field: str = "Amount") -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValidationError(f"{field} must be a non-negative integer in cents")
    return amount


def _instance_snapshot(instance: Instance) -> str:
    return json.dumps(
        {
            "expected_amount": instance.expected_amount,
            "actual_amount": instance.actual_amount,
            "payments": [
                {"amount": p.amount, "date": p.date.isoformat()}
                for p in instance.payments
            ],
            "is_paid": bool(instance.is_paid),
            "is_closed": bool(instance.is_closed),
            "closed_date": instance.closed_date.isoformat()
            if instance.closed_date
            else None,
        },
        sort_keys=True,
    )


class UndoService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def record(
        self,
        entity_type: UndoEntityType,
        entity_id: int,
        old_value: Optional[str],
        new_value: Optional[str],
    ) -> UndoEntry:
        entry = UndoEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            old_value=old_value,
            new_value=new_value,
        )
        self.session.add(entry)
        return entry

    def list_recent(self, limit: int = 50) -> list[UndoEntry]:
        stmt = (
            select(UndoEntry)
            .order_by(UndoEntry.timestamp.desc(), UndoEntry.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()


class CategoryService:
    DEFAULTS: tuple[tuple[str, EntryType, str], ...] = (
        ("Home", EntryType.bill, "#3b82f6"),
        ("Utilities", EntryType.bill, "#10b981"),
        ("Transportation", EntryType.bill, "#f59e0b"),
        ("Subscriptions", EntryType.bill, "#8b5cf6"),
        ("Insurance", EntryType.bill, "#ef4444"),
        ("Debt", EntryType.bill, "#f97316"),
        ("Salary", EntryType.income, "#22c55e"),
        ("Other Income", EntryType.income, "#14b8a6"),
    )

    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self, entry_type: Optional[EntryType] = None) -> list[Category]:
        stmt = select(Category).order_by(Category.sort_order, Category.name)
        if entry_type is not None:
            stmt = stmt.where(Category.type == entry_type)
        return self.session.scalars(stmt).all()

    def create(self, data: CategoryIn, *, is_predefined: bool = False) -> Category:
        clean_name = data.name.strip()
        if not clean_name:
            raise ValidationError("Category name cannot be empty")
        existing = self.session.scalar(
            select(Category).where(
                Category.type == data.type, Category.name == clean_name
            )
        )
        if existing:
            raise ConflictError("Category with this name already exists")
        category = Category(
            name=clean_name,
            type=data.type,
            color=data.color,
            sort_order=data.sort_order,
            is_predefined=is_predefined,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFoundError("Category not found")
        if category.is_predefined:
            raise ForbiddenError("Cannot delete predefined category")
        try:
            # References fall back to the uncategorized bucket.
            for model in (Bill, Income, BillInstance, IncomeInstance):
                self.session.execute(
                    update(model)
                    .where(model.category_id == category_id)
                    .values(category_id=None)
                )
            self.session.delete(category)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"category_delete_failed: id={category_id} error={exc}")
            raise InternalError(f"Failed to delete category {category_id}") from exc
        logger.info(f"category_deleted: id={category_id}")

    def seed_defaults(self) -> int:
        created = 0
        for order, (name, entry_type, color) in enumerate(self.DEFAULTS):
            exists = self.session.scalar(
                select(Category.id).where(
                    Category.type == entry_type, Category.name == name
                )
            )
            if exists:
                continue
            self.session.add(
                Category(
                    name=name,
                    type=entry_type,
                    color=color,
                    sort_order=order,
                    is_predefined=True,
                )
            )
            created += 1
        self.session.commit()
        return created


class LeftoverService:
    def __init__(self, session: Session, store: Optional[MonthStore] = None) -> None:
        self.session = session
        self.store = store or MonthStore(session)

    def calculate_leftover(self, month: str) -> LeftoverBreakdown:
        key = parse_month(month)
        data = self.store.require_monthly_data(key.slug)
        return build_breakdown(data)


class _MonthMutationMixin:
    session: Session
    store: MonthStore

    def _writable_month(self, key: MonthKey) -> MonthlyData:
        # Checked on every call; the lock can change between requests.
        if self.store.is_month_read_only(key.slug):
            logger.warning(f"mutation_rejected: month={key.slug} reason=read_only")
            raise ReadOnlyMonthError(key.slug)
        return self.store.require_monthly_data(key.slug)


class MonthService(_MonthMutationMixin):
    def __init__(self, session: Session, store: Optional[MonthStore] = None) -> None:
        self.session = session
        self.store = store or MonthStore(session)

    def get(self, month: str) -> MonthlyData:
        return self.store.require_monthly_data(parse_month(month).slug)

    def exists(self, month: str) -> bool:
        return self.store.get_monthly_data(parse_month(month).slug) is not None

    def generate(self, month: str) -> MonthlyData:
        key = parse_month(month)
        if self.store.get_monthly_data(key.slug) is not None:
            raise ConflictError(f"Monthly data for {key.slug} already exists")

        data = MonthlyData(month=key.slug, is_read_only=False)
        bills = self.session.scalars(
            select(Bill).where(Bill.is_active.is_(True)).order_by(Bill.id)
        ).all()
        for bill in bills:
            occurrences = occurrences_in_month(bill, key)
            if not occurrences:
                continue
            data.bill_instances.append(
                BillInstance(
                    bill_id=bill.id,
                    expected_amount=expected_amount_for(bill, key, occurrences),
                    is_default=True,
                    is_paid=False,
                    is_closed=False,
                    is_adhoc=False,
                    due_date=due_date_for(bill, key, occurrences),
                )
            )

        incomes = self.session.scalars(
            select(Income).where(Income.is_active.is_(True)).order_by(Income.id)
        ).all()
        for income in incomes:
            occurrences = occurrences_in_month(income, key)
            if not occurrences:
                continue
            data.income_instances.append(
                IncomeInstance(
                    income_id=income.id,
                    expected_amount=expected_amount_for(income, key, occurrences),
                    is_default=True,
                    is_paid=False,
                    is_closed=False,
                    is_adhoc=False,
                    due_date=due_date_for(income, key, occurrences),
                )
            )

        sources = self.session.scalars(
            select(PaymentSource)
            .where(PaymentSource.is_active.is_(True))
            .order_by(PaymentSource.id)
        ).all()
        for source in sources:
            data.bank_balances.append(
                BankBalance(payment_source_id=source.id, balance=source.balance)
            )

        self.store.save(data)
        logger.info(
            f"month_generated: month={key.slug} bills={len(data.bill_instances)} "
            f"incomes={len(data.income_instances)}"
        )
        return data

    def ensure(self, month: str) -> bool:
        if self.exists(month):
            return False
        self.generate(month)
        return True

    def delete(self, month: str) -> None:
        key = parse_month(month)
        data = self._writable_month(key)
        self.store.delete(data)
        logger.info(f"month_deleted: month={key.slug}")

    def set_read_only(self, month: str, read_only: bool) -> MonthlyData:
        key = parse_month(month)
        data = self.store.require_monthly_data(key.slug)
        data.is_read_only = read_only
        self.store.save(data)
        logger.info(f"month_lock_changed: month={key.slug} read_only={read_only}")
        return data

    def _require_source(self, source_id: Optional[int]) -> None:
        if source_id is not None and self.session.get(PaymentSource, source_id) is None:
            raise NotFoundError(f"Payment source {source_id} not found")

    def update_bank_balances(self, month: str, balances: dict[int, int]) -> MonthlyData:
        key = parse_month(month)
        data = self._writable_month(key)
        # Every entry is checked before any row changes.
        for source_id, balance in balances.items():
            if isinstance(balance, bool) or not isinstance(balance, int):
                raise ValidationError("Bank balances must be integers in cents")
            self._require_source(source_id)

        existing = {row.payment_source_id: row for row in data.bank_balances}
        for source_id, balance in balances.items():
            row = existing.get(source_id)
            if row is None:
                data.bank_balances.append(
                    BankBalance(payment_source_id=source_id, balance=balance)
                )
            else:
                row.balance = balance
        self.store.save(data)
        logger.info(
            f"bank_balances_updated: month={key.slug} sources={len(balances)}"
        )
        return data

    def add_variable_expense(self, month: str, payload: ExpenseIn) -> VariableExpense:
        key = parse_month(month)
        data = self._writable_month(key)
        self._require_source(payload.payment_source_id)
        expense = VariableExpense(
            name=payload.name.strip(),
            amount=payload.amount,
            payment_source_id=payload.payment_source_id,
        )
        data.variable_expenses.append(expense)
        self.store.save(data)
        logger.info(
            f"variable_expense_added: month={key.slug} amount={payload.amount}"
        )
        return expense

    def add_free_flowing_expense(
        self, month: str, payload: ExpenseIn
    ) -> FreeFlowingExpense:
        key = parse_month(month)
        data = self._writable_month(key)
        self._require_source(payload.payment_source_id)
        expense = FreeFlowingExpense(
            name=payload.name.strip(),
            amount=payload.amount,
            payment_source_id=payload.payment_source_id,
        )
        data.free_flowing_expenses.append(expense)
        self.store.save(data)
        logger.info(
            f"free_flowing_expense_added: month={key.slug} amount={payload.amount}"
        )
        return expense


class InstanceService(_MonthMutationMixin):
    """Paid/closed and amount changes on bill and income instances.

    The two axes are independent: closing or reopening never touches recorded
    payments or amounts, and amounts can change on a closed instance.
    """

    def __init__(
        self,
        session: Session,
        store: Optional[MonthStore] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.session = session
        self.store = store or MonthStore(session)
        self.undo = UndoService(session)
        self._today = today or local_today

    def _load(
        self, month: str, kind: Union[str, EntryType], instance_id: int
    ) -> tuple[MonthKey, EntryType, MonthlyData, Instance]:
        key = parse_month(month)
        entry_type = parse_entry_type(kind)
        data = self._writable_month(key)
        pool = (
            data.bill_instances
            if entry_type == EntryType.bill
            else data.income_instances
        )
        for instance in pool:
            if instance.id == instance_id:
                return key, entry_type, data, instance
        label = "Bill" if entry_type == EntryType.bill else "Income"
        raise NotFoundError(
            f"{label} instance {instance_id} not found in month {key.slug}"
        )

    def _commit(
        self,
        key: MonthKey,
        entry_type: EntryType,
        data: MonthlyData,
        instance: Instance,
        before: str,
        action: str,
    ) -> Instance:
        after = _instance_snapshot(instance)
        undo_type = (
            UndoEntityType.bill_instance
            if entry_type == EntryType.bill
            else UndoEntityType.income_instance
        )
        self.undo.record(undo_type, instance.id, before, after)
        self.store.save(data)
        logger.info(
            f"{action}: month={key.slug} kind={entry_type.value} id={instance.id}"
        )
        return instance

    def update_amount(
        self, month: str, kind: Union[str, EntryType], instance_id: int, amount: int
    ) -> Instance:
        amount = validate_amount(amount)
        key, entry_type, data, instance = self._load(month, kind, instance_id)
        before = _instance_snapshot(instance)
        instance.actual_amount = amount
        instance.is_default = False
        return self._commit(
            key, entry_type, data, instance, before, "instance_amount_updated"
        )

    def update_expected_amount(
        self, month: str, kind: Union[str, EntryType], instance_id: int, amount: int
    ) -> Instance:
        amount = validate_amount(amount, "Expected amount")
        key, entry_type, data, instance = self._load(month, kind, instance_id)
        before = _instance_snapshot(instance)
        instance.expected_amount = amount
        instance.is_default = False
        return self._commit(
            key, entry_type, data, instance, before, "instance_expected_updated"
        )

    def toggle_paid(
        self,
        month: str,
        kind: Union[str, EntryType],
        instance_id: int,
        actual_amount: Optional[int] = None,
    ) -> Instance:
        entry_type = parse_entry_type(kind)
        if actual_amount is not None:
            if entry_type != EntryType.income:
                raise ValidationError("actualAmount is only accepted for income")
            actual_amount = validate_amount(actual_amount, "actualAmount")
        key, entry_type, data, instance = self._load(month, entry_type, instance_id)
        before = _instance_snapshot(instance)
        paid = not instance.is_paid
        instance.is_paid = paid
        instance.is_closed = paid
        instance.closed_date = self._today() if paid else None
        if actual_amount is not None:
            instance.actual_amount = actual_amount
            instance.is_default = False
        return self._commit(
            key, entry_type, data, instance, before, "instance_paid_toggled"
        )

    def close(
        self, month: str, kind: Union[str, EntryType], instance_id: int
    ) -> Instance:
        key, entry_type, data, instance = self._load(month, kind, instance_id)
        if instance.is_closed and instance.is_paid:
            return instance
        before = _instance_snapshot(instance)
        instance.is_closed = True
        instance.is_paid = True
        instance.closed_date = instance.closed_date or self._today()
        return self._commit(
            key, entry_type, data, instance, before, "instance_closed"
        )

    def reopen(
        self, month: str, kind: Union[str, EntryType], instance_id: int
    ) -> Instance:
        key, entry_type, data, instance = self._load(month, kind, instance_id)
        if not instance.is_closed and not instance.is_paid:
            return instance
        before = _instance_snapshot(instance)
        instance.is_closed = False
        instance.is_paid = False
        instance.closed_date = None
        return self._commit(
            key, entry_type, data, instance, before, "instance_reopened"
        )

    def reset(
        self, month: str, kind: Union[str, EntryType], instance_id: int
    ) -> Instance:
        key, entry_type, data, instance = self._load(month, kind, instance_id)
        before = _instance_snapshot(instance)
        parent_id = (
            instance.bill_id if entry_type == EntryType.bill else instance.income_id
        )
        parent = self.store.get_entity_by_id(entry_type, parent_id)
        if parent is not None and not instance.is_adhoc:
            instance.expected_amount = expected_amount_for(parent, key)
        instance.actual_amount = None
        instance.payments.clear()
        instance.is_paid = False
        instance.is_closed = False
        instance.closed_date = None
        instance.is_default = True
        return self._commit(
            key, entry_type, data, instance, before, "instance_reset"
        )

    def add_payment(
        self,
        month: str,
        kind: Union[str, EntryType],
        instance_id: int,
        payload: PaymentIn,
    ) -> Instance:
        key, entry_type, data, instance = self._load(month, kind, instance_id)
        before = _instance_snapshot(instance)
        instance.payments.append(Payment(amount=payload.amount, date=payload.date))
        instance.is_default = False
        return self._commit(
            key, entry_type, data, instance, before, "payment_added"
        )

    def create_adhoc(
        self, month: str, kind: Union[str, EntryType], payload: AdhocInstanceIn
    ) -> Instance:
        key = parse_month(month)
        entry_type = parse_entry_type(kind)
        data = self._writable_month(key)
        if payload.category_id is not None:
            category = self.session.get(Category, payload.category_id)
            if category is None:
                raise NotFoundError("Category not found")
            if category.type != entry_type:
                raise ValidationError("Category type mismatch")
        if (
            payload.payment_source_id is not None
            and self.session.get(PaymentSource, payload.payment_source_id) is None
        ):
            raise NotFoundError("Payment source not found")

        model = BillInstance if entry_type == EntryType.bill else IncomeInstance
        instance = model(
            expected_amount=0,
            actual_amount=payload.amount,
            is_default=False,
            is_paid=True,
            is_closed=True,
            is_adhoc=True,
            closed_date=payload.date or self._today(),
            name=payload.name,
            category_id=payload.category_id,
            payment_source_id=payload.payment_source_id,
        )
        if entry_type == EntryType.bill:
            data.bill_instances.append(instance)
        else:
            data.income_instances.append(instance)
        self.session.flush()
        return self._commit(
            key, entry_type, data, instance, None, "adhoc_instance_created"
        )


@dataclass(frozen=True)
class MonthTallies:
    bills: SectionTally
    adhoc_bills: SectionTally
    total_expenses: SectionTally
    income: SectionTally
    adhoc_income: SectionTally
    total_income: SectionTally


@dataclass(frozen=True)
class DetailedMonth:
    month: str
    is_read_only: bool
    bill_sections: list[CategorySection]
    income_sections: list[CategorySection]
    tallies: MonthTallies
    leftover: int
    leftover_breakdown: LeftoverBreakdown
    bank_balances: dict[int, int]
    last_updated: Optional[datetime]


class DetailedMonthService:
    def __init__(
        self,
        session: Session,
        store: Optional[MonthStore] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.session = session
        self.store = store or MonthStore(session)
        self._today = today or local_today

    def get_detailed_month(self, month: str) -> DetailedMonth:
        key = parse_month(month)
        data = self.store.require_monthly_data(key.slug)
        today = self._today()
        sources = self.store.payment_sources_by_id()

        bill_sections = build_bill_sections(
            data.bill_instances,
            self.store.categories_for(EntryType.bill),
            self.store.entities_by_id(EntryType.bill),
            sources,
            today,
        )
        income_sections = build_income_sections(
            data.income_instances,
            self.store.categories_for(EntryType.income),
            self.store.entities_by_id(EntryType.income),
            sources,
            today,
        )

        bills = regular_bills_tally(data.bill_instances)
        adhoc_bills = adhoc_bills_tally(data.bill_instances)
        income = regular_income_tally(data.income_instances)
        adhoc_income = adhoc_income_tally(data.income_instances)
        tallies = MonthTallies(
            bills=bills,
            adhoc_bills=adhoc_bills,
            total_expenses=combine_tallies(bills, adhoc_bills),
            income=income,
            adhoc_income=adhoc_income,
            total_income=combine_tallies(income, adhoc_income),
        )

        breakdown = build_breakdown(data)
        return DetailedMonth(
            month=key.slug,
            is_read_only=data.is_read_only,
            bill_sections=bill_sections,
            income_sections=income_sections,
            tallies=tallies,
            leftover=breakdown.leftover,
            leftover_breakdown=breakdown,
            bank_balances=data.bank_balance_map,
            last_updated=data.updated_at,
        )

    def describe_instance(
        self, kind: Union[str, EntryType], instance: Instance
    ) -> Union[BillDetail, IncomeDetail]:
        entry_type = parse_entry_type(kind)
        sources = self.store.payment_sources_by_id()
        if entry_type == EntryType.bill:
            return detail_bill(
                instance, self.store.entities_by_id(entry_type), sources, self._today()
            )
        return detail_income(
            instance, self.store.entities_by_id(entry_type), sources, self._today()
        )
