from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Mapping, Optional, Union

from models import (
    Bill,
    BillInstance,
    Category,
    Income,
    IncomeInstance,
    Payment,
    PaymentSource,
)
from tally import (
    Subtotal,
    bill_subtotal,
    effective_bill_amount,
    effective_income_amount,
    income_subtotal,
    remaining_bill_amount,
    remaining_income_amount,
)


UNCATEGORIZED_NAME = "Uncategorized"
UNCATEGORIZED_COLOR = "#6b7280"
UNKNOWN_BILL_NAME = "Unknown Bill"
UNKNOWN_INCOME_NAME = "Unknown Income"


@dataclass(frozen=True)
class SourceRef:
    id: int
    name: str


@dataclass(frozen=True)
class PaymentView:
    id: Optional[int]
    amount: int
    date: date
    created_at: Optional[datetime]


@dataclass(frozen=True)
class BillDetail:
    id: int
    bill_id: Optional[int]
    name: str
    expected_amount: int
    actual_amount: Optional[int]
    payments: list[PaymentView]
    total_paid: int
    remaining: int
    is_paid: bool
    is_closed: bool
    is_adhoc: bool
    due_date: Optional[date]
    closed_date: Optional[date]
    is_overdue: bool
    days_overdue: Optional[int]
    payment_source: Optional[SourceRef]
    category_id: Optional[int]


@dataclass(frozen=True)
class IncomeDetail:
    id: int
    income_id: Optional[int]
    name: str
    expected_amount: int
    actual_amount: Optional[int]
    payments: list[PaymentView]
    total_received: int
    remaining: int
    is_paid: bool
    is_closed: bool
    is_adhoc: bool
    due_date: Optional[date]
    closed_date: Optional[date]
    is_overdue: bool
    payment_source: Optional[SourceRef]
    category_id: Optional[int]


@dataclass(frozen=True)
class SectionCategory:
    id: Optional[int]
    name: str
    color: str
    sort_order: int


@dataclass(frozen=True)
class CategorySection:
    category: SectionCategory
    items: list[Union[BillDetail, IncomeDetail]] = field(default_factory=list)
    subtotal: Subtotal = Subtotal()

    @property
    def is_uncategorized(self) -> bool:
        return self.category.id is None


UNCATEGORIZED = SectionCategory(
    id=None, name=UNCATEGORIZED_NAME, color=UNCATEGORIZED_COLOR, sort_order=0
)


def is_overdue(due_date: Optional[date], is_closed: bool, today: date) -> bool:
    return due_date is not None and today > due_date and not is_closed


def days_overdue(due_date: Optional[date], is_closed: bool, today: date) -> Optional[int]:
    if not is_overdue(due_date, is_closed, today):
        return None
    return (today - due_date).days


def resolve_category_id(
    instance: Union[BillInstance, IncomeInstance],
    parent: Optional[Union[Bill, Income]],
) -> Optional[int]:
    if instance.is_adhoc:
        return instance.category_id
    if parent is not None:
        return parent.category_id
    return instance.category_id


def resolve_payment_source(
    instance: Union[BillInstance, IncomeInstance],
    parent: Optional[Union[Bill, Income]],
    sources: Mapping[int, PaymentSource],
) -> Optional[SourceRef]:
    source_id = instance.payment_source_id
    if not instance.is_adhoc and parent is not None:
        source_id = parent.payment_source_id
    source = sources.get(source_id) if source_id is not None else None
    if source is None:
        return None
    return SourceRef(id=source.id, name=source.name)


def _payment_views(payments: Iterable[Payment]) -> list[PaymentView]:
    return [
        PaymentView(id=p.id, amount=p.amount, date=p.date, created_at=p.created_at)
        for p in payments or ()
    ]


def detail_bill(
    instance: BillInstance,
    bills: Mapping[int, Bill],
    sources: Mapping[int, PaymentSource],
    today: date,
) -> BillDetail:
    parent = bills.get(instance.bill_id) if instance.bill_id is not None else None
    closed = bool(instance.is_closed)
    return BillDetail(
        id=instance.id,
        bill_id=instance.bill_id,
        name=instance.name or (parent.name if parent else None) or UNKNOWN_BILL_NAME,
        expected_amount=instance.expected_amount,
        actual_amount=instance.actual_amount,
        payments=_payment_views(instance.payments),
        total_paid=effective_bill_amount(instance),
        remaining=remaining_bill_amount(instance),
        is_paid=bool(instance.is_paid),
        is_closed=closed,
        is_adhoc=bool(instance.is_adhoc),
        due_date=instance.due_date,
        closed_date=instance.closed_date,
        is_overdue=is_overdue(instance.due_date, closed, today),
        days_overdue=days_overdue(instance.due_date, closed, today),
        payment_source=resolve_payment_source(instance, parent, sources),
        category_id=resolve_category_id(instance, parent),
    )


def detail_income(
    instance: IncomeInstance,
    incomes: Mapping[int, Income],
    sources: Mapping[int, PaymentSource],
    today: date,
) -> IncomeDetail:
    parent = incomes.get(instance.income_id) if instance.income_id is not None else None
    closed = bool(instance.is_closed)
    return IncomeDetail(
        id=instance.id,
        income_id=instance.income_id,
        name=instance.name or (parent.name if parent else None) or UNKNOWN_INCOME_NAME,
        expected_amount=instance.expected_amount,
        actual_amount=instance.actual_amount,
        payments=_payment_views(instance.payments),
        total_received=effective_income_amount(instance),
        remaining=remaining_income_amount(instance),
        is_paid=bool(instance.is_paid),
        is_closed=closed,
        is_adhoc=bool(instance.is_adhoc),
        due_date=instance.due_date,
        closed_date=instance.closed_date,
        is_overdue=is_overdue(instance.due_date, closed, today),
        payment_source=resolve_payment_source(instance, parent, sources),
        category_id=resolve_category_id(instance, parent),
    )


def _build_sections(
    pairs: list[tuple[Optional[int], object, Union[BillInstance, IncomeInstance]]],
    categories: Iterable[Category],
    subtotal_fn,
) -> list[CategorySection]:
    known = {c.id: c for c in categories}
    details: dict[Optional[int], list] = defaultdict(list)
    raw: dict[Optional[int], list] = defaultdict(list)
    for category_id, detail, instance in pairs:
        key = category_id if category_id in known else None
        details[key].append(detail)
        raw[key].append(instance)

    ordered = sorted(
        (cid for cid in details if cid is not None),
        key=lambda cid: (known[cid].sort_order, known[cid].name),
    )
    sections = []
    for cid in ordered:
        category = known[cid]
        sections.append(
            CategorySection(
                category=SectionCategory(
                    id=category.id,
                    name=category.name,
                    color=category.color,
                    sort_order=category.sort_order,
                ),
                items=details[cid],
                subtotal=subtotal_fn(raw[cid]),
            )
        )
    if None in details:
        sections.append(
            CategorySection(
                category=UNCATEGORIZED,
                items=details[None],
                subtotal=subtotal_fn(raw[None]),
            )
        )
    return sections


def build_bill_sections(
    instances: Iterable[BillInstance],
    categories: Iterable[Category],
    bills: Mapping[int, Bill],
    sources: Mapping[int, PaymentSource],
    today: date,
) -> list[CategorySection]:
    pairs = []
    for instance in instances:
        detail = detail_bill(instance, bills, sources, today)
        pairs.append((detail.category_id, detail, instance))
    return _build_sections(pairs, categories, bill_subtotal)


def build_income_sections(
    instances: Iterable[IncomeInstance],
    categories: Iterable[Category],
    incomes: Mapping[int, Income],
    sources: Mapping[int, PaymentSource],
    today: date,
) -> list[CategorySection]:
    pairs = []
    for instance in instances:
        detail = detail_income(instance, incomes, sources, today)
        pairs.append((detail.category_id, detail, instance))
    return _build_sections(pairs, categories, income_subtotal)
