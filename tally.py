"""Amount resolution and section tallies for bill and income instances.

Everything here is a pure function over already-loaded instances: nothing is
read from or written to the database, and every function is total for
instances whose amounts are non-negative integers (cents).

Bills and incomes resolve their amounts differently. A bill with recorded
payments uses the payment sum; an income only ever looks at ``actual_amount``,
even when payments have been recorded against it.
"""

from dataclasses import dataclass
from typing import Iterable, Union

from models import BillInstance, IncomeInstance


_Instance = Union[BillInstance, IncomeInstance]


@dataclass(frozen=True)
class SectionTally:
    expected: int = 0
    actual: int = 0
    remaining: int = 0

    def __add__(self, other: "SectionTally") -> "SectionTally":
        return combine_tallies(self, other)


@dataclass(frozen=True)
class Subtotal:
    expected: int = 0
    actual: int = 0


EMPTY_TALLY = SectionTally()


def payments_total(instance: _Instance) -> int:
    return sum(p.amount for p in (instance.payments or ()))


def effective_bill_amount(bill: _Instance) -> int:
    if bill.payments:
        return payments_total(bill)
    return bill.actual_amount if bill.actual_amount is not None else 0


def remaining_bill_amount(bill: _Instance) -> int:
    if bill.payments:
        return max(0, bill.expected_amount - payments_total(bill))
    if not bill.is_paid and bill.actual_amount is None:
        return bill.expected_amount
    return 0


def effective_income_amount(income: _Instance) -> int:
    return income.actual_amount if income.actual_amount is not None else 0


def remaining_income_amount(income: _Instance) -> int:
    # No payments branch for income: only "not received and nothing entered".
    if not income.is_paid and income.actual_amount is None:
        return income.expected_amount
    return 0


def combine_tallies(a: SectionTally, b: SectionTally) -> SectionTally:
    return SectionTally(
        expected=a.expected + b.expected,
        actual=a.actual + b.actual,
        remaining=a.remaining + b.remaining,
    )


def sum_tallies(tallies: Iterable[SectionTally]) -> SectionTally:
    total = EMPTY_TALLY
    for item in tallies:
        total = combine_tallies(total, item)
    return total


def bills_tally(bills: Iterable[_Instance]) -> SectionTally:
    expected = actual = remaining = 0
    for bill in bills:
        expected += bill.expected_amount
        actual += effective_bill_amount(bill)
        remaining += remaining_bill_amount(bill)
    return SectionTally(expected=expected, actual=actual, remaining=remaining)


def income_tally(incomes: Iterable[_Instance]) -> SectionTally:
    expected = actual = remaining = 0
    for income in incomes:
        expected += income.expected_amount
        actual += effective_income_amount(income)
        remaining += remaining_income_amount(income)
    return SectionTally(expected=expected, actual=actual, remaining=remaining)


def regular_bills_tally(bills: Iterable[_Instance]) -> SectionTally:
    return bills_tally(b for b in bills if not b.is_adhoc)


def regular_income_tally(incomes: Iterable[_Instance]) -> SectionTally:
    return income_tally(i for i in incomes if not i.is_adhoc)


def adhoc_bills_tally(bills: Iterable[_Instance]) -> SectionTally:
    # Ad-hoc entries have no expectation, so expected and remaining stay zero.
    actual = sum(effective_bill_amount(b) for b in bills if b.is_adhoc)
    return SectionTally(expected=0, actual=actual, remaining=0)


def adhoc_income_tally(incomes: Iterable[_Instance]) -> SectionTally:
    actual = sum(effective_income_amount(i) for i in incomes if i.is_adhoc)
    return SectionTally(expected=0, actual=actual, remaining=0)


def bill_subtotal(bills: Iterable[_Instance]) -> Subtotal:
    expected = actual = 0
    for bill in bills:
        expected += bill.expected_amount
        actual += effective_bill_amount(bill)
    return Subtotal(expected=expected, actual=actual)


def income_subtotal(incomes: Iterable[_Instance]) -> Subtotal:
    expected = actual = 0
    for income in incomes:
        expected += income.expected_amount
        actual += effective_income_amount(income)
    return Subtotal(expected=expected, actual=actual)


def has_recorded_activity(instance: _Instance) -> bool:
    """True once anything beyond the generated defaults has been recorded."""
    return bool(
        instance.payments
        or instance.actual_amount is not None
        or instance.is_closed
        or instance.is_paid
    )
