from datetime import date

from models import BillInstance, IncomeInstance, Payment
from tally import (
    EMPTY_TALLY,
    SectionTally,
    adhoc_bills_tally,
    adhoc_income_tally,
    bills_tally,
    combine_tallies,
    effective_bill_amount,
    effective_income_amount,
    has_recorded_activity,
    income_tally,
    regular_bills_tally,
    remaining_bill_amount,
    remaining_income_amount,
    sum_tallies,
)


def _bill(expected: int, *, payments=(), actual=None, paid=False, adhoc=False):
    return BillInstance(
        expected_amount=expected,
        actual_amount=actual,
        is_paid=paid,
        is_closed=False,
        is_adhoc=adhoc,
        payments=[Payment(amount=a, date=date(2025, 1, 10)) for a in payments],
    )


def _income(expected: int, *, payments=(), actual=None, paid=False, adhoc=False):
    return IncomeInstance(
        expected_amount=expected,
        actual_amount=actual,
        is_paid=paid,
        is_closed=False,
        is_adhoc=adhoc,
        payments=[Payment(amount=a, date=date(2025, 1, 10)) for a in payments],
    )


def test_partial_payments_drive_bill_amounts():
    bill = _bill(10000, payments=[4000, 3000])
    assert effective_bill_amount(bill) == 7000
    assert remaining_bill_amount(bill) == 3000


def test_unpaid_bill_without_entries_is_fully_remaining():
    bill = _bill(5000)
    assert effective_bill_amount(bill) == 0
    assert remaining_bill_amount(bill) == 5000


def test_payments_take_precedence_over_actual_amount():
    bill = _bill(10000, payments=[2500], actual=9000)
    assert effective_bill_amount(bill) == 2500
    assert remaining_bill_amount(bill) == 7500


def test_overpaid_bill_never_has_negative_remaining():
    bill = _bill(1000, payments=[800, 700])
    assert effective_bill_amount(bill) == 1500
    assert remaining_bill_amount(bill) == 0


def test_paid_or_entered_bill_has_nothing_remaining():
    assert remaining_bill_amount(_bill(5000, paid=True)) == 0
    assert remaining_bill_amount(_bill(5000, actual=0)) == 0
    assert effective_bill_amount(_bill(5000, actual=4200)) == 4200


def test_income_ignores_payments():
    income = _income(200000, payments=[50000])
    assert effective_income_amount(income) == 0
    assert remaining_income_amount(income) == 200000


def test_received_income_has_nothing_remaining():
    income = _income(200000, actual=195000)
    assert effective_income_amount(income) == 195000
    assert remaining_income_amount(income) == 0
    assert remaining_income_amount(_income(200000, paid=True)) == 0


def test_adhoc_bill_contributes_actual_only():
    adhoc = _bill(0, actual=1500, paid=True, adhoc=True)
    assert adhoc_bills_tally([adhoc]) == SectionTally(expected=0, actual=1500, remaining=0)


def test_adhoc_tallies_skip_regular_instances():
    regular = _bill(5000)
    adhoc = _bill(0, actual=1500, paid=True, adhoc=True)
    assert adhoc_bills_tally([regular, adhoc]).actual == 1500
    assert regular_bills_tally([regular, adhoc]) == SectionTally(5000, 0, 5000)

    incomes = [_income(1000), _income(0, actual=250, paid=True, adhoc=True)]
    assert adhoc_income_tally(incomes) == SectionTally(0, 250, 0)


def test_bills_tally_sums_each_field():
    bills = [_bill(10000, payments=[4000, 3000]), _bill(5000), _bill(2000, paid=True)]
    assert bills_tally(bills) == SectionTally(expected=17000, actual=7000, remaining=8000)


def test_income_tally_sums_each_field():
    incomes = [_income(300000, actual=310000), _income(5000)]
    assert income_tally(incomes) == SectionTally(
        expected=305000, actual=310000, remaining=5000
    )


def test_empty_inputs_give_empty_tallies():
    assert bills_tally([]) == EMPTY_TALLY
    assert income_tally([]) == EMPTY_TALLY
    assert adhoc_bills_tally([]) == EMPTY_TALLY
    assert sum_tallies([]) == EMPTY_TALLY


def test_combine_tallies_is_associative_with_identity():
    a = SectionTally(1, 2, 3)
    b = SectionTally(10, 20, 30)
    c = SectionTally(100, 200, 300)
    assert combine_tallies(combine_tallies(a, b), c) == combine_tallies(
        a, combine_tallies(b, c)
    )
    assert combine_tallies(a, EMPTY_TALLY) == a
    assert a + b == SectionTally(11, 22, 33)
    assert sum_tallies([a, b, c]) == SectionTally(111, 222, 333)


def test_has_recorded_activity():
    assert not has_recorded_activity(_bill(5000))
    assert has_recorded_activity(_bill(5000, payments=[100]))
    assert has_recorded_activity(_bill(5000, actual=0))
    assert has_recorded_activity(_bill(5000, paid=True))
