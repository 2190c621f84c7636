from datetime import date

from models import Bill, BillingPeriod, Income
from months import MonthKey
from recurrence import (
    due_date_for,
    expected_amount_for,
    nth_weekday,
    occurrences_in_month,
)


JAN = MonthKey(2025, 1)
FEB = MonthKey(2025, 2)


def _bill(**kwargs) -> Bill:
    kwargs.setdefault("billing_period", BillingPeriod.monthly)
    return Bill(name="Test", amount=1000, payment_source_id=1, **kwargs)


def test_nth_weekday_counts_from_sunday():
    assert nth_weekday(JAN, 1, 0) == date(2025, 1, 5)
    assert nth_weekday(JAN, 2, 2) == date(2025, 1, 14)
    assert nth_weekday(JAN, 5, 0) == date(2025, 1, 26)
    assert nth_weekday(FEB, 5, 5) == date(2025, 2, 28)


def test_monthly_day_is_clamped_to_month_length():
    bill = _bill(day_of_month=31)
    assert occurrences_in_month(bill, FEB) == [date(2025, 2, 28)]
    assert due_date_for(bill, FEB) == date(2025, 2, 28)


def test_monthly_by_weekday_rule():
    bill = _bill(recurrence_week=1, recurrence_day=1)
    assert occurrences_in_month(bill, FEB) == [date(2025, 2, 3)]


def test_monthly_falls_back_to_start_day_then_first():
    assert occurrences_in_month(_bill(start_date=date(2024, 6, 17)), JAN) == [
        date(2025, 1, 17)
    ]
    assert occurrences_in_month(_bill(), JAN) == [date(2025, 1, 1)]


def test_nothing_before_start_date():
    bill = _bill(day_of_month=5, start_date=date(2025, 3, 1))
    assert occurrences_in_month(bill, JAN) == []
    assert expected_amount_for(bill, JAN) == 0
    assert due_date_for(bill, JAN) is None


def test_weekly_multiplies_expected_amount():
    bill = _bill(billing_period=BillingPeriod.weekly, start_date=date(2025, 1, 3))
    assert len(occurrences_in_month(bill, JAN)) == 5
    assert expected_amount_for(bill, JAN) == 5000
    assert expected_amount_for(bill, FEB) == 4000


def test_bi_weekly_steps_from_start_date():
    income = Income(
        name="Pay",
        amount=150000,
        billing_period=BillingPeriod.bi_weekly,
        start_date=date(2024, 12, 20),
        payment_source_id=1,
    )
    assert occurrences_in_month(income, JAN) == [
        date(2025, 1, 3),
        date(2025, 1, 17),
        date(2025, 1, 31),
    ]
    assert expected_amount_for(income, JAN) == 450000
    assert due_date_for(income, JAN) == date(2025, 1, 3)


def test_semi_annual_only_every_sixth_month():
    bill = _bill(billing_period=BillingPeriod.semi_annually, start_date=date(2024, 7, 31))
    assert occurrences_in_month(bill, JAN) == [date(2025, 1, 31)]
    assert occurrences_in_month(bill, FEB) == []
    assert occurrences_in_month(bill, MonthKey(2024, 1)) == []


def test_periodic_without_start_date_is_treated_as_monthly(caplog):
    bill = _bill(billing_period=BillingPeriod.weekly, day_of_month=9)
    assert occurrences_in_month(bill, JAN) == [date(2025, 1, 9)]
    assert "recurrence_missing_start" in caplog.text


def test_due_day_overrides_occurrence():
    bill = _bill(day_of_month=3, due_day=20)
    assert due_date_for(bill, JAN) == date(2025, 1, 20)
