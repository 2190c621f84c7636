from datetime import date

import pytest
from sqlalchemy import select

from errors import ConflictError, NotFoundError, ReadOnlyMonthError, ValidationError
from models import Bill, MonthlyData, PaymentSource, PaymentSourceType
from months import MonthKey, clamp_day, month_of, parse_month
from schemas import ExpenseIn
from services import MonthService


def test_parse_month_accepts_canonical_keys():
    assert parse_month("2025-01") == MonthKey(2025, 1)
    assert str(parse_month(" 2024-12 ")) == "2024-12"


@pytest.mark.parametrize("value", ["", "2025-1", "2025-13", "25-01", "2025/01", None])
def test_parse_month_rejects_malformed_keys(value):
    with pytest.raises(ValidationError):
        parse_month(value)


def test_month_key_navigation():
    key = MonthKey(2024, 12)
    assert key.next() == MonthKey(2025, 1)
    assert MonthKey(2025, 1).previous() == key
    assert MonthKey(2024, 2).days == 29
    assert key.contains(date(2024, 12, 31))
    assert month_of(date(2025, 3, 9)).slug == "2025-03"
    assert clamp_day(MonthKey(2025, 2), 31) == date(2025, 2, 28)


def test_generate_builds_instances_from_active_definitions(seeded):
    data = MonthService(seeded).generate("2025-01")

    bills = {b.bill.name: b for b in data.bill_instances}
    assert set(bills) == {"Rent", "Power", "Gym"}
    assert bills["Rent"].expected_amount == 120000
    assert bills["Rent"].due_date == date(2025, 1, 1)
    assert bills["Power"].due_date == date(2025, 1, 15)
    assert bills["Gym"].expected_amount == 5000
    assert all(b.is_default and not b.is_paid and not b.is_closed for b in bills.values())

    incomes = {i.income.name: i.expected_amount for i in data.income_instances}
    assert incomes == {"Salary": 300000, "Bonus": 50000}
    assert data.bank_balance_map == {1: 100000}
    assert data.is_read_only is False


def test_generate_skips_inactive_and_off_cycle_definitions(seeded):
    rent = seeded.scalar(select(Bill).where(Bill.name == "Rent"))
    rent.is_active = False
    seeded.commit()

    data = MonthService(seeded).generate("2025-02")

    assert {b.bill.name for b in data.bill_instances} == {"Power", "Gym"}
    assert [i.income.name for i in data.income_instances] == ["Salary"]


def test_generate_twice_conflicts(seeded):
    service = MonthService(seeded)
    service.generate("2025-01")
    with pytest.raises(ConflictError):
        service.generate("2025-01")


def test_ensure_generates_only_once(seeded):
    service = MonthService(seeded)
    assert service.ensure("2025-01") is True
    assert service.ensure("2025-01") is False
    assert service.exists("2025-01")


def test_get_missing_month_is_not_found(seeded):
    with pytest.raises(NotFoundError):
        MonthService(seeded).get("2030-01")


def test_update_bank_balances(seeded):
    service = MonthService(seeded)
    service.generate("2025-01")
    savings = PaymentSource(name="Savings", type=PaymentSourceType.bank_account)
    seeded.add(savings)
    seeded.commit()

    data = service.update_bank_balances("2025-01", {1: 90000, savings.id: 25000})

    assert data.bank_balance_map == {1: 90000, savings.id: 25000}
    with pytest.raises(NotFoundError):
        service.update_bank_balances("2025-01", {999: 1})


def test_expenses_are_attached_to_the_month(seeded):
    service = MonthService(seeded)
    service.generate("2025-01")

    service.add_variable_expense("2025-01", ExpenseIn(name=" Groceries ", amount=4500))
    service.add_free_flowing_expense("2025-01", ExpenseIn(name="Coffee", amount=350))

    data = service.get("2025-01")
    assert [(e.name, e.amount) for e in data.variable_expenses] == [("Groceries", 4500)]
    assert [(e.name, e.amount) for e in data.free_flowing_expenses] == [("Coffee", 350)]


def test_locked_month_rejects_changes_until_unlocked(seeded):
    service = MonthService(seeded)
    service.generate("2025-01")
    service.set_read_only("2025-01", True)

    with pytest.raises(ReadOnlyMonthError) as excinfo:
        service.update_bank_balances("2025-01", {1: 1})
    assert excinfo.value.month == "2025-01"
    with pytest.raises(ReadOnlyMonthError):
        service.add_variable_expense("2025-01", ExpenseIn(name="Taxi", amount=900))
    with pytest.raises(ReadOnlyMonthError):
        service.delete("2025-01")
    assert service.get("2025-01").bank_balance_map == {1: 100000}

    service.set_read_only("2025-01", False)
    service.update_bank_balances("2025-01", {1: 1})
    assert service.get("2025-01").bank_balance_map == {1: 1}


def test_delete_removes_month_and_children(seeded):
    service = MonthService(seeded)
    service.generate("2025-01")
    service.delete("2025-01")

    assert seeded.scalar(select(MonthlyData)) is None
    assert not service.exists("2025-01")


def test_rejected_bank_balance_update_changes_nothing(seeded):
    service = MonthService(seeded)
    service.generate("2025-01")

    with pytest.raises(NotFoundError):
        service.update_bank_balances("2025-01", {1: 1, 999: 5})
    with pytest.raises(ValidationError):
        service.update_bank_balances("2025-01", {1: 2, 2: "lots"})
    service.add_variable_expense("2025-01", ExpenseIn(name="Taxi", amount=900))

    assert service.get("2025-01").bank_balance_map == {1: 100000}


def test_expense_with_unknown_payment_source_is_not_found(seeded):
    service = MonthService(seeded)
    service.generate("2025-01")

    with pytest.raises(NotFoundError):
        service.add_variable_expense(
            "2025-01", ExpenseIn(name="Taxi", amount=900, payment_source_id=42)
        )
    with pytest.raises(NotFoundError):
        service.add_free_flowing_expense(
            "2025-01", ExpenseIn(name="Coffee", amount=350, payment_source_id=42)
        )
    expense = service.add_variable_expense(
        "2025-01", ExpenseIn(name="Taxi", amount=900, payment_source_id=1)
    )

    assert expense.payment_source_id == 1
    data = service.get("2025-01")
    assert [e.name for e in data.variable_expenses] == ["Taxi"]
    assert data.free_flowing_expenses == []
