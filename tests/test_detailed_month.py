from datetime import date

from schemas import AdhocInstanceIn, PaymentIn
from sections import UNCATEGORIZED_NAME
from services import DetailedMonthService, InstanceService, MonthService
from tally import SectionTally


TODAY = date(2025, 1, 20)


def test_detailed_month_groups_and_tallies(seeded):
    data = MonthService(seeded).generate("2025-01")
    rent = next(b.id for b in data.bill_instances if b.bill.name == "Rent")
    instances = InstanceService(seeded, today=lambda: TODAY)
    instances.add_payment(
        "2025-01", "bill", rent, PaymentIn(amount=100000, date=date(2025, 1, 2))
    )
    instances.create_adhoc(
        "2025-01", "bill", AdhocInstanceIn(name="Plumber", amount=1500)
    )

    detailed = DetailedMonthService(seeded, today=lambda: TODAY).get_detailed_month(
        "2025-01"
    )

    assert [s.category.name for s in detailed.bill_sections] == [
        "Home",
        "Utilities",
        UNCATEGORIZED_NAME,
    ]
    uncategorized = detailed.bill_sections[-1]
    assert [item.name for item in uncategorized.items] == ["Gym", "Plumber"]
    assert [s.category.name for s in detailed.income_sections] == [
        "Salary",
        UNCATEGORIZED_NAME,
    ]

    assert detailed.tallies.bills == SectionTally(
        expected=133000, actual=100000, remaining=33000
    )
    assert detailed.tallies.adhoc_bills == SectionTally(0, 1500, 0)
    assert detailed.tallies.total_expenses == SectionTally(133000, 101500, 33000)
    assert detailed.tallies.total_income == SectionTally(350000, 0, 350000)
    assert detailed.leftover == 100000 - 101500
    assert detailed.leftover_breakdown.has_actuals is True
    assert detailed.is_read_only is False
    assert detailed.last_updated is not None


def test_overdue_flags_use_injected_today(seeded):
    MonthService(seeded).generate("2025-01")
    service = DetailedMonthService(seeded, today=lambda: TODAY)

    detailed = service.get_detailed_month("2025-01")

    items = {i.name: i for s in detailed.bill_sections for i in s.items}
    assert items["Rent"].is_overdue is True
    assert items["Rent"].days_overdue == 19
    assert items["Power"].days_overdue == 5
    assert items["Gym"].is_overdue is True


def test_describe_instance_returns_detail(seeded):
    data = MonthService(seeded).generate("2025-01")
    salary = next(i for i in data.income_instances if i.income.name == "Salary")

    detail = DetailedMonthService(seeded, today=lambda: TODAY).describe_instance(
        "income", salary
    )

    assert detail.name == "Salary"
    assert detail.remaining == 300000
    assert detail.payment_source.name == "Checking"
    assert detail.is_overdue is False
