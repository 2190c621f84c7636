from models import MonthlyData
from schemas import LeftoverBreakdown
from tally import effective_bill_amount, effective_income_amount, has_recorded_activity


def build_breakdown(data: MonthlyData) -> LeftoverBreakdown:
    """Leftover for one loaded month.

    leftover = bank balances + actual income - (actual bills + variable
    expenses + free-flowing expenses). Ad-hoc and regular instances count
    alike. ``has_actuals`` is False while the month holds nothing but generated
    defaults; the figures are computed either way.
    """
    bank_balances = sum(data.bank_balance_map.values())
    actual_income = sum(effective_income_amount(i) for i in data.income_instances)
    actual_bills = sum(effective_bill_amount(b) for b in data.bill_instances)
    variable_expenses = sum(e.amount for e in data.variable_expenses)
    free_flowing_expenses = sum(e.amount for e in data.free_flowing_expenses)
    total_expenses = actual_bills + variable_expenses + free_flowing_expenses

    has_actuals = any(
        has_recorded_activity(instance)
        for instance in [*data.bill_instances, *data.income_instances]
    )

    return LeftoverBreakdown(
        bank_balances=bank_balances,
        actual_income=actual_income,
        actual_bills=actual_bills,
        variable_expenses=variable_expenses,
        free_flowing_expenses=free_flowing_expenses,
        total_expenses=total_expenses,
        leftover=bank_balances + actual_income - total_expenses,
        has_actuals=has_actuals,
    )
