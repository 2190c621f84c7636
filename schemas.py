import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models import BillingPeriod, EntryType, PaymentSourceType


class AmountIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: int = Field(..., ge=0)


class TogglePaidIn(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    actual_amount: Optional[int] = Field(default=None, ge=0, alias="actualAmount")


class PaymentIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: int = Field(..., gt=0)
    date: date


class AdhocInstanceIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=120)
    amount: int = Field(..., ge=0)
    category_id: Optional[int] = None
    payment_source_id: Optional[int] = None
    date: Optional[dt.date] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name cannot be empty")
        return value


class ExpenseIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=120)
    amount: int = Field(..., ge=0)
    payment_source_id: Optional[int] = None


class BankBalancesIn(BaseModel):
    balances: dict[int, int]


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: EntryType
    color: str = Field(default="#3b82f6", pattern=r"^#[0-9a-fA-F]{6}$")
    sort_order: int = Field(default=0, ge=0)


class PaymentSourceRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    name: str = Field(..., min_length=1, max_length=100)
    type: PaymentSourceType
    balance: int = 0
    is_active: bool = True


class CategoryRecord(CategoryIn):
    model_config = ConfigDict(extra="forbid")

    id: int
    is_predefined: bool = False


class RecurringRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    name: str = Field(..., min_length=1, max_length=120)
    amount: int = Field(..., ge=0)
    billing_period: BillingPeriod = BillingPeriod.monthly
    start_date: Optional[date] = None
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    recurrence_week: Optional[int] = Field(default=None, ge=1, le=5)
    recurrence_day: Optional[int] = Field(default=None, ge=0, le=6)
    due_day: Optional[int] = Field(default=None, ge=1, le=31)
    payment_source_id: int
    category_id: Optional[int] = None
    is_active: bool = True


class PaymentRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: int = Field(..., gt=0)
    date: date
    created_at: Optional[datetime] = None


class InstanceRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    parent_id: Optional[int] = None
    expected_amount: int = Field(..., ge=0)
    actual_amount: Optional[int] = Field(default=None, ge=0)
    payments: list[PaymentRecord] = Field(default_factory=list)
    is_default: bool = True
    is_paid: bool = False
    is_closed: bool = False
    is_adhoc: bool = False
    due_date: Optional[date] = None
    closed_date: Optional[date] = None
    name: Optional[str] = Field(default=None, max_length=120)
    category_id: Optional[int] = None
    payment_source_id: Optional[int] = None


class ExpenseRecord(ExpenseIn):
    pass


class MonthRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    month: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    is_read_only: bool = False
    bill_instances: list[InstanceRecord] = Field(default_factory=list)
    income_instances: list[InstanceRecord] = Field(default_factory=list)
    variable_expenses: list[ExpenseRecord] = Field(default_factory=list)
    free_flowing_expenses: list[ExpenseRecord] = Field(default_factory=list)
    bank_balances: dict[int, int] = Field(default_factory=dict)


class BackupFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    export_date: datetime
    categories: list[CategoryRecord] = Field(default_factory=list)
    payment_sources: list[PaymentSourceRecord] = Field(default_factory=list)
    bills: list[RecurringRecord] = Field(default_factory=list)
    incomes: list[RecurringRecord] = Field(default_factory=list)
    months: list[MonthRecord] = Field(default_factory=list)


class LeftoverBreakdown(BaseModel):
    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    bank_balances: int
    actual_income: int
    actual_bills: int
    variable_expenses: int
    free_flowing_expenses: int
    total_expenses: int
    leftover: int
    has_actuals: bool
