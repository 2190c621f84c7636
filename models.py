from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class EntryType(str, Enum):
    bill = "bill"
    income = "income"


class BillingPeriod(str, Enum):
    monthly = "monthly"
    bi_weekly = "bi_weekly"
    weekly = "weekly"
    semi_annually = "semi_annually"


class PaymentSourceType(str, Enum):
    bank_account = "bank_account"
    credit_card = "credit_card"
    cash = "cash"


class UndoEntityType(str, Enum):
    bill = "bill"
    income = "income"
    variable_expense = "variable_expense"
    free_flowing_expense = "free_flowing_expense"
    payment_source = "payment_source"
    bill_instance = "bill_instance"
    income_instance = "income_instance"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[EntryType] = mapped_column(SAEnum(EntryType), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#3b82f6")
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_predefined: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("type", "name", name="uq_category_type_name"),
    )


class PaymentSource(Base, TimestampMixin):
    __tablename__ = "payment_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[PaymentSourceType] = mapped_column(
        SAEnum(PaymentSourceType), nullable=False
    )
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Bill(Base, TimestampMixin):
    __tablename__ = "bills"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    billing_period: Mapped[BillingPeriod] = mapped_column(
        SAEnum(BillingPeriod), nullable=False, default=BillingPeriod.monthly
    )
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer)
    recurrence_week: Mapped[Optional[int]] = mapped_column(Integer)
    recurrence_day: Mapped[Optional[int]] = mapped_column(Integer)
    due_day: Mapped[Optional[int]] = mapped_column(Integer)
    payment_source_id: Mapped[int] = mapped_column(
        ForeignKey("payment_sources.id"), nullable=False
    )
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    payment_source: Mapped["PaymentSource"] = relationship("PaymentSource")
    category: Mapped[Optional["Category"]] = relationship("Category")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_bill_amount_positive"),
    )


class Income(Base, TimestampMixin):
    __tablename__ = "incomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    billing_period: Mapped[BillingPeriod] = mapped_column(
        SAEnum(BillingPeriod), nullable=False, default=BillingPeriod.monthly
    )
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer)
    recurrence_week: Mapped[Optional[int]] = mapped_column(Integer)
    recurrence_day: Mapped[Optional[int]] = mapped_column(Integer)
    due_day: Mapped[Optional[int]] = mapped_column(Integer)
    payment_source_id: Mapped[int] = mapped_column(
        ForeignKey("payment_sources.id"), nullable=False
    )
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    payment_source: Mapped["PaymentSource"] = relationship("PaymentSource")
    category: Mapped[Optional["Category"]] = relationship("Category")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_income_amount_positive"),
    )


class MonthlyData(Base, TimestampMixin):
    __tablename__ = "monthly_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    month: Mapped[str] = mapped_column(String(7), nullable=False, unique=True)
    is_read_only: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    bill_instances: Mapped[list["BillInstance"]] = relationship(
        "BillInstance",
        back_populates="monthly_data",
        cascade="all, delete-orphan",
        order_by="BillInstance.id",
    )
    income_instances: Mapped[list["IncomeInstance"]] = relationship(
        "IncomeInstance",
        back_populates="monthly_data",
        cascade="all, delete-orphan",
        order_by="IncomeInstance.id",
    )
    variable_expenses: Mapped[list["VariableExpense"]] = relationship(
        "VariableExpense",
        back_populates="monthly_data",
        cascade="all, delete-orphan",
        order_by="VariableExpense.id",
    )
    free_flowing_expenses: Mapped[list["FreeFlowingExpense"]] = relationship(
        "FreeFlowingExpense",
        back_populates="monthly_data",
        cascade="all, delete-orphan",
        order_by="FreeFlowingExpense.id",
    )
    bank_balances: Mapped[list["BankBalance"]] = relationship(
        "BankBalance",
        back_populates="monthly_data",
        cascade="all, delete-orphan",
        order_by="BankBalance.payment_source_id",
    )

    @property
    def bank_balance_map(self) -> dict[int, int]:
        return {row.payment_source_id: row.balance for row in self.bank_balances}


class BillInstance(Base, TimestampMixin):
    __tablename__ = "bill_instances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    monthly_data_id: Mapped[int] = mapped_column(
        ForeignKey("monthly_data.id", ondelete="CASCADE"), nullable=False
    )
    bill_id: Mapped[Optional[int]] = mapped_column(ForeignKey("bills.id"))
    expected_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    actual_amount: Mapped[Optional[int]] = mapped_column(Integer)
    is_default: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_adhoc: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    closed_date: Mapped[Optional[date]] = mapped_column(Date)
    # Ad-hoc instances carry these directly; regular ones resolve them via the bill.
    name: Mapped[Optional[str]] = mapped_column(String(120))
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    payment_source_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_sources.id")
    )

    monthly_data: Mapped["MonthlyData"] = relationship(
        "MonthlyData", back_populates="bill_instances"
    )
    bill: Mapped[Optional["Bill"]] = relationship("Bill")
    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="bill_instance",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )

    __table_args__ = (
        CheckConstraint("expected_amount >= 0", name="ck_bill_instance_expected"),
        CheckConstraint(
            "actual_amount IS NULL OR actual_amount >= 0",
            name="ck_bill_instance_actual",
        ),
        Index("ix_bill_instances_month", "monthly_data_id"),
    )

    @property
    def month(self) -> Optional[str]:
        return self.monthly_data.month if self.monthly_data else None


class IncomeInstance(Base, TimestampMixin):
    __tablename__ = "income_instances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    monthly_data_id: Mapped[int] = mapped_column(
        ForeignKey("monthly_data.id", ondelete="CASCADE"), nullable=False
    )
    income_id: Mapped[Optional[int]] = mapped_column(ForeignKey("incomes.id"))
    expected_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    actual_amount: Mapped[Optional[int]] = mapped_column(Integer)
    is_default: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_adhoc: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    closed_date: Mapped[Optional[date]] = mapped_column(Date)
    name: Mapped[Optional[str]] = mapped_column(String(120))
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    payment_source_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_sources.id")
    )

    monthly_data: Mapped["MonthlyData"] = relationship(
        "MonthlyData", back_populates="income_instances"
    )
    income: Mapped[Optional["Income"]] = relationship("Income")
    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="income_instance",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )

    __table_args__ = (
        CheckConstraint("expected_amount >= 0", name="ck_income_instance_expected"),
        CheckConstraint(
            "actual_amount IS NULL OR actual_amount >= 0",
            name="ck_income_instance_actual",
        ),
        Index("ix_income_instances_month", "monthly_data_id"),
    )

    @property
    def month(self) -> Optional[str]:
        return self.monthly_data.month if self.monthly_data else None


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    bill_instance_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("bill_instances.id", ondelete="CASCADE")
    )
    income_instance_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("income_instances.id", ondelete="CASCADE")
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    bill_instance: Mapped[Optional["BillInstance"]] = relationship(
        "BillInstance", back_populates="payments"
    )
    income_instance: Mapped[Optional["IncomeInstance"]] = relationship(
        "IncomeInstance", back_populates="payments"
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        CheckConstraint(
            "(bill_instance_id IS NULL) <> (income_instance_id IS NULL)",
            name="ck_payment_single_owner",
        ),
    )


class VariableExpense(Base, TimestampMixin):
    __tablename__ = "variable_expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    monthly_data_id: Mapped[int] = mapped_column(
        ForeignKey("monthly_data.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_source_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_sources.id")
    )

    monthly_data: Mapped["MonthlyData"] = relationship(
        "MonthlyData", back_populates="variable_expenses"
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_variable_expense_amount_positive"),
    )


class FreeFlowingExpense(Base, TimestampMixin):
    __tablename__ = "free_flowing_expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    monthly_data_id: Mapped[int] = mapped_column(
        ForeignKey("monthly_data.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_source_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_sources.id")
    )

    monthly_data: Mapped["MonthlyData"] = relationship(
        "MonthlyData", back_populates="free_flowing_expenses"
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_free_flowing_amount_positive"),
    )


class BankBalance(Base):
    __tablename__ = "bank_balances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    monthly_data_id: Mapped[int] = mapped_column(
        ForeignKey("monthly_data.id", ondelete="CASCADE"), nullable=False
    )
    payment_source_id: Mapped[int] = mapped_column(
        ForeignKey("payment_sources.id"), nullable=False
    )
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    monthly_data: Mapped["MonthlyData"] = relationship(
        "MonthlyData", back_populates="bank_balances"
    )

    __table_args__ = (
        UniqueConstraint(
            "monthly_data_id", "payment_source_id", name="uq_bank_balance_month_source"
        ),
    )


class UndoEntry(Base):
    __tablename__ = "undo_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    entity_type: Mapped[UndoEntityType] = mapped_column(
        SAEnum(UndoEntityType), nullable=False
    )
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text)
    new_value: Mapped[Optional[str]] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (Index("ix_undo_entries_timestamp", "timestamp"),)
