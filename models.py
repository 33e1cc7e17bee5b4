import datetime as dt
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
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"
    transfer = "transfer"


class RecurrenceFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class CycleFrequency(str, Enum):
    monthly = "monthly"
    weekly = "weekly"


class MonthlyStartType(str, Enum):
    fixed = "fixed"
    first_weekday = "first_weekday"
    last_weekday = "last_weekday"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[Optional[str]] = mapped_column(String(40))
    icon: Mapped[Optional[str]] = mapped_column(String(16))
    initial_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_account_user_name"),
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    icon: Mapped[Optional[str]] = mapped_column(String(16))
    color: Mapped[Optional[str]] = mapped_column(String(7))

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
        CheckConstraint("type != 'transfer'", name="ck_category_not_transfer"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time: Mapped[dt.time] = mapped_column(
        Time, nullable=False, default=dt.time(0, 0)
    )
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    destination_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id")
    )
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    recurring_rule_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurring_rules.id")
    )

    account: Mapped["Account"] = relationship("Account", foreign_keys=[account_id])
    destination_account: Mapped[Optional["Account"]] = relationship(
        "Account", foreign_keys=[destination_account_id]
    )
    category: Mapped[Optional["Category"]] = relationship("Category")
    recurring_rule: Mapped[Optional["RecurringRule"]] = relationship(
        "RecurringRule", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date", "time"),
        Index("ix_transactions_user_account", "user_id", "account_id"),
        Index("ix_transactions_rule", "recurring_rule_id"),
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "(type = 'transfer' AND destination_account_id IS NOT NULL"
            " AND category_id IS NULL)"
            " OR (type != 'transfer' AND category_id IS NOT NULL"
            " AND destination_account_id IS NULL)",
            name="ck_transactions_variant_fields",
        ),
        CheckConstraint(
            "destination_account_id IS NULL OR destination_account_id != account_id",
            name="ck_transactions_distinct_transfer_accounts",
        ),
    )


class RecurringRule(Base, TimestampMixin):
    __tablename__ = "recurring_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    frequency: Mapped[RecurrenceFrequency] = mapped_column(
        SAEnum(RecurrenceFrequency), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    is_variable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_generated_date: Mapped[Optional[date]] = mapped_column(Date)

    account: Mapped["Account"] = relationship("Account")
    category: Mapped["Category"] = relationship("Category")
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="recurring_rule"
    )

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_rule_amount_positive"),
        CheckConstraint("type != 'transfer'", name="ck_rule_not_transfer"),
        Index("ix_recurring_rules_user_active", "user_id", "is_active"),
    )


class CycleSettingsRecord(Base, TimestampMixin):
    __tablename__ = "cycle_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    frequency: Mapped[CycleFrequency] = mapped_column(
        SAEnum(CycleFrequency), nullable=False, default=CycleFrequency.monthly
    )
    start_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    monthly_start_type: Mapped[Optional[MonthlyStartType]] = mapped_column(
        SAEnum(MonthlyStartType)
    )

    __table_args__ = (UniqueConstraint("user_id", name="uq_cycle_settings_user"),)


class Budget(Base, TimestampMixin):
    """Spending limit for one cycle, per expense category or overall when
    ``category_id`` is NULL. ``cycle_key`` is the cycle's first day."""

    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    cycle_key: Mapped[str] = mapped_column(String(10), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    category: Mapped[Optional["Category"]] = relationship("Category")

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_budget_amount_positive"),
        UniqueConstraint(
            "user_id", "cycle_key", "category_id", name="uq_budget_user_cycle_category"
        ),
        Index("ix_budget_user_cycle", "user_id", "cycle_key"),
    )
