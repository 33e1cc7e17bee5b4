"""Plain value objects shared by the cycle, recurrence and ledger engines.

The engines never touch the database; services convert ORM rows into these
snapshots, run the engines, and write results back in one session.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import ClassVar, Optional, Union

from models import (
    Account,
    RecurrenceFrequency,
    RecurringRule,
    Transaction,
    TransactionType,
)

MIDNIGHT = time(0, 0)


@dataclass(frozen=True)
class AccountSnapshot:
    id: int
    name: str
    initial_balance_cents: int
    is_active: bool = True


@dataclass(frozen=True)
class CategorizedEntry:
    """Income or expense booked against one account and one category."""

    type: TransactionType
    description: str
    amount_cents: int
    date: date
    account_id: int
    category_id: int
    created_at: datetime
    time: time = MIDNIGHT
    id: Optional[int] = None
    recurring_rule_id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.type == TransactionType.transfer:
            raise ValueError("Transfers must be represented as TransferEntry")


@dataclass(frozen=True)
class TransferEntry:
    """Money moved between two of the user's own accounts."""

    type: ClassVar[TransactionType] = TransactionType.transfer

    description: str
    amount_cents: int
    date: date
    account_id: int
    destination_account_id: int
    created_at: datetime
    time: time = MIDNIGHT
    id: Optional[int] = None


LedgerEntry = Union[CategorizedEntry, TransferEntry]


def occurred_at(entry: LedgerEntry) -> datetime:
    return datetime.combine(entry.date, entry.time)


@dataclass(frozen=True)
class RuleSnapshot:
    id: int
    description: str
    amount_cents: int
    type: TransactionType
    account_id: int
    category_id: int
    frequency: RecurrenceFrequency
    start_date: date
    end_date: Optional[date] = None
    is_variable: bool = False
    is_active: bool = True
    last_generated_date: Optional[date] = None


def entry_from_row(txn: Transaction) -> LedgerEntry:
    if txn.type == TransactionType.transfer:
        return TransferEntry(
            id=txn.id,
            description=txn.description,
            amount_cents=txn.amount_cents,
            date=txn.date,
            time=txn.time or MIDNIGHT,
            account_id=txn.account_id,
            destination_account_id=txn.destination_account_id,
            created_at=txn.created_at,
        )
    return CategorizedEntry(
        id=txn.id,
        type=txn.type,
        description=txn.description,
        amount_cents=txn.amount_cents,
        date=txn.date,
        time=txn.time or MIDNIGHT,
        account_id=txn.account_id,
        category_id=txn.category_id,
        created_at=txn.created_at,
        recurring_rule_id=txn.recurring_rule_id,
    )


def account_from_row(account: Account) -> AccountSnapshot:
    return AccountSnapshot(
        id=account.id,
        name=account.name,
        initial_balance_cents=account.initial_balance_cents,
        is_active=account.is_active,
    )


def rule_from_row(rule: RecurringRule) -> RuleSnapshot:
    return RuleSnapshot(
        id=rule.id,
        description=rule.description,
        amount_cents=rule.amount_cents,
        type=rule.type,
        account_id=rule.account_id,
        category_id=rule.category_id,
        frequency=rule.frequency,
        start_date=rule.start_date,
        end_date=rule.end_date,
        is_variable=rule.is_variable,
        is_active=rule.is_active,
        last_generated_date=rule.last_generated_date,
    )
