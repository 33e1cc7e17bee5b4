from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, Optional, Sequence

from cycles import Cycle
from domain import AccountSnapshot, LedgerEntry, occurred_at
from models import TransactionType


@dataclass(frozen=True)
class AccountBalance:
    account_id: int
    balance_cents: int
    transaction_count: int


@dataclass(frozen=True)
class RunningBalanceRow:
    entry: LedgerEntry
    balance_cents: int


@dataclass(frozen=True)
class LedgerSnapshot:
    per_account: dict[int, AccountBalance] = field(default_factory=dict)
    ordered: list[RunningBalanceRow] = field(default_factory=list)
    pending: list[LedgerEntry] = field(default_factory=list)

    @property
    def total_balance_cents(self) -> int:
        return sum(item.balance_cents for item in self.per_account.values())

    def newest_first(self) -> list[RunningBalanceRow]:
        return list(reversed(self.ordered))


@dataclass(frozen=True)
class CycleTotals:
    income_cents: int
    expense_cents: int
    transaction_count: int

    @property
    def net_cents(self) -> int:
        return self.income_cents - self.expense_cents


def chronological_key(entry: LedgerEntry) -> tuple[date, time, datetime, int]:
    return (entry.date, entry.time, entry.created_at, entry.id or 0)


def account_balances(
    entries: Iterable[LedgerEntry], accounts: Iterable[AccountSnapshot]
) -> dict[int, AccountBalance]:
    balances = {acc.id: acc.initial_balance_cents for acc in accounts}
    counts = {acc_id: 0 for acc_id in balances}

    for entry in entries:
        touched: set[int] = set()
        if entry.account_id in balances:
            if entry.type == TransactionType.income:
                balances[entry.account_id] += entry.amount_cents
            else:
                balances[entry.account_id] -= entry.amount_cents
            touched.add(entry.account_id)
        if entry.type == TransactionType.transfer:
            destination = entry.destination_account_id
            if destination in balances:
                balances[destination] += entry.amount_cents
                touched.add(destination)
        for acc_id in touched:
            counts[acc_id] += 1

    return {
        acc_id: AccountBalance(acc_id, balances[acc_id], counts[acc_id])
        for acc_id in balances
    }


def split_pending(
    entries: Iterable[LedgerEntry], now: Optional[datetime]
) -> tuple[list[LedgerEntry], list[LedgerEntry]]:
    """Separate settled entries from those scheduled strictly after ``now``."""
    if now is None:
        return list(entries), []
    settled: list[LedgerEntry] = []
    pending: list[LedgerEntry] = []
    for entry in entries:
        if occurred_at(entry) > now:
            pending.append(entry)
        else:
            settled.append(entry)
    pending.sort(key=chronological_key)
    return settled, pending


def running_balances(
    entries: Iterable[LedgerEntry], opening_cents: int
) -> list[RunningBalanceRow]:
    """Walk entries oldest first; transfers leave the overall total unchanged."""
    running = opening_cents
    rows: list[RunningBalanceRow] = []
    for entry in sorted(entries, key=chronological_key):
        if entry.type == TransactionType.income:
            running += entry.amount_cents
        elif entry.type == TransactionType.expense:
            running -= entry.amount_cents
        rows.append(RunningBalanceRow(entry, running))
    return rows


def compute_balances(
    entries: Sequence[LedgerEntry],
    accounts: Sequence[AccountSnapshot],
    *,
    now: Optional[datetime] = None,
) -> LedgerSnapshot:
    """Derive account balances and the global running balance.

    Per-account balances cover every entry, scheduled ones included. The
    running balance only walks entries at or before ``now``; the rest are
    returned in ``pending``. Passing ``now=None`` treats everything as settled.
    """
    opening = sum(acc.initial_balance_cents for acc in accounts)
    settled, pending = split_pending(entries, now)
    return LedgerSnapshot(
        per_account=account_balances(entries, accounts),
        ordered=running_balances(settled, opening),
        pending=pending,
    )


def cycle_entries(entries: Iterable[LedgerEntry], cycle: Cycle) -> list[LedgerEntry]:
    return sorted(
        (entry for entry in entries if cycle.contains(entry.date)),
        key=chronological_key,
    )


def cycle_totals(entries: Iterable[LedgerEntry]) -> CycleTotals:
    income = 0
    expense = 0
    count = 0
    for entry in entries:
        count += 1
        if entry.type == TransactionType.income:
            income += entry.amount_cents
        elif entry.type == TransactionType.expense:
            expense += entry.amount_cents
    return CycleTotals(income, expense, count)
