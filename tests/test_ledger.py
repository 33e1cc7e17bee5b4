from datetime import date, datetime, time

import pytest

from cycles import CycleSettings, resolve_cycle
from domain import AccountSnapshot, CategorizedEntry, TransferEntry
from ledger import compute_balances, cycle_entries, cycle_totals
from models import CycleFrequency, MonthlyStartType, TransactionType

CREATED = datetime(2024, 1, 1, 9, 0)


def _income(amount, day, account_id=1, **kw):
    kw.setdefault("created_at", CREATED)
    return CategorizedEntry(
        type=TransactionType.income,
        description="Salary",
        amount_cents=amount,
        date=day,
        account_id=account_id,
        category_id=10,
        **kw,
    )


def _expense(amount, day, account_id=1, **kw):
    kw.setdefault("created_at", CREATED)
    return CategorizedEntry(
        type=TransactionType.expense,
        description="Groceries",
        amount_cents=amount,
        date=day,
        account_id=account_id,
        category_id=20,
        **kw,
    )


def _transfer(amount, day, source, destination, **kw):
    kw.setdefault("created_at", CREATED)
    return TransferEntry(
        description="Savings",
        amount_cents=amount,
        date=day,
        account_id=source,
        destination_account_id=destination,
        **kw,
    )


def test_single_account_scenario():
    accounts = [AccountSnapshot(id=1, name="A", initial_balance_cents=10000)]
    entries = [
        _expense(3000, date(2024, 1, 1), id=1),
        _income(5000, date(2024, 1, 2), id=2),
    ]
    snapshot = compute_balances(entries, accounts)

    assert snapshot.per_account[1].balance_cents == 12000
    assert snapshot.per_account[1].transaction_count == 2
    assert [row.balance_cents for row in snapshot.ordered] == [7000, 12000]
    assert snapshot.pending == []


def test_running_balance_is_computed_before_reversal():
    accounts = [AccountSnapshot(id=1, name="A", initial_balance_cents=10000)]
    entries = [
        _income(5000, date(2024, 1, 2), id=2),
        _expense(3000, date(2024, 1, 1), id=1),
    ]
    snapshot = compute_balances(entries, accounts)
    newest = snapshot.newest_first()

    assert [row.entry.id for row in newest] == [2, 1]
    assert [row.balance_cents for row in newest] == [12000, 7000]


def test_transfers_are_neutral_for_running_balance():
    accounts = [
        AccountSnapshot(id=1, name="Checking", initial_balance_cents=10000),
        AccountSnapshot(id=2, name="Savings", initial_balance_cents=5000),
    ]
    entries = [
        _income(10000, date(2024, 1, 1), id=1),
        _transfer(5000, date(2024, 1, 2), 1, 2, id=2),
    ]
    snapshot = compute_balances(entries, accounts)

    assert snapshot.ordered[-1].balance_cents == 15000 + 10000
    assert snapshot.ordered[-1].balance_cents == snapshot.ordered[0].balance_cents
    assert snapshot.per_account[1].balance_cents == 15000
    assert snapshot.per_account[2].balance_cents == 10000
    assert snapshot.per_account[2].transaction_count == 1
    assert snapshot.total_balance_cents == 25000


def test_ties_resolve_by_creation_order():
    accounts = [AccountSnapshot(id=1, name="A", initial_balance_cents=0)]
    later = _expense(
        400,
        date(2024, 1, 5),
        id=11,
        time=time(9, 0),
        created_at=datetime(2024, 1, 5, 9, 2),
    )
    earlier = _income(
        1000,
        date(2024, 1, 5),
        id=12,
        time=time(9, 0),
        created_at=datetime(2024, 1, 5, 9, 1),
    )

    first = compute_balances([later, earlier], accounts)
    second = compute_balances([earlier, later], accounts)

    assert [row.entry.id for row in first.ordered] == [12, 11]
    assert [row.balance_cents for row in first.ordered] == [1000, 600]
    assert first.ordered == second.ordered


def test_time_of_day_orders_entries_on_same_date():
    accounts = [AccountSnapshot(id=1, name="A", initial_balance_cents=0)]
    evening = _expense(200, date(2024, 1, 5), id=1, time=time(20, 0))
    morning = _income(500, date(2024, 1, 5), id=2, time=time(8, 0))

    snapshot = compute_balances([evening, morning], accounts)
    assert [row.entry.id for row in snapshot.ordered] == [2, 1]


def test_future_entries_are_pending_and_excluded_from_walk():
    accounts = [AccountSnapshot(id=1, name="A", initial_balance_cents=1000)]
    now = datetime(2024, 1, 2, 12, 0)
    settled = _income(500, date(2024, 1, 2), id=1, time=time(11, 59))
    later_today = _expense(100, date(2024, 1, 2), id=2, time=time(13, 0))
    tomorrow = _expense(50, date(2024, 1, 3), id=3)

    snapshot = compute_balances([tomorrow, later_today, settled], accounts, now=now)

    assert [row.entry.id for row in snapshot.ordered] == [1]
    assert snapshot.ordered[0].balance_cents == 1500
    assert [entry.id for entry in snapshot.pending] == [2, 3]
    assert snapshot.per_account[1].balance_cents == 1000 + 500 - 100 - 50


def test_entry_at_exactly_now_is_settled():
    accounts = [AccountSnapshot(id=1, name="A", initial_balance_cents=0)]
    now = datetime(2024, 1, 2, 13, 0)
    entry = _income(500, date(2024, 1, 2), id=1, time=time(13, 0))

    snapshot = compute_balances([entry], accounts, now=now)
    assert snapshot.pending == []
    assert snapshot.ordered[0].balance_cents == 500


def test_unknown_accounts_are_ignored_in_per_account_balances():
    accounts = [AccountSnapshot(id=1, name="A", initial_balance_cents=0)]
    orphan = _expense(300, date(2024, 1, 1), account_id=99, id=1)

    snapshot = compute_balances([orphan], accounts)
    assert set(snapshot.per_account) == {1}
    assert snapshot.per_account[1].transaction_count == 0
    assert snapshot.ordered[0].balance_cents == -300


def test_cycle_entries_and_totals():
    settings = CycleSettings(CycleFrequency.monthly, 1, MonthlyStartType.fixed)
    cycle = resolve_cycle(date(2024, 2, 10), settings)
    entries = [
        _income(10000, date(2024, 2, 1), id=1),
        _expense(2500, date(2024, 2, 29), id=2),
        _transfer(700, date(2024, 2, 15), 1, 2, id=3),
        _expense(999, date(2024, 3, 1), id=4),
    ]

    in_cycle = cycle_entries(entries, cycle)
    assert [entry.id for entry in in_cycle] == [1, 3, 2]

    totals = cycle_totals(in_cycle)
    assert totals.income_cents == 10000
    assert totals.expense_cents == 2500
    assert totals.net_cents == 7500
    assert totals.transaction_count == 3


def test_categorized_entry_rejects_transfer_type():
    with pytest.raises(ValueError):
        CategorizedEntry(
            type=TransactionType.transfer,
            description="x",
            amount_cents=1,
            date=date(2024, 1, 1),
            account_id=1,
            category_id=1,
            created_at=CREATED,
        )
