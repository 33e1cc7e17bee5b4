from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from cycles import (
    DEFAULT_CYCLE_SETTINGS,
    Cycle,
    CycleSettings,
    resolve_cycle,
    shift_cycle,
)
from domain import (
    AccountSnapshot,
    LedgerEntry,
    account_from_row,
    entry_from_row,
    rule_from_row,
)
from ledger import (
    LedgerSnapshot,
    compute_balances,
    cycle_entries,
    cycle_totals,
)
from models import (
    Account,
    Budget,
    Category,
    CycleSettingsRecord,
    RecurringRule,
    Transaction,
    TransactionType,
)
from recurrence import RecurringEngine, local_now, next_due_date
from schemas import (
    AccountIn,
    BudgetIn,
    CategoryIn,
    CycleSettingsIn,
    RecurringRuleIn,
    TransactionIn,
)

logger = logging.getLogger(__name__)

UNKNOWN_ACCOUNT = "Unknown account"
UNCATEGORIZED = "Uncategorized"
FUZZY_MIN_LENGTH = 4
OVERALL_BUDGET = "Overall"
AVERAGE_WINDOW_MONTHS = 6


def get_current_user_id() -> int:
    return 1


def _amount_labels(cents: int) -> list[str]:
    plain = f"{cents / 100:.2f}"
    return [plain, plain.replace(".", ",")]


def matches_query(query: str, fields: list[str]) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    for text in fields:
        lowered = (text or "").lower()
        if needle in lowered:
            return True
        if len(needle) >= FUZZY_MIN_LENGTH and any(
            Levenshtein.distance(needle, word) <= 1 for word in lowered.split()
        ):
            return True
    return False


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self, include_inactive: bool = True) -> list[Account]:
        stmt = select(Account).where(Account.user_id == self.user_id)
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        return self.session.scalars(stmt.order_by(Account.name)).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise ValueError("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        name = data.name.strip()
        self._ensure_unique_name(name)
        account = Account(
            user_id=self.user_id,
            name=name,
            kind=data.kind,
            icon=data.icon,
            initial_balance_cents=data.initial_balance_cents,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountIn) -> Account:
        account = self.get(account_id)
        name = data.name.strip()
        self._ensure_unique_name(name, exclude_id=account_id)
        account.name = name
        account.kind = data.kind
        account.icon = data.icon
        account.initial_balance_cents = data.initial_balance_cents
        self.session.commit()
        self.session.refresh(account)
        return account

    def toggle_active(self, account_id: int) -> Account:
        account = self.get(account_id)
        if account.is_active and self.has_transactions(account_id):
            balance = LedgerService(self.session, self.user_id).snapshot().per_account
            if balance[account_id].balance_cents != 0:
                raise ValueError(
                    "Accounts with transactions and a non-zero balance cannot be deactivated"
                )
        account.is_active = not account.is_active
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        if self.has_transactions(account_id) or self._has_rules(account_id):
            raise ValueError(
                "Accounts with transactions cannot be deleted; deactivate them instead"
            )
        self.session.delete(account)
        self.session.commit()

    def has_transactions(self, account_id: int) -> bool:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.user_id == self.user_id,
            or_(
                Transaction.account_id == account_id,
                Transaction.destination_account_id == account_id,
            ),
        )
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def _has_rules(self, account_id: int) -> bool:
        stmt = select(func.count(RecurringRule.id)).where(
            RecurringRule.user_id == self.user_id,
            RecurringRule.account_id == account_id,
        )
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(Account.id).where(
            Account.user_id == self.user_id,
            func.lower(Account.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Account.id != exclude_id)
        existing = self.session.scalar(stmt)
        if existing:
            raise ValueError("Account with this name already exists")


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self, type: Optional[TransactionType] = None) -> list[Category]:
        stmt = select(Category).where(Category.user_id == self.user_id)
        if type is not None:
            stmt = stmt.where(Category.type == type)
        return self.session.scalars(stmt.order_by(Category.type, Category.name)).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.type == data.type,
                func.lower(Category.name) == name.lower(),
            )
        )
        if existing:
            raise ValueError("Category with this name already exists")
        category = Category(
            user_id=self.user_id,
            name=name,
            type=data.type,
            icon=data.icon,
            color=data.color,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        used_by_txn = self.session.scalar(
            select(Transaction.id)
            .where(Transaction.category_id == category_id)
            .limit(1)
        )
        used_by_rule = self.session.scalar(
            select(RecurringRule.id)
            .where(RecurringRule.category_id == category_id)
            .limit(1)
        )
        used_by_budget = self.session.scalar(
            select(Budget.id).where(Budget.category_id == category_id).limit(1)
        )
        if used_by_txn or used_by_rule or used_by_budget:
            raise ValueError("Categories with associated transactions cannot be deleted")
        self.session.delete(category)
        self.session.commit()


def _check_account(session: Session, user_id: int, account_id: int) -> Account:
    account = session.get(Account, account_id)
    if not account or account.user_id != user_id:
        raise ValueError("Account not found")
    return account


def _check_category(
    session: Session, user_id: int, category_id: int, txn_type: TransactionType
) -> Category:
    category = session.get(Category, category_id)
    if not category or category.user_id != user_id:
        raise ValueError("Category not found")
    if category.type != txn_type:
        raise ValueError("Category type mismatch")
    return category


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _check_references(self, data: TransactionIn) -> None:
        _check_account(self.session, self.user_id, data.account_id)
        if data.type == TransactionType.transfer:
            _check_account(self.session, self.user_id, data.destination_account_id)
        else:
            _check_category(self.session, self.user_id, data.category_id, data.type)

    def create(self, data: TransactionIn) -> Transaction:
        self._check_references(data)
        txn = Transaction(
            user_id=self.user_id,
            description=data.description.strip(),
            amount_cents=data.amount_cents,
            type=data.type,
            date=data.date,
            time=data.time,
            account_id=data.account_id,
            destination_account_id=data.destination_account_id,
            category_id=data.category_id,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise ValueError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._check_references(data)
        txn.description = data.description.strip()
        txn.amount_cents = data.amount_cents
        txn.type = data.type
        txn.date = data.date
        txn.time = data.time
        txn.account_id = data.account_id
        txn.destination_account_id = data.destination_account_id
        txn.category_id = data.category_id
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def list(self, cycle: Optional[Cycle] = None) -> list[Transaction]:
        stmt = select(Transaction).where(Transaction.user_id == self.user_id)
        if cycle is not None:
            stmt = stmt.where(Transaction.date.between(cycle.first_day, cycle.last_day))
        stmt = stmt.order_by(
            Transaction.date.desc(),
            Transaction.time.desc(),
            Transaction.created_at.desc(),
            Transaction.id.desc(),
        )
        return self.session.scalars(stmt).all()

    def entries(self) -> list[LedgerEntry]:
        stmt = select(Transaction).where(Transaction.user_id == self.user_id)
        return [entry_from_row(txn) for txn in self.session.scalars(stmt).all()]


class RecurringRuleService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, rule_id: int) -> RecurringRule:
        rule = self.session.get(RecurringRule, rule_id)
        if not rule or rule.user_id != self.user_id:
            raise ValueError("Rule not found")
        return rule

    def list(self) -> list[RecurringRule]:
        stmt = (
            select(RecurringRule)
            .where(RecurringRule.user_id == self.user_id)
            .order_by(RecurringRule.is_active.desc(), RecurringRule.start_date)
        )
        return self.session.scalars(stmt).all()

    def create(self, data: RecurringRuleIn) -> RecurringRule:
        _check_account(self.session, self.user_id, data.account_id)
        _check_category(self.session, self.user_id, data.category_id, data.type)
        rule = RecurringRule(user_id=self.user_id, **data.model_dump())
        rule.description = rule.description.strip()
        self.session.add(rule)
        self.session.commit()
        self.session.refresh(rule)
        return rule

    def update(self, rule_id: int, data: RecurringRuleIn) -> RecurringRule:
        rule = self.get(rule_id)
        _check_account(self.session, self.user_id, data.account_id)
        _check_category(self.session, self.user_id, data.category_id, data.type)
        # Pausing and resuming goes through toggle.
        for field, value in data.model_dump(exclude={"is_active"}).items():
            setattr(rule, field, value)
        self.session.commit()
        self.session.refresh(rule)
        return rule

    def toggle(self, rule_id: int, is_active: bool) -> RecurringRule:
        rule = self.get(rule_id)
        rule.is_active = is_active
        self.session.commit()
        self.session.refresh(rule)
        return rule

    def delete(self, rule_id: int, *, confirm: bool = False) -> None:
        rule = self.get(rule_id)
        produced = self.session.execute(
            select(func.count(Transaction.id)).where(
                Transaction.recurring_rule_id == rule_id
            )
        ).scalar_one()
        if produced and not confirm:
            raise ValueError(
                f"Rule has generated {produced} transactions; confirm to delete it"
            )
        if produced:
            self.session.execute(
                update(Transaction)
                .where(Transaction.recurring_rule_id == rule_id)
                .values(recurring_rule_id=None)
            )
        self.session.delete(rule)
        self.session.commit()
        logger.info(f"recurring_rule_deleted: rule={rule_id} kept_transactions={produced}")

    def occurrences(self, rule_id: int) -> list[Transaction]:
        self.get(rule_id)
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.recurring_rule_id == rule_id,
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        return self.session.scalars(stmt).all()

    def next_due(self, rule: RecurringRule) -> Optional[date]:
        snapshot = rule_from_row(rule)
        due = next_due_date(snapshot)
        if not snapshot.is_active:
            return None
        if snapshot.end_date is not None and due > snapshot.end_date:
            return None
        return due

    def catch_up(self, today: Optional[date] = None, source: str = "manual") -> int:
        engine = RecurringEngine(self.session, self.user_id)
        return len(engine.catch_up(today, source=source))


class CycleSettingsService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _record(self) -> Optional[CycleSettingsRecord]:
        return self.session.scalar(
            select(CycleSettingsRecord).where(
                CycleSettingsRecord.user_id == self.user_id
            )
        )

    def get(self) -> CycleSettings:
        record = self._record()
        if record is None:
            return DEFAULT_CYCLE_SETTINGS
        return CycleSettings(
            frequency=record.frequency,
            start_day=record.start_day,
            monthly_start_type=record.monthly_start_type,
        )

    def update(self, data: CycleSettingsIn) -> CycleSettings:
        record = self._record()
        if record is None:
            record = CycleSettingsRecord(user_id=self.user_id)
            self.session.add(record)
        record.frequency = data.frequency
        record.start_day = data.start_day
        record.monthly_start_type = data.monthly_start_type
        self.session.commit()
        return self.get()

    def current_cycle(self, now: Optional[datetime] = None, offset: int = 0) -> Cycle:
        settings = self.get()
        cycle = resolve_cycle(now or local_now(), settings)
        if offset:
            cycle = shift_cycle(cycle, settings, offset)
        return cycle


class LedgerService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _accounts(self) -> list[AccountSnapshot]:
        rows = AccountService(self.session, self.user_id).list_all()
        return [account_from_row(account) for account in rows]

    def _labels(self) -> tuple[dict[int, str], dict[int, str]]:
        accounts = {
            account.id: account.name
            for account in AccountService(self.session, self.user_id).list_all()
        }
        categories = {
            category.id: category.name
            for category in CategoryService(self.session, self.user_id).list_all()
        }
        return accounts, categories

    def snapshot(self, now: Optional[datetime] = None) -> LedgerSnapshot:
        entries = TransactionService(self.session, self.user_id).entries()
        return compute_balances(entries, self._accounts(), now=now or local_now())

    def describe(
        self,
        entry: LedgerEntry,
        accounts: dict[int, str],
        categories: dict[int, str],
        balance_cents: Optional[int] = None,
    ) -> dict[str, object]:
        item: dict[str, object] = {
            "id": entry.id,
            "type": entry.type.value,
            "description": entry.description,
            "amount_cents": entry.amount_cents,
            "date": entry.date.isoformat(),
            "time": entry.time.strftime("%H:%M"),
            "account_id": entry.account_id,
            "account": accounts.get(entry.account_id, UNKNOWN_ACCOUNT),
        }
        if entry.type == TransactionType.transfer:
            item["destination_account_id"] = entry.destination_account_id
            item["destination_account"] = accounts.get(
                entry.destination_account_id, UNKNOWN_ACCOUNT
            )
        else:
            item["category_id"] = entry.category_id
            item["category"] = categories.get(entry.category_id, UNCATEGORIZED)
            item["recurring_rule_id"] = entry.recurring_rule_id
        if balance_cents is not None:
            item["running_balance_cents"] = balance_cents
        return item

    def _search_fields(self, item: dict[str, object]) -> list[str]:
        fields = [
            str(item["description"]),
            str(item.get("category", "")),
            str(item["account"]),
            str(item.get("destination_account", "")),
        ]
        return fields + _amount_labels(int(item["amount_cents"]))

    def history(
        self, query: Optional[str] = None, now: Optional[datetime] = None
    ) -> list[dict[str, object]]:
        """Settled transactions, newest first, each with its running balance."""
        snapshot = self.snapshot(now)
        accounts, categories = self._labels()
        items = [
            self.describe(row.entry, accounts, categories, row.balance_cents)
            for row in snapshot.newest_first()
        ]
        if query:
            items = [
                item for item in items if matches_query(query, self._search_fields(item))
            ]
        return items

    def pending(self, now: Optional[datetime] = None) -> list[dict[str, object]]:
        snapshot = self.snapshot(now)
        accounts, categories = self._labels()
        return [self.describe(entry, accounts, categories) for entry in snapshot.pending]

    def account_details(self, now: Optional[datetime] = None) -> list[dict[str, object]]:
        snapshot = self.snapshot(now)
        details = []
        for account in AccountService(self.session, self.user_id).list_all():
            balance = snapshot.per_account[account.id]
            details.append(
                {
                    "id": account.id,
                    "name": account.name,
                    "kind": account.kind,
                    "icon": account.icon,
                    "is_active": account.is_active,
                    "initial_balance_cents": account.initial_balance_cents,
                    "balance_cents": balance.balance_cents,
                    "transaction_count": balance.transaction_count,
                }
            )
        details.sort(key=lambda item: item["balance_cents"], reverse=True)
        return details

    def cycle_summary(self, cycle: Cycle) -> dict[str, object]:
        entries = cycle_entries(
            TransactionService(self.session, self.user_id).entries(), cycle
        )
        totals = cycle_totals(entries)
        accounts, categories = self._labels()
        return {
            "cycle": {
                "key": cycle.key,
                "start": cycle.start.isoformat(),
                "end": cycle.end.isoformat(),
            },
            "income_cents": totals.income_cents,
            "expense_cents": totals.expense_cents,
            "net_cents": totals.net_cents,
            "transaction_count": totals.transaction_count,
            "transactions": [
                self.describe(entry, accounts, categories) for entry in entries
            ],
        }


class BudgetService:
    """Per-cycle spending limits, keyed by ``Cycle.key``.

    A budget with ``category_id=None`` is the overall limit for the cycle and
    is measured against all expenses; category budgets only count expenses of
    their category. Transfers never count as spending.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        if category.type != TransactionType.expense:
            raise ValueError("Budgets can only be set for expense categories")

    def list_for_cycle(self, cycle: Cycle) -> list[Budget]:
        stmt = select(Budget).where(
            Budget.user_id == self.user_id, Budget.cycle_key == cycle.key
        )
        budgets = self.session.scalars(stmt).all()
        return sorted(
            budgets, key=lambda b: -1 if b.category_id is None else b.category_id
        )

    def upsert(self, data: BudgetIn, cycle: Cycle) -> Budget:
        self._check_category(data.category_id)
        stmt = select(Budget).where(
            Budget.user_id == self.user_id,
            Budget.cycle_key == cycle.key,
            Budget.category_id.is_(None)
            if data.category_id is None
            else Budget.category_id == data.category_id,
        )
        budget = self.session.scalar(stmt)
        if budget is None:
            budget = Budget(
                user_id=self.user_id,
                cycle_key=cycle.key,
                category_id=data.category_id,
                amount_cents=data.amount_cents,
            )
            self.session.add(budget)
        else:
            budget.amount_cents = data.amount_cents
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise ValueError("Budget not found")
        self.session.delete(budget)
        self.session.commit()

    def spent_by_category(self, cycle: Cycle) -> dict[Optional[int], int]:
        entries = cycle_entries(
            TransactionService(self.session, self.user_id).entries(), cycle
        )
        spent: dict[Optional[int], int] = {}
        for entry in entries:
            if entry.type != TransactionType.expense:
                continue
            key = entry.category_id
            spent[key] = spent.get(key, 0) + entry.amount_cents
        spent[None] = sum(spent.values())
        return spent

    def progress(self, cycle: Cycle) -> list[dict[str, object]]:
        spent_by_scope = self.spent_by_category(cycle)
        categories = {
            category.id: category.name
            for category in CategoryService(self.session, self.user_id).list_all()
        }
        rows = []
        for budget in self.list_for_cycle(cycle):
            spent = spent_by_scope.get(budget.category_id, 0)
            if budget.category_id is None:
                label = OVERALL_BUDGET
            else:
                label = categories.get(budget.category_id, UNCATEGORIZED)
            rows.append(
                {
                    "id": budget.id,
                    "cycle_key": budget.cycle_key,
                    "category_id": budget.category_id,
                    "label": label,
                    "amount_cents": budget.amount_cents,
                    "spent_cents": spent,
                    "remaining_cents": budget.amount_cents - spent,
                    "progress_percent": round(spent * 100 / budget.amount_cents, 1),
                }
            )
        return rows

    def category_averages(
        self, today: Optional[date] = None, months: int = AVERAGE_WINDOW_MONTHS
    ) -> dict[int, int]:
        """Average monthly expense per category over the recent months.

        Only calendar months with spending count towards the average, so a
        category used in two of the last six months averages over two.
        """
        today = today or local_now().date()
        index = today.year * 12 + today.month - 1 - months
        since = date(index // 12, index % 12 + 1, 1)
        monthly: dict[int, dict[tuple[int, int], int]] = {}
        for entry in TransactionService(self.session, self.user_id).entries():
            if entry.type != TransactionType.expense or entry.date < since:
                continue
            per_month = monthly.setdefault(entry.category_id, {})
            month = (entry.date.year, entry.date.month)
            per_month[month] = per_month.get(month, 0) + entry.amount_cents
        return {
            category_id: round(sum(per_month.values()) / len(per_month))
            for category_id, per_month in monthly.items()
        }


class DashboardService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def refresh(
        self,
        now: Optional[datetime] = None,
        *,
        catch_up: bool = True,
        source: str = "refresh",
    ) -> dict[str, object]:
        """Bring recurring rules up to date, then derive the dashboard view."""
        now = now or local_now()
        posted = 0
        if catch_up:
            posted = RecurringRuleService(self.session, self.user_id).catch_up(
                now.date(), source=source
            )
        cycle = CycleSettingsService(self.session, self.user_id).current_cycle(now)
        ledger = LedgerService(self.session, self.user_id)
        snapshot = ledger.snapshot(now)
        return {
            "occurrences_posted": posted,
            "total_balance_cents": snapshot.total_balance_cents,
            "accounts": ledger.account_details(now),
            "summary": ledger.cycle_summary(cycle),
            "pending_count": len(snapshot.pending),
            "budgets": BudgetService(self.session, self.user_id).progress(cycle),
        }
