import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from domain import MIDNIGHT, CategorizedEntry, RuleSnapshot, rule_from_row
from models import RecurrenceFrequency, RecurringRule, Transaction

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int, *, desired_day: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, min(desired_day, days_in_month(year, month)))


def calculate_next_date(
    frequency: RecurrenceFrequency,
    from_date: date,
    *,
    anchor_day: Optional[int] = None,
) -> date:
    """Advance ``from_date`` by one step of ``frequency``.

    Monthly and yearly steps aim for ``anchor_day`` (the rule's start day) and
    snap to the last day of shorter months, so a rule starting on the 31st
    lands on Feb 28/29 and returns to the 31st in March.
    """
    if frequency == RecurrenceFrequency.daily:
        return from_date + timedelta(days=1)
    if frequency == RecurrenceFrequency.weekly:
        return from_date + timedelta(weeks=1)
    day = anchor_day or from_date.day
    if frequency == RecurrenceFrequency.monthly:
        return _add_months(from_date, 1, desired_day=day)
    return _add_months(from_date, 12, desired_day=day)


def is_retired(rule: RuleSnapshot, today: date) -> bool:
    if not rule.is_active:
        return True
    return rule.end_date is not None and today > rule.end_date


def next_due_date(rule: RuleSnapshot) -> date:
    """First date the rule would materialize on its next run."""
    if rule.last_generated_date is None:
        return rule.start_date
    return calculate_next_date(
        rule.frequency, rule.last_generated_date, anchor_day=rule.start_date.day
    )


@dataclass(frozen=True)
class MaterializationResult:
    new_transactions: list[CategorizedEntry] = field(default_factory=list)
    updated_rules: list[RuleSnapshot] = field(default_factory=list)

    @property
    def advanced_rules(self) -> list[RuleSnapshot]:
        produced = {entry.recurring_rule_id for entry in self.new_transactions}
        return [rule for rule in self.updated_rules if rule.id in produced]


def materialize(
    rules: Iterable[RuleSnapshot],
    today: date,
    *,
    created_at: Optional[datetime] = None,
) -> MaterializationResult:
    """Emit every occurrence that fell due on or before ``today``.

    Each rule's cursor (``last_generated_date``) moves to the last emitted
    date, so a repeated call with the same ``today`` emits nothing. Rules
    that are inactive or whose end date has passed are returned untouched.
    Creation stamps start at ``created_at`` and grow by one microsecond per
    emitted entry, keeping same-day occurrences in emission order.
    """
    stamp = created_at or datetime.combine(today, MIDNIGHT)
    emitted: list[CategorizedEntry] = []
    updated: list[RuleSnapshot] = []

    for rule in rules:
        if is_retired(rule, today):
            updated.append(rule)
            continue

        cursor = next_due_date(rule)
        last_generated = rule.last_generated_date
        while cursor <= today and (rule.end_date is None or cursor <= rule.end_date):
            emitted.append(
                CategorizedEntry(
                    type=rule.type,
                    description=rule.description,
                    amount_cents=rule.amount_cents,
                    date=cursor,
                    time=MIDNIGHT,
                    account_id=rule.account_id,
                    category_id=rule.category_id,
                    created_at=stamp + timedelta(microseconds=len(emitted)),
                    recurring_rule_id=rule.id,
                )
            )
            last_generated = cursor
            cursor = calculate_next_date(
                rule.frequency, cursor, anchor_day=rule.start_date.day
            )

        if last_generated != rule.last_generated_date:
            rule = replace(rule, last_generated_date=last_generated)
        updated.append(rule)

    return MaterializationResult(new_transactions=emitted, updated_rules=updated)


class RecurringEngine:
    def __init__(self, session: Session, user_id: int = 1) -> None:
        self.session = session
        self.user_id = user_id

    def catch_up(
        self,
        today: Optional[date] = None,
        *,
        source: str = "manual",
    ) -> list[Transaction]:
        """Materialize due occurrences and commit them with the rule cursors."""
        today = today or local_today()
        stmt = (
            select(RecurringRule)
            .where(
                RecurringRule.user_id == self.user_id,
                RecurringRule.is_active.is_(True),
            )
            .order_by(RecurringRule.id)
        )
        rows = {rule.id: rule for rule in self.session.scalars(stmt).all()}
        snapshots = [rule_from_row(rule) for rule in rows.values()]
        result = materialize(snapshots, today, created_at=datetime.utcnow())

        posted: list[Transaction] = []
        try:
            for entry in result.new_transactions:
                txn = Transaction(
                    user_id=self.user_id,
                    description=entry.description,
                    amount_cents=entry.amount_cents,
                    type=entry.type,
                    date=entry.date,
                    time=entry.time,
                    account_id=entry.account_id,
                    category_id=entry.category_id,
                    recurring_rule_id=entry.recurring_rule_id,
                    created_at=entry.created_at,
                )
                self.session.add(txn)
                posted.append(txn)
                logger.debug(
                    f"recurring_occurrence: rule={entry.recurring_rule_id} "
                    f"date={entry.date}"
                )
            for snapshot in result.advanced_rules:
                rows[snapshot.id].last_generated_date = snapshot.last_generated_date
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            f"recurring_catch_up: source={source} rules={len(rows)} "
            f"occurrences_posted={len(posted)}"
        )
        return posted
