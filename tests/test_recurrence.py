from datetime import date, datetime, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from domain import MIDNIGHT, RuleSnapshot
from models import (
    Account,
    Category,
    RecurrenceFrequency,
    RecurringRule,
    Transaction,
    TransactionType,
)
from recurrence import (
    RecurringEngine,
    calculate_next_date,
    materialize,
    next_due_date,
)


def _rule(
    frequency: RecurrenceFrequency = RecurrenceFrequency.daily,
    start_date: date = date(2024, 3, 1),
    **overrides,
) -> RuleSnapshot:
    values = dict(
        id=7,
        description="Gym",
        amount_cents=2500,
        type=TransactionType.expense,
        account_id=1,
        category_id=2,
        frequency=frequency,
        start_date=start_date,
    )
    values.update(overrides)
    return RuleSnapshot(**values)


def test_calculate_next_date_steps():
    assert calculate_next_date(RecurrenceFrequency.daily, date(2024, 2, 28)) == date(
        2024, 2, 29
    )
    assert calculate_next_date(RecurrenceFrequency.weekly, date(2024, 12, 28)) == date(
        2025, 1, 4
    )
    assert calculate_next_date(RecurrenceFrequency.monthly, date(2024, 12, 5)) == date(
        2025, 1, 5
    )
    assert calculate_next_date(RecurrenceFrequency.yearly, date(2024, 6, 1)) == date(
        2025, 6, 1
    )


def test_monthly_step_snaps_to_month_end_and_recovers_anchor_day():
    feb = calculate_next_date(
        RecurrenceFrequency.monthly, date(2024, 1, 31), anchor_day=31
    )
    assert feb == date(2024, 2, 29)
    march = calculate_next_date(RecurrenceFrequency.monthly, feb, anchor_day=31)
    assert march == date(2024, 3, 31)


def test_yearly_step_from_leap_day():
    assert calculate_next_date(
        RecurrenceFrequency.yearly, date(2024, 2, 29), anchor_day=29
    ) == date(2025, 2, 28)


def test_first_materialization_starts_at_start_date():
    rule = _rule(RecurrenceFrequency.monthly, start_date=date(2024, 1, 1))
    result = materialize([rule], date(2024, 3, 15))

    assert [entry.date for entry in result.new_transactions] == [
        date(2024, 1, 1),
        date(2024, 2, 1),
        date(2024, 3, 1),
    ]
    assert result.updated_rules[0].last_generated_date == date(2024, 3, 1)


def test_catch_up_emits_one_entry_per_missed_day():
    today = date(2024, 3, 10)
    rule = _rule(last_generated_date=today - timedelta(days=5))
    result = materialize([rule], today)

    dates = [entry.date for entry in result.new_transactions]
    assert dates == [today - timedelta(days=n) for n in range(4, -1, -1)]
    assert result.updated_rules[0].last_generated_date == today


def test_materialize_is_idempotent_for_same_day():
    today = date(2024, 3, 10)
    first = materialize([_rule()], today)
    assert len(first.new_transactions) == 10

    second = materialize(first.updated_rules, today)
    assert second.new_transactions == []
    assert second.updated_rules == first.updated_rules
    assert second.advanced_rules == []


def test_emitted_entries_copy_rule_fields():
    created = datetime(2024, 3, 2, 8, 30)
    result = materialize([_rule()], date(2024, 3, 2), created_at=created)

    first, second = result.new_transactions
    assert first.recurring_rule_id == 7
    assert first.type == TransactionType.expense
    assert first.amount_cents == 2500
    assert (first.account_id, first.category_id) == (1, 2)
    assert first.description == "Gym"
    assert first.time == MIDNIGHT
    assert first.created_at == created
    assert second.created_at > first.created_at


def test_end_date_caps_generation():
    rule = _rule(start_date=date(2024, 3, 1), end_date=date(2024, 3, 3))
    result = materialize([rule], date(2024, 3, 3))
    assert [e.date for e in result.new_transactions] == [
        date(2024, 3, 1),
        date(2024, 3, 2),
        date(2024, 3, 3),
    ]


def test_rule_past_end_date_is_left_untouched():
    rule = _rule(start_date=date(2024, 3, 1), end_date=date(2024, 3, 3))
    result = materialize([rule], date(2024, 3, 10))
    assert result.new_transactions == []
    assert result.updated_rules == [rule]


def test_inactive_and_future_rules_emit_nothing():
    inactive = _rule(id=1, is_active=False)
    future = _rule(id=2, start_date=date(2024, 4, 1))
    result = materialize([inactive, future], date(2024, 3, 10))

    assert result.new_transactions == []
    assert result.updated_rules == [inactive, future]


def test_next_due_date_follows_cursor():
    assert next_due_date(_rule()) == date(2024, 3, 1)
    weekly = _rule(
        RecurrenceFrequency.weekly, last_generated_date=date(2024, 3, 8)
    )
    assert next_due_date(weekly) == date(2024, 3, 15)


def _seed_rule(session: Session, start_date: date) -> RecurringRule:
    account = Account(name="Checking", initial_balance_cents=0)
    category = Category(name="Rent", type=TransactionType.expense)
    session.add_all([account, category])
    session.flush()
    rule = RecurringRule(
        description="Rent",
        amount_cents=90000,
        type=TransactionType.expense,
        account_id=account.id,
        category_id=category.id,
        frequency=RecurrenceFrequency.monthly,
        start_date=start_date,
    )
    session.add(rule)
    session.commit()
    return rule


def test_recurring_engine_commits_transactions_with_cursor():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        rule = _seed_rule(session, date(2024, 1, 1))

        posted = RecurringEngine(session).catch_up(today=date(2024, 3, 1))
        assert len(posted) == 3

    with Session(engine) as session:
        rule = session.query(RecurringRule).one()
        assert rule.last_generated_date == date(2024, 3, 1)
        assert RecurringEngine(session).catch_up(today=date(2024, 3, 1)) == []
        txns = (
            session.query(Transaction)
            .filter(Transaction.recurring_rule_id == rule.id)
            .order_by(Transaction.date)
            .all()
        )
        assert [t.date for t in txns] == [
            date(2024, 1, 1),
            date(2024, 2, 1),
            date(2024, 3, 1),
        ]
        assert all(t.amount_cents == 90000 for t in txns)


def test_recurring_engine_skips_inactive_rules():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        rule = _seed_rule(session, date(2024, 1, 1))
        rule.is_active = False
        session.commit()

        assert RecurringEngine(session).catch_up(today=date(2024, 3, 1)) == []
        assert rule.last_generated_date is None
        assert session.query(Transaction).count() == 0
