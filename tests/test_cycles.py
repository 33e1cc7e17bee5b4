from datetime import date, datetime, timedelta

import pytest

from cycles import (
    DAY_END,
    Cycle,
    CycleSettings,
    first_weekday_of_month,
    last_weekday_of_month,
    resolve_cycle,
    shift_cycle,
)
from models import CycleFrequency, MonthlyStartType


def _monthly(start_type: MonthlyStartType, start_day: int) -> CycleSettings:
    return CycleSettings(CycleFrequency.monthly, start_day, start_type)


def _weekly(start_day: int) -> CycleSettings:
    return CycleSettings(CycleFrequency.weekly, start_day)


def test_fixed_day_one_aligns_with_calendar_month():
    settings = _monthly(MonthlyStartType.fixed, 1)
    day = date(2024, 1, 1)
    while day.year == 2024:
        cycle = resolve_cycle(day, settings)
        assert cycle.first_day == day.replace(day=1)
        assert cycle.start == datetime(day.year, day.month, 1)
        day += timedelta(days=1)


def test_fixed_day_before_anchor_uses_previous_month():
    settings = _monthly(MonthlyStartType.fixed, 15)
    cycle = resolve_cycle(date(2024, 3, 10), settings)
    assert cycle.first_day == date(2024, 2, 15)
    assert cycle.end == datetime.combine(date(2024, 3, 14), DAY_END)


def test_fixed_day_on_anchor_opens_new_cycle():
    settings = _monthly(MonthlyStartType.fixed, 15)
    cycle = resolve_cycle(date(2024, 3, 15), settings)
    assert cycle.first_day == date(2024, 3, 15)
    assert cycle.last_day == date(2024, 4, 14)


def test_fixed_day_crosses_year_boundaries():
    settings = _monthly(MonthlyStartType.fixed, 15)
    december = resolve_cycle(date(2024, 12, 20), settings)
    assert (december.first_day, december.last_day) == (
        date(2024, 12, 15),
        date(2025, 1, 14),
    )
    january = resolve_cycle(date(2024, 1, 5), settings)
    assert (january.first_day, january.last_day) == (
        date(2023, 12, 15),
        date(2024, 1, 14),
    )


def test_end_is_last_millisecond_of_day():
    cycle = resolve_cycle(date(2024, 5, 20), _monthly(MonthlyStartType.fixed, 1))
    assert cycle.end == datetime(2024, 5, 31, 23, 59, 59, 999000)
    assert cycle.start.time() == datetime.min.time()


def test_weekday_search_helpers():
    # 2024-01-01 is a Monday; Friday is weekday 5 with Sunday as 0.
    assert first_weekday_of_month(2024, 1, 5) == date(2024, 1, 5)
    assert first_weekday_of_month(2024, 1, 1) == date(2024, 1, 1)
    assert last_weekday_of_month(2024, 1, 5) == date(2024, 1, 26)
    assert last_weekday_of_month(2024, 2, 4) == date(2024, 2, 29)


def test_first_weekday_cycle():
    settings = _monthly(MonthlyStartType.first_weekday, 5)
    before = resolve_cycle(date(2024, 1, 4), settings)
    assert (before.first_day, before.last_day) == (date(2023, 12, 1), date(2024, 1, 4))
    on_anchor = resolve_cycle(date(2024, 1, 5), settings)
    assert (on_anchor.first_day, on_anchor.last_day) == (
        date(2024, 1, 5),
        date(2024, 2, 1),
    )


def test_last_weekday_cycle():
    settings = _monthly(MonthlyStartType.last_weekday, 5)
    after = resolve_cycle(date(2024, 1, 27), settings)
    assert (after.first_day, after.last_day) == (date(2024, 1, 26), date(2024, 2, 22))
    before = resolve_cycle(date(2024, 1, 20), settings)
    assert (before.first_day, before.last_day) == (
        date(2023, 12, 29),
        date(2024, 1, 25),
    )


def test_weekly_cycle_starts_on_most_recent_start_day():
    cycle = resolve_cycle(date(2024, 1, 3), _weekly(1))
    assert cycle.first_day == date(2024, 1, 1)
    assert cycle.last_day == date(2024, 1, 7)

    sunday = resolve_cycle(date(2024, 1, 7), _weekly(0))
    assert sunday.first_day == date(2024, 1, 7)

    saturday_start = resolve_cycle(date(2024, 1, 5), _weekly(6))
    assert saturday_start.first_day == date(2023, 12, 30)


@pytest.mark.parametrize("start_day", range(7))
def test_weekly_cycle_always_spans_seven_days(start_day):
    day = date(2024, 2, 20)
    for offset in range(14):
        cycle = resolve_cycle(day + timedelta(days=offset), _weekly(start_day))
        assert cycle.last_day - cycle.first_day == timedelta(days=6)
        assert cycle.contains(day + timedelta(days=offset))


def test_reference_datetime_is_normalized_to_day():
    settings = _monthly(MonthlyStartType.fixed, 10)
    late = resolve_cycle(datetime(2024, 6, 10, 23, 30), settings)
    assert late.first_day == date(2024, 6, 10)
    assert late.start == datetime(2024, 6, 10)


def test_monthly_without_start_type_is_rejected():
    with pytest.raises(ValueError):
        resolve_cycle(date(2024, 1, 1), CycleSettings(CycleFrequency.monthly, 1))


def test_shift_cycle_moves_whole_periods():
    settings = _monthly(MonthlyStartType.fixed, 1)
    january = resolve_cycle(date(2024, 1, 15), settings)
    assert shift_cycle(january, settings, -1).first_day == date(2023, 12, 1)
    assert shift_cycle(january, settings, 2).first_day == date(2024, 3, 1)
    assert shift_cycle(january, settings, 0) == january


def test_cycle_contains_respects_bounds():
    cycle = Cycle(datetime(2024, 1, 1), datetime.combine(date(2024, 1, 31), DAY_END))
    assert cycle.contains(date(2024, 1, 31))
    assert cycle.contains(datetime(2024, 1, 31, 23, 59, 59))
    assert not cycle.contains(date(2024, 2, 1))
    assert cycle.key == "2024-01-01"
