"""Accounting cycle boundaries.

Weekdays follow the Sunday-first convention used by the settings screen:
0 = Sunday, 1 = Monday, ... 6 = Saturday.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from models import CycleFrequency, MonthlyStartType

DAY_START = time(0, 0, 0)
DAY_END = time(23, 59, 59, 999000)


@dataclass(frozen=True)
class CycleSettings:
    frequency: CycleFrequency
    start_day: int
    monthly_start_type: Optional[MonthlyStartType] = None


DEFAULT_CYCLE_SETTINGS = CycleSettings(
    frequency=CycleFrequency.monthly,
    start_day=1,
    monthly_start_type=MonthlyStartType.fixed,
)


@dataclass(frozen=True)
class Cycle:
    start: datetime
    end: datetime

    @property
    def first_day(self) -> date:
        return self.start.date()

    @property
    def last_day(self) -> date:
        return self.end.date()

    @property
    def key(self) -> str:
        return self.first_day.isoformat()

    def contains(self, moment: Union[date, datetime]) -> bool:
        if isinstance(moment, datetime):
            return self.start <= moment <= self.end
        return self.first_day <= moment <= self.last_day


def sunday_weekday(d: date) -> int:
    return (d.weekday() + 1) % 7


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + offset
    return total // 12, total % 12 + 1


def first_weekday_of_month(year: int, month: int, weekday: int) -> date:
    first = date(year, month, 1)
    offset = (weekday - sunday_weekday(first)) % 7
    return first + timedelta(days=offset)


def last_weekday_of_month(year: int, month: int, weekday: int) -> date:
    next_year, next_month = _shift_month(year, month, 1)
    last = date(next_year, next_month, 1) - timedelta(days=1)
    offset = (sunday_weekday(last) - weekday) % 7
    return last - timedelta(days=offset)


def monthly_anchor(year: int, month: int, settings: CycleSettings) -> date:
    start_type = settings.monthly_start_type
    if start_type is None:
        raise ValueError("Monthly cycles require a monthly start type")
    if start_type == MonthlyStartType.fixed:
        return date(year, month, settings.start_day)
    if start_type == MonthlyStartType.first_weekday:
        return first_weekday_of_month(year, month, settings.start_day)
    return last_weekday_of_month(year, month, settings.start_day)


def _as_date(reference: Union[date, datetime]) -> date:
    if isinstance(reference, datetime):
        return reference.date()
    return reference


def _bounded(first_day: date, last_day: date) -> Cycle:
    return Cycle(
        datetime.combine(first_day, DAY_START), datetime.combine(last_day, DAY_END)
    )


def resolve_cycle(reference: Union[date, datetime], settings: CycleSettings) -> Cycle:
    """Return the cycle that contains ``reference`` under ``settings``.

    The caller is trusted to pass a valid ``start_day`` for the mode:
    1-28 for fixed monthly cycles, 0-6 for weekly and weekday-relative ones.
    A reference date equal to an anchor opens the cycle starting on it.
    """
    today = _as_date(reference)

    if settings.frequency == CycleFrequency.weekly:
        back = (sunday_weekday(today) - settings.start_day) % 7
        start = today - timedelta(days=back)
        return _bounded(start, start + timedelta(days=6))

    this_anchor = monthly_anchor(today.year, today.month, settings)
    if today >= this_anchor:
        next_year, next_month = _shift_month(today.year, today.month, 1)
        next_anchor = monthly_anchor(next_year, next_month, settings)
        return _bounded(this_anchor, next_anchor - timedelta(days=1))

    prev_year, prev_month = _shift_month(today.year, today.month, -1)
    prev_anchor = monthly_anchor(prev_year, prev_month, settings)
    return _bounded(prev_anchor, this_anchor - timedelta(days=1))


def shift_cycle(cycle: Cycle, settings: CycleSettings, offset: int) -> Cycle:
    """Step ``offset`` whole cycles backwards (negative) or forwards."""
    current = cycle
    step = timedelta(days=1)
    for _ in range(abs(offset)):
        if offset > 0:
            current = resolve_cycle(current.last_day + step, settings)
        else:
            current = resolve_cycle(current.first_day - step, settings)
    return current
