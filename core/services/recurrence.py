from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from dateutil.relativedelta import relativedelta

from core.services.academy_clock import AcademyClock

RECURRENCE_RULES = {"daily", "weekly", "monthly", "custom"}

WEEKDAYS = {"mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6}

# A recurring series may run for at most a year past its first date
MAX_RECURRENCE_SPAN_DAYS = 366


@dataclass(frozen=True)
class EventInstance:
    """One non-recurring copy of a recurring event."""

    date: date
    start_time: datetime
    end_time: datetime


def add_months(day: date, months: int) -> date:
    """Shift by whole months, clamping to the last day of shorter months."""
    return day + relativedelta(months=months)


def generate_recurring_dates(
    start: date,
    rule: str,
    end: date,
    days: Iterable[str] = (),
) -> list[date]:
    """Occurrence dates after `start` up to and including `end`.

    The start date itself is not returned; the parent event covers it.
    """
    if rule not in RECURRENCE_RULES:
        raise ValueError(f"Unknown recurrence rule {rule!r}. Valid: {sorted(RECURRENCE_RULES)}")

    dates: list[date] = []
    if rule == "custom":
        selected = {WEEKDAYS[d.lower()] for d in days if d.lower() in WEEKDAYS}
        if not selected:
            return dates
        current = start + timedelta(days=1)
        while current <= end:
            if current.weekday() in selected:
                dates.append(current)
            current += timedelta(days=1)
        return dates

    step = 1
    while True:
        if rule == "daily":
            current = start + timedelta(days=step)
        elif rule == "weekly":
            current = start + timedelta(weeks=step)
        else:
            current = add_months(start, step)
        if current > end:
            break
        dates.append(current)
        step += 1
    return dates


def expand_recurring_event(
    start: date,
    rule: str,
    end: date,
    start_clock: time,
    end_clock: time,
    clock: AcademyClock,
    days: Iterable[str] = (),
) -> list[EventInstance]:
    """Child instances keeping the same local wall-clock times on each date."""
    return [
        EventInstance(
            date=d,
            start_time=clock.local_time_utc(d, start_clock),
            end_time=clock.local_time_utc(d, end_clock),
        )
        for d in generate_recurring_dates(start, rule, end, days)
    ]
