from __future__ import annotations

from datetime import date, datetime, time, timezone

import pytest

from core.services.academy_clock import AcademyClock
from core.services.recurrence import add_months, expand_recurring_event, generate_recurring_dates


def test_daily_excludes_start_includes_end():
    assert generate_recurring_dates(date(2026, 10, 19), "daily", date(2026, 10, 22)) == [
        date(2026, 10, 20),
        date(2026, 10, 21),
        date(2026, 10, 22),
    ]


def test_weekly():
    assert generate_recurring_dates(date(2026, 10, 19), "weekly", date(2026, 11, 9)) == [
        date(2026, 10, 26),
        date(2026, 11, 2),
        date(2026, 11, 9),
    ]


def test_monthly_clamps_to_month_end_without_drifting():
    assert generate_recurring_dates(date(2026, 1, 31), "monthly", date(2026, 5, 31)) == [
        date(2026, 2, 28),
        date(2026, 3, 31),
        date(2026, 4, 30),
        date(2026, 5, 31),
    ]


def test_add_months_across_year_boundary():
    assert add_months(date(2026, 11, 30), 3) == date(2027, 2, 28)
    assert add_months(date(2027, 12, 31), 2) == date(2028, 2, 29)


def test_custom_weekdays():
    dates = generate_recurring_dates(date(2026, 10, 19), "custom", date(2026, 10, 28), days=["mon", "WED"])
    assert dates == [date(2026, 10, 21), date(2026, 10, 26), date(2026, 10, 28)]


def test_custom_without_days_yields_nothing():
    assert generate_recurring_dates(date(2026, 10, 19), "custom", date(2026, 12, 31)) == []


def test_end_before_first_occurrence_yields_nothing():
    assert generate_recurring_dates(date(2026, 10, 19), "weekly", date(2026, 10, 25)) == []


def test_unknown_rule_raises():
    with pytest.raises(ValueError):
        generate_recurring_dates(date(2026, 10, 19), "yearly", date(2027, 10, 19))


def test_expansion_keeps_local_wall_clock_across_dst():
    clock = AcademyClock("Europe/Berlin")
    instances = expand_recurring_event(
        date(2026, 10, 19),
        "weekly",
        date(2026, 11, 2),
        time(9, 0),
        time(10, 30),
        clock,
    )
    assert [i.date for i in instances] == [date(2026, 10, 26), date(2026, 11, 2)]
    # CET from Oct 25 onwards: 09:00 local is 08:00 UTC
    assert instances[0].start_time == datetime(2026, 10, 26, 8, 0, tzinfo=timezone.utc)
    assert instances[0].end_time == datetime(2026, 10, 26, 9, 30, tzinfo=timezone.utc)
    assert all(clock.format_time(i.start_time) == "9:00 AM" for i in instances)
