"""Academy-local wall clock.

Every reminder window and "today" decision is taken in the academy's fixed
zone, independent of the host machine. Local midnights are resolved per date
through zoneinfo so that DST transition days come out as 23 or 25 hours long.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Europe/Berlin"


@dataclass(frozen=True)
class ClockWindow:
    """Snapshot of the local calendar at one instant."""

    now: datetime
    today: date
    tomorrow: date
    hour: int
    today_start: datetime
    tomorrow_start: datetime
    day_after_start: datetime


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


class AcademyClock:
    def __init__(self, tz_name: str = DEFAULT_TIMEZONE):
        self.tz_name = tz_name
        self.tz = ZoneInfo(tz_name)

    def localize(self, instant: datetime) -> datetime:
        """Convert an instant (naive values are taken as UTC) to local time."""
        return _as_utc(instant).astimezone(self.tz)

    def local_date(self, instant: datetime) -> date:
        return self.localize(instant).date()

    def local_hour(self, instant: datetime) -> int:
        return self.localize(instant).hour

    def local_midnight_utc(self, day: date) -> datetime:
        return self.local_time_utc(day, time(0, 0))

    def local_time_utc(self, day: date, clock_time: time) -> datetime:
        """UTC instant of a local wall-clock time on a given date."""
        return datetime.combine(day, clock_time, tzinfo=self.tz).astimezone(timezone.utc)

    def format_time(self, instant: datetime) -> str:
        """Local time as "2:30 PM"."""
        local = self.localize(instant)
        hour12 = local.hour % 12 or 12
        suffix = "AM" if local.hour < 12 else "PM"
        return f"{hour12}:{local.minute:02d} {suffix}"

    def window(self, now: datetime) -> ClockWindow:
        now = _as_utc(now)
        today = self.local_date(now)
        tomorrow = today + timedelta(days=1)
        return ClockWindow(
            now=now,
            today=today,
            tomorrow=tomorrow,
            hour=self.local_hour(now),
            today_start=self.local_midnight_utc(today),
            tomorrow_start=self.local_midnight_utc(tomorrow),
            day_after_start=self.local_midnight_utc(tomorrow + timedelta(days=1)),
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
