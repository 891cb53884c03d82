"""Daily compliance scoring.

A player's day is scored from three inputs: the calendar events that apply to
them, their wellness self-report and their logged training loads.

Points: +1 for a wellness log, +1 per training-load entry (uncapped), +1 if
any entry has mobility work ticked.

Traffic light (only when training or competition is scheduled):
- gray   -- nothing requiring an activity log on the calendar
- green  -- every required log plus mobility is done
- yellow -- some progress
- red    -- nothing done
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any

TRAINING_COMPETITION_TYPES = frozenset(
    {
        "team_training",
        "individual_training",
        "gym",
        "match",
        "tournament",
        "training",
    }
)

LIGHT_ORDER = {"red": 0, "yellow": 1, "green": 2, "gray": 3}


@dataclass(frozen=True)
class ComplianceResult:
    light: str
    wellness_completed: bool
    activity_logs_count: int
    activity_logs_required: int
    mobility_completed: bool
    mobility_required: bool
    points: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PlayerCompliance:
    player_id: str
    compliance: ComplianceResult


def _value(record: Any, key: str, default: Any = None) -> Any:
    if isinstance(record, Mapping):
        return record.get(key, default)
    return getattr(record, key, default)


def traffic_light(activity_logs_count: int, activity_logs_required: int, mobility_completed: bool) -> str:
    if activity_logs_required == 0:
        return "gray"
    done = min(activity_logs_count, activity_logs_required) + (1 if mobility_completed else 0)
    # mobility is always required once anything is scheduled
    needed = activity_logs_required + 1
    if done >= needed:
        return "green"
    if done > 0:
        return "yellow"
    return "red"


def calculate_compliance(
    events: Iterable[Any],
    wellness_logs: Sequence[Any],
    training_loads: Sequence[Any],
) -> ComplianceResult:
    """Score one player's day.

    All three collections must already be filtered to the player and date.
    Records may be ORM rows or plain mappings.
    """
    activity_logs_required = sum(1 for e in events if _value(e, "type") in TRAINING_COMPETITION_TYPES)
    mobility_required = activity_logs_required > 0
    wellness_completed = len(wellness_logs) > 0
    activity_logs_count = len(training_loads)
    mobility_completed = any(_value(t, "mobility_completed") is True for t in training_loads)

    points = (1 if wellness_completed else 0) + activity_logs_count + (1 if mobility_completed else 0)

    return ComplianceResult(
        light=traffic_light(activity_logs_count, activity_logs_required, mobility_completed),
        wellness_completed=wellness_completed,
        activity_logs_count=activity_logs_count,
        activity_logs_required=activity_logs_required,
        mobility_completed=mobility_completed,
        mobility_required=mobility_required,
        points=points,
    )


def _attendee_ids(event: Any) -> list[str]:
    ids = _value(event, "attendee_ids")
    if ids is None:
        ids = [_value(a, "player_id") for a in (_value(event, "attendees") or [])]
    return [str(i) for i in ids]


def events_for_player(player_id: str, day: date, events: Iterable[Any]) -> list[Any]:
    """Events on `day` that apply to the player (no attendees means everyone)."""
    selected = []
    for event in events:
        if _value(event, "date") != day:
            continue
        attendees = _attendee_ids(event)
        if not attendees or str(player_id) in attendees:
            selected.append(event)
    return selected


def compliance_board(
    player_ids: Iterable[str],
    day: date,
    events: Sequence[Any],
    wellness_logs: Sequence[Any],
    training_loads: Sequence[Any],
) -> list[PlayerCompliance]:
    """Compliance for every player on one day, worst lights first."""
    rows = []
    for player_id in player_ids:
        pid = str(player_id)
        player_wellness = [w for w in wellness_logs if str(_value(w, "player_id")) == pid and _value(w, "date") == day]
        player_training = [t for t in training_loads if str(_value(t, "player_id")) == pid and _value(t, "date") == day]
        rows.append(
            PlayerCompliance(
                player_id=pid,
                compliance=calculate_compliance(events_for_player(pid, day, events), player_wellness, player_training),
            )
        )
    rows.sort(key=lambda r: LIGHT_ORDER[r.compliance.light])
    return rows
