"""Immediate broadcast when staff create, update or cancel a calendar event."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from core.services.notifications.base import DeliveryOutcome, NotificationStore, PushSender
from core.services.notifications.dispatch import DeliveryJob, dispatch, gone_subscription_ids, outcome_counts

logger = logging.getLogger(__name__)

EVENT_TYPE_LABELS: dict[str, str] = {
    "team_training": "Team Training",
    "individual_training": "Individual Training",
    "video_session": "Video Session",
    "gym": "Gym Session",
    "recovery": "Recovery",
    "match": "Match",
    "tournament": "Tournament",
    "school": "School",
    "language_class": "Language Class",
    "airport_pickup": "Airport Pickup",
    "team_activity": "Team Activity",
    "meeting": "Meeting",
    "medical": "Medical",
    "training": "Training",
    "other": "Event",
}


@dataclass(frozen=True)
class EventChange:
    change_type: str  # "created" | "updated" | "deleted"
    event_id: str
    title: str
    type: str
    date: date | None = None
    location: str | None = None


@dataclass(frozen=True)
class BroadcastResult:
    sent: int
    expired: int
    total: int

    def to_dict(self) -> dict[str, int]:
        return {"sent": self.sent, "expired": self.expired, "total": self.total}


def short_date(day: date) -> str:
    """"Mon, Oct 19" without platform-specific strftime flags."""
    return f"{day.strftime('%a')}, {day.strftime('%b')} {day.day}"


def build_event_change_notification(change: EventChange) -> dict[str, Any]:
    label = EVENT_TYPE_LABELS.get(change.type, "Event")
    when = f", {short_date(change.date)}" if change.date else ""
    where = f" @ {change.location}" if change.location else ""

    if change.change_type == "created":
        title = f"New {label}"
        body = f"{change.title}{when}{where}"
    elif change.change_type == "updated":
        title = f"{label} Updated"
        body = f"{change.title}{when}{where}"
    elif change.change_type == "deleted":
        title = f"{label} Cancelled"
        body = f"{change.title}{when} has been cancelled"
    else:
        raise ValueError(f"Unknown change type {change.change_type!r}")

    return {"title": title, "body": body, "tag": f"event-{change.event_id}", "data": {"url": "/calendar"}}


def broadcast_event_change(
    change: EventChange,
    store: NotificationStore,
    sender: PushSender,
    max_workers: int = 8,
) -> BroadcastResult:
    """Push the change to every subscription and drop endpoints that are gone.

    Subscription fetch errors propagate; the caller reports them.
    """
    payload = build_event_change_notification(change)
    subscriptions = store.list_subscriptions()
    if not subscriptions:
        return BroadcastResult(sent=0, expired=0, total=0)

    results = dispatch(
        sender,
        [DeliveryJob(key=sub.id, subscription=sub, payload=payload) for sub in subscriptions],
        max_workers,
    )
    expired_ids = gone_subscription_ids(results)
    if expired_ids:
        try:
            store.delete_subscriptions(expired_ids)
            logger.info("Cleaned up expired subscriptions: count=%d", len(expired_ids))
        except Exception:
            logger.warning("Failed to delete expired subscriptions: ids=%s", expired_ids, exc_info=True)

    return BroadcastResult(
        sent=outcome_counts(results)[DeliveryOutcome.DELIVERED],
        expired=len(expired_ids),
        total=len(subscriptions),
    )
