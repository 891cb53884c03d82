"""Abstractions shared by the reminder scheduler and the event-change broadcast.

The scheduler never talks to a database or a push service directly: it reads
through a NotificationStore and delivers through a PushSender, so both can be
swapped for fakes in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class NotificationType(str, Enum):
    EVENT_TOMORROW = "event_tomorrow"
    EVENT_TODAY = "event_today"
    EVENT_SOON = "event_soon"
    CHORE_OVERDUE = "chore_overdue"
    CHORE_DUE = "chore_due"
    WELLNESS_REMINDER = "wellness_reminder"


SentKey = tuple[str, str, str]


@dataclass(frozen=True)
class SubscriptionRecord:
    id: str
    player_id: str
    endpoint: str
    p256dh: str
    auth: str

    def subscription_info(self) -> dict[str, Any]:
        return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}


@dataclass(frozen=True)
class EventRecord:
    id: str
    title: str
    type: str
    start_time: datetime
    location: str | None = None


@dataclass(frozen=True)
class ChoreRecord:
    id: str
    title: str
    assigned_to: str | None
    deadline: datetime | None = None


@dataclass(frozen=True)
class SentLogEntry:
    player_id: str
    notification_type: str
    reference_id: str
    sent_date: date

    @property
    def key(self) -> SentKey:
        return (self.player_id, self.notification_type, self.reference_id)


@dataclass(frozen=True)
class NotificationIntent:
    """A reminder that one player should receive, before delivery."""

    player_id: str
    type: str
    reference_id: str
    title: str
    body: str
    tag: str
    url: str

    @property
    def key(self) -> SentKey:
        return (self.player_id, self.type, self.reference_id)

    def payload(self) -> dict[str, Any]:
        return {"title": self.title, "body": self.body, "tag": self.tag, "data": {"url": self.url}}


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    ENDPOINT_GONE = "endpoint_gone"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass(frozen=True)
class DeliveryResult:
    subscription_id: str
    outcome: DeliveryOutcome
    reason: str = ""

    @classmethod
    def delivered(cls, subscription_id: str) -> "DeliveryResult":
        return cls(subscription_id, DeliveryOutcome.DELIVERED)

    @classmethod
    def gone(cls, subscription_id: str, reason: str = "") -> "DeliveryResult":
        return cls(subscription_id, DeliveryOutcome.ENDPOINT_GONE, reason)

    @classmethod
    def transient(cls, subscription_id: str, reason: str) -> "DeliveryResult":
        return cls(subscription_id, DeliveryOutcome.TRANSIENT_FAILURE, reason)


@dataclass
class PassSummary:
    """Outcome of one scheduled reminder pass."""

    sent: int = 0
    expired: int = 0
    notifications: int = 0
    hour: int | None = None
    reason: str | None = None
    failures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"sent": self.sent, "expired": self.expired, "notifications": self.notifications}
        if self.hour is not None:
            data["hour"] = self.hour
        if self.reason:
            data["reason"] = self.reason
        return data


class PushSender(ABC):
    """Delivers one payload to one subscription endpoint."""

    @abstractmethod
    def deliver(self, subscription: SubscriptionRecord, payload: dict[str, Any]) -> DeliveryResult:
        """Attempt delivery and classify the result.

        Implementations must not raise for transport errors; they report
        EndpointGone for permanently invalid endpoints (404/410) and
        TransientFailure for anything else.
        """


class NotificationStore(ABC):
    """Reads and writes the scheduler needs from the backing store."""

    @abstractmethod
    def list_subscriptions(self) -> list[SubscriptionRecord]:
        """All registered push subscriptions."""

    @abstractmethod
    def sent_keys_on(self, day: date) -> set[SentKey]:
        """(player, type, reference) keys already logged for a local date."""

    @abstractmethod
    def events_starting_between(self, start: datetime, end: datetime, *, end_inclusive: bool = False) -> list[EventRecord]:
        """Events with start_time >= start and < end (<= end when inclusive)."""

    @abstractmethod
    def pending_chores_due(self, before: datetime, after: datetime | None = None) -> list[ChoreRecord]:
        """Pending, assigned chores with after <= deadline < before."""

    @abstractmethod
    def players_with_wellness_on(self, day: date, player_ids: Iterable[str]) -> set[str]:
        """Subset of player_ids that have a wellness log dated `day`."""

    @abstractmethod
    def record_sent(self, entries: list[SentLogEntry]) -> None:
        """Append dedup log entries."""

    @abstractmethod
    def delete_subscriptions(self, subscription_ids: Iterable[str]) -> int:
        """Delete subscriptions by id; returns number removed."""

    @abstractmethod
    def purge_sent_before(self, day: date) -> int:
        """Delete dedup entries with sent_date < day; returns number removed."""
