from __future__ import annotations

import sys
import threading
from datetime import date, datetime, timezone

import pytest

from core.config import get_settings
from core.db import reset_engine
from core.services.notifications.base import (
    ChoreRecord,
    DeliveryResult,
    EventRecord,
    NotificationStore,
    PushSender,
    SentLogEntry,
    SubscriptionRecord,
)


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    reset_engine()
    yield
    get_settings.cache_clear()
    reset_engine()


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def sub(sub_id: str, player_id: str) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=sub_id,
        player_id=player_id,
        endpoint=f"https://push.example.com/{sub_id}",
        p256dh=f"p256dh-{sub_id}",
        auth=f"auth-{sub_id}",
    )


class FakeStore(NotificationStore):
    """In-memory store with the same filtering semantics as the SQL store."""

    def __init__(self, subscriptions=(), events=(), chores=(), wellness=(), sent=()):
        self.subscriptions: list[SubscriptionRecord] = list(subscriptions)
        self.events: list[EventRecord] = list(events)
        self.chores: list[ChoreRecord] = list(chores)
        self.wellness: set[tuple[str, date]] = set(wellness)
        self.sent: list[SentLogEntry] = list(sent)
        self.fail: set[str] = set()
        self.deleted: list[str] = []
        self.purged_before: list[date] = []

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail:
            raise RuntimeError(f"{name} unavailable")

    def list_subscriptions(self):
        self._maybe_fail("list_subscriptions")
        return list(self.subscriptions)

    def sent_keys_on(self, day):
        self._maybe_fail("sent_keys_on")
        return {e.key for e in self.sent if e.sent_date == day}

    def events_starting_between(self, start, end, *, end_inclusive=False):
        self._maybe_fail("events_starting_between")
        return [
            e
            for e in self.events
            if e.start_time >= start and (e.start_time <= end if end_inclusive else e.start_time < end)
        ]

    def pending_chores_due(self, before, after=None):
        self._maybe_fail("pending_chores_due")
        return [
            c
            for c in self.chores
            if c.assigned_to and c.deadline is not None and c.deadline < before and (after is None or c.deadline >= after)
        ]

    def players_with_wellness_on(self, day, player_ids):
        self._maybe_fail("players_with_wellness_on")
        ids = set(player_ids)
        return {pid for pid, d in self.wellness if d == day and pid in ids}

    def record_sent(self, entries):
        self._maybe_fail("record_sent")
        self.sent.extend(entries)

    def delete_subscriptions(self, subscription_ids):
        self._maybe_fail("delete_subscriptions")
        ids = set(subscription_ids)
        before = len(self.subscriptions)
        self.subscriptions = [s for s in self.subscriptions if s.id not in ids]
        self.deleted.extend(sorted(ids))
        return before - len(self.subscriptions)

    def purge_sent_before(self, day):
        self._maybe_fail("purge_sent_before")
        self.purged_before.append(day)
        before = len(self.sent)
        self.sent = [e for e in self.sent if e.sent_date >= day]
        return before - len(self.sent)


class FakeSender(PushSender):
    """Records deliveries; endpoints can be marked gone, failing or raising."""

    def __init__(self, gone=(), failing=(), raising=()):
        self.gone = set(gone)
        self.failing = set(failing)
        self.raising = set(raising)
        self.calls: list[tuple[str, dict]] = []
        self._lock = threading.Lock()

    def deliver(self, subscription, payload):
        with self._lock:
            self.calls.append((subscription.id, payload))
        if subscription.id in self.raising:
            raise ConnectionError("socket closed")
        if subscription.id in self.gone:
            return DeliveryResult.gone(subscription.id, "HTTP 410")
        if subscription.id in self.failing:
            return DeliveryResult.transient(subscription.id, "HTTP 500")
        return DeliveryResult.delivered(subscription.id)

    def delivered_to(self) -> list[str]:
        return [sid for sid, _ in self.calls]


@pytest.fixture
def fake_sender():
    return FakeSender()


@pytest.fixture
def sqlite_env(monkeypatch):
    """Point settings at a shared in-memory SQLite database with the schema created."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")
    monkeypatch.setenv("APP_ENV", "test")
    get_settings.cache_clear()
    reset_engine()

    from core.db import get_engine
    from core.models import Base

    Base.metadata.create_all(bind=get_engine())
    yield
    Base.metadata.drop_all(bind=get_engine())


@pytest.fixture
def db_session(sqlite_env):
    from core.db import get_session_factory

    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


def purge_api_modules() -> None:
    for name in ["api.main", "api.routes", "api.ratelimit"]:
        sys.modules.pop(name, None)
