from __future__ import annotations

from datetime import date

import pytest

from core.services.notifications.event_change import (
    EventChange,
    broadcast_event_change,
    build_event_change_notification,
    short_date,
)
from tests.conftest import FakeSender, FakeStore, sub


def test_short_date():
    assert short_date(date(2026, 10, 19)) == "Mon, Oct 19"
    assert short_date(date(2026, 3, 1)) == "Sun, Mar 1"


def test_created_notification():
    payload = build_event_change_notification(
        EventChange("created", "e1", "Leg Day", "gym", date=date(2026, 10, 19), location="Gym Hall")
    )
    assert payload == {
        "title": "New Gym Session",
        "body": "Leg Day, Mon, Oct 19 @ Gym Hall",
        "tag": "event-e1",
        "data": {"url": "/calendar"},
    }


def test_updated_notification_without_date_or_location():
    payload = build_event_change_notification(EventChange("updated", "e2", "Derby", "match"))
    assert payload["title"] == "Match Updated"
    assert payload["body"] == "Derby"


def test_deleted_notification():
    payload = build_event_change_notification(
        EventChange("deleted", "e3", "Morning Session", "team_training", date=date(2026, 10, 20), location="Pitch 1")
    )
    assert payload["title"] == "Team Training Cancelled"
    assert payload["body"] == "Morning Session, Tue, Oct 20 has been cancelled"


def test_unknown_type_label_falls_back_to_event():
    payload = build_event_change_notification(EventChange("created", "e4", "Party", "bbq"))
    assert payload["title"] == "New Event"


def test_unknown_change_type_raises():
    with pytest.raises(ValueError):
        build_event_change_notification(EventChange("moved", "e5", "X", "gym"))


def test_broadcast_counts_and_removes_gone_endpoints():
    store = FakeStore(subscriptions=[sub("s1", "p1"), sub("s2", "p2"), sub("s3", "p3")])
    sender = FakeSender(gone={"s2"}, failing={"s3"})
    result = broadcast_event_change(EventChange("created", "e1", "Leg Day", "gym"), store, sender, max_workers=3)
    assert result.to_dict() == {"sent": 1, "expired": 1, "total": 3}
    assert store.deleted == ["s2"]
    assert all(payload["tag"] == "event-e1" for _, payload in sender.calls)


def test_broadcast_without_subscriptions():
    result = broadcast_event_change(EventChange("created", "e1", "X", "gym"), FakeStore(), FakeSender())
    assert result.to_dict() == {"sent": 0, "expired": 0, "total": 0}


def test_broadcast_propagates_fetch_failure():
    store = FakeStore(subscriptions=[sub("s1", "p1")])
    store.fail.add("list_subscriptions")
    with pytest.raises(RuntimeError):
        broadcast_event_change(EventChange("created", "e1", "X", "gym"), store, FakeSender())
