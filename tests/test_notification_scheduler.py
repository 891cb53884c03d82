"""Tests for the scheduled reminder pass."""

from __future__ import annotations

import threading
from datetime import date, timedelta

import pytest

from core.config import Settings
from core.services.academy_clock import AcademyClock
from core.services.notifications.base import DeliveryResult, EventRecord, SentLogEntry
from core.services.notifications.scheduler import entries_to_log, filter_unsent, run_notification_pass
from tests.conftest import FakeSender, FakeStore, sub, utc

CLOCK = AcademyClock("Europe/Berlin")
EVENING = utc(2026, 10, 19, 16, 30)  # 18:30 local
NOON = utc(2026, 10, 19, 10, 0)  # 12:00 local, only the starting-soon rule is live
TODAY = date(2026, 10, 19)


def _settings(**overrides) -> Settings:
    values = {"database_url": "sqlite://", "app_env": "test", "push_max_workers": 4}
    values.update(overrides)
    return Settings(**values)


def _run(store, sender, now=EVENING, **settings):
    return run_notification_pass(now, store, sender, clock=CLOCK, settings=_settings(**settings))


def _evening_store():
    return FakeStore(
        subscriptions=[sub("s1", "p1"), sub("s2", "p2")],
        events=[EventRecord(id="e1", title="Team Training", type="team_training", start_time=utc(2026, 10, 20, 7, 0))],
    )


def test_no_subscriptions_short_circuits():
    sender = FakeSender()
    summary = _run(FakeStore(), sender)
    assert summary.to_dict() == {"sent": 0, "expired": 0, "notifications": 0, "hour": 18, "reason": "no_subscriptions"}
    assert sender.calls == []


def test_subscription_fetch_failure_reports_reason():
    store = _evening_store()
    store.fail.add("list_subscriptions")
    summary = _run(store, FakeSender())
    assert summary.reason == "fetch_error"
    assert summary.sent == 0


def test_evening_pass_sends_event_and_wellness_reminders():
    store = _evening_store()
    sender = FakeSender()
    summary = _run(store, sender)
    assert summary.notifications == 4
    assert summary.sent == 4
    assert summary.expired == 0
    assert summary.reason is None
    assert sorted(e.key for e in store.sent) == [
        ("p1", "event_tomorrow", "e1"),
        ("p1", "wellness_reminder", ""),
        ("p2", "event_tomorrow", "e1"),
        ("p2", "wellness_reminder", ""),
    ]
    assert {e.sent_date for e in store.sent} == {TODAY}


def test_second_pass_same_day_sends_nothing_new():
    store = _evening_store()
    sender = FakeSender()
    _run(store, sender)
    second = _run(store, sender, now=EVENING + timedelta(minutes=30))
    assert second.notifications == 0
    assert second.sent == 0
    assert len(sender.calls) == 4


def test_dedup_log_from_previous_day_does_not_block():
    store = _evening_store()
    store.sent.append(SentLogEntry("p1", "wellness_reminder", "", TODAY - timedelta(days=1)))
    summary = _run(store, FakeSender())
    assert summary.notifications == 4


def test_starting_soon_boundaries_in_full_pass():
    events = [
        EventRecord(id=f"m{m}", title=f"Match {m}", type="match", start_time=NOON + timedelta(minutes=m))
        for m in (44, 45, 75, 76)
    ]
    store = FakeStore(subscriptions=[sub("s1", "p1")], events=events)
    sender = FakeSender()
    summary = _run(store, sender, now=NOON)
    assert summary.notifications == 2
    assert sorted(e.reference_id for e in store.sent) == ["m45", "m75"]


def test_endpoint_outcomes_are_isolated():
    store = FakeStore(
        subscriptions=[sub("gone", "p1"), sub("flaky", "p1"), sub("ok", "p1"), sub("other", "p2")],
        events=[EventRecord(id="e1", title="T", type="gym", start_time=NOON + timedelta(minutes=60))],
    )
    sender = FakeSender(gone={"gone"}, failing={"flaky"})
    summary = _run(store, sender, now=NOON)
    assert summary.notifications == 2
    assert summary.sent == 2  # "ok" and "other"
    assert summary.expired == 1
    assert store.deleted == ["gone"]
    assert sorted(sender.delivered_to()) == ["flaky", "gone", "ok", "other"]
    assert [s.id for s in store.subscriptions] == ["flaky", "ok", "other"]


def test_sender_exception_counts_as_transient():
    store = FakeStore(
        subscriptions=[sub("boom", "p1"), sub("ok", "p2")],
        events=[EventRecord(id="e1", title="T", type="gym", start_time=NOON + timedelta(minutes=60))],
    )
    summary = _run(store, FakeSender(raising={"boom"}), now=NOON)
    assert summary.sent == 1
    assert summary.expired == 0
    assert store.deleted == []


def test_cleanup_keeps_seven_days_purges_eight():
    store = _evening_store()
    store.sent.extend(
        [
            SentLogEntry("p1", "event_today", "old7", TODAY - timedelta(days=7)),
            SentLogEntry("p1", "event_today", "old8", TODAY - timedelta(days=8)),
        ]
    )
    _run(store, FakeSender())
    refs = {e.reference_id for e in store.sent}
    assert "old7" in refs
    assert "old8" not in refs
    assert store.purged_before == [TODAY - timedelta(days=7)]


def test_failing_rule_does_not_block_others():
    store = _evening_store()
    store.fail.add("events_starting_between")
    summary = _run(store, FakeSender())
    assert summary.notifications == 2
    # event_today is outside its window and never queries
    assert summary.failures == ["event_tomorrow", "event_soon"]
    assert {e.notification_type for e in store.sent} == {"wellness_reminder"}


def test_dedup_read_failure_still_sends():
    store = _evening_store()
    store.fail.add("sent_keys_on")
    summary = _run(store, FakeSender())
    assert summary.sent == 4


def test_log_write_failure_is_contained():
    store = _evening_store()
    store.fail.add("record_sent")
    sender = FakeSender()
    summary = _run(store, sender)
    assert summary.sent == 4
    assert store.sent == []


def test_cleanup_failures_are_contained():
    store = FakeStore(
        subscriptions=[sub("gone", "p1")],
        events=[EventRecord(id="e1", title="T", type="gym", start_time=NOON + timedelta(minutes=60))],
    )
    store.fail.update({"delete_subscriptions", "purge_sent_before"})
    summary = _run(store, FakeSender(gone={"gone"}), now=NOON)
    assert summary.expired == 1
    assert summary.reason is None


def test_unexpected_error_returns_internal_error():
    class BrokenStore(FakeStore):
        def sent_keys_on(self, day):
            return None

    summary = _run(BrokenStore(subscriptions=[sub("s1", "p1")]), FakeSender())
    assert summary.reason == "internal_error"
    assert summary.hour == 18


@pytest.mark.parametrize(
    "env",
    [{"ACADEMY_TIMEZONE": "Mars/Olympus_Mons"}, {"NOTIFICATION_LOG_POLICY": "sometimes"}],
)
def test_bad_configuration_returns_internal_error(monkeypatch, env):
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    sender = FakeSender()
    summary = run_notification_pass(EVENING, _evening_store(), sender)
    assert summary.reason == "internal_error"
    assert summary.hour == 16
    assert sender.calls == []


def test_attempted_policy_logs_transient_failures():
    store = FakeStore(
        subscriptions=[sub("flaky", "p1")],
        events=[EventRecord(id="e1", title="T", type="gym", start_time=NOON + timedelta(minutes=60))],
    )
    sender = FakeSender(failing={"flaky"})
    _run(store, sender, now=NOON)
    _run(store, sender, now=NOON + timedelta(minutes=5))
    assert len(sender.calls) == 1


def test_delivered_policy_retries_transient_failures():
    store = FakeStore(
        subscriptions=[sub("flaky", "p1"), sub("gone", "p2")],
        events=[EventRecord(id="e1", title="T", type="gym", start_time=NOON + timedelta(minutes=60))],
    )
    sender = FakeSender(failing={"flaky"}, gone={"gone"})
    _run(store, sender, now=NOON, notification_log_policy="delivered")
    # gone endpoint counts as settled, flaky one does not
    assert [e.player_id for e in store.sent] == ["p2"]
    _run(store, sender, now=NOON + timedelta(minutes=5), notification_log_policy="delivered")
    assert sender.delivered_to().count("flaky") == 2


def test_filter_unsent_drops_duplicates_within_pass():
    store = _evening_store()
    window = CLOCK.window(EVENING)
    from core.services.notifications.rules import RuleContext, event_tomorrow

    ctx = RuleContext(window=window, clock=CLOCK, player_ids=["p1"])
    intents = event_tomorrow(store, ctx) + event_tomorrow(store, ctx)
    assert len(filter_unsent(intents, set())) == 1
    assert filter_unsent(intents, {("p1", "event_tomorrow", "e1")}) == []


@pytest.mark.parametrize("policy,expected", [("attempted", 1), ("delivered", 1)])
def test_entries_to_log_for_candidate_without_endpoints(policy, expected):
    from core.services.notifications.base import NotificationIntent

    intent = NotificationIntent("p1", "wellness_reminder", "", "t", "b", "tag", "/wellness")
    entries = entries_to_log([intent], [], CLOCK.window(EVENING), policy)
    assert len(entries) == expected


class StallingSender(FakeSender):
    """Holds the 'hung' endpoint open until some other endpoint was delivered to."""

    def __init__(self):
        super().__init__()
        self.other_delivered = threading.Event()
        self.unblocked: list[bool] = []

    def deliver(self, subscription, payload):
        if subscription.id == "hung":
            self.unblocked.append(self.other_delivered.wait(timeout=5))
            return DeliveryResult.transient(subscription.id, "timed out")
        result = super().deliver(subscription, payload)
        self.other_delivered.set()
        return result


def test_hung_endpoint_does_not_block_other_deliveries():
    store = FakeStore(
        subscriptions=[sub("hung", "p1"), sub("s2", "p2")],
        events=[EventRecord(id="e1", title="Team Training", type="team_training", start_time=utc(2026, 10, 20, 7, 0))],
    )
    sender = StallingSender()
    summary = _run(store, sender, push_max_workers=1)
    assert sender.unblocked and all(sender.unblocked)
    assert summary.sent == 2
    assert set(sender.delivered_to()) == {"s2"}
