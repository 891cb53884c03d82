"""Scheduled reminder pass.

Coordinates one run of the reminder job: load subscriptions, read today's
dedup log, generate candidates from the time-windowed rules, fan out delivery,
log what was sent and clean up dead endpoints and old log rows.

The pass holds no state between runs; the dedup log and the subscription
table are the system of record. It never raises: every failure is logged and
contained, and a summary is always returned.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from core.config import Settings, get_settings
from core.services.academy_clock import AcademyClock, ClockWindow
from core.services.notifications.base import (
    DeliveryOutcome,
    NotificationIntent,
    NotificationStore,
    PassSummary,
    PushSender,
    SentKey,
    SentLogEntry,
    SubscriptionRecord,
)
from core.services.notifications.dispatch import (
    DeliveryJob,
    JobResult,
    dispatch,
    gone_subscription_ids,
    outcome_counts,
)
from core.services.notifications.rules import DEFAULT_RULES, Rule, RuleContext, generate_candidates

logger = logging.getLogger(__name__)


def group_by_player(subscriptions: Iterable[SubscriptionRecord]) -> dict[str, list[SubscriptionRecord]]:
    grouped: dict[str, list[SubscriptionRecord]] = defaultdict(list)
    for sub in subscriptions:
        grouped[sub.player_id].append(sub)
    return dict(grouped)


def filter_unsent(candidates: Iterable[NotificationIntent], sent_keys: set[SentKey]) -> list[NotificationIntent]:
    """Drop candidates already logged today, and repeats within this pass."""
    seen = set(sent_keys)
    unsent = []
    for intent in candidates:
        if intent.key in seen:
            continue
        seen.add(intent.key)
        unsent.append(intent)
    return unsent


def build_jobs(intents: Sequence[NotificationIntent], subs_by_player: dict[str, list[SubscriptionRecord]]) -> list[DeliveryJob]:
    jobs = []
    for intent in intents:
        payload = intent.payload()
        for sub in subs_by_player.get(intent.player_id, []):
            jobs.append(DeliveryJob(key=intent.key, subscription=sub, payload=payload))
    return jobs


def entries_to_log(
    intents: Sequence[NotificationIntent],
    results: Sequence[JobResult],
    window: ClockWindow,
    policy: str = "attempted",
) -> list[SentLogEntry]:
    """Dedup rows for this pass.

    attempted: one row per candidate whatever happened to its deliveries.
    delivered: skip candidates whose endpoints only failed transiently, so the
    next pass tries them again.
    """
    outcomes: dict[SentKey, set[DeliveryOutcome]] = defaultdict(set)
    for r in results:
        outcomes[r.key].add(r.result.outcome)

    entries = []
    for intent in intents:
        if policy == "delivered":
            seen = outcomes.get(intent.key, set())
            if DeliveryOutcome.DELIVERED not in seen and DeliveryOutcome.TRANSIENT_FAILURE in seen:
                continue
        entries.append(
            SentLogEntry(
                player_id=intent.player_id,
                notification_type=intent.type,
                reference_id=intent.reference_id,
                sent_date=window.today,
            )
        )
    return entries


def _cleanup(store: NotificationStore, expired_ids: list[str], window: ClockWindow, retention_days: int) -> None:
    if expired_ids:
        try:
            removed = store.delete_subscriptions(expired_ids)
            logger.info("Cleaned up expired subscriptions: count=%d", removed)
        except Exception:
            logger.warning("Failed to delete expired subscriptions: ids=%s", expired_ids, exc_info=True)

    cutoff = window.today - timedelta(days=retention_days)
    try:
        purged = store.purge_sent_before(cutoff)
        if purged:
            logger.info("Purged notification log entries: before=%s count=%d", cutoff.isoformat(), purged)
    except Exception:
        logger.warning("Failed to purge notification log: before=%s", cutoff.isoformat(), exc_info=True)


def run_notification_pass(
    now: datetime,
    store: NotificationStore,
    sender: PushSender,
    clock: AcademyClock | None = None,
    settings: Settings | None = None,
    rules: Sequence[tuple[str, Rule]] = DEFAULT_RULES,
) -> PassSummary:
    window: ClockWindow | None = None
    try:
        settings = settings or get_settings()
        clock = clock or AcademyClock(settings.academy_timezone)
        window = clock.window(now)
        return _run(window, clock, store, sender, settings, rules)
    except Exception:
        # without a resolved window the local hour is unknown; report UTC
        hour = window.hour if window is not None else now.hour
        logger.exception("Notification pass aborted: hour=%d", hour)
        return PassSummary(hour=hour, reason="internal_error")


def _run(
    window: ClockWindow,
    clock: AcademyClock,
    store: NotificationStore,
    sender: PushSender,
    settings: Settings,
    rules: Sequence[tuple[str, Rule]],
) -> PassSummary:
    summary = PassSummary(hour=window.hour)

    # 1. subscriptions
    try:
        subscriptions = store.list_subscriptions()
    except Exception:
        logger.warning("Failed to fetch push subscriptions", exc_info=True)
        summary.reason = "fetch_error"
        return summary
    if not subscriptions:
        summary.reason = "no_subscriptions"
        return summary
    subs_by_player = group_by_player(subscriptions)

    # 2. dedup log
    try:
        sent_keys = store.sent_keys_on(window.today)
    except Exception:
        logger.warning("Failed to read notification log: date=%s", window.today.isoformat(), exc_info=True)
        sent_keys = set()

    # 3. candidates
    ctx = RuleContext(
        window=window,
        clock=clock,
        player_ids=list(subs_by_player),
        soon_min_minutes=settings.event_soon_min_minutes,
        soon_max_minutes=settings.event_soon_max_minutes,
    )
    candidates = generate_candidates(store, ctx, rules, failures=summary.failures)
    intents = filter_unsent(candidates, sent_keys)
    summary.notifications = len(intents)

    # 4. deliver
    results = dispatch(sender, build_jobs(intents, subs_by_player), settings.push_max_workers)
    counts = outcome_counts(results)
    expired_ids = gone_subscription_ids(results)
    summary.sent = counts[DeliveryOutcome.DELIVERED]
    summary.expired = len(expired_ids)

    # 5. dedup log, best effort
    entries = entries_to_log(intents, results, window, settings.notification_log_policy)
    if entries:
        try:
            store.record_sent(entries)
        except Exception:
            logger.warning("Notification log insert failed: entries=%d", len(entries), exc_info=True)

    # 6. cleanup
    _cleanup(store, expired_ids, window, settings.notification_log_retention_days)

    logger.info(
        "notification_pass_complete",
        extra={
            "hour": window.hour,
            "sent": summary.sent,
            "expired": summary.expired,
            "notifications": summary.notifications,
            "transient_failures": counts[DeliveryOutcome.TRANSIENT_FAILURE],
            "failed_rules": list(summary.failures),
        },
    )
    return summary
