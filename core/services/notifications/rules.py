"""Reminder rules.

Each rule is open during a window of local hours and turns rows from the store
into NotificationIntents. Rules never deliver anything; the scheduler filters
their output against the dedup log and hands it to the dispatcher.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import timedelta

from core.services.academy_clock import AcademyClock, ClockWindow
from core.services.notifications.base import (
    ChoreRecord,
    EventRecord,
    NotificationIntent,
    NotificationStore,
    NotificationType,
)

logger = logging.getLogger(__name__)

# Local-hour windows, [start, end)
EVENT_TOMORROW_HOURS = ((18, 21),)
EVENT_TODAY_HOURS = ((7, 9),)
CHORE_HOURS = ((8, 10),)
WELLNESS_HOURS = ((8, 10), (18, 20))


@dataclass(frozen=True)
class RuleContext:
    window: ClockWindow
    clock: AcademyClock
    player_ids: Sequence[str]
    soon_min_minutes: int = 45
    soon_max_minutes: int = 75


Rule = Callable[[NotificationStore, RuleContext], list[NotificationIntent]]


def hour_in(hour: int, windows: Sequence[tuple[int, int]]) -> bool:
    return any(start <= hour < end for start, end in windows)


def _with_location(text: str, location: str | None) -> str:
    return f"{text} @ {location}" if location else text


def _broadcast_event(
    event: EventRecord,
    ctx: RuleContext,
    ntype: NotificationType,
    title: str,
    body: str,
) -> list[NotificationIntent]:
    tag_prefix = ntype.value.replace("_", "-")
    return [
        NotificationIntent(
            player_id=pid,
            type=ntype.value,
            reference_id=event.id,
            title=title,
            body=body,
            tag=f"{tag_prefix}-{event.id}",
            url="/calendar",
        )
        for pid in ctx.player_ids
    ]


def event_tomorrow(store: NotificationStore, ctx: RuleContext) -> list[NotificationIntent]:
    if not hour_in(ctx.window.hour, EVENT_TOMORROW_HOURS):
        return []
    intents = []
    for event in store.events_starting_between(ctx.window.tomorrow_start, ctx.window.day_after_start):
        body = _with_location(f"{event.title} at {ctx.clock.format_time(event.start_time)}", event.location)
        intents.extend(_broadcast_event(event, ctx, NotificationType.EVENT_TOMORROW, "Tomorrow's Schedule", body))
    return intents


def event_today(store: NotificationStore, ctx: RuleContext) -> list[NotificationIntent]:
    if not hour_in(ctx.window.hour, EVENT_TODAY_HOURS):
        return []
    intents = []
    for event in store.events_starting_between(ctx.window.today_start, ctx.window.tomorrow_start):
        body = _with_location(f"{event.title} at {ctx.clock.format_time(event.start_time)}", event.location)
        intents.extend(_broadcast_event(event, ctx, NotificationType.EVENT_TODAY, "Today's Schedule", body))
    return intents


def event_soon(store: NotificationStore, ctx: RuleContext) -> list[NotificationIntent]:
    start = ctx.window.now + timedelta(minutes=ctx.soon_min_minutes)
    end = ctx.window.now + timedelta(minutes=ctx.soon_max_minutes)
    intents = []
    for event in store.events_starting_between(start, end, end_inclusive=True):
        body = _with_location(f"{event.title} in ~1 hour", event.location)
        intents.extend(_broadcast_event(event, ctx, NotificationType.EVENT_SOON, "Starting Soon", body))
    return intents


def _chore_intents(
    chores: list[ChoreRecord],
    ctx: RuleContext,
    ntype: NotificationType,
    title: str,
    body: Callable[[ChoreRecord], str],
) -> list[NotificationIntent]:
    subscribed = set(ctx.player_ids)
    tag_prefix = ntype.value.replace("_", "-")
    return [
        NotificationIntent(
            player_id=chore.assigned_to,
            type=ntype.value,
            reference_id=chore.id,
            title=title,
            body=body(chore),
            tag=f"{tag_prefix}-{chore.id}",
            url="/chores",
        )
        for chore in chores
        if chore.assigned_to and chore.assigned_to in subscribed
    ]


def chore_overdue(store: NotificationStore, ctx: RuleContext) -> list[NotificationIntent]:
    if not hour_in(ctx.window.hour, CHORE_HOURS):
        return []
    chores = store.pending_chores_due(before=ctx.window.today_start)
    return _chore_intents(
        chores, ctx, NotificationType.CHORE_OVERDUE, "Chore Overdue", lambda c: f'"{c.title}" is past due, complete it now'
    )


def chore_due_today(store: NotificationStore, ctx: RuleContext) -> list[NotificationIntent]:
    if not hour_in(ctx.window.hour, CHORE_HOURS):
        return []
    chores = store.pending_chores_due(before=ctx.window.tomorrow_start, after=ctx.window.today_start)
    return _chore_intents(chores, ctx, NotificationType.CHORE_DUE, "Chore Due Today", lambda c: f'"{c.title}" is due today')


def wellness_reminder(store: NotificationStore, ctx: RuleContext) -> list[NotificationIntent]:
    if not hour_in(ctx.window.hour, WELLNESS_HOURS):
        return []
    logged = store.players_with_wellness_on(ctx.window.today, ctx.player_ids)
    return [
        NotificationIntent(
            player_id=pid,
            type=NotificationType.WELLNESS_REMINDER.value,
            reference_id="",
            title="Wellness Check-In",
            body="How are you feeling today? Log your wellness.",
            tag="wellness-reminder",
            url="/wellness",
        )
        for pid in ctx.player_ids
        if pid not in logged
    ]


DEFAULT_RULES: tuple[tuple[str, Rule], ...] = (
    ("event_tomorrow", event_tomorrow),
    ("event_today", event_today),
    ("event_soon", event_soon),
    ("chore_overdue", chore_overdue),
    ("chore_due", chore_due_today),
    ("wellness_reminder", wellness_reminder),
)


def generate_candidates(
    store: NotificationStore,
    ctx: RuleContext,
    rules: Sequence[tuple[str, Rule]] = DEFAULT_RULES,
    failures: list[str] | None = None,
) -> list[NotificationIntent]:
    """Run every rule; a rule whose query fails contributes nothing this pass."""
    intents: list[NotificationIntent] = []
    for name, rule in rules:
        try:
            intents.extend(rule(store, ctx))
        except Exception:
            logger.warning("Reminder rule failed: rule=%s", name, exc_info=True)
            if failures is not None:
                failures.append(name)
    return intents
