from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from core.models import CalendarEvent, Chore, NotificationLog, PushSubscription, WellnessLog
from core.services.notifications.base import (
    ChoreRecord,
    EventRecord,
    NotificationStore,
    SentKey,
    SentLogEntry,
    SubscriptionRecord,
)


class SqlNotificationStore(NotificationStore):
    """NotificationStore over a SQLAlchemy session.

    Each write commits on its own so a later failure in the pass cannot
    undo the dedup log or an earlier cleanup step.
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _guarded(self) -> Iterator[None]:
        # a failed statement poisons the transaction on Postgres
        try:
            yield
        except Exception:
            self.session.rollback()
            raise

    def list_subscriptions(self) -> list[SubscriptionRecord]:
        with self._guarded():
            rows = self.session.execute(select(PushSubscription).order_by(PushSubscription.created_at)).scalars().all()
            return [
                SubscriptionRecord(id=r.id, player_id=r.player_id, endpoint=r.endpoint, p256dh=r.p256dh, auth=r.auth)
                for r in rows
            ]

    def sent_keys_on(self, day: date) -> set[SentKey]:
        with self._guarded():
            rows = self.session.execute(
                select(NotificationLog.player_id, NotificationLog.notification_type, NotificationLog.reference_id).where(
                    NotificationLog.sent_date == day
                )
            ).all()
            return {(r.player_id, r.notification_type, r.reference_id or "") for r in rows}

    def events_starting_between(self, start: datetime, end: datetime, *, end_inclusive: bool = False) -> list[EventRecord]:
        with self._guarded():
            upper = CalendarEvent.start_time <= end if end_inclusive else CalendarEvent.start_time < end
            rows = self.session.execute(
                select(CalendarEvent).where(CalendarEvent.start_time >= start, upper).order_by(CalendarEvent.start_time)
            ).scalars().all()
            return [
                EventRecord(id=r.id, title=r.title, type=r.type, start_time=r.start_time, location=r.location)
                for r in rows
            ]

    def pending_chores_due(self, before: datetime, after: datetime | None = None) -> list[ChoreRecord]:
        with self._guarded():
            q = select(Chore).where(
                Chore.status == "pending",
                Chore.assigned_to.is_not(None),
                Chore.deadline < before,
            )
            if after is not None:
                q = q.where(Chore.deadline >= after)
            rows = self.session.execute(q.order_by(Chore.deadline)).scalars().all()
            return [ChoreRecord(id=r.id, title=r.title, assigned_to=r.assigned_to, deadline=r.deadline) for r in rows]

    def players_with_wellness_on(self, day: date, player_ids: Iterable[str]) -> set[str]:
        ids = list(player_ids)
        if not ids:
            return set()
        with self._guarded():
            rows = self.session.execute(
                select(WellnessLog.player_id).where(WellnessLog.date == day, WellnessLog.player_id.in_(ids)).distinct()
            ).scalars().all()
            return set(rows)

    def record_sent(self, entries: list[SentLogEntry]) -> None:
        with self._guarded():
            self.session.add_all(
                NotificationLog(
                    player_id=e.player_id,
                    notification_type=e.notification_type,
                    reference_id=e.reference_id,
                    sent_date=e.sent_date,
                )
                for e in entries
            )
            self.session.commit()

    def delete_subscriptions(self, subscription_ids: Iterable[str]) -> int:
        ids = list(subscription_ids)
        if not ids:
            return 0
        with self._guarded():
            result = self.session.execute(delete(PushSubscription).where(PushSubscription.id.in_(ids)))
            self.session.commit()
            return int(result.rowcount or 0)

    def purge_sent_before(self, day: date) -> int:
        with self._guarded():
            result = self.session.execute(delete(NotificationLog).where(NotificationLog.sent_date < day))
            self.session.commit()
            return int(result.rowcount or 0)
