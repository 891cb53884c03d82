from __future__ import annotations

import logging
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from api.auth import AuthPrincipal, get_current_principal, require_player_access, require_service_role, require_staff
from api.deps import get_clock, get_db, get_push_sender
from api.ratelimit import limiter
from api.schemas import (
    BroadcastOut,
    ComplianceBoardOut,
    EventCreatedOut,
    EventOut,
    PassSummaryOut,
    PlayerComplianceOut,
    PushSubscriptionOut,
)
from core.config import get_settings
from core.models import CalendarEvent, EventAttendee, Player, PushSubscription, TrainingLoad, WellnessLog
from core.services.academy_clock import AcademyClock, utcnow
from core.services.compliance import calculate_compliance, compliance_board, events_for_player
from core.services.notifications.base import PushSender
from core.services.notifications.event_change import EventChange, broadcast_event_change
from core.services.notifications.scheduler import run_notification_pass
from core.services.notifications.store import SqlNotificationStore
from core.services.recurrence import expand_recurring_event
from core.validators import EventChangeInput, EventCreateInput, PushSubscriptionInput

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

StaffPrincipal = Annotated[AuthPrincipal, Depends(require_staff)]


def _resolve_day(day: Optional[date], clock: AcademyClock) -> date:
    return day or clock.local_date(utcnow())


def _events_on(db: Session, day: date) -> list[CalendarEvent]:
    return list(db.execute(select(CalendarEvent).where(CalendarEvent.date == day)).scalars().all())


# -- Scheduled jobs (service credential) --


@router.post(
    "/jobs/send-scheduled-reminders",
    response_model=PassSummaryOut,
    response_model_exclude_none=True,
    tags=["jobs"],
    dependencies=[Depends(require_service_role)],
)
@limiter.limit(get_settings().job_rate_limit)
def send_scheduled_reminders(
    request: Request,
    db: Session = Depends(get_db),
    sender: PushSender = Depends(get_push_sender),
    clock: AcademyClock = Depends(get_clock),
):
    del request
    summary = run_notification_pass(utcnow(), SqlNotificationStore(db), sender, clock=clock, settings=get_settings())
    return summary.to_dict()


@router.post(
    "/jobs/notify-event-change",
    response_model=BroadcastOut,
    tags=["jobs"],
    dependencies=[Depends(require_service_role)],
)
@limiter.limit(get_settings().job_rate_limit)
def notify_event_change(
    request: Request,
    body: EventChangeInput,
    db: Session = Depends(get_db),
    sender: PushSender = Depends(get_push_sender),
):
    del request
    change = EventChange(
        change_type=body.change_type,
        event_id=body.event_id,
        title=body.title,
        type=body.type,
        date=body.date,
        location=body.location,
    )
    try:
        result = broadcast_event_change(change, SqlNotificationStore(db), sender, get_settings().push_max_workers)
    except Exception as exc:
        logger.exception("Event change broadcast failed: event_id=%s", body.event_id)
        raise HTTPException(status_code=500, detail={"code": "BROADCAST_FAILED"}) from exc
    logger.info("event_change_broadcast", extra={"event_id": body.event_id, "change_type": body.change_type, **result.to_dict()})
    return result.to_dict()


# -- Compliance --


@router.get("/compliance", response_model=ComplianceBoardOut, tags=["compliance"])
def get_compliance_board(
    staff: StaffPrincipal,
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    clock: AcademyClock = Depends(get_clock),
):
    target = _resolve_day(day, clock)
    players = db.execute(
        select(Player).where(Player.status == "active").order_by(Player.first_name, Player.last_name)
    ).scalars().all()
    by_id = {p.id: p for p in players}
    wellness = db.execute(select(WellnessLog).where(WellnessLog.date == target)).scalars().all()
    loads = db.execute(select(TrainingLoad).where(TrainingLoad.date == target)).scalars().all()

    rows = compliance_board([p.id for p in players], target, _events_on(db, target), wellness, loads)
    items = [
        PlayerComplianceOut(
            player_id=row.player_id,
            first_name=by_id[row.player_id].first_name,
            last_name=by_id[row.player_id].last_name,
            date=target,
            compliance=row.compliance.to_dict(),
        )
        for row in rows
    ]
    return ComplianceBoardOut(date=target, items=items, total=len(items))


@router.get("/players/{player_id}/compliance", response_model=PlayerComplianceOut, tags=["compliance"])
def get_player_compliance(
    player_id: str,
    principal: Annotated[AuthPrincipal, Depends(require_player_access)],
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    clock: AcademyClock = Depends(get_clock),
):
    player = db.get(Player, player_id)
    if player is None:
        raise HTTPException(status_code=404, detail="Player not found")
    target = _resolve_day(day, clock)
    wellness = db.execute(
        select(WellnessLog).where(WellnessLog.player_id == player_id, WellnessLog.date == target)
    ).scalars().all()
    loads = db.execute(
        select(TrainingLoad).where(TrainingLoad.player_id == player_id, TrainingLoad.date == target)
    ).scalars().all()
    result = calculate_compliance(events_for_player(player_id, target, _events_on(db, target)), wellness, loads)
    return PlayerComplianceOut(
        player_id=player.id,
        first_name=player.first_name,
        last_name=player.last_name,
        date=target,
        compliance=result.to_dict(),
    )


# -- Push subscriptions --


@router.post("/push-subscriptions", response_model=PushSubscriptionOut, status_code=201, tags=["push"])
def register_push_subscription(
    body: PushSubscriptionInput,
    principal: Annotated[AuthPrincipal, Depends(get_current_principal)],
    db: Session = Depends(get_db),
):
    if principal.is_staff:
        player_id = body.player_id
        if not player_id:
            raise HTTPException(status_code=422, detail="player_id is required")
    else:
        if principal.player_id is None or (body.player_id and body.player_id != principal.player_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"code": "FORBIDDEN_PLAYER_SCOPE"})
        player_id = principal.player_id

    if db.get(Player, player_id) is None:
        raise HTTPException(status_code=404, detail="Player not found")

    sub = db.execute(select(PushSubscription).where(PushSubscription.endpoint == body.endpoint)).scalar_one_or_none()
    if sub is None:
        sub = PushSubscription(player_id=player_id, endpoint=body.endpoint, p256dh=body.keys.p256dh, auth=body.keys.auth)
        db.add(sub)
    else:
        # same browser re-registering, possibly for another player
        sub.player_id = player_id
        sub.p256dh = body.keys.p256dh
        sub.auth = body.keys.auth
    db.flush()
    return PushSubscriptionOut.model_validate(sub)


@router.delete("/push-subscriptions/{subscription_id}", status_code=204, tags=["push"])
def delete_push_subscription(
    subscription_id: str,
    principal: Annotated[AuthPrincipal, Depends(get_current_principal)],
    db: Session = Depends(get_db),
):
    sub = db.get(PushSubscription, subscription_id)
    if sub is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    if not principal.is_staff and sub.player_id != principal.player_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"code": "FORBIDDEN_PLAYER_SCOPE"})
    db.delete(sub)
    return Response(status_code=204)


# -- Calendar --


@router.post("/events", response_model=EventCreatedOut, status_code=201, tags=["events"])
def create_event(
    body: EventCreateInput,
    staff: StaffPrincipal,
    db: Session = Depends(get_db),
    clock: AcademyClock = Depends(get_clock),
):
    attendee_ids = list(dict.fromkeys(body.attendee_ids))
    if attendee_ids:
        known = set(db.execute(select(Player.id).where(Player.id.in_(attendee_ids))).scalars().all())
        missing = [pid for pid in attendee_ids if pid not in known]
        if missing:
            raise HTTPException(status_code=404, detail={"code": "UNKNOWN_PLAYERS", "player_ids": missing})

    def _new_event(day: date, start, end, parent_id: Optional[str]) -> CalendarEvent:
        event = CalendarEvent(
            title=body.title,
            type=body.type,
            date=day,
            start_time=start,
            end_time=end,
            location=body.location,
            description=body.description,
            all_day=body.all_day,
            is_recurring=parent_id is None and body.recurrence_rule is not None,
            recurrence_rule=body.recurrence_rule if parent_id is None else None,
            recurrence_end_date=body.recurrence_end_date if parent_id is None else None,
            parent_event_id=parent_id,
        )
        event.attendees = [EventAttendee(player_id=pid) for pid in attendee_ids]
        db.add(event)
        return event

    parent = _new_event(
        body.date,
        clock.local_time_utc(body.date, body.start_time),
        clock.local_time_utc(body.date, body.end_time),
        None,
    )
    db.flush()

    children: list[CalendarEvent] = []
    if body.recurrence_rule:
        instances = expand_recurring_event(
            body.date,
            body.recurrence_rule,
            body.recurrence_end_date,
            body.start_time,
            body.end_time,
            clock,
            body.recurrence_days,
        )
        children = [_new_event(i.date, i.start_time, i.end_time, parent.id) for i in instances]
        db.flush()

    logger.info(
        "event_created",
        extra={"event_id": parent.id, "event_type": parent.type, "instances": len(children), "created_by": staff.user_id},
    )
    return EventCreatedOut(
        event=EventOut.model_validate(parent),
        instances=[EventOut.model_validate(c) for c in children],
    )
