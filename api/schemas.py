from __future__ import annotations

from datetime import date as dt_date
from datetime import datetime as dt_datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ComplianceOut(BaseModel):
    light: str
    wellness_completed: bool
    activity_logs_count: int
    activity_logs_required: int
    mobility_completed: bool
    mobility_required: bool
    points: int


class PlayerComplianceOut(BaseModel):
    player_id: str
    first_name: str = ""
    last_name: str = ""
    date: dt_date
    compliance: ComplianceOut


class ComplianceBoardOut(BaseModel):
    date: dt_date
    items: list[PlayerComplianceOut]
    total: int


class PassSummaryOut(BaseModel):
    sent: int = 0
    expired: int = 0
    notifications: int = 0
    hour: Optional[int] = None
    reason: Optional[str] = None


class BroadcastOut(BaseModel):
    sent: int
    expired: int
    total: int


class PushSubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    player_id: str
    endpoint: str
    created_at: dt_datetime


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    type: str
    date: dt_date
    start_time: dt_datetime
    end_time: Optional[dt_datetime] = None
    location: Optional[str] = None
    all_day: bool
    is_recurring: bool
    recurrence_rule: Optional[str] = None
    parent_event_id: Optional[str] = None
    attendee_ids: list[str] = Field(default_factory=list)


class EventCreatedOut(BaseModel):
    event: EventOut
    instances: list[EventOut] = Field(default_factory=list)


class SimpleStatusResponse(BaseModel):
    status: str
