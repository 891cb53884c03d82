"""Pydantic validation models for all user-facing data entry points."""

from __future__ import annotations

from datetime import date as dt_date
from datetime import time as dt_time
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from core.models import EVENT_TYPES
from core.services.recurrence import MAX_RECURRENCE_SPAN_DAYS, RECURRENCE_RULES, WEEKDAYS


class EventCreateInput(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    type: str = "team_training"
    date: dt_date
    start_time: dt_time = dt_time(9, 0)
    end_time: dt_time = dt_time(10, 0)
    all_day: bool = False
    location: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=4000)
    attendee_ids: list[str] = Field(default_factory=list)
    recurrence_rule: Optional[str] = None
    recurrence_days: list[str] = Field(default_factory=list)
    recurrence_end_date: Optional[dt_date] = None

    @field_validator("type")
    @classmethod
    def valid_type(cls, v):
        if v not in EVENT_TYPES:
            raise ValueError(f"type must be one of {sorted(EVENT_TYPES)}")
        return v

    @field_validator("recurrence_rule")
    @classmethod
    def valid_rule(cls, v):
        if v in (None, ""):
            return None
        if v not in RECURRENCE_RULES:
            raise ValueError(f"recurrence_rule must be one of {sorted(RECURRENCE_RULES)}")
        return v

    @field_validator("recurrence_days")
    @classmethod
    def valid_days(cls, v):
        days = [d.lower() for d in v]
        unknown = [d for d in days if d not in WEEKDAYS]
        if unknown:
            raise ValueError(f"unknown weekdays {unknown}")
        return days

    @model_validator(mode="after")
    def _check_times(self):
        if self.all_day:
            self.start_time = dt_time(0, 0)
            self.end_time = dt_time(23, 59)
        elif self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        if self.recurrence_rule:
            if self.recurrence_end_date is None:
                raise ValueError("recurrence_end_date is required for recurring events")
            if self.recurrence_end_date < self.date:
                raise ValueError("recurrence_end_date must not be before date")
            if (self.recurrence_end_date - self.date).days > MAX_RECURRENCE_SPAN_DAYS:
                raise ValueError(f"recurring events may span at most {MAX_RECURRENCE_SPAN_DAYS} days")
        return self


class EventChangeInput(BaseModel):
    change_type: str
    event_id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=200)
    type: str = "other"
    date: Optional[dt_date] = None
    location: Optional[str] = None

    @field_validator("change_type")
    @classmethod
    def valid_change(cls, v):
        allowed = {"created", "updated", "deleted"}
        if v not in allowed:
            raise ValueError(f"change_type must be one of {allowed}")
        return v


class PushKeys(BaseModel):
    p256dh: str = Field(min_length=1, max_length=255)
    auth: str = Field(min_length=1, max_length=255)


class PushSubscriptionInput(BaseModel):
    player_id: Optional[str] = None
    endpoint: str = Field(min_length=1, max_length=2000)
    keys: PushKeys

    @field_validator("endpoint")
    @classmethod
    def https_endpoint(cls, v):
        if not v.startswith("https://"):
            raise ValueError("endpoint must be an https URL")
        return v
