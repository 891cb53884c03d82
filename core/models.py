from __future__ import annotations

import datetime as dt
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

EVENT_TYPES = (
    "team_training",
    "individual_training",
    "video_session",
    "gym",
    "recovery",
    "match",
    "tournament",
    "school",
    "language_class",
    "airport_pickup",
    "team_activity",
    "meeting",
    "medical",
    "training",
    "other",
)

CHORE_STATUSES = ("pending", "completed", "verified", "cancelled")


def _uuid() -> str:
    return str(uuid4())


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp, always bound and returned in UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=dt.timezone.utc)
        return value.astimezone(dt.timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.timezone.utc)
        return value.astimezone(dt.timezone.utc)


class Base(DeclarativeBase):
    pass


class Player(Base):
    __tablename__ = "players"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    first_name: Mapped[str] = mapped_column(String(80))
    last_name: Mapped[str] = mapped_column(String(80))
    player_code: Mapped[str | None] = mapped_column(String(40), unique=True)
    status: Mapped[str] = mapped_column(String(16), default="active", index=True)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=_utcnow)


class CalendarEvent(Base):
    __tablename__ = "events"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(200))
    type: Mapped[str] = mapped_column(String(40))
    date: Mapped[dt.date] = mapped_column(Date, index=True)
    start_time: Mapped[dt.datetime] = mapped_column(UTCDateTime(), index=True)
    end_time: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    location: Mapped[str | None] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text)
    all_day: Mapped[bool] = mapped_column(Boolean, default=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    recurrence_rule: Mapped[str | None] = mapped_column(String(20))
    recurrence_end_date: Mapped[dt.date | None] = mapped_column(Date)
    parent_event_id: Mapped[str | None] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), index=True)
    attendees: Mapped[list["EventAttendee"]] = relationship(
        back_populates="event", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def attendee_ids(self) -> list[str]:
        return [a.player_id for a in self.attendees]


class EventAttendee(Base):
    __tablename__ = "event_attendees"
    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), index=True)
    player_id: Mapped[str] = mapped_column(ForeignKey("players.id", ondelete="CASCADE"), index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    event: Mapped[CalendarEvent] = relationship(back_populates="attendees")
    __table_args__ = (UniqueConstraint("event_id", "player_id", name="uq_event_attendee"),)


class WellnessLog(Base):
    __tablename__ = "wellness_logs"
    id: Mapped[int] = mapped_column(primary_key=True)
    player_id: Mapped[str] = mapped_column(ForeignKey("players.id", ondelete="CASCADE"), index=True)
    date: Mapped[dt.date] = mapped_column(Date, index=True)
    sleep_quality: Mapped[int] = mapped_column(Integer)
    energy_level: Mapped[int] = mapped_column(Integer)
    mood: Mapped[int] = mapped_column(Integer)
    muscle_soreness: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=_utcnow)
    __table_args__ = (
        CheckConstraint("sleep_quality between 1 and 10"),
        CheckConstraint("energy_level between 1 and 10"),
        CheckConstraint("mood between 1 and 10"),
        CheckConstraint("muscle_soreness between 1 and 10"),
    )


class TrainingLoad(Base):
    __tablename__ = "training_loads"
    id: Mapped[int] = mapped_column(primary_key=True)
    player_id: Mapped[str] = mapped_column(ForeignKey("players.id", ondelete="CASCADE"), index=True)
    date: Mapped[dt.date] = mapped_column(Date, index=True)
    session_type: Mapped[str] = mapped_column(String(40), default="training")
    duration_min: Mapped[int] = mapped_column(Integer, default=0)
    rpe: Mapped[int | None] = mapped_column(Integer)
    mobility_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    __table_args__ = (CheckConstraint("duration_min >= 0"),)


class Chore(Base):
    __tablename__ = "chores"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(200))
    assigned_to: Mapped[str | None] = mapped_column(ForeignKey("players.id", ondelete="SET NULL"), index=True)
    deadline: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)


class PushSubscription(Base):
    __tablename__ = "push_subscriptions"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    player_id: Mapped[str] = mapped_column(ForeignKey("players.id", ondelete="CASCADE"), index=True)
    endpoint: Mapped[str] = mapped_column(Text, unique=True)
    p256dh: Mapped[str] = mapped_column(String(255))
    auth: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=_utcnow)


class NotificationLog(Base):
    __tablename__ = "notification_log"
    id: Mapped[int] = mapped_column(primary_key=True)
    player_id: Mapped[str] = mapped_column(String(36))
    notification_type: Mapped[str] = mapped_column(String(40))
    reference_id: Mapped[str] = mapped_column(String(36), default="")
    sent_date: Mapped[dt.date] = mapped_column(Date)
    __table_args__ = (
        Index("ix_notification_log_sent_date", "sent_date"),
        Index("ix_notification_log_key", "player_id", "notification_type", "reference_id", "sent_date"),
    )
