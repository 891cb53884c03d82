"""initial schema"""

from alembic import op
import sqlalchemy as sa


revision = "20260101_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "players",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("first_name", sa.String(length=80), nullable=False),
        sa.Column("last_name", sa.String(length=80), nullable=False),
        sa.Column("player_code", sa.String(length=40), nullable=True, unique=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_players_status", "players", ["status"])

    op.create_table(
        "events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("all_day", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("recurrence_rule", sa.String(length=20), nullable=True),
        sa.Column("recurrence_end_date", sa.Date(), nullable=True),
        sa.Column("parent_event_id", sa.String(length=36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=True),
    )
    op.create_index("ix_events_date", "events", ["date"])
    op.create_index("ix_events_start_time", "events", ["start_time"])
    op.create_index("ix_events_parent_event_id", "events", ["parent_event_id"])

    op.create_table(
        "event_attendees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.String(length=36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("player_id", sa.String(length=36), sa.ForeignKey("players.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.UniqueConstraint("event_id", "player_id", name="uq_event_attendee"),
    )
    op.create_index("ix_event_attendees_event_id", "event_attendees", ["event_id"])
    op.create_index("ix_event_attendees_player_id", "event_attendees", ["player_id"])

    op.create_table(
        "wellness_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("player_id", sa.String(length=36), sa.ForeignKey("players.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("sleep_quality", sa.Integer(), nullable=False),
        sa.Column("energy_level", sa.Integer(), nullable=False),
        sa.Column("mood", sa.Integer(), nullable=False),
        sa.Column("muscle_soreness", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("sleep_quality between 1 and 10"),
        sa.CheckConstraint("energy_level between 1 and 10"),
        sa.CheckConstraint("mood between 1 and 10"),
        sa.CheckConstraint("muscle_soreness between 1 and 10"),
    )
    op.create_index("ix_wellness_logs_player_id", "wellness_logs", ["player_id"])
    op.create_index("ix_wellness_logs_date", "wellness_logs", ["date"])

    op.create_table(
        "training_loads",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("player_id", sa.String(length=36), sa.ForeignKey("players.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("session_type", sa.String(length=40), nullable=False, server_default="training"),
        sa.Column("duration_min", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rpe", sa.Integer(), nullable=True),
        sa.Column("mobility_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.CheckConstraint("duration_min >= 0"),
    )
    op.create_index("ix_training_loads_player_id", "training_loads", ["player_id"])
    op.create_index("ix_training_loads_date", "training_loads", ["date"])

    op.create_table(
        "chores",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("assigned_to", sa.String(length=36), sa.ForeignKey("players.id", ondelete="SET NULL"), nullable=True),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
    )
    op.create_index("ix_chores_assigned_to", "chores", ["assigned_to"])
    op.create_index("ix_chores_deadline", "chores", ["deadline"])
    op.create_index("ix_chores_status", "chores", ["status"])

    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("player_id", sa.String(length=36), sa.ForeignKey("players.id", ondelete="CASCADE"), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False, unique=True),
        sa.Column("p256dh", sa.String(length=255), nullable=False),
        sa.Column("auth", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_push_subscriptions_player_id", "push_subscriptions", ["player_id"])

    op.create_table(
        "notification_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("player_id", sa.String(length=36), nullable=False),
        sa.Column("notification_type", sa.String(length=40), nullable=False),
        sa.Column("reference_id", sa.String(length=36), nullable=False, server_default=""),
        sa.Column("sent_date", sa.Date(), nullable=False),
    )
    op.create_index("ix_notification_log_sent_date", "notification_log", ["sent_date"])
    op.create_index(
        "ix_notification_log_key",
        "notification_log",
        ["player_id", "notification_type", "reference_id", "sent_date"],
    )


def downgrade() -> None:
    for table in [
        "notification_log","push_subscriptions","chores","training_loads","wellness_logs","event_attendees","events","players",
    ]:
        op.drop_table(table)
