"""Create users, attendance_sessions, attendance_locations and attendance_events tables

Revision ID: 001_attendance_tables
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001_attendance_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    is_sqlite = bind.dialect.name == "sqlite"
    ts_default = sa.text("CURRENT_TIMESTAMP") if is_sqlite else sa.text("now()")

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="STAFF"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=ts_default, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=ts_default, nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "attendance_sessions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("work_location", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="CHECKED_IN"),
        sa.Column("flags", sa.JSON(), nullable=False),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expected_check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_out_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_hours", sa.Float(), nullable=True),
        sa.Column("is_late", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("late_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("late_reason", sa.Text(), nullable=True),
        sa.Column("check_in_location_lat", sa.Float(), nullable=True),
        sa.Column("check_in_location_lng", sa.Float(), nullable=True),
        sa.Column("check_in_location_address", sa.Text(), nullable=True),
        sa.Column("check_out_location_lat", sa.Float(), nullable=True),
        sa.Column("check_out_location_lng", sa.Float(), nullable=True),
        sa.Column("check_out_location_address", sa.Text(), nullable=True),
        sa.Column("check_in_notes", sa.Text(), nullable=True),
        sa.Column("check_out_notes", sa.Text(), nullable=True),
        sa.Column("auto_checked_out", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("open_slot", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=ts_default, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=ts_default, nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        # one open session per (user, date): open_slot is NULL once the session is closed
        sa.UniqueConstraint("open_slot", name="uq_attendance_sessions_open_slot"),
    )
    op.create_index(op.f("ix_attendance_sessions_user_id"), "attendance_sessions", ["user_id"], unique=False)
    op.create_index(op.f("ix_attendance_sessions_date"), "attendance_sessions", ["date"], unique=False)
    op.create_index(op.f("ix_attendance_sessions_status"), "attendance_sessions", ["status"], unique=False)
    op.create_index(op.f("ix_attendance_sessions_check_in_time"), "attendance_sessions", ["check_in_time"], unique=False)
    op.create_index(op.f("ix_attendance_sessions_is_late"), "attendance_sessions", ["is_late"], unique=False)

    op.create_table(
        "attendance_locations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=ts_default, nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["attendance_sessions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_attendance_locations_id"), "attendance_locations", ["id"], unique=False)
    op.create_index(op.f("ix_attendance_locations_session_id"), "attendance_locations", ["session_id"], unique=False)
    op.create_index(op.f("ix_attendance_locations_timestamp"), "attendance_locations", ["timestamp"], unique=False)

    op.create_table(
        "attendance_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("event_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("meta_json", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=ts_default, nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["attendance_sessions.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_attendance_events_id"), "attendance_events", ["id"], unique=False)
    op.create_index(op.f("ix_attendance_events_session_id"), "attendance_events", ["session_id"], unique=False)
    op.create_index(op.f("ix_attendance_events_user_id"), "attendance_events", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_attendance_events_user_id"), table_name="attendance_events")
    op.drop_index(op.f("ix_attendance_events_session_id"), table_name="attendance_events")
    op.drop_index(op.f("ix_attendance_events_id"), table_name="attendance_events")
    op.drop_table("attendance_events")
    op.drop_index(op.f("ix_attendance_locations_timestamp"), table_name="attendance_locations")
    op.drop_index(op.f("ix_attendance_locations_session_id"), table_name="attendance_locations")
    op.drop_index(op.f("ix_attendance_locations_id"), table_name="attendance_locations")
    op.drop_table("attendance_locations")
    op.drop_index(op.f("ix_attendance_sessions_is_late"), table_name="attendance_sessions")
    op.drop_index(op.f("ix_attendance_sessions_check_in_time"), table_name="attendance_sessions")
    op.drop_index(op.f("ix_attendance_sessions_status"), table_name="attendance_sessions")
    op.drop_index(op.f("ix_attendance_sessions_date"), table_name="attendance_sessions")
    op.drop_index(op.f("ix_attendance_sessions_user_id"), table_name="attendance_sessions")
    op.drop_table("attendance_sessions")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")
