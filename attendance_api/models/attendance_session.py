"""
Attendance session, location ping and event models (check in/out sessions with an append-only event log).
"""
import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from attendance_api.db.base import Base
from attendance_api.db.types import UTCDateTime
from attendance_api.models.user import new_id


class WorkLocation(str, enum.Enum):
    OFFICE = "OFFICE"
    SITE = "SITE"
    REMOTE = "REMOTE"
    FIELD = "FIELD"


class SessionStatus(str, enum.Enum):
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    AUTO_CHECKED_OUT = "AUTO_CHECKED_OUT"


class AttendanceFlag(str, enum.Enum):
    LATE = "LATE"
    EARLY_LEAVE = "EARLY_LEAVE"
    OVERTIME = "OVERTIME"
    MISSING_CHECKOUT = "MISSING_CHECKOUT"


class AttendanceEventType(str, enum.Enum):
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"
    AUTO_CHECK_OUT = "AUTO_CHECK_OUT"


def open_slot_key(user_id: str, day) -> str:
    """Value of AttendanceSession.open_slot while a session is open."""
    return f"{user_id}:{day.isoformat()}"


class AttendanceSession(Base):
    __tablename__ = "attendance_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)  # business-timezone calendar day of check_in_time
    work_location = Column(String, nullable=False)
    status = Column(String, nullable=False, default=SessionStatus.CHECKED_IN.value, index=True)
    flags = Column(JSON, nullable=False, default=list)

    check_in_time = Column(UTCDateTime, nullable=False, index=True)
    expected_check_in_time = Column(UTCDateTime, nullable=True)
    check_out_time = Column(UTCDateTime, nullable=True)
    total_hours = Column(Float, nullable=True)

    is_late = Column(Boolean, nullable=False, default=False, index=True)
    late_minutes = Column(Integer, nullable=False, default=0)
    late_reason = Column(Text, nullable=True)

    check_in_location_lat = Column(Float, nullable=True)
    check_in_location_lng = Column(Float, nullable=True)
    check_in_location_address = Column(Text, nullable=True)
    check_out_location_lat = Column(Float, nullable=True)
    check_out_location_lng = Column(Float, nullable=True)
    check_out_location_address = Column(Text, nullable=True)
    check_in_notes = Column(Text, nullable=True)
    check_out_notes = Column(Text, nullable=True)

    auto_checked_out = Column(Boolean, nullable=False, default=False)
    # "<user_id>:<date>" while open, NULL once closed; the unique index is the one-open-session guard
    open_slot = Column(String, nullable=True, unique=True)

    created_at = Column(UTCDateTime, server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(UTCDateTime, server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)

    user = relationship("User", backref="attendance_sessions")
    location_checks = relationship(
        "AttendanceLocation",
        back_populates="session",
        order_by="AttendanceLocation.timestamp",
        cascade="all, delete-orphan",
    )
    events = relationship("AttendanceEvent", back_populates="session", order_by="AttendanceEvent.event_at")


class AttendanceLocation(Base):
    __tablename__ = "attendance_locations"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(36), ForeignKey("attendance_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    timestamp = Column(UTCDateTime, nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(Text, nullable=True)
    accuracy = Column(Float, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.current_timestamp(), nullable=False)

    session = relationship("AttendanceSession", back_populates="location_checks")


class AttendanceEvent(Base):
    __tablename__ = "attendance_events"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(36), ForeignKey("attendance_sessions.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False)  # CHECK_IN/CHECK_OUT/AUTO_CHECK_OUT
    event_at = Column(UTCDateTime, nullable=False)
    meta_json = Column(JSON, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=True)  # NULL for the sweep
    created_at = Column(UTCDateTime, server_default=func.current_timestamp(), nullable=False)

    session = relationship("AttendanceSession", back_populates="events")
