"""
Database models
"""
from attendance_api.models.user import User, Role
from attendance_api.models.attendance_session import (
    AttendanceSession,
    AttendanceLocation,
    AttendanceEvent,
    AttendanceEventType,
    AttendanceFlag,
    SessionStatus,
    WorkLocation,
)

__all__ = [
    "User",
    "Role",
    "AttendanceSession",
    "AttendanceLocation",
    "AttendanceEvent",
    "AttendanceEventType",
    "AttendanceFlag",
    "SessionStatus",
    "WorkLocation",
]
