"""
Attendance schemas (check-in/check-out requests, session output, history and sweep responses).
"""
from datetime import date as date_type, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from attendance_api.models.attendance_session import WorkLocation
from attendance_api.utils.datetime_utils import iso_local


def _serialize_dt_local(dt: Optional[datetime]) -> Optional[str]:
    """Serialize datetime in the business timezone (with offset) for API responses."""
    from attendance_api.core.config import settings
    return iso_local(dt, settings.BUSINESS_TIMEZONE)


def _validate_lat(v: Optional[float]) -> Optional[float]:
    if v is None:
        return v
    if not (-90 <= v <= 90):
        raise ValueError("latitude must be between -90 and 90")
    return v


def _validate_lng(v: Optional[float]) -> Optional[float]:
    if v is None:
        return v
    if not (-180 <= v <= 180):
        raise ValueError("longitude must be between -180 and 180")
    return v


class _LocatedRequest(BaseModel):
    """GPS fix shared by check-in and check-out (required on both)."""
    latitude: float = Field(..., description="GPS latitude [-90, 90]")
    longitude: float = Field(..., description="GPS longitude [-180, 180]")
    address: Optional[str] = Field(None, max_length=2000)
    notes: Optional[str] = Field(None, max_length=2000)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("latitude")
    @classmethod
    def check_lat(cls, v: float) -> float:
        return _validate_lat(v)

    @field_validator("longitude")
    @classmethod
    def check_lng(cls, v: float) -> float:
        return _validate_lng(v)


class CheckInRequest(_LocatedRequest):
    """Check-in body. Accepts camelCase keys (workLocation, lateReason) as well as snake_case."""
    work_location: WorkLocation = Field(..., alias="workLocation", description="OFFICE, SITE, REMOTE or FIELD")
    late_reason: Optional[str] = Field(None, alias="lateReason", max_length=2000)


class CheckOutRequest(_LocatedRequest):
    """Check-out body. Without sessionId the caller's open session for today is closed."""
    session_id: Optional[str] = Field(None, alias="sessionId")


class LocationPingRequest(BaseModel):
    session_id: str = Field(..., alias="sessionId")
    latitude: float
    longitude: float
    address: Optional[str] = Field(None, max_length=2000)
    accuracy: Optional[float] = Field(None, gt=0, description="Accuracy in meters")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("latitude")
    @classmethod
    def check_lat(cls, v: float) -> float:
        return _validate_lat(v)

    @field_validator("longitude")
    @classmethod
    def check_lng(cls, v: float) -> float:
        return _validate_lng(v)


class UserSummary(BaseModel):
    id: str
    name: Optional[str] = None
    email: str

    model_config = ConfigDict(from_attributes=True)


class SessionDto(BaseModel):
    """Attendance session output; datetimes in the business timezone."""
    id: str
    user_id: str
    date: date_type
    work_location: str
    status: str
    flags: List[str] = []
    check_in_time: datetime
    expected_check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    total_hours: Optional[float] = None
    is_late: bool
    late_minutes: int = 0
    late_reason: Optional[str] = None
    check_in_location_lat: Optional[float] = None
    check_in_location_lng: Optional[float] = None
    check_in_location_address: Optional[str] = None
    check_out_location_lat: Optional[float] = None
    check_out_location_lng: Optional[float] = None
    check_out_location_address: Optional[str] = None
    check_in_notes: Optional[str] = None
    check_out_notes: Optional[str] = None
    auto_checked_out: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("flags", mode="before")
    @classmethod
    def flags_to_list(cls, v):
        return list(v or [])

    @field_serializer("check_in_time", "expected_check_in_time", "check_out_time", "created_at", when_used="always")
    def _serialize_datetime_local(self, dt: Optional[datetime]) -> Optional[str]:
        return _serialize_dt_local(dt)


class HistorySessionDto(SessionDto):
    user: Optional[UserSummary] = None


class SessionEnvelope(BaseModel):
    success: bool = True
    session: SessionDto


class CurrentAttendanceResponse(BaseModel):
    active_session: Optional[SessionDto] = None
    today_sessions: List[SessionDto]
    has_active_session: bool


class LocationCheckDto(BaseModel):
    id: int
    session_id: str
    timestamp: datetime
    latitude: float
    longitude: float
    address: Optional[str] = None
    accuracy: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("timestamp", when_used="always")
    def _serialize_datetime_local(self, dt: Optional[datetime]) -> Optional[str]:
        return _serialize_dt_local(dt)


class LocationEnvelope(BaseModel):
    success: bool = True
    location_check: LocationCheckDto


class HistoryResponse(BaseModel):
    """History page: sessions newest first plus the total matching count"""
    sessions: List[HistorySessionDto]
    total: int
    page: int
    limit: int


class SweepItemDto(BaseModel):
    session_id: str
    user_id: str
    outcome: str
    check_out_time: Optional[datetime] = None
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SweepReportDto(BaseModel):
    success: bool = True
    ran_at: datetime
    cutoff_date: str
    examined: int
    closed: int
    skipped: int
    failed: int
    results: List[SweepItemDto]

    model_config = ConfigDict(from_attributes=True)
