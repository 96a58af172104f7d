"""
Attendance session service: check in/out with a business-timezone session date, current-day view, location pings.
All timestamps are stored in UTC (server time). Derived fields come from the status engine.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple, Union

from attendance_api.core.config import settings
from attendance_api.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTimeError,
    NotFoundError,
    ValidationFailedError,
)
from attendance_api.models.attendance_session import (
    AttendanceEvent,
    AttendanceEventType,
    AttendanceLocation,
    AttendanceSession,
    SessionStatus,
    WorkLocation,
    open_slot_key,
)
from attendance_api.repositories.attendance_repository import AttendanceRepository
from attendance_api.services.status_engine import AttendancePolicy, evaluate
from attendance_api.utils.datetime_utils import business_date, ensure_utc, now_utc
from attendance_api.utils.geo import distance_meters
from attendance_api.utils.json_serializer import sanitize_for_json
from attendance_api.utils.text import clean_text

_log = logging.getLogger(__name__)

NOTES_MAX_LENGTH = 2000


def _coerce_work_location(value: Union[WorkLocation, str]) -> WorkLocation:
    try:
        return WorkLocation(value)
    except ValueError:
        allowed = ", ".join(w.value for w in WorkLocation)
        raise ValidationFailedError(f"Work location must be one of: {allowed}")


def _check_window(at: datetime, now: datetime) -> None:
    if at > now + timedelta(minutes=settings.CHECK_IN_MAX_FUTURE_MINUTES):
        raise InvalidTimeError("Time is too far in the future")
    if at < now - timedelta(minutes=settings.CHECK_IN_MAX_BACKDATE_MINUTES):
        raise InvalidTimeError("Time is too far in the past")


def _location(session_id: str, at: datetime, latitude: Optional[float], longitude: Optional[float],
              address: Optional[str], accuracy: Optional[float] = None) -> Optional[AttendanceLocation]:
    if latitude is None or longitude is None:
        return None
    return AttendanceLocation(
        session_id=session_id,
        timestamp=at,
        latitude=latitude,
        longitude=longitude,
        address=address,
        accuracy=accuracy,
    )


def check_in(
    repo: AttendanceRepository,
    user_id: str,
    work_location: Union[WorkLocation, str],
    policy: AttendancePolicy,
    *,
    time: Optional[datetime] = None,
    now: Optional[datetime] = None,
    location_address: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    notes: Optional[str] = None,
    late_reason: Optional[str] = None,
) -> AttendanceSession:
    """
    Check in: open a session for the business day of `time` (defaults to server now).

    Raises:
        ValidationFailedError: unknown work location, missing coordinates, or missing late reason when the policy requires one
        InvalidTimeError: time outside the accepted window around the server clock
        ConflictError: an open session already exists for (user_id, date), including a lost insert race
    """
    location = _coerce_work_location(work_location)
    if latitude is None or longitude is None:
        raise ValidationFailedError("Location is required to check in")
    now = ensure_utc(now) or now_utc()
    at = ensure_utc(time) or now
    _check_window(at, now)

    day = business_date(at, policy.timezone)
    if repo.find_open_for_day(user_id, day) is not None:
        raise ConflictError("Already checked in")

    result = evaluate(at, policy)
    reason = clean_text(late_reason, settings.LATE_REASON_MAX_LENGTH) if result.is_late else None
    if result.is_late and policy.require_late_reason and not reason:
        raise ValidationFailedError("Late reason is required when checking in late")

    address = clean_text(location_address, NOTES_MAX_LENGTH)
    session = AttendanceSession(
        user_id=user_id,
        date=day,
        work_location=location.value,
        status=result.status.value,
        flags=result.flag_values(),
        check_in_time=at,
        expected_check_in_time=result.expected_check_in_time,
        is_late=result.is_late,
        late_minutes=result.late_minutes,
        late_reason=reason,
        check_in_location_lat=latitude,
        check_in_location_lng=longitude,
        check_in_location_address=address,
        check_in_notes=clean_text(notes, NOTES_MAX_LENGTH),
        auto_checked_out=False,
        open_slot=open_slot_key(user_id, day),
    )
    if not repo.create_if_absent(session):
        raise ConflictError("Already checked in")

    ping = _location(session.id, at, latitude, longitude, address)
    if ping is not None:
        repo.add_location(ping)
    repo.add_event(
        AttendanceEvent(
            session_id=session.id,
            user_id=user_id,
            event_type=AttendanceEventType.CHECK_IN.value,
            event_at=at,
            meta_json=sanitize_for_json({
                "work_location": location,
                "is_late": result.is_late,
                "late_minutes": result.late_minutes,
                "has_location": ping is not None,
            }),
            created_by=user_id,
        )
    )
    repo.commit()
    repo.refresh(session)

    _log.info(
        "check_in: user_id=%s session_id=%s date=%s is_late=%s late_minutes=%s",
        user_id, session.id, day, result.is_late, result.late_minutes,
    )
    return session


def check_out(
    repo: AttendanceRepository,
    session_id: str,
    policy: AttendancePolicy,
    *,
    user_id: Optional[str] = None,
    time: Optional[datetime] = None,
    now: Optional[datetime] = None,
    notes: Optional[str] = None,
    location_address: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    max_distance_meters: Optional[float] = None,
) -> AttendanceSession:
    """
    Check out: close the session through a guarded update (check_out_time must still be NULL).

    When user_id is given the session must belong to that user. Losing the race against the
    auto-checkout sweep surfaces as ConflictError, same as closing an already-closed session.
    While the radius check is enabled (max_distance_meters, else CHECKOUT_RADIUS_METERS, above 0)
    coordinates are required and the session must carry a check-in location.
    """
    now = ensure_utc(now) or now_utc()
    at = ensure_utc(time) or now

    session = repo.get(session_id)
    if session is None or (user_id is not None and session.user_id != user_id):
        raise NotFoundError("Attendance session not found")
    if session.check_out_time is not None or session.status != SessionStatus.CHECKED_IN.value:
        raise ConflictError("Session already closed")

    check_in_time = ensure_utc(session.check_in_time)
    if at < check_in_time:
        raise InvalidTimeError("Check-out time cannot be before check-in time")
    _check_window(at, now)

    radius = settings.CHECKOUT_RADIUS_METERS if max_distance_meters is None else max_distance_meters
    if radius > 0:
        if latitude is None or longitude is None:
            raise ValidationFailedError("Location is required to check out")
        if session.check_in_location_lat is None or session.check_in_location_lng is None:
            raise ForbiddenError("Check-in location is missing; check-out location cannot be verified")
        distance = distance_meters(
            session.check_in_location_lat, session.check_in_location_lng, latitude, longitude
        )
        if distance > radius:
            raise ForbiddenError(
                f"Check-out location is {round(distance)} meters away from check-in location "
                f"(maximum allowed: {round(radius)} meters)"
            )

    result = evaluate(
        check_in_time,
        policy,
        check_out_time=at,
        auto_checked_out=False,
        expected_check_in_time=session.expected_check_in_time,
    )
    address = clean_text(location_address, NOTES_MAX_LENGTH)
    patch = {
        "check_out_time": at,
        "status": result.status.value,
        "flags": result.flag_values(),
        "total_hours": result.total_hours,
        "is_late": result.is_late,
        "late_minutes": result.late_minutes,
        "auto_checked_out": False,
        "open_slot": None,
        "check_out_location_lat": latitude,
        "check_out_location_lng": longitude,
        "check_out_location_address": address,
        "check_out_notes": clean_text(notes, NOTES_MAX_LENGTH),
        "updated_at": now,
    }
    if not repo.conditional_update(session.id, SessionStatus.CHECKED_IN, patch):
        repo.rollback()
        _log.info("check_out lost race: session_id=%s already closed", session_id)
        raise ConflictError("Session already closed")

    ping = _location(session.id, at, latitude, longitude, address)
    if ping is not None:
        repo.add_location(ping)
    repo.add_event(
        AttendanceEvent(
            session_id=session.id,
            user_id=session.user_id,
            event_type=AttendanceEventType.CHECK_OUT.value,
            event_at=at,
            meta_json=sanitize_for_json({
                "total_hours": result.total_hours,
                "flags": result.flag_values(),
                "has_location": ping is not None,
            }),
            created_by=user_id or session.user_id,
        )
    )
    repo.commit()
    repo.refresh(session)

    _log.info(
        "check_out: session_id=%s total_hours=%.2f flags=%s",
        session.id, result.total_hours, result.flag_values(),
    )
    return session


def find_active_session(
    repo: AttendanceRepository,
    user_id: str,
    policy: AttendancePolicy,
    now: Optional[datetime] = None,
) -> Optional[AttendanceSession]:
    """The user's open session for today's business date, if any."""
    now = ensure_utc(now) or now_utc()
    return repo.find_open_for_day(user_id, business_date(now, policy.timezone))


def get_current(
    repo: AttendanceRepository,
    user_id: str,
    policy: AttendancePolicy,
    now: Optional[datetime] = None,
) -> Tuple[Optional[AttendanceSession], List[AttendanceSession]]:
    """Return (active session, all of today's sessions newest first) for the business date of now."""
    now = ensure_utc(now) or now_utc()
    day = business_date(now, policy.timezone)
    return repo.find_open_for_day(user_id, day), repo.list_for_day(user_id, day)


def record_location(
    repo: AttendanceRepository,
    user_id: str,
    session_id: str,
    latitude: float,
    longitude: float,
    *,
    address: Optional[str] = None,
    accuracy: Optional[float] = None,
    now: Optional[datetime] = None,
) -> AttendanceLocation:
    """Append a location ping to the caller's own open session."""
    session = repo.get(session_id)
    if session is None or session.user_id != user_id or session.check_out_time is not None:
        raise NotFoundError("Active session not found")

    ping = _location(
        session.id, ensure_utc(now) or now_utc(), latitude, longitude,
        clean_text(address, NOTES_MAX_LENGTH), accuracy,
    )
    repo.add_location(ping)
    repo.commit()
    repo.refresh(ping)
    return ping
