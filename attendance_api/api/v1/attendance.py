"""
Attendance endpoints: check in/out, current day, location pings, history and CSV export.
STAFF and FINANCE record their own attendance; history and export are scoped by role.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from attendance_api.core.deps import (
    get_attendance_policy,
    get_attendance_repository,
    get_current_user,
    require_roles,
)
from attendance_api.core.errors import NotFoundError
from attendance_api.models.user import Role, User
from attendance_api.repositories.attendance_repository import AttendanceRepository
from attendance_api.schemas.attendance import (
    CheckInRequest,
    CheckOutRequest,
    CurrentAttendanceResponse,
    HistoryResponse,
    HistorySessionDto,
    LocationCheckDto,
    LocationEnvelope,
    LocationPingRequest,
    SessionDto,
    SessionEnvelope,
)
from attendance_api.services import attendance_query_service as query_service
from attendance_api.services import attendance_session_service as session_service
from attendance_api.services.attendance_export_service import EXPORT_COLUMNS, iter_export_rows
from attendance_api.services.status_engine import AttendancePolicy
from attendance_api.utils.csv_export import stream_csv
from attendance_api.utils.datetime_utils import business_date, now_utc

router = APIRouter()
_log = logging.getLogger(__name__)

require_recorder = require_roles(Role.STAFF, Role.FINANCE)


def _history_filter(
    user_id: Optional[str] = Query(None, alias="userId"),
    date_from: Optional[str] = Query(None, alias="dateFrom", description="YYYY-MM-DD, inclusive"),
    date_to: Optional[str] = Query(None, alias="dateTo", description="YYYY-MM-DD, inclusive"),
    date_preset: Optional[str] = Query(
        None, alias="datePreset",
        description="today, this-week, this-month, last-month, this-year or YYYY-MM",
    ),
    work_location: Optional[str] = Query(None, alias="workLocation", description="Comma-separated work locations"),
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    name: Optional[str] = Query(None, description="Case-insensitive match on user name or email"),
) -> query_service.HistoryFilter:
    return query_service.HistoryFilter(
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        date_preset=date_preset,
        work_location=work_location,
        status=status,
        name=name,
    )


@router.post("/check-in", response_model=SessionEnvelope, status_code=201)
async def check_in_endpoint(
    body: CheckInRequest,
    repo: AttendanceRepository = Depends(get_attendance_repository),
    policy: AttendancePolicy = Depends(get_attendance_policy),
    current_user: User = Depends(require_recorder),
):
    """
    Check in for the current user at server time. Session date = business-timezone today.
    409 if a session is already open for today; 400 if late without a late reason.
    """
    session = session_service.check_in(
        repo,
        current_user.id,
        body.work_location,
        policy,
        location_address=body.address,
        latitude=body.latitude,
        longitude=body.longitude,
        notes=body.notes,
        late_reason=body.late_reason,
    )
    return SessionEnvelope(session=SessionDto.model_validate(session))


@router.post("/check-out", response_model=SessionEnvelope)
async def check_out_endpoint(
    body: CheckOutRequest,
    repo: AttendanceRepository = Depends(get_attendance_repository),
    policy: AttendancePolicy = Depends(get_attendance_policy),
    current_user: User = Depends(require_recorder),
):
    """
    Check out the given session, or the caller's open session for today when sessionId is omitted.
    409 if the session is already closed (including by the auto-checkout sweep).
    """
    session_id = body.session_id
    if session_id is None:
        active = session_service.find_active_session(repo, current_user.id, policy)
        if active is None:
            raise NotFoundError("No active check-in session found")
        session_id = active.id

    session = session_service.check_out(
        repo,
        session_id,
        policy,
        user_id=current_user.id,
        notes=body.notes,
        location_address=body.address,
        latitude=body.latitude,
        longitude=body.longitude,
    )
    return SessionEnvelope(session=SessionDto.model_validate(session))


@router.get("/current", response_model=CurrentAttendanceResponse)
async def current_attendance(
    repo: AttendanceRepository = Depends(get_attendance_repository),
    policy: AttendancePolicy = Depends(get_attendance_policy),
    current_user: User = Depends(require_recorder),
):
    """Today's open session (if any) and all of today's sessions, newest first."""
    active, today_sessions = session_service.get_current(repo, current_user.id, policy)
    return CurrentAttendanceResponse(
        active_session=SessionDto.model_validate(active) if active else None,
        today_sessions=[SessionDto.model_validate(s) for s in today_sessions],
        has_active_session=active is not None,
    )


@router.post("/location", response_model=LocationEnvelope, status_code=201)
async def record_location(
    body: LocationPingRequest,
    repo: AttendanceRepository = Depends(get_attendance_repository),
    current_user: User = Depends(require_recorder),
):
    """Append a location ping to the caller's open session."""
    ping = session_service.record_location(
        repo,
        current_user.id,
        body.session_id,
        body.latitude,
        body.longitude,
        address=body.address,
        accuracy=body.accuracy,
    )
    return LocationEnvelope(location_check=LocationCheckDto.model_validate(ping))


@router.get("/history", response_model=HistoryResponse)
async def attendance_history(
    page: int = Query(1, description="Page number (1-based)"),
    limit: int = Query(20, description="Page size"),
    flt: query_service.HistoryFilter = Depends(_history_filter),
    repo: AttendanceRepository = Depends(get_attendance_repository),
    policy: AttendancePolicy = Depends(get_attendance_policy),
    current_user: User = Depends(get_current_user),
):
    """
    Paginated history, newest check-in first.
    STAFF/FINANCE always see only their own sessions; userId is ignored for them.
    """
    result = query_service.search(repo, current_user.role, current_user.id, flt, page, limit, policy)
    return HistoryResponse(
        sessions=[HistorySessionDto.model_validate(s) for s in result.sessions],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.get("/history/export")
async def export_attendance_history(
    flt: query_service.HistoryFilter = Depends(_history_filter),
    repo: AttendanceRepository = Depends(get_attendance_repository),
    policy: AttendancePolicy = Depends(get_attendance_policy),
    current_user: User = Depends(get_current_user),
):
    """Export every session matching the history filter as CSV (streamed, same role scoping)."""
    rows = iter_export_rows(repo, current_user.role, current_user.id, flt, policy)
    filename = f"attendance-history-{business_date(now_utc(), policy.timezone).isoformat()}.csv"
    _log.debug("export requested: user_id=%s filename=%s", current_user.id, filename)
    return stream_csv(EXPORT_COLUMNS, rows, filename)
