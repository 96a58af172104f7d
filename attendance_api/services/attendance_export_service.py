"""
Attendance export: same filter and role contract as the history search, unbounded and streamed.
"""
import logging
from datetime import datetime
from typing import Dict, Iterator, Optional, Union

from attendance_api.core.config import settings
from attendance_api.models.attendance_session import AttendanceSession
from attendance_api.models.user import Role
from attendance_api.repositories.attendance_repository import AttendanceRepository
from attendance_api.services.attendance_query_service import HistoryFilter, build_criteria
from attendance_api.services.status_engine import AttendancePolicy
from attendance_api.utils.datetime_utils import iso_local

_log = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "id",
    "userName",
    "userEmail",
    "date",
    "workLocation",
    "status",
    "flags",
    "checkInTime",
    "checkOutTime",
    "totalHours",
    "isLate",
    "lateMinutes",
]


def session_to_row(session: AttendanceSession, tz_name: str) -> Dict[str, str]:
    user = session.user
    return {
        "id": session.id,
        "userName": (user.name or "Unnamed user") if user else "",
        "userEmail": user.email if user else "",
        "date": session.date.isoformat(),
        "workLocation": session.work_location,
        "status": session.status,
        "flags": "|".join(session.flags or []),
        "checkInTime": iso_local(session.check_in_time, tz_name),
        "checkOutTime": iso_local(session.check_out_time, tz_name) or "",
        "totalHours": f"{session.total_hours:.2f}" if session.total_hours is not None else "",
        "isLate": "true" if session.is_late else "false",
        "lateMinutes": str(session.late_minutes or 0),
    }


def iter_export_rows(
    repo: AttendanceRepository,
    requester_role: Union[Role, str],
    requester_id: str,
    flt: HistoryFilter,
    policy: AttendancePolicy,
    *,
    batch_size: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Iterator[Dict[str, str]]:
    """
    Yield export rows in EXPORT_COLUMNS order, newest check-in first.

    Scope and filter errors are raised eagerly, before the first row is produced, so the
    HTTP layer can still answer with a JSON error instead of a broken stream.
    """
    criteria = build_criteria(requester_role, requester_id, flt, policy, now=now)
    size = batch_size or settings.EXPORT_BATCH_SIZE

    def generate() -> Iterator[Dict[str, str]]:
        exported = 0
        for batch in repo.iter_batches(criteria, size):
            for session in batch:
                yield session_to_row(session, policy.timezone)
            exported += len(batch)
        _log.info("attendance export: requester=%s rows=%d", requester_id, exported)

    return generate()
