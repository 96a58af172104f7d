"""
Attendance history queries: role scoping, filter parsing and paginated search.

Role scoping comes from ROLE_SCOPES only and is applied before any caller-supplied filter:
SELF roles always see their own sessions, whatever userId they pass.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple, Union

from attendance_api.core.config import settings
from attendance_api.core.errors import ForbiddenError, ValidationFailedError
from attendance_api.models.attendance_session import AttendanceSession, SessionStatus, WorkLocation
from attendance_api.models.user import Role
from attendance_api.repositories.attendance_repository import AttendanceRepository, SessionCriteria
from attendance_api.services.status_engine import AttendancePolicy
from attendance_api.utils.datetime_utils import business_date, month_end, now_utc, week_start

_log = logging.getLogger(__name__)


class RoleScope(str, enum.Enum):
    SELF = "SELF"
    ALL = "ALL"


ROLE_SCOPES: Dict[Role, RoleScope] = {
    Role.STAFF: RoleScope.SELF,
    Role.FINANCE: RoleScope.SELF,
    Role.ADMIN: RoleScope.ALL,
    Role.PLATFORM_ADMIN: RoleScope.ALL,
}

DATE_PRESETS = ("today", "this-week", "this-month", "last-month", "this-year")


@dataclass(frozen=True)
class HistoryFilter:
    """Caller-supplied filter, as received (strings from the query string, or dates)."""
    user_id: Optional[str] = None
    date_from: Optional[Union[str, date]] = None
    date_to: Optional[Union[str, date]] = None
    date_preset: Optional[str] = None
    work_location: Optional[str] = None
    status: Optional[str] = None
    name: Optional[str] = None


@dataclass
class HistoryPage:
    sessions: List[AttendanceSession]
    total: int
    page: int
    limit: int


def resolve_scope(role: Union[Role, str]) -> RoleScope:
    """Look up the role in ROLE_SCOPES. Unknown roles are forbidden."""
    try:
        return ROLE_SCOPES[Role(role)]
    except (ValueError, KeyError):
        raise ForbiddenError("Role is not permitted to read attendance")


def _parse_day(value: Optional[Union[str, date]], field_name: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationFailedError(f"{field_name} must be a date in YYYY-MM-DD format")


def _split_enum_list(raw: Optional[str], enum_cls, field_name: str) -> Tuple[str, ...]:
    if not raw:
        return ()
    values = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            values.append(enum_cls(part).value)
        except ValueError:
            allowed = ", ".join(e.value for e in enum_cls)
            raise ValidationFailedError(f"Unknown {field_name} {part!r}; expected one of: {allowed}")
    return tuple(dict.fromkeys(values))


def preset_range(preset: str, today: date) -> Tuple[date, date]:
    """Inclusive (first, last) calendar days for a date preset relative to today."""
    if preset == "today":
        return today, today
    if preset == "this-week":
        start = week_start(today)
        return start, date.fromordinal(start.toordinal() + 6)
    if preset == "this-month":
        return today.replace(day=1), month_end(today.year, today.month)
    if preset == "last-month":
        year, month = (today.year - 1, 12) if today.month == 1 else (today.year, today.month - 1)
        return date(year, month, 1), month_end(year, month)
    if preset == "this-year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    # YYYY-MM
    parts = preset.split("-")
    if len(parts) == 2 and len(parts[0]) == 4 and len(parts[1]) == 2 and all(p.isdigit() for p in parts):
        year, month = int(parts[0]), int(parts[1])
        if 1 <= month <= 12:
            return date(year, month, 1), month_end(year, month)
    raise ValidationFailedError(
        f"Unknown datePreset {preset!r}; expected one of {', '.join(DATE_PRESETS)} or YYYY-MM"
    )


def build_criteria(
    requester_role: Union[Role, str],
    requester_id: str,
    flt: HistoryFilter,
    policy: AttendancePolicy,
    now: Optional[datetime] = None,
) -> SessionCriteria:
    """
    Turn a caller filter into a store predicate.

    Scope first: SELF roles are pinned to requester_id; ALL roles may pass any user_id or none.
    Date bounds are inclusive calendar days of the business timezone, matching how
    AttendanceSession.date is stored.
    """
    scope = resolve_scope(requester_role)
    if scope == RoleScope.SELF:
        user_id = requester_id
    else:
        user_id = flt.user_id or None

    if flt.date_preset:
        today = business_date(now or now_utc(), policy.timezone)
        date_from, date_to = preset_range(flt.date_preset.strip(), today)
    else:
        date_from = _parse_day(flt.date_from, "dateFrom")
        date_to = _parse_day(flt.date_to, "dateTo")
        if date_from and date_to and date_from > date_to:
            raise ValidationFailedError("dateFrom must be less than or equal to dateTo")

    name = flt.name.strip() if flt.name else None
    return SessionCriteria(
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        work_locations=_split_enum_list(flt.work_location, WorkLocation, "workLocation"),
        statuses=_split_enum_list(flt.status, SessionStatus, "status"),
        search=name or None,
    )


def validate_paging(page: int, limit: int, max_limit: Optional[int] = None) -> None:
    max_limit = max_limit or settings.HISTORY_MAX_LIMIT
    if page is None or page < 1:
        raise ValidationFailedError("page must be >= 1")
    if limit is None or limit < 1 or limit > max_limit:
        raise ValidationFailedError(f"limit must be between 1 and {max_limit}")


def search(
    repo: AttendanceRepository,
    requester_role: Union[Role, str],
    requester_id: str,
    flt: HistoryFilter,
    page: int,
    limit: int,
    policy: AttendancePolicy,
    *,
    now: Optional[datetime] = None,
) -> HistoryPage:
    """
    Paginated history ordered by check_in_time descending.

    total is counted with the same predicate in the same transaction as the page
    (best-effort consistency against concurrent writers).
    """
    validate_paging(page, limit)
    criteria = build_criteria(requester_role, requester_id, flt, policy, now=now)
    sessions = repo.find_many(criteria, page, limit)
    total = repo.count(criteria)
    _log.debug(
        "history search: requester=%s scope_user=%s page=%s limit=%s total=%s",
        requester_id, criteria.user_id, page, limit, total,
    )
    return HistoryPage(sessions=sessions, total=total, page=page, limit=limit)
