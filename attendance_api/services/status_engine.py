"""
Status engine: derives status, flags, lateness and worked hours for an attendance session.

Pure and deterministic. It never reads the clock or the database; everything it needs
(timestamps and the AttendancePolicy) is passed in by the caller.
"""
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from math import floor
from typing import Optional, Tuple

from attendance_api.core.errors import InvalidTimeError
from attendance_api.models.attendance_session import AttendanceFlag, SessionStatus
from attendance_api.utils.datetime_utils import at_local_time, business_date, ensure_utc


@dataclass(frozen=True)
class AttendancePolicy:
    """Attendance rules for one business. Built from settings via Settings.attendance_policy()."""
    timezone: str
    expected_check_in_time: time
    grace_minutes: int = 0
    min_full_day_hours: float = 8.0
    overtime_hours: float = 9.0
    sweep_cutoff_time: time = time(23, 59)
    require_late_reason: bool = True


@dataclass(frozen=True)
class StatusResult:
    status: SessionStatus
    flags: Tuple[AttendanceFlag, ...]
    is_late: bool
    late_minutes: int
    total_hours: Optional[float]
    expected_check_in_time: datetime

    def flag_values(self) -> list:
        return [f.value for f in self.flags]


def expected_check_in_for(check_in_time: datetime, policy: AttendancePolicy) -> datetime:
    """Expected check-in instant (UTC) on the business day of check_in_time."""
    day = business_date(check_in_time, policy.timezone)
    return at_local_time(day, policy.expected_check_in_time, policy.timezone)


def evaluate(
    check_in_time: datetime,
    policy: AttendancePolicy,
    *,
    check_out_time: Optional[datetime] = None,
    auto_checked_out: bool = False,
    expected_check_in_time: Optional[datetime] = None,
) -> StatusResult:
    """
    Compute the derived fields of a session.

    Args:
        check_in_time: When the session started (naive values are treated as UTC)
        policy: Attendance rules to apply
        check_out_time: Closure time, None while the session is open
        auto_checked_out: True when the closure was applied by the auto-checkout sweep
        expected_check_in_time: Stored expectation; derived from the policy when omitted

    Returns:
        StatusResult

    Raises:
        InvalidTimeError: If check_out_time is before check_in_time
    """
    check_in = ensure_utc(check_in_time)
    check_out = ensure_utc(check_out_time)
    expected = ensure_utc(expected_check_in_time) or expected_check_in_for(check_in, policy)

    if auto_checked_out and check_out is None:
        raise ValueError("auto_checked_out requires a check_out_time")

    late_after = expected + timedelta(minutes=policy.grace_minutes)
    is_late = check_in > late_after
    late_minutes = floor((check_in - late_after).total_seconds() / 60) if is_late else 0

    flags = set()
    if is_late:
        flags.add(AttendanceFlag.LATE)

    total_hours = None
    if check_out is None:
        status = SessionStatus.CHECKED_IN
    else:
        if check_out < check_in:
            raise InvalidTimeError("Check-out time cannot be before check-in time")
        total_hours = (check_out - check_in).total_seconds() / 3600
        if auto_checked_out:
            status = SessionStatus.AUTO_CHECKED_OUT
            flags.add(AttendanceFlag.MISSING_CHECKOUT)
        else:
            status = SessionStatus.CHECKED_OUT
            if total_hours < policy.min_full_day_hours:
                flags.add(AttendanceFlag.EARLY_LEAVE)
        if total_hours > policy.overtime_hours:
            flags.add(AttendanceFlag.OVERTIME)

    # Declaration order keeps the stored list stable
    ordered = tuple(f for f in AttendanceFlag if f in flags)
    return StatusResult(
        status=status,
        flags=ordered,
        is_late=is_late,
        late_minutes=late_minutes,
        total_hours=total_hours,
        expected_check_in_time=expected,
    )
