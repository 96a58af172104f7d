"""
Auto-checkout sweep: force-close sessions left open past the configured cutoff.

Safe to run concurrently with user check-outs and with itself: every closure is a guarded
update on "check_out_time IS NULL", and a guard that matches zero rows is a skip, not an error.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from attendance_api.models.attendance_session import (
    AttendanceEvent,
    AttendanceEventType,
    AttendanceLocation,
    AttendanceSession,
    SessionStatus,
)
from attendance_api.repositories.attendance_repository import AttendanceRepository
from attendance_api.services.status_engine import AttendancePolicy, evaluate
from attendance_api.utils.datetime_utils import (
    at_local_time,
    business_date,
    ensure_utc,
    now_utc,
    to_business_tz,
)
from attendance_api.utils.json_serializer import sanitize_for_json

_log = logging.getLogger(__name__)

CLOSED = "closed"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class SweepItem:
    session_id: str
    user_id: str
    outcome: str
    check_out_time: Optional[datetime] = None
    error: Optional[str] = None


@dataclass
class SweepReport:
    ran_at: datetime
    cutoff_date: str
    examined: int = 0
    closed: int = 0
    skipped: int = 0
    failed: int = 0
    results: List[SweepItem] = field(default_factory=list)


def last_sweepable_date(now: datetime, policy: AttendancePolicy):
    """
    Latest session date the sweep may close at `now`: today once the local cutoff time
    has been reached, otherwise yesterday.
    """
    local_now = to_business_tz(now, policy.timezone)
    today = local_now.date()
    if local_now.time() >= policy.sweep_cutoff_time:
        return today
    return today - timedelta(days=1)


def cutoff_for(session: AttendanceSession, policy: AttendancePolicy) -> datetime:
    """Auto-checkout time for a session: the cutoff on its date, never before its check-in."""
    check_in_time = ensure_utc(session.check_in_time)
    cutoff = at_local_time(session.date, policy.sweep_cutoff_time, policy.timezone)
    return max(cutoff, check_in_time)


def _close_one(repo: AttendanceRepository, session: AttendanceSession, policy: AttendancePolicy,
               now: datetime) -> SweepItem:
    check_out_time = cutoff_for(session, policy)
    result = evaluate(
        ensure_utc(session.check_in_time),
        policy,
        check_out_time=check_out_time,
        auto_checked_out=True,
        expected_check_in_time=session.expected_check_in_time,
    )

    last_ping = repo.latest_location(session.id)
    if last_ping is not None:
        out_lat, out_lng, out_address = last_ping.latitude, last_ping.longitude, last_ping.address
    else:
        out_lat = session.check_in_location_lat
        out_lng = session.check_in_location_lng
        out_address = session.check_in_location_address

    patch = {
        "check_out_time": check_out_time,
        "status": result.status.value,
        "flags": result.flag_values(),
        "total_hours": result.total_hours,
        "is_late": result.is_late,
        "late_minutes": result.late_minutes,
        "auto_checked_out": True,
        "open_slot": None,
        "check_out_location_lat": out_lat,
        "check_out_location_lng": out_lng,
        "check_out_location_address": out_address,
        "updated_at": now,
    }
    if not repo.conditional_update(session.id, SessionStatus.CHECKED_IN, patch):
        repo.rollback()
        _log.info("auto_checkout skip: session_id=%s closed meanwhile", session.id)
        return SweepItem(session_id=session.id, user_id=session.user_id, outcome=SKIPPED)

    if out_lat is not None and out_lng is not None:
        repo.add_location(
            AttendanceLocation(
                session_id=session.id,
                timestamp=check_out_time,
                latitude=out_lat,
                longitude=out_lng,
                address=out_address,
            )
        )
    repo.add_event(
        AttendanceEvent(
            session_id=session.id,
            user_id=session.user_id,
            event_type=AttendanceEventType.AUTO_CHECK_OUT.value,
            event_at=check_out_time,
            meta_json=sanitize_for_json({
                "swept_at": now,
                "total_hours": result.total_hours,
                "flags": result.flag_values(),
            }),
            created_by=None,
        )
    )
    repo.commit()
    return SweepItem(
        session_id=session.id,
        user_id=session.user_id,
        outcome=CLOSED,
        check_out_time=check_out_time,
    )


def run_auto_checkout(
    repo: AttendanceRepository,
    policy: AttendancePolicy,
    now: Optional[datetime] = None,
) -> SweepReport:
    """
    Close every session still open on a date the cutoff has passed for.

    Each candidate is handled in its own transaction. A store failure on one session is
    logged and reported as failed; it is not retried here, the next run re-selects it.
    """
    now = ensure_utc(now) or now_utc()
    last_day = last_sweepable_date(now, policy)
    candidates = repo.find_open_through(last_day)
    report = SweepReport(ran_at=now, cutoff_date=last_day.isoformat(), examined=len(candidates))
    _log.info(
        "auto_checkout start: now=%s business_date=%s through=%s candidates=%d",
        now.isoformat(), business_date(now, policy.timezone), last_day, len(candidates),
    )

    for session in candidates:
        session_id, user_id = session.id, session.user_id
        try:
            item = _close_one(repo, session, policy, now)
        except SQLAlchemyError as exc:
            repo.rollback()
            _log.error("auto_checkout failed: session_id=%s", session_id, exc_info=True)
            item = SweepItem(session_id=session_id, user_id=user_id, outcome=FAILED, error=str(exc))
        report.results.append(item)
        if item.outcome == CLOSED:
            report.closed += 1
        elif item.outcome == SKIPPED:
            report.skipped += 1
        else:
            report.failed += 1

    _log.info(
        "auto_checkout done: examined=%d closed=%d skipped=%d failed=%d",
        report.examined, report.closed, report.skipped, report.failed,
    )
    return report
