"""
Auto-checkout trigger for the external scheduler (cron).
"""
import logging

from fastapi import APIRouter, Depends

from attendance_api.core.deps import get_attendance_policy, get_attendance_repository, verify_cron_secret
from attendance_api.repositories.attendance_repository import AttendanceRepository
from attendance_api.schemas.attendance import SweepReportDto
from attendance_api.services.auto_checkout_service import last_sweepable_date, run_auto_checkout
from attendance_api.services.status_engine import AttendancePolicy
from attendance_api.utils.datetime_utils import business_date, iso_local, now_utc

router = APIRouter()
_log = logging.getLogger(__name__)


@router.post("/auto-checkout", response_model=SweepReportDto, dependencies=[Depends(verify_cron_secret)])
async def trigger_auto_checkout(
    repo: AttendanceRepository = Depends(get_attendance_repository),
    policy: AttendancePolicy = Depends(get_attendance_policy),
):
    """
    Close every session left open past the cutoff.
    Requires Authorization: Bearer <CRON_SECRET>. Safe to call repeatedly.
    """
    report = run_auto_checkout(repo, policy)
    return SweepReportDto.model_validate(report)


@router.get("/auto-checkout")
async def auto_checkout_status(policy: AttendancePolicy = Depends(get_attendance_policy)):
    """Sweep status: the cutoff in force and the latest session date a run would close now."""
    now = now_utc()
    return {
        "status": "ok",
        "now": iso_local(now, policy.timezone),
        "business_date": business_date(now, policy.timezone).isoformat(),
        "cutoff_time": policy.sweep_cutoff_time.strftime("%H:%M"),
        "closes_through": last_sweepable_date(now, policy).isoformat(),
    }
