"""
Run the auto-checkout sweep once (for cron, or by hand after an outage).
Closes every attendance session left open past AUTO_CHECKOUT_TIME. Run with .env loaded.

Usage:
  python scripts/run_auto_checkout.py
  python scripts/run_auto_checkout.py --now 2026-03-02T00:30:00+05:45
"""
import argparse
import sys
from datetime import datetime
from pathlib import Path

# Add project root so attendance_api is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from attendance_api.core.config import settings
from attendance_api.core.logging import setup_logging
from attendance_api.db import session as db_session
from attendance_api.repositories.attendance_repository import SqlAlchemyAttendanceRepository
from attendance_api.services.auto_checkout_service import run_auto_checkout


def main():
    parser = argparse.ArgumentParser(description="Close attendance sessions left open past the cutoff")
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="Pretend the sweep runs at this ISO-8601 instant (with offset)",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args()
    if args.now is not None and args.now.tzinfo is None:
        parser.error("--now must include a UTC offset")

    setup_logging("DEBUG" if args.verbose else None)
    db = db_session.SessionLocal()
    try:
        report = run_auto_checkout(SqlAlchemyAttendanceRepository(db), settings.attendance_policy(), now=args.now)
    finally:
        db.close()

    print(f"Sweep at {report.ran_at.isoformat()} through {report.cutoff_date}: "
          f"examined={report.examined} closed={report.closed} skipped={report.skipped} failed={report.failed}")
    for item in report.results:
        line = f"  {item.session_id} user={item.user_id} {item.outcome}"
        if item.error:
            line += f" ({item.error})"
        print(line)
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
