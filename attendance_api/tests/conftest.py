"""
Pytest configuration and fixtures
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-attendance-tests-0123456789")

from datetime import datetime, time  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from attendance_api.main import app  # noqa: E402
from attendance_api.db.base import Base  # noqa: E402
from attendance_api.core.deps import get_attendance_policy, get_db  # noqa: E402
from attendance_api.models import (  # noqa: E402
    AttendanceSession,
    Role,
    SessionStatus,
    User,
    WorkLocation,
)
from attendance_api.models.attendance_session import open_slot_key  # noqa: E402
from attendance_api.services.status_engine import AttendancePolicy, evaluate  # noqa: E402
from attendance_api.utils.datetime_utils import business_date, ensure_utc  # noqa: E402

TZ = "Asia/Kathmandu"
OFFICE_LAT, OFFICE_LNG = 27.7172, 85.3240

# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Enable foreign keys for SQLite
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def policy() -> AttendancePolicy:
    """Expected check-in 09:00 with 10 minutes grace; late reason required."""
    return AttendancePolicy(
        timezone=TZ,
        expected_check_in_time=time(9, 0),
        grace_minutes=10,
        min_full_day_hours=8.0,
        overtime_hours=9.0,
        sweep_cutoff_time=time(23, 59),
        require_late_reason=True,
    )


@pytest.fixture
def lenient_policy(policy) -> AttendancePolicy:
    """Same rules without the late-reason requirement, for HTTP tests that run at wall-clock time."""
    return AttendancePolicy(
        timezone=policy.timezone,
        expected_check_in_time=policy.expected_check_in_time,
        grace_minutes=policy.grace_minutes,
        min_full_day_hours=policy.min_full_day_hours,
        overtime_hours=policy.overtime_hours,
        sweep_cutoff_time=policy.sweep_cutoff_time,
        require_late_reason=False,
    )


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db, lenient_policy):
    """Test client fixture with database and policy overrides"""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_attendance_policy] = lambda: lenient_policy
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db, name, email, role, is_active=True) -> User:
    user = User(name=name, email=email, role=role.value, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def staff_user(db):
    """Create a STAFF user"""
    return _make_user(db, "Sita Sharma", "sita@example.com", Role.STAFF)


@pytest.fixture
def other_staff_user(db):
    """Create a second STAFF user"""
    return _make_user(db, "Ram Thapa", "ram@example.com", Role.STAFF)


@pytest.fixture
def finance_user(db):
    """Create a FINANCE user"""
    return _make_user(db, "Gita Karki", "gita@example.com", Role.FINANCE)


@pytest.fixture
def admin_user(db):
    """Create an ADMIN user"""
    return _make_user(db, "Admin User", "admin@example.com", Role.ADMIN)



@pytest.fixture
def make_session(db, policy):
    """Factory inserting a session checked in from the office, with derived fields from the status engine"""
    def _make(
        user: User,
        check_in_time: datetime,
        *,
        check_out_time: Optional[datetime] = None,
        auto: bool = False,
        work_location: WorkLocation = WorkLocation.OFFICE,
        latitude: Optional[float] = OFFICE_LAT,
        longitude: Optional[float] = OFFICE_LNG,
    ) -> AttendanceSession:
        check_in_time = ensure_utc(check_in_time)
        check_out_time = ensure_utc(check_out_time)
        result = evaluate(check_in_time, policy, check_out_time=check_out_time, auto_checked_out=auto)
        day = business_date(check_in_time, policy.timezone)
        session = AttendanceSession(
            user_id=user.id,
            date=day,
            work_location=work_location.value,
            status=result.status.value,
            flags=result.flag_values(),
            check_in_time=check_in_time,
            expected_check_in_time=result.expected_check_in_time,
            check_out_time=check_out_time,
            total_hours=result.total_hours,
            is_late=result.is_late,
            late_minutes=result.late_minutes,
            check_in_location_lat=latitude,
            check_in_location_lng=longitude,
            auto_checked_out=auto,
            open_slot=open_slot_key(user.id, day) if result.status == SessionStatus.CHECKED_IN else None,
        )
        db.add(session)
        db.commit()
        db.refresh(session)
        return session
    return _make
