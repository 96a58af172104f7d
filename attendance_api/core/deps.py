"""
Dependencies and guards for FastAPI endpoints
"""
import hmac
from typing import Generator, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from attendance_api.core.config import settings
from attendance_api.core.errors import ForbiddenError, UnauthorizedError
from attendance_api.core.security import decode_token
from attendance_api.db.session import SessionLocal
from attendance_api.models.user import Role, User
from attendance_api.repositories.attendance_repository import (
    AttendanceRepository,
    SqlAlchemyAttendanceRepository,
)
from attendance_api.services.status_engine import AttendancePolicy

# auto_error=False so a missing header is answered by UnauthorizedError (401), not FastAPI's default
security = HTTPBearer(auto_error=False)


def get_db() -> Generator:
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_attendance_repository(db: Session = Depends(get_db)) -> AttendanceRepository:
    return SqlAlchemyAttendanceRepository(db)


def get_attendance_policy() -> AttendancePolicy:
    """Attendance policy from the current settings; overridable in tests."""
    return settings.attendance_policy()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from JWT token
    """
    if credentials is None:
        raise UnauthorizedError("Not authenticated")

    try:
        payload = decode_token(credentials.credentials)
    except ValueError:
        raise UnauthorizedError("Invalid authentication credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid authentication credentials")

    user = db.query(User).filter(User.id == str(user_id)).first()
    if user is None:
        raise UnauthorizedError("User not found")

    if not user.is_active:
        raise ForbiddenError("Inactive user")

    return user


def require_roles(*allowed_roles: Role):
    """
    Dependency factory for role-based access control. No role bypasses the list.

    Usage:
        @router.post("/check-in")
        async def check_in(user: User = Depends(require_roles(Role.STAFF, Role.FINANCE))):
            ...
    """
    allowed = {r.value for r in allowed_roles}

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise ForbiddenError(
                f"Access denied. Required roles: {sorted(allowed)}"
            )
        return current_user
    return role_checker


def verify_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """Guard for the auto-checkout trigger: Authorization must be Bearer <CRON_SECRET>."""
    if credentials is None or not hmac.compare_digest(
        credentials.credentials.encode("utf-8"), settings.CRON_SECRET.encode("utf-8")
    ):
        raise UnauthorizedError("Invalid cron secret")
