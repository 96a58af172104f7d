"""
User model (owned by the identity provider; read-only for attendance)
"""
import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.sql import func

from attendance_api.db.base import Base


class Role(str, enum.Enum):
    STAFF = "STAFF"
    FINANCE = "FINANCE"
    ADMIN = "ADMIN"
    PLATFORM_ADMIN = "PLATFORM_ADMIN"


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=True)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(String, nullable=False, default=Role.STAFF.value)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)
