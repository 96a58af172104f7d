"""
Configuration management for the attendance backend
"""
from datetime import time
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from attendance_api.services.status_engine import AttendancePolicy

DEFAULT_CRON_SECRET = "change-me-cron-secret"


def parse_clock_time(value: str) -> time:
    """Parse an HH:MM (or HH:MM:SS) wall-clock string."""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time {value!r}; expected HH:MM")
    try:
        numbers = [int(p) for p in parts]
    except ValueError:
        raise ValueError(f"Invalid time {value!r}; expected HH:MM")
    return time(*numbers)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Required settings
    DATABASE_URL: str = Field(..., description="Database URL (PostgreSQL in production, SQLite locally)")
    JWT_SECRET_KEY: str = Field(..., description="Secret used to verify identity bearer tokens")

    JWT_ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    JWT_EXPIRE_MINUTES: int = Field(default=120, description="Lifetime of tokens minted by create_access_token")

    APP_ENV: str = Field(default="local", description="Application environment: local, staging, prod")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")

    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for local only."
    )

    VERSION: Optional[str] = Field(default=None, description="Application version (git SHA or semver)")

    # Auto-checkout trigger
    CRON_SECRET: str = Field(
        default=DEFAULT_CRON_SECRET,
        description="Bearer token expected by POST /attendance/auto-checkout",
    )

    # Attendance policy
    BUSINESS_TIMEZONE: str = Field(default="Asia/Kathmandu", description="Timezone that defines the business day")
    EXPECTED_CHECK_IN_TIME: str = Field(default="10:00", description="Expected check-in wall-clock time (HH:MM)")
    GRACE_MINUTES: int = Field(default=0, ge=0, description="Minutes after expected check-in before a check-in is late")
    MIN_FULL_DAY_HOURS: float = Field(default=8.0, ge=0, description="Worked hours below which a manual checkout is an early leave")
    OVERTIME_HOURS: float = Field(default=9.0, ge=0, description="Worked hours above which a session is flagged overtime")
    AUTO_CHECKOUT_TIME: str = Field(default="23:59", description="Wall-clock time the sweep closes open sessions at (HH:MM)")
    REQUIRE_LATE_REASON: bool = Field(default=True, description="Reject late check-ins that carry no late reason")
    LATE_REASON_MAX_LENGTH: int = Field(default=500, ge=1, description="Stored late reasons are truncated to this length")

    # Check-in/check-out guards
    CHECKOUT_RADIUS_METERS: float = Field(
        default=500.0,
        ge=0,
        description="Maximum distance between check-in and check-out coordinates; 0 disables the check",
    )
    CHECK_IN_MAX_FUTURE_MINUTES: int = Field(default=5, ge=0, description="Tolerated clock skew for check-in times ahead of the server")
    CHECK_IN_MAX_BACKDATE_MINUTES: int = Field(default=1440, ge=0, description="Oldest accepted check-in time relative to the server clock")

    # History / export
    HISTORY_MAX_LIMIT: int = Field(default=100, ge=1, description="Upper bound for the history page size")
    EXPORT_BATCH_SIZE: int = Field(default=500, ge=1, description="Rows fetched per export batch")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate APP_ENV"""
        allowed = ["local", "staging", "prod"]
        if v not in allowed:
            raise ValueError(f"APP_ENV must be one of {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate LOG_LEVEL"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v.upper()

    @field_validator("BUSINESS_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"BUSINESS_TIMEZONE {v!r} is not a known IANA timezone")
        return v

    @field_validator("EXPECTED_CHECK_IN_TIME", "AUTO_CHECKOUT_TIME")
    @classmethod
    def validate_clock_time(cls, v: str) -> str:
        parse_clock_time(v)
        return v.strip()

    def validate_production(self) -> None:
        """
        Validate settings for production environment

        Raises:
            ValueError: If production settings are invalid
        """
        if self.APP_ENV == "prod":
            if len(self.JWT_SECRET_KEY) < 32:
                raise ValueError(
                    "JWT_SECRET_KEY must be at least 32 characters in production environment"
                )

            if self.ALLOWED_ORIGINS == "*" or not self.ALLOWED_ORIGINS:
                raise ValueError(
                    "ALLOWED_ORIGINS must be explicitly set (not '*') in production environment"
                )

            if self.CRON_SECRET == DEFAULT_CRON_SECRET:
                raise ValueError("CRON_SECRET must be changed from its default in production environment")

    def get_allowed_origins_list(self) -> List[str]:
        """
        Get list of allowed CORS origins

        Returns:
            List of allowed origins (or ['*'] for local)
        """
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    def attendance_policy(self) -> AttendancePolicy:
        """Snapshot of the attendance rules, passed explicitly into the services."""
        return AttendancePolicy(
            timezone=self.BUSINESS_TIMEZONE,
            expected_check_in_time=parse_clock_time(self.EXPECTED_CHECK_IN_TIME),
            grace_minutes=self.GRACE_MINUTES,
            min_full_day_hours=self.MIN_FULL_DAY_HOURS,
            overtime_hours=self.OVERTIME_HOURS,
            sweep_cutoff_time=parse_clock_time(self.AUTO_CHECKOUT_TIME),
            require_late_reason=self.REQUIRE_LATE_REASON,
        )


# Create settings instance
settings = Settings()

# Validate production settings if in prod
if settings.APP_ENV == "prod":
    settings.validate_production()
