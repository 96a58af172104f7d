"""
Attendance backend - Main Application Entry Point
"""
import logging
from urllib.parse import urlparse, urlunparse

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from attendance_api.api.router import api_router
from attendance_api.core.config import settings
from attendance_api.core.errors import (
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from attendance_api.core.logging import setup_logging

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)


def _mask_database_url(url: str) -> str:
    """Mask password in DATABASE_URL for safe logging; show full path for sqlite."""
    try:
        parsed = urlparse(url)
        if parsed.scheme.startswith("sqlite"):
            return url  # Safe to log path
        if parsed.password:
            netloc = f"{parsed.username}:****@{parsed.hostname or ''}"
            if parsed.port:
                netloc += f":{parsed.port}"
            return urlunparse(parsed._replace(netloc=netloc))
    except ValueError:
        return "***"
    return url


# Create FastAPI app
app = FastAPI(
    title="Attendance API",
    description="Check-in/check-out sessions, auto-checkout sweep, attendance history and export",
    version=settings.VERSION or "1.0.0"
)

# Configure CORS - must be before other middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=settings.ALLOWED_ORIGINS != "*",
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

# Register exception handlers
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include all API routes under /api/v1
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
def startup_log_config() -> None:
    """Log DATABASE_URL at startup so it can be verified against Alembic."""
    masked = _mask_database_url(settings.DATABASE_URL)
    logger.info("DATABASE_URL (app): %s", masked)
    logger.info(
        "Attendance policy: timezone=%s expected_check_in=%s grace=%s auto_checkout=%s",
        settings.BUSINESS_TIMEZONE, settings.EXPECTED_CHECK_IN_TIME,
        settings.GRACE_MINUTES, settings.AUTO_CHECKOUT_TIME,
    )


# Missing tables get a clear message instead of a bare 500
def _is_no_such_table(err: BaseException) -> bool:
    msg = str(err).lower()
    return "no such table" in msg or "does not exist" in msg


async def _handle_operational_error(request: Request, exc: OperationalError):
    if _is_no_such_table(exc):
        logger.error("Database schema missing: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Run alembic upgrade head"},
        )
    return await generic_exception_handler(request, exc)


app.add_exception_handler(OperationalError, _handle_operational_error)
