"""
Central error handling for the attendance backend
"""
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}


class AttendanceError(HTTPException):
    """
    Base class for typed attendance errors.

    Subclasses fix the HTTP status and the error kind so services can raise them
    directly and the HTTP layer renders them like any other HTTPException.
    """
    status_code: int = status.HTTP_400_BAD_REQUEST
    kind: str = "Error"

    def __init__(self, detail: str, headers: Optional[dict] = None):
        super().__init__(status_code=type(self).status_code, detail=detail, headers=headers)


class UnauthorizedError(AttendanceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "Unauthorized"

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(AttendanceError):
    status_code = status.HTTP_403_FORBIDDEN
    kind = "Forbidden"


class NotFoundError(AttendanceError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "NotFound"


class ConflictError(AttendanceError):
    status_code = status.HTTP_409_CONFLICT
    kind = "Conflict"


class InvalidTimeError(AttendanceError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "InvalidTime"


class ValidationFailedError(AttendanceError):
    """Malformed filter or request value (bad page/limit, unknown enum literal, ...)."""
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "ValidationError"


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Handle HTTPException (including AttendanceError) with consistent JSON response format

    Args:
        request: FastAPI request object
        exc: HTTPException instance

    Returns:
        JSONResponse with error details
    """
    content = {
        "error": True,
        "status_code": exc.status_code,
        "detail": exc.detail,
        "path": str(request.url.path)
    }
    if isinstance(exc, AttendanceError):
        content["kind"] = exc.kind
    headers = dict(CORS_HEADERS)
    if exc.headers:
        headers.update(exc.headers)
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle RequestValidationError with consistent JSON response format

    Does not leak internal validation details in production.
    """
    from attendance_api.core.config import settings

    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "status_code": 422,
                "detail": "Validation error: Invalid request data",
                "path": str(request.url.path)
            }
        )

    # Sanitize for JSON: e.g. ctx.error ValueError -> str
    errors = []
    for e in exc.errors():
        err = dict(e)
        if "ctx" in err and isinstance(err["ctx"], dict):
            err["ctx"] = {
                k: (str(v) if not isinstance(v, (str, int, float, bool, type(None))) else v)
                for k, v in err["ctx"].items()
            }
        errors.append(err)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": True,
            "status_code": 422,
            "detail": "Validation error",
            "errors": errors,
            "path": str(request.url.path)
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions with consistent JSON response format

    Does not leak internal error details in production.
    """
    from attendance_api.core.config import settings
    import logging
    import traceback

    logger = logging.getLogger(__name__)
    logger.error("Unhandled exception: %s", exc, exc_info=True)

    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "status_code": 500,
                "detail": "Internal server error",
                "path": str(request.url.path)
            },
            headers=CORS_HEADERS,
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": True,
            "status_code": 500,
            "detail": str(exc),
            "path": str(request.url.path),
            "traceback": traceback.format_exc() if settings.APP_ENV == "local" else None
        },
        headers=CORS_HEADERS,
    )
