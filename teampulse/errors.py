"""Exception taxonomy and the JSON error envelope used by the API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("teampulse.errors")


class TeamPulseError(Exception):
    """Base class for failures that are reported to API callers."""

    status_code = 500
    default_message = "Something went wrong!"

    def __init__(self, message: Optional[str] = None, *, error: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.error = error
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return error_body(self.message, self.error)


class ValidationFailure(TeamPulseError, ValueError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationFailure(TeamPulseError):
    status_code = 401
    default_message = "Authentication required"


class AuthorizationFailure(TeamPulseError):
    status_code = 403
    default_message = "Access denied"


class NotFound(TeamPulseError, LookupError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(TeamPulseError, ValueError):
    status_code = 409
    default_message = "Resource already exists"


class UnexpectedFailure(TeamPulseError):
    """Storage or internal failure; the message never carries internals."""

    status_code = 500
    default_message = "Server error"


def error_body(message: str, error: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"message": message}
    if error:
        body["error"] = error
    return body


def register_exception_handlers(app: Any) -> None:
    """Render every failure raised by a route as ``{"message", "error"?}``."""

    from fastapi import Request, status
    from fastapi.exceptions import RequestValidationError
    from fastapi.responses import JSONResponse
    from starlette.exceptions import HTTPException as StarletteHTTPException

    @app.exception_handler(TeamPulseError)
    async def handle_team_pulse_error(_: Request, exc: TeamPulseError) -> JSONResponse:
        headers = None
        if isinstance(exc, AuthenticationFailure):
            headers = {"WWW-Authenticate": "Bearer"}
        if exc.status_code >= 500:
            logger.error("Request failed: %s", exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        detail: Optional[str] = None
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            detail = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body("Validation failed", detail),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
            message = "Route not found"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(_: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while processing request", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body("Something went wrong!"),
        )


__all__ = [
    "AuthenticationFailure",
    "AuthorizationFailure",
    "Conflict",
    "NotFound",
    "TeamPulseError",
    "UnexpectedFailure",
    "ValidationFailure",
    "error_body",
    "register_exception_handlers",
]
