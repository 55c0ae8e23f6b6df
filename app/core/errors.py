"""
Custom exception hierarchy for the journal API.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages. All error bodies use
the `{success: false, error, code, details?}` envelope.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class AppException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(AppException):
    """Domain-level validation failure (input passed schema checks)."""
    http_status = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class NotFoundError(AppException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(AppException):
    http_status = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class InvalidStateError(AppException):
    """Operation is not legal for the journal's current lifecycle status."""
    http_status = status.HTTP_400_BAD_REQUEST
    code = "INVALID_STATE"

    def __init__(self, message: str, current_status: str | None = None):
        super().__init__(
            message=message,
            details={"status": current_status} if current_status else {},
        )


class UpstreamCallError(AppException):
    """The model provider call failed or timed out."""
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_CALL_ERROR"


class UpstreamParseError(AppException):
    """The model answered, but not with the JSON we asked for."""
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_PARSE_ERROR"

    def __init__(self, message: str, snippet: str | None = None):
        super().__init__(
            message=message,
            details={"snippet": snippet[:200]} if snippet else {},
        )


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"

    def __init__(self, user_id: int):
        super().__init__(
            message=f"User {user_id} not found.",
            details={"user_id": user_id},
        )


class JournalNotFoundError(NotFoundError):
    code = "JOURNAL_NOT_FOUND"

    def __init__(self, day: date):
        super().__init__(
            message=f"Journal for {day} not found.",
            details={"date": str(day)},
        )


class JournalAlreadyExistsError(ConflictError):
    code = "JOURNAL_ALREADY_EXISTS"

    def __init__(self, day: date):
        super().__init__(
            message=f"Journal for {day} already exists.",
            details={"date": str(day)},
        )


class SummaryNotFoundError(NotFoundError):
    code = "SUMMARY_NOT_FOUND"

    def __init__(self, summary_id: int):
        super().__init__(
            message=f"Journal summary {summary_id} not found.",
            details={"id": summary_id},
        )


class SummaryAlreadyExistsError(ConflictError):
    code = "SUMMARY_ALREADY_EXISTS"

    def __init__(self, period: str, start: date, end: date):
        super().__init__(
            message=f"Journal summary for this {period} ({start} to {end}) already exists.",
            details={"period": period, "start_date": str(start), "end_date": str(end)},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    else:
        logger.warning("%s %s rejected: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Request validation failed.",
            "code": "VALIDATION_ERROR",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "An unexpected error occurred.",
            "code": "INTERNAL_ERROR",
        },
    )
