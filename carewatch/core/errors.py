"""
Custom exception hierarchy for CareWatch.

Rule: every HTTP error has a machine-readable `code` string so the
dashboard can branch on it (retry prompt vs. partial-save banner) without
parsing English messages.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class CareWatchException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ReviewerRequiredError(CareWatchException):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "REVIEWER_REQUIRED"

    def __init__(self, reviewer_id: Optional[int] = None):
        super().__init__(
            message="A known reviewer id is required (X-Reviewer-Id header).",
            details={"reviewer_id": reviewer_id} if reviewer_id is not None else {},
        )


class CenterAccessError(CareWatchException):
    http_status = status.HTTP_403_FORBIDDEN
    code = "CENTER_ACCESS_DENIED"

    def __init__(self, reviewer_id: int):
        super().__init__(
            message=f"Reviewer {reviewer_id} is not linked to a center.",
            details={"reviewer_id": reviewer_id},
        )


class LogEventNotFoundError(CareWatchException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "LOG_EVENT_NOT_FOUND"

    def __init__(self, event_id: int):
        super().__init__(
            message=f"Log event {event_id} does not exist in this center.",
            details={"event_id": event_id},
        )


class InterventionTargetError(CareWatchException):
    http_status = 422
    code = "INTERVENTION_TARGET_MISMATCH"

    def __init__(self, event_id: int, patient_id: int, expected_patient_id: int):
        super().__init__(
            message=(
                f"Log event {event_id} belongs to patient {expected_patient_id}, "
                f"not {patient_id}."
            ),
            details={
                "event_id": event_id,
                "patient_id": patient_id,
                "expected_patient_id": expected_patient_id,
            },
        )


class WriteFailure(CareWatchException):
    """A store write failed and nothing was applied. Safe to retry."""
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "WRITE_FAILURE"

    def __init__(
        self,
        message: str,
        operation: str,
        cause: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.operation = operation
        self.cause = cause
        payload = {"operation": operation, "retryable": True}
        if cause is not None:
            payload["cause"] = type(cause).__name__
        payload.update(details or {})
        super().__init__(message=message, details=payload)


class MissingCenterError(WriteFailure):
    http_status = status.HTTP_409_CONFLICT
    code = "CENTER_REQUIRED"

    def __init__(self, event_id: int):
        super().__init__(
            message="An intervention record requires a center; the reviewer has none.",
            operation="insert_intervention",
            details={"event_id": event_id, "retryable": False},
        )


class PartialCascadeFailure(CareWatchException):
    """
    The intervention record was saved but marking its log event reviewed
    failed. Not retried automatically: the reviewer must confirm the
    review state by hand.
    """
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "PARTIAL_CASCADE_FAILURE"

    def __init__(self, event_id: int, intervention_id: int, cause: BaseException | None = None):
        self.event_id = event_id
        self.intervention_id = intervention_id
        self.cause = cause
        super().__init__(
            message=(
                f"Intervention {intervention_id} was saved, but log event {event_id} "
                "could not be marked reviewed."
            ),
            details={
                "event_id": event_id,
                "intervention_id": intervention_id,
                "intervention_saved": True,
                "reviewed": False,
            },
        )


class MalformedLogEventError(ValueError):
    """Raised by the classifier for event data it cannot evaluate."""

    def __init__(self, event_id: Any, reason: str):
        self.event_id = event_id
        self.reason = reason
        super().__init__(f"log event {event_id}: {reason}")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def carewatch_exception_handler(request: Request, exc: CareWatchException) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(
            "REQUEST_FAILED",
            extra={"code": exc.code, "path": request.url.path, "details": exc.details},
        )
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


def _field_path(loc: tuple) -> str:
    # "body.actions_taken.0.code" -> "actions_taken.0.code"
    return ".".join(str(part) for part in loc if part != "body")


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """422 VALIDATION_ERROR listing each offending field."""
    errors = [
        {"field": _field_path(e["loc"]), "message": e["msg"], "type": e["type"]}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("UNHANDLED_EXCEPTION", extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
