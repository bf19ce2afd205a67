"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


PROBLEM_BASE_URI = "https://travelcore.dev/problems"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    Every subclass carries a stable ``code`` naming the error kind so that
    clients can branch on it without parsing human-readable text.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        code: str,
        detail: Optional[str] = None,
        retryable: bool = False,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            code: Machine-readable error kind
            detail: Human-readable explanation specific to this occurrence
            retryable: Whether repeating the same call may succeed
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.code = code
        self.detail = detail
        self.type_uri = f"{PROBLEM_BASE_URI}/{code.lower().replace('_', '-')}"
        self.instance = instance
        self.extensions = extensions or {}

        # Create the problem details object
        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
            "code": code,
            "retryable": retryable,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        # Add extensions
        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        violations: Optional[List[Dict[str, str]]] = None,
    ):
        extensions = {}
        if violations:
            extensions["violations"] = violations

        super().__init__(
            status_code=422,
            title="Validation Error",
            code="VALIDATION_ERROR",
            detail=detail,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Missing or invalid identity."""

    def __init__(self, detail: str = "Authentication credentials are required"):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            code="UNAUTHORIZED",
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(ProblemDetailsException):
    """Identity present but not allowed to perform the operation."""

    def __init__(
        self,
        detail: str = "Insufficient permissions to access this resource",
        required_role: Optional[str] = None,
    ):
        extensions = {}
        if required_role:
            extensions["required_role"] = required_role

        super().__init__(
            status_code=403,
            title="Access Forbidden",
            code="FORBIDDEN",
            detail=detail,
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            code="NOT_FOUND",
            detail=detail,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            code="CONFLICT",
            detail=detail,
            extensions=extensions,
        )


# Booking and capacity errors

class NotBookableError(ProblemDetailsException):
    """The parent tour is not open for booking."""

    def __init__(self, tour_id: str, tour_status: str):
        super().__init__(
            status_code=409,
            title="Tour Not Bookable",
            code="NOT_BOOKABLE",
            detail="This tour is not available for booking",
            extensions={"tour_id": tour_id, "tour_status": tour_status},
        )


class DepartureClosedError(ProblemDetailsException):
    """Reservation attempted against a departure that has already started."""

    def __init__(self, departure_id: str, starts_at: datetime):
        super().__init__(
            status_code=409,
            title="Departure Closed",
            code="DEPARTURE_CLOSED",
            detail="Cannot book a departure that has already started",
            extensions={
                "departure_id": departure_id,
                "starts_at": starts_at.isoformat() + "Z",
            },
        )


class DepartureStartedError(ProblemDetailsException):
    """Cancellation attempted after the departure began."""

    def __init__(self, departure_id: str, starts_at: datetime):
        super().__init__(
            status_code=409,
            title="Cancellation Window Closed",
            code="DEPARTURE_STARTED",
            detail=(
                "The cancellation window has closed: the departure started at "
                f"{starts_at.isoformat()}Z"
            ),
            extensions={
                "departure_id": departure_id,
                "starts_at": starts_at.isoformat() + "Z",
            },
        )


class CapacityExceededError(ProblemDetailsException):
    """Not enough remaining seats for the requested traveller count."""

    def __init__(
        self,
        departure_id: str,
        requested_seats: int,
        remaining_seats: int,
        capacity_total: int,
    ):
        self.remaining_seats = remaining_seats
        self.requested_seats = requested_seats
        super().__init__(
            status_code=409,
            title="Capacity Exceeded",
            code="CAPACITY_EXCEEDED",
            detail=f"Only {remaining_seats} spots available",
            extensions={
                "departure_id": departure_id,
                "requested_seats": requested_seats,
                "remaining_seats": remaining_seats,
                "capacity_total": capacity_total,
            },
        )


class AlreadyCancelledError(ProblemDetailsException):
    """The booking is already cancelled."""

    def __init__(self, booking_id: str):
        super().__init__(
            status_code=409,
            title="Booking Already Cancelled",
            code="ALREADY_CANCELLED",
            detail="Booking is already cancelled",
            extensions={"booking_id": booking_id},
        )


class FanOutFailedError(ProblemDetailsException):
    """Notification persistence for a fan-out could not complete."""

    def __init__(self, recipient_count: int, notification_type: str):
        super().__init__(
            status_code=503,
            title="Notification Fan-out Failed",
            code="FAN_OUT_FAILED",
            detail="Notifications could not be stored; no recipient was notified",
            retryable=True,
            extensions={
                "recipient_count": recipient_count,
                "notification_type": notification_type,
            },
        )


class InternalServerError(ProblemDetailsException):
    """Exception for internal server errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred while processing the request",
        error_id: Optional[str] = None,
    ):
        if not error_id:
            error_id = str(uuid.uuid4())

        extensions = {
            "error_id": error_id,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

        super().__init__(
            status_code=500,
            title="Internal Server Error",
            code="INTERNAL_ERROR",
            detail=detail,
            extensions=extensions,
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    content = dict(exc.problem_details)
    content.setdefault("instance", request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI request validation failures as Problem Details."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "invalid value"),
        }
        for error in exc.errors()
    ]
    problem = ValidationError(violations=violations)
    return await problem_details_handler(request, problem)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    problem = InternalServerError()
    return await problem_details_handler(request, problem)
