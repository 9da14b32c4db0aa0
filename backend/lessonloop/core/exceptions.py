# backend/lessonloop/core/exceptions.py
"""
Domain-specific exceptions for the LessonLoop service.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)

GENERIC_FAILURE_MESSAGE = "An error occurred processing your request"
VERSION_CONFLICT_MESSAGE = (
    "This lesson was modified by someone else. Please refresh and try again."
)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input is malformed or fails business validation."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when an infrastructure-level operation fails.

    The message is logged but never shown to API callers.
    """

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": GENERIC_FAILURE_MESSAGE,
                "code": self.code,
                "details": {},
            },
        )


# Specific business exceptions


class BookingConflictException(ConflictException):
    """Raised when a candidate booking fails the availability/conflict checks.

    ``code`` is one of the booking reason codes (NOT_AVAILABLE, BLOCKED,
    CONFLICT, OUT_OF_WINDOW).
    """

    def __init__(
        self,
        reason: str,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code=reason,
            details=details or {},
        )
        self.reason = reason


class VersionConflictException(ConflictException):
    """Raised when an optimistic-locked write used a stale version."""

    def __init__(
        self,
        current_version: int,
        attempted_version: int,
        message: Optional[str] = None,
    ):
        super().__init__(
            message=message or VERSION_CONFLICT_MESSAGE,
            code="VERSION_CONFLICT",
            details={
                "current_version": current_version,
                "attempted_version": attempted_version,
            },
        )
        self.current_version = current_version
        self.attempted_version = attempted_version


class InvalidStatusTransitionException(BusinessRuleException):
    """Raised when a status change is not allowed by the state machine."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            message=f"Cannot change {entity} status from {current} to {target}",
            code="INVALID_STATUS_TRANSITION",
            details={"entity": entity, "current_status": current, "target_status": target},
        )


class PartialBatchException(DomainException):
    """One unit of a multi-unit job failed.

    Never propagated out of a batch run: the job catches the unit's error,
    wraps it here and stores ``str(exc)`` in the run's ``errors`` list.
    """

    def __init__(self, job_name: str, unit: str, cause: Exception):
        super().__init__(
            message=f"{job_name}: {unit} failed: {cause}",
            code="PARTIAL_BATCH_FAILURE",
            details={"job": job_name, "unit": unit, "error_type": type(cause).__name__},
        )
        self.unit = unit
        self.cause = cause


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


class IntegrityViolationException(RepositoryException):
    """A write hit a database constraint; ``error`` is the underlying IntegrityError."""

    def __init__(self, message: str, error: Exception):
        super().__init__(message)
        self.error = error
