# backend/reservo/core/exceptions.py
"""
Domain-specific exceptions for the Reservo booking engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Inside the admission engine they are raised by individual gates and
converted into typed rejections at the engine boundary.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    # Rejection category reported by the admission engine; None means the
    # error is not a rejection and propagates to the caller
    rejection_kind: Optional[str] = None

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

    def _detail(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        """Default conversion to HTTPException (override in subclasses)."""
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=self._detail(),
        )


class ValidationException(DomainException):
    """Raised when request validation fails (bad duration, unbookable time, ...)."""

    rejection_kind = "validation"

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=self._detail())


class NotFoundException(DomainException):
    """Raised when a requested service, business, resource or customer is absent."""

    rejection_kind = "not_found"

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=self._detail())


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    rejection_kind = "conflict"

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=self._detail())


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    rejection_kind = "admission"

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=self._detail())


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class AdmissionRejectedException(BusinessRuleException):
    """
    Raised when a customer-level admission gate fails.

    Trust, daily/weekly limit, cooldown and multiple-active-booking gates all
    use this type; ``code`` names the gate.
    """


class BookingConflictException(ConflictException):
    """Raised when a slot or resource is no longer available at commit time."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: str = "BOOKING_CONFLICT",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot is no longer available",
            code=code,
            details=details or {},
        )


class InvalidStatusTransitionException(BusinessRuleException):
    """Raised when a booking is moved out of a terminal state."""

    def __init__(self, booking_id: str, current: str, target: str):
        super().__init__(
            message=f"Cannot change booking from {current} to {target}",
            code="INVALID_STATUS_TRANSITION",
            details={"booking_id": booking_id, "current_status": current, "target_status": target},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


def is_db_pool_exhaustion(exc: Exception) -> bool:
    """Check if an exception indicates DB connection pool exhaustion."""
    error_str = str(exc).lower()
    return "queuepool" in error_str or (
        "timeout" in error_str and ("connection" in error_str or "pool" in error_str)
    )


def raise_503_if_pool_exhaustion(exc: Exception) -> None:
    """
    Convert DB pool exhaustion errors to HTTP 503 (Service Unavailable).

    Raises:
        HTTPException: 503 if pool exhaustion detected
        Does not raise if not pool exhaustion (caller should re-raise original)
    """
    if is_db_pool_exhaustion(exc):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily overloaded. Please retry.",
            headers={"Retry-After": "2"},
        )
