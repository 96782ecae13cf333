# backend/reservo/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingAdmissionService and
BookingLifecycleService.

Endpoints:
    POST / - Attempt a booking (admission decision)
    GET /{booking_id} - Read one booking
    POST /{booking_id}/confirm - Confirm a pending booking
    POST /{booking_id}/cancel - Cancel a booking
    POST /{booking_id}/check-in - Check the customer in
    POST /{booking_id}/complete - Mark booking as completed
    POST /{booking_id}/no-show - Mark booking as no-show
"""

import asyncio
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Response, status

from ...api.dependencies import (
    get_booking_admission_service,
    get_booking_lifecycle_service,
    get_booking_query_service,
)
from ...core.exceptions import HTTP_422_UNPROCESSABLE, DomainException, raise_503_if_pool_exhaustion
from ...schemas.booking import (
    AdmissionResult,
    BookingAttemptRequest,
    BookingResponse,
    BookingStatusChange,
    BookingStatusChangeBody,
)
from ...services.booking_admission_service import BookingAdmissionService
from ...services.booking_lifecycle_service import BookingLifecycleService
from ...services.booking_query_service import BookingQueryService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])

# HTTP status reported for each rejection kind
REJECTION_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "admission": HTTP_422_UNPROCESSABLE,
}


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "",
    response_model=AdmissionResult,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid request (validation rejection)"},
        404: {"description": "Customer or service not found"},
        409: {"description": "Slot or resource no longer available"},
        422: {"description": "Admission policy rejected the booking"},
        503: {"description": "Database pool exhausted; retry shortly"},
    },
)
async def attempt_booking(
    response: Response,
    payload: BookingAttemptRequest = Body(...),
    admission_service: BookingAdmissionService = Depends(get_booking_admission_service),
) -> AdmissionResult:
    """
    Attempt a booking.

    The body is always an AdmissionResult; rejections carry their kind, code
    and reason, and the status code follows the kind.
    """
    try:
        result = await asyncio.to_thread(admission_service.attempt, payload)
    except DomainException as e:
        handle_domain_exception(e)
    except Exception as e:
        raise_503_if_pool_exhaustion(e)
        raise

    if result.rejection is not None:
        response.status_code = REJECTION_STATUS[result.rejection.kind]
    return result


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}},
)
async def get_booking(
    booking_id: str = Path(..., description="Booking ULID"),
    query_service: BookingQueryService = Depends(get_booking_query_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(query_service.get_booking, booking_id)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)


async def _apply_status_change(
    lifecycle_service: BookingLifecycleService,
    booking_id: str,
    action: str,
    body: Optional[BookingStatusChangeBody],
) -> BookingResponse:
    change = BookingStatusChange(
        action=action,  # type: ignore[arg-type]
        reason=body.reason if body else None,
        actor=body.actor if body else "customer",
    )
    try:
        booking = await asyncio.to_thread(lifecycle_service.apply, booking_id, change)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/confirm",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}, 422: {"description": "Invalid transition"}},
)
async def confirm_booking(
    booking_id: str = Path(..., description="Booking ULID"),
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    """Confirm a pending booking."""
    return await _apply_status_change(lifecycle_service, booking_id, "confirm", None)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    responses={
        404: {"description": "Booking not found"},
        422: {"description": "Invalid status transition"},
    },
)
async def cancel_booking(
    booking_id: str = Path(..., description="Booking ULID"),
    body: Optional[BookingStatusChangeBody] = Body(None),
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    """Cancel a booking."""
    return await _apply_status_change(lifecycle_service, booking_id, "cancel", body)


@router.post(
    "/{booking_id}/check-in",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}, 422: {"description": "Invalid transition"}},
)
async def check_in_booking(
    booking_id: str = Path(..., description="Booking ULID"),
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    """Check the customer in; the booking is completed."""
    return await _apply_status_change(lifecycle_service, booking_id, "check_in", None)


@router.post(
    "/{booking_id}/complete",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}, 422: {"description": "Invalid transition"}},
)
async def complete_booking(
    booking_id: str = Path(..., description="Booking ULID"),
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    return await _apply_status_change(lifecycle_service, booking_id, "complete", None)


@router.post(
    "/{booking_id}/no-show",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}, 422: {"description": "Invalid transition"}},
)
async def mark_booking_no_show(
    booking_id: str = Path(..., description="Booking ULID"),
    body: Optional[BookingStatusChangeBody] = Body(None),
    lifecycle_service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    return await _apply_status_change(lifecycle_service, booking_id, "no_show", body)
