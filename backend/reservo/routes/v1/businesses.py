# backend/reservo/routes/v1/businesses.py
"""
Business routes - API v1

Endpoints:
    GET /{business_id}/bookings?date= - The business's bookings for one day
"""

import asyncio
from datetime import date
import logging
from typing import List, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ...api.dependencies import get_booking_query_service
from ...core.exceptions import DomainException
from ...schemas.booking import BookingResponse
from ...services.booking_query_service import BookingQueryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["businesses-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get(
    "/{business_id}/bookings",
    response_model=List[BookingResponse],
    responses={404: {"description": "Business not found"}},
)
async def get_business_bookings(
    business_id: str = Path(..., description="Business ULID"),
    target_date: date = Query(..., alias="date", description="Local date, YYYY-MM-DD"),
    query_service: BookingQueryService = Depends(get_booking_query_service),
) -> List[BookingResponse]:
    """All bookings starting that day, in start order, cancelled ones included."""
    try:
        bookings = await asyncio.to_thread(query_service.get_business_bookings, business_id, target_date)
    except DomainException as e:
        handle_domain_exception(e)
    return [BookingResponse.model_validate(booking) for booking in bookings]
