# backend/reservo/routes/v1/services.py
"""
Service routes - API v1

Endpoints:
    GET /{service_id}/slots - Slot availability for one date
    PATCH /{service_id} - Update scheduling and admission policy
"""

import asyncio
from datetime import date
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status

from ...api.dependencies import get_availability_service, get_service_catalog_service
from ...core.exceptions import DomainException
from ...schemas.booking import SlotAvailability
from ...schemas.service import ServiceResponse, ServiceUpdate
from ...services.availability_service import AvailabilityService
from ...services.service_catalog_service import ServiceCatalogService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["services-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/{service_id}/slots", response_model=List[SlotAvailability])
async def get_service_slots(
    service_id: str = Path(..., description="Service ULID"),
    target_date: date = Query(..., alias="date", description="Local date, YYYY-MM-DD"),
    party_size: Optional[int] = Query(None, ge=1, le=100),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[SlotAvailability]:
    """
    List every slot of the day with its availability.

    Unknown or inactive services and closed days return an empty list.
    """
    try:
        return await asyncio.to_thread(
            availability_service.get_available_slots, service_id, target_date, party_size
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.patch(
    "/{service_id}",
    response_model=ServiceResponse,
    responses={404: {"description": "Service not found"}},
)
async def update_service(
    service_id: str = Path(..., description="Service ULID"),
    payload: ServiceUpdate = Body(...),
    catalog_service: ServiceCatalogService = Depends(get_service_catalog_service),
) -> ServiceResponse:
    """Apply the policy fields present in the body."""
    try:
        service = await asyncio.to_thread(catalog_service.update_service, service_id, payload)
    except DomainException as e:
        handle_domain_exception(e)
    return ServiceResponse.model_validate(service)
