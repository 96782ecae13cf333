# backend/reservo/routes/v1/customers.py
"""
Customer routes - API v1

Endpoints:
    GET /{customer_id}/trust-score - Trust score with its explanation
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Path, status

from ...api.dependencies import get_trust_score_service
from ...core.exceptions import DomainException
from ...schemas.booking import TrustScoreBreakdown
from ...services.trust_score_service import TrustScoreService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["customers-v1"])


@router.get("/{customer_id}/trust-score", response_model=TrustScoreBreakdown)
async def get_customer_trust_score(
    customer_id: str = Path(..., min_length=1, max_length=26),
    trust_score_service: TrustScoreService = Depends(get_trust_score_service),
) -> TrustScoreBreakdown:
    """Score, level, factor counts and one line per adjustment."""
    try:
        return await asyncio.to_thread(trust_score_service.get_trust_score_breakdown, customer_id)
    except DomainException as e:
        if hasattr(e, "to_http_exception"):
            raise e.to_http_exception()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
