# backend/reservo/services/trust_score_service.py
"""
Trust Score Service for the Reservo booking engine.

Derives a customer's 0-100 reliability score from their full booking
history (see trust_score_math), caches it per customer, and persists the
latest value on the customer profile after lifecycle changes.
"""

from datetime import datetime
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from ..repositories.customer_profile_repository import CustomerProfileRepository
from ..schemas.booking import TrustScoreBreakdown, TrustScoreFactorsResponse
from .base import BaseService
from .cache_service import CacheKeyBuilder, CacheService
from .trust_score_config import DEFAULT_TRUST_SCORE_CONFIG, TrustScoreConfig
from .trust_score_math import (
    BookingDecision,
    TrustScoreFactors,
    breakdown_from_factors,
    can_make_booking,
    compute_factors,
)

logger = logging.getLogger(__name__)


class TrustScoreService(BaseService):
    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        booking_repository: Optional[BookingRepository] = None,
        profile_repository: Optional[CustomerProfileRepository] = None,
        config: TrustScoreConfig = DEFAULT_TRUST_SCORE_CONFIG,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(db, cache)
        self.logger = logging.getLogger(__name__)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.profile_repository = (
            profile_repository or RepositoryFactory.create_customer_profile_repository(db)
        )
        self.config = config
        self._clock = clock or datetime.now

    @staticmethod
    def cache_key(customer_id: str) -> str:
        return CacheKeyBuilder.build("trust_score", customer_id)

    def get_trust_score_factors(
        self, customer_id: str, now: Optional[datetime] = None
    ) -> TrustScoreFactors:
        history = self.booking_repository.get_customer_history(customer_id)
        return compute_factors(history, now or self._clock(), self.config)

    def calculate_trust_score(self, customer_id: str, now: Optional[datetime] = None) -> int:
        """Compute from history, bypassing the cache."""
        factors = self.get_trust_score_factors(customer_id, now)
        return breakdown_from_factors(factors, self.config).score

    @BaseService.measure_operation("get_trust_score")
    def get_trust_score(self, customer_id: str, now: Optional[datetime] = None) -> int:
        """
        Current score, served from cache when fresh.

        An explicit ``now`` always recomputes so historical evaluations are
        never answered from a cache filled at a different time.
        """
        if now is None and self.cache is not None:
            cached = self.cache.get(self.cache_key(customer_id))
            if isinstance(cached, int):
                return cached

        score = self.calculate_trust_score(customer_id, now)
        if now is None:
            self._store_in_cache(customer_id, score)
        return score

    def can_make_booking(self, score: int) -> BookingDecision:
        return can_make_booking(score, self.config)

    @BaseService.measure_operation("get_trust_score_breakdown")
    def get_trust_score_breakdown(
        self, customer_id: str, now: Optional[datetime] = None
    ) -> TrustScoreBreakdown:
        """Score, level, factor counts and one explanatory line per adjustment."""
        factors = self.get_trust_score_factors(customer_id, now)
        breakdown = breakdown_from_factors(factors, self.config)
        decision = self.can_make_booking(breakdown.score)
        return TrustScoreBreakdown(
            customer_id=customer_id,
            score=breakdown.score,
            level=breakdown.level,  # type: ignore[arg-type]
            factors=TrustScoreFactorsResponse(**factors.to_dict()),
            positive_points=breakdown.positive,
            negative_points=breakdown.negative,
            details=list(breakdown.details),
            can_book=decision.allowed,
            reason=decision.reason,
        )

    @BaseService.measure_operation("update_trust_score")
    def update_trust_score(self, customer_id: str, now: Optional[datetime] = None) -> int:
        """
        Recompute, persist on the customer profile and drop the cached value.

        Flushes but does not commit; runs inside the caller's transaction, so
        the cache is cleared rather than filled with a possibly uncommitted score.
        """
        computed_at = now or self._clock()
        score = self.calculate_trust_score(customer_id, computed_at)
        self.profile_repository.upsert_trust_score(customer_id, score, computed_at)
        self.invalidate(customer_id)
        self.log_operation("update_trust_score", customer_id=customer_id, trust_score=score)
        return score

    def invalidate(self, customer_id: str) -> None:
        self.invalidate_cache(self.cache_key(customer_id))

    def _store_in_cache(self, customer_id: str, score: int) -> None:
        ttl = settings.trust_score_cache_ttl_seconds
        if self.cache is None or ttl <= 0:
            return
        self.cache.set(self.cache_key(customer_id), score, ttl=ttl)
