# backend/reservo/repositories/customer_profile_repository.py
"""Persistence for the stored trust score."""

from datetime import datetime
import logging
from typing import Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.customer_profile import CustomerProfile
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CustomerProfileRepository(BaseRepository[CustomerProfile]):
    def __init__(self, db: Session):
        super().__init__(db, CustomerProfile)
        self.logger = logging.getLogger(__name__)

    def get_by_customer_id(self, customer_id: str) -> Optional[CustomerProfile]:
        try:
            return cast(Optional[CustomerProfile], self.db.get(CustomerProfile, customer_id))
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting customer profile: {str(e)}")
            raise RepositoryException(f"Failed to get customer profile: {str(e)}")

    def upsert_trust_score(self, customer_id: str, score: int, computed_at: datetime) -> CustomerProfile:
        """Store a freshly computed score, creating the profile on first use."""
        profile = self.get_by_customer_id(customer_id)
        if profile is None:
            return self.create(
                customer_id=customer_id, trust_score=score, trust_score_updated_at=computed_at
            )
        profile.trust_score = score
        profile.trust_score_updated_at = computed_at
        self.flush()
        return profile
