# backend/reservo/repositories/factory.py
"""
Repository Factory for the Reservo booking engine.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from ..models.business import Business
    from .booking_repository import BookingRepository
    from .conflict_checker_repository import ConflictCheckerRepository
    from .customer_profile_repository import CustomerProfileRepository
    from .service_repository import ServiceRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_conflict_checker_repository(db: Session) -> "ConflictCheckerRepository":
        """Create repository for conflict checking queries."""
        from .conflict_checker_repository import ConflictCheckerRepository

        return ConflictCheckerRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking history and lifecycle operations."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_service_repository(db: Session) -> "ServiceRepository":
        """Create repository for service policy lookups and locking."""
        from .service_repository import ServiceRepository

        return ServiceRepository(db)

    @staticmethod
    def create_customer_profile_repository(db: Session) -> "CustomerProfileRepository":
        """Create repository for persisted trust scores."""
        from .customer_profile_repository import CustomerProfileRepository

        return CustomerProfileRepository(db)

    @staticmethod
    def create_business_repository(db: Session) -> BaseRepository["Business"]:
        """Generic repository for business lookups."""
        from ..models.business import Business

        return BaseRepository(db, Business)
