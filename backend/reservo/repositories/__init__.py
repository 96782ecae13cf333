# backend/reservo/repositories/__init__.py
"""
Repository Pattern Implementation for the Reservo booking engine.

This package provides the repository layer for data access,
separating business logic from database queries.

Key Components:
- BaseRepository: Foundation for all repositories with generic CRUD operations
- RepositoryFactory: Factory for creating repository instances
- ConflictCheckerRepository: Active-booking window queries
- BookingRepository: Customer booking history and lifecycle lookups
- ServiceRepository: Service policy loading and row locking
- CustomerProfileRepository: Persisted trust scores

Usage:
    from reservo.repositories import RepositoryFactory

    repository = RepositoryFactory.create_conflict_checker_repository(db)
    bookings = repository.find_active_bookings_for_resource_in_window(resource_id, start, end)
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .conflict_checker_repository import ConflictCheckerRepository
from .customer_profile_repository import CustomerProfileRepository
from .factory import RepositoryFactory
from .service_repository import ServiceRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "ConflictCheckerRepository",
    "CustomerProfileRepository",
    "RepositoryFactory",
    "ServiceRepository",
]
