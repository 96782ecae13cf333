# backend/reservo/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .database import get_db
from .services import (
    configure_collaborators,
    get_availability_service,
    get_booking_admission_service,
    get_booking_lifecycle_service,
    get_booking_query_service,
    get_cache_service_dep,
    get_event_publisher,
    get_identity_provider,
    get_service_catalog_service,
    get_trust_score_service,
)

__all__ = [
    # Database
    "get_db",
    # Collaborators
    "configure_collaborators",
    "get_cache_service_dep",
    "get_event_publisher",
    "get_identity_provider",
    # Services
    "get_availability_service",
    "get_booking_admission_service",
    "get_booking_lifecycle_service",
    "get_booking_query_service",
    "get_service_catalog_service",
    "get_trust_score_service",
]
