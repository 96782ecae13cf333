# backend/reservo/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Factory functions that create service instances per request with their
collaborators injected. The cache, identity provider and notification sink
are process-wide; deployments plug in their own identity provider and sink
with ``configure_collaborators`` or FastAPI dependency overrides.
"""

from functools import lru_cache
import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from ...events import EventPublisher, LoggingNotificationSink, NotificationSink
from ...services.availability_service import AvailabilityService
from ...services.booking_admission_service import BookingAdmissionService
from ...services.booking_lifecycle_service import BookingLifecycleService
from ...services.booking_query_service import BookingQueryService
from ...services.cache_service import CacheService
from ...services.identity import IdentityProvider, StaticIdentityProvider
from ...services.service_catalog_service import ServiceCatalogService
from ...services.trust_score_service import TrustScoreService
from .database import get_db

logger = logging.getLogger(__name__)

_identity_provider: IdentityProvider = StaticIdentityProvider()
_notification_sink: NotificationSink = LoggingNotificationSink()


def configure_collaborators(
    identity_provider: Optional[IdentityProvider] = None,
    notification_sink: Optional[NotificationSink] = None,
) -> None:
    """Install the external identity provider and notification sink."""
    global _identity_provider, _notification_sink
    if identity_provider is not None:
        _identity_provider = identity_provider
    if notification_sink is not None:
        _notification_sink = notification_sink
    logger.info(
        "Configured collaborators: identity=%s notifications=%s",
        type(_identity_provider).__name__,
        type(_notification_sink).__name__,
    )


@lru_cache(maxsize=1)
def get_cache_service_singleton() -> CacheService:
    """Get singleton cache service instance."""
    return CacheService()


def get_cache_service_dep() -> CacheService:
    """Get cache service instance for dependency injection."""
    return get_cache_service_singleton()


def get_identity_provider() -> IdentityProvider:
    return _identity_provider


def get_event_publisher() -> EventPublisher:
    return EventPublisher(_notification_sink)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_trust_score_service(
    db: Session = Depends(get_db), cache: CacheService = Depends(get_cache_service_dep)
) -> TrustScoreService:
    return TrustScoreService(db, cache=cache)


def get_booking_admission_service(
    db: Session = Depends(get_db),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
    cache: CacheService = Depends(get_cache_service_dep),
    event_publisher: EventPublisher = Depends(get_event_publisher),
) -> BookingAdmissionService:
    """
    Get booking admission service instance with all dependencies.

    Args:
        db: Database session
        identity_provider: Identity collaborator
        cache: Cache shared with the trust score service
        event_publisher: Notification publisher

    Returns:
        BookingAdmissionService instance
    """
    return BookingAdmissionService(
        db, identity_provider=identity_provider, cache=cache, event_publisher=event_publisher
    )


def get_booking_lifecycle_service(
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache_service_dep),
    event_publisher: EventPublisher = Depends(get_event_publisher),
) -> BookingLifecycleService:
    return BookingLifecycleService(db, cache=cache, event_publisher=event_publisher)


def get_service_catalog_service(db: Session = Depends(get_db)) -> ServiceCatalogService:
    return ServiceCatalogService(db)


def get_booking_query_service(db: Session = Depends(get_db)) -> BookingQueryService:
    return BookingQueryService(db)
