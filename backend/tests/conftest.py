"""
Shared fixtures for the Reservo test suite.

Each test gets its own in-memory SQLite database so services are free to
commit and roll back exactly as they do in production.
"""

from datetime import datetime, timedelta
import os
from typing import Any, Callable, Optional

# Configure before reservo.core.config builds its settings singleton
os.environ.setdefault("RESERVO_ENVIRONMENT", "test")
os.environ.setdefault("RESERVO_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ["RESERVO_REDIS_URL"] = ""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from reservo.database import Base
from reservo.events import EventPublisher, InMemoryNotificationSink

# Import models so Base.metadata is populated for create_all.
import reservo.models  # noqa: F401
from reservo.models import Booking, BookingStatus, Business, Resource, Service
from reservo.services.booking_admission_service import BookingAdmissionService
from reservo.services.booking_lifecycle_service import BookingLifecycleService
from reservo.services.cache_service import CacheService
from reservo.services.identity import CustomerIdentity, StaticIdentityProvider
from reservo.services.trust_score_service import TrustScoreService

from tests._utils.scenario import (
    CUSTOMER_ID,
    INACTIVE_CUSTOMER_ID,
    NOW,
    OTHER_CUSTOMER_ID,
    UNVERIFIED_CUSTOMER_ID,
)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine) -> Session:
    """Session configured like SessionLocal, bound to the per-test engine."""
    TestingSessionLocal = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def cache() -> CacheService:
    cache = CacheService()
    assert cache.backend == "memory"
    return cache


@pytest.fixture
def sink() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def publisher(sink) -> EventPublisher:
    return EventPublisher(sink)


@pytest.fixture
def identity_provider() -> StaticIdentityProvider:
    return StaticIdentityProvider(
        [
            CustomerIdentity(CUSTOMER_ID, email_verified=True),
            CustomerIdentity(OTHER_CUSTOMER_ID, email_verified=True),
            CustomerIdentity(UNVERIFIED_CUSTOMER_ID, email_verified=False),
            CustomerIdentity(INACTIVE_CUSTOMER_ID, email_verified=True, is_active=False),
        ]
    )


@pytest.fixture
def make_business(db) -> Callable[..., Business]:
    def _make(**overrides: Any) -> Business:
        data = {"name": "Corner Studio", "working_hours": None, "auto_accept_bookings": True}
        data.update(overrides)
        business = Business(**data)
        db.add(business)
        db.commit()
        return business

    return _make


@pytest.fixture
def business(make_business) -> Business:
    return make_business()


@pytest.fixture
def make_service(db, business) -> Callable[..., Service]:
    def _make(owner: Optional[Business] = None, **overrides: Any) -> Service:
        data = {
            "business_id": (owner or business).id,
            "name": "Haircut",
            "duration_minutes": 60,
            "max_bookings_per_slot": 1,
            "advance_booking_days": 30,
            "cancellation_hours": 24,
            "max_bookings_per_customer_per_day": 1,
            "max_bookings_per_customer_per_week": None,
            "booking_cooldown_hours": 0,
            "allow_multiple_active_bookings": True,
            "resource_type": None,
            "allow_any_resource": True,
            "require_resource_selection": False,
            "is_active": True,
        }
        data.update(overrides)
        service = Service(**data)
        db.add(service)
        db.commit()
        return service

    return _make


@pytest.fixture
def service(make_service) -> Service:
    return make_service()


@pytest.fixture
def make_resource(db) -> Callable[..., Resource]:
    def _make(service: Service, name: str, **overrides: Any) -> Resource:
        data = {
            "business_id": service.business_id,
            "name": name,
            "type": service.resource_type or "staff",
            "is_active": True,
            "sort_order": len(service.resources),
        }
        data.update(overrides)
        resource = Resource(**data)
        db.add(resource)
        service.resources.append(resource)
        db.commit()
        return resource

    return _make


@pytest.fixture
def make_booking(db) -> Callable[..., Booking]:
    def _make(
        service: Service,
        start: datetime,
        status: str = BookingStatus.CONFIRMED.value,
        customer_id: str = CUSTOMER_ID,
        **overrides: Any,
    ) -> Booking:
        data = {
            "customer_id": customer_id,
            "business_id": service.business_id,
            "service_id": service.id,
            "appointment_date": start,
            "appointment_end_date": start + timedelta(minutes=service.duration_minutes),
            "status": status,
            "created_at": start - timedelta(days=3),
        }
        data.update(overrides)
        booking = Booking(**data)
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def trust_score_service(db, cache, clock) -> TrustScoreService:
    return TrustScoreService(db, cache=cache, clock=clock)


@pytest.fixture
def admission_service(
    db, identity_provider, cache, publisher, trust_score_service, clock
) -> BookingAdmissionService:
    return BookingAdmissionService(
        db,
        identity_provider=identity_provider,
        cache=cache,
        event_publisher=publisher,
        trust_score_service=trust_score_service,
        clock=clock,
    )


@pytest.fixture
def lifecycle_service(db, cache, publisher, trust_score_service, clock) -> BookingLifecycleService:
    return BookingLifecycleService(
        db,
        cache=cache,
        event_publisher=publisher,
        trust_score_service=trust_score_service,
        clock=clock,
    )
