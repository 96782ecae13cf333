# backend/reservo/services/booking_admission_service.py
"""
Booking Admission Service for the Reservo booking engine.

The single decision point for a booking attempt. Each call is evaluated
fresh against persisted history; nothing is remembered between calls.

Gate order:
    1. identity: customer exists, account active, email verified
    2. trust score: blocked below the trust threshold
    3. service lookup (a missing or inactive service is not found) and
       request time validation: future, inside the advance window, on a slot
    4. daily cap for this service
    5. weekly cap for this service (rolling 7 days), when configured
    6. cooldown between bookings of this service, in either direction
    7. single active booking, when the service forbids multiples
    8. slot availability and commit

Gates 4 to 8 run in one transaction after the service row lock and the
per-customer lock are taken, and run again on every commit retry.

The service is loaded before the customer gates because the caps, cooldown
and multiple-booking policy all live on the service.

Every gate raises a DomainException subclass; ``attempt_booking`` converts
those into a typed BookingRejection and never lets them escape.
"""

from datetime import datetime, time, timedelta
import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    AdmissionRejectedException,
    BookingConflictException,
    DomainException,
    NotFoundException,
    ValidationException,
)
from ..events import BookingAdmissionRejected, BookingCreated, EventPublisher, LoggingNotificationSink
from ..models.booking import Booking, BookingStatus
from ..models.service import Service
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from ..repositories.service_repository import ServiceRepository
from ..schemas.booking import AdmissionResult, BookingAttemptRequest, BookingRejection, BookingResponse
from .availability_service import CAPACITY_MODE, RESOURCE_MODE, AvailabilityService
from .base import BaseService
from .cache_service import CacheService
from .identity import IdentityProvider
from .trust_score_service import TrustScoreService

logger = logging.getLogger(__name__)

WEEK = timedelta(days=7)

# SQLSTATEs for lost races that surface as errors rather than constraint violations
_RETRYABLE_PGCODES = frozenset({"40P01", "40001"})  # deadlock_detected, serialization_failure

LOST_RACE_MESSAGE = "This time slot was just booked by someone else. Please choose another time."


def _format_local(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M")


def is_lost_race(exc: BaseException) -> bool:
    """
    True if ``exc`` (or anything it was raised from) is a constraint
    violation or a deadlock/serialization failure from a competing commit.
    """
    current: Optional[BaseException] = exc
    seen = 0
    while current is not None and seen < 5:
        if isinstance(current, IntegrityError):
            return True
        if isinstance(current, OperationalError):
            orig = getattr(current, "orig", None)
            pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
            if pgcode in _RETRYABLE_PGCODES or "deadlock detected" in str(current).lower():
                return True
        current = current.__cause__
        seen += 1
    return False


class BookingAdmissionService(BaseService):
    """Admission control and atomic booking creation."""

    def __init__(
        self,
        db: Session,
        identity_provider: IdentityProvider,
        cache: Optional[CacheService] = None,
        event_publisher: Optional[EventPublisher] = None,
        trust_score_service: Optional[TrustScoreService] = None,
        availability_service: Optional[AvailabilityService] = None,
        booking_repository: Optional[BookingRepository] = None,
        service_repository: Optional[ServiceRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(db, cache)
        self.logger = logging.getLogger(__name__)
        self.identity_provider = identity_provider
        self.event_publisher = event_publisher or EventPublisher(LoggingNotificationSink())
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.service_repository = service_repository or RepositoryFactory.create_service_repository(db)
        self.trust_score_service = trust_score_service or TrustScoreService(
            db, cache=cache, booking_repository=self.booking_repository
        )
        self.availability_service = availability_service or AvailabilityService(
            db, service_repository=self.service_repository
        )
        self._clock = clock or datetime.now

    # Public API

    def attempt(self, request: BookingAttemptRequest) -> AdmissionResult:
        return self.attempt_booking(
            customer_id=request.customer_id,
            service_id=request.service_id,
            requested_start=request.requested_start,
            resource_id=request.resource_id,
            party_size=request.party_size,
            notes=request.notes,
        )

    @BaseService.measure_operation("attempt_booking")
    def attempt_booking(
        self,
        customer_id: str,
        service_id: str,
        requested_start: datetime,
        resource_id: Optional[str] = None,
        party_size: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> AdmissionResult:
        """
        Evaluate every gate and, if all pass, create the booking.

        Returns:
            AdmissionResult holding either the committed booking (plus an
            advisory for low-trust customers) or a typed rejection
        """
        try:
            booking, advisory = self._admit(
                customer_id, service_id, requested_start, resource_id, party_size, notes
            )
        except DomainException as exc:
            if exc.rejection_kind is None:
                raise
            self.db.rollback()
            return self._reject(customer_id, service_id, requested_start, exc)

        prometheus_metrics.record_admission_decision("admitted")
        self.log_operation(
            "booking_admitted",
            booking_id=booking.id,
            customer_id=customer_id,
            service_id=service_id,
            resource_id=booking.resource_id,
        )
        self.event_publisher.publish(
            BookingCreated(
                booking_id=booking.id,
                customer_id=booking.customer_id,
                business_id=booking.business_id,
                service_id=booking.service_id,
                resource_id=booking.resource_id,
                appointment_date=booking.appointment_date,
                appointment_end_date=booking.appointment_end_date,
                status=booking.status,
                created_at=booking.created_at,
            )
        )
        return AdmissionResult(booking=BookingResponse.model_validate(booking), advisory=advisory)

    # Gates

    def _admit(
        self,
        customer_id: str,
        service_id: str,
        requested_start: datetime,
        resource_id: Optional[str],
        party_size: Optional[int],
        notes: Optional[str],
    ) -> Tuple[Booking, Optional[str]]:
        now = self._clock()
        self._check_identity(customer_id)
        advisory = self._check_trust(customer_id)

        service = self._load_service(service_id)
        if party_size is not None and party_size < 1:
            raise ValidationException("Party size must be at least 1", code="INVALID_PARTY_SIZE")
        self._validate_request_time(service, requested_start, now)

        booking = self._commit(service, customer_id, requested_start, resource_id, party_size, notes, now)
        return booking, advisory

    def _check_identity(self, customer_id: str) -> None:
        identity = self.identity_provider.get_customer(customer_id)
        if identity is None:
            raise NotFoundException(
                "Customer not found", code="CUSTOMER_NOT_FOUND", details={"customer_id": customer_id}
            )
        if not identity.is_active:
            raise AdmissionRejectedException(
                "Your account is inactive. Please contact support.", code="ACCOUNT_INACTIVE"
            )
        if not identity.email_verified:
            raise AdmissionRejectedException(
                "Please verify your email address before making a booking.",
                code="EMAIL_NOT_VERIFIED",
            )

    def _check_trust(self, customer_id: str) -> Optional[str]:
        """Returns the non-blocking caveat, if any."""
        score = self.trust_score_service.get_trust_score(customer_id)
        decision = self.trust_score_service.can_make_booking(score)
        if not decision.allowed:
            raise AdmissionRejectedException(
                decision.reason or "Your trust score does not allow new bookings.",
                code="TRUST_SCORE_TOO_LOW",
                details={"trust_score": score},
            )
        return decision.reason

    def _load_service(self, service_id: str) -> Service:
        service = self.service_repository.get_active_service(service_id)
        if service is None:
            raise NotFoundException(
                "Service not found or not currently offered",
                code="SERVICE_NOT_FOUND",
                details={"service_id": service_id},
            )
        if service.duration_minutes is None or service.duration_minutes <= 0:
            raise ValidationException(
                "Service has an invalid duration", code="INVALID_DURATION"
            )
        return service

    def _validate_request_time(self, service: Service, requested_start: datetime, now: datetime) -> None:
        if requested_start.tzinfo is not None:
            raise ValidationException(
                "Requested time must be a local time without a UTC offset", code="INVALID_TIME"
            )
        if requested_start < now:
            raise ValidationException(
                "The requested time is in the past",
                code="TIME_IN_PAST",
                details={"requested_start": requested_start.isoformat()},
            )
        advance_days = int(service.advance_booking_days or 0)
        if advance_days > 0 and requested_start > now + timedelta(days=advance_days):
            raise ValidationException(
                f"Bookings can only be made up to {advance_days} days in advance",
                code="BEYOND_ADVANCE_WINDOW",
                details={"advance_booking_days": advance_days},
            )
        self.availability_service.validate_slot_start(service, requested_start)

    def _check_customer_limits(self, service: Service, customer_id: str, requested_start: datetime) -> None:
        """Daily, weekly, cooldown and single-active rules; run under the admission locks."""
        self._check_daily_limit(service, customer_id, requested_start)
        self._check_weekly_limit(service, customer_id, requested_start)
        self._check_cooldown(service, customer_id, requested_start)
        self._check_multiple_active(service, customer_id)

    def _check_daily_limit(self, service: Service, customer_id: str, requested_start: datetime) -> None:
        limit = int(service.max_bookings_per_customer_per_day)
        day_start = datetime.combine(requested_start.date(), time.min)
        count = self.booking_repository.count_customer_service_bookings_between(
            customer_id, service.id, day_start, day_start + timedelta(days=1)
        )
        if count >= limit:
            raise AdmissionRejectedException(
                f"You have reached the maximum number of bookings ({limit}) "
                f"for this service on {requested_start:%Y-%m-%d}.",
                code="DAILY_LIMIT_REACHED",
                details={"limit": limit, "existing": count},
            )

    def _check_weekly_limit(self, service: Service, customer_id: str, requested_start: datetime) -> None:
        limit = service.max_bookings_per_customer_per_week
        if limit is None:
            return
        limit = int(limit)
        if limit == 0:
            raise AdmissionRejectedException(
                "This service is not accepting bookings from customers at the moment.",
                code="WEEKLY_LIMIT_REACHED",
                details={"limit": 0, "existing": 0},
            )

        nearby = self.booking_repository.find_customer_service_bookings_near(
            customer_id, service.id, requested_start - WEEK, requested_start + WEEK
        )
        busiest = self._busiest_week_count([b.appointment_date for b in nearby], requested_start)
        if busiest >= limit:
            raise AdmissionRejectedException(
                f"You can book this service at most {limit} time(s) in any 7-day period.",
                code="WEEKLY_LIMIT_REACHED",
                details={"limit": limit, "existing": busiest},
            )

    @staticmethod
    def _busiest_week_count(starts: List[datetime], requested_start: datetime) -> int:
        """
        Largest number of existing bookings sharing a 7-day window with the
        requested start. Windows [w, w + 7 days) are anchored at each earlier
        booking and at the requested start itself.
        """
        anchors = [start for start in starts if start <= requested_start] + [requested_start]
        busiest = 0
        for anchor in anchors:
            if anchor + WEEK <= requested_start:
                continue
            window_end = anchor + WEEK
            busiest = max(busiest, sum(1 for start in starts if anchor <= start < window_end))
        return busiest

    def _check_cooldown(self, service: Service, customer_id: str, requested_start: datetime) -> None:
        hours = int(service.booking_cooldown_hours or 0)
        if hours <= 0:
            return
        cooldown = timedelta(hours=hours)
        nearby = self.booking_repository.find_customer_service_bookings_near(
            customer_id, service.id, requested_start - cooldown, requested_start + cooldown
        )
        if not nearby:
            return
        latest = max(booking.appointment_date for booking in nearby)
        next_allowed = latest + cooldown
        raise AdmissionRejectedException(
            f"Cooldown: next booking for this service allowed from {_format_local(next_allowed)} "
            f"({hours}h between bookings).",
            code="COOLDOWN_ACTIVE",
            details={
                "cooldown_hours": hours,
                "conflicting_booking_id": nearby[0].id,
                "next_allowed_at": next_allowed.isoformat(),
            },
        )

    def _check_multiple_active(self, service: Service, customer_id: str) -> None:
        if service.allow_multiple_active_bookings:
            return
        existing = self.booking_repository.find_active_customer_service_booking(customer_id, service.id)
        if existing is not None:
            raise AdmissionRejectedException(
                "You already have an upcoming booking for this service. "
                "Complete or cancel it before booking again.",
                code="ACTIVE_BOOKING_EXISTS",
                details={"existing_booking_id": existing.id},
            )

    # Commit

    def _commit(
        self,
        service: Service,
        customer_id: str,
        requested_start: datetime,
        resource_id: Optional[str],
        party_size: Optional[int],
        notes: Optional[str],
        now: datetime,
    ) -> Booking:
        """
        Check the customer limits, re-check availability and insert inside
        one transaction.

        On PostgreSQL the service row lock and a per-customer advisory lock
        make the limit and availability reads consistent with the insert;
        the seat and resource constraints catch whatever gets through. A lost race is
        retried a bounded number of times, after which the fresh re-check
        either reports the slot taken or the conflict is surfaced directly.
        """
        if resource_id is not None and service.uses_capacity_mode():
            self.logger.debug(f"Ignoring resource {resource_id} for capacity-mode service {service.id}")
            resource_id = None
        mode = CAPACITY_MODE if service.uses_capacity_mode() else RESOURCE_MODE
        attempts = settings.admission_commit_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                with self.transaction():
                    self.service_repository.lock_for_update(service.id)
                    self.booking_repository.lock_customer_service(customer_id, service.id)
                    self._check_customer_limits(service, customer_id, requested_start)
                    claim = self.availability_service.claim_interval(
                        service, requested_start, party_size, resource_id
                    )
                    status = (
                        BookingStatus.CONFIRMED
                        if service.business.auto_accept_bookings
                        else BookingStatus.PENDING
                    )
                    booking = self.booking_repository.create(
                        customer_id=customer_id,
                        business_id=service.business_id,
                        service_id=service.id,
                        resource_id=claim.resource_id,
                        capacity_seat=claim.capacity_seat,
                        appointment_date=claim.start,
                        appointment_end_date=claim.end,
                        status=status.value,
                        party_size=party_size,
                        notes=notes,
                        created_at=now,
                    )
                return booking
            except Exception as exc:
                # Commit-time violations arrive wrapped in ServiceException
                if isinstance(exc, DomainException) and exc.rejection_kind is not None:
                    raise
                if not is_lost_race(exc):
                    raise
                prometheus_metrics.record_commit_retry(mode)
                self.logger.warning(
                    f"Lost commit race for service {service.id} at {requested_start.isoformat()} "
                    f"(attempt {attempt}/{attempts})"
                )
                if attempt >= attempts:
                    raise BookingConflictException(
                        LOST_RACE_MESSAGE,
                        code="SLOT_TAKEN",
                        details={"requested_start": requested_start.isoformat()},
                    ) from exc

        raise BookingConflictException(LOST_RACE_MESSAGE, code="SLOT_TAKEN")

    # Rejections

    def _reject(
        self,
        customer_id: str,
        service_id: str,
        requested_start: datetime,
        exc: DomainException,
    ) -> AdmissionResult:
        rejection = BookingRejection(
            kind=exc.rejection_kind,  # type: ignore[arg-type]
            code=exc.code,
            reason=exc.message,
            details=exc.details,
        )
        prometheus_metrics.record_admission_decision(rejection.kind, rejection.code)
        self.logger.info(
            f"Booking rejected ({rejection.kind}/{rejection.code}) for customer {customer_id}: "
            f"{rejection.reason}"
        )
        self.event_publisher.publish(
            BookingAdmissionRejected(
                customer_id=customer_id,
                service_id=service_id,
                requested_start=requested_start,
                kind=rejection.kind,
                code=rejection.code,
                reason=rejection.reason,
            )
        )
        return AdmissionResult(rejection=rejection)
