# backend/reservo/services/booking_lifecycle_service.py
"""
Booking Lifecycle Service for the Reservo booking engine.

Moves bookings through their statuses:

    pending -> confirmed -> completed (check-in or complete)
                         -> no_show
    pending | confirmed  -> cancelled

Cancelled, completed and no_show are terminal. Each transition recomputes
and stores the customer's trust score in the same transaction, then
publishes a BookingStatusChanged event.
"""

from datetime import datetime, timedelta
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    BusinessRuleException,
    InvalidStatusTransitionException,
    NotFoundException,
)
from ..events import BookingStatusChanged, EventPublisher, LoggingNotificationSink
from ..models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from ..schemas.booking import BookingStatusChange
from .base import BaseService
from .cache_service import CacheService
from .trust_score_service import TrustScoreService

logger = logging.getLogger(__name__)

# Statuses each action may start from
_ALLOWED_FROM = {
    "confirm": (BookingStatus.PENDING.value,),
    "cancel": ACTIVE_STATUSES,
    "check_in": (BookingStatus.CONFIRMED.value,),
    "complete": ACTIVE_STATUSES,
    "no_show": ACTIVE_STATUSES,
}

_TARGET_STATUS = {
    "confirm": BookingStatus.CONFIRMED.value,
    "cancel": BookingStatus.CANCELLED.value,
    "check_in": BookingStatus.COMPLETED.value,
    "complete": BookingStatus.COMPLETED.value,
    "no_show": BookingStatus.NO_SHOW.value,
}


class BookingLifecycleService(BaseService):
    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        event_publisher: Optional[EventPublisher] = None,
        booking_repository: Optional[BookingRepository] = None,
        trust_score_service: Optional[TrustScoreService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(db, cache)
        self.logger = logging.getLogger(__name__)
        self.event_publisher = event_publisher or EventPublisher(LoggingNotificationSink())
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.trust_score_service = trust_score_service or TrustScoreService(
            db, cache=cache, booking_repository=self.booking_repository
        )
        self._clock = clock or datetime.now

    def confirm(self, booking_id: str) -> Booking:
        return self.apply(booking_id, BookingStatusChange(action="confirm", actor="business"))

    def cancel(self, booking_id: str, reason: Optional[str] = None, actor: str = "customer") -> Booking:
        return self.apply(
            booking_id,
            BookingStatusChange(action="cancel", reason=reason, actor=actor),  # type: ignore[arg-type]
        )

    def check_in(self, booking_id: str) -> Booking:
        return self.apply(booking_id, BookingStatusChange(action="check_in", actor="business"))

    def complete(self, booking_id: str) -> Booking:
        return self.apply(booking_id, BookingStatusChange(action="complete", actor="business"))

    def mark_no_show(self, booking_id: str) -> Booking:
        return self.apply(booking_id, BookingStatusChange(action="no_show", actor="business"))

    @BaseService.measure_operation("apply_status_change")
    def apply(self, booking_id: str, change: BookingStatusChange) -> Booking:
        """
        Apply a lifecycle command.

        Raises:
            NotFoundException: booking does not exist
            InvalidStatusTransitionException: not allowed from the current status
            BusinessRuleException: customer cancellation inside the notice period
        """
        at = change.at or self._clock()
        target = _TARGET_STATUS[change.action]

        with self.transaction():
            booking = self.booking_repository.get_booking_for_update(booking_id)
            if booking is None:
                raise NotFoundException(
                    "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id}
                )
            previous = booking.status
            if previous not in _ALLOWED_FROM[change.action]:
                raise InvalidStatusTransitionException(booking_id, previous, target)

            if change.action == "cancel":
                self._check_cancellation_notice(booking, change, at)
                booking.cancel(change.reason, at=at)
            elif change.action == "check_in":
                booking.check_in(at=at)
            elif change.action == "complete":
                booking.complete()
            elif change.action == "no_show":
                booking.mark_no_show()
            else:
                booking.status = target
            self.booking_repository.flush()

            self.trust_score_service.update_trust_score(booking.customer_id, now=at)

        self.log_operation(
            "booking_status_changed",
            booking_id=booking_id,
            previous_status=previous,
            status=booking.status,
            actor=change.actor,
        )
        self.event_publisher.publish(
            BookingStatusChanged(
                booking_id=booking.id,
                customer_id=booking.customer_id,
                previous_status=previous,
                status=booking.status,
                changed_at=at,
                reason=change.reason,
            )
        )
        return booking

    def _check_cancellation_notice(
        self, booking: Booking, change: BookingStatusChange, at: datetime
    ) -> None:
        """Customers must cancel at least ``cancellation_hours`` before the start."""
        if change.actor != "customer":
            return
        hours = int(booking.service.cancellation_hours or 0)
        if hours <= 0:
            return
        if booking.appointment_date - at < timedelta(hours=hours):
            raise BusinessRuleException(
                f"Bookings for this service must be cancelled at least {hours} hours in advance. "
                "Please contact the business.",
                code="CANCELLATION_WINDOW_PASSED",
                details={"cancellation_hours": hours},
            )
