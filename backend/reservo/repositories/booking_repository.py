# backend/reservo/repositories/booking_repository.py
"""
Booking Repository for the Reservo booking engine.

Customer history queries used by the admission gates and the trust score.
"Non-cancelled" below means every status except cancelled, so completed and
no-show bookings still count toward daily/weekly caps and cooldowns.
"""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(Booking.service))

    def _customer_service_query(self, customer_id: str, service_id: str) -> Query:
        return self.db.query(Booking).filter(
            Booking.customer_id == customer_id,
            Booking.service_id == service_id,
            Booking.status != BookingStatus.CANCELLED.value,
        )

    def count_customer_service_bookings_between(
        self, customer_id: str, service_id: str, start: datetime, end: datetime
    ) -> int:
        """Count non-cancelled bookings starting in [start, end)."""
        try:
            return int(
                self._customer_service_query(customer_id, service_id)
                .filter(Booking.appointment_date >= start, Booking.appointment_date < end)
                .count()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting customer bookings: {str(e)}")
            raise RepositoryException(f"Failed to count customer bookings: {str(e)}")

    def find_customer_service_bookings_near(
        self, customer_id: str, service_id: str, after: datetime, before: datetime
    ) -> List[Booking]:
        """Non-cancelled bookings starting strictly between ``after`` and ``before``."""
        try:
            return cast(
                List[Booking],
                self._customer_service_query(customer_id, service_id)
                .filter(Booking.appointment_date > after, Booking.appointment_date < before)
                .order_by(Booking.appointment_date)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding nearby customer bookings: {str(e)}")
            raise RepositoryException(f"Failed to find customer bookings: {str(e)}")

    def find_active_customer_service_booking(
        self, customer_id: str, service_id: str
    ) -> Optional[Booking]:
        try:
            return cast(
                Optional[Booking],
                self.db.query(Booking)
                .filter(
                    Booking.customer_id == customer_id,
                    Booking.service_id == service_id,
                    Booking.status.in_(ACTIVE_STATUSES),
                )
                .order_by(Booking.appointment_date)
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding active booking: {str(e)}")
            raise RepositoryException(f"Failed to find active booking: {str(e)}")

    def get_customer_history(self, customer_id: str) -> List[Booking]:
        """Every booking of a customer, any status, oldest first."""
        try:
            return cast(
                List[Booking],
                self.db.query(Booking)
                .filter(Booking.customer_id == customer_id)
                .order_by(Booking.appointment_date)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading customer history: {str(e)}")
            raise RepositoryException(f"Failed to load booking history: {str(e)}")

    def get_booking_for_update(self, booking_id: str) -> Optional[Booking]:
        """Load a booking, row-locked on PostgreSQL."""
        try:
            query = self.db.query(Booking).filter(Booking.id == booking_id)
            if self.dialect_name == "postgresql":
                query = query.with_for_update()
            return cast(Optional[Booking], query.first())
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load booking: {str(e)}")

    def lock_customer_service(self, customer_id: str, service_id: str) -> None:
        """
        Serialize admissions of one customer for one service until commit.

        Transaction-scoped advisory lock on PostgreSQL, released at commit or
        rollback. SQLite has no advisory locks.
        """
        if self.dialect_name != "postgresql":
            return
        try:
            self.db.execute(select(func.pg_advisory_xact_lock(func.hashtext(f"{customer_id}:{service_id}"))))
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking customer {customer_id} for service {service_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock customer bookings: {str(e)}") from e

    def find_business_bookings_between(
        self, business_id: str, start: datetime, end: datetime
    ) -> List[Booking]:
        """All bookings of a business starting in [start, end), any status, by start time."""
        try:
            query = (
                self.db.query(Booking)
                .filter(
                    Booking.business_id == business_id,
                    Booking.appointment_date >= start,
                    Booking.appointment_date < end,
                )
                .order_by(Booking.appointment_date, Booking.id)
            )
            return cast(List[Booking], query.all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading bookings for business {business_id}: {str(e)}")
            raise RepositoryException(f"Failed to load business bookings: {str(e)}")
