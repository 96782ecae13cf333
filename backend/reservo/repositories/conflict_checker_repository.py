# backend/reservo/repositories/conflict_checker_repository.py
"""
ConflictChecker Repository for the Reservo booking engine.

Explicit window queries over active bookings. Overlap is half-open:
a booking occupies [appointment_date, appointment_end_date), so a booking
ending exactly when another starts does not conflict.

Cancelled, completed and no-show bookings never occupy time here.
"""

from datetime import datetime
import logging
from typing import Iterable, List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..models.booking import ACTIVE_STATUSES, Booking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ConflictCheckerRepository(BaseRepository[Booking]):
    """Repository for conflict checking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def _active_in_window(self, start: datetime, end: datetime) -> Query:
        return self.db.query(Booking).filter(
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.appointment_date < end,
            Booking.appointment_end_date > start,
        )

    def find_active_bookings_for_resource_in_window(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Active bookings on one resource that overlap [start, end).

        Args:
            resource_id: The resource to check
            start: Interval start (inclusive)
            end: Interval end (exclusive)
            exclude_booking_id: Optional booking ID to leave out

        Returns:
            Overlapping bookings ordered by start time
        """
        try:
            query = self._active_in_window(start, end).filter(Booking.resource_id == resource_id)
            if exclude_booking_id:
                query = query.filter(Booking.id != exclude_booking_id)
            return cast(List[Booking], query.order_by(Booking.appointment_date).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting bookings for resource conflict check: {str(e)}")
            raise RepositoryException(f"Failed to get conflict bookings: {str(e)}")

    def find_active_bookings_for_resources_in_window(
        self, resource_ids: Iterable[str], start: datetime, end: datetime
    ) -> List[Booking]:
        """Batch variant used to load a whole day for several resources at once."""
        ids = list(resource_ids)
        if not ids:
            return []
        try:
            return cast(
                List[Booking],
                self._active_in_window(start, end)
                .filter(Booking.resource_id.in_(ids))
                .order_by(Booking.appointment_date)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting bookings for resources: {str(e)}")
            raise RepositoryException(f"Failed to get resource bookings: {str(e)}")

    def find_active_bookings_for_service_in_window(
        self, service_id: str, start: datetime, end: datetime
    ) -> List[Booking]:
        """Active bookings of a service overlapping [start, end), for capacity counting."""
        try:
            return cast(
                List[Booking],
                self._active_in_window(start, end)
                .filter(Booking.service_id == service_id)
                .order_by(Booking.appointment_date)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting bookings for service window: {str(e)}")
            raise RepositoryException(f"Failed to get service bookings: {str(e)}")
