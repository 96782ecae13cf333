# backend/reservo/services/conflict_checker.py
"""
Resource Conflict Checker for the Reservo booking engine.

Answers whether a resource is free for an interval. Only pending and
confirmed bookings occupy a resource, and overlap is half-open: a booking
ending at 10:00 does not conflict with one starting at 10:00.

The check alone does not make a booking safe; the admission commit repeats
it inside the inserting transaction, backed by database constraints.
"""

from datetime import datetime
import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.exceptions import ValidationException
from ..models.booking import Booking
from ..repositories import RepositoryFactory
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from .base import BaseService

logger = logging.getLogger(__name__)


def intervals_overlap(
    start: datetime, end: datetime, other_start: datetime, other_end: datetime
) -> bool:
    """Half-open interval overlap."""
    return start < other_end and end > other_start


def overlapping(bookings: Iterable[Booking], start: datetime, end: datetime) -> List[Booking]:
    """In-memory filter used when a day's bookings are already loaded."""
    return [
        booking
        for booking in bookings
        if intervals_overlap(start, end, booking.appointment_date, booking.appointment_end_date)
    ]


class ResourceConflictChecker(BaseService):
    """Service for checking resource booking conflicts."""

    def __init__(self, db: Session, repository: Optional[ConflictCheckerRepository] = None):
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.repository = repository or RepositoryFactory.create_conflict_checker_repository(db)

    @staticmethod
    def validate_interval(start: datetime, end: datetime) -> None:
        if end <= start:
            raise ValidationException(
                "End time must be after start time",
                code="INVALID_INTERVAL",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )

    @BaseService.measure_operation("has_resource_conflict")
    def has_conflict(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """True iff an active booking on the resource overlaps [start, end)."""
        self.validate_interval(start, end)
        bookings = self.repository.find_active_bookings_for_resource_in_window(
            resource_id, start, end, exclude_booking_id
        )
        return bool(overlapping(bookings, start, end))

    def free_resource_ids(
        self, resource_ids: Sequence[str], start: datetime, end: datetime
    ) -> List[str]:
        """Subset of ``resource_ids`` with no overlapping active booking, order preserved."""
        self.validate_interval(start, end)
        busy = {
            booking.resource_id
            for booking in self.repository.find_active_bookings_for_resources_in_window(
                resource_ids, start, end
            )
        }
        return [resource_id for resource_id in resource_ids if resource_id not in busy]
