# backend/reservo/services/booking_query_service.py
"""
Booking Query Service: read-only lookups of single bookings and of a
business's day schedule.
"""

from datetime import date, datetime, time, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException
from ..models.booking import Booking
from ..models.business import Business
from ..repositories import BaseRepository, RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from .base import BaseService

logger = logging.getLogger(__name__)


class BookingQueryService(BaseService):
    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        business_repository: Optional[BaseRepository[Business]] = None,
    ):
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.business_repository = business_repository or RepositoryFactory.create_business_repository(db)

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(
                "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id}
            )
        return booking

    @BaseService.measure_operation("get_business_bookings")
    def get_business_bookings(self, business_id: str, target_date: date) -> List[Booking]:
        """Every booking of the business starting on ``target_date``, in start order, any status."""
        if self.business_repository.get_by_id(business_id, load_relationships=False) is None:
            raise NotFoundException(
                "Business not found", code="BUSINESS_NOT_FOUND", details={"business_id": business_id}
            )
        day_start = datetime.combine(target_date, time.min)
        return self.booking_repository.find_business_bookings_between(
            business_id, day_start, day_start + timedelta(days=1)
        )
