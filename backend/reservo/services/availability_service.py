# backend/reservo/services/availability_service.py
"""
Availability Service for the Reservo booking engine.

Resolves per-slot availability for a (service, date) pair and claims a
specific interval at admission time. Two modes:

Capacity mode
    No resource assignment. A slot is available while fewer than
    ``max_bookings_per_slot`` active bookings of the service overlap it.
    Each admitted booking holds a numbered seat so that the database can
    reject a second claim of the same seat.

Resource mode
    The slot is available while at least one active resource of the
    service is working for the whole slot, seats the party (tables only),
    and has no overlapping active booking.

Bookings for a day are loaded once per call and matched in memory.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.exceptions import BookingConflictException, NotFoundException, ValidationException
from ..models.booking import Booking
from ..models.resource import Resource
from ..models.service import Service
from ..repositories import RepositoryFactory
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from ..repositories.service_repository import ServiceRepository
from ..schemas.booking import SlotAvailability
from .base import BaseService
from .conflict_checker import ResourceConflictChecker, overlapping
from .slot_generator import SlotSequence, format_hhmm, generate_slots_for_day
from .working_hours import DayHours, resolve_day_hours, resolve_effective_day_hours

logger = logging.getLogger(__name__)

CAPACITY_MODE = "capacity"
RESOURCE_MODE = "resource"


@dataclass(frozen=True)
class SlotClaim:
    """What an admitted booking will occupy: a seat or a resource."""

    mode: str
    start: datetime
    end: datetime
    capacity_seat: Optional[int] = None
    resource_id: Optional[str] = None


def active_resources(service: Service) -> List[Resource]:
    """Active resources of the service in pick order (sort_order, then id)."""
    return sorted(
        (resource for resource in service.resources if resource.is_active),
        key=lambda resource: (resource.sort_order or 0, resource.id),
    )


class AvailabilityService(BaseService):
    """Per-slot availability and interval claims."""

    def __init__(
        self,
        db: Session,
        service_repository: Optional[ServiceRepository] = None,
        conflict_repository: Optional[ConflictCheckerRepository] = None,
        conflict_checker: Optional[ResourceConflictChecker] = None,
    ):
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.service_repository = service_repository or RepositoryFactory.create_service_repository(db)
        self.conflict_repository = (
            conflict_repository or RepositoryFactory.create_conflict_checker_repository(db)
        )
        self.conflict_checker = conflict_checker or ResourceConflictChecker(
            db, repository=self.conflict_repository
        )

    # Slot listing

    @BaseService.measure_operation("get_available_slots")
    def get_available_slots(
        self, service_id: str, target_date: date, party_size: Optional[int] = None
    ) -> List[SlotAvailability]:
        """
        Per-slot availability for a service on a date.

        Unknown or inactive services yield an empty list so browsing
        clients degrade gracefully.
        """
        service = self.service_repository.get_active_service(service_id)
        if service is None:
            self.logger.info(f"Slots requested for unknown or inactive service {service_id}")
            return []
        return self.get_slots_for_service(service, target_date, party_size)

    def get_slots_for_service(
        self, service: Service, target_date: date, party_size: Optional[int] = None
    ) -> List[SlotAvailability]:
        day = resolve_day_hours(service.business.working_hours, target_date)
        slots = generate_slots_for_day(day, service.duration_minutes)
        if service.uses_capacity_mode():
            return self._capacity_slots(service, target_date, day, slots)
        return self._resource_slots(service, target_date, day, slots, party_size)

    def _day_window(self, target_date: date, day: DayHours) -> tuple[datetime, datetime]:
        assert day.open_time is not None and day.close_time is not None
        return (
            datetime.combine(target_date, day.open_time),
            datetime.combine(target_date, day.close_time),
        )

    def _capacity_slots(
        self, service: Service, target_date: date, day: DayHours, slots: SlotSequence
    ) -> List[SlotAvailability]:
        intervals = list(slots.intervals(target_date))
        if not intervals:
            return []
        window_start, window_end = self._day_window(target_date, day)
        bookings = self.conflict_repository.find_active_bookings_for_service_in_window(
            service.id, window_start, window_end
        )
        max_bookings = int(service.max_bookings_per_slot)

        results = []
        for start, end in intervals:
            booked = len(overlapping(bookings, start, end))
            results.append(
                SlotAvailability(
                    time=format_hhmm(start.time()),
                    available=booked < max_bookings,
                    mode=CAPACITY_MODE,
                    booked_count=booked,
                    max_bookings=max_bookings,
                )
            )
        return results

    def _resource_slots(
        self,
        service: Service,
        target_date: date,
        day: DayHours,
        slots: SlotSequence,
        party_size: Optional[int],
    ) -> List[SlotAvailability]:
        intervals = list(slots.intervals(target_date))
        if not intervals:
            return []
        resources = active_resources(service)
        if not resources:
            # Reported as unavailable rather than omitted so clients can tell
            # "no resources configured" apart from "closed"
            return [
                SlotAvailability(
                    time=format_hhmm(start.time()),
                    available=False,
                    mode=RESOURCE_MODE,
                    available_resources=0,
                    total_resources=0,
                )
                for start, _ in intervals
            ]

        window_start, window_end = self._day_window(target_date, day)
        bookings = self.conflict_repository.find_active_bookings_for_resources_in_window(
            [resource.id for resource in resources], window_start, window_end
        )
        by_resource = self._group_by_resource(bookings)
        hours = self._resource_hours(service, resources, target_date)

        results = []
        for start, end in intervals:
            free = self._eligible_free_resources(
                resources, hours, by_resource, start, end, party_size
            )
            results.append(
                SlotAvailability(
                    time=format_hhmm(start.time()),
                    available=len(free) > 0,
                    mode=RESOURCE_MODE,
                    available_resources=len(free),
                    total_resources=len(resources),
                )
            )
        return results

    @staticmethod
    def _group_by_resource(bookings: Sequence[Booking]) -> Dict[str, List[Booking]]:
        grouped: Dict[str, List[Booking]] = {}
        for booking in bookings:
            grouped.setdefault(booking.resource_id, []).append(booking)
        return grouped

    @staticmethod
    def _resource_hours(
        service: Service, resources: Sequence[Resource], target_date: date
    ) -> Dict[str, DayHours]:
        business_hours = service.business.working_hours
        return {
            resource.id: resolve_effective_day_hours(
                resource.working_hours, business_hours, target_date
            )
            for resource in resources
        }

    @staticmethod
    def _eligible_free_resources(
        resources: Sequence[Resource],
        hours: Dict[str, DayHours],
        bookings_by_resource: Dict[str, List[Booking]],
        start: datetime,
        end: datetime,
        party_size: Optional[int],
    ) -> List[Resource]:
        free = []
        for resource in resources:
            if not hours[resource.id].covers(start.time(), end.time()):
                continue
            if not resource.fits_party(party_size):
                continue
            if overlapping(bookings_by_resource.get(resource.id, []), start, end):
                continue
            free.append(resource)
        return free

    # Admission-time claims

    def validate_slot_start(self, service: Service, requested_start: datetime) -> datetime:
        """
        Ensure the start is one of the generated slots of that day.

        Returns:
            The slot end (start + service duration)
        """
        day = resolve_day_hours(service.business.working_hours, requested_start.date())
        slots = generate_slots_for_day(day, service.duration_minutes)
        for start, end in slots.intervals(requested_start.date()):
            if start == requested_start:
                return end
        raise ValidationException(
            "The requested time is not a bookable slot for this service",
            code="UNBOOKABLE_TIME",
            details={
                "requested_start": requested_start.isoformat(),
                "available_times": list(slots),
            },
        )

    def claim_interval(
        self,
        service: Service,
        start: datetime,
        party_size: Optional[int] = None,
        resource_id: Optional[str] = None,
    ) -> SlotClaim:
        """
        Decide what a booking at ``start`` would occupy, against current state.

        Raises:
            ValidationException: resource choice or party size not acceptable
            NotFoundException: resource not part of this service
            BookingConflictException: nothing free for the interval
        """
        end = start + timedelta(minutes=int(service.duration_minutes))
        if service.uses_capacity_mode():
            return self._claim_seat(service, start, end)
        return self._claim_resource(service, start, end, party_size, resource_id)

    def _claim_seat(self, service: Service, start: datetime, end: datetime) -> SlotClaim:
        bookings = self.conflict_repository.find_active_bookings_for_service_in_window(
            service.id, start, end
        )
        max_bookings = int(service.max_bookings_per_slot)
        if len(bookings) >= max_bookings:
            raise BookingConflictException(
                "This time slot is fully booked",
                code="SLOT_FULL",
                details={"booked_count": len(bookings), "max_bookings": max_bookings},
            )
        taken = {booking.capacity_seat for booking in bookings if booking.capacity_seat is not None}
        seat = min(set(range(max_bookings)) - taken)
        return SlotClaim(mode=CAPACITY_MODE, start=start, end=end, capacity_seat=seat)

    def _claim_resource(
        self,
        service: Service,
        start: datetime,
        end: datetime,
        party_size: Optional[int],
        resource_id: Optional[str],
    ) -> SlotClaim:
        if resource_id is not None:
            return self._claim_specific_resource(service, start, end, party_size, resource_id)

        if service.require_resource_selection or not service.allow_any_resource:
            raise ValidationException(
                "Please choose a resource for this service",
                code="RESOURCE_SELECTION_REQUIRED",
            )
        resources = active_resources(service)
        if not resources:
            raise BookingConflictException(
                "No resources are configured for this service",
                code="NO_RESOURCES_CONFIGURED",
            )

        hours = self._resource_hours(service, resources, start.date())
        eligible = [
            resource.id
            for resource in resources
            if hours[resource.id].covers(start.time(), end.time()) and resource.fits_party(party_size)
        ]
        free = self.conflict_checker.free_resource_ids(eligible, start, end) if eligible else []
        if not free:
            raise BookingConflictException(
                "No resource is available for this time",
                code="NO_RESOURCE_AVAILABLE",
                details={"party_size": party_size},
            )
        return SlotClaim(mode=RESOURCE_MODE, start=start, end=end, resource_id=free[0])

    def _claim_specific_resource(
        self,
        service: Service,
        start: datetime,
        end: datetime,
        party_size: Optional[int],
        resource_id: str,
    ) -> SlotClaim:
        resource = next((r for r in service.resources if r.id == resource_id), None)
        if resource is None:
            raise NotFoundException(
                "Resource not found for this service",
                code="RESOURCE_NOT_FOUND",
                details={"resource_id": resource_id},
            )
        if not resource.is_active:
            raise ValidationException(
                "This resource is not currently available",
                code="RESOURCE_INACTIVE",
                details={"resource_id": resource_id},
            )
        hours = resolve_effective_day_hours(
            resource.working_hours, service.business.working_hours, start.date()
        )
        if not hours.covers(start.time(), end.time()):
            raise ValidationException(
                "This resource is not working at the requested time",
                code="RESOURCE_NOT_WORKING",
                details={"resource_id": resource_id},
            )
        if not resource.fits_party(party_size):
            raise ValidationException(
                f"This table seats at most {resource.capacity}",
                code="PARTY_TOO_LARGE",
                details={"resource_id": resource_id, "capacity": resource.capacity},
            )
        if self.conflict_checker.has_conflict(resource_id, start, end):
            raise BookingConflictException(
                "This resource is already booked for the requested time",
                code="RESOURCE_UNAVAILABLE",
                details={"resource_id": resource_id},
            )
        return SlotClaim(mode=RESOURCE_MODE, start=start, end=end, resource_id=resource_id)
