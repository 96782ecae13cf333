"""
Database models for the Reservo booking engine.

- Business: tenant with a weekly schedule and auto-accept policy
- Service: bookable offering with scheduling and admission policy
- Resource: staff/table/equipment/room linked to services
- Booking: a customer's claim on a service interval
- CustomerProfile: persisted trust score
"""

from .booking import ACTIVE_STATUSES, TERMINAL_STATUSES, Booking, BookingStatus
from .business import Business
from .customer_profile import CustomerProfile
from .resource import Resource, ResourceType
from .service import Service, service_resources

__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Booking",
    "BookingStatus",
    "Business",
    "CustomerProfile",
    "Resource",
    "ResourceType",
    "Service",
    "service_resources",
]
