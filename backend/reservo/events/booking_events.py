"""Booking domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class BookingCreated:
    """Fired after a booking is admitted and committed."""

    booking_id: str
    customer_id: str
    business_id: str
    service_id: str
    resource_id: Optional[str]
    appointment_date: datetime
    appointment_end_date: datetime
    status: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingAdmissionRejected:
    """Fired when a booking attempt is turned away."""

    customer_id: str
    service_id: str
    requested_start: datetime
    kind: str  # validation | not_found | admission | conflict
    code: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingStatusChanged:
    """Fired after a lifecycle transition (confirm, cancel, check-in, complete, no-show)."""

    booking_id: str
    customer_id: str
    previous_status: str
    status: str
    changed_at: datetime
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
