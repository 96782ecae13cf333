# backend/reservo/schemas/booking.py
"""
Booking schemas for the Reservo booking engine.

Requests and command models forbid unknown fields. Appointment times are
naive local wall-clock datetimes in the business's timezone; offsets are
rejected rather than silently converted.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator

from ..models.booking import BookingStatus
from ._strict_base import StrictModel, StrictRequestModel

RejectionKind = Literal["validation", "not_found", "admission", "conflict"]
AvailabilityMode = Literal["capacity", "resource"]


def _ensure_naive(value: Optional[datetime], field_name: str) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        raise ValueError(f"{field_name} must be a local time without a UTC offset")
    return value


class BookingAttemptRequest(StrictRequestModel):
    """A customer's request for one service interval."""

    customer_id: str = Field(..., min_length=1, max_length=26)
    service_id: str = Field(..., min_length=1, max_length=26)
    requested_start: datetime = Field(..., description="Local wall-clock start time")
    resource_id: Optional[str] = Field(None, min_length=1, max_length=26)
    party_size: Optional[int] = Field(None, ge=1, le=100)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("requested_start")
    @classmethod
    def _validate_requested_start(cls, value: datetime) -> datetime:
        return _ensure_naive(value, "requested_start")  # type: ignore[return-value]


class BookingResponse(StrictModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: str
    customer_id: str
    business_id: str
    service_id: str
    resource_id: Optional[str] = None
    appointment_date: datetime
    appointment_end_date: datetime
    status: BookingStatus
    party_size: Optional[int] = None
    created_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class BookingRejection(StrictModel):
    """
    Typed reason a booking attempt was not admitted.

    ``kind`` separates "try another slot" (conflict) from "you are blocked"
    (admission) so clients can message each correctly.
    """

    kind: RejectionKind
    code: str
    reason: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AdmissionResult(StrictModel):
    """Outcome of attempt_booking: exactly one of booking or rejection is set."""

    booking: Optional[BookingResponse] = None
    rejection: Optional[BookingRejection] = None
    advisory: Optional[str] = Field(
        None, description="Non-blocking notice, e.g. low trust score may require approval"
    )

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "AdmissionResult":
        if (self.booking is None) == (self.rejection is None):
            raise ValueError("exactly one of booking or rejection must be set")
        return self

    @property
    def admitted(self) -> bool:
        return self.booking is not None


class SlotAvailability(StrictModel):
    time: str = Field(..., description="Slot start as HH:MM")
    available: bool
    mode: AvailabilityMode
    # Capacity mode
    booked_count: Optional[int] = None
    max_bookings: Optional[int] = None
    # Resource mode
    available_resources: Optional[int] = None
    total_resources: Optional[int] = None


class TrustScoreFactorsResponse(StrictModel):
    completed_bookings: int
    no_shows: int
    late_cancellations: int
    early_cancellations: int
    on_time_arrivals: int
    total_bookings: int
    recent_cancellations: int
    suspicious_patterns: int


class TrustScoreBreakdown(StrictModel):
    customer_id: str
    score: int = Field(..., ge=0, le=100)
    level: Literal["excellent", "good", "fair", "poor", "very_poor"]
    factors: TrustScoreFactorsResponse
    positive_points: int
    negative_points: int
    details: List[str]
    can_book: bool
    reason: Optional[str] = None


class BookingStatusChange(StrictRequestModel):
    """
    Command that moves a booking along its lifecycle.

    Terminal bookings (cancelled, completed, no_show) never change again.
    """

    action: Literal["confirm", "cancel", "check_in", "complete", "no_show"]
    reason: Optional[str] = Field(None, max_length=500)
    # Customers are held to the cancellation notice period; other actors are not
    actor: Literal["customer", "business", "system"] = "customer"
    at: Optional[datetime] = Field(None, description="Event time; defaults to now")

    @field_validator("at")
    @classmethod
    def _validate_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_naive(value, "at")


class BookingStatusChangeBody(StrictRequestModel):
    """HTTP body for the lifecycle routes; the action comes from the path."""

    reason: Optional[str] = Field(None, max_length=500)
    actor: Literal["customer", "business", "system"] = "customer"
