# backend/reservo/models/booking.py
"""
Booking model for the Reservo booking engine.

A booking is one customer's claim on a service interval, optionally pinned
to a resource. Only pending and confirmed bookings occupy time; cancelled,
completed and no-show bookings are terminal and kept for trust scoring.

Concurrency guards live in the schema:
- capacity mode claims a numbered seat, unique per (service, start) while active
- resource mode is unique per (resource, start) while active
- on PostgreSQL an exclusion constraint rejects any overlapping active
  interval on the same resource
"""

from datetime import datetime, timedelta
from enum import Enum
import logging
from typing import Any, Optional

from sqlalchemy import (
    DDL,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
    text,
)
from sqlalchemy.orm import relationship
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"  # Awaiting business approval
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Statuses that consume capacity and block resources
ACTIVE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)
TERMINAL_STATUSES = (
    BookingStatus.CANCELLED.value,
    BookingStatus.COMPLETED.value,
    BookingStatus.NO_SHOW.value,
)

_ACTIVE_PREDICATE = "status IN ('pending', 'confirmed')"


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    customer_id = Column(String(26), nullable=False, index=True)
    business_id = Column(String(26), ForeignKey("businesses.id"), nullable=False, index=True)
    service_id = Column(String(26), ForeignKey("services.id"), nullable=False, index=True)
    resource_id = Column(String(26), ForeignKey("resources.id"), nullable=True, index=True)

    # Naive wall-clock times in the business's local timezone
    appointment_date = Column(DateTime, nullable=False, index=True)
    appointment_end_date = Column(DateTime, nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    party_size = Column(Integer, nullable=True)

    # Capacity mode only: which of max_bookings_per_slot seats this booking holds
    capacity_seat = Column(Integer, nullable=True)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.now)
    checked_in_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    reminder_sent_at = Column(DateTime, nullable=True)

    business = relationship("Business")
    service = relationship("Service")
    resource = relationship("Resource")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed', 'no_show')",
            name="ck_bookings_status",
        ),
        CheckConstraint("appointment_end_date > appointment_date", name="check_time_order"),
        CheckConstraint("party_size IS NULL OR party_size > 0", name="check_party_size_positive"),
        CheckConstraint("capacity_seat IS NULL OR capacity_seat >= 0", name="check_seat_non_negative"),
        Index(
            "uq_bookings_service_slot_seat",
            "service_id",
            "appointment_date",
            "capacity_seat",
            unique=True,
            postgresql_where=text(_ACTIVE_PREDICATE),
            sqlite_where=text(_ACTIVE_PREDICATE),
        ),
        Index(
            "uq_bookings_resource_start",
            "resource_id",
            "appointment_date",
            unique=True,
            postgresql_where=text(_ACTIVE_PREDICATE),
            sqlite_where=text(_ACTIVE_PREDICATE),
        ),
        Index("ix_bookings_customer_service_date", "customer_id", "service_id", "appointment_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: customer={self.customer_id}, service={self.service_id}, "
            f"resource={self.resource_id}, start={self.appointment_date}, status={self.status}>"
        )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def duration(self) -> timedelta:
        return self.appointment_end_date - self.appointment_date

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap test; touching endpoints do not overlap."""
        return self.appointment_date < end and self.appointment_end_date > start

    def cancel(self, reason: Optional[str] = None, *, at: Optional[datetime] = None) -> None:
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = at or datetime.now()
        self.cancellation_reason = reason
        logger.info(f"Booking {self.id} cancelled")

    def check_in(self, *, at: Optional[datetime] = None) -> None:
        """Record arrival; a checked-in booking is complete."""
        self.checked_in_at = at or datetime.now()
        self.status = BookingStatus.COMPLETED.value
        logger.info(f"Booking {self.id} checked in")

    def complete(self) -> None:
        self.status = BookingStatus.COMPLETED.value
        logger.info(f"Booking {self.id} marked as completed")

    def mark_no_show(self) -> None:
        self.status = BookingStatus.NO_SHOW.value
        logger.info(f"Booking {self.id} marked as no-show")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses and events."""
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "business_id": self.business_id,
            "service_id": self.service_id,
            "resource_id": self.resource_id,
            "appointment_date": self.appointment_date.isoformat() if self.appointment_date else None,
            "appointment_end_date": (
                self.appointment_end_date.isoformat() if self.appointment_end_date else None
            ),
            "status": self.status,
            "party_size": self.party_size,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "checked_in_at": self.checked_in_at.isoformat() if self.checked_in_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
        }


# PostgreSQL only: reject overlapping active intervals per resource.
# btree_gist provides the equality operator class for resource_id.
event.listen(
    Booking.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        """
        ALTER TABLE bookings
          ADD CONSTRAINT bookings_no_overlap_per_resource
          EXCLUDE USING gist (
            resource_id WITH =,
            tsrange(appointment_date, appointment_end_date, '[)') WITH &&
          )
          WHERE (resource_id IS NOT NULL AND status IN ('pending', 'confirmed'))
        """
    ).execute_if(dialect="postgresql"),
)
