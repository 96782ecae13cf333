# backend/reservo/models/service.py
"""
Service model: a bookable offering of a business.

Holds the scheduling and admission policy used by the admission engine:
slot duration, per-slot capacity, per-customer caps, cooldown and the
resource-pool behaviour flags.
"""

from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base

service_resources = Table(
    "service_resources",
    Base.metadata,
    Column("service_id", String(26), ForeignKey("services.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "resource_id", String(26), ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True
    ),
)


class Service(Base):
    __tablename__ = "services"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    business_id = Column(String(26), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    # Scheduling
    duration_minutes = Column(Integer, nullable=False)
    max_bookings_per_slot = Column(Integer, nullable=False, default=1)
    advance_booking_days = Column(Integer, nullable=False, default=30)  # 0 = unlimited
    cancellation_hours = Column(Integer, nullable=False, default=24)

    # Per-customer admission policy
    max_bookings_per_customer_per_day = Column(Integer, nullable=False, default=1)
    # NULL = no weekly cap, 0 = no bookings allowed
    max_bookings_per_customer_per_week = Column(Integer, nullable=True)
    booking_cooldown_hours = Column(Integer, nullable=False, default=0)
    allow_multiple_active_bookings = Column(Boolean, nullable=False, default=True)

    # Resource pool behaviour; NULL resource_type means capacity mode
    resource_type = Column(String(20), nullable=True)
    allow_any_resource = Column(Boolean, nullable=False, default=True)
    require_resource_selection = Column(Boolean, nullable=False, default=False)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    business = relationship("Business", back_populates="services")
    resources = relationship(
        "Resource",
        secondary=service_resources,
        back_populates="services",
        order_by="Resource.sort_order",
    )

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_duration_positive"),
        CheckConstraint("max_bookings_per_slot >= 1", name="check_slot_capacity_positive"),
        CheckConstraint("advance_booking_days >= 0", name="check_advance_days_non_negative"),
        CheckConstraint("cancellation_hours >= 0", name="check_cancellation_hours_non_negative"),
        CheckConstraint(
            "max_bookings_per_customer_per_day >= 1", name="check_daily_limit_positive"
        ),
        CheckConstraint(
            "max_bookings_per_customer_per_week IS NULL OR max_bookings_per_customer_per_week >= 0",
            name="check_weekly_limit_non_negative",
        ),
        CheckConstraint("booking_cooldown_hours >= 0", name="check_cooldown_non_negative"),
        CheckConstraint(
            "resource_type IS NULL OR resource_type IN ('staff', 'table', 'equipment', 'room')",
            name="ck_services_resource_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<Service {self.id}: {self.name} ({self.duration_minutes}min)>"

    def uses_capacity_mode(self) -> bool:
        """
        Capacity mode applies when no resource type is set, or when no
        resources are attached and selection is not required.
        """
        if not self.resource_type:
            return True
        return not self.resources and not self.require_resource_selection

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "duration_minutes": self.duration_minutes,
            "max_bookings_per_slot": self.max_bookings_per_slot,
            "advance_booking_days": self.advance_booking_days,
            "cancellation_hours": self.cancellation_hours,
            "max_bookings_per_customer_per_day": self.max_bookings_per_customer_per_day,
            "max_bookings_per_customer_per_week": self.max_bookings_per_customer_per_week,
            "booking_cooldown_hours": self.booking_cooldown_hours,
            "allow_multiple_active_bookings": self.allow_multiple_active_bookings,
            "resource_type": self.resource_type,
            "allow_any_resource": self.allow_any_resource,
            "require_resource_selection": self.require_resource_selection,
            "is_active": self.is_active,
        }
