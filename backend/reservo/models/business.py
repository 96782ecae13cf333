# backend/reservo/models/business.py
"""
Business model for the Reservo booking engine.

A business owns services and resources and publishes a weekly schedule.
The schedule column is JSON but legacy rows may hold a JSON-encoded string
or NULL; WorkingHoursResolver is the only place that interprets it.
"""

from typing import Any

from sqlalchemy import JSON, Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class Business(Base):
    """A tenant that accepts appointments."""

    __tablename__ = "businesses"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False)

    # {"monday": {"isOpen": true, "openTime": "09:00", "closeTime": "17:00"}, ...}
    working_hours = Column(JSON, nullable=True)

    # Bookings start confirmed when true, pending otherwise
    auto_accept_bookings = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    services = relationship("Service", back_populates="business")
    resources = relationship("Resource", back_populates="business")

    def __repr__(self) -> str:
        return f"<Business {self.id}: {self.name}>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "auto_accept_bookings": self.auto_accept_bookings,
            "is_active": self.is_active,
        }
