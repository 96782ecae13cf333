# backend/reservo/models/resource.py
"""
Resource model: a schedulable unit (staff member, table, equipment, room).

Resources belong to one business and may serve many services through the
``service_resources`` association table.
"""

from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class ResourceType(str, Enum):
    """Kinds of schedulable resources."""

    STAFF = "staff"
    TABLE = "table"  # Only type whose capacity limits party size
    EQUIPMENT = "equipment"
    ROOM = "room"


RESOURCE_TYPE_VALUES = tuple(member.value for member in ResourceType)


class Resource(Base):
    __tablename__ = "resources"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    business_id = Column(String(26), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default=ResourceType.STAFF.value)

    # Seats for tables; NULL means no limit
    capacity = Column(Integer, nullable=True)

    # Per-resource schedule override, same shape as Business.working_hours
    working_hours = Column(JSON, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    business = relationship("Business", back_populates="resources")
    services = relationship("Service", secondary="service_resources", back_populates="resources")

    __table_args__ = (
        CheckConstraint(
            "type IN ('staff', 'table', 'equipment', 'room')",
            name="ck_resources_type",
        ),
        CheckConstraint("capacity IS NULL OR capacity > 0", name="check_capacity_positive"),
    )

    def __repr__(self) -> str:
        return f"<Resource {self.id}: {self.name} ({self.type})>"

    @property
    def is_table(self) -> bool:
        return self.type == ResourceType.TABLE.value

    def fits_party(self, party_size: Optional[int]) -> bool:
        """Tables must seat the party; other types and unlimited tables always fit."""
        if not party_size or not self.is_table or self.capacity is None:
            return True
        return party_size <= int(self.capacity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "type": self.type,
            "capacity": self.capacity,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }
