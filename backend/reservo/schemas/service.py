# backend/reservo/schemas/service.py
"""Service policy schemas."""

from typing import Any, Dict, Optional

from pydantic import ConfigDict, Field, model_validator

from ..models.resource import ResourceType
from ._strict_base import StrictModel, StrictRequestModel

# Columns that accept NULL; every other field must carry a value when sent
NULLABLE_SERVICE_FIELDS = frozenset({"max_bookings_per_customer_per_week", "resource_type"})


class ServiceUpdate(StrictRequestModel):
    """
    Explicit update command for a service's scheduling and admission policy.

    Only fields present in the payload are applied. For the weekly cap,
    sending null removes the cap while 0 forbids bookings entirely.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    duration_minutes: Optional[int] = Field(None, ge=1, le=1440)
    max_bookings_per_slot: Optional[int] = Field(None, ge=1)
    advance_booking_days: Optional[int] = Field(None, ge=0)
    cancellation_hours: Optional[int] = Field(None, ge=0)
    max_bookings_per_customer_per_day: Optional[int] = Field(None, ge=1)
    max_bookings_per_customer_per_week: Optional[int] = Field(None, ge=0)
    booking_cooldown_hours: Optional[int] = Field(None, ge=0)
    allow_multiple_active_bookings: Optional[bool] = None
    resource_type: Optional[ResourceType] = None
    allow_any_resource: Optional[bool] = None
    require_resource_selection: Optional[bool] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def _reject_null_for_required_columns(self) -> "ServiceUpdate":
        for field_name in self.model_fields_set:
            if field_name not in NULLABLE_SERVICE_FIELDS and getattr(self, field_name) is None:
                raise ValueError(f"{field_name} cannot be null")
        return self

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly provided, with enums reduced to their stored values."""
        data = self.model_dump(include=self.model_fields_set)
        if isinstance(data.get("resource_type"), ResourceType):
            data["resource_type"] = data["resource_type"].value
        return data


class ServiceResponse(StrictModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: str
    business_id: str
    name: str
    duration_minutes: int
    max_bookings_per_slot: int
    advance_booking_days: int
    cancellation_hours: int
    max_bookings_per_customer_per_day: int
    max_bookings_per_customer_per_week: Optional[int] = None
    booking_cooldown_hours: int
    allow_multiple_active_bookings: bool
    resource_type: Optional[ResourceType] = None
    allow_any_resource: bool
    require_resource_selection: bool
    is_active: bool
