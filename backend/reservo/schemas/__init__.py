from .booking import (
    AdmissionResult,
    BookingAttemptRequest,
    BookingRejection,
    BookingResponse,
    BookingStatusChange,
    BookingStatusChangeBody,
    SlotAvailability,
    TrustScoreBreakdown,
    TrustScoreFactorsResponse,
)
from .service import ServiceResponse, ServiceUpdate

__all__ = [
    "AdmissionResult",
    "BookingAttemptRequest",
    "BookingRejection",
    "BookingResponse",
    "BookingStatusChange",
    "BookingStatusChangeBody",
    "ServiceResponse",
    "ServiceUpdate",
    "SlotAvailability",
    "TrustScoreBreakdown",
    "TrustScoreFactorsResponse",
]
