from .booking_events import BookingAdmissionRejected, BookingCreated, BookingStatusChanged
from .publisher import (
    EventPublisher,
    InMemoryNotificationSink,
    LoggingNotificationSink,
    NotificationSink,
)

__all__ = [
    "BookingAdmissionRejected",
    "BookingCreated",
    "BookingStatusChanged",
    "EventPublisher",
    "InMemoryNotificationSink",
    "LoggingNotificationSink",
    "NotificationSink",
]
