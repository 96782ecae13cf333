"""
Event publisher - hands domain events to the notification collaborator.

Delivery is fire-and-forget: a failing sink is logged and counted but never
propagates, so a booking decision is not rolled back or delayed by it.
"""
from datetime import datetime
import logging
from typing import Any, Dict, List, Protocol, Tuple

from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


class NotificationSink(Protocol):
    """Outbound side of the notification collaborator."""

    def send(self, event_type: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotificationSink:
    """Default sink: records events in the application log."""

    def send(self, event_type: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Notification event {event_type}", extra={"event_payload": payload})


class InMemoryNotificationSink:
    """Keeps events in a list; useful for local runs and tests."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def send(self, event_type: str, payload: Dict[str, Any]) -> None:
        self.events.append((event_type, payload))

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.events if name == event_type]


class EventPublisher:
    """Publishes domain events to a notification sink."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink

    def publish(self, event: Event) -> None:
        event_type = type(event).__name__
        payload = event.to_dict()

        # Convert datetime objects to ISO strings for JSON serialization
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()

        try:
            self.sink.send(event_type, payload)
        except Exception as exc:
            # Notifications must never block or undo the booking decision
            logger.error(f"Failed to publish {event_type}: {exc}", exc_info=True)
            prometheus_metrics.record_notification_failure(event_type)
