from datetime import datetime
from unittest.mock import Mock

from reservo.events import BookingStatusChanged, EventPublisher, InMemoryNotificationSink


def _event() -> BookingStatusChanged:
    return BookingStatusChanged(
        booking_id="b1",
        customer_id="c1",
        previous_status="confirmed",
        status="cancelled",
        changed_at=datetime(2030, 1, 7, 9, 30),
    )


def test_publish_serializes_datetimes() -> None:
    sink = InMemoryNotificationSink()

    EventPublisher(sink).publish(_event())

    assert sink.events == [
        (
            "BookingStatusChanged",
            {
                "booking_id": "b1",
                "customer_id": "c1",
                "previous_status": "confirmed",
                "status": "cancelled",
                "changed_at": "2030-01-07T09:30:00",
                "reason": None,
            },
        )
    ]


def test_failing_sink_does_not_raise() -> None:
    sink = Mock()
    sink.send.side_effect = RuntimeError("smtp down")

    EventPublisher(sink).publish(_event())

    sink.send.assert_called_once()
