# backend/reservo/services/slot_generator.py
"""
Candidate slot generation.

Slots start at the opening time and step by the service duration, so a
45-minute service open 09:00-11:00 yields 09:00 and 09:45 (10:30 would end
at 11:15). A slot is emitted only if it ends at or before closing time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterator, Optional, Union

from .working_hours import DayHours, parse_time

TimeLike = Union[str, time, None]


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def format_hhmm(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


@dataclass(frozen=True)
class SlotSequence:
    """
    Ordered, finite and restartable sequence of slot start times.

    Iterating yields "HH:MM" strings; ``times()`` yields ``datetime.time``.
    Empty when a bound is missing, open >= close, or duration <= 0.
    """

    open_time: Optional[time]
    close_time: Optional[time]
    duration_minutes: int

    def times(self) -> Iterator[time]:
        if self.open_time is None or self.close_time is None or self.duration_minutes <= 0:
            return
        start = _minutes(self.open_time)
        close = _minutes(self.close_time)
        while start + self.duration_minutes <= close:
            yield time(start // 60, start % 60)
            start += self.duration_minutes

    def __iter__(self) -> Iterator[str]:
        return (format_hhmm(value) for value in self.times())

    def __len__(self) -> int:
        return sum(1 for _ in self.times())

    def intervals(self, on: date) -> Iterator[tuple[datetime, datetime]]:
        """Yield (start, end) datetimes for each slot on the given date."""
        step = timedelta(minutes=self.duration_minutes)
        for value in self.times():
            start = datetime.combine(on, value)
            yield start, start + step


def generate_slots(open_time: TimeLike, close_time: TimeLike, duration_minutes: int) -> SlotSequence:
    """Build the slot sequence for a window given as "HH:MM" strings or times."""
    return SlotSequence(parse_time(open_time), parse_time(close_time), duration_minutes)


def generate_slots_for_day(day: DayHours, duration_minutes: int) -> SlotSequence:
    if not day.is_open:
        return SlotSequence(None, None, duration_minutes)
    return SlotSequence(day.open_time, day.close_time, duration_minutes)
