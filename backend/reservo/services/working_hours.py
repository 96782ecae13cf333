# backend/reservo/services/working_hours.py
"""
Working hours resolution.

Business and resource schedules are stored as a weekday -> day-entry map:

    {"monday": {"isOpen": true, "openTime": "09:00", "closeTime": "17:00"}, ...}

Older rows hold the same map as a JSON-encoded string, and some hold NULL.
The stored value is classified once into a tagged variant and resolved to a
DayHours for a calendar date. Nothing here raises on bad data:

- NULL, or a string that is not valid JSON: the default schedule applies
- a day entry that is missing, not an object, marked closed, or has a missing
  or unparseable open/close time: closed for that day

Bad data is logged at WARNING so it can be fixed at the source.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
import json
import logging
from typing import Any, Final, Mapping, Optional, Union

logger = logging.getLogger(__name__)

WEEKDAY_NAMES: Final = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_WEEKDAY_OPEN: Final = {"isOpen": True, "openTime": "09:00", "closeTime": "17:00"}
_WEEKEND_CLOSED: Final = {"isOpen": False}

DEFAULT_WORKING_HOURS: Final[Mapping[str, Mapping[str, Any]]] = {
    "monday": _WEEKDAY_OPEN,
    "tuesday": _WEEKDAY_OPEN,
    "wednesday": _WEEKDAY_OPEN,
    "thursday": _WEEKDAY_OPEN,
    "friday": _WEEKDAY_OPEN,
    "saturday": _WEEKEND_CLOSED,
    "sunday": _WEEKEND_CLOSED,
}


@dataclass(frozen=True)
class DayHours:
    """Open window for one calendar day, or closed."""

    is_open: bool
    open_time: Optional[time] = None
    close_time: Optional[time] = None

    @classmethod
    def closed(cls) -> "DayHours":
        return cls(is_open=False)

    def covers(self, start: time, end: time) -> bool:
        """True if [start, end) lies inside the open window."""
        if not self.is_open or self.open_time is None or self.close_time is None:
            return False
        return self.open_time <= start and end <= self.close_time


@dataclass(frozen=True)
class RawWorkingHours:
    """JSON text as stored; parsed lazily on resolution."""

    text: str


@dataclass(frozen=True)
class StructuredWorkingHours:
    days: Mapping[str, Any]


@dataclass(frozen=True)
class AbsentWorkingHours:
    pass


WorkingHours = Union[RawWorkingHours, StructuredWorkingHours, AbsentWorkingHours]


def classify_working_hours(raw: Any) -> WorkingHours:
    """Tag a stored working-hours value by its shape."""
    if raw is None:
        return AbsentWorkingHours()
    if isinstance(raw, (RawWorkingHours, StructuredWorkingHours, AbsentWorkingHours)):
        return raw
    if isinstance(raw, str):
        return RawWorkingHours(raw)
    if isinstance(raw, Mapping):
        return StructuredWorkingHours(raw)
    logger.warning("Working hours has unexpected type %s; treating every day as closed", type(raw))
    return StructuredWorkingHours({})


def _load(hours: WorkingHours) -> Optional[Mapping[str, Any]]:
    """Return the weekday map, or None when the value counts as absent."""
    if isinstance(hours, AbsentWorkingHours):
        return None
    if isinstance(hours, StructuredWorkingHours):
        return hours.days
    try:
        parsed = json.loads(hours.text)
    except ValueError:
        logger.warning("Working hours JSON could not be parsed; using default schedule")
        return None
    if parsed is None:
        return None
    if not isinstance(parsed, Mapping):
        logger.warning("Working hours JSON is not an object; treating every day as closed")
        return {}
    return parsed


def parse_time(value: Any) -> Optional[time]:
    """Parse "HH:MM" (or "HH:MM:SS"); None for anything else."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        return None
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except ValueError:
            continue
    return None


def _day_hours_from_entry(entry: Any, weekday: str) -> DayHours:
    if entry is None:
        return DayHours.closed()
    if not isinstance(entry, Mapping):
        logger.warning("Working hours entry for %s is malformed: %r", weekday, entry)
        return DayHours.closed()
    if not entry.get("isOpen", False):
        return DayHours.closed()

    open_time = parse_time(entry.get("openTime"))
    close_time = parse_time(entry.get("closeTime"))
    if open_time is None or close_time is None:
        logger.warning(
            "Working hours for %s has invalid times open=%r close=%r; treating as closed",
            weekday,
            entry.get("openTime"),
            entry.get("closeTime"),
        )
        return DayHours.closed()
    return DayHours(is_open=True, open_time=open_time, close_time=close_time)


def resolve_day_hours(raw: Any, target_date: date) -> DayHours:
    """
    Resolve a stored schedule to the window for ``target_date``.

    Args:
        raw: Mapping, JSON string, None, or an already classified variant
        target_date: Calendar date whose weekday is looked up

    Returns:
        DayHours for that date; never raises
    """
    days = _load(classify_working_hours(raw))
    if days is None:
        days = DEFAULT_WORKING_HOURS
    weekday = WEEKDAY_NAMES[target_date.weekday()]
    return _day_hours_from_entry(days.get(weekday), weekday)


def resolve_effective_day_hours(override: Any, fallback: Any, target_date: date) -> DayHours:
    """
    Resolve a resource's hours: its own schedule when present, else the business's.

    An override that is NULL or unparseable counts as absent and falls back.
    """
    override_days = _load(classify_working_hours(override))
    if override_days is None:
        return resolve_day_hours(fallback, target_date)
    weekday = WEEKDAY_NAMES[target_date.weekday()]
    return _day_hours_from_entry(override_days.get(weekday), weekday)
