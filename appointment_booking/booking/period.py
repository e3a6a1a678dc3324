# Custom time period classes used for the implementation of the booking calendar
from datetime import datetime, timedelta, timezone
from typing import Dict

from .booking_utils import parse_iso_datetime


"""
Defined as a pair of timezone-aware datetime objects, treated as the half-open interval [start, end).
"""
class Period:

    def __init__(self, start: datetime, end: datetime):
        self.start = start
        self.end = end

    @property
    def start(self):
        return self._start

    @start.setter
    def start(self, start):
        self._start = start

    @property
    def end(self):
        return self._end

    @end.setter
    def end(self, end):
        self._end = end

    def overlaps(self, other: "Period") -> bool:
        # Touching endpoints are not an overlap
        return self.start < other.end and self.end > other.start

    def to_dict(self) -> Dict[str, str]:
        """
        Serialize as UTC ISO-8601 strings with a 'Z' suffix, the format the front-end expects.
        """
        return {"start": _to_utc_iso(self.start), "end": _to_utc_iso(self.end)}

    def __eq__(self, other):
        if not isinstance(other, Period):
            return NotImplemented
        return (self.start, self.end) == (other.start, other.end)

    def __hash__(self):
        return hash((self.start, self.end))

    def __repr__(self):
        return f"{type(self).__name__}({self.start.isoformat()}, {self.end.isoformat()})"


class TimeWindow(Period):
    """Range of instants searched for free slots. A window with start >= end is empty."""

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end


class BusyInterval(Period):
    """Occupied range reported by the calendar. Never mutated here."""

    @classmethod
    def from_dict(cls, raw: Dict[str, str]) -> "BusyInterval":
        # Google freebusy returns {"start": "...Z", "end": "...Z"}
        return cls(parse_iso_datetime(raw["start"]), parse_iso_datetime(raw["end"]))


class Slot(Period):

    LENGTH = timedelta(minutes=30)

    @classmethod
    def starting_at(cls, start: datetime) -> "Slot":
        # Add in UTC so a DST change inside the slot still gives 30 real minutes
        end = (start.astimezone(timezone.utc) + cls.LENGTH).astimezone(start.tzinfo)
        return cls(start, end)


def _to_utc_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
