"""
Free slot computation for the booking calendar.

Problem:

Given a time window, the weekly business hours and the busy intervals already on the shared calendar,
list the 30 minute slots a visitor can still book.

Algorithm:
1. Floor the window start to a 30 minute boundary in the business timezone.
2. Step through the window 30 minutes at a time. Once the local hour reaches closing time jump to opening time on
   the next day, so closed hours are never iterated.
3. Keep a slot only on a working weekday, inside opening hours, not earlier than "now" on the current day,
   and not overlapping any busy interval.

The current time is always passed in so results are deterministic for a given input.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .error_utils import TimeValidationError
from .period import BusyInterval, Slot, TimeWindow

logger = logging.getLogger(__name__)

SLOT_MINUTES = 30
STEP = timedelta(minutes=SLOT_MINUTES)
WEEKDAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']


class BusinessHoursTemplate:
    """
    Recurring weekly opening hours.

    Weekdays are numbered 0 = Sunday ... 6 = Saturday, so Monday to Friday is {1, 2, 3, 4, 5}.
    Open hours are [start_hour, end_hour) in the business timezone.
    """

    def __init__(self, start_hour: int, end_hour: int, working_weekdays: Iterable[int]):
        working_weekdays = frozenset(working_weekdays)
        if not (0 <= start_hour <= 23 and 0 <= end_hour <= 23):
            raise TimeValidationError(f"Business hours must be between 0 and 23, got {start_hour}-{end_hour}")
        if start_hour >= end_hour:
            raise TimeValidationError(f"Opening hour {start_hour} must be before closing hour {end_hour}")
        if not working_weekdays <= set(range(7)):
            raise TimeValidationError(f"Working weekdays must be within 0-6, got {sorted(working_weekdays)}")
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.working_weekdays = working_weekdays

    @classmethod
    def from_config(cls, config: Dict[str, object]) -> "BusinessHoursTemplate":
        # Config shape: {"start": 9, "end": 18, "days": [1, 2, 3, 4, 5]}
        return cls(config["start"], config["end"], config["days"])

    def is_working_day(self, local_moment: datetime) -> bool:
        return weekday_number(local_moment) in self.working_weekdays

    def is_open_hour(self, local_moment: datetime) -> bool:
        return self.start_hour <= local_moment.hour < self.end_hour

    def __repr__(self):
        days = ", ".join(WEEKDAY_NAMES[d] for d in sorted(self.working_weekdays))
        return f"BusinessHoursTemplate({self.start_hour}:00-{self.end_hour}:00, {days})"


def weekday_number(moment: datetime) -> int:
    # isoweekday() is Monday=1 ... Sunday=7
    return moment.isoweekday() % 7


def as_timezone(tz: Union[str, tzinfo]) -> tzinfo:
    if isinstance(tz, tzinfo):
        return tz
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise TimeValidationError(f"Unknown timezone '{tz}'")


def generate_slots(window: TimeWindow,
                   hours: BusinessHoursTemplate,
                   busy: Iterable[BusyInterval],
                   reference_now: datetime,
                   tz: Union[str, tzinfo] = "UTC") -> List[Slot]:
    """
    Bookable 30 minute slots inside *window*, in ascending order.

    Input: window to search, opening hours, busy intervals (any order), the current time and the business timezone.
        Naive datetimes are read as local time in *tz*.

    Returns: list of Slot objects with start/end in *tz*. Empty for an empty window.
    """
    tz = as_timezone(tz)
    start = _localize(window.start, tz).astimezone(timezone.utc)
    end = _localize(window.end, tz).astimezone(timezone.utc)
    if start >= end:
        return []

    busy = list(busy)
    now = _localize(reference_now, tz).astimezone(timezone.utc)
    now_date = now.astimezone(tz).date()

    # Cursor is kept in UTC so comparisons and steps use absolute time across DST changes
    cursor = _roll_into_hours(_floor_to_slot(start.astimezone(tz)).astimezone(timezone.utc), hours, tz)
    slots = []
    while cursor < end:
        slot = Slot.starting_at(cursor.astimezone(tz))
        if _is_bookable(slot, hours, busy, now, now_date):
            slots.append(slot)
        cursor = _roll_into_hours(cursor + STEP, hours, tz)
    logger.debug("Generated %d slots between %s and %s", len(slots), start, end)
    return slots


def default_window(now: datetime, hours: BusinessHoursTemplate, tz: Union[str, tzinfo], days: int = 365) -> TimeWindow:
    """
    Server side default search window: from *now* until closing time *days* days later.
    """
    tz = as_timezone(tz)
    local_now = _localize(now, tz).astimezone(tz)
    last_day = local_now.date() + timedelta(days=days)
    return TimeWindow(local_now, _at_local_hour(last_day, hours.end_hour, tz))


def day_window(day: date, tz: Union[str, tzinfo]) -> TimeWindow:
    """Whole local calendar day, midnight to midnight, for the ?date= query parameter."""
    tz = as_timezone(tz)
    return TimeWindow(_at_local_hour(day, 0, tz), _at_local_hour(day + timedelta(days=1), 0, tz))


def _is_bookable(slot: Slot, hours: BusinessHoursTemplate, busy: List[BusyInterval],
                 now: datetime, now_date: date) -> bool:
    local_start = slot.start
    if not hours.is_working_day(local_start) or not hours.is_open_hour(local_start):
        return False
    # No slots in the past on the current day
    if local_start.date() == now_date and local_start < now:
        return False
    return not any(slot.overlaps(interval) for interval in busy)


def _roll_into_hours(cursor: datetime, hours: BusinessHoursTemplate, tz: tzinfo) -> datetime:
    """
    Move a UTC cursor that sits outside opening hours to the next opening time.
    After closing -> next day's opening, before opening -> same day's opening.
    """
    local = cursor.astimezone(tz)
    if local.hour >= hours.end_hour:
        target = _at_local_hour(local.date() + timedelta(days=1), hours.start_hour, tz)
    elif local.hour < hours.start_hour:
        target = _at_local_hour(local.date(), hours.start_hour, tz)
    else:
        return cursor
    target = target.astimezone(timezone.utc)
    # Guard against an opening hour that falls inside a DST gap
    return target if target > cursor else cursor + STEP


def _floor_to_slot(moment: datetime) -> datetime:
    return moment.replace(minute=moment.minute - moment.minute % SLOT_MINUTES, second=0, microsecond=0)


def _at_local_hour(day: date, hour: int, tz: tzinfo) -> datetime:
    return datetime.combine(day, time(hour), tzinfo=tz)


def _localize(moment: datetime, tz: tzinfo) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment
