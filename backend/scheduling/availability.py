"""Appointment availability calculations.

Every function here is a pure computation over the snapshot it is handed.
Nothing in this module locks or persists anything: a conflict verdict is only
authoritative when ``has_conflict`` runs inside the booking transaction (see
``backend.database.lock_booking_date``).
"""

import re
from collections.abc import Iterable
from datetime import date, datetime, time

SLOT_INTERVAL_MINUTES = 30
BOOKING_BUFFER_MINUTES = 30
SAME_DAY_LEAD_MINUTES = 60
CANCELLED_STATUS = 'cancelled'

_TIME_PATTERN = re.compile(r'^([0-1]?[0-9]|2[0-3]):([0-5][0-9])(?::([0-5][0-9]))?$')
_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_LABEL_PATTERN = re.compile(r'^(1[0-2]|0?[1-9]):([0-5][0-9])\s*(AM|PM)$', re.IGNORECASE)


class InvalidScheduleInput(ValueError):
    """Raised when a date, time-of-day or day-of-week value is malformed."""


def parse_time_of_day(value: str | time) -> time:
    if isinstance(value, time):
        return value.replace(microsecond=0)
    if not isinstance(value, str):
        raise InvalidScheduleInput(f'Invalid time of day: {value!r}')

    match = _TIME_PATTERN.match(value.strip())
    if match is None:
        raise InvalidScheduleInput(f'Invalid time of day (expected HH:MM or HH:MM:SS): {value!r}')

    hours, minutes, seconds = match.groups()
    return time(int(hours), int(minutes), int(seconds or 0))


def parse_calendar_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_PATTERN.match(value.strip()):
        raise InvalidScheduleInput(f'Invalid date (expected YYYY-MM-DD): {value!r}')

    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise InvalidScheduleInput(f'Invalid date (expected YYYY-MM-DD): {value!r}') from exc


def validate_day_of_week(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 6:
        raise InvalidScheduleInput(f'Day of week must be between 0 (Sunday) and 6 (Saturday): {value!r}')
    return value


def day_of_week(day: date) -> int:
    """Return the weekday index with 0 = Sunday."""
    return day.isoweekday() % 7


def minutes_since_midnight(value: str | time) -> int:
    parsed = parse_time_of_day(value)
    return parsed.hour * 60 + parsed.minute


def format_time_label(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    period = 'PM' if hours >= 12 else 'AM'
    display_hours = hours - 12 if hours > 12 else 12 if hours == 0 else hours
    return f'{display_hours}:{mins:02d} {period}'


def parse_time_label(label: str) -> time:
    """Convert a 12-hour label such as ``"2:30 PM"`` back to a time of day."""
    match = _LABEL_PATTERN.match(label.strip()) if isinstance(label, str) else None
    if match is None:
        raise InvalidScheduleInput(f'Invalid time label (expected H:MM AM/PM): {label!r}')

    hours, minutes, period = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if period == 'PM' and hours != 12:
        hours += 12
    if period == 'AM' and hours == 12:
        hours = 0
    return time(hours, minutes)


def find_business_hours(day: date, business_hours: Iterable):
    windows = list(business_hours)
    for window in windows:
        validate_day_of_week(window.day_of_week)

    weekday = day_of_week(day)
    for window in windows:
        if window.day_of_week == weekday and window.is_available:
            return window
    return None


def is_date_offerable(
    day: str | date,
    blocked_dates: Iterable,
    business_hours: Iterable,
    today: date | None = None,
) -> bool:
    day = parse_calendar_date(day)
    today = today or date.today()

    if day < today:
        return False

    if any(blocked.date == day for blocked in blocked_dates):
        return False

    return find_business_hours(day, business_hours) is not None


def intervals_conflict(
    start_minutes: int,
    end_minutes: int,
    booked_start_minutes: int,
    booked_end_minutes: int,
    buffer_minutes: int = BOOKING_BUFFER_MINUTES,
) -> bool:
    return (
        start_minutes < booked_end_minutes + buffer_minutes
        and end_minutes > booked_start_minutes - buffer_minutes
    )


def _blocking_bookings(day: date, existing_bookings: Iterable, exclude_booking_id=None) -> list:
    blocking = []
    for booking in existing_bookings:
        if booking.date != day or booking.status == CANCELLED_STATUS:
            continue
        if exclude_booking_id is not None and str(booking.id) == str(exclude_booking_id):
            continue
        blocking.append(
            (minutes_since_midnight(booking.start_time), minutes_since_midnight(booking.end_time))
        )
    return blocking


def _overlaps_any(start_minutes: int, end_minutes: int, blocking: list) -> bool:
    return any(
        intervals_conflict(start_minutes, end_minutes, booked_start, booked_end)
        for booked_start, booked_end in blocking
    )


def generate_slots(
    day: str | date,
    service,
    business_hours: Iterable,
    existing_bookings: Iterable,
    now: datetime | None = None,
) -> list[str]:
    day = parse_calendar_date(day)
    duration = service.duration_minutes
    if duration <= 0:
        raise InvalidScheduleInput(f'Service duration must be positive: {duration!r}')

    window = find_business_hours(day, business_hours)
    if window is None:
        return []

    window_start = minutes_since_midnight(window.start_time)
    window_end = minutes_since_midnight(window.end_time)
    blocking = _blocking_bookings(day, existing_bookings)

    earliest_start = None
    if now is not None and now.date() == day:
        earliest_start = now.hour * 60 + now.minute + SAME_DAY_LEAD_MINUTES

    slots: list[str] = []
    candidate = window_start
    while candidate + duration <= window_end:
        if earliest_start is None or candidate > earliest_start:
            if not _overlaps_any(candidate, candidate + duration, blocking):
                slots.append(format_time_label(candidate))
        candidate += SLOT_INTERVAL_MINUTES

    return slots


def has_conflict(
    day: str | date,
    start_time: str | time,
    duration_minutes: int,
    existing_bookings: Iterable,
    exclude_booking_id=None,
) -> bool:
    day = parse_calendar_date(day)
    if duration_minutes <= 0:
        raise InvalidScheduleInput(f'Duration must be positive: {duration_minutes!r}')

    start_minutes = minutes_since_midnight(start_time)
    blocking = _blocking_bookings(day, existing_bookings, exclude_booking_id)
    return _overlaps_any(start_minutes, start_minutes + duration_minutes, blocking)
