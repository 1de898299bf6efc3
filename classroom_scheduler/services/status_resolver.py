import datetime
from typing import Iterable, Optional

from classroom_scheduler.models.booking import (
    FREED_STATUSES,
    STICKY_STATUSES,
    Booking,
    ClassStatus,
    StatusResolution,
)
from classroom_scheduler.services.time_utils import minutes_of_day, to_reference


def _window_closed(booking: Booking, today: datetime.date, now_minutes: int) -> bool:
    return booking.date < today or (booking.date == today and now_minutes > booking.end_minutes)


def is_booking_passed(booking: Booking, now: datetime.datetime) -> bool:
    """True once the booking's date/time window lies entirely in the past."""
    now = to_reference(now)
    return _window_closed(booking, now.date(), minutes_of_day(now))


def _derive_from_time(booking: Booking, today: datetime.date, now_minutes: int) -> ClassStatus:
    if booking.date < today:
        return ClassStatus.ENDED
    if booking.date == today:
        # Both ends inclusive: at 10:00 a 09:00-10:00 class is still running
        if booking.start_minutes <= now_minutes <= booking.end_minutes:
            return ClassStatus.ONGOING
        if now_minutes > booking.end_minutes:
            return ClassStatus.ENDED
    return ClassStatus.SCHEDULED


def find_next_booking(
    room_bookings: Iterable[Booking],
    booking: Booking,
    now: datetime.datetime,
) -> Optional[Booking]:
    """
    Earliest non-canceled booking of the same classroom on the same date
    that starts strictly after `now`. The booking itself is skipped.
    """
    now = to_reference(now)
    today, now_minutes = now.date(), minutes_of_day(now)

    if booking.date < today:
        return None

    candidates = [
        other for other in room_bookings
        if other.classroom_id == booking.classroom_id
        and other.date == booking.date
        and not other.is_canceled
        and not (booking.id is not None and other.id == booking.id)
        and (booking.date > today or other.start_minutes > now_minutes)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda b: (b.start_minutes, b.end_minutes))


def resolve_status(
    booking: Booking,
    now: datetime.datetime,
    room_bookings: Iterable[Booking] = (),
) -> StatusResolution:
    """
    Display status of a booking at `now`.

    Canceled, rescheduled and delayed overrides stick. A manual "ongoing"
    turns into "ended" once the window has closed. Without an override
    (or with a manual "scheduled") the status follows the clock.

    When the room is effectively free (canceled/rescheduled/delayed/ended),
    the next class in the same room that day is attached for display.
    """
    now = to_reference(now)
    today, now_minutes = now.date(), minutes_of_day(now)
    manual = booking.manual_status

    if manual in STICKY_STATUSES:
        status = manual
    elif manual == ClassStatus.ONGOING:
        status = ClassStatus.ENDED if _window_closed(booking, today, now_minutes) else ClassStatus.ONGOING
    elif manual == ClassStatus.ENDED:
        status = ClassStatus.ENDED
    else:
        status = _derive_from_time(booking, today, now_minutes)

    next_booking = None
    if status in FREED_STATUSES:
        next_booking = find_next_booking(room_bookings, booking, now)

    return StatusResolution(status=status, next_booking=next_booking)


def is_room_available(
    room_bookings: Iterable[Booking],
    date: datetime.date,
    now: datetime.datetime,
) -> bool:
    """A room is occupied only by a booking on `date` that resolves to ongoing."""
    return not any(
        resolve_status(booking, now).status == ClassStatus.ONGOING
        for booking in room_bookings
        if booking.date == date
    )
