import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple

from classroom_scheduler.core.errors import AvailabilityCheckFailed, InvalidRange
from classroom_scheduler.core.logger import logger
from classroom_scheduler.models.booking import Booking
from classroom_scheduler.services.time_utils import TimeLike, to_minutes

BookingFetcher = Callable[[int, datetime.date], Awaitable[List[Booking]]]


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    # Touching boundaries (end_a == start_b) are back-to-back, not a conflict
    return not (end_a <= start_b or start_a >= end_b)


def validate_range(start_time: TimeLike, end_time: TimeLike) -> Tuple[int, int]:
    start, end = to_minutes(start_time), to_minutes(end_time)
    if end <= start:
        raise InvalidRange(start_time, end_time)
    return start, end


def find_conflicts(
    bookings: Iterable[Booking],
    classroom_id: int,
    date: datetime.date,
    start_time: TimeLike,
    end_time: TimeLike,
    exclude_booking_id: Optional[int] = None,
) -> List[Booking]:
    """
    Returns the bookings that overlap the proposed slot.
    Canceled bookings, the excluded booking (edit in place) and records
    for another classroom or date never conflict.
    """
    start, end = validate_range(start_time, end_time)

    conflicts = []
    for booking in bookings:
        if exclude_booking_id is not None and booking.id == exclude_booking_id:
            continue
        if booking.is_canceled:
            continue
        if booking.classroom_id != classroom_id or booking.date != date:
            continue
        if overlaps(start, end, booking.start_minutes, booking.end_minutes):
            conflicts.append(booking)
    return conflicts


def check_slot(
    bookings: Iterable[Booking],
    classroom_id: int,
    date: datetime.date,
    start_time: TimeLike,
    end_time: TimeLike,
    exclude_booking_id: Optional[int] = None,
) -> bool:
    """Pure form of the availability check over already-fetched bookings."""
    return not find_conflicts(bookings, classroom_id, date, start_time, end_time, exclude_booking_id)


async def _default_fetch(classroom_id: int, date: datetime.date) -> List[Booking]:
    # Imported lazily so the pure helpers above carry no Supabase dependency
    from classroom_scheduler.services.db_service import db_service
    return await db_service.get_classroom_bookings(classroom_id, date)


async def fetch_room_bookings(
    classroom_id: int,
    date: datetime.date,
    fetch: Optional[BookingFetcher] = None,
) -> List[Booking]:
    """
    Reads the classroom's bookings for the date.
    Any failure becomes AvailabilityCheckFailed: an unreadable store means
    "cannot confirm availability", never "available".
    """
    fetch = fetch or _default_fetch
    try:
        return list(await fetch(classroom_id, date))
    except Exception as e:
        logger.error(f"❌ Availability check failed for classroom {classroom_id} on {date}: {e}")
        raise AvailabilityCheckFailed(
            f"Could not read bookings for classroom {classroom_id} on {date.isoformat()}"
        ) from e


async def is_slot_available(
    classroom_id: int,
    date: datetime.date,
    start_time: TimeLike,
    end_time: TimeLike,
    exclude_booking_id: Optional[int] = None,
    fetch: Optional[BookingFetcher] = None,
) -> bool:
    """
    Checks whether [start_time, end_time) is free in the classroom on `date`.

    The range is validated before anything is fetched, so InvalidTimeFormat
    and InvalidRange surface without touching the backend.
    """
    validate_range(start_time, end_time)

    bookings = await fetch_room_bookings(classroom_id, date, fetch)
    conflicts = find_conflicts(bookings, classroom_id, date, start_time, end_time, exclude_booking_id)

    if conflicts:
        logger.info(
            f"⛔ Classroom {classroom_id} on {date} {start_time}-{end_time} conflicts with "
            f"{[b.id for b in conflicts]}"
        )
        return False

    logger.debug(f"✅ Classroom {classroom_id} on {date} {start_time}-{end_time} is free")
    return True
