import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from classroom_scheduler.core.config import settings
from classroom_scheduler.models.booking import (
    ROOM_STATUS_PRIORITY,
    Booking,
    ClassStatus,
    RoomSnapshot,
    RoomStatus,
)
from classroom_scheduler.services.status_resolver import is_room_available, resolve_status
from classroom_scheduler.services.time_utils import minutes_of_day, minutes_until, to_reference

RoomEntry = Tuple[int, str, Sequence[Booking]]


def _upcoming(todays: Sequence[Booking], now_minutes: int, skip: Optional[Booking] = None) -> Optional[Booking]:
    for booking in todays:
        if booking is skip:
            continue
        if not booking.is_canceled and booking.start_minutes > now_minutes:
            return booking
    return None


def resolve_room(
    classroom_id: int,
    room_number: str,
    bookings: Iterable[Booking],
    now: datetime.datetime,
    upcoming_window: Optional[int] = None,
) -> RoomSnapshot:
    """
    Live status of one classroom for the public display board.

    The current session is today's booking that resolves to ongoing, or
    else one whose window contains `now`.
    Without one, a class starting within `upcoming_window` minutes makes
    the room "upcoming"; otherwise it is "available", or "ended" once
    every class of the day is over.
    """
    if upcoming_window is None:
        upcoming_window = settings.UPCOMING_WINDOW_MINUTES

    now = to_reference(now)
    today, now_minutes = now.date(), minutes_of_day(now)
    todays = sorted(
        (b for b in bookings if b.date == today),
        key=lambda b: (b.start_minutes, b.end_minutes),
    )

    # A manual "ongoing" holds the room even outside its clock window
    resolved = [(b, resolve_status(b, now, todays)) for b in todays]
    covering = [(b, r) for b, r in resolved
                if r.status == ClassStatus.ONGOING or b.start_minutes <= now_minutes <= b.end_minutes]
    # A running class wins over a canceled one sharing the same minute
    covering.sort(key=lambda pair: pair[1].status != ClassStatus.ONGOING)

    current, next_booking = None, None
    if covering:
        current, resolution = covering[0]
        if resolution.status == ClassStatus.ONGOING:
            status = RoomStatus.IN_SESSION
            next_booking = _upcoming(todays, now_minutes, skip=current)
        else:
            status = RoomStatus(resolution.status.value)
            next_booking = resolution.next_booking
    else:
        next_booking = _upcoming(todays, now_minutes)
        if next_booking and minutes_until(next_booking.start_time, now) <= upcoming_window:
            status = RoomStatus.UPCOMING
        elif todays and all(now_minutes > b.end_minutes for b in todays):
            status = RoomStatus.ENDED
        else:
            status = RoomStatus.AVAILABLE

    return RoomSnapshot(
        classroom_id=classroom_id,
        room_number=room_number,
        status=status,
        is_available=is_room_available(todays, today, now),
        current_booking=current,
        next_booking=next_booking,
        minutes_until_next=minutes_until(next_booking.start_time, now) if next_booking else None,
    )


def build_board(rooms: Iterable[RoomEntry], now: datetime.datetime) -> List[RoomSnapshot]:
    """Snapshots for a floor, busiest rooms first, then by room number."""
    snapshots = [
        resolve_room(classroom_id, room_number, bookings, now)
        for classroom_id, room_number, bookings in rooms
    ]
    return sorted(snapshots, key=lambda s: (ROOM_STATUS_PRIORITY[s.status], s.room_number))
