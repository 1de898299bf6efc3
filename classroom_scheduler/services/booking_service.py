import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from classroom_scheduler.core.errors import BookingConflict, BookingNotFound, InvalidRange, InvalidTimeFormat
from classroom_scheduler.core.logger import logger
from classroom_scheduler.models.api_models import (
    BookingCreate,
    BookingUpdate,
    ImportRejection,
    ImportReport,
    StatusResponse,
)
from classroom_scheduler.models.booking import Booking, ClassStatus, RoomSnapshot
from classroom_scheduler.services.availability import (
    fetch_room_bookings,
    find_conflicts,
    is_slot_available,
    validate_range,
)
from classroom_scheduler.services.db_service import db_service
from classroom_scheduler.services.room_board import build_board
from classroom_scheduler.services.status_resolver import is_booking_passed, resolve_status
from classroom_scheduler.services.time_utils import reference_now, to_reference


class BookingService:
    """
    Booking flows of the admin form, the teacher form and the bulk import.
    All of them go through the same availability check before writing.

    The check and the insert are separate requests, so two concurrent
    bookers can both see a free slot. With the exclusion constraint from
    sql/timetable_no_overlap.sql installed, the second insert is rejected
    by the database and surfaces as BookingConflict.
    """

    def __init__(self, db=None):
        self.db = db or db_service

    async def _ensure_available(self, booking: Booking, exclude_booking_id: Optional[int] = None):
        validate_range(booking.start_time, booking.end_time)
        if booking.classroom_id is None:
            # No room picked yet, nothing to collide with
            return

        available = await is_slot_available(
            booking.classroom_id,
            booking.date,
            booking.start_time,
            booking.end_time,
            exclude_booking_id=exclude_booking_id,
            fetch=self.db.get_classroom_bookings,
        )
        if not available:
            raise BookingConflict()

    async def create_booking(self, data: BookingCreate) -> Booking:
        booking = Booking(**data.model_dump())
        logger.info(
            f"📥 Booking Request - Classroom: {booking.classroom_id}, "
            f"Date: {booking.date}, Time: {booking.start_time}-{booking.end_time}"
        )

        await self._ensure_available(booking)

        created = await self.db.insert_bookings([booking])
        logger.info(f"✅ Class '{booking.class_name}' booked (ID {created[0].id if created else '?'})")
        return created[0] if created else booking

    async def update_booking(self, booking_id: int, data: BookingUpdate) -> Booking:
        existing = await self.db.get_booking(booking_id)
        if existing is None:
            raise BookingNotFound(booking_id)

        patch = data.model_dump(exclude_unset=True)
        merged = Booking(**{**existing.model_dump(), **patch})

        # Editing a booking must not conflict with itself
        await self._ensure_available(merged, exclude_booking_id=booking_id)

        updated = await self.db.update_booking(booking_id, merged.to_record())
        if updated is None:
            raise BookingNotFound(booking_id)
        logger.info(f"✏️ Booking {booking_id} updated")
        return updated

    async def update_status(self, booking_id: int, status: ClassStatus) -> Booking:
        existing = await self.db.get_booking(booking_id)
        if existing is None:
            raise BookingNotFound(booking_id)

        if existing.is_canceled and status != ClassStatus.CANCELED:
            # Un-canceling puts the slot back into conflict checking
            await self._ensure_available(existing, exclude_booking_id=booking_id)

        status_id = await self.db.get_status_id(status)
        updated = await self.db.update_booking(booking_id, {"class_status_id": status_id})
        if updated is None:
            raise BookingNotFound(booking_id)
        logger.info(f"🔄 Booking {booking_id} status set to {status.value}")
        return updated

    async def import_bookings(self, rows: List[Dict[str, Any]], teacher_id: Optional[int] = None) -> ImportReport:
        """
        Bulk import of already-parsed CSV rows.
        Every row is checked against stored bookings and against rows accepted
        earlier in the same batch; rejected rows are reported, not inserted.
        """
        report = ImportReport()
        accepted: List[Booking] = []
        stored: Dict[tuple, List[Booking]] = {}

        for index, row in enumerate(rows, start=1):
            try:
                values = {key: (value if value != "" else None) for key, value in row.items()}
                if teacher_id is not None:
                    values["teacher_id"] = teacher_id
                booking = Booking(**BookingCreate(**values).model_dump())
                validate_range(booking.start_time, booking.end_time)

                if booking.classroom_id is not None:
                    key = (booking.classroom_id, booking.date)
                    if key not in stored:
                        # AvailabilityCheckFailed aborts the whole import
                        stored[key] = await fetch_room_bookings(
                            booking.classroom_id, booking.date, self.db.get_classroom_bookings
                        )
                    conflicts = find_conflicts(stored[key] + accepted, booking.classroom_id,
                                               booking.date, booking.start_time, booking.end_time)
                    if conflicts:
                        raise BookingConflict(
                            f"Classroom {booking.classroom_id} is already booked "
                            f"{conflicts[0].start_time}-{conflicts[0].end_time} on {booking.date}",
                            conflicts=conflicts,
                        )
                accepted.append(booking)
            except ValidationError as e:
                report.rejected.append(ImportRejection(row=index, reason=f"Invalid row: {e.errors()[0]['msg']}"))
            except (InvalidRange, InvalidTimeFormat, BookingConflict) as e:
                report.rejected.append(ImportRejection(row=index, reason=str(e)))

        if accepted:
            report.inserted = await self.db.insert_bookings(accepted)
        logger.info(f"📦 Import finished: {len(report.inserted)} inserted, {len(report.rejected)} rejected")
        return report

    async def get_booking_status(self, booking_id: int, now: Optional[datetime.datetime] = None) -> StatusResponse:
        now = now or reference_now()
        booking = await self.db.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)

        room_bookings: List[Booking] = []
        if booking.classroom_id is not None:
            room_bookings = await self.db.get_classroom_bookings(booking.classroom_id, booking.date)

        resolution = resolve_status(booking, now, room_bookings)
        return StatusResponse(booking=booking, status=resolution.status, next_booking=resolution.next_booking)

    async def get_teacher_schedule(self, teacher_id: int, scope: str = "today",
                                   now: Optional[datetime.datetime] = None) -> List[StatusResponse]:
        """
        A teacher's classes for today, tomorrow or everything, with passed
        classes hidden and each status resolved at `now`.
        """
        now = to_reference(now) if now else reference_now()
        date = None
        if scope == "today":
            date = now.date()
        elif scope == "tomorrow":
            date = now.date() + datetime.timedelta(days=1)

        bookings = await self.db.get_teacher_bookings(teacher_id, date)
        schedule = []
        for booking in bookings:
            if is_booking_passed(booking, now):
                continue
            resolution = resolve_status(booking, now)
            schedule.append(StatusResponse(booking=booking, status=resolution.status,
                                           next_booking=resolution.next_booking))
        return schedule

    async def get_floor_board(self, building_id: int, floor_id: int,
                              now: Optional[datetime.datetime] = None,
                              rooms: Optional[list] = None) -> List[RoomSnapshot]:
        now = to_reference(now) if now else reference_now()
        if rooms is None:
            rooms = await self.db.get_floor_classrooms(building_id, floor_id, now.date())
        return build_board(rooms, now)
