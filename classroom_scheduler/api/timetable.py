from typing import Literal

from fastapi import APIRouter, Query

from classroom_scheduler.models.api_models import (
    AvailabilityRequest,
    AvailabilityResponse,
    BookingCreate,
    BookingUpdate,
    ImportReport,
    ImportRequest,
    ScheduleResponse,
    StatusResponse,
    StatusUpdate,
)
from classroom_scheduler.models.booking import Booking
from classroom_scheduler.services.availability import is_slot_available
from classroom_scheduler.services.booking_service import BookingService

router = APIRouter()
booking_service = BookingService()

@router.post("/timetable/availability", response_model=AvailabilityResponse)
async def check_availability(req: AvailabilityRequest):
    available = await is_slot_available(
        req.classroom_id,
        req.date,
        req.start_time,
        req.end_time,
        exclude_booking_id=req.exclude_booking_id,
        fetch=booking_service.db.get_classroom_bookings,
    )
    return {"available": available}

@router.post("/timetable", response_model=Booking, status_code=201)
async def create_booking(req: BookingCreate):
    return await booking_service.create_booking(req)

@router.put("/timetable/{booking_id}", response_model=Booking)
async def update_booking(booking_id: int, req: BookingUpdate):
    return await booking_service.update_booking(booking_id, req)

@router.patch("/timetable/{booking_id}/status", response_model=Booking)
async def update_status(booking_id: int, req: StatusUpdate):
    return await booking_service.update_status(booking_id, req.status)

@router.get("/timetable/{booking_id}/status", response_model=StatusResponse)
async def get_status(booking_id: int):
    return await booking_service.get_booking_status(booking_id)

@router.post("/timetable/import", response_model=ImportReport)
async def import_bookings(req: ImportRequest):
    return await booking_service.import_bookings(req.rows, teacher_id=req.teacher_id)

@router.get("/teachers/{teacher_id}/schedule", response_model=ScheduleResponse)
async def teacher_schedule(teacher_id: int, scope: Literal["today", "tomorrow", "all"] = Query("today")):
    classes = await booking_service.get_teacher_schedule(teacher_id, scope)
    return {"scope": scope, "classes": classes}
