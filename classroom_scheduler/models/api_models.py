import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from classroom_scheduler.models.booking import Booking, ClassStatus, RoomSnapshot
from classroom_scheduler.services.time_utils import normalize_time

# --- Incoming Request Models ---

class AvailabilityRequest(BaseModel):
    classroom_id: int
    date: datetime.date
    start_time: str
    end_time: str
    exclude_booking_id: Optional[int] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def normalize_times(cls, value):
        return normalize_time(value)

class BookingCreate(BaseModel):
    class_name: str = Field(..., min_length=1)
    date: datetime.date
    start_time: str
    end_time: str
    classroom_id: Optional[int] = None
    teacher_id: Optional[int] = None
    building_id: Optional[int] = None
    floor_id: Optional[int] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def normalize_times(cls, value):
        return normalize_time(value)

class BookingUpdate(BaseModel):
    # Only the fields that are sent get changed
    class_name: Optional[str] = None
    date: Optional[datetime.date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    classroom_id: Optional[int] = None
    teacher_id: Optional[int] = None
    building_id: Optional[int] = None
    floor_id: Optional[int] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def normalize_times(cls, value):
        return None if value is None else normalize_time(value)

class StatusUpdate(BaseModel):
    status: ClassStatus

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, value):
        return ClassStatus(value) if isinstance(value, str) else value

class ImportRequest(BaseModel):
    # Rows as they come out of the CSV parser on the client
    rows: List[dict]
    teacher_id: Optional[int] = None


# --- Outgoing Response Models ---

class AvailabilityResponse(BaseModel):
    available: bool

class ImportRejection(BaseModel):
    row: int
    reason: str

class ImportReport(BaseModel):
    inserted: List[Booking] = Field(default_factory=list)
    rejected: List[ImportRejection] = Field(default_factory=list)

class StatusResponse(BaseModel):
    booking: Booking
    status: ClassStatus
    next_booking: Optional[Booking] = None

class ScheduleResponse(BaseModel):
    scope: Literal["today", "tomorrow", "all"]
    classes: List[StatusResponse]

class BoardResponse(BaseModel):
    building_id: int
    floor_id: int
    generated_at: datetime.datetime
    rooms: List[RoomSnapshot]
