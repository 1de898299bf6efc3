import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from classroom_scheduler.services.time_utils import normalize_time, to_minutes


class ClassStatus(str, Enum):
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    DELAYED = "delayed"
    RESCHEDULED = "rescheduled"
    CANCELED = "canceled"
    ENDED = "ended"

    @classmethod
    def _missing_(cls, value):
        # Case-insensitive, and the UI sometimes spells it "cancelled"
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "cancelled":
                normalized = "canceled"
            for member in cls:
                if member.value == normalized:
                    return member
        return None


# Overrides that stick regardless of the clock
STICKY_STATUSES = frozenset({ClassStatus.CANCELED, ClassStatus.RESCHEDULED, ClassStatus.DELAYED})
# Statuses under which the room is free despite the booking record
FREED_STATUSES = STICKY_STATUSES | {ClassStatus.ENDED}


class Booking(BaseModel):
    """A timetable entry: one classroom, one date, one [start, end) window."""
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    classroom_id: Optional[int] = None
    date: datetime.date
    start_time: str
    end_time: str
    manual_status: Optional[ClassStatus] = None

    # Display metadata
    class_name: Optional[str] = None
    teacher_id: Optional[int] = None
    building_id: Optional[int] = None
    floor_id: Optional[int] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def normalize_times(cls, value):
        return normalize_time(value)

    @field_validator("manual_status", mode="before")
    @classmethod
    def parse_status(cls, value):
        if isinstance(value, str):
            # Goes through ClassStatus._missing_ for "Canceled", "cancelled"...
            return ClassStatus(value) if value.strip() else None
        return value

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end_time)

    @property
    def is_canceled(self) -> bool:
        return self.manual_status == ClassStatus.CANCELED

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Booking":
        """
        Builds a Booking from a `timetable` row.
        The manual status comes either flat (`status`) or from the
        `class_status:class_status_id(status)` relation PostgREST embeds.
        """
        status = row.get("status")
        nested = row.get("class_status")
        if isinstance(nested, dict):
            status = nested.get("status")

        return cls(
            id=row.get("id"),
            classroom_id=row.get("classroom_id"),
            date=row["date"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            manual_status=status,
            class_name=row.get("class_name"),
            teacher_id=row.get("teacher_id"),
            building_id=row.get("building_id"),
            floor_id=row.get("floor_id"),
        )

    def to_record(self) -> Dict[str, Any]:
        """Row payload for inserts/updates (id and status are owned by the database)."""
        return self.model_dump(
            mode="json",
            include={"classroom_id", "date", "start_time", "end_time", "class_name",
                     "teacher_id", "building_id", "floor_id"},
        )


class StatusResolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ClassStatus
    next_booking: Optional[Booking] = None


class RoomStatus(str, Enum):
    IN_SESSION = "in-session"
    UPCOMING = "upcoming"
    DELAYED = "delayed"
    RESCHEDULED = "rescheduled"
    CANCELED = "canceled"
    AVAILABLE = "available"
    ENDED = "ended"


# Display board ordering
ROOM_STATUS_PRIORITY = {
    RoomStatus.IN_SESSION: 1,
    RoomStatus.UPCOMING: 2,
    RoomStatus.DELAYED: 3,
    RoomStatus.RESCHEDULED: 4,
    RoomStatus.CANCELED: 5,
    RoomStatus.AVAILABLE: 6,
    RoomStatus.ENDED: 7,
}


class RoomSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    classroom_id: int
    room_number: str
    status: RoomStatus
    is_available: bool
    current_booking: Optional[Booking] = None
    next_booking: Optional[Booking] = None
    minutes_until_next: Optional[int] = Field(default=None, ge=0)
