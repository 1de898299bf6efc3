"""
Error types raised by the scheduling core and its data-access layer.
All of them are reported synchronously to the caller; the HTTP layer maps
them to status codes in `classroom_scheduler.main`.
"""
from typing import Optional


class SchedulerError(Exception):
    """Base class for every error the scheduler raises on purpose."""


class InvalidTimeFormat(SchedulerError, ValueError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid time format: {value!r} (expected HH:MM, HH:MM:SS or h:MM AM/PM)")


class InvalidRange(SchedulerError, ValueError):
    def __init__(self, start_time, end_time):
        self.start_time = start_time
        self.end_time = end_time
        super().__init__(f"End time {end_time} must be after start time {start_time}")


class AvailabilityCheckFailed(SchedulerError):
    """
    The existing bookings could not be read, so availability is unknown.
    Callers must block the booking action instead of assuming the slot is free.
    """


class BookingConflict(SchedulerError):
    def __init__(self, message: str = "This classroom is already booked for the selected time slot",
                 conflicts: Optional[list] = None):
        self.conflicts = conflicts or []
        super().__init__(message)


class BookingNotFound(SchedulerError):
    def __init__(self, booking_id):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


class DataServiceError(SchedulerError):
    """The Supabase backend is unreachable, misconfigured or rejected a request."""
