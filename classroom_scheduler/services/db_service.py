import datetime
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from postgrest.exceptions import APIError
from supabase import AsyncClient, create_async_client

from classroom_scheduler.core.config import settings
from classroom_scheduler.core.errors import BookingConflict, DataServiceError
from classroom_scheduler.models.booking import Booking, ClassStatus
from classroom_scheduler.services.time_utils import reference_today

logger = logging.getLogger("classroom_scheduler")

# Timetable rows with their manual status embedded
TIMETABLE_SELECT = "*, class_status:class_status_id(status)"
# Postgres exclusion_violation (see sql/timetable_no_overlap.sql)
EXCLUSION_VIOLATION = "23P01"


def _serialize(value: Any) -> Any:
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return value


class DBService:
    _instance = None
    _client: AsyncClient = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(DBService, cls).__new__(cls)
            # Async client is created on first use
        return cls._instance

    async def get_client(self) -> AsyncClient:
        if not self._client:
            if not (settings.SUPABASE_URL and settings.SUPABASE_KEY):
                logger.warning("⚠️ Supabase credentials missing")
                raise DataServiceError("Supabase credentials missing")
            try:
                self._client = await create_async_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
                logger.info("✅ Supabase Async client initialized")
            except Exception as e:
                logger.error(f"❌ Failed to initialize Supabase Async: {e}")
                raise DataServiceError(f"Failed to initialize Supabase: {e}") from e
        return self._client

    def _fail(self, operation: str, error: Exception):
        logger.error(f"❌ DB Error ({operation}): {error}")
        if isinstance(error, APIError) and error.code == EXCLUSION_VIOLATION:
            raise BookingConflict() from error
        raise DataServiceError(f"{operation} failed: {error}") from error

    # --- Generic data-access contract ---

    async def query(self, table: str, filters: Optional[Dict[str, Any]] = None,
                    ordering: Optional[Iterable[str]] = None, columns: str = "*") -> List[dict]:
        """
        Equality filters, ordering by column names ('-column' for descending).
        """
        client = await self.get_client()
        try:
            request = client.table(table).select(columns)
            for column, value in (filters or {}).items():
                request = request.eq(column, _serialize(value))
            for column in ordering or ():
                request = request.order(column.lstrip("-"), desc=column.startswith("-"))
            response = await request.execute()
            return response.data or []
        except Exception as e:
            self._fail(f"query {table}", e)

    async def insert(self, table: str, record: Dict[str, Any]) -> dict:
        rows = await self.insert_many(table, [record])
        return rows[0] if rows else {}

    async def insert_many(self, table: str, records: List[Dict[str, Any]]) -> List[dict]:
        client = await self.get_client()
        try:
            response = await client.table(table).insert(records).execute()
            logger.info(f"✅ Inserted {len(response.data or [])} row(s) into {table}")
            return response.data or []
        except Exception as e:
            self._fail(f"insert {table}", e)

    async def update(self, table: str, record_id: int, patch: Dict[str, Any]) -> Optional[dict]:
        client = await self.get_client()
        try:
            response = await client.table(table).update(patch).eq("id", record_id).execute()
            return response.data[0] if response.data else None
        except Exception as e:
            self._fail(f"update {table}", e)

    async def delete(self, table: str, record_id: int) -> None:
        client = await self.get_client()
        try:
            await client.table(table).delete().eq("id", record_id).execute()
            logger.info(f"🗑️ {table} row {record_id} deleted.")
        except Exception as e:
            self._fail(f"delete {table}", e)

    async def subscribe(self, table: str, event_types: Iterable[str], callback: Callable[[dict], None]):
        """
        Registers `callback` for postgres change events on `table`.
        Returns the realtime channel, pass it to `unsubscribe`.
        """
        client = await self.get_client()
        try:
            channel = client.channel(f"{table}_changes")
            for event in event_types:
                channel.on_postgres_changes(event, schema="public", table=table, callback=callback)
            await channel.subscribe()
            logger.info(f"📡 Subscribed to {table} changes ({', '.join(event_types)})")
            return channel
        except Exception as e:
            self._fail(f"subscribe {table}", e)

    async def unsubscribe(self, channel) -> None:
        client = await self.get_client()
        await client.remove_channel(channel)

    # --- Timetable helpers ---

    async def get_classroom_bookings(self, classroom_id: int, date: datetime.date) -> List[Booking]:
        """All bookings of one classroom on one date, ordered by start time."""
        rows = await self.query(
            settings.TIMETABLE_TABLE,
            {"classroom_id": classroom_id, "date": date},
            ["start_time"],
            columns=TIMETABLE_SELECT,
        )
        return [Booking.from_row(row) for row in rows]

    async def get_booking(self, booking_id: int) -> Optional[Booking]:
        rows = await self.query(settings.TIMETABLE_TABLE, {"id": booking_id}, columns=TIMETABLE_SELECT)
        return Booking.from_row(rows[0]) if rows else None

    async def get_teacher_bookings(self, teacher_id: int,
                                   date: Optional[datetime.date] = None) -> List[Booking]:
        filters = {"teacher_id": teacher_id}
        if date is not None:
            filters["date"] = date
        rows = await self.query(
            settings.TIMETABLE_TABLE, filters, ["date", "start_time"], columns=TIMETABLE_SELECT
        )
        return [Booking.from_row(row) for row in rows]

    async def get_floor_classrooms(self, building_id: int, floor_id: int,
                                   date: Optional[datetime.date] = None) -> list:
        """
        Classrooms of a floor with their embedded timetable for `date`
        (reference today by default).
        Returns (classroom_id, room_number, bookings) tuples.
        """
        date = date or reference_today()
        rows = await self.query(
            settings.CLASSROOMS_TABLE,
            # Filters the embedded rows only, rooms without classes still come back
            {"building_id": building_id, "floor_id": floor_id, "timetable.date": date},
            ["room_number"],
            columns=f"id, room_number, timetable({TIMETABLE_SELECT})",
        )
        return [
            (row["id"], row.get("room_number") or "", [Booking.from_row(t) for t in row.get("timetable") or []])
            for row in rows
        ]

    async def get_status_id(self, status: ClassStatus) -> int:
        rows = await self.query(settings.CLASS_STATUS_TABLE, {"status": status.value}, columns="id")
        if not rows:
            raise DataServiceError(f"Status '{status.value}' is missing from {settings.CLASS_STATUS_TABLE}")
        return rows[0]["id"]

    async def insert_bookings(self, bookings: List[Booking]) -> List[Booking]:
        rows = await self.insert_many(settings.TIMETABLE_TABLE, [b.to_record() for b in bookings])
        return [Booking.from_row(row) for row in rows]

    async def update_booking(self, booking_id: int, patch: Dict[str, Any]) -> Optional[Booking]:
        row = await self.update(settings.TIMETABLE_TABLE, booking_id, patch)
        if row is None:
            return None
        # Re-read so the embedded manual status comes back too
        return await self.get_booking(booking_id)

db_service = DBService()
