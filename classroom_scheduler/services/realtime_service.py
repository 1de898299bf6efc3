import asyncio
import contextlib
import datetime
from typing import Dict, List, Optional, Tuple

from classroom_scheduler.core.config import settings
from classroom_scheduler.core.errors import DataServiceError
from classroom_scheduler.core.logger import logger
from classroom_scheduler.services.db_service import db_service


class BoardCache:
    """
    Floor timetables keyed by (building_id, floor_id, day).
    Only raw bookings are cached; statuses are resolved on every read.
    """

    def __init__(self):
        self._rooms: Dict[Tuple[int, int, Optional[datetime.date]], list] = {}
        self.invalidations = 0

    def get(self, building_id: int, floor_id: int, day: Optional[datetime.date] = None) -> Optional[list]:
        return self._rooms.get((building_id, floor_id, day))

    def put(self, building_id: int, floor_id: int, rooms: list, day: Optional[datetime.date] = None):
        self._rooms[(building_id, floor_id, day)] = rooms

    def invalidate(self, reason: str = ""):
        self._rooms.clear()
        self.invalidations += 1
        logger.debug(f"♻️ Board cache cleared ({reason or 'manual'})")


board_cache = BoardCache()


def _changed_table(payload) -> str:
    if not isinstance(payload, dict):
        return "unknown"
    data = payload.get("data")
    if isinstance(data, dict) and data.get("table"):
        return data["table"]
    return payload.get("table", "unknown")


class RealtimeService:
    """
    Keeps the display board fresh: push notifications from Supabase on the
    timetable and class_status tables, with a periodic re-poll as fallback.
    Delivery is best effort; every trigger just drops the cache.
    """

    def __init__(self, db=None, cache: Optional[BoardCache] = None, refresh_seconds: Optional[int] = None):
        self.db = db or db_service
        self.cache = cache or board_cache
        self.refresh_seconds = refresh_seconds or settings.DISPLAY_REFRESH_SECONDS
        self.tables = (settings.TIMETABLE_TABLE, settings.CLASS_STATUS_TABLE)
        self._channels: List = []
        self._poll_task: Optional[asyncio.Task] = None

    def _on_change(self, payload):
        table = _changed_table(payload)
        logger.info(f"🔔 Change received on {table}")
        self.cache.invalidate(f"{table} change")

    @property
    def running(self) -> bool:
        """True while the fallback poll is alive, i.e. while cached boards expire."""
        return self._poll_task is not None and not self._poll_task.done()

    async def start(self, subscribe: bool = True):
        """
        Starts the fallback poll and, when `subscribe` is set, the push
        subscriptions. The poll always runs so the cache never goes stale.
        """
        if subscribe:
            for table in self.tables:
                try:
                    channel = await self.db.subscribe(table, ["*"], self._on_change)
                    self._channels.append(channel)
                except DataServiceError as e:
                    logger.warning(f"⚠️ Realtime unavailable for {table}, relying on polling: {e}")
        else:
            logger.info("ℹ️ Realtime push disabled, relying on polling")

        self._poll_task = asyncio.create_task(self._poll())
        logger.info(f"🚀 Board refresh started (poll every {self.refresh_seconds}s)")

    async def _poll(self):
        while True:
            await asyncio.sleep(self.refresh_seconds)
            self.cache.invalidate("periodic refresh")

    async def stop(self):
        if self._poll_task:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None

        for channel in self._channels:
            try:
                await self.db.unsubscribe(channel)
            except Exception as e:
                logger.warning(f"⚠️ Failed to unsubscribe channel: {e}")
        self._channels.clear()
        logger.info("🛑 Realtime refresh stopped")


realtime_service = RealtimeService()
