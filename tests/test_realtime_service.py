import asyncio
from datetime import date
import pytest
from unittest.mock import AsyncMock, MagicMock

from classroom_scheduler.core.errors import DataServiceError
from classroom_scheduler.services.realtime_service import BoardCache, RealtimeService

def make_db():
    db = MagicMock()
    db.subscribe = AsyncMock(side_effect=lambda table, events, callback: f"{table}-channel")
    db.unsubscribe = AsyncMock()
    return db

def test_cache_roundtrip_and_invalidate():
    cache = BoardCache()
    cache.put(1, 2, ["rooms"])
    assert cache.get(1, 2) == ["rooms"]

    cache.invalidate("test")
    assert cache.get(1, 2) is None
    assert cache.invalidations == 1

def test_change_notification_drops_cache():
    cache = BoardCache()
    cache.put(1, 2, ["rooms"])
    service = RealtimeService(db=make_db(), cache=cache)

    service._on_change({"data": {"table": "class_status", "type": "UPDATE"}})

    assert cache.get(1, 2) is None

@pytest.mark.asyncio
async def test_start_subscribes_to_both_tables_and_stop_cleans_up():
    db = make_db()
    service = RealtimeService(db=db, cache=BoardCache(), refresh_seconds=60)

    await service.start()
    subscribed = [call.args[0] for call in db.subscribe.await_args_list]
    assert subscribed == ["timetable", "class_status"]
    assert all(call.args[1] == ["*"] for call in db.subscribe.await_args_list)

    await service.stop()
    assert db.unsubscribe.await_count == 2
    assert service._poll_task is None

@pytest.mark.asyncio
async def test_periodic_poll_invalidates_cache():
    cache = BoardCache()
    service = RealtimeService(db=make_db(), cache=cache, refresh_seconds=0.01)

    await service.start()
    await asyncio.sleep(0.05)
    await service.stop()

    assert cache.invalidations >= 1

@pytest.mark.asyncio
async def test_polling_still_runs_when_realtime_unavailable():
    db = make_db()
    db.subscribe.side_effect = DataServiceError("Supabase credentials missing")
    service = RealtimeService(db=db, cache=BoardCache(), refresh_seconds=60)

    await service.start()
    assert service._poll_task is not None
    await service.stop()
    db.unsubscribe.assert_not_awaited()

@pytest.mark.asyncio
async def test_poll_runs_with_push_disabled():
    db = make_db()
    cache = BoardCache()
    service = RealtimeService(db=db, cache=cache, refresh_seconds=0.01)

    await service.start(subscribe=False)
    assert service.running
    await asyncio.sleep(0.05)
    await service.stop()

    db.subscribe.assert_not_awaited()
    assert cache.invalidations >= 1
    assert not service.running

def test_cache_is_keyed_by_day():
    cache = BoardCache()
    cache.put(1, 2, ["today"], date(2024, 1, 10))
    assert cache.get(1, 2, date(2024, 1, 10)) == ["today"]
    assert cache.get(1, 2, date(2024, 1, 11)) is None
