from fastapi import APIRouter

from classroom_scheduler.models.api_models import BoardResponse
from classroom_scheduler.services.realtime_service import board_cache, realtime_service
from classroom_scheduler.services.time_utils import reference_now
from classroom_scheduler.api.timetable import booking_service

router = APIRouter()

@router.get("/display/{building_id}/{floor_id}", response_model=BoardResponse)
async def floor_display(building_id: int, floor_id: int):
    """
    Live room occupancy for the public screen of one floor.
    Today's timetables come from the cache while the refresher runs (it is
    dropped on every change notification and poll); statuses are always
    resolved against the current reference time.
    """
    now = reference_now()
    today = now.date()

    # Without a refresher nothing would ever expire the cache
    use_cache = realtime_service.running
    rooms = board_cache.get(building_id, floor_id, today) if use_cache else None
    if rooms is None:
        rooms = await booking_service.db.get_floor_classrooms(building_id, floor_id, today)
        if use_cache:
            board_cache.put(building_id, floor_id, rooms, today)

    snapshots = await booking_service.get_floor_board(building_id, floor_id, now=now, rooms=rooms)
    return {"building_id": building_id, "floor_id": floor_id, "generated_at": now, "rooms": snapshots}
