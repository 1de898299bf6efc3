import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from classroom_scheduler.core.config import settings
from classroom_scheduler.core.errors import DataServiceError
from classroom_scheduler.main import app
from classroom_scheduler.models.booking import Booking
from classroom_scheduler.services.db_service import db_service
from classroom_scheduler.services.realtime_service import board_cache, realtime_service
from classroom_scheduler.services.time_utils import reference_today

client = TestClient(app)

def existing_booking(**overrides):
    values = dict(id=1, classroom_id=5, date="2024-01-10", start_time="09:00", end_time="10:00", class_name="Algebra")
    values.update(overrides)
    return Booking(**values)

def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"

def test_check_availability():
    with patch.object(db_service, "get_classroom_bookings", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.return_value = [existing_booking()]

        payload = {"classroom_id": 5, "date": "2024-01-10", "start_time": "10:00", "end_time": "11:00"}
        response = client.post("/api/timetable/availability", json=payload)
        assert response.status_code == 200
        assert response.json() == {"available": True}

        payload.update(start_time="09:30", end_time="10:30")
        response = client.post("/api/timetable/availability", json=payload)
        assert response.json() == {"available": False}

        payload.update(start_time="09:00", end_time="10:00", exclude_booking_id=1)
        response = client.post("/api/timetable/availability", json=payload)
        assert response.json() == {"available": True}

def test_check_availability_rejects_bad_input():
    payload = {"classroom_id": 5, "date": "2024-01-10", "start_time": "9 o'clock", "end_time": "11:00"}
    assert client.post("/api/timetable/availability", json=payload).status_code == 422

    payload.update(start_time="11:00", end_time="10:00")
    response = client.post("/api/timetable/availability", json=payload)
    assert response.status_code == 422
    assert response.json()["message"] == "Invalid time input"

def test_check_availability_unknown_when_backend_fails():
    with patch.object(db_service, "get_classroom_bookings", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.side_effect = DataServiceError("timeout")
        payload = {"classroom_id": 5, "date": "2024-01-10", "start_time": "10:00", "end_time": "11:00"}
        response = client.post("/api/timetable/availability", json=payload)
        assert response.status_code == 503

def test_create_booking():
    with patch.object(db_service, "get_classroom_bookings", new_callable=AsyncMock) as mock_fetch, \
         patch.object(db_service, "insert_bookings", new_callable=AsyncMock) as mock_insert:
        mock_fetch.return_value = [existing_booking()]
        mock_insert.return_value = [existing_booking(id=2, start_time="10:00", end_time="11:00", class_name="Physics")]

        payload = {"class_name": "Physics", "date": "2024-01-10", "start_time": "10:00:00",
                   "end_time": "11:00:00", "classroom_id": 5}
        response = client.post("/api/timetable", json=payload)

        assert response.status_code == 201
        assert response.json()["id"] == 2
        assert response.json()["start_time"] == "10:00"

def test_create_booking_conflict():
    with patch.object(db_service, "get_classroom_bookings", new_callable=AsyncMock) as mock_fetch, \
         patch.object(db_service, "insert_bookings", new_callable=AsyncMock) as mock_insert:
        mock_fetch.return_value = [existing_booking()]

        payload = {"class_name": "Physics", "date": "2024-01-10", "start_time": "09:30",
                   "end_time": "10:30", "classroom_id": 5}
        response = client.post("/api/timetable", json=payload)

        assert response.status_code == 409
        mock_insert.assert_not_awaited()

def test_update_status_of_missing_booking():
    with patch.object(db_service, "get_booking", new_callable=AsyncMock) as mock_get, \
         patch.object(db_service, "update_booking", new_callable=AsyncMock) as mock_update:
        mock_get.return_value = None

        response = client.patch("/api/timetable/99/status", json={"status": "Cancelled"})

        assert response.status_code == 404
        mock_get.assert_awaited_once_with(99)
        mock_update.assert_not_awaited()

def test_uncancel_status_conflict():
    canceled = existing_booking(manual_status="canceled")
    with patch.object(db_service, "get_booking", new_callable=AsyncMock) as mock_get, \
         patch.object(db_service, "get_classroom_bookings", new_callable=AsyncMock) as mock_fetch, \
         patch.object(db_service, "update_booking", new_callable=AsyncMock) as mock_update:
        mock_get.return_value = canceled
        mock_fetch.return_value = [canceled, existing_booking(id=2)]

        response = client.patch("/api/timetable/1/status", json={"status": "scheduled"})

        assert response.status_code == 409
        mock_update.assert_not_awaited()

def test_get_status():
    with patch.object(db_service, "get_booking", new_callable=AsyncMock) as mock_get, \
         patch.object(db_service, "get_classroom_bookings", new_callable=AsyncMock) as mock_fetch:
        booking = existing_booking(date="2020-01-01")
        mock_get.return_value = booking
        mock_fetch.return_value = [booking]

        response = client.get("/api/timetable/1/status")

        assert response.status_code == 200
        assert response.json()["status"] == "ended"
        assert response.json()["next_booking"] is None

def test_import_bookings():
    with patch.object(db_service, "get_classroom_bookings", new_callable=AsyncMock) as mock_fetch, \
         patch.object(db_service, "insert_bookings", new_callable=AsyncMock) as mock_insert:
        mock_fetch.return_value = [existing_booking()]
        mock_insert.side_effect = lambda rows: rows

        rows = [
            {"class_name": "Physics", "date": "2024-01-10", "start_time": "10:00", "end_time": "11:00", "classroom_id": "5"},
            {"class_name": "Chemistry", "date": "2024-01-10", "start_time": "09:30", "end_time": "10:30", "classroom_id": "5"},
        ]
        response = client.post("/api/timetable/import", json={"rows": rows, "teacher_id": 3})

        assert response.status_code == 200
        data = response.json()
        assert [b["class_name"] for b in data["inserted"]] == ["Physics"]
        assert data["rejected"][0]["row"] == 2

def test_teacher_schedule_rejects_unknown_scope():
    assert client.get("/api/teachers/3/schedule?scope=yesterday").status_code == 422

def floor_rooms():
    today = reference_today()
    return [
        (1, "A-101", [existing_booking(classroom_id=1, date=today, start_time="00:00", end_time="23:59")]),
        (2, "A-102", []),
    ]

def test_floor_display_cached_while_refresher_runs():
    board_cache.invalidate("test")
    with patch.object(settings, "REALTIME_ENABLED", False), \
         patch.object(db_service, "subscribe", new_callable=AsyncMock) as mock_subscribe, \
         patch.object(db_service, "get_floor_classrooms", new_callable=AsyncMock) as mock_rooms:
        mock_rooms.return_value = floor_rooms()

        with TestClient(app) as live_client:
            # Push is off, the poll still expires cached boards
            assert realtime_service.running

            response = live_client.get("/api/display/1/2")
            assert response.status_code == 200
            data = response.json()
            assert [(r["room_number"], r["status"]) for r in data["rooms"]] == [("A-101", "in-session"), ("A-102", "available")]

            # Second read is served from the cache
            live_client.get("/api/display/1/2")
            mock_rooms.assert_awaited_once_with(1, 2, reference_today())

        mock_subscribe.assert_not_awaited()
        assert not realtime_service.running
    board_cache.invalidate("test")

def test_floor_display_refetches_without_refresher():
    board_cache.invalidate("test")
    with patch.object(db_service, "get_floor_classrooms", new_callable=AsyncMock) as mock_rooms:
        mock_rooms.return_value = floor_rooms()

        client.get("/api/display/1/2")
        mock_rooms.return_value = [(1, "A-101", []), (2, "A-102", [])]
        response = client.get("/api/display/1/2")

        assert mock_rooms.await_count == 2
        assert [r["status"] for r in response.json()["rooms"]] == ["available", "available"]
        assert board_cache.get(1, 2, reference_today()) is None

def test_unhandled_error_logs_traceback():
    with patch.object(db_service, "get_booking", new_callable=AsyncMock) as mock_get, \
         patch("classroom_scheduler.main.logger") as mock_logger:
        mock_get.side_effect = RuntimeError("boom")

        response = TestClient(app, raise_server_exceptions=False).get("/api/timetable/1/status")

        assert response.status_code == 500
        logged = mock_logger.opt.call_args.kwargs["exception"]
        assert isinstance(logged, RuntimeError)
        mock_logger.opt.return_value.error.assert_called_once()
