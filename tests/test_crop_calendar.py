"""
Tests for crop calendar generation, season checks, task completion and the
/api/crop-calendar endpoints.
"""

from datetime import date, timedelta
from unittest.mock import MagicMock, patch

import pytest
from agrihub.services import crop_calendar
from agrihub.services.crop_calendar import (
    SEASON_KHARIF,
    SEASON_RABI,
    SEASON_ZAID,
    generate_tasks,
    recommended_crops,
    season_for_date,
    validate_season,
)


def _calendar(tasks, crop="tomato"):
    return {"id": "cal-1", "user_id": "test-user-id", "crop": crop, "active": True, "tasks": tasks}


def _task(task_id, scheduled, completed=False):
    return {
        "id": task_id,
        "task_type": "irrigation",
        "title": f"Task {task_id}",
        "stage": "Vegetative",
        "scheduled_date": scheduled.isoformat(),
        "completed": completed,
        "completed_date": None,
        "notes": None,
    }


class TestSeasons:

    @pytest.mark.parametrize("month, season", [
        (6, SEASON_KHARIF), (8, SEASON_KHARIF), (10, SEASON_KHARIF),
        (11, SEASON_RABI), (1, SEASON_RABI), (4, SEASON_RABI),
        (5, SEASON_ZAID),
    ])
    def test_season_for_month(self, month, season):
        assert season_for_date(date(2026, month, 15)) == season

    def test_zaid_recommends_only_year_round_crops(self):
        assert [c["name"] for c in recommended_crops(SEASON_ZAID)] == ["sugarcane"]

    def test_rabi_recommendations(self):
        names = [c["name"] for c in recommended_crops(SEASON_RABI)]

        assert names == ["wheat", "sugarcane", "potato", "onion"]

    def test_compatible_crop(self):
        result, error = validate_season("Wheat", date(2026, 11, 10))

        assert error is None
        assert result["is_compatible"] is True
        assert result["selected_season"] == SEASON_RABI

    def test_incompatible_crop(self):
        result, error = validate_season("wheat", date(2026, 7, 1))

        assert error is None
        assert result["is_compatible"] is False
        assert result["crop_season"] == SEASON_RABI
        assert result["selected_season"] == SEASON_KHARIF
        assert "typically grown in rabi" in result["message"]

    def test_unknown_crop(self):
        assert validate_season("dragonfruit", date(2026, 7, 1)) == (None, "Crop not found")


class TestTaskGeneration:

    def test_tomato_schedule(self):
        sowing = date(2026, 7, 1)

        plan = generate_tasks("tomato", sowing)

        assert len(plan["tasks"]) == 22
        assert plan["expected_harvest_date"] == "2026-09-29"
        weekly = [t for t in plan["tasks"] if t["title"].startswith("Regular irrigation")]
        assert len(weekly) == 10
        assert weekly[0]["title"] == "Regular irrigation (Week 1)"
        assert weekly[0]["scheduled_date"] == "2026-07-11"
        assert weekly[-1]["scheduled_date"] == "2026-08-07"
        assert all(t["completed"] is False for t in plan["tasks"])
        assert len({t["id"] for t in plan["tasks"]}) == 22

    def test_negative_offset_schedules_before_sowing(self):
        plan = generate_tasks("wheat", date(2026, 11, 10))

        pre = next(t for t in plan["tasks"] if t["title"] == "Pre-sowing irrigation")
        assert pre["scheduled_date"] == "2026-11-07"

    def test_recurring_tasks_stop_at_crop_duration(self, monkeypatch):
        monkeypatch.setitem(crop_calendar.CROP_TASK_TEMPLATES, "radish", {
            "season": SEASON_RABI,
            "duration_days": 30,
            "tasks": [crop_calendar._task("irrigation", "Water", 10, "Vegetative", recurring=7)],
        })

        plan = generate_tasks("radish", date(2026, 12, 1))

        # day 10, 17, 24; day 31 is past the 30 day duration
        assert [t["scheduled_date"] for t in plan["tasks"]] == ["2026-12-11", "2026-12-18", "2026-12-25"]

    def test_unknown_crop_raises(self):
        with pytest.raises(KeyError):
            generate_tasks("dragonfruit", date(2026, 7, 1))


class TestCalendarStorage:

    @patch('agrihub.services.crop_calendar.require_admin_client')
    def test_season_mismatch_is_not_stored(self, mock_client, db):
        mock_client.return_value = db

        calendar, error = crop_calendar.create_calendar("u1", "wheat", date(2026, 7, 1))

        assert calendar is None
        assert error["is_compatible"] is False
        assert error["selected_season"] == SEASON_KHARIF
        assert error["error"].startswith("Season mismatch")
        db.table.assert_not_called()

    @patch('agrihub.services.crop_calendar.activities.log_activity')
    @patch('agrihub.services.crop_calendar.require_admin_client')
    def test_calendar_is_stored_with_tasks(self, mock_client, mock_log, db):
        mock_client.return_value = db
        db.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[{"id": "cal-9"}])

        calendar, error = crop_calendar.create_calendar(
            "u1", "onion", date(2026, 11, 20), {"district": "Nashik"}
        )

        assert error is None
        assert calendar == {"id": "cal-9"}
        row = db.table.return_value.insert.call_args.args[0]
        assert row["season"] == SEASON_RABI
        assert row["location"] == {"district": "Nashik"}
        assert row["sowing_date"] == "2026-11-20"
        assert row["active"] is True
        assert mock_log.call_args.kwargs["metadata"]["task_count"] == len(row["tasks"])

    @patch('agrihub.services.crop_calendar.get_user_calendars')
    def test_upcoming_tasks_window(self, mock_calendars):
        today = date(2026, 10, 17)
        mock_calendars.return_value = [_calendar([
            _task("late", today + timedelta(days=8)),
            _task("soon", today + timedelta(days=2)),
            _task("done", today + timedelta(days=1), completed=True),
            _task("today", today),
            _task("past", today - timedelta(days=1)),
        ])]

        tasks = crop_calendar.get_upcoming_tasks("u1", days=7, today=today)

        assert [t["id"] for t in tasks] == ["today", "soon"]
        assert tasks[0]["crop"] == "tomato"
        assert tasks[0]["calendar_id"] == "cal-1"


class TestCompleteTask:

    TODAY = date(2026, 10, 17)

    @patch('agrihub.services.crop_calendar.activities.log_activity')
    @patch('agrihub.services.crop_calendar.require_admin_client')
    @patch('agrihub.services.crop_calendar.get_calendar')
    def test_task_due_tomorrow_can_be_completed(self, mock_get, mock_client, mock_log, db):
        mock_client.return_value = db
        mock_get.return_value = _calendar([_task("t1", self.TODAY + timedelta(days=1))])

        task, error = crop_calendar.complete_task("cal-1", "t1", "u1", notes="Done early", today=self.TODAY)

        assert error is None
        assert task["completed"] is True
        assert task["notes"] == "Done early"
        assert task["completed_date"] is not None
        stored = db.table.return_value.update.call_args.args[0]["tasks"]
        assert stored[0]["completed"] is True

    @patch('agrihub.services.crop_calendar.require_admin_client')
    @patch('agrihub.services.crop_calendar.get_calendar')
    def test_task_too_far_ahead_is_refused(self, mock_get, mock_client, db):
        mock_client.return_value = db
        mock_get.return_value = _calendar([_task("t1", self.TODAY + timedelta(days=4))])

        task, error = crop_calendar.complete_task("cal-1", "t1", "u1", today=self.TODAY)

        assert task is None
        assert error["status"] == 400
        assert error["days_until_available"] == 3
        assert "21/10/2026" in error["message"]
        db.table.assert_not_called()

    @patch('agrihub.services.crop_calendar.get_calendar')
    def test_missing_task(self, mock_get):
        mock_get.return_value = _calendar([])

        task, error = crop_calendar.complete_task("cal-1", "nope", "u1", today=self.TODAY)

        assert error == {"error": "Task not found", "status": 404}

    @patch('agrihub.services.crop_calendar.get_calendar')
    def test_missing_calendar(self, mock_get):
        mock_get.return_value = None

        _task_result, error = crop_calendar.complete_task("cal-x", "t1", "u1")

        assert error["status"] == 404


class TestCalendarRoutes:

    @pytest.fixture
    def logged_in(self, test_user):
        with patch('agrihub.utils.auth.get_current_user', return_value=test_user):
            yield test_user

    def test_requires_auth(self, client):
        assert client.get("/api/crop-calendar/my-calendars").status_code == 401

    def test_validate_season_accepts_camel_case_date(self, client, logged_in):
        resp = client.post("/api/crop-calendar/validate-season", json={"crop": "rice", "sowingDate": "2026-07-01"})

        assert resp.status_code == 200
        assert resp.get_json()["is_compatible"] is True

    def test_validate_season_missing_fields(self, client, logged_in):
        resp = client.post("/api/crop-calendar/validate-season", json={"crop": "rice"})

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Crop and sowing date are required"

    def test_recommended_crops_invalid_date(self, client, logged_in):
        resp = client.get("/api/crop-calendar/recommended-crops?date=not-a-date")

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid date"

    def test_recommended_crops(self, client, logged_in):
        resp = client.get("/api/crop-calendar/recommended-crops?date=2026-05-10")

        data = resp.get_json()
        assert data["season"] == SEASON_ZAID
        assert [c["name"] for c in data["recommended_crops"]] == ["sugarcane"]

    @patch('agrihub.routes.crop_calendar.calendar_service.create_calendar')
    def test_create_mismatch_is_400(self, mock_create, client, logged_in):
        mock_create.return_value = (None, {"error": "Season mismatch", "is_compatible": False})

        resp = client.post("/api/crop-calendar/create", json={"crop": "wheat", "sowing_date": "2026-07-01"})

        assert resp.status_code == 400
        assert resp.get_json()["is_compatible"] is False

    @patch('agrihub.routes.crop_calendar.calendar_service.complete_task')
    def test_complete_task_early_is_400(self, mock_complete, client, logged_in):
        mock_complete.return_value = (None, {"error": "Task cannot be completed yet", "days_until_available": 3, "status": 400})

        resp = client.put("/api/crop-calendar/task/cal-1/t1/complete", json={})

        assert resp.status_code == 400
        data = resp.get_json()
        assert data["days_until_available"] == 3
        assert "status" not in data

    @patch('agrihub.routes.crop_calendar.calendar_service.get_upcoming_tasks')
    def test_upcoming_days_capped(self, mock_upcoming, client, logged_in):
        mock_upcoming.return_value = []

        client.get("/api/crop-calendar/upcoming-tasks?days=365")

        mock_upcoming.assert_called_once_with("test-user-id", 90)

    @patch('agrihub.routes.crop_calendar.calendar_service.get_calendar')
    def test_get_missing_calendar(self, mock_get, client, logged_in):
        mock_get.return_value = None

        assert client.get("/api/crop-calendar/cal-x").status_code == 404

    @patch('agrihub.routes.crop_calendar.calendar_service.deactivate_calendar')
    def test_delete_calendar(self, mock_deactivate, client, logged_in):
        mock_deactivate.return_value = (True, None)

        resp = client.delete("/api/crop-calendar/cal-1")

        assert resp.status_code == 200
        mock_deactivate.assert_called_once_with("cal-1", "test-user-id")
