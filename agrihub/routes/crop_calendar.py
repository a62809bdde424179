"""
Crop calendar JSON endpoints (prefix /api/crop-calendar).

All endpoints require authentication; calendars are always scoped to the caller.
"""

from __future__ import annotations
from flask import Blueprint, request, jsonify
from agrihub.utils.auth import require_auth, get_current_user_id
from agrihub.utils.errors import sanitize_error
from agrihub.utils import validation
from agrihub.services import crop_calendar as calendar_service

calendar_bp = Blueprint("crop_calendar", __name__, url_prefix="/api/crop-calendar")

MAX_UPCOMING_DAYS = 90


@calendar_bp.route("/validate-season", methods=["POST"])
@require_auth
def validate_season():
    """Request body (JSON): {"crop": str, "sowing_date": "YYYY-MM-DD"}"""
    payload, error = validation.validate_calendar_request(request.get_json(silent=True) or {})
    if error:
        return jsonify({"success": False, "error": error}), 400

    result, error = calendar_service.validate_season(payload["crop"], payload["sowing_date"])
    if error:
        return jsonify({"success": False, "error": error}), 400
    return jsonify({"success": True, **result})


@calendar_bp.route("/recommended-crops", methods=["GET"])
@require_auth
def recommended_crops():
    """Query params: date (YYYY-MM-DD)."""
    raw = request.args.get("date")
    if not raw:
        return jsonify({"success": False, "error": "Date is required"}), 400

    selected = validation.parse_date(raw)
    if selected is None:
        return jsonify({"success": False, "error": "Invalid date"}), 400

    season = calendar_service.season_for_date(selected)
    return jsonify({
        "success": True,
        "season": season,
        "recommended_crops": calendar_service.recommended_crops(season),
    })


@calendar_bp.route("/create", methods=["POST"])
@require_auth
def create_calendar():
    """
    Request body (JSON):
        {"crop": str, "sowing_date": "YYYY-MM-DD", "location"?: {...}}

    Returns 400 with selected_season/crop_season when the crop does not suit
    the season of the sowing date.
    """
    payload, error = validation.validate_calendar_request(request.get_json(silent=True) or {})
    if error:
        return jsonify({"success": False, "error": error}), 400

    try:
        calendar, error = calendar_service.create_calendar(
            get_current_user_id(), payload["crop"], payload["sowing_date"], payload["location"]
        )
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to create crop calendar")
        return jsonify({"success": False, "error": msg}), 500

    if error:
        return jsonify({"success": False, **error}), 400
    return jsonify({
        "success": True,
        "message": "Crop calendar created successfully",
        "calendar": calendar,
    })


@calendar_bp.route("/my-calendars", methods=["GET"])
@require_auth
def my_calendars():
    try:
        calendars = calendar_service.get_user_calendars(get_current_user_id())
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to fetch calendars")
        return jsonify({"success": False, "error": msg}), 500
    return jsonify({"success": True, "calendars": calendars})


@calendar_bp.route("/upcoming-tasks", methods=["GET"])
@require_auth
def upcoming_tasks():
    """Query params: days (default 7, max 90)."""
    days = request.args.get("days", 7, type=int)
    days = min(max(days if days is not None else 7, 0), MAX_UPCOMING_DAYS)

    try:
        tasks = calendar_service.get_upcoming_tasks(get_current_user_id(), days)
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to fetch upcoming tasks")
        return jsonify({"success": False, "error": msg}), 500
    return jsonify({"success": True, "tasks": tasks})


@calendar_bp.route("/task/<calendar_id>/<task_id>/complete", methods=["PUT"])
@require_auth
def complete_task(calendar_id: str, task_id: str):
    """Request body (JSON, optional): {"notes": str}"""
    notes = validation.clean_notes((request.get_json(silent=True) or {}).get("notes"))

    try:
        task, error = calendar_service.complete_task(calendar_id, task_id, get_current_user_id(), notes)
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to complete task")
        return jsonify({"success": False, "error": msg}), 500

    if error:
        status = error.pop("status", 400)
        return jsonify({"success": False, **error}), status
    return jsonify({"success": True, "message": "Task marked as completed", "task": task})


@calendar_bp.route("/<calendar_id>", methods=["GET"])
@require_auth
def get_calendar(calendar_id: str):
    try:
        calendar = calendar_service.get_calendar(calendar_id, get_current_user_id())
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to fetch calendar")
        return jsonify({"success": False, "error": msg}), 500

    if not calendar:
        return jsonify({"success": False, "error": "Calendar not found"}), 404
    return jsonify({"success": True, "calendar": calendar})


@calendar_bp.route("/<calendar_id>", methods=["DELETE"])
@require_auth
def delete_calendar(calendar_id: str):
    """Deactivates; the calendar and its history are kept."""
    try:
        ok, error = calendar_service.deactivate_calendar(calendar_id, get_current_user_id())
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to delete calendar")
        return jsonify({"success": False, "error": msg}), 500

    if not ok:
        return jsonify({"success": False, "error": error}), 404
    return jsonify({"success": True, "message": "Calendar deactivated"})
