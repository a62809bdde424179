"""
Crop calendar service.

Builds a season-checked task schedule for a crop from static templates and
stores it in `crop_calendars` with the tasks embedded as a jsonb array.

Seasons follow the Indian agricultural year:
- Kharif: June-October (monsoon)
- Rabi: November-April (winter)
- Zaid: the summer gap, which with the ranges above leaves only May
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple
from datetime import date, datetime, timedelta, timezone
import uuid

from agrihub.services import activities
from agrihub.services.supabase_client import require_admin_client

SEASON_KHARIF = "kharif"
SEASON_RABI = "rabi"
SEASON_ZAID = "zaid"
SEASON_YEAR_ROUND = "year-round"

MAX_RECURRING_INSTANCES = 10
# A task may be completed from this many days before its scheduled date.
EARLY_COMPLETION_DAYS = 1


def _task(task_type: str, title: str, offset: int, stage: str, recurring: int = 0) -> Dict[str, Any]:
    return {"type": task_type, "title": title, "offset_days": offset, "stage": stage, "recurring": recurring}


CROP_TASK_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "tomato": {
        "season": SEASON_KHARIF,
        "duration_days": 90,
        "tasks": [
            _task("sowing", "Sow tomato seeds", 0, "Sowing"),
            _task("irrigation", "First irrigation", 3, "Germination"),
            _task("fertilizer", "Apply basal fertilizer (NPK)", 7, "Basal"),
            _task("irrigation", "Regular irrigation", 10, "Vegetative", recurring=3),
            _task("fertilizer", "First top dressing", 21, "Vegetative"),
            _task("pesticide", "Preventive spray for early blight", 25, "Vegetative"),
            _task("fertilizer", "Second top dressing", 35, "Flowering"),
            _task("pesticide", "Spray for fruit borer", 45, "Flowering"),
            _task("irrigation", "Critical irrigation during flowering", 40, "Flowering"),
            _task("fertilizer", "Potash application for fruit quality", 50, "Fruiting"),
            _task("pesticide", "Late season disease control", 60, "Fruiting"),
            _task("harvesting", "Begin harvesting", 75, "Harvesting"),
            _task("harvesting", "Continue harvesting", 85, "Harvesting"),
        ],
    },
    "wheat": {
        "season": SEASON_RABI,
        "duration_days": 120,
        "tasks": [
            _task("sowing", "Sow wheat seeds", 0, "Sowing"),
            _task("irrigation", "Pre-sowing irrigation", -3, "Pre-Sowing"),
            _task("fertilizer", "Apply basal fertilizer", 0, "Basal"),
            _task("irrigation", "Crown root irrigation", 21, "Tillering"),
            _task("fertilizer", "First nitrogen top dressing", 21, "Tillering"),
            _task("irrigation", "Late tillering irrigation", 40, "Tillering"),
            _task("fertilizer", "Second nitrogen top dressing", 40, "Jointing"),
            _task("irrigation", "Jointing stage irrigation", 60, "Jointing"),
            _task("pesticide", "Rust disease spray if needed", 65, "Booting"),
            _task("irrigation", "Flowering irrigation", 75, "Flowering"),
            _task("irrigation", "Milk stage irrigation", 90, "Grain Filling"),
            _task("irrigation", "Dough stage irrigation", 100, "Grain Filling"),
            _task("harvesting", "Harvest wheat", 120, "Harvesting"),
        ],
    },
    "rice": {
        "season": SEASON_KHARIF,
        "duration_days": 120,
        "tasks": [
            _task("sowing", "Prepare nursery and sow seeds", 0, "Nursery"),
            _task("irrigation", "Maintain water in nursery", 1, "Nursery"),
            _task("fertilizer", "Apply fertilizer in main field", 20, "Pre-Transplant"),
            _task("sowing", "Transplant seedlings", 25, "Transplanting"),
            _task("irrigation", "Maintain standing water", 30, "Tillering", recurring=5),
            _task("fertilizer", "First top dressing (Nitrogen)", 35, "Tillering"),
            _task("pesticide", "Stem borer management", 40, "Tillering"),
            _task("fertilizer", "Second top dressing", 55, "Panicle Initiation"),
            _task("irrigation", "Critical irrigation during flowering", 70, "Flowering"),
            _task("pesticide", "Blast disease spray if needed", 75, "Flowering"),
            _task("irrigation", "Grain filling irrigation", 90, "Grain Filling"),
            _task("irrigation", "Stop irrigation", 110, "Maturity"),
            _task("harvesting", "Harvest rice", 120, "Harvesting"),
        ],
    },
    "maize": {
        "season": SEASON_KHARIF,
        "duration_days": 100,
        "tasks": [
            _task("sowing", "Sow maize seeds", 0, "Sowing"),
            _task("irrigation", "First irrigation", 3, "Germination"),
            _task("fertilizer", "Apply basal fertilizer", 7, "Basal"),
            _task("irrigation", "Regular irrigation", 15, "Vegetative", recurring=7),
            _task("fertilizer", "First top dressing", 25, "Vegetative"),
            _task("pesticide", "Pest control spray", 35, "Vegetative"),
            _task("fertilizer", "Second top dressing", 45, "Tasseling"),
            _task("irrigation", "Critical irrigation during tasseling", 50, "Tasseling"),
            _task("irrigation", "Silking stage irrigation", 60, "Silking"),
            _task("harvesting", "Harvest maize", 100, "Harvesting"),
        ],
    },
    "cotton": {
        "season": SEASON_KHARIF,
        "duration_days": 150,
        "tasks": [
            _task("sowing", "Sow cotton seeds", 0, "Sowing"),
            _task("irrigation", "First irrigation", 5, "Germination"),
            _task("fertilizer", "Apply basal fertilizer", 10, "Basal"),
            _task("irrigation", "Regular irrigation", 15, "Vegetative", recurring=10),
            _task("fertilizer", "First top dressing", 30, "Vegetative"),
            _task("pesticide", "Bollworm management", 45, "Flowering"),
            _task("fertilizer", "Second top dressing", 50, "Flowering"),
            _task("pesticide", "Late season pest control", 70, "Boll Formation"),
            _task("harvesting", "First picking", 120, "Harvesting"),
            _task("harvesting", "Second picking", 140, "Harvesting"),
        ],
    },
    "sugarcane": {
        "season": SEASON_YEAR_ROUND,
        "duration_days": 365,
        "tasks": [
            _task("sowing", "Plant sugarcane setts", 0, "Planting"),
            _task("irrigation", "First irrigation", 3, "Germination"),
            _task("fertilizer", "Apply basal fertilizer", 7, "Basal"),
            _task("irrigation", "Regular irrigation", 15, "Tillering", recurring=10),
            _task("fertilizer", "First top dressing", 60, "Tillering"),
            _task("fertilizer", "Second top dressing", 120, "Grand Growth"),
            _task("pesticide", "Pest and disease control", 90, "Grand Growth"),
            _task("harvesting", "Harvest sugarcane", 365, "Harvesting"),
        ],
    },
    "potato": {
        "season": SEASON_RABI,
        "duration_days": 90,
        "tasks": [
            _task("sowing", "Plant potato tubers", 0, "Planting"),
            _task("irrigation", "First irrigation", 3, "Germination"),
            _task("fertilizer", "Apply basal fertilizer", 7, "Basal"),
            _task("irrigation", "Regular irrigation", 10, "Vegetative", recurring=5),
            _task("fertilizer", "First top dressing", 30, "Tuber Initiation"),
            _task("irrigation", "Critical irrigation during tuber formation", 40, "Tuber Formation"),
            _task("pesticide", "Late blight control", 50, "Tuber Formation"),
            _task("harvesting", "Harvest potatoes", 90, "Harvesting"),
        ],
    },
    "onion": {
        "season": SEASON_RABI,
        "duration_days": 120,
        "tasks": [
            _task("sowing", "Sow onion seeds/transplant", 0, "Sowing"),
            _task("irrigation", "First irrigation", 3, "Germination"),
            _task("fertilizer", "Apply basal fertilizer", 7, "Basal"),
            _task("irrigation", "Regular irrigation", 10, "Vegetative", recurring=7),
            _task("fertilizer", "First top dressing", 30, "Vegetative"),
            _task("fertilizer", "Second top dressing", 60, "Bulb Formation"),
            _task("irrigation", "Stop irrigation before harvest", 100, "Maturity"),
            _task("harvesting", "Harvest onions", 120, "Harvesting"),
        ],
    },
    "soybean": {
        "season": SEASON_KHARIF,
        "duration_days": 100,
        "tasks": [
            _task("sowing", "Sow soybean seeds", 0, "Sowing"),
            _task("irrigation", "First irrigation", 3, "Germination"),
            _task("fertilizer", "Apply basal fertilizer", 7, "Basal"),
            _task("irrigation", "Regular irrigation", 15, "Vegetative", recurring=10),
            _task("fertilizer", "First top dressing", 30, "Flowering"),
            _task("pesticide", "Pest control", 40, "Pod Formation"),
            _task("harvesting", "Harvest soybean", 100, "Harvesting"),
        ],
    },
    "groundnut": {
        "season": SEASON_KHARIF,
        "duration_days": 110,
        "tasks": [
            _task("sowing", "Sow groundnut seeds", 0, "Sowing"),
            _task("irrigation", "First irrigation", 3, "Germination"),
            _task("fertilizer", "Apply basal fertilizer", 7, "Basal"),
            _task("irrigation", "Regular irrigation", 15, "Vegetative", recurring=10),
            _task("fertilizer", "First top dressing", 30, "Flowering"),
            _task("pesticide", "Pest control", 50, "Pod Formation"),
            _task("harvesting", "Harvest groundnut", 110, "Harvesting"),
        ],
    },
}


def season_for_date(d: date) -> str:
    """Map a sowing date to its agricultural season."""
    month = d.month
    if 6 <= month <= 10:
        return SEASON_KHARIF
    if month >= 11 or month <= 4:
        return SEASON_RABI
    if 3 <= month <= 6:
        return SEASON_ZAID
    return SEASON_YEAR_ROUND


def get_template(crop: str) -> Optional[Dict[str, Any]]:
    return CROP_TASK_TEMPLATES.get((crop or "").strip().lower())


def _fits_season(crop_season: str, season: str) -> bool:
    return crop_season == SEASON_YEAR_ROUND or crop_season == season


def recommended_crops(season: str) -> List[Dict[str, Any]]:
    """Crops whose template season matches, in template order."""
    return [
        {
            "name": name,
            "display_name": name.capitalize(),
            "season": template["season"],
            "duration_days": template["duration_days"],
        }
        for name, template in CROP_TASK_TEMPLATES.items()
        if _fits_season(template["season"], season)
    ]


def validate_season(crop: str, sowing_date: date) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Check whether a crop suits the season of the sowing date.

    Returns:
        (result_dict, error_message); error only for unknown crops
    """
    template = get_template(crop)
    if not template:
        return None, "Crop not found"

    selected = season_for_date(sowing_date)
    crop_season = template["season"]
    compatible = _fits_season(crop_season, selected)

    if compatible:
        message = f"{crop} is suitable for {selected} season"
    else:
        message = f"{crop} is typically grown in {crop_season} season, but you selected {selected} season"

    return {
        "is_compatible": compatible,
        "selected_season": selected,
        "crop_season": crop_season,
        "recommended_crops": recommended_crops(selected),
        "message": message,
    }, None


def generate_tasks(crop: str, sowing_date: date) -> Dict[str, Any]:
    """
    Expand a crop template into dated tasks.

    Recurring template tasks repeat every `recurring` days, at most
    MAX_RECURRING_INSTANCES times, and never past the crop duration.

    Raises:
        KeyError: no template for the crop
    """
    template = get_template(crop)
    if not template:
        raise KeyError(f"Crop template not found for: {crop}")

    season_end = sowing_date + timedelta(days=template["duration_days"])
    tasks: List[Dict[str, Any]] = []

    def _add(item: Dict[str, Any], title: str, scheduled: date) -> None:
        tasks.append({
            "id": uuid.uuid4().hex,
            "task_type": item["type"],
            "title": title,
            "description": f"Scheduled {item['stage']} activity",
            "scheduled_date": scheduled.isoformat(),
            "stage": item["stage"],
            "completed": False,
            "completed_date": None,
            "notes": None,
        })

    for item in template["tasks"]:
        if item["recurring"]:
            for i in range(MAX_RECURRING_INSTANCES):
                scheduled = sowing_date + timedelta(days=item["offset_days"] + i * item["recurring"])
                if scheduled <= season_end:
                    _add(item, f"{item['title']} (Week {i + 1})", scheduled)
        else:
            _add(item, item["title"], sowing_date + timedelta(days=item["offset_days"]))

    return {
        "tasks": tasks,
        "season": template["season"],
        "expected_harvest_date": season_end.isoformat(),
    }


def create_calendar(
    user_id: str,
    crop: str,
    sowing_date: date,
    location: Optional[Dict[str, Any]] = None,
) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """
    Create a crop calendar after checking the season.

    Returns:
        (calendar_row, error_dict). error_dict carries "error" plus, for a
        season mismatch, the selected and crop seasons.
    """
    check, error = validate_season(crop, sowing_date)
    if error:
        return None, {"error": error}

    if not check["is_compatible"]:
        return None, {
            "error": (
                f"Season mismatch: {crop} is typically grown in {check['crop_season']} season, "
                f"but you selected {check['selected_season']} season"
            ),
            "selected_season": check["selected_season"],
            "crop_season": check["crop_season"],
            "is_compatible": False,
        }

    plan = generate_tasks(crop, sowing_date)

    supabase = require_admin_client()
    response = supabase.table("crop_calendars").insert({
        "user_id": user_id,
        "crop": crop,
        "season": plan["season"],
        "location": location or {},
        "sowing_date": sowing_date.isoformat(),
        "expected_harvest_date": plan["expected_harvest_date"],
        "tasks": plan["tasks"],
        "active": True,
    }).execute()
    calendar = response.data[0]

    task_count = len(plan["tasks"])
    activities.log_activity(
        user_id,
        activities.ACTIVITY_CROP_CALENDAR,
        title=f"Crop Calendar Created - {crop}",
        description=f"Created crop calendar for {crop} with {task_count} tasks",
        result=f"{task_count} tasks scheduled",
        related_id=calendar.get("id"),
        related_model="CropCalendar",
        metadata={"crop": crop, "season": plan["season"], "task_count": task_count},
    )
    return calendar, None


def get_user_calendars(user_id: str) -> List[Dict[str, Any]]:
    """Active calendars, latest sowing first."""
    supabase = require_admin_client()
    response = supabase.table("crop_calendars") \
        .select("*") \
        .eq("user_id", user_id) \
        .eq("active", True) \
        .order("sowing_date", desc=True) \
        .execute()
    return response.data or []


def get_calendar(calendar_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    supabase = require_admin_client()
    response = supabase.table("crop_calendars") \
        .select("*") \
        .eq("id", calendar_id) \
        .eq("user_id", user_id) \
        .maybe_single() \
        .execute()
    return response.data if response else None


def get_upcoming_tasks(user_id: str, days: int = 7, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Incomplete tasks due between today and today + days, across active calendars."""
    today = today or date.today()
    horizon = today + timedelta(days=days)

    upcoming: List[Dict[str, Any]] = []
    for calendar in get_user_calendars(user_id):
        for task in calendar.get("tasks") or []:
            if task.get("completed"):
                continue
            scheduled = date.fromisoformat(str(task["scheduled_date"])[:10])
            if today <= scheduled <= horizon:
                upcoming.append({**task, "crop": calendar.get("crop"), "calendar_id": calendar.get("id")})

    upcoming.sort(key=lambda t: str(t["scheduled_date"])[:10])
    return upcoming


def complete_task(
    calendar_id: str,
    task_id: str,
    user_id: str,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """
    Mark a task done. Tasks scheduled more than EARLY_COMPLETION_DAYS ahead are refused.

    Returns:
        (task_dict, error_dict); error_dict has "error", "status" and optional details
    """
    calendar = get_calendar(calendar_id, user_id)
    if not calendar:
        return None, {"error": "Calendar not found", "status": 404}

    tasks = [dict(t) for t in calendar.get("tasks") or []]
    task = next((t for t in tasks if t.get("id") == task_id), None)
    if task is None:
        return None, {"error": "Task not found", "status": 404}

    today = today or date.today()
    scheduled = date.fromisoformat(str(task["scheduled_date"])[:10])
    days_until = (scheduled - today).days

    if days_until > EARLY_COMPLETION_DAYS:
        wait = days_until - EARLY_COMPLETION_DAYS
        return None, {
            "error": "Task cannot be completed yet",
            "message": (
                f"This task is scheduled for {scheduled.strftime('%d/%m/%Y')}. "
                f"You can complete it in {wait} day(s)."
            ),
            "days_until_available": wait,
            "status": 400,
        }

    task["completed"] = True
    task["completed_date"] = datetime.now(timezone.utc).isoformat()
    if notes:
        task["notes"] = notes

    supabase = require_admin_client()
    supabase.table("crop_calendars").update({"tasks": tasks}).eq("id", calendar_id).execute()

    activities.log_activity(
        user_id,
        activities.ACTIVITY_CROP_CALENDAR,
        title=f"Task Completed - {task.get('title')}",
        description=f"Completed task: {task.get('title')} for {calendar.get('crop')}",
        result="Task marked as completed",
        related_id=calendar_id,
        related_model="CropCalendar",
        metadata={"crop": calendar.get("crop"), "task_type": task.get("task_type"), "task_stage": task.get("stage")},
    )
    return task, None


def deactivate_calendar(calendar_id: str, user_id: str) -> Tuple[bool, Optional[str]]:
    calendar = get_calendar(calendar_id, user_id)
    if not calendar:
        return False, "Calendar not found"

    supabase = require_admin_client()
    supabase.table("crop_calendars").update({"active": False}).eq("id", calendar_id).execute()
    return True, None
