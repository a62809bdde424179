"""
User activity log.

Records what a farmer did (forum posts, replies, crop calendar changes) in the
`activities` table so the dashboard can show a timeline. Logging is
best-effort: a failed insert is logged and never fails the user's request.
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Tuple
from agrihub.services.supabase_client import get_admin_client
from agrihub.utils.errors import log_error

# Activity type constants
ACTIVITY_FORUM = "community-forum"
ACTIVITY_CROP_CALENDAR = "crop-calendar"


def log_activity(
    user_id: str,
    activity_type: str,
    title: str,
    description: str = "",
    result: str = "",
    related_id: Optional[str] = None,
    related_model: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    status: str = "completed",
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Record an activity row.

    Returns:
        Tuple of (activity_row, error_message)
    """
    supabase = get_admin_client()
    if not supabase:
        return None, "Database not configured"

    try:
        response = supabase.table("activities").insert({
            "user_id": user_id,
            "activity_type": activity_type,
            "title": title,
            "description": description,
            "status": status,
            "result": result,
            "related_id": related_id,
            "related_model": related_model,
            "metadata": metadata or {},
        }).execute()

        if response.data:
            return response.data[0], None
        return None, "Failed to log activity"

    except Exception as e:
        log_error(f"Error logging activity: {e}")
        return None, str(e)
