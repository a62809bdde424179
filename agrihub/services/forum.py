"""
Forum service: discussion posts, replies, upvotes, tags and the moderation
load -> decide -> persist flow.

Posts live in the `forum_posts` table with replies embedded as a jsonb array,
so a post and its thread are read and written as one document. Moderation
state lives on the author's row in `profiles`.

Missing rows come back as (None, "... not found"); database failures are not
caught here and reach the route, which turns them into a 500.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime
import math
import uuid
from flask import current_app, has_app_context

from agrihub.services import activities
from agrihub.services.moderation import moderate_content
from agrihub.services.supabase_client import require_admin_client
from agrihub.utils.errors import log_info
from agrihub.services.warning_ledger import (
    DEFAULT_POLICY,
    AccessDecision,
    ModerationState,
    Outcome,
    WarningPolicy,
    check_access,
    clear_expired_block,
    record_violation,
    utcnow,
)

ANONYMOUS_NAME = "Anonymous Farmer"
DEFAULT_FLAG_REASON = "Reported by user"

POST_STATUSES = ("open", "answered", "closed")
SORT_OPTIONS = ("recent", "popular", "answered")

# Everything except the embedded replies; used for listings.
_LIST_COLUMNS = (
    "id,user_id,user_name,user_location,title,content,category,crop,tags,"
    "upvotes,upvote_count,reply_count,views,status,flagged,created_at,updated_at"
)

_MODERATION_COLUMNS = (
    "id,full_name,state,forum_warnings,forum_warning_history,"
    "is_blocked_from_forum,forum_blocked_until"
)

POPULAR_TAG_LIMIT = 20

_SEARCH_RESERVED = frozenset(',()*%\\"{}.:')


class UserNotFound(LookupError):
    """The authenticated user has no profile row."""


def current_policy() -> WarningPolicy:
    if has_app_context():
        return WarningPolicy.from_config(current_app.config)
    return DEFAULT_POLICY


# ============================================================================
# Moderation state
# ============================================================================

def load_moderation_profile(user_id: str) -> Tuple[Dict[str, Any], ModerationState]:
    """
    Fetch the user's profile and parse its forum moderation columns.

    Raises:
        UserNotFound: no profile row for user_id
    """
    supabase = require_admin_client()
    response = supabase.table("profiles") \
        .select(_MODERATION_COLUMNS) \
        .eq("id", user_id) \
        .maybe_single() \
        .execute()

    profile = response.data if response else None
    if not profile:
        raise UserNotFound(user_id)
    return profile, ModerationState.from_profile(profile)


def save_moderation_state(user_id: str, state: ModerationState) -> None:
    """Write every moderation column in one update."""
    supabase = require_admin_client()
    supabase.table("profiles").update(state.to_profile_update()).eq("id", user_id).execute()


def enforce_forum_access(
    user_id: str,
    now: Optional[datetime] = None,
) -> Tuple[AccessDecision, Dict[str, Any], ModerationState]:
    """
    Access gate for content-mutating forum actions.

    Clears an expired temporary block (and persists that) before deciding, so
    a second call after expiry finds nothing to clear.
    """
    now = now or utcnow()
    profile, state = load_moderation_profile(user_id)

    cleared = clear_expired_block(state, now)
    if cleared is not None:
        save_moderation_state(user_id, cleared)
        log_info(f"Cleared expired forum block for user {user_id}")
        state = cleared

    return check_access(state, now), profile, state


def handle_content_moderation(
    user_id: str,
    state: ModerationState,
    content: Any,
    title: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Outcome:
    """
    Scan the submission and, when flagged, escalate and persist the new state
    before returning the outcome. Clean submissions touch nothing.
    """
    scan = moderate_content(content, title)
    decision = record_violation(state, scan, now, current_policy())
    if decision.changed:
        save_moderation_state(user_id, decision.state)
        log_info(
            f"Forum violation by user {user_id}: {decision.outcome.kind} "
            f"(warnings={decision.outcome.warning_count}, severity={scan.severity})"
        )
    return decision.outcome


# ============================================================================
# Posts
# ============================================================================

def _author_fields(profile: Dict[str, Any]) -> Dict[str, str]:
    return {
        "user_name": profile.get("full_name") or ANONYMOUS_NAME,
        "user_location": profile.get("state") or "",
    }


def create_post(
    user_id: str,
    profile: Dict[str, Any],
    title: str,
    content: str,
    category: str,
    crop: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Insert a new post and log the activity. Returns the stored row."""
    supabase = require_admin_client()
    response = supabase.table("forum_posts").insert({
        "user_id": user_id,
        **_author_fields(profile),
        "title": title,
        "content": content,
        "category": category,
        "crop": crop,
        "tags": tags or [],
        "replies": [],
        "reply_count": 0,
        "upvotes": [],
        "upvote_count": 0,
        "views": 0,
        "status": "open",
        "flagged": False,
    }).execute()

    post = response.data[0]
    activities.log_activity(
        user_id,
        activities.ACTIVITY_FORUM,
        title=f"Forum Post Created - {title}",
        description=f"Created forum post in {category} category",
        result="Post published successfully",
        related_id=post.get("id"),
        related_model="ForumPost",
        metadata={"category": category, "crop": crop},
    )
    return post


def _escape_search(term: str) -> str:
    # Reserved in PostgREST or-filters and array literals, plus the wildcards
    cleaned = "".join(ch for ch in term if ch not in _SEARCH_RESERVED)
    return " ".join(cleaned.split())


def list_posts(
    category: Optional[str] = None,
    crop: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    sort: str = "recent",
) -> Dict[str, Any]:
    """
    Paginated post listing without reply bodies.

    Returns:
        Dict with posts, total_pages, current_page, total_posts
    """
    supabase = require_admin_client()
    page = max(page, 1)
    limit = max(limit, 1)
    offset = (page - 1) * limit

    query = supabase.table("forum_posts").select(_LIST_COLUMNS, count="exact")
    if category:
        query = query.eq("category", category)
    if crop:
        query = query.eq("crop", crop)
    if status:
        query = query.eq("status", status)
    if search:
        term = _escape_search(search)
        if term:
            # tags are stored lowercased by validation.parse_tags
            query = query.or_(
                f"title.ilike.%{term}%,content.ilike.%{term}%,tags.cs.{{{term.lower()}}}"
            )

    if sort == "popular":
        query = query.order("views", desc=True).order("upvote_count", desc=True)
    elif sort == "answered":
        query = query.order("reply_count", desc=True)
    else:
        query = query.order("created_at", desc=True)

    response = query.range(offset, offset + limit - 1).execute()
    posts = response.data or []
    total = response.count if response.count is not None else len(posts)

    return {
        "posts": posts,
        "total_pages": math.ceil(total / limit),
        "current_page": page,
        "total_posts": total,
    }


def _fetch_post(post_id: str) -> Optional[Dict[str, Any]]:
    supabase = require_admin_client()
    response = supabase.table("forum_posts").select("*").eq("id", post_id).maybe_single().execute()
    return response.data if response else None


def _update_post(post_id: str, fields: Dict[str, Any]) -> None:
    supabase = require_admin_client()
    supabase.table("forum_posts").update(fields).eq("id", post_id).execute()


def get_post(post_id: str) -> Optional[Dict[str, Any]]:
    """Full post with replies; counts one view."""
    post = _fetch_post(post_id)
    if not post:
        return None

    post["views"] = (post.get("views") or 0) + 1
    _update_post(post_id, {"views": post["views"]})
    return post


def add_reply(
    post_id: str,
    user_id: str,
    profile: Dict[str, Any],
    content: str,
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Append a reply to the post's thread. An open post becomes answered.

    Returns:
        (reply_dict, error_message)
    """
    post = _fetch_post(post_id)
    if not post:
        return None, "Post not found"

    reply = {
        "id": uuid.uuid4().hex,
        "user_id": user_id,
        **_author_fields(profile),
        "content": content,
        "upvotes": [],
        "created_at": utcnow().isoformat(),
    }
    replies = list(post.get("replies") or []) + [reply]

    fields: Dict[str, Any] = {"replies": replies, "reply_count": len(replies)}
    if post.get("status") == "open":
        fields["status"] = "answered"
    _update_post(post_id, fields)

    activities.log_activity(
        user_id,
        activities.ACTIVITY_FORUM,
        title=f"Reply Added - {post.get('title', '')}",
        description=f"Added reply to forum post: {post.get('title', '')}",
        result="Reply published successfully",
        related_id=post_id,
        related_model="ForumPost",
        metadata={"post_title": post.get("title"), "category": post.get("category")},
    )
    return reply, None


def _toggle(voters: List[str], user_id: str) -> Tuple[List[str], bool]:
    if user_id in voters:
        return [v for v in voters if v != user_id], False
    return voters + [user_id], True


def toggle_post_upvote(post_id: str, user_id: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Add the user's upvote, or remove it if already present.

    Returns:
        ({"upvoted": bool, "upvote_count": int}, error_message)
    """
    post = _fetch_post(post_id)
    if not post:
        return None, "Post not found"

    voters, upvoted = _toggle(list(post.get("upvotes") or []), user_id)
    _update_post(post_id, {"upvotes": voters, "upvote_count": len(voters)})
    return {"upvoted": upvoted, "upvote_count": len(voters)}, None


def toggle_reply_upvote(
    post_id: str,
    reply_id: str,
    user_id: str,
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Same as toggle_post_upvote for one embedded reply."""
    post = _fetch_post(post_id)
    if not post:
        return None, "Post not found"

    replies = [dict(r) for r in post.get("replies") or []]
    reply = next((r for r in replies if r.get("id") == reply_id), None)
    if reply is None:
        return None, "Reply not found"

    voters, upvoted = _toggle(list(reply.get("upvotes") or []), user_id)
    reply["upvotes"] = voters
    _update_post(post_id, {"replies": replies})
    return {"upvoted": upvoted, "upvote_count": len(voters)}, None


def get_user_posts(user_id: str) -> List[Dict[str, Any]]:
    """The user's own posts, newest first, without reply bodies."""
    supabase = require_admin_client()
    response = supabase.table("forum_posts") \
        .select(_LIST_COLUMNS) \
        .eq("user_id", user_id) \
        .order("created_at", desc=True) \
        .execute()
    return response.data or []


def flag_post(post_id: str, reason: Optional[str] = None) -> Tuple[bool, Optional[str]]:
    """Mark a post for moderator review."""
    post = _fetch_post(post_id)
    if not post:
        return False, "Post not found"

    _update_post(post_id, {"flagged": True, "flag_reason": reason or DEFAULT_FLAG_REASON})
    return True, None


def popular_tags(limit: int = POPULAR_TAG_LIMIT) -> List[Dict[str, Any]]:
    """Most used tags across all posts, highest count first."""
    supabase = require_admin_client()
    response = supabase.table("forum_posts").select("tags").execute()

    counts: Dict[str, int] = {}
    for row in response.data or []:
        for tag in row.get("tags") or []:
            counts[tag] = counts.get(tag, 0) + 1

    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]
    return [{"tag": tag, "count": count} for tag, count in ranked]
