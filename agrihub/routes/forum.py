"""
Forum JSON endpoints.

Endpoints (prefix /api/forum):
- POST /posts                                  create post (auth, access gate, moderation)
- GET  /posts                                  list posts with filters and pagination
- GET  /posts/<id>                             single post with replies (counts a view)
- POST /posts/<id>/replies                     reply (auth, access gate, moderation)
- POST /posts/<id>/upvote                      toggle post upvote (auth)
- POST /posts/<id>/replies/<reply_id>/upvote   toggle reply upvote (auth)
- GET  /my-posts                               caller's posts (auth)
- POST /posts/<id>/flag                        report a post (auth)
- GET  /tags                                   popular tags
- GET  /access                                 caller's forum access and warning status (auth)

Moderation results map to HTTP as: warned -> 400, blocked -> 403. A denied
access gate is also 403.
"""

from __future__ import annotations
from flask import Blueprint, request, jsonify, current_app
from agrihub.utils.auth import require_auth, get_current_user_id
from agrihub.utils.errors import sanitize_error
from agrihub.utils import validation
from agrihub.services import forum as forum_service
from agrihub.services.forum import UserNotFound
from agrihub.services.warning_ledger import AccessDecision, ModerationState, Outcome
from agrihub.extensions import limiter

forum_bp = Blueprint("forum", __name__, url_prefix="/api/forum")


def _write_limit() -> str:
    return current_app.config["FORUM_WRITE_RATE_LIMIT"]


def _denied_response(decision: AccessDecision, state: ModerationState):
    body = {
        "success": False,
        "error": decision.detail,
        "blocked": True,
        "warnings": state.warning_count,
    }
    if decision.blocked_until:
        body["blocked_until"] = decision.blocked_until.isoformat()
    return jsonify(body), 403


def _moderation_response(outcome: Outcome):
    body = {"success": False, "error": outcome.message, **outcome.to_dict()}
    return jsonify(body), 403 if outcome.blocked else 400


def _gate(user_id: str):
    """
    Run the access gate. Returns (profile, state, None) when allowed, or
    (None, None, response) when the request must stop here.
    """
    try:
        decision, profile, state = forum_service.enforce_forum_access(user_id)
    except UserNotFound:
        return None, None, (jsonify({"success": False, "error": "User not found"}), 404)
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to verify forum access")
        return None, None, (jsonify({"success": False, "error": msg}), 500)

    if not decision.allowed:
        return None, None, _denied_response(decision, state)
    return profile, state, None


@forum_bp.route("/posts", methods=["POST"])
@require_auth
@limiter.limit(_write_limit)
def create_post():
    """
    Create a forum post.

    Request body (JSON):
        {"title": str, "content": str, "category": str, "crop"?: str, "tags"?: [str]}
    """
    user_id = get_current_user_id()
    profile, state, stop = _gate(user_id)
    if stop:
        return stop

    payload, error = validation.validate_post(request.get_json(silent=True) or {})
    if error:
        return jsonify({"success": False, "error": error}), 400

    try:
        outcome = forum_service.handle_content_moderation(
            user_id, state, payload["content"], payload["title"]
        )
        if outcome.blocked or outcome.warned:
            return _moderation_response(outcome)

        post = forum_service.create_post(user_id, profile, **payload)
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to create post")
        return jsonify({"success": False, "error": msg}), 500

    return jsonify({"success": True, "message": "Post created successfully", "post": post})


@forum_bp.route("/posts", methods=["GET"])
def list_posts():
    """
    Query params: category, crop, status, search, page (1), limit (20),
    sort (recent | popular | answered).
    """
    page_size = current_app.config.get("FORUM_PAGE_SIZE", 20)
    max_size = current_app.config.get("FORUM_MAX_PAGE_SIZE", 100)

    page = request.args.get("page", 1, type=int) or 1
    limit = request.args.get("limit", page_size, type=int) or page_size
    limit = min(max(limit, 1), max_size)

    sort = request.args.get("sort", "recent")
    if sort not in forum_service.SORT_OPTIONS:
        sort = "recent"

    try:
        result = forum_service.list_posts(
            category=request.args.get("category") or None,
            crop=request.args.get("crop") or None,
            status=request.args.get("status") or None,
            search=request.args.get("search") or None,
            page=max(page, 1),
            limit=limit,
            sort=sort,
        )
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to fetch posts")
        return jsonify({"success": False, "error": msg}), 500

    return jsonify({"success": True, **result})


@forum_bp.route("/posts/<post_id>", methods=["GET"])
def get_post(post_id: str):
    try:
        post = forum_service.get_post(post_id)
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to fetch post")
        return jsonify({"success": False, "error": msg}), 500

    if not post:
        return jsonify({"success": False, "error": "Post not found"}), 404
    return jsonify({"success": True, "post": post})


@forum_bp.route("/posts/<post_id>/replies", methods=["POST"])
@require_auth
@limiter.limit(_write_limit)
def add_reply(post_id: str):
    """Request body (JSON): {"content": str}"""
    user_id = get_current_user_id()
    profile, state, stop = _gate(user_id)
    if stop:
        return stop

    payload, error = validation.validate_reply(request.get_json(silent=True) or {})
    if error:
        return jsonify({"success": False, "error": error}), 400

    try:
        outcome = forum_service.handle_content_moderation(user_id, state, payload["content"])
        if outcome.blocked or outcome.warned:
            return _moderation_response(outcome)

        reply, error = forum_service.add_reply(post_id, user_id, profile, payload["content"])
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to add reply")
        return jsonify({"success": False, "error": msg}), 500

    if error:
        return jsonify({"success": False, "error": error}), 404
    return jsonify({"success": True, "message": "Reply added successfully", "reply": reply})


@forum_bp.route("/posts/<post_id>/upvote", methods=["POST"])
@require_auth
def upvote_post(post_id: str):
    try:
        result, error = forum_service.toggle_post_upvote(post_id, get_current_user_id())
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to upvote post")
        return jsonify({"success": False, "error": msg}), 500

    if error:
        return jsonify({"success": False, "error": error}), 404
    return jsonify({"success": True, **result})


@forum_bp.route("/posts/<post_id>/replies/<reply_id>/upvote", methods=["POST"])
@require_auth
def upvote_reply(post_id: str, reply_id: str):
    try:
        result, error = forum_service.toggle_reply_upvote(post_id, reply_id, get_current_user_id())
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to upvote reply")
        return jsonify({"success": False, "error": msg}), 500

    if error:
        return jsonify({"success": False, "error": error}), 404
    return jsonify({"success": True, **result})


@forum_bp.route("/my-posts", methods=["GET"])
@require_auth
def my_posts():
    try:
        posts = forum_service.get_user_posts(get_current_user_id())
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to fetch user posts")
        return jsonify({"success": False, "error": msg}), 500
    return jsonify({"success": True, "posts": posts})


@forum_bp.route("/posts/<post_id>/flag", methods=["POST"])
@require_auth
def flag_post(post_id: str):
    reason = validation.clean_reason((request.get_json(silent=True) or {}).get("reason"))
    try:
        ok, error = forum_service.flag_post(post_id, reason)
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to flag post")
        return jsonify({"success": False, "error": msg}), 500

    if not ok:
        return jsonify({"success": False, "error": error}), 404
    return jsonify({"success": True, "message": "Post flagged for review"})


@forum_bp.route("/tags", methods=["GET"])
def popular_tags():
    try:
        tags = forum_service.popular_tags()
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to fetch tags")
        return jsonify({"success": False, "error": msg}), 500
    return jsonify({"success": True, "tags": tags})


@forum_bp.route("/access", methods=["GET"])
@require_auth
def access_status():
    """Forum access for the caller; also clears an expired temporary block."""
    user_id = get_current_user_id()
    try:
        decision, _profile, state = forum_service.enforce_forum_access(user_id)
    except UserNotFound:
        return jsonify({"success": False, "error": "User not found"}), 404
    except Exception as e:
        msg = sanitize_error(e, "database", "Failed to verify forum access")
        return jsonify({"success": False, "error": msg}), 500

    return jsonify({
        "success": True,
        "access": decision.to_dict(),
        "warnings": state.warning_count,
        "permanently_blocked": state.permanently_blocked,
    })
