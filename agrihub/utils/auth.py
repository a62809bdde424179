"""
Authentication helpers and decorators for JSON routes.

Provides:
- get_current_user(): resolve the user from a bearer token or the session
- @require_auth: 401 JSON for anonymous callers

Token verification itself is delegated to Supabase Auth.
"""

from __future__ import annotations
from functools import wraps
from typing import Optional, Dict, Any
from flask import session, request, jsonify, g
from agrihub.services import supabase_client


SESSION_ACCESS_TOKEN_KEY = "access_token"
SESSION_REFRESH_TOKEN_KEY = "refresh_token"


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def get_current_user() -> Optional[Dict[str, Any]]:
    """
    Get the user for this request.

    Returns:
        User dict with id, email, etc. or None if not logged in
    """
    if hasattr(g, "user"):
        return g.user

    access_token = _bearer_token()
    refresh_token = None
    if not access_token:
        access_token = session.get(SESSION_ACCESS_TOKEN_KEY)
        refresh_token = session.get(SESSION_REFRESH_TOKEN_KEY)

    if not access_token:
        g.user = None
        return None

    user = supabase_client.verify_session(access_token, refresh_token)
    if not user:
        session.pop(SESSION_ACCESS_TOKEN_KEY, None)
        session.pop(SESSION_REFRESH_TOKEN_KEY, None)

    g.user = user
    return user


def get_current_user_id() -> Optional[str]:
    user = get_current_user()
    return user.get("id") if user else None


def is_authenticated() -> bool:
    return get_current_user() is not None


# ============================================================================
# Decorators
# ============================================================================

def require_auth(f):
    """
    Decorator to require authentication for a JSON route.

    Usage:
        @forum_bp.route("/my-posts")
        @require_auth
        def my_posts():
            user_id = get_current_user_id()
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_authenticated():
            return jsonify({"success": False, "error": "Authentication required"}), 401
        return f(*args, **kwargs)

    return decorated_function
