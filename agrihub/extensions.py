"""
Application-wide extensions, created here and initialized in create_app().

Flask-Limiter keys forum writes by user when a user has already been resolved
for the request, so farmers sharing one village connection do not throttle
each other. Anonymous traffic falls back to the remote address.
"""

from flask import g
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


def _rate_limit_key() -> str:
    user = getattr(g, "user", None)
    if user and user.get("id"):
        return f"user:{user['id']}"
    return get_remote_address()


limiter = Limiter(key_func=_rate_limit_key)
