"""
Supabase client initialization and helper functions.

Provides centralized access to Supabase for:
- Authentication (session/bearer token verification)
- Database access (profiles, forum posts, crop calendars, activities)

Two clients are kept: the anon client is used for auth calls, the admin
client (service role) is used for reads/writes so that server-side business
rules such as the forum warning ledger cannot be bypassed from the browser.
"""

from __future__ import annotations
from typing import Optional, Dict, Any
from supabase import create_client, Client
from agrihub.utils.errors import DatabaseUnavailable, log_error


# Global client instances (initialized once per app)
_supabase_client: Optional[Client] = None  # User client (anon key)
_supabase_admin: Optional[Client] = None   # Admin client (service role key)


def init_supabase(app) -> None:
    """
    Initialize Supabase clients with app config.

    Call this from the Flask app factory. Missing configuration leaves both
    clients unset; data services then raise DatabaseUnavailable.
    """
    global _supabase_client, _supabase_admin

    url = app.config.get("SUPABASE_URL", "")
    anon_key = app.config.get("SUPABASE_ANON_KEY", "")
    service_key = app.config.get("SUPABASE_SERVICE_ROLE_KEY", "")

    if not url or not anon_key:
        app.logger.warning("Supabase URL or ANON_KEY not configured. Database features will be disabled.")
        _supabase_client = None
        _supabase_admin = None
        return

    try:
        _supabase_client = create_client(url, anon_key)
        app.logger.info("Supabase client initialized successfully")

        if service_key:
            _supabase_admin = create_client(url, service_key)
            app.logger.info("Supabase admin client initialized successfully")
        else:
            app.logger.warning("SUPABASE_SERVICE_ROLE_KEY not configured. Forum and calendar writes are disabled.")

    except Exception as e:
        app.logger.error(f"Failed to initialize Supabase client: {e}")
        _supabase_client = None
        _supabase_admin = None


def get_admin_client() -> Optional[Client]:
    """Get the admin Supabase client instance (admin client with service role key)."""
    return _supabase_admin


def require_admin_client() -> Client:
    """Admin client or DatabaseUnavailable; used by services that must not silently no-op."""
    client = get_admin_client()
    if client is None:
        raise DatabaseUnavailable()
    return client


def is_configured() -> bool:
    """Check if Supabase is properly configured."""
    return _supabase_client is not None


# ============================================================================
# Authentication Helpers
# ============================================================================

def verify_session(access_token: str, refresh_token: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Verify a user session token and return user data.

    Args:
        access_token: JWT access token from Supabase Auth
        refresh_token: Optional refresh token

    Returns:
        User dict with id, email, etc. or None if invalid
    """
    if not _supabase_client:
        return None

    try:
        if refresh_token:
            response = _supabase_client.auth.set_session(
                access_token=access_token,
                refresh_token=refresh_token,
            )
        else:
            response = _supabase_client.auth.get_user(access_token)

        if response and response.user:
            return response.user.model_dump()
        return None

    except Exception as e:
        log_error(f"Error verifying session: {e}")
        return None

