"""
Centralized configuration for all environments.

Select a config by setting:
  APP_CONFIG=agrihub.config.DevConfig      # local dev
  APP_CONFIG=agrihub.config.ProdConfig     # production (default if unset)
  APP_CONFIG=agrihub.config.TestConfig     # pytest

Notes:
- SECRET_KEY is read from FLASK_SECRET_KEY
- Rate limiting uses Flask-Limiter v3 keys (RATELIMIT_*).
- Forum moderation thresholds are read once per app and turned into a
  WarningPolicy (see services/warning_ledger.py).
"""

from __future__ import annotations
import os
from datetime import timedelta


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


class BaseConfig:
    # Secrets & basics
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "")
    DEBUG = False
    TESTING = False

    # Session configuration (bearer tokens are preferred; session is a fallback)
    PERMANENT_SESSION_LIFETIME = timedelta(days=30)
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Supabase (Database + Auth)
    SUPABASE_URL = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
    SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

    # Commodity prices (data.gov.in)
    DATA_GOV_API_KEY = os.getenv("DATA_GOV_API_KEY", "")
    DATA_GOV_TIMEOUT_SECONDS = _int_env("DATA_GOV_TIMEOUT_SECONDS", 10)

    # Forum moderation policy
    FORUM_TEMP_BLOCK_AT = _int_env("FORUM_TEMP_BLOCK_AT", 2)
    FORUM_PERMANENT_BLOCK_AT = _int_env("FORUM_PERMANENT_BLOCK_AT", 3)
    FORUM_TEMP_BLOCK_DAYS = _int_env("FORUM_TEMP_BLOCK_DAYS", 7)

    # Forum listing
    FORUM_PAGE_SIZE = 20
    FORUM_MAX_PAGE_SIZE = 100

    # Flask-Limiter v3
    RATELIMIT_ENABLED = os.getenv("RATELIMIT_ENABLED", "true").lower() == "true"
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_DEFAULT = os.getenv("RATELIMIT_DEFAULT", "60 per minute; 2000 per day")
    FORUM_WRITE_RATE_LIMIT = os.getenv("FORUM_WRITE_RATE_LIMIT", "10 per minute; 200 per day")
    PRICE_RATE_LIMIT = os.getenv("PRICE_RATE_LIMIT", "20 per minute")

    # Misc
    JSON_SORT_KEYS = False
    PREFERRED_URL_SCHEME = os.getenv("PREFERRED_URL_SCHEME", "https")


class ProdConfig(BaseConfig):
    """Production settings (selected by default if APP_CONFIG is unset)."""
    pass


class DevConfig(BaseConfig):
    """Developer-friendly settings."""
    ENV = "development"
    DEBUG = True
    PREFERRED_URL_SCHEME = "http"
    # Allow cookies over HTTP in dev
    SESSION_COOKIE_SECURE = False
    FORUM_WRITE_RATE_LIMIT = "100 per minute"


class TestConfig(BaseConfig):
    """CI/pytest settings."""
    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-for-testing-only"
    # Usually disable the limiter in tests to avoid flakiness
    RATELIMIT_ENABLED = False
    DATA_GOV_API_KEY = "test-data-gov-key"
