# tests/conftest.py
"""
Test configuration and shared fixtures.

Provides the Flask app, test client, CLI runner and Supabase mocks. No test
talks to a real database or to data.gov.in.
"""

import os
import sys
import pytest
from unittest.mock import MagicMock

# Add the project root to sys.path
PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


@pytest.fixture
def app():
    """Create and configure a Flask app instance for testing."""
    os.environ["APP_CONFIG"] = "agrihub.config.TestConfig"
    # Keep Supabase unconfigured so nothing reaches the network
    os.environ.pop("SUPABASE_ANON_KEY", None)
    os.environ.pop("SUPABASE_SERVICE_ROLE_KEY", None)

    from agrihub import create_app

    app = create_app()
    app.config.update({
        "TESTING": True,
        "RATELIMIT_ENABLED": False,
    })

    yield app


@pytest.fixture
def client(app):
    """Create a test client for the Flask app."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask app."""
    return app.test_cli_runner()


@pytest.fixture
def test_user():
    return {"id": "test-user-id", "email": "farmer@example.com"}


@pytest.fixture
def db():
    """Bare Supabase client mock; tests wire the query chains they need."""
    return MagicMock()


@pytest.fixture
def sample_profile():
    """Profile row with clean forum moderation columns."""
    return {
        "id": "test-user-id",
        "full_name": "Ramesh Patil",
        "state": "Maharashtra",
        "forum_warnings": 0,
        "forum_warning_history": [],
        "is_blocked_from_forum": False,
        "forum_blocked_until": None,
    }


@pytest.fixture
def sample_post():
    """Forum post row with one reply."""
    return {
        "id": "post-123",
        "user_id": "other-user-id",
        "user_name": "Sunita Jadhav",
        "user_location": "Maharashtra",
        "title": "Yellow leaves on tomato plants",
        "content": "Lower leaves are turning yellow after heavy rain. What should I spray?",
        "category": "pest-disease",
        "crop": "tomato",
        "tags": ["tomato", "blight"],
        "replies": [
            {
                "id": "reply-1",
                "user_id": "helper-id",
                "user_name": "Anil Shinde",
                "content": "Looks like early blight. Try a copper fungicide.",
                "upvotes": [],
                "created_at": "2026-10-01T10:00:00+00:00",
            }
        ],
        "reply_count": 1,
        "upvotes": [],
        "upvote_count": 0,
        "views": 4,
        "status": "open",
        "flagged": False,
        "created_at": "2026-10-01T09:00:00+00:00",
    }
