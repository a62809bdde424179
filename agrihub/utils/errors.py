"""
Error helpers shared by routes and services.

Services raise; routes catch at the edge, log the real exception and return a
generic message so driver or upstream details never reach the client.
"""

from __future__ import annotations
import logging
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

GENERIC_MESSAGES = {
    "database": "A database error occurred. Please try again later.",
    "upstream": "The price service is unavailable right now. Please try again later.",
    "validation": "The request could not be processed. Please check your input.",
    "unknown": "Something went wrong. Please try again later.",
}


class DatabaseUnavailable(RuntimeError):
    """Raised when the Supabase client has not been configured."""

    def __init__(self, message: str = "Database not configured") -> None:
        super().__init__(message)


def _logger():
    return current_app.logger if has_app_context() else logger


def log_info(message: str) -> None:
    _logger().info(message)


def log_error(message: str) -> None:
    _logger().error(message)


def sanitize_error(error: Exception, category: str = "unknown", context: str | None = None) -> str:
    """
    Log the full exception and return a client-safe message.

    Args:
        error: The exception that was caught
        category: Key into GENERIC_MESSAGES
        context: Short description of what was being attempted (for the log only)

    Returns:
        Generic message suitable for a JSON error body
    """
    prefix = f"{context}: " if context else ""
    _logger().error(f"{prefix}{type(error).__name__}: {error}")
    return GENERIC_MESSAGES.get(category, GENERIC_MESSAGES["unknown"])
