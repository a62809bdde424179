"""
Input validation and normalization for the JSON API.

Trims and bounds field lengths, strips control characters while keeping
natural punctuation (moderation needs the text as typed), parses tags and
dates, and builds clean payloads for the services.
"""

from __future__ import annotations
import json
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_SAFE_NAME_PATTERN = re.compile(r"[^\w\s\-\.,'()/&]+")

MAX_TITLE_LEN = 200
MAX_CONTENT_LEN = 5000
MAX_CATEGORY_LEN = 50
MAX_CROP_LEN = 50
MAX_TAGS = 10
MAX_TAG_LEN = 30
MAX_REASON_LEN = 500
MAX_NOTES_LEN = 1000


def _soft_sanitize(text: Any, max_len: int) -> str:
    """
    Normalizes short names (category, crop, tags):
    - strip whitespace
    - bound length
    - remove disallowed characters via allowlist
    - collapse double spaces
    """
    if not isinstance(text, str):
        return ""
    t = text.strip()[:max_len]
    t = _SAFE_NAME_PATTERN.sub("", t)
    return re.sub(r"\s{2,}", " ", t).strip()


def _soft_sanitize_body(text: Any, max_len: int) -> str:
    """
    Free text is more permissive:
    - strip & bound length
    - remove control chars only; keep punctuation and casing
    """
    if not isinstance(text, str):
        return ""
    t = text.strip()[:max_len]
    return _CONTROL_CHARS.sub("", t)


def parse_tags(raw: Any) -> List[str]:
    """Accept a list or a JSON-encoded list; drop blanks and duplicates."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else []
        except ValueError:
            raw = [part for part in raw.split(",")]
    if not isinstance(raw, list):
        return []

    tags: List[str] = []
    for item in raw:
        tag = _soft_sanitize(item, MAX_TAG_LEN).lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:MAX_TAGS]


def parse_date(raw: Any) -> Optional[date]:
    """ISO date or datetime string to a date; None when unparseable."""
    if not isinstance(raw, str) or not raw.strip():
        return None
    text = raw.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def validate_post(data: Dict[str, Any]) -> Tuple[Dict[str, Any], str | None]:
    """
    Validates a new forum post and returns (payload, error_message).
    Title, content and category are required.
    """
    title = _soft_sanitize_body(data.get("title"), MAX_TITLE_LEN)
    content = _soft_sanitize_body(data.get("content"), MAX_CONTENT_LEN)
    category = _soft_sanitize(data.get("category"), MAX_CATEGORY_LEN)

    if not title or not content or not category:
        return {}, "Title, content, and category are required"

    return {
        "title": title,
        "content": content,
        "category": category,
        "crop": _soft_sanitize(data.get("crop"), MAX_CROP_LEN) or None,
        "tags": parse_tags(data.get("tags")),
    }, None


def validate_reply(data: Dict[str, Any]) -> Tuple[Dict[str, Any], str | None]:
    content = _soft_sanitize_body(data.get("content"), MAX_CONTENT_LEN)
    if not content:
        return {}, "Content is required"
    return {"content": content}, None


def clean_reason(raw: Any) -> Optional[str]:
    return _soft_sanitize_body(raw, MAX_REASON_LEN) or None


def clean_notes(raw: Any) -> Optional[str]:
    return _soft_sanitize_body(raw, MAX_NOTES_LEN) or None


def validate_calendar_request(data: Dict[str, Any]) -> Tuple[Dict[str, Any], str | None]:
    """Crop and sowing date are required; location is an optional object."""
    crop = _soft_sanitize(data.get("crop"), MAX_CROP_LEN)
    sowing_raw = data.get("sowing_date") or data.get("sowingDate")
    if not crop or not sowing_raw:
        return {}, "Crop and sowing date are required"

    sowing_date = parse_date(sowing_raw)
    if sowing_date is None:
        return {}, "Invalid sowing date"

    location = data.get("location")
    return {
        "crop": crop,
        "sowing_date": sowing_date,
        "location": location if isinstance(location, dict) else {},
    }, None
