"""
Lightweight text moderation for forum posts and replies.

A ModerationScanner holds an immutable term list and scans free text for those
terms plus two spam heuristics (shouting and long runs of one character).
Scanning is pure: the same text always yields the same ScanResult, and nothing
is recorded here. Escalation (warnings, blocks) lives in warning_ledger.
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

SPAM_PATTERN = "spam_pattern"

SEVERITY_LOW = "low"
SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"

# Basic list; extend per community. Censored placeholders such as "f***" are
# left out: after normalization they collapse to a single letter.
DEFAULT_TERMS: Tuple[str, ...] = (
    # Profanity
    "damn", "hell", "crap", "stupid", "idiot", "fool",
    # Abusive phrases
    "shut up", "you are wrong", "you dont know", "you are lying",
    # Hate speech indicators
    "hate you", "kill yourself", "you should die",
    # Spam indicators
    "buy now", "click here", "free money", "get rich quick",
)

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_UPPERCASE = re.compile(r"[A-Z]")
_REPEATED_CHAR = re.compile(r"(.)\1{4,}", re.DOTALL)

_MIN_SHOUTING_LENGTH = 10


def normalize_text(text: str) -> str:
    """Lowercase, turn punctuation into spaces, collapse whitespace."""
    t = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", t).strip()


def _looks_like_spam(text: str) -> bool:
    shouting = (
        len(text) > _MIN_SHOUTING_LENGTH
        and len(_UPPERCASE.findall(text)) > len(text) * 0.5
    )
    return shouting or _REPEATED_CHAR.search(text) is not None


def _severity_for(match_count: int) -> str:
    if match_count > 2:
        return SEVERITY_HIGH
    if match_count > 0:
        return SEVERITY_MEDIUM
    return SEVERITY_LOW


@dataclass(frozen=True)
class ScanResult:
    """Verdict for one piece of text."""

    flagged: bool
    matched_terms: Tuple[str, ...] = ()
    severity: str = SEVERITY_LOW
    text: str = ""

    def to_dict(self) -> dict:
        return {
            "flagged": self.flagged,
            "matched_terms": list(self.matched_terms),
            "severity": self.severity,
        }


CLEAN = ScanResult(flagged=False)


class ModerationScanner:
    """Substring scanner over a fixed, normalized term list."""

    def __init__(self, terms: Iterable[str] = DEFAULT_TERMS) -> None:
        self._terms: Tuple[Tuple[str, str], ...] = tuple(
            (term, normalize_text(term))
            for term in dict.fromkeys(terms)
            if normalize_text(term)
        )

    @property
    def terms(self) -> Tuple[str, ...]:
        return tuple(term for term, _ in self._terms)

    def scan(self, text, title: Optional[str] = None) -> ScanResult:
        """
        Scan content (and optional title) for listed terms and spam patterns.

        Missing or non-string content is treated as nothing to check and
        returns a clean result instead of raising.
        """
        if not text or not isinstance(text, str):
            return CLEAN

        full_text = f"{title} {text}" if title and isinstance(title, str) else text
        normalized = normalize_text(full_text)

        # term-list order, then the spam marker
        matched = tuple(term for term, needle in self._terms if needle in normalized)
        if _looks_like_spam(full_text):
            matched += (SPAM_PATTERN,)

        return ScanResult(
            flagged=bool(matched),
            matched_terms=matched,
            severity=_severity_for(len(matched)),
            text=full_text,
        )


_default_scanner = ModerationScanner()


def moderate_content(content, title: Optional[str] = None) -> ScanResult:
    """Scan a post or reply with the built-in term list."""
    return _default_scanner.scan(content, title)
