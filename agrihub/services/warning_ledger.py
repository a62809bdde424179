"""
Forum warning ledger and access gate.

Pure decision functions over a user's forum moderation state:

- record_violation(): warn -> temporary block -> permanent block escalation
- check_access(): may this user post or reply right now?
- clear_expired_block(): the lazy clean-up of an expired temporary block

Nothing here talks to the database. The forum service loads the state, calls
these functions and persists whatever new state they return, so every
transition can be tested with plain values.

Known gap: load -> decide -> save runs without any locking, so two violating
requests from the same user that race can both read the same count and one
warning is lost. Request rates on the forum make this acceptable.
"""

from __future__ import annotations
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from agrihub.services.moderation import ScanResult
from agrihub.utils.errors import log_error

OUTCOME_CLEAN = "clean"
OUTCOME_WARNED = "warned"
OUTCOME_BLOCKED_TEMPORARY = "blocked_temporary"
OUTCOME_BLOCKED_PERMANENT = "blocked_permanent"

DENIED_PERMANENT = "permanent"
DENIED_TEMPORARY = "temporary"

_ONE_DAY_SECONDS = 24 * 60 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept datetimes or ISO strings from PostgREST; always return aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _column_timestamp(value: Any, column: str) -> Optional[datetime]:
    """parse_timestamp for stored rows: a malformed value is logged and read as unset."""
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError):
        log_error(f"Ignoring malformed {column} value: {value!r}")
        return None


def _column_count(value: Any, fallback: int) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        log_error(f"Ignoring malformed forum_warnings value: {value!r}")
        return fallback


@dataclass(frozen=True)
class WarningPolicy:
    temp_block_at: int = 2
    permanent_block_at: int = 3
    temp_block_days: int = 7

    @classmethod
    def from_config(cls, config) -> "WarningPolicy":
        return cls(
            temp_block_at=int(config.get("FORUM_TEMP_BLOCK_AT", cls.temp_block_at)),
            permanent_block_at=int(config.get("FORUM_PERMANENT_BLOCK_AT", cls.permanent_block_at)),
            temp_block_days=int(config.get("FORUM_TEMP_BLOCK_DAYS", cls.temp_block_days)),
        )


DEFAULT_POLICY = WarningPolicy()


@dataclass(frozen=True)
class WarningEntry:
    timestamp: datetime
    reason: str
    offending_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.timestamp.isoformat(),
            "reason": self.reason,
            "content": self.offending_text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WarningEntry":
        return cls(
            timestamp=_column_timestamp(data.get("date"), "forum_warning_history.date") or utcnow(),
            reason=data.get("reason", ""),
            offending_text=data.get("content", ""),
        )


@dataclass(frozen=True)
class ModerationState:
    """Forum moderation columns of a user profile."""

    warning_count: int = 0
    warning_history: Tuple[WarningEntry, ...] = field(default_factory=tuple)
    permanently_blocked: bool = False
    temporary_block_until: Optional[datetime] = None

    @classmethod
    def from_profile(cls, profile: Optional[Dict[str, Any]]) -> "ModerationState":
        if not profile:
            return cls()
        history = tuple(
            WarningEntry.from_dict(h)
            for h in profile.get("forum_warning_history") or []
            if isinstance(h, dict)
        )
        # unreadable count: fall back to the history length
        return cls(
            warning_count=_column_count(profile.get("forum_warnings"), len(history)),
            warning_history=history,
            permanently_blocked=bool(profile.get("is_blocked_from_forum")),
            temporary_block_until=_column_timestamp(profile.get("forum_blocked_until"), "forum_blocked_until"),
        )

    def to_profile_update(self) -> Dict[str, Any]:
        return {
            "forum_warnings": self.warning_count,
            "forum_warning_history": [h.to_dict() for h in self.warning_history],
            "is_blocked_from_forum": self.permanently_blocked,
            "forum_blocked_until": (
                self.temporary_block_until.isoformat() if self.temporary_block_until else None
            ),
        }


@dataclass(frozen=True)
class Outcome:
    kind: str
    warning_count: int = 0
    message: str = ""
    until: Optional[datetime] = None
    matched_terms: Tuple[str, ...] = ()

    @property
    def blocked(self) -> bool:
        return self.kind in (OUTCOME_BLOCKED_TEMPORARY, OUTCOME_BLOCKED_PERMANENT)

    @property
    def warned(self) -> bool:
        return self.kind == OUTCOME_WARNED

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "outcome": self.kind,
            "blocked": self.blocked,
            "warned": self.warned,
            "warnings": self.warning_count,
            "message": self.message,
        }
        if self.until:
            data["blocked_until"] = self.until.isoformat()
        if self.matched_terms:
            data["detected_words"] = list(self.matched_terms)
        return data


CLEAN_OUTCOME = Outcome(kind=OUTCOME_CLEAN)


@dataclass(frozen=True)
class LedgerDecision:
    state: ModerationState
    outcome: Outcome

    @property
    def changed(self) -> bool:
        return self.outcome.kind != OUTCOME_CLEAN


def record_violation(
    state: ModerationState,
    scan: ScanResult,
    now: Optional[datetime] = None,
    policy: WarningPolicy = DEFAULT_POLICY,
) -> LedgerDecision:
    """
    Apply one scan result to a user's moderation state.

    A clean scan returns the state untouched with the clean outcome. A flagged
    scan always appends a history entry and bumps the count by one, then the
    new count decides between warning, temporary block and permanent block.
    """
    if not scan.flagged:
        return LedgerDecision(state=state, outcome=CLEAN_OUTCOME)

    now = now or utcnow()
    terms = tuple(scan.matched_terms)
    count = max(state.warning_count, 0) + 1
    entry = WarningEntry(
        timestamp=now,
        reason=f"Detected abusive language: {', '.join(terms)}",
        offending_text=scan.text,
    )
    new_state = replace(
        state,
        warning_count=count,
        warning_history=state.warning_history + (entry,),
    )

    if count >= policy.permanent_block_at:
        new_state = replace(new_state, permanently_blocked=True)
        return LedgerDecision(new_state, Outcome(
            kind=OUTCOME_BLOCKED_PERMANENT,
            warning_count=count,
            message="You have been permanently blocked from the forum due to repeated violations.",
            matched_terms=terms,
        ))

    if count == policy.temp_block_at:
        until = now + timedelta(days=policy.temp_block_days)
        new_state = replace(new_state, temporary_block_until=until)
        return LedgerDecision(new_state, Outcome(
            kind=OUTCOME_BLOCKED_TEMPORARY,
            warning_count=count,
            message=(
                f"You have been temporarily blocked from the forum for {policy.temp_block_days} days "
                "due to repeated violations."
            ),
            until=until,
            matched_terms=terms,
        ))

    remaining = policy.permanent_block_at - count
    return LedgerDecision(new_state, Outcome(
        kind=OUTCOME_WARNED,
        warning_count=count,
        message=(
            "Warning: Your content contains inappropriate language. "
            f"You have {count} warning(s). {remaining} more warning(s) and you will be "
            f"permanently blocked after {policy.permanent_block_at} warnings."
        ),
        matched_terms=terms,
    ))


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    kind: Optional[str] = None
    detail: str = ""
    blocked_until: Optional[datetime] = None
    days_remaining: int = 0

    def to_dict(self) -> Dict[str, Any]:
        if self.allowed:
            return {"allowed": True}
        data: Dict[str, Any] = {"allowed": False, "kind": self.kind, "detail": self.detail}
        if self.blocked_until:
            data["blocked_until"] = self.blocked_until.isoformat()
            data["days_remaining"] = self.days_remaining
        return data


ALLOWED = AccessDecision(allowed=True)


def clear_expired_block(state: ModerationState, now: Optional[datetime] = None) -> Optional[ModerationState]:
    """Return the state with an expired temporary block removed, or None if nothing to clear."""
    now = now or utcnow()
    if state.temporary_block_until is not None and now >= state.temporary_block_until:
        return replace(state, temporary_block_until=None)
    return None


def check_access(state: ModerationState, now: Optional[datetime] = None) -> AccessDecision:
    """Decide whether the user may create posts or replies."""
    now = now or utcnow()

    if state.permanently_blocked:
        return AccessDecision(
            allowed=False,
            kind=DENIED_PERMANENT,
            detail="You have been blocked from the forum due to repeated violations of community guidelines.",
        )

    until = state.temporary_block_until
    if until is not None and now < until:
        days = math.ceil((until - now).total_seconds() / _ONE_DAY_SECONDS)
        return AccessDecision(
            allowed=False,
            kind=DENIED_TEMPORARY,
            detail=(
                "You are temporarily blocked from the forum. "
                f"Access will be restored in {days} day(s)."
            ),
            blocked_until=until,
            days_remaining=days,
        )

    return ALLOWED
