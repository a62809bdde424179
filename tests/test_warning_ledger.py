"""
Unit tests for the warning ledger and access gate.

Everything here runs on plain values: no Flask app and no database.
"""

import random
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from agrihub.services.moderation import ScanResult
from agrihub.services.warning_ledger import (
    DENIED_PERMANENT,
    DENIED_TEMPORARY,
    OUTCOME_BLOCKED_PERMANENT,
    OUTCOME_BLOCKED_TEMPORARY,
    OUTCOME_CLEAN,
    OUTCOME_WARNED,
    ModerationState,
    WarningPolicy,
    check_access,
    clear_expired_block,
    parse_timestamp,
    record_violation,
)

NOW = datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc)

FLAGGED = ScanResult(
    flagged=True,
    matched_terms=("stupid",),
    severity="medium",
    text="you are stupid",
)
CLEAN = ScanResult(flagged=False)


class TestRecordViolation:

    def test_three_violations_escalate(self):
        state = ModerationState()

        first = record_violation(state, FLAGGED, NOW)
        second = record_violation(first.state, FLAGGED, NOW)
        third = record_violation(second.state, FLAGGED, NOW)

        assert [d.outcome.kind for d in (first, second, third)] == [
            OUTCOME_WARNED,
            OUTCOME_BLOCKED_TEMPORARY,
            OUTCOME_BLOCKED_PERMANENT,
        ]
        assert [d.state.warning_count for d in (first, second, third)] == [1, 2, 3]

    def test_first_violation_warns_with_remaining_count(self):
        decision = record_violation(ModerationState(), FLAGGED, NOW)

        assert decision.outcome.warned is True
        assert decision.outcome.blocked is False
        assert decision.outcome.warning_count == 1
        assert "2 more warning(s)" in decision.outcome.message
        assert decision.outcome.matched_terms == ("stupid",)
        assert decision.state.temporary_block_until is None
        assert decision.state.permanently_blocked is False

    def test_second_violation_blocks_for_seven_days(self):
        decision = record_violation(ModerationState(warning_count=1), FLAGGED, NOW)

        assert decision.outcome.kind == OUTCOME_BLOCKED_TEMPORARY
        assert decision.outcome.until == NOW + timedelta(days=7)
        assert decision.state.temporary_block_until == NOW + timedelta(days=7)
        assert decision.state.permanently_blocked is False
        assert "7 days" in decision.outcome.message

    def test_third_violation_blocks_permanently(self):
        decision = record_violation(ModerationState(warning_count=2), FLAGGED, NOW)

        assert decision.outcome.kind == OUTCOME_BLOCKED_PERMANENT
        assert decision.state.permanently_blocked is True
        assert decision.state.warning_count == 3

    def test_violation_past_three_stays_permanent(self):
        state = ModerationState(warning_count=3, permanently_blocked=True)

        decision = record_violation(state, FLAGGED, NOW)

        assert decision.outcome.kind == OUTCOME_BLOCKED_PERMANENT
        assert decision.state.warning_count == 4

    def test_history_is_appended(self):
        first = record_violation(ModerationState(), FLAGGED, NOW)
        later = NOW + timedelta(hours=1)
        second = record_violation(first.state, FLAGGED, later)

        history = second.state.warning_history
        assert len(history) == 2
        assert history[0] == first.state.warning_history[0]
        assert history[1].timestamp == later
        assert history[1].reason == "Detected abusive language: stupid"
        assert history[1].offending_text == "you are stupid"

    def test_clean_scan_does_not_mutate(self):
        state = ModerationState(warning_count=1)

        decision = record_violation(state, CLEAN, NOW)

        assert decision.state is state
        assert decision.outcome.kind == OUTCOME_CLEAN
        assert decision.changed is False

    def test_input_state_is_left_untouched(self):
        state = ModerationState()

        record_violation(state, FLAGGED, NOW)

        assert state.warning_count == 0
        assert state.warning_history == ()

    def test_warning_count_never_decreases(self):
        rng = random.Random(7)
        state = ModerationState()
        previous = 0

        for _ in range(25):
            scan = FLAGGED if rng.random() < 0.4 else CLEAN
            state = record_violation(state, scan, NOW).state
            assert state.warning_count >= previous
            previous = state.warning_count

    def test_policy_thresholds_are_configurable(self):
        policy = WarningPolicy(temp_block_at=3, permanent_block_at=5, temp_block_days=1)
        state = ModerationState()
        kinds = []

        for _ in range(5):
            decision = record_violation(state, FLAGGED, NOW, policy)
            state = decision.state
            kinds.append(decision.outcome.kind)

        assert kinds == [
            OUTCOME_WARNED,
            OUTCOME_WARNED,
            OUTCOME_BLOCKED_TEMPORARY,
            OUTCOME_WARNED,
            OUTCOME_BLOCKED_PERMANENT,
        ]

    def test_policy_from_config(self):
        policy = WarningPolicy.from_config({"FORUM_TEMP_BLOCK_DAYS": "3"})

        assert policy == WarningPolicy(temp_block_at=2, permanent_block_at=3, temp_block_days=3)


class TestAccessGate:

    def test_clean_state_is_allowed(self):
        assert check_access(ModerationState(), NOW).allowed is True

    def test_permanent_block_is_denied(self):
        decision = check_access(ModerationState(warning_count=3, permanently_blocked=True), NOW)

        assert decision.allowed is False
        assert decision.kind == DENIED_PERMANENT

    def test_permanent_block_wins_over_expired_temporary(self):
        state = ModerationState(
            warning_count=3,
            permanently_blocked=True,
            temporary_block_until=NOW - timedelta(days=1),
        )

        assert check_access(state, NOW).kind == DENIED_PERMANENT

    @pytest.mark.parametrize("remaining, days", [
        (timedelta(days=7), 7),
        (timedelta(hours=36), 2),
        (timedelta(minutes=1), 1),
    ])
    def test_temporary_block_reports_days_rounded_up(self, remaining, days):
        state = ModerationState(warning_count=2, temporary_block_until=NOW + remaining)

        decision = check_access(state, NOW)

        assert decision.allowed is False
        assert decision.kind == DENIED_TEMPORARY
        assert decision.days_remaining == days
        assert f"{days} day(s)" in decision.detail

    def test_expired_block_is_allowed_and_cleared_once(self):
        until = NOW - timedelta(milliseconds=1)
        state = ModerationState(warning_count=2, temporary_block_until=until)

        assert check_access(state, NOW).allowed is True

        cleared = clear_expired_block(state, NOW)
        assert cleared is not None
        assert cleared.temporary_block_until is None
        assert cleared.warning_count == 2

        assert clear_expired_block(cleared, NOW) is None
        assert check_access(cleared, NOW).allowed is True

    def test_active_block_is_not_cleared(self):
        state = ModerationState(warning_count=2, temporary_block_until=NOW + timedelta(seconds=1))

        assert clear_expired_block(state, NOW) is None

    def test_block_ending_exactly_now_is_expired(self):
        state = ModerationState(warning_count=2, temporary_block_until=NOW)

        assert check_access(state, NOW).allowed is True
        assert clear_expired_block(state, NOW) is not None


class TestProfileMapping:

    def test_missing_profile_is_zero_state(self):
        assert ModerationState.from_profile(None) == ModerationState()

    def test_profile_columns_are_parsed(self):
        profile = {
            "forum_warnings": 2,
            "forum_warning_history": [
                {"date": "2026-10-01T08:00:00Z", "reason": "Detected abusive language: fool", "content": "fool"},
            ],
            "is_blocked_from_forum": False,
            "forum_blocked_until": "2026-10-08T08:00:00.123+00:00",
        }

        state = ModerationState.from_profile(profile)

        assert state.warning_count == 2
        assert state.warning_history[0].timestamp == datetime(2026, 10, 1, 8, tzinfo=timezone.utc)
        assert state.temporary_block_until.tzinfo is not None

    def test_update_contains_every_column(self):
        decision = record_violation(ModerationState(warning_count=1), FLAGGED, NOW)

        update = decision.state.to_profile_update()

        assert set(update) == {
            "forum_warnings", "forum_warning_history", "is_blocked_from_forum", "forum_blocked_until",
        }
        assert update["forum_warnings"] == 2
        assert update["forum_blocked_until"] == (NOW + timedelta(days=7)).isoformat()
        assert update["forum_warning_history"][0]["content"] == "you are stupid"

    def test_naive_timestamp_is_treated_as_utc(self):
        assert parse_timestamp("2026-10-17T09:30:00") == NOW

    @patch('agrihub.services.warning_ledger.log_error')
    def test_malformed_block_until_is_logged_and_ignored(self, mock_log):
        state = ModerationState.from_profile({"forum_warnings": 2, "forum_blocked_until": "next tuesday"})

        assert state.temporary_block_until is None
        assert state.warning_count == 2
        assert check_access(state, NOW).allowed is True
        assert "forum_blocked_until" in mock_log.call_args.args[0]

    @patch('agrihub.services.warning_ledger.log_error')
    def test_malformed_count_falls_back_to_history_length(self, mock_log):
        profile = {
            "forum_warnings": "two",
            "forum_warning_history": [
                {"date": "not a date", "reason": "Detected abusive language: fool", "content": "fool"},
                {"date": "2026-10-02T08:00:00Z", "reason": "Detected abusive language: idiot", "content": "idiot"},
                "garbage",
            ],
        }

        state = ModerationState.from_profile(profile)

        assert state.warning_count == 2
        assert len(state.warning_history) == 2
        assert state.warning_history[0].timestamp.tzinfo is not None
        assert mock_log.call_count == 2

        decision = record_violation(state, FLAGGED, NOW)
        assert decision.state.warning_count == 3
        assert decision.outcome.kind == OUTCOME_BLOCKED_PERMANENT


class TestAuditText:

    def test_reason_lists_terms_in_detection_order(self):
        scan = ScanResult(
            flagged=True,
            matched_terms=("stupid", "click here", "spam_pattern"),
            severity="high",
            text="STUPID!!!!! click here",
        )

        decision = record_violation(ModerationState(), scan, NOW)

        assert decision.state.warning_history[0].reason == (
            "Detected abusive language: stupid, click here, spam_pattern"
        )
        assert decision.outcome.to_dict()["detected_words"] == ["stupid", "click here", "spam_pattern"]
