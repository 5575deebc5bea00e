"""Unit tests for practice/trial.py.

Covers:
- compute_trial_status() across the three states, with a fixed clock
- Open-ended and unparseable trial end dates
- evaluate_gate() role bypass
- classify_urgency() bucket edges and format_time_remaining() wording
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from practice.models import Practice, TrialState, TrialUrgency
from practice.trial import (
    classify_urgency,
    compute_trial_status,
    evaluate_gate,
    format_time_remaining,
    hours_until,
)

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _practice(ends_in: timedelta | None = None, *, is_trial: bool = True, ends_at: str | None = None) -> Practice:
    if ends_in is not None:
        ends_at = (NOW + ends_in).isoformat()
    return Practice(name="Test Surgery", email="t@example.org", is_trial=is_trial, trial_ends_at=ends_at, id=1)


# ---------------------------------------------------------------------------
# compute_trial_status
# ---------------------------------------------------------------------------


class TestComputeTrialStatus:
    def test_trial_with_time_left(self) -> None:
        status = compute_trial_status(_practice(timedelta(hours=10)), now=NOW)
        assert status.state is TrialState.TRIAL_ACTIVE
        assert status.trial_expired is False
        assert status.hours_remaining == pytest.approx(10.0)

    def test_trial_in_the_past(self) -> None:
        status = compute_trial_status(_practice(timedelta(hours=-1)), now=NOW)
        assert status.state is TrialState.TRIAL_EXPIRED
        assert status.trial_expired is True
        assert status.hours_remaining == 0

    def test_ending_exactly_now_is_expired(self) -> None:
        status = compute_trial_status(_practice(timedelta(0)), now=NOW)
        assert status.trial_expired is True

    def test_paid_practice_ignores_stale_end_date(self) -> None:
        status = compute_trial_status(_practice(timedelta(days=-30), is_trial=False), now=NOW)
        assert status.state is TrialState.ACTIVE_SUBSCRIPTION
        assert status.trial_expired is False
        assert status.hours_remaining is None

    def test_open_ended_trial(self) -> None:
        status = compute_trial_status(_practice(), now=NOW)
        assert status.state is TrialState.TRIAL_ACTIVE
        assert status.hours_remaining is None

    def test_unparseable_end_date_fails_closed(self) -> None:
        status = compute_trial_status(_practice(ends_at="next tuesday"), now=NOW)
        assert status.trial_expired is True
        assert status.hours_remaining == 0

    def test_copies_plan_fields(self) -> None:
        practice = _practice(timedelta(days=2))
        status = compute_trial_status(practice, now=NOW)
        assert status.practice_id == 1
        assert status.practice_name == "Test Surgery"
        assert status.trial_ends_at == practice.trial_ends_at
        assert status.subscription_tier == "BASIC"

    def test_defaults_to_current_time(self) -> None:
        practice = Practice(
            name="Live",
            email="l@example.org",
            trial_ends_at=(datetime.now(timezone.utc) + timedelta(hours=3)).isoformat(),
        )
        status = compute_trial_status(practice)
        assert 2.9 < status.hours_remaining <= 3.0


def test_hours_until_floors_at_zero() -> None:
    assert hours_until(NOW - timedelta(days=1), NOW) == 0.0
    assert hours_until(NOW + timedelta(minutes=90), NOW) == pytest.approx(1.5)


# ---------------------------------------------------------------------------
# evaluate_gate
# ---------------------------------------------------------------------------


class TestEvaluateGate:
    @pytest.fixture
    def expired(self):
        return compute_trial_status(_practice(timedelta(hours=-1)), now=NOW)

    @pytest.mark.parametrize("role", ["PRACTICE_ADMIN", "GP", "NURSE", "RECEPTIONIST"])
    def test_expired_blocks_practice_roles(self, expired, role) -> None:
        assert evaluate_gate(expired, role) is False

    def test_super_admin_bypasses(self, expired) -> None:
        assert evaluate_gate(expired, "SUPER_ADMIN") is True

    def test_active_trial_allows(self) -> None:
        status = compute_trial_status(_practice(timedelta(hours=1)), now=NOW)
        assert evaluate_gate(status, "RECEPTIONIST") is True

    def test_paid_allows(self) -> None:
        status = compute_trial_status(_practice(is_trial=False), now=NOW)
        assert evaluate_gate(status, "GP") is True


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "hours, expected",
    [
        (0.0, TrialUrgency.URGENT),
        (11.99, TrialUrgency.URGENT),
        (12.0, TrialUrgency.WARNING),
        (23.99, TrialUrgency.WARNING),
        (24.0, TrialUrgency.INFO),
        (300.0, TrialUrgency.INFO),
    ],
)
def test_classify_urgency(hours, expected) -> None:
    assert classify_urgency(hours) is expected


@pytest.mark.parametrize(
    "hours, expected",
    [
        (51, "2 days and 3 hours"),
        (24, "1 day and 0 hours"),
        (25, "1 day and 1 hour"),
        (1, "1 hour"),
        (5.4, "5 hours"),
        (0.5, "30 minutes"),
        (1 / 60, "1 minute"),
        (2.5, "3 hours"),
        (36.5, "1 day and 13 hours"),
        (0.375, "23 minutes"),
    ],
)
def test_format_time_remaining(hours, expected) -> None:
    assert format_time_remaining(hours) == expected
