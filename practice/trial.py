"""
practice/trial.py -- Trial window arithmetic and the gate decision.

Nothing here is stored. A practice's TrialState is recomputed from its plan
fields (is_trial, trial_ends_at) on every check, so the only things that move
a practice between states are the wall clock passing trial_ends_at and an
administrator changing the plan (PATCH /practices/{id}/subscription).

  is_trial = False                      -> ACTIVE_SUBSCRIPTION
  is_trial, hours_remaining > 0         -> TRIAL_ACTIVE
  is_trial, hours_remaining <= 0        -> TRIAL_EXPIRED
  is_trial, trial_ends_at is None       -> TRIAL_ACTIVE (open-ended trial)

The urgency buckets and the human-readable countdown are for display only;
the client uses them to style the banner.

Layer rule: pure functions, no I/O. Safe for client/ to import.
"""

from __future__ import annotations

import math
from datetime import datetime

from auth.models import BYPASS_ROLES
from core.config import parse_iso, utcnow
from practice.models import Practice, TrialState, TrialStatus, TrialUrgency

URGENT_HOURS = 12
WARNING_HOURS = 24


def hours_until(ends_at: datetime, now: datetime) -> float:
    """Hours from now until ends_at, floored at zero."""
    return max(0.0, (ends_at - now).total_seconds() / 3600)


def compute_trial_status(practice: Practice, now: datetime | None = None) -> TrialStatus:
    """Evaluate a practice's trial at `now` (default: current UTC time).

    An unparseable trial_ends_at counts as already ended; enforcement fails
    closed.
    """
    now = now or utcnow()
    hours_remaining: float | None = None
    expired = False

    if practice.is_trial:
        if practice.trial_ends_at is not None:
            ends_at = parse_iso(practice.trial_ends_at)
            hours_remaining = hours_until(ends_at, now) if ends_at is not None else 0.0
            expired = hours_remaining <= 0
        state = TrialState.TRIAL_EXPIRED if expired else TrialState.TRIAL_ACTIVE
    else:
        state = TrialState.ACTIVE_SUBSCRIPTION

    return TrialStatus(
        practice_id=practice.id,
        practice_name=practice.name,
        is_trial=practice.is_trial,
        trial_ends_at=practice.trial_ends_at,
        trial_expired=expired,
        hours_remaining=hours_remaining,
        subscription_tier=practice.subscription_tier,
        is_active=practice.is_active,
        state=state,
    )


def evaluate_gate(status: TrialStatus, role: str) -> bool:
    """Return True if a request from `role` may proceed for this practice."""
    if role in BYPASS_ROLES:
        return True
    return status.state is not TrialState.TRIAL_EXPIRED


def classify_urgency(hours: float) -> TrialUrgency:
    if hours < URGENT_HOURS:
        return TrialUrgency.URGENT
    if hours < WARNING_HOURS:
        return TrialUrgency.WARNING
    return TrialUrgency.INFO


def _round_half_up(value: float) -> int:
    # Halves go up (2.5 -> 3); builtin round() would give 2.
    return math.floor(value + 0.5)


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


def format_time_remaining(hours: float) -> str:
    """Render remaining trial time the way the banner shows it.

    >>> format_time_remaining(51)
    '2 days and 3 hours'
    >>> format_time_remaining(5.4)
    '5 hours'
    >>> format_time_remaining(2.5)
    '3 hours'
    >>> format_time_remaining(0.5)
    '30 minutes'
    """
    if hours >= 24:
        days = int(hours // 24)
        remaining = _round_half_up(hours % 24)
        return f"{_plural(days, 'day')} and {_plural(remaining, 'hour')}"
    if hours >= 1:
        return _plural(_round_half_up(hours), "hour")
    return _plural(_round_half_up(hours * 60), "minute")
