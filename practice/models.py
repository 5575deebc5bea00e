"""
practice/models.py -- Domain dataclasses for tenants and their devices.

Pure data containers. Trial arithmetic lives in practice/trial.py,
persistence in practice/store.py.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SubscriptionTier(str, Enum):
    BASIC = "BASIC"
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"


class DeviceStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REVOKED = "REVOKED"


class TrialState(str, Enum):
    """Where a practice sits in the trial lifecycle. Derived, never stored."""

    ACTIVE_SUBSCRIPTION = "ACTIVE_SUBSCRIPTION"
    TRIAL_ACTIVE = "TRIAL_ACTIVE"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"


class TrialUrgency(str, Enum):
    """Display bucket for the time left on a trial. Not a security boundary."""

    URGENT = "urgent"  # < 12h
    WARNING = "warning"  # < 24h
    INFO = "info"


@dataclass
class Practice:
    """A tenant. Every clinical record carries its practice id.

    trial_ends_at is an ISO 8601 timestamp. is_trial with no trial_ends_at
    is an open-ended trial (no expiry).

    id is None before the record is written to the database.
    """

    name: str
    email: str
    phone: str = ""
    ods_code: str = ""  # NHS Organisation Data Service code
    is_trial: bool = True
    trial_ends_at: str | None = None
    subscription_tier: str = SubscriptionTier.BASIC.value
    is_active: bool = True
    id: int | None = None
    created_at: str = ""


@dataclass(frozen=True)
class TrialStatus:
    """Result of evaluating a practice's plan fields at one instant.

    hours_remaining is None when nothing is counting down (paid plan, or a
    trial without an end date); otherwise max(0, hours until trial_ends_at).
    """

    practice_id: int
    practice_name: str
    is_trial: bool
    trial_ends_at: str | None
    trial_expired: bool
    hours_remaining: float | None
    subscription_tier: str
    is_active: bool
    state: TrialState


@dataclass
class Device:
    """A browser/machine registered to a practice by its fingerprint.

    The fingerprint is globally unique: one device belongs to one practice.
    """

    practice_id: int
    device_fingerprint: str
    device_name: str
    device_type: str  # "Desktop" | "Tablet" | "Mobile"
    status: str = DeviceStatus.PENDING.value
    ip_address: str | None = None
    user_agent: str | None = None
    approved_by: int | None = None
    approved_at: str | None = None
    revoked_at: str | None = None
    revoked_reason: str | None = None
    last_used_at: str | None = None
    last_used_by: int | None = None
    id: int | None = None
    created_at: str = ""
