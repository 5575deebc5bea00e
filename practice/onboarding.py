"""
practice/onboarding.py -- Create a practice with its first admin and device.

Used by POST /api/v1/onboarding/register and by the admin CLI (main.py).

The practice starts on a free trial of Settings.trial_length_days. The
registering browser's fingerprint is auto-approved so the new admin is not
locked out by the device guard on their very first request.

The practice and user tables may live behind different engines, so there is
no cross-store transaction. Conflicts are checked up front. If a later
insert still fails (a concurrent registration won the race), the rows
already written are deleted by hand so the same details can be registered
again.

Layer rule: may import from auth/ and core/. Not from api/ or client/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.store import UserStore
from core.config import get_settings, utcnow
from practice.models import Device, DeviceStatus, Practice, SubscriptionTier
from practice.store import DeviceConflictError, PracticeStore

logger = logging.getLogger("kairo.practice.onboarding")


class OnboardingConflictError(Exception):
    """The practice email or admin email is already taken."""


@dataclass
class OnboardingResult:
    practice: Practice
    admin: User
    device: Device | None


def register_practice(
    practices: PracticeStore,
    users: UserStore,
    practice: Practice,
    admin: User,
    admin_password: str,
    device: Device | None = None,
    trial_days: int | None = None,
) -> OnboardingResult:
    """Create practice (on trial), admin user and optionally an approved device.

    Args:
        practice:       Unsaved practice; is_trial/trial_ends_at are overwritten.
        admin:          Unsaved user; role and practice_id are overwritten.
        admin_password: Stored credential form (bcrypt hash, or legacy for demo seed).
        device:         Unsaved device; practice_id and status are overwritten.
        trial_days:     Trial length; defaults to Settings.trial_length_days.
                        Pass 0 to create a paid (non-trial) practice.

    Raises:
        OnboardingConflictError: practice email or admin email already exists,
            or the fingerprint belongs to another practice.
    """
    days = get_settings().trial_length_days if trial_days is None else trial_days

    if practices.get_practice_by_email(practice.email) is not None:
        raise OnboardingConflictError("A practice with this email already exists")
    if users.get_by_email(admin.email) is not None:
        raise OnboardingConflictError("A user with this email already exists")
    if device is not None and practices.get_device_by_fingerprint(device.device_fingerprint) is not None:
        raise OnboardingConflictError("This device is registered to another practice")

    practice.is_trial = days > 0
    practice.trial_ends_at = (utcnow() + timedelta(days=days)).isoformat() if days > 0 else None
    practice.subscription_tier = practice.subscription_tier or SubscriptionTier.BASIC.value
    try:
        practice_id = practices.create_practice(practice)
    except IntegrityError as exc:
        raise OnboardingConflictError("A practice with this email already exists") from exc

    admin.role = Role.PRACTICE_ADMIN.value
    admin.practice_id = practice_id
    try:
        admin_id = users.create_user(admin, password=admin_password)
    except IntegrityError as exc:
        practices.delete_practice(practice_id)
        raise OnboardingConflictError("A user with this email already exists") from exc

    saved_device = None
    if device is not None:
        device.practice_id = practice_id
        device.status = DeviceStatus.APPROVED.value
        device.approved_by = admin_id
        try:
            saved_device = practices.register_device(device)
        except (DeviceConflictError, IntegrityError) as exc:
            users.delete_user(admin_id)
            practices.delete_practice(practice_id)
            raise OnboardingConflictError("This device is registered to another practice") from exc

    logger.info("Practice %s onboarded (trial_days=%d, admin user %s)", practice_id, days, admin_id)
    return OnboardingResult(
        practice=practices.get_practice(practice_id),
        admin=users.get_by_id(admin_id),
        device=saved_device,
    )
