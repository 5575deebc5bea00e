"""
API request and response models for the Kairo REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
practice/models.py, which own the internal domain representation. Route
handlers map between the two.

Wire naming: snake_case throughout, except the trial status and subscription
payloads, which the web client consumes in camelCase (isTrial, trialEndsAt,
...). Those inherit _CamelModel and accept either spelling on input.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import User
from practice.models import Device, Practice, TrialStatus

# Deliberately loose: deliverability is proven by the reset email, not a regex.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SubscriptionTierEnum(str, Enum):
    BASIC = "BASIC"
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"


class DeviceTypeEnum(str, Enum):
    Desktop = "Desktop"
    Tablet = "Tablet"
    Mobile = "Mobile"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    No whitespace stripping: passwords are compared byte for byte.
    """

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=128)


class UserSummary(BaseModel):
    """The user subset returned by login and GET /auth/me."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    practice_id: Optional[int]
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            practice_id=user.practice_id,
            last_login=user.last_login,
        )


class LoginResponse(BaseModel):
    """Response for a successful login. access_token goes in the Bearer header."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserSummary


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=16, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)


# ---------------------------------------------------------------------------
# Practices and trial
# ---------------------------------------------------------------------------


class TrialStatusResponse(_CamelModel):
    """Response for GET /api/v1/practices/trial-status (camelCase on the wire)."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    practice_name: str
    is_trial: bool
    trial_ends_at: Optional[str]
    trial_expired: bool
    hours_remaining: Optional[float]
    subscription_tier: str
    is_active: bool

    @classmethod
    def from_status(cls, status: TrialStatus) -> "TrialStatusResponse":
        hours = status.hours_remaining
        if hours is not None:
            # Round up to 2 places so a running trial never reports 0.0.
            hours = math.ceil(hours * 100) / 100
        return cls(
            practice_name=status.practice_name,
            is_trial=status.is_trial,
            trial_ends_at=status.trial_ends_at,
            trial_expired=status.trial_expired,
            hours_remaining=hours,
            subscription_tier=status.subscription_tier,
            is_active=status.is_active,
        )


class PracticeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    phone: str
    ods_code: str
    is_trial: bool
    trial_ends_at: Optional[str]
    subscription_tier: str
    is_active: bool
    created_at: str

    @classmethod
    def from_practice(cls, practice: Practice) -> "PracticeResponse":
        return cls(
            id=practice.id,
            name=practice.name,
            email=practice.email,
            phone=practice.phone,
            ods_code=practice.ods_code,
            is_trial=practice.is_trial,
            trial_ends_at=practice.trial_ends_at,
            subscription_tier=practice.subscription_tier,
            is_active=practice.is_active,
            created_at=practice.created_at,
        )


class SubscriptionUpdate(_CamelModel):
    """Request body for PATCH /api/v1/practices/{id}/subscription.

    Only fields present in the body are applied (model_fields_set), so
    {"trialEndsAt": null} clears the end date while omitting it leaves it.
    """

    is_trial: Optional[bool] = None
    trial_ends_at: Optional[datetime] = None
    subscription_tier: Optional[SubscriptionTierEnum] = None
    is_active: Optional[bool] = None

    @field_validator("trial_ends_at")
    @classmethod
    def require_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Reject naive timestamps; a trial end must name its timezone."""
        if value is not None and value.tzinfo is None:
            raise ValueError("trialEndsAt must include a timezone offset")
        return value


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


class DeviceRegister(BaseModel):
    """Request body for POST /api/v1/devices/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    device_fingerprint: str = Field(min_length=16, max_length=128)
    device_name: str = Field(min_length=1, max_length=255)
    device_type: DeviceTypeEnum = DeviceTypeEnum.Desktop


class DeviceRevoke(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    reason: Optional[str] = Field(default=None, max_length=500)


class DeviceResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    device_name: str
    device_type: str
    status: str
    ip_address: Optional[str]
    approved_at: Optional[str]
    revoked_at: Optional[str]
    revoked_reason: Optional[str]
    last_used_at: Optional[str]
    created_at: str

    @classmethod
    def from_device(cls, device: Device) -> "DeviceResponse":
        # The fingerprint itself is never echoed back; it is a device secret.
        return cls(
            id=device.id,
            device_name=device.device_name,
            device_type=device.device_type,
            status=device.status,
            ip_address=device.ip_address,
            approved_at=device.approved_at,
            revoked_at=device.revoked_at,
            revoked_reason=device.revoked_reason,
            last_used_at=device.last_used_at,
            created_at=device.created_at,
        )


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------


class OnboardingRequest(BaseModel):
    """Request body for POST /api/v1/onboarding/register."""

    practice_name: str = Field(min_length=1, max_length=255)
    practice_email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    practice_phone: str = Field(default="", max_length=50)
    ods_code: str = Field(min_length=3, max_length=20)
    admin_email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    admin_password: str = Field(min_length=8, max_length=128)
    admin_first_name: str = Field(min_length=1, max_length=100)
    admin_last_name: str = Field(min_length=1, max_length=100)
    device_fingerprint: str = Field(min_length=16, max_length=128)
    device_name: str = Field(min_length=1, max_length=255)
    device_type: DeviceTypeEnum = DeviceTypeEnum.Desktop

    @field_validator(
        "practice_name",
        "practice_email",
        "practice_phone",
        "ods_code",
        "admin_email",
        "admin_first_name",
        "admin_last_name",
        "device_fingerprint",
        "device_name",
        mode="before",
    )
    @classmethod
    def strip_text(cls, value):
        """Strip every text field except the password."""
        return value.strip() if isinstance(value, str) else value


class OnboardingResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    practice: PracticeResponse
    user: UserSummary
    device: DeviceResponse
