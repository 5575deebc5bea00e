"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these own the shape.

Layer rule: no imports from api/, practice/, or client/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    PRACTICE_ADMIN = "PRACTICE_ADMIN"
    PRACTICE_MANAGER = "PRACTICE_MANAGER"
    GP = "GP"
    NURSE = "NURSE"
    HCA = "HCA"  # Healthcare Assistant
    RECEPTIONIST = "RECEPTIONIST"


# Roles that bypass tenant-level policy (trial gate, device guard). Super
# admins belong to no practice, so there is nothing for those checks to scope.
BYPASS_ROLES: frozenset[str] = frozenset({Role.SUPER_ADMIN.value})

# Roles allowed to manage a practice's devices.
PRACTICE_ADMIN_ROLES: frozenset[str] = frozenset({Role.PRACTICE_ADMIN.value, Role.SUPER_ADMIN.value})


# ---------------------------------------------------------------------------
# Stored credentials -- tagged variant, resolved once at the store boundary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HashedCredential:
    """A bcrypt hash ("$2a$", "$2b$" or "$2y$" prefix)."""

    value: bytes


@dataclass(frozen=True)
class LegacyEncodedCredential:
    """base64 of the plaintext password, as written by the demo seed.

    Reversible and unsalted. Kept only so seeded accounts can log in before
    anyone re-hashes them; see Settings.legacy_credentials_enabled.
    """

    value: bytes


Credential = Union[HashedCredential, LegacyEncodedCredential]


@dataclass
class User:
    """A practice staff member (or a super admin when practice_id is None).

    credential is None only for accounts created without a password; such
    accounts can never log in until a reset sets one.
    """

    email: str
    role: str
    first_name: str = ""
    last_name: str = ""
    practice_id: int | None = None
    id: int | None = None
    credential: Credential | None = None
    is_active: bool = True
    created_at: str | None = None
    last_login: str | None = None


@dataclass(frozen=True)
class SessionClaims:
    """Identity carried inside a signed session token.

    Immutable once issued. subject is the user id as a string (the JWT "sub"
    claim must be a string).
    """

    subject: str
    email: str
    role: str
    practice_id: int | None = None

    @property
    def user_id(self) -> int:
        return int(self.subject)


@dataclass
class PasswordResetToken:
    """A single-use reset grant. token_hash is HMAC-SHA256(SECRET_KEY, raw token)."""

    user_id: int
    token_hash: str
    expires_at: str  # ISO 8601
    id: int | None = None
    used_at: str | None = None
    created_at: str | None = None
