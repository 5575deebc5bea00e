"""
auth/tokens.py -- Session tokens, login authentication and reset tokens.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (user id), email, role, practice_id, iat and exp. Verification
       returns None on any failure -- the dependency layer turns that into a
       401. There is no revocation list: logout is the client discarding the
       token, and expiry is the only server-side bound.

  Login: authenticate_user() always runs bcrypt, against _DUMMY_HASH when the
       email is unknown, so response time does not reveal whether an account
       exists [C1].

  Reset tokens: secrets.token_urlsafe(32) gives 256 bits of entropy. We store
       HMAC-SHA256(SECRET_KEY, raw_token) so lookup is O(1) and a leaked DB
       does not yield usable tokens.

Layer rule: no imports from api/, practice/, or client/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.credentials import hash_password, verify_credential
from auth.models import HashedCredential, SessionClaims
from core.config import get_settings, utcnow

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("kairo.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# Claims every token must carry besides the registered ones.
_REQUIRED_CLAIMS = ("sub", "email", "role")

# Timing equalization dummy [C1]. Computed once at module load so the first
# login attempt is not measurably slower than subsequent ones.
_DUMMY_CREDENTIAL = HashedCredential(hash_password("kairo_timing_dummy").encode("utf-8"))


# ---------------------------------------------------------------------------
# Session issuer
# ---------------------------------------------------------------------------


def claims_for(user: User) -> SessionClaims:
    """Build the session claims for a stored user."""
    return SessionClaims(
        subject=str(user.id),
        email=user.email,
        role=user.role,
        practice_id=user.practice_id,
    )


def issue_token(claims: SessionClaims, expire_seconds: int = 0) -> str:
    """Encode a signed, time-bounded JWT for the given claims.

    Args:
        claims:         Identity to embed. Immutable once issued.
        expire_seconds: Session duration. 0 (default) uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    now = utcnow()
    payload = {
        "sub": claims.subject,
        "email": claims.email,
        "role": claims.role,
        "practice_id": claims.practice_id,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def authenticate_token(token: str) -> SessionClaims | None:
    """Verify signature and expiry and return the embedded claims.

    Returns None for a bad signature, malformed token, expired token or a
    payload missing required claims. Never raises, never has side effects.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if any(payload.get(name) in (None, "") for name in _REQUIRED_CLAIMS):
        return None
    practice_id = payload.get("practice_id")
    if practice_id is not None and not isinstance(practice_id, int):
        return None
    return SessionClaims(
        subject=str(payload["sub"]),
        email=payload["email"],
        role=payload["role"],
        practice_id=practice_id,
    )


# ---------------------------------------------------------------------------
# Login (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Returns the User on success, None on unknown email, wrong password,
    missing password or deactivated account. The caller must not distinguish
    between these cases in its response.
    """
    user = store.get_by_email(email)
    if user is None or user.credential is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_credential(_DUMMY_CREDENTIAL, password)
        return None
    if not verify_credential(user.credential, password):
        return None
    if not user.is_active:
        return None
    return user


# ---------------------------------------------------------------------------
# Password reset tokens
# ---------------------------------------------------------------------------


def generate_reset_token() -> str:
    """Return a fresh URL-safe reset token (256 bits of entropy)."""
    return secrets.token_urlsafe(32)


def hash_reset_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string."""
    return hmac.new(
        _settings.secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()
