"""
auth/credentials.py -- Password hashing and stored-credential verification.

Two stored forms coexist in the users table:

  bcrypt        "$2b$12$..."  -- everything written by the app itself.
  legacy base64 "c2VjcmV0"    -- demo/seed accounts (see main.py seed-demo).

The form is detected from the stored value's prefix exactly once, when the
store maps a row into a User (parse_credential). Everything downstream works
with the HashedCredential / LegacyEncodedCredential variant, so the legacy
path lives in one function and can be deleted in one place.

Security notes:
  [C2] The legacy form is reversible and unsalted. Anyone who can read the
       users table can read those passwords. Each successful legacy login is
       logged at WARNING so operators can see which accounts still need a
       reset, and Settings.legacy_credentials_enabled switches the branch off.

  bcrypt is used directly rather than through passlib: passlib's wrap-bug
  probe sends a >72 byte password which bcrypt 4.x rejects.

Layer rule: no imports from api/, practice/, or client/.
"""

from __future__ import annotations

import base64
import hmac
import logging

import bcrypt

from auth.models import Credential, HashedCredential, LegacyEncodedCredential
from core.config import get_settings

logger = logging.getLogger("kairo.auth.credentials")

# Every bcrypt variant ($2a$, $2b$, $2y$) shares this prefix.
BCRYPT_MARKER = "$2"


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt silently truncates input beyond 72 bytes. The API layer caps
    passwords at 128 characters, and the truncation is a known property of
    the algorithm rather than something to paper over here.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def encode_legacy(plain: str) -> str:
    """Return the legacy base64 form of a password. Only the demo seed uses this."""
    return base64.b64encode(plain.encode("utf-8")).decode("ascii")


def parse_credential(stored: str | None) -> Credential | None:
    """Map a stored password column value to its credential variant.

    Returns None for NULL/empty values (account has no password).
    """
    if not stored:
        return None
    if stored.startswith(BCRYPT_MARKER):
        return HashedCredential(stored.encode("utf-8"))
    return LegacyEncodedCredential(stored.encode("utf-8"))


def serialize_credential(credential: Credential | None) -> str | None:
    """Inverse of parse_credential, for writing back to the store."""
    if credential is None:
        return None
    return credential.value.decode("utf-8")


def verify_credential(credential: Credential | None, password: str) -> bool:
    """Return True only if password matches the stored credential.

    Never raises for a wrong or malformed credential -- a hash bcrypt cannot
    parse is simply a non-match.
    """
    if isinstance(credential, HashedCredential):
        try:
            return bcrypt.checkpw(password.encode("utf-8"), credential.value)
        except ValueError:
            # "Invalid salt" -- the marker was present but the rest is garbage.
            return False
    if isinstance(credential, LegacyEncodedCredential):
        if not get_settings().legacy_credentials_enabled:
            return False
        supplied = encode_legacy(password).encode("ascii")
        matched = hmac.compare_digest(supplied, credential.value)
        if matched:
            logger.warning("Login accepted against a legacy base64 credential; reset this password [C2]")
        return matched
    return False


def verify(stored: str | None, password: str) -> bool:
    """Verify a password against a raw stored column value."""
    return verify_credential(parse_credential(stored), password)
