"""
tests/support.py -- Constants and helpers shared by test modules.

conftest.py holds fixtures; anything a test module imports by name lives
here so conftest is never imported twice under two module names.
"""

from __future__ import annotations

from practice.dependencies import DEVICE_HEADER

PASSWORD = "correct-horse-battery"
LEGACY_PASSWORD = "Password123!"


def bearer(token: str, fingerprint: str | None = None) -> dict[str, str]:
    """Authorization header, plus the device header when a fingerprint is given."""
    headers = {"Authorization": f"Bearer {token}"}
    if fingerprint is not None:
        headers[DEVICE_HEADER] = fingerprint
    return headers
