"""
client/api.py -- Thin requests wrapper around the Kairo REST API.

Every call carries "Authorization: Bearer <token>" (when logged in) and
"X-Device-Fingerprint" (empty string when none has been generated).

Failures are mapped to exceptions by kind, because callers react to them
differently:

  UnauthenticatedError     401 -- drop identity, show the login screen
  InvalidCredentialsError  401 from /auth/login -- wrong email or password
  TrialExpiredError        403 TRIAL_EXPIRED -- show the lockout screen
  ApiError                 anything else non-2xx

Network errors are left as requests.RequestException; the poller swallows
them, interactive callers decide for themselves.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

logger = logging.getLogger("kairo.client.api")

DEVICE_HEADER = "X-Device-Fingerprint"
TRIAL_EXPIRED_CODE = "TRIAL_EXPIRED"


class ApiError(Exception):
    """A non-2xx response. code is the server's machine-readable error code."""

    def __init__(self, status: int, code: str, message: str) -> None:
        super().__init__(f"{status} {code}: {message}")
        self.status = status
        self.code = code
        self.message = message


class UnauthenticatedError(ApiError):
    """Missing, expired or invalid session token."""


class InvalidCredentialsError(UnauthenticatedError):
    """Login rejected. Never says whether the email or the password was wrong."""


class TrialExpiredError(ApiError):
    """The practice's free trial has ended. Distinct from an auth failure."""


def _error_fields(resp: requests.Response) -> tuple[str, str]:
    try:
        body = resp.json()
    except ValueError:
        return f"http_{resp.status_code}", resp.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return f"http_{resp.status_code}", str(body)[:200]
    return str(error.get("code", f"http_{resp.status_code}")), str(error.get("message", ""))


def _raise_for_error(resp: requests.Response) -> None:
    if resp.ok:
        return
    code, message = _error_fields(resp)
    if resp.status_code == 401:
        raise UnauthenticatedError(401, code, message)
    if resp.status_code == 403 and (code == TRIAL_EXPIRED_CODE or TRIAL_EXPIRED_CODE in message):
        raise TrialExpiredError(403, TRIAL_EXPIRED_CODE, message)
    raise ApiError(resp.status_code, code, message)


class ApiClient:
    """One client per base URL. Holds the current token and fingerprint.

    Usage:
        api = ApiClient("http://localhost:8000", fingerprint=fp)
        body = api.login("gp@example.org", "secret")
        api.token = body["access_token"]
        status = api.trial_status()
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        fingerprint: str = "",
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.fingerprint = fingerprint
        self.timeout = timeout
        self._http = session or requests.Session()
        self._http.max_redirects = 3

    def _headers(self) -> dict[str, str]:
        headers = {DEVICE_HEADER: self.fingerprint or ""}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def request(self, method: str, path: str, json: Any = None) -> Any:
        """Send a request under /api/v1 and return the decoded JSON body (None for 204)."""
        url = f"{self.base_url}/api/v1{path}"
        resp = self._http.request(method, url, json=json, headers=self._headers(), timeout=self.timeout)
        _raise_for_error(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> dict[str, Any]:
        """POST /auth/login. Does not store the token; ClientSession does."""
        try:
            return self.request("POST", "/auth/login", json={"email": email, "password": password})
        except UnauthenticatedError as exc:
            raise InvalidCredentialsError(exc.status, exc.code, exc.message) from exc

    def logout(self) -> None:
        self.request("POST", "/auth/logout")

    def me(self) -> dict[str, Any]:
        return self.request("GET", "/auth/me")

    def forgot_password(self, email: str) -> dict[str, Any]:
        return self.request("POST", "/auth/forgot-password", json={"email": email})

    def reset_password(self, token: str, new_password: str) -> dict[str, Any]:
        return self.request("POST", "/auth/reset-password", json={"token": token, "new_password": new_password})

    # ------------------------------------------------------------------
    # Practices
    # ------------------------------------------------------------------

    def onboard(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self.request("POST", "/onboarding/register", json=payload)

    def trial_status(self) -> dict[str, Any]:
        """GET /practices/trial-status (camelCase keys)."""
        return self.request("GET", "/practices/trial-status")

    def current_practice(self) -> dict[str, Any]:
        return self.request("GET", "/practices/current")

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def register_device(self, device_name: str, device_type: str) -> dict[str, Any]:
        """Register this client's fingerprint for the caller's practice."""
        return self.request(
            "POST",
            "/devices/register",
            json={
                "device_fingerprint": self.fingerprint,
                "device_name": device_name,
                "device_type": device_type,
            },
        )

    def list_devices(self) -> list[dict[str, Any]]:
        return self.request("GET", "/devices")

    def approve_device(self, device_id: int) -> dict[str, Any]:
        return self.request("PUT", f"/devices/{device_id}/approve")

    def revoke_device(self, device_id: int, reason: Optional[str] = None) -> dict[str, Any]:
        return self.request("PUT", f"/devices/{device_id}/revoke", json={"reason": reason})

    def delete_device(self, device_id: int) -> None:
        self.request("DELETE", f"/devices/{device_id}")

    def health(self) -> dict[str, Any]:
        return self.request("GET", "/health")
