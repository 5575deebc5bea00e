"""
client/session.py -- Process-wide client session state.

Everything a front-end needs to remember between runs lives in one JSON file
behind FileStorage:

  access_token        Bearer token from login/onboarding
  user                cached profile, for a fast first render
  device_fingerprint  generated once per device
  billing_unlocked    per-session unlock of the billing screens

Lifecycle:
  restore()  -- load cached identity, then revalidate it with GET /auth/me.
                An unauthenticated answer clears identity silently.
  login()    -- persist token and user.
  logout()   -- stop polling, then clear every key in a single write.

Writes go to a temp file that replaces the original (os.replace), so a crash
mid-write leaves either the old state or the new one, never half of each.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

import requests

from client.api import ApiClient, ApiError, UnauthenticatedError
from client.fingerprint import DeviceEnvironment, generate_device_fingerprint
from client.poller import TrialStatusPoller

logger = logging.getLogger("kairo.client.session")

TOKEN_KEY = "access_token"
USER_KEY = "user"
FINGERPRINT_KEY = "device_fingerprint"
BILLING_KEY = "billing_unlocked"

SESSION_KEYS = (TOKEN_KEY, USER_KEY, FINGERPRINT_KEY, BILLING_KEY)


class FileStorage:
    """A small JSON key/value file with atomic whole-file writes."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> dict[str, Any]:
        """Return the stored mapping; a missing or corrupt file reads as empty."""
        try:
            with self.path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.load().get(key, default)

    def update(self, **values: Any) -> None:
        """Set several keys in one write."""
        with self._lock:
            data = self.load()
            data.update(values)
            self._write(data)

    def remove(self, *keys: str) -> None:
        """Delete several keys in one write."""
        with self._lock:
            data = self.load()
            for key in keys:
                data.pop(key, None)
            self._write(data)

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class ClientSession:
    """The one session object a client process holds.

    Usage:
        session = ClientSession(FileStorage("~/.kairo/session.json"), "http://localhost:8000")
        if session.restore() is None:
            session.login("gp@example.org", "secret")
        poller = session.start_trial_polling(on_update=render_banner)
        ...
        session.logout()
    """

    def __init__(
        self,
        storage: FileStorage,
        base_url: str,
        api: Optional[ApiClient] = None,
        environment: Optional[DeviceEnvironment] = None,
    ) -> None:
        self.storage = storage
        self.api = api or ApiClient(base_url)
        self.environment = environment
        self.user: Optional[dict[str, Any]] = None
        self._poller: Optional[TrialStatusPoller] = None
        self._poller_lock = threading.Lock()

    @property
    def authenticated(self) -> bool:
        return self.api.token is not None

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def restore(self) -> Optional[dict[str, Any]]:
        """Load cached identity and revalidate it against the server.

        Returns the user, or None when there is no valid session. If the
        server cannot be reached the cached user is kept.
        """
        data = self.storage.load()
        self.api.fingerprint = data.get(FINGERPRINT_KEY) or ""
        token = data.get(TOKEN_KEY)
        if not token:
            self.user = None
            return None
        self.api.token = token
        self.user = data.get(USER_KEY)
        try:
            self.user = self.api.me()
        except UnauthenticatedError:
            logger.info("Stored session is no longer valid; clearing identity")
            self._clear_identity()
            return None
        except requests.RequestException as exc:
            logger.warning("Could not revalidate session (%s); using cached profile", exc)
            return self.user
        self.storage.update(**{USER_KEY: self.user})
        return self.user

    def login(self, email: str, password: str) -> dict[str, Any]:
        """Log in and persist the session. Raises InvalidCredentialsError on 401."""
        self.ensure_fingerprint()
        body = self.api.login(email, password)
        self._accept_token(body)
        return self.user

    def adopt(self, body: dict[str, Any]) -> dict[str, Any]:
        """Persist a token response obtained elsewhere (e.g. onboarding)."""
        self._accept_token(body)
        return self.user

    def _accept_token(self, body: dict[str, Any]) -> None:
        self.api.token = body["access_token"]
        self.user = body["user"]
        self.storage.update(**{TOKEN_KEY: self.api.token, USER_KEY: self.user})

    def _clear_identity(self) -> None:
        self.api.token = None
        self.user = None
        self.storage.remove(TOKEN_KEY, USER_KEY)

    def logout(self) -> None:
        """Stop polling and clear every stored key in one write.

        The server call is a courtesy; a failure does not keep the session.
        """
        self.stop_trial_polling()
        if self.api.token:
            try:
                self.api.logout()
            except (requests.RequestException, ApiError) as exc:
                logger.info("Logout request failed (%s); clearing local session anyway", exc)
        self.storage.remove(*SESSION_KEYS)
        self.api.token = None
        self.api.fingerprint = ""
        self.user = None

    # ------------------------------------------------------------------
    # Device
    # ------------------------------------------------------------------

    def ensure_fingerprint(self) -> str:
        """Return the stored fingerprint, generating and saving it on first use."""
        fingerprint = self.storage.get(FINGERPRINT_KEY)
        if not fingerprint:
            fingerprint = generate_device_fingerprint(self.environment)
            self.storage.update(**{FINGERPRINT_KEY: fingerprint})
        self.api.fingerprint = fingerprint
        return fingerprint

    # ------------------------------------------------------------------
    # Billing unlock
    # ------------------------------------------------------------------

    @property
    def billing_unlocked(self) -> bool:
        return bool(self.storage.get(BILLING_KEY, False))

    def set_billing_unlocked(self, unlocked: bool) -> None:
        self.storage.update(**{BILLING_KEY: unlocked})

    # ------------------------------------------------------------------
    # Trial polling
    # ------------------------------------------------------------------

    def start_trial_polling(self, interval: float = 300, on_update=None) -> TrialStatusPoller:
        """Start the session's trial poller, or return it if already running."""
        with self._poller_lock:
            if self._poller is not None and self._poller.running:
                return self._poller
            self._poller = TrialStatusPoller(self.api.trial_status, interval=interval, on_update=on_update)
            return self._poller.start()

    def stop_trial_polling(self) -> None:
        with self._poller_lock:
            poller, self._poller = self._poller, None
        if poller is not None:
            poller.stop()
