"""
client/poller.py -- Periodic trial status check and the banner decision.

TrialStatusPoller runs one daemon thread that fetches
GET /practices/trial-status every 2-5 minutes. The server enforces the trial;
this is only what the UI shows, so failures are swallowed and the previous
status is kept.

trial_notice() turns a status payload into what to render: a full-screen
lockout when the trial has expired, a dismissible countdown banner while it
runs, nothing for paid practices.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

import requests

from client.api import ApiError, TrialExpiredError
from practice.models import TrialUrgency
from practice.trial import classify_urgency, format_time_remaining

logger = logging.getLogger("kairo.client.poller")

MIN_INTERVAL_SECONDS = 120
MAX_INTERVAL_SECONDS = 300

TrialPayload = dict[str, Any]


class TrialStatusPoller:
    """Fetch trial status now and then every `interval` seconds until stopped.

    Latest response wins: each fetch is numbered when it starts, and a result
    is only applied if no later-started fetch has already been applied.
    """

    def __init__(
        self,
        fetch: Callable[[], TrialPayload],
        interval: float = MAX_INTERVAL_SECONDS,
        on_update: Optional[Callable[[TrialPayload], None]] = None,
    ) -> None:
        self.interval = min(max(interval, MIN_INTERVAL_SECONDS), MAX_INTERVAL_SECONDS)
        self._fetch = fetch
        self._on_update = on_update
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._issued = 0
        self._applied = 0
        self.latest: Optional[TrialPayload] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "TrialStatusPoller":
        if self.running:
            return self
        # A thread from an earlier run may still be inside a fetch; it keeps
        # its own (already set) event.
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop,), name="kairo-trial-poller", daemon=True
        )
        self._thread.start()
        return self

    def stop(self, timeout: float = 5) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _run(self, stop: threading.Event) -> None:
        while not stop.is_set():
            self.poll_once()
            stop.wait(self.interval)

    def poll_once(self) -> Optional[TrialPayload]:
        """Fetch once and apply the result. Returns the current latest status."""
        with self._lock:
            self._issued += 1
            ticket = self._issued
        try:
            status = self._fetch()
        except TrialExpiredError:
            # The guard answered instead of the status endpoint; same meaning.
            status = {**(self.latest or {}), "isTrial": True, "trialExpired": True, "hoursRemaining": 0}
        except (requests.RequestException, ApiError) as exc:
            logger.debug("Trial status poll failed: %s", exc)
            return self.latest
        with self._lock:
            if ticket < self._applied:
                return self.latest
            self._applied = ticket
            self.latest = status
        if self._on_update is not None:
            self._on_update(status)
        return status


@dataclass(frozen=True)
class TrialNotice:
    lockout: bool
    urgency: TrialUrgency
    message: str
    dismissible: bool


def trial_notice(status: Optional[TrialPayload]) -> Optional[TrialNotice]:
    """What to render for a trial status payload, or None for nothing.

    >>> trial_notice({"isTrial": True, "trialExpired": False, "hoursRemaining": 5}).urgency
    <TrialUrgency.URGENT: 'urgent'>
    >>> trial_notice({"isTrial": False, "trialExpired": False, "hoursRemaining": None}) is None
    True
    """
    if not status or not status.get("isTrial"):
        return None
    if status.get("trialExpired"):
        return TrialNotice(
            lockout=True,
            urgency=TrialUrgency.URGENT,
            message="Your free trial has ended. Contact Kairo to subscribe and restore access.",
            dismissible=False,
        )
    hours = status.get("hoursRemaining")
    if hours is None:
        return TrialNotice(
            lockout=False,
            urgency=TrialUrgency.INFO,
            message="Free trial. Contact Kairo to subscribe.",
            dismissible=True,
        )
    return TrialNotice(
        lockout=False,
        urgency=classify_urgency(hours),
        message=f"Free trial: {format_time_remaining(hours)} remaining. Contact Kairo to subscribe.",
        dismissible=True,
    )
