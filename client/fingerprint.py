"""
client/fingerprint.py -- Device fingerprint for practice device restriction.

A fingerprint is SHA-256 over the JSON of an ordered set of environment
signals. It is a stable pseudo-identifier for "this browser on this machine",
not a cryptographic identity: two identical kiosks will collide, and a
browser upgrade changes it.

Component order and key names match what the web client hashes, so a Python
front-end embedding a browser view (which passes its real navigator/screen
values and canvas/WebGL probes in DeviceEnvironment) produces the same value
as the browser would.

generate_device_fingerprint() never raises. If building or hashing the full
component set fails, it falls back to a hash of user agent, language and
screen size.

The caller caches the result (ClientSession.ensure_fingerprint): one value
per device until storage is cleared.
"""

from __future__ import annotations

import hashlib
import json
import locale
import logging
import os
import platform
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from tzlocal import get_localzone_name

logger = logging.getLogger("kairo.client.fingerprint")

_CANVAS_TAIL = 50


@dataclass
class DeviceEnvironment:
    """Environment signals, in the order they are hashed.

    canvas_probe returns a rendered canvas data URL; webgl_probe returns
    (vendor, renderer). Either may be None when the host has no such surface.
    """

    user_agent: str
    language: str
    platform: str
    screen_width: int = 0
    screen_height: int = 0
    avail_width: int = 0
    avail_height: int = 0
    timezone: str = ""
    cookies_enabled: bool = False
    local_storage: bool = False
    session_storage: bool = False
    indexed_db: bool = False
    color_depth: int = 24
    device_memory: Optional[float] = None
    hardware_concurrency: Optional[int] = None
    canvas_probe: Optional[Callable[[], str]] = None
    webgl_probe: Optional[Callable[[], tuple[str, str]]] = None


def _canvas_signature(env: DeviceEnvironment) -> str:
    if env.canvas_probe is None:
        return ""
    try:
        return env.canvas_probe()[-_CANVAS_TAIL:]
    except Exception:
        logger.debug("Canvas probe failed", exc_info=True)
        return ""


def _webgl_signature(env: DeviceEnvironment) -> str:
    if env.webgl_probe is None:
        return ""
    try:
        vendor, renderer = env.webgl_probe()
    except Exception:
        logger.debug("WebGL probe failed", exc_info=True)
        return ""
    return f"{vendor}~{renderer}"


def _json_number(value: float) -> float | int:
    # JSON.stringify(8) is "8", json.dumps(8.0) is "8.0".
    return int(value) if float(value).is_integer() else value


def collect_components(env: DeviceEnvironment) -> dict[str, Any]:
    """Build the ordered component mapping for env.

    Optional hardware hints are omitted when unknown; canvas and webgl are
    always present and empty when the probe is missing or fails.
    """
    components: dict[str, Any] = {
        "userAgent": env.user_agent,
        "language": env.language,
        "platform": env.platform,
        "screenResolution": f"{env.screen_width}x{env.screen_height}x{env.avail_width}x{env.avail_height}",
        "timezone": env.timezone,
        "cookiesEnabled": env.cookies_enabled,
        "localStorage": env.local_storage,
        "sessionStorage": env.session_storage,
        "indexedDB": env.indexed_db,
        "colorDepth": env.color_depth,
    }
    if env.device_memory is not None:
        components["deviceMemory"] = _json_number(env.device_memory)
    if env.hardware_concurrency is not None:
        components["hardwareConcurrency"] = env.hardware_concurrency
    components["canvas"] = _canvas_signature(env)
    components["webgl"] = _webgl_signature(env)
    return components


def _sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _fallback_fingerprint(env: DeviceEnvironment | None) -> str:
    user_agent = getattr(env, "user_agent", "")
    language = getattr(env, "language", "")
    width = getattr(env, "screen_width", 0)
    height = getattr(env, "screen_height", 0)
    return _sha256_hex(f"{user_agent}-{language}-{width}x{height}")


def generate_device_fingerprint(env: DeviceEnvironment | None = None) -> str:
    """Return the 64-char hex fingerprint for env (default: this host).

    Deterministic for an unchanged environment. Never raises.
    """
    try:
        if env is None:
            env = current_environment()
        components = collect_components(env)
        return _sha256_hex(json.dumps(components, separators=(",", ":"), ensure_ascii=False))
    except Exception:
        logger.warning("Falling back to simple device fingerprint", exc_info=True)
        return _fallback_fingerprint(env)


# ---------------------------------------------------------------------------
# Python host environment
# ---------------------------------------------------------------------------


def _language() -> str:
    lang, _encoding = locale.getlocale()
    if not lang or lang == "C":
        return "en-US"
    return lang.split(".")[0].replace("_", "-")


def _timezone() -> str:
    """IANA zone name (e.g. "Europe/London"), stable across DST changes."""
    try:
        return get_localzone_name() or ""
    except (LookupError, ValueError):
        logger.warning("Could not determine the local timezone", exc_info=True)
        return ""


def current_environment() -> DeviceEnvironment:
    """Describe the running Python host.

    There is no screen or browser storage here, so geometry is zero and only
    localStorage is reported (ClientSession persists to a file, which plays
    that role).
    """
    from client import __version__

    system = platform.system() or "Unknown"
    machine = platform.machine()
    return DeviceEnvironment(
        user_agent=(
            f"Kairo-Python/{__version__} ({system} {platform.release()}; {machine}) "
            f"Python/{platform.python_version()}"
        ),
        language=_language(),
        platform=f"{system} {machine}".strip(),
        timezone=_timezone(),
        local_storage=True,
        hardware_concurrency=os.cpu_count(),
    )


# ---------------------------------------------------------------------------
# Registration labels
# ---------------------------------------------------------------------------

_TABLET_UA = re.compile(r"tablet|ipad", re.IGNORECASE)
_MOBILE_UA = re.compile(r"mobile|android|iphone", re.IGNORECASE)


def get_device_type(env: DeviceEnvironment) -> str:
    """Classify as "Tablet", "Mobile" or "Desktop" from user agent and width.

    Width is only consulted when known (non-zero); a headless host reports 0.
    """
    width = env.screen_width
    if _TABLET_UA.search(env.user_agent) or 600 < width <= 1024:
        return "Tablet"
    if _MOBILE_UA.search(env.user_agent) or 0 < width <= 600:
        return "Mobile"
    return "Desktop"


# Checked in order; Android and iOS user agents also mention Linux / Mac OS X.
_OS_PATTERNS = (
    (re.compile(r"windows", re.IGNORECASE), "Windows"),
    (re.compile(r"android", re.IGNORECASE), "Android"),
    (re.compile(r"iphone|ipad", re.IGNORECASE), "iOS"),
    (re.compile(r"mac|darwin", re.IGNORECASE), "macOS"),
    (re.compile(r"linux", re.IGNORECASE), "Linux"),
)

# Edge and Chrome both say "Chrome"; Chrome and Safari both say "Safari".
_BROWSER_PATTERNS = (
    (re.compile(r"edg(e|a|ios)?/", re.IGNORECASE), "Edge"),
    (re.compile(r"firefox|fxios", re.IGNORECASE), "Firefox"),
    (re.compile(r"chrome|crios", re.IGNORECASE), "Chrome"),
    (re.compile(r"safari", re.IGNORECASE), "Safari"),
    (re.compile(r"python", re.IGNORECASE), "Python"),
)


def get_device_name(env: DeviceEnvironment) -> str:
    """Human-readable label such as "Windows Desktop - Chrome"."""
    os_name = next((name for pattern, name in _OS_PATTERNS if pattern.search(env.user_agent)), "Unknown OS")
    browser = next(
        (name for pattern, name in _BROWSER_PATTERNS if pattern.search(env.user_agent)),
        "Unknown Browser",
    )
    return f"{os_name} {get_device_type(env)} - {browser}"
