"""
practice/dependencies.py -- Tenant-level request guards (FastAPI Depends()).

require_trial_access   -- 403 TRIAL_EXPIRED once a practice's trial has run out.
require_approved_device -- 403 unless X-Device-Fingerprint names an APPROVED
                           device of the caller's practice (only when
                           Settings.device_check_enabled is on).

Both are attached at router level (APIRouter(dependencies=[...])) to every
protected router. Exempt endpoints -- trial status, logout, profile, health,
device registration for the device guard -- live on routers that do not
carry them, so exemption is visible in api/routes/v1 rather than hidden in a
path list.

Super admins (auth.models.BYPASS_ROLES) pass both guards: they belong to no
practice.

The trial check is the authoritative one. The client's polling banner is
advisory; this guard fails closed (practice missing -> 403).

Layer rule: may import from auth/ and core/. Not from api/ or client/.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request

from auth.dependencies import get_current_claims
from auth.models import BYPASS_ROLES, SessionClaims
from core.config import get_settings
from practice.models import DeviceStatus, TrialStatus
from practice.trial import compute_trial_status, evaluate_gate

logger = logging.getLogger("kairo.practice.guard")

DEVICE_HEADER = "X-Device-Fingerprint"

TRIAL_EXPIRED_CODE = "TRIAL_EXPIRED"


def current_trial_status(request: Request, claims: SessionClaims = Depends(get_current_claims)) -> TrialStatus:
    """Load the caller's practice and evaluate its trial. 404 if it has none."""
    practice = None
    if claims.practice_id is not None:
        practice = request.app.state.practice_store.get_practice(claims.practice_id)
    if practice is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Practice not found."},
        )
    return compute_trial_status(practice)


def require_trial_access(request: Request, claims: SessionClaims = Depends(get_current_claims)) -> SessionClaims:
    """Reject requests from practices whose trial has expired."""
    if claims.role in BYPASS_ROLES:
        return claims
    practice = None
    if claims.practice_id is not None:
        practice = request.app.state.practice_store.get_practice(claims.practice_id)
    if practice is None:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "No practice is associated with this account."},
        )
    status = compute_trial_status(practice)
    if not evaluate_gate(status, claims.role):
        logger.info("Trial gate rejected %s %s for practice %s", request.method, request.url.path, practice.id)
        raise HTTPException(
            status_code=403,
            detail={
                "code": TRIAL_EXPIRED_CODE,
                "message": f"{TRIAL_EXPIRED_CODE}: the free trial for this practice has ended.",
            },
        )
    return claims


def device_fingerprint(request: Request) -> str:
    """The client's fingerprint header, or "" when absent."""
    return request.headers.get(DEVICE_HEADER, "").strip()


def _device_denied(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=403, detail={"code": code, "message": message})


def require_approved_device(request: Request, claims: SessionClaims = Depends(get_current_claims)) -> SessionClaims:
    """Enforce practice device restriction when Settings.device_check_enabled."""
    if not get_settings().device_check_enabled or claims.role in BYPASS_ROLES:
        return claims

    fingerprint = device_fingerprint(request)
    if not fingerprint:
        raise _device_denied(
            "device_not_registered",
            "Device not registered. Please access from an approved practice device.",
        )

    store = request.app.state.practice_store
    if not store.verify_device(claims.practice_id, fingerprint):
        device = store.get_device_by_fingerprint(fingerprint)
        logger.info("Device guard rejected user %s (device status %s)", claims.subject, device and device.status)
        if device is not None and device.practice_id == claims.practice_id:
            if device.status == DeviceStatus.PENDING.value:
                raise _device_denied(
                    "device_pending",
                    "Device registration pending approval. Please contact your practice administrator.",
                )
            if device.status == DeviceStatus.REVOKED.value:
                raise _device_denied(
                    "device_revoked",
                    "Device access has been revoked. Please contact your practice administrator.",
                )
        raise _device_denied(
            "device_unauthorized",
            "Unauthorized device. Please access from an approved practice device.",
        )

    store.update_device_last_used(fingerprint, claims.user_id, request.client.host if request.client else None)
    return claims
