"""
api/routes/v1/devices.py -- Practice device registration and management.

Routes:
  POST   /api/v1/devices/register       -- register this browser (PENDING)
  GET    /api/v1/devices                -- list the practice's devices (admin)
  PUT    /api/v1/devices/{id}/approve   -- approve (admin)
  PUT    /api/v1/devices/{id}/revoke    -- revoke with optional reason (admin)
  DELETE /api/v1/devices/{id}           -- delete (admin)

Registration is trial-gated but skips the device guard: a device has to be
able to ask for approval before it is approved.

IDOR guard: every id-addressed call passes claims.practice_id to the store,
whose WHERE clause requires both to match. Another practice's device id is
indistinguishable from a missing one (404).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import DeviceRegister, DeviceResponse, DeviceRevoke
from auth.dependencies import get_current_claims, require_roles
from auth.models import PRACTICE_ADMIN_ROLES, SessionClaims
from practice.dependencies import require_approved_device, require_trial_access
from practice.models import Device, DeviceStatus
from practice.store import DeviceConflictError, PracticeStore

logger = logging.getLogger("kairo.api.devices")

# Auth policy:
# - POST   /api/v1/devices/register:      requires auth + trial (no device guard)
# - GET    /api/v1/devices:               requires practice admin + trial + device
# - PUT    /api/v1/devices/{id}/approve:  requires practice admin + trial + device
# - PUT    /api/v1/devices/{id}/revoke:   requires practice admin + trial + device
# - DELETE /api/v1/devices/{id}:          requires practice admin + trial + device
registration_router = APIRouter(dependencies=[Depends(require_trial_access)])
router = APIRouter(
    dependencies=[
        Depends(require_roles(*PRACTICE_ADMIN_ROLES)),
        Depends(require_trial_access),
        Depends(require_approved_device),
    ]
)


def _practice_id(claims: SessionClaims) -> int:
    if claims.practice_id is None:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "No practice is associated with this account."},
        )
    return claims.practice_id


def _device_not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": "Device not found."})


@registration_router.post("/devices/register", response_model=DeviceResponse, status_code=201)
def register_device(
    request: Request,
    body: DeviceRegister,
    claims: SessionClaims = Depends(get_current_claims),
) -> DeviceResponse:
    """Register the calling browser for the caller's practice.

    Re-registering a fingerprint the practice already has returns the
    existing record unchanged (a revoked device stays revoked).
    """
    store: PracticeStore = request.app.state.practice_store
    device = Device(
        practice_id=_practice_id(claims),
        device_fingerprint=body.device_fingerprint,
        device_name=body.device_name,
        device_type=body.device_type.value,
        status=DeviceStatus.PENDING.value,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
    )
    try:
        saved = store.register_device(device)
    except DeviceConflictError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "This device is registered to another practice."},
        ) from exc
    return DeviceResponse.from_device(saved)


@router.get("/devices", response_model=list[DeviceResponse])
def list_devices(request: Request, claims: SessionClaims = Depends(get_current_claims)) -> list[DeviceResponse]:
    store: PracticeStore = request.app.state.practice_store
    return [DeviceResponse.from_device(d) for d in store.list_devices(_practice_id(claims))]


@router.put("/devices/{device_id}/approve", response_model=DeviceResponse)
def approve_device(
    request: Request,
    device_id: int,
    claims: SessionClaims = Depends(get_current_claims),
) -> DeviceResponse:
    store: PracticeStore = request.app.state.practice_store
    device = store.approve_device(device_id, _practice_id(claims), approved_by=claims.user_id)
    if device is None:
        raise _device_not_found()
    logger.info("Device %s approved by user %s", device_id, claims.subject)
    return DeviceResponse.from_device(device)


@router.put("/devices/{device_id}/revoke", response_model=DeviceResponse)
def revoke_device(
    request: Request,
    device_id: int,
    body: DeviceRevoke | None = None,
    claims: SessionClaims = Depends(get_current_claims),
) -> DeviceResponse:
    store: PracticeStore = request.app.state.practice_store
    reason = body.reason if body is not None else None
    device = store.revoke_device(device_id, _practice_id(claims), reason=reason)
    if device is None:
        raise _device_not_found()
    logger.info("Device %s revoked by user %s", device_id, claims.subject)
    return DeviceResponse.from_device(device)


@router.delete("/devices/{device_id}", status_code=204)
def delete_device(
    request: Request,
    device_id: int,
    claims: SessionClaims = Depends(get_current_claims),
) -> Response:
    store: PracticeStore = request.app.state.practice_store
    if not store.delete_device(device_id, _practice_id(claims)):
        raise _device_not_found()
    logger.info("Device %s deleted by user %s", device_id, claims.subject)
    return Response(status_code=204)
