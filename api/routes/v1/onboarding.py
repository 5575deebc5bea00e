"""
api/routes/v1/onboarding.py -- Self-service practice sign-up.

Routes:
  POST /api/v1/onboarding/register -- create practice + admin + approved device

Public and rate-limited. The response carries a session token so the new
admin lands in the app already signed in.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import DeviceResponse, OnboardingRequest, OnboardingResponse, PracticeResponse, UserSummary
from auth.credentials import hash_password
from auth.models import User
from auth.tokens import claims_for, issue_token
from core.config import get_settings
from practice.models import Device, Practice
from practice.onboarding import OnboardingConflictError, register_practice

_settings = get_settings()

# Auth policy:
# - POST /api/v1/onboarding/register: public, rate-limited
router = APIRouter()


@limiter.limit(_settings.onboarding_rate_limit)  # [H2]
@router.post("/onboarding/register", response_model=OnboardingResponse, status_code=201)
def register(request: Request, body: OnboardingRequest) -> JSONResponse:
    """Create a practice on a free trial together with its first administrator."""
    try:
        result = register_practice(
            request.app.state.practice_store,
            request.app.state.user_store,
            Practice(
                name=body.practice_name,
                email=body.practice_email,
                phone=body.practice_phone,
                ods_code=body.ods_code,
            ),
            User(
                email=body.admin_email,
                role="",
                first_name=body.admin_first_name,
                last_name=body.admin_last_name,
            ),
            admin_password=hash_password(body.admin_password),
            device=Device(
                practice_id=0,
                device_fingerprint=body.device_fingerprint,
                device_name=body.device_name,
                device_type=body.device_type.value,
                ip_address=request.client.host if request.client else None,
                user_agent=request.headers.get("User-Agent"),
            ),
        )
    except OnboardingConflictError as exc:
        raise HTTPException(status_code=409, detail={"code": "conflict", "message": str(exc)}) from exc

    resp = JSONResponse(
        status_code=201,
        content=OnboardingResponse(
            access_token=issue_token(claims_for(result.admin)),
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            practice=PracticeResponse.from_practice(result.practice),
            user=UserSummary.from_user(result.admin),
            device=DeviceResponse.from_device(result.device),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
