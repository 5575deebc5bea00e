"""
api/routes/v1/practices.py -- Practice profile, trial status and plan changes.

Routes:
  GET   /api/v1/practices/trial-status         -- trial countdown for the banner (exempt)
  GET   /api/v1/practices/current              -- caller's practice (trial-gated)
  PATCH /api/v1/practices/{id}/subscription    -- change plan fields (SUPER_ADMIN)

Three routers, because exemption is decided by router membership:
  exempt_router  -- authenticated only. The banner must keep working after
                    the trial ends, otherwise the user never learns why
                    everything else returns 403.
  router         -- trial gate + device guard, like every practice-data route.
  admin_router   -- SUPER_ADMIN only. Super admins bypass the gate anyway.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import PracticeResponse, SubscriptionUpdate, TrialStatusResponse
from auth.dependencies import get_current_claims, require_roles
from auth.models import Role, SessionClaims
from practice.dependencies import current_trial_status, require_approved_device, require_trial_access
from practice.models import TrialStatus
from practice.store import PracticeStore

logger = logging.getLogger("kairo.api.practices")

# Auth policy:
# - GET   /api/v1/practices/trial-status:       requires auth; trial-exempt
# - GET   /api/v1/practices/current:            requires auth + trial + device
# - PATCH /api/v1/practices/{id}/subscription:  requires SUPER_ADMIN
exempt_router = APIRouter(dependencies=[Depends(get_current_claims)])
router = APIRouter(dependencies=[Depends(require_trial_access), Depends(require_approved_device)])
admin_router = APIRouter(dependencies=[Depends(require_roles(Role.SUPER_ADMIN.value))])


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": "Practice not found."})


@exempt_router.get("/practices/trial-status", response_model=TrialStatusResponse)
def trial_status(status: TrialStatus = Depends(current_trial_status)) -> TrialStatusResponse:
    """Return the caller's trial state. Never blocked by the trial gate."""
    return TrialStatusResponse.from_status(status)


@router.get("/practices/current", response_model=PracticeResponse)
def current_practice(request: Request, claims: SessionClaims = Depends(get_current_claims)) -> PracticeResponse:
    store: PracticeStore = request.app.state.practice_store
    practice = store.get_practice(claims.practice_id) if claims.practice_id is not None else None
    if practice is None:
        raise _not_found()
    return PracticeResponse.from_practice(practice)


@admin_router.patch("/practices/{practice_id}/subscription", response_model=PracticeResponse)
def update_subscription(
    request: Request,
    practice_id: int,
    body: SubscriptionUpdate,
    claims: SessionClaims = Depends(get_current_claims),
) -> PracticeResponse:
    """Apply the plan fields present in the body.

    Converting a trial to a paid plan ({"isTrial": false}) lifts the gate on
    the practice's very next request; nothing is cached.
    """
    store: PracticeStore = request.app.state.practice_store
    updates: dict = {}
    for name in body.model_fields_set:
        value = getattr(body, name)
        if name == "trial_ends_at" and value is not None:
            value = value.isoformat()
        elif name == "subscription_tier" and value is not None:
            value = value.value
        elif name in ("is_trial", "is_active", "subscription_tier") and value is None:
            raise HTTPException(
                status_code=422,
                detail={"code": "validation_error", "message": f"{name} cannot be null."},
            )
        updates[name] = value

    if not store.update_plan(practice_id, **updates):
        raise _not_found()
    logger.info("Practice %s plan updated by user %s: %s", practice_id, claims.subject, sorted(updates))
    return PracticeResponse.from_practice(store.get_practice(practice_id))
