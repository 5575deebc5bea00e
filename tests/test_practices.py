"""
tests/test_practices.py -- Trial status and subscription endpoints.

Coverage:
  - GET /practices/trial-status: camelCase payload, hours rounded up,
    open-ended trial, paid practice, user without practice (404)
  - PATCH /practices/{id}/subscription: SUPER_ADMIN only, partial updates,
    converting an expired trial to paid lifts the gate, extending a trial,
    naive timestamps and null plan fields rejected, unknown practice 404
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from api.models import TrialStatusResponse
from auth.models import User
from auth.tokens import claims_for, issue_token
from practice.models import Practice, TrialState, TrialStatus
from tests.support import bearer

_TRIAL_KEYS = {
    "practiceName",
    "isTrial",
    "trialEndsAt",
    "trialExpired",
    "hoursRemaining",
    "subscriptionTier",
    "isActive",
}


class TestTrialStatus:
    """GET /api/v1/practices/trial-status."""

    def test_active_trial_payload(self, kairo) -> None:
        resp = kairo.client.get("/api/v1/practices/trial-status", headers=bearer(kairo.tokens["gp"]))
        assert resp.status_code == 200
        data = resp.json()
        assert set(data) == _TRIAL_KEYS
        assert data["practiceName"] == "Active Surgery"
        assert data["trialExpired"] is False
        assert 239 < data["hoursRemaining"] <= 240
        assert data["hoursRemaining"] == round(data["hoursRemaining"], 2)
        assert data["subscriptionTier"] == "BASIC"

    @pytest.mark.parametrize("hours, expected", [(0.004, 0.01), (239.991, 240.0), (0.0, 0.0)])
    def test_hours_remaining_rounds_up(self, hours, expected) -> None:
        status = TrialStatus(
            practice_id=1,
            practice_name="Last Minute Surgery",
            is_trial=True,
            trial_ends_at="2026-03-01T09:00:00+00:00",
            trial_expired=hours == 0,
            hours_remaining=hours,
            subscription_tier="BASIC",
            is_active=True,
            state=TrialState.TRIAL_EXPIRED if hours == 0 else TrialState.TRIAL_ACTIVE,
        )
        data = TrialStatusResponse.from_status(status).model_dump(by_alias=True)
        assert data["hoursRemaining"] == expected

    def test_paid_practice_has_no_countdown(self, kairo) -> None:
        data = kairo.client.get("/api/v1/practices/trial-status", headers=bearer(kairo.tokens["paid_gp"])).json()
        assert data["isTrial"] is False
        assert data["trialExpired"] is False
        assert data["hoursRemaining"] is None

    def test_super_admin_without_practice_gets_404(self, kairo) -> None:
        resp = kairo.client.get("/api/v1/practices/trial-status", headers=bearer(kairo.tokens["super"]))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_requires_authentication(self, kairo) -> None:
        assert kairo.client.get("/api/v1/practices/trial-status").status_code == 401


class TestSubscriptionUpdate:
    """PATCH /api/v1/practices/{id}/subscription."""

    def _patch(self, kairo, practice_id: int, body: dict, token_key: str = "super"):
        return kairo.client.patch(
            f"/api/v1/practices/{practice_id}/subscription",
            json=body,
            headers=bearer(kairo.tokens[token_key]),
        )

    def test_practice_admin_forbidden(self, kairo) -> None:
        resp = self._patch(kairo, kairo.practice_ids["active"], {"isTrial": False}, token_key="admin")
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_unknown_practice_404(self, kairo) -> None:
        resp = self._patch(kairo, 99999, {"subscriptionTier": "STANDARD"})
        assert resp.status_code == 404

    def test_converting_expired_trial_to_paid_lifts_gate(self, kairo) -> None:
        pid = kairo.practices.create_practice(
            Practice(
                name="Converted Surgery",
                email="converted@practice.example.org",
                trial_ends_at=(datetime.now(timezone.utc) - timedelta(days=1)).isoformat(),
            )
        )
        uid = kairo.users.create_user(User(email="conv.gp@example.org", role="GP", practice_id=pid))
        token = issue_token(claims_for(kairo.users.get_by_id(uid)))
        assert kairo.client.get("/api/v1/practices/current", headers=bearer(token)).status_code == 403

        resp = self._patch(kairo, pid, {"isTrial": False, "subscriptionTier": "STANDARD"})
        assert resp.status_code == 200
        assert resp.json()["is_trial"] is False
        assert resp.json()["subscription_tier"] == "STANDARD"

        assert kairo.client.get("/api/v1/practices/current", headers=bearer(token)).status_code == 200

    def test_extend_trial_only_touches_given_fields(self, kairo) -> None:
        pid = kairo.practices.create_practice(
            Practice(name="Extended Surgery", email="extend@practice.example.org", subscription_tier="PREMIUM")
        )
        new_end = datetime.now(timezone.utc) + timedelta(days=30)
        resp = self._patch(kairo, pid, {"trialEndsAt": new_end.isoformat()})
        assert resp.status_code == 200
        practice = kairo.practices.get_practice(pid)
        assert practice.trial_ends_at is not None
        assert practice.subscription_tier == "PREMIUM"
        assert practice.is_trial is True

    def test_null_trial_end_makes_open_ended_trial(self, kairo) -> None:
        pid = kairo.practices.create_practice(
            Practice(
                name="Open Surgery",
                email="open@practice.example.org",
                trial_ends_at=datetime.now(timezone.utc).isoformat(),
            )
        )
        assert self._patch(kairo, pid, {"trialEndsAt": None}).status_code == 200
        assert kairo.practices.get_practice(pid).trial_ends_at is None

    def test_naive_timestamp_rejected(self, kairo) -> None:
        resp = self._patch(kairo, kairo.practice_ids["active"], {"trialEndsAt": "2030-01-01T00:00:00"})
        assert resp.status_code == 422

    @pytest.mark.parametrize("body", [{"isTrial": None}, {"isActive": None}, {"subscriptionTier": None}])
    def test_null_plan_field_rejected(self, kairo, body) -> None:
        resp = self._patch(kairo, kairo.practice_ids["active"], body)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert kairo.practices.get_practice(kairo.practice_ids["active"]).subscription_tier is not None

    def test_unknown_tier_rejected(self, kairo) -> None:
        resp = self._patch(kairo, kairo.practice_ids["active"], {"subscriptionTier": "PLATINUM"})
        assert resp.status_code == 422
