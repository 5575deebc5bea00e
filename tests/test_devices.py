"""
tests/test_devices.py -- Device registration, management and the device guard.

Coverage:
  - Registration: pending by default, idempotent, fingerprint never echoed,
    conflict when another practice owns the fingerprint
  - Management: admin-only, approve / revoke with reason / delete,
    IDOR guard (other practice's device is 404)
  - Guard (device_check fixture): missing header, pending, revoked,
    unknown, approved (last-used stamped), super admin bypass,
    registration skips the guard
"""

from __future__ import annotations

from auth.models import SessionClaims
from auth.tokens import issue_token
from practice.models import Device
from tests.support import bearer


def _fp(tag: str) -> str:
    return (tag * 64)[:64]


def _register(kairo, token_key: str, fingerprint: str, name: str = "Reception PC"):
    return kairo.client.post(
        "/api/v1/devices/register",
        json={"device_fingerprint": fingerprint, "device_name": name, "device_type": "Desktop"},
        headers=bearer(kairo.tokens[token_key]),
    )


class TestRegistration:
    """POST /api/v1/devices/register."""

    def test_register_creates_pending_device(self, kairo) -> None:
        resp = _register(kairo, "gp", _fp("a"))
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "PENDING"
        assert data["device_name"] == "Reception PC"
        assert "device_fingerprint" not in data

    def test_register_is_idempotent_for_same_practice(self, kairo) -> None:
        first = _register(kairo, "gp", _fp("b")).json()
        second = _register(kairo, "admin", _fp("b"), name="Renamed").json()
        assert first["id"] == second["id"]
        assert second["device_name"] == "Reception PC"

    def test_register_conflict_across_practices(self, kairo) -> None:
        _register(kairo, "gp", _fp("c"))
        resp = _register(kairo, "paid_gp", _fp("c"))
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_short_fingerprint_rejected(self, kairo) -> None:
        assert _register(kairo, "gp", "tooshort").status_code == 422


class TestManagement:
    """List / approve / revoke / delete for practice admins."""

    def test_non_admin_cannot_list(self, kairo) -> None:
        resp = kairo.client.get("/api/v1/devices", headers=bearer(kairo.tokens["gp"]))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_admin_lists_only_own_practice(self, kairo) -> None:
        _register(kairo, "gp", _fp("d"))
        _register(kairo, "paid_gp", _fp("e"))
        names = {d["id"] for d in kairo.client.get("/api/v1/devices", headers=bearer(kairo.tokens["admin"])).json()}
        own = {d.id for d in kairo.practices.list_devices(kairo.practice_ids["active"])}
        assert names == own

    def test_approve_then_revoke(self, kairo) -> None:
        device_id = _register(kairo, "gp", _fp("f")).json()["id"]
        headers = bearer(kairo.tokens["admin"])

        approved = kairo.client.put(f"/api/v1/devices/{device_id}/approve", headers=headers).json()
        assert approved["status"] == "APPROVED"
        assert approved["approved_at"] is not None
        assert kairo.practices.get_device(device_id, kairo.practice_ids["active"]).approved_by == kairo.user_ids["admin"]

        revoked = kairo.client.put(
            f"/api/v1/devices/{device_id}/revoke", json={"reason": "Stolen laptop"}, headers=headers
        ).json()
        assert revoked["status"] == "REVOKED"
        assert revoked["revoked_reason"] == "Stolen laptop"

    def test_revoke_without_body(self, kairo) -> None:
        device_id = _register(kairo, "gp", _fp("g")).json()["id"]
        resp = kairo.client.put(f"/api/v1/devices/{device_id}/revoke", headers=bearer(kairo.tokens["admin"]))
        assert resp.status_code == 200
        assert resp.json()["revoked_reason"] is None

    def test_delete(self, kairo) -> None:
        device_id = _register(kairo, "gp", _fp("h")).json()["id"]
        headers = bearer(kairo.tokens["admin"])
        assert kairo.client.delete(f"/api/v1/devices/{device_id}", headers=headers).status_code == 204
        assert kairo.client.delete(f"/api/v1/devices/{device_id}", headers=headers).status_code == 404

    def test_other_practice_device_is_not_found(self, kairo) -> None:
        device = kairo.practices.register_device(
            Device(
                practice_id=kairo.practice_ids["paid"],
                device_fingerprint=_fp("i"),
                device_name="Elsewhere",
                device_type="Desktop",
            )
        )
        headers = bearer(kairo.tokens["admin"])
        for method, path in (
            ("put", f"/api/v1/devices/{device.id}/approve"),
            ("put", f"/api/v1/devices/{device.id}/revoke"),
            ("delete", f"/api/v1/devices/{device.id}"),
        ):
            resp = getattr(kairo.client, method)(path, headers=headers)
            assert resp.status_code == 404, path
        assert kairo.practices.get_device(device.id, kairo.practice_ids["paid"]).status == "PENDING"


class TestDeviceGuard:
    """require_approved_device with Settings.device_check_enabled on."""

    def _current(self, kairo, token_key: str, fingerprint: str | None):
        return kairo.client.get("/api/v1/practices/current", headers=bearer(kairo.tokens[token_key], fingerprint))

    def test_guard_off_by_default(self, kairo) -> None:
        assert self._current(kairo, "gp", None).status_code == 200

    def test_missing_header(self, kairo, device_check) -> None:
        resp = self._current(kairo, "gp", None)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "device_not_registered"

    def test_pending_device(self, kairo, device_check) -> None:
        _register(kairo, "gp", _fp("j"))
        resp = self._current(kairo, "gp", _fp("j"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "device_pending"

    def test_revoked_device(self, kairo, device_check) -> None:
        device_id = _register(kairo, "gp", _fp("k")).json()["id"]
        kairo.practices.revoke_device(device_id, kairo.practice_ids["active"], reason="lost")
        resp = self._current(kairo, "gp", _fp("k"))
        assert resp.json()["error"]["code"] == "device_revoked"

    def test_unknown_device(self, kairo, device_check) -> None:
        resp = self._current(kairo, "gp", _fp("z"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "device_unauthorized"

    def test_other_practice_device_is_unauthorized(self, kairo, device_check) -> None:
        device = _register(kairo, "paid_gp", _fp("l")).json()
        kairo.practices.approve_device(device["id"], kairo.practice_ids["paid"], approved_by=kairo.user_ids["paid_gp"])
        resp = self._current(kairo, "gp", _fp("l"))
        assert resp.json()["error"]["code"] == "device_unauthorized"

    def test_approved_device_passes_and_is_stamped(self, kairo, device_check) -> None:
        device_id = _register(kairo, "gp", _fp("m")).json()["id"]
        kairo.practices.approve_device(device_id, kairo.practice_ids["active"], approved_by=kairo.user_ids["admin"])
        assert self._current(kairo, "gp", _fp("m")).status_code == 200
        device = kairo.practices.get_device(device_id, kairo.practice_ids["active"])
        assert device.last_used_at is not None
        assert device.last_used_by == kairo.user_ids["gp"]

    def test_registration_skips_guard(self, kairo, device_check) -> None:
        assert _register(kairo, "gp", _fp("n")).status_code == 201

    def test_super_admin_bypasses_guard(self, kairo, device_check) -> None:
        token = issue_token(
            SessionClaims(
                subject=str(kairo.user_ids["super"]),
                email="super@example.org",
                role="SUPER_ADMIN",
                practice_id=kairo.practice_ids["active"],
            )
        )
        resp = kairo.client.get("/api/v1/practices/current", headers=bearer(token))
        assert resp.status_code == 200

    def test_trial_status_not_device_guarded(self, kairo, device_check) -> None:
        resp = kairo.client.get("/api/v1/practices/trial-status", headers=bearer(kairo.tokens["gp"]))
        assert resp.status_code == 200
