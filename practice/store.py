"""
practice/store.py -- SQLAlchemy-backed persistence for practices and devices.

Uses SQLAlchemy Core (not ORM) so the dataclasses in practice/models.py stay
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. PracticeStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL.

Tenant scoping: every device query that takes a device id also takes the
caller's practice_id, so a practice admin cannot approve, revoke or delete
another practice's device by guessing ids (IDOR guard).

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = PracticeStore()
    practice_id = store.create_practice(Practice(name="Elm Surgery", email="elm@example.org"))
    store.register_device(Device(practice_id=practice_id, device_fingerprint=fp, ...))
    store.verify_device(practice_id, fp)
    store.close()
"""

from __future__ import annotations

import logging

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, text
from sqlalchemy.engine import Engine

from auth.store import make_engine
from core.config import get_settings, now_iso
from practice.models import Device, DeviceStatus, Practice

logger = logging.getLogger("kairo.practice.store")


class DeviceConflictError(Exception):
    """The fingerprint is already registered to a different practice."""


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_practices = Table(
    "practices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("phone", String(50), nullable=False, server_default=""),
    Column("ods_code", String(20), nullable=False, server_default=""),
    Column("is_trial", Integer, nullable=False, server_default="1"),
    Column("trial_ends_at", String(32)),
    Column("subscription_tier", String(20), nullable=False, server_default="BASIC"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)

_devices = Table(
    "devices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("practice_id", Integer, nullable=False),
    Column("device_fingerprint", String(128), nullable=False, unique=True),
    Column("device_name", String(255), nullable=False),
    Column("device_type", String(30), nullable=False),
    Column("status", String(20), nullable=False, server_default="PENDING"),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("approved_by", Integer),
    Column("approved_at", String(32)),
    Column("revoked_at", String(32)),
    Column("revoked_reason", Text),
    Column("last_used_at", String(32)),
    Column("last_used_by", Integer),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class PracticeStore:
    """Repository for Practice and Device entities."""

    # Plan fields an administrator may change. Anything else (name, contact
    # details) belongs to the practice's own settings screen.
    _PLAN_FIELDS: frozenset[str] = frozenset({"is_trial", "trial_ends_at", "subscription_tier", "is_active"})

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Practices
    # ------------------------------------------------------------------

    def create_practice(self, practice: Practice) -> int:
        """Insert a practice and return its ID.

        Raises sqlalchemy.exc.IntegrityError if the practice email exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _practices.insert().values(
                    name=practice.name,
                    email=practice.email.strip().lower(),
                    phone=practice.phone,
                    ods_code=practice.ods_code,
                    is_trial=1 if practice.is_trial else 0,
                    trial_ends_at=practice.trial_ends_at,
                    subscription_tier=practice.subscription_tier,
                    is_active=1 if practice.is_active else 0,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_practice(self, practice_id: int) -> Practice | None:
        with self.engine.connect() as conn:
            row = conn.execute(_practices.select().where(_practices.c.id == practice_id)).fetchone()
        return _row_to_practice(row) if row is not None else None

    def get_practice_by_email(self, email: str) -> Practice | None:
        with self.engine.connect() as conn:
            row = conn.execute(_practices.select().where(_practices.c.email == email.strip().lower())).fetchone()
        return _row_to_practice(row) if row is not None else None

    def list_practices(self) -> list[Practice]:
        with self.engine.connect() as conn:
            rows = conn.execute(_practices.select().order_by(_practices.c.name)).fetchall()
        return [_row_to_practice(r) for r in rows]

    def delete_practice(self, practice_id: int) -> bool:
        """Remove a practice together with its devices."""
        with self.engine.connect() as conn:
            conn.execute(_devices.delete().where(_devices.c.practice_id == practice_id))
            result = conn.execute(_practices.delete().where(_practices.c.id == practice_id))
            conn.commit()
        return result.rowcount > 0

    def update_plan(self, practice_id: int, **fields) -> bool:
        """Update subscription/trial fields. Returns False if the practice does not exist.

        Only keys in _PLAN_FIELDS are accepted; anything else raises ValueError.
        """
        unknown = set(fields) - self._PLAN_FIELDS
        if unknown:
            raise ValueError(f"Unknown plan fields: {unknown!r}")
        if not fields:
            return self.get_practice(practice_id) is not None
        for flag in ("is_trial", "is_active"):
            if flag in fields:
                fields[flag] = 1 if fields[flag] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_practices.update().where(_practices.c.id == practice_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def register_device(self, device: Device) -> Device:
        """Register a fingerprint for a practice, or return the existing record.

        Re-registering a fingerprint the practice already owns is idempotent
        (status is left alone: a revoked device stays revoked). A fingerprint
        owned by another practice raises DeviceConflictError.
        """
        existing = self.get_device_by_fingerprint(device.device_fingerprint)
        if existing is not None:
            if existing.practice_id != device.practice_id:
                raise DeviceConflictError("This device is registered to another practice")
            return existing
        with self.engine.connect() as conn:
            result = conn.execute(
                _devices.insert().values(
                    practice_id=device.practice_id,
                    device_fingerprint=device.device_fingerprint,
                    device_name=device.device_name,
                    device_type=device.device_type,
                    status=device.status,
                    ip_address=device.ip_address,
                    user_agent=device.user_agent,
                    approved_by=device.approved_by,
                    approved_at=now_iso() if device.status == DeviceStatus.APPROVED.value else None,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            device_id = result.inserted_primary_key[0]
        logger.info("Device %s registered for practice %s (%s)", device_id, device.practice_id, device.status)
        return self.get_device(device_id, device.practice_id)

    def get_device(self, device_id: int, practice_id: int) -> Device | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _devices.select().where((_devices.c.id == device_id) & (_devices.c.practice_id == practice_id))
            ).fetchone()
        return _row_to_device(row) if row is not None else None

    def get_device_by_fingerprint(self, fingerprint: str) -> Device | None:
        with self.engine.connect() as conn:
            row = conn.execute(_devices.select().where(_devices.c.device_fingerprint == fingerprint)).fetchone()
        return _row_to_device(row) if row is not None else None

    def list_devices(self, practice_id: int) -> list[Device]:
        """Return a practice's devices, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _devices.select()
                .where(_devices.c.practice_id == practice_id)
                .order_by(_devices.c.created_at.desc(), _devices.c.id.desc())
            ).fetchall()
        return [_row_to_device(r) for r in rows]

    def verify_device(self, practice_id: int, fingerprint: str) -> bool:
        """True if the fingerprint is APPROVED for this practice."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _devices.select().where(
                    (_devices.c.practice_id == practice_id)
                    & (_devices.c.device_fingerprint == fingerprint)
                    & (_devices.c.status == DeviceStatus.APPROVED.value)
                )
            ).fetchone()
        return row is not None

    def approve_device(self, device_id: int, practice_id: int, approved_by: int) -> Device | None:
        """Approve a device. Returns None if it does not belong to the practice."""
        return self._update_device(
            device_id,
            practice_id,
            status=DeviceStatus.APPROVED.value,
            approved_by=approved_by,
            approved_at=now_iso(),
            revoked_at=None,
            revoked_reason=None,
        )

    def revoke_device(self, device_id: int, practice_id: int, reason: str | None = None) -> Device | None:
        """Revoke a device. Returns None if it does not belong to the practice."""
        return self._update_device(
            device_id,
            practice_id,
            status=DeviceStatus.REVOKED.value,
            revoked_at=now_iso(),
            revoked_reason=reason,
        )

    def delete_device(self, device_id: int, practice_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _devices.delete().where((_devices.c.id == device_id) & (_devices.c.practice_id == practice_id))
            )
            conn.commit()
        return result.rowcount > 0

    def update_device_last_used(self, fingerprint: str, user_id: int, ip_address: str | None) -> None:
        """Stamp last-used info after a request passes the device guard."""
        with self.engine.connect() as conn:
            conn.execute(
                _devices.update()
                .where(_devices.c.device_fingerprint == fingerprint)
                .values(last_used_at=now_iso(), last_used_by=user_id, ip_address=ip_address)
            )
            conn.commit()

    def _update_device(self, device_id: int, practice_id: int, **values) -> Device | None:
        with self.engine.connect() as conn:
            result = conn.execute(
                _devices.update()
                .where((_devices.c.id == device_id) & (_devices.c.practice_id == practice_id))
                .values(**values)
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_device(device_id, practice_id)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_practice(row) -> Practice:
    return Practice(
        id=row.id,
        name=row.name,
        email=row.email,
        phone=row.phone or "",
        ods_code=row.ods_code or "",
        is_trial=bool(row.is_trial),
        trial_ends_at=row.trial_ends_at,
        subscription_tier=row.subscription_tier,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


def _row_to_device(row) -> Device:
    return Device(
        id=row.id,
        practice_id=row.practice_id,
        device_fingerprint=row.device_fingerprint,
        device_name=row.device_name,
        device_type=row.device_type,
        status=row.status,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        approved_by=row.approved_by,
        approved_at=row.approved_at,
        revoked_at=row.revoked_at,
        revoked_reason=row.revoked_reason,
        last_used_at=row.last_used_at,
        last_used_by=row.last_used_by,
        created_at=row.created_at,
    )
