"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as practice/store.py).
UserStore is the repository; _row_to_user / _row_to_reset_token are the
mappers. Route and dependency code never touches SQL directly.

The password column holds either a bcrypt hash or a legacy base64 string.
_row_to_user resolves which one it is (auth.credentials.parse_credential)
so no caller ever sniffs the prefix again.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are lower-cased on the way in so lookups are case-insensitive
  without relying on a collation.

Layer rule: no imports from api/, practice/, or client/.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine

from auth.credentials import parse_credential, serialize_credential
from auth.models import Credential, PasswordResetToken, User
from core.config import get_settings, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", Text),  # bcrypt hash or legacy base64; NULL = no password
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("role", String(30), nullable=False, server_default="RECEPTIONIST"),
    Column("practice_id", Integer),  # NULL for super admins
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_reset_tokens = Table(
    "password_reset_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("expires_at", String(32), nullable=False),
    Column("used_at", String(32)),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite settings every Kairo store needs."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def _normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and PasswordResetToken entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(email="gp@example.org", role="GP", practice_id=1),
                                password=hash_password("secret"))
        user = store.get_by_email("gp@example.org")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User, password: str | None = None) -> int:
        """Insert a new user and return its assigned database ID.

        password is the already-encoded stored form (bcrypt hash, or legacy
        base64 for demo data). When omitted, user.credential is used.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        stored = password if password is not None else serialize_credential(user.credential)
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=_normalize_email(user.email),
                    password=stored,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    role=user.role,
                    practice_id=user.practice_id,
                    is_active=1 if user.is_active else 0,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == _normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_for_practice(self, practice_id: int) -> list[User]:
        """Return a practice's users ordered by email."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select().where(_users.c.practice_id == practice_id).order_by(_users.c.email)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_users)).scalar() or 0

    def delete_user(self, user_id: int) -> bool:
        """Remove a user and any reset tokens issued to them."""
        with self.engine.connect() as conn:
            conn.execute(_reset_tokens.delete().where(_reset_tokens.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def set_password(self, user_id: int, credential: Credential) -> bool:
        """Replace a user's stored credential. One form per account, always."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(password=serialize_credential(credential))
            )
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Password reset tokens
    # ------------------------------------------------------------------

    def create_reset_token(self, token: PasswordResetToken) -> int:
        """Insert a reset token record and return its ID.

        Outstanding unused tokens for the same user are invalidated first so
        only the most recent emailed link works.
        """
        with self.engine.connect() as conn:
            conn.execute(
                _reset_tokens.update()
                .where((_reset_tokens.c.user_id == token.user_id) & (_reset_tokens.c.used_at.is_(None)))
                .values(used_at=now_iso())
            )
            result = conn.execute(
                _reset_tokens.insert().values(
                    user_id=token.user_id,
                    token_hash=token.token_hash,
                    expires_at=token.expires_at,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_reset_token(self, token_hash: str) -> PasswordResetToken | None:
        """Look up a reset token by its HMAC hash. Used or expired tokens are returned as-is."""
        with self.engine.connect() as conn:
            row = conn.execute(_reset_tokens.select().where(_reset_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def consume_reset_token(self, token_id: int) -> bool:
        """Mark a token used. Returns False if it was already used (lost a race)."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.update()
                .where((_reset_tokens.c.id == token_id) & (_reset_tokens.c.used_at.is_(None)))
                .values(used_at=now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        credential=parse_credential(row.password),
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        role=row.role,
        practice_id=row.practice_id,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _row_to_reset_token(row) -> PasswordResetToken:
    return PasswordResetToken(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        used_at=row.used_at,
        created_at=row.created_at,
    )
