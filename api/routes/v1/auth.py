"""
api/routes/v1/auth.py -- Login, session and password reset REST endpoints.

Routes:
  POST /api/v1/auth/login            -- email/password login; returns a Bearer JWT
  POST /api/v1/auth/logout           -- stateless; the client drops its token
  GET  /api/v1/auth/me               -- current user info (requires auth)
  POST /api/v1/auth/forgot-password  -- email a single-use reset link
  POST /api/v1/auth/reset-password   -- redeem a reset token for a new password

None of these carry the trial gate or device guard: a user of an expired
practice must still be able to sign in, see who they are and sign out.

Security:
  [H2] POST /login and /forgot-password are rate-limited per IP.
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses.
  [M8] /forgot-password answers identically whether or not the email exists.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ResetPasswordRequest,
    UserSummary,
)
from auth.credentials import hash_password
from auth.dependencies import get_current_user
from auth.mailer import send_reset_email
from auth.models import HashedCredential, PasswordResetToken, User
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    claims_for,
    generate_reset_token,
    hash_reset_token,
    issue_token,
)
from core.config import get_settings, parse_iso, utcnow

logger = logging.getLogger("kairo.api.auth")

_settings = get_settings()

_FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a reset link has been sent."

# Auth policy:
# - POST /api/v1/auth/login:            public
# - POST /api/v1/auth/logout:           public -- there is nothing server-side to clear
# - POST /api/v1/auth/forgot-password:  public
# - POST /api/v1/auth/reset-password:   public -- the reset token is the credential
# - GET  /api/v1/auth/me:               requires auth (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a session token.

    Uses authenticate_user() which includes timing equalization [C1]. Do NOT
    inline get_by_email() + verify_credential() -- that re-introduces the
    timing attack.

    Unknown email, wrong password and deactivated account all produce the
    same 401 "invalid_credentials".
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        logger.info("Failed login for %s", body.email)
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "invalid_credentials", "message": "Invalid credentials."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    token = issue_token(claims_for(user))
    user_store.update_last_login(user.id)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            user=UserSummary.from_user(user),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
async def logout() -> MessageResponse:
    """End the session. Tokens are not tracked server-side, so this only acknowledges."""
    return MessageResponse(message="Logged out.")


@router.get("/auth/me", response_model=UserSummary)
async def me(current_user: User = Depends(get_current_user)) -> UserSummary:
    """Return the currently authenticated user."""
    return UserSummary.from_user(current_user)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@limiter.limit(_settings.password_reset_rate_limit)  # [H2]
@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest, background_tasks: BackgroundTasks) -> MessageResponse:
    """Issue a reset token and queue the email.

    [M8] The response never reveals whether the email is registered. The
    mail is sent after the response goes out, so a known address answers as
    fast as an unknown one, and database or delivery failures are logged
    rather than surfaced.
    """
    user_store: UserStore = request.app.state.user_store
    try:
        user = user_store.get_by_email(body.email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown or inactive account")
            return MessageResponse(message=_FORGOT_PASSWORD_MESSAGE)

        raw_token = generate_reset_token()
        expires_at = utcnow() + timedelta(seconds=_settings.password_reset_expire_seconds)
        user_store.create_reset_token(
            PasswordResetToken(
                user_id=user.id,
                token_hash=hash_reset_token(raw_token),
                expires_at=expires_at.isoformat(),
            )
        )
    except SQLAlchemyError:
        logger.exception("Password reset token could not be issued")
        return MessageResponse(message=_FORGOT_PASSWORD_MESSAGE)

    background_tasks.add_task(_deliver_reset_email, user, raw_token)
    return MessageResponse(message=_FORGOT_PASSWORD_MESSAGE)


def _deliver_reset_email(user: User, raw_token: str) -> None:
    try:
        send_reset_email(user, raw_token)
    except Exception:
        logger.exception("Failed to send password reset email to user %s", user.id)


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Redeem a reset token and store a new bcrypt password.

    Unknown, expired and already-used tokens share one error. The new
    password is always written as bcrypt, which also retires any legacy
    credential on the account.
    """
    user_store: UserStore = request.app.state.user_store
    record = user_store.get_reset_token(hash_reset_token(body.token))
    expires_at = parse_iso(record.expires_at) if record is not None else None
    if (
        record is None
        or record.used_at is not None
        or expires_at is None
        or expires_at <= utcnow()
        or not user_store.consume_reset_token(record.id)
    ):
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_reset_token", "message": "This reset link is invalid or has expired."},
        )

    user_store.set_password(record.user_id, HashedCredential(hash_password(body.new_password).encode("utf-8")))
    logger.info("Password reset completed for user %s", record.user_id)
    return MessageResponse(message="Password has been reset. You can now sign in.")
