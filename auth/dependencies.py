"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Sessions arrive as "Authorization: Bearer <jwt>". The token alone proves
identity (try_get_claims); get_current_user additionally loads the account
so a deactivated user is locked out before their token expires.

try_get_claims() is the soft variant (returns None on failure).
get_current_claims() wraps it and raises HTTP 401 if unauthenticated.
get_current_user() loads the User record, 401 if it is gone or inactive.
require_roles(...) builds a dependency that raises HTTP 403 for other roles.

Missing, malformed, expired and badly-signed tokens are all the same 401 --
clients treat them uniformly as "not logged in".

Layer rule: no imports from api/, practice/, or client/.
  auth/dependencies.py may import from fastapi because this module is part
  of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.models import SessionClaims, User
from auth.tokens import authenticate_token

_BEARER_PREFIX = "Bearer "


def bearer_token(request: Request) -> str | None:
    """Return the raw token from the Authorization header, or None."""
    header = request.headers.get("Authorization", "")
    if header.startswith(_BEARER_PREFIX):
        token = header[len(_BEARER_PREFIX) :].strip()
        return token or None
    return None


def try_get_claims(request: Request) -> SessionClaims | None:
    """Return verified session claims, or None. Never raises."""
    token = bearer_token(request)
    if not token:
        return None
    return authenticate_token(token)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": "unauthorized", "message": "Authentication required."},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_claims(request: Request) -> SessionClaims:
    """Require a valid session token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: SessionClaims = Depends(get_current_claims)): ...
    """
    claims = try_get_claims(request)
    if claims is None:
        raise _unauthorized()
    return claims


def get_current_user(request: Request, claims: SessionClaims = Depends(get_current_claims)) -> User:
    """Require a valid token for an account that still exists and is active."""
    user = request.app.state.user_store.get_by_id(claims.user_id)
    if user is None or not user.is_active:
        raise _unauthorized()
    return user


def require_roles(*roles: str) -> Callable[..., SessionClaims]:
    """Build a dependency admitting only the given roles (401 / 403 otherwise).

        @router.get("/devices")
        async def route(claims: SessionClaims = Depends(require_roles("PRACTICE_ADMIN"))): ...
    """
    allowed = frozenset(roles)

    def dependency(claims: SessionClaims = Depends(get_current_claims)) -> SessionClaims:
        if claims.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "You do not have permission to perform this action."},
            )
        return claims

    return dependency
