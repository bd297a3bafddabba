"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens arrive as "Authorization: Bearer <token>". A verified token
becomes a Caller value that route handlers pass explicitly into services and
policy checks. There is no global or thread-local "current user".

try_get_current_caller() is the soft variant (returns None on failure).
get_current_caller() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_caller() and raises AccessDenied (403) if
the caller is not an admin.

The role on the Caller comes from the verified token, so a promotion or
demotion takes effect at the next token issue. The identity row is still
looked up per request to resolve the numeric id and to reject deleted or
disabled accounts.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. No imports from api/ or
deals/.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from auth.models import Caller
from auth.policy import Capability, require
from auth.store import UserStore
from auth.tokens import TokenIssuer


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_current_caller(request: Request) -> Caller | None:
    """Authenticate the request from its bearer token.

    Returns the Caller on success, None on any failure. Never raises.
    """
    token = _bearer_token(request)
    if token is None:
        return None

    issuer: TokenIssuer = request.app.state.token_issuer
    claims = issuer.verify(token)
    if claims is None:
        return None

    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_username(claims.subject)
    if user is None or not user.is_active:
        return None
    return Caller(user_id=user.id, username=user.username, role=claims.role)


def get_current_caller(request: Request) -> Caller:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(caller: Caller = Depends(get_current_caller)): ...
    """
    caller = try_get_current_caller(request)
    if caller is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return caller


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    """Require the ADMIN role. 401 if unauthenticated, 403 if not admin."""
    require(caller, Capability.MANAGE_USERS, message="Admin access required.")
    return caller
