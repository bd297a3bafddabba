"""
api/routes/v1/users.py -- Identity administration endpoints.

Routes:
  POST   /api/v1/users/init-admin                -- first admin (public, first run only)
  POST   /api/v1/users                           -- create identity (admin)
  GET    /api/v1/users                           -- list identities (admin)
  GET    /api/v1/users/me                        -- own profile (auth)
  GET    /api/v1/users/username/{username}       -- lookup (auth)
  GET    /api/v1/users/email/{email}             -- lookup (auth)
  PATCH  /api/v1/users/{username}/make-admin     -- promote (admin)
  PATCH  /api/v1/users/{username}/status?active= -- enable/disable (admin)
  PUT    /api/v1/users/{username}/password       -- reset password (admin)
  DELETE /api/v1/users/{username}                -- delete identity (admin)

Responses never include the password hash.

[M4] An admin cannot disable or delete their own account.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import PasswordReset, UserCreate, UserResponse
from auth.accounts import IdentityService
from auth.dependencies import get_current_caller, require_admin
from auth.models import Caller
from core.errors import Conflict

# Auth policy:
# - POST   /users/init-admin:   public, refused once any identity exists
# - GET    /users/me, lookups:  requires auth (get_current_caller)
# - everything else:            requires admin (require_admin)
router = APIRouter()


def _identities(request: Request) -> IdentityService:
    return request.app.state.identities


@router.post("/users/init-admin", response_model=UserResponse, status_code=201)
def init_admin(request: Request, body: UserCreate) -> UserResponse:
    """Create the first ADMIN account. Answers 409 once any identity exists."""
    user = _identities(request).init_admin(body.username, body.email, body.password)
    return UserResponse.from_user(user)


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    caller: Caller = Depends(require_admin),
) -> UserResponse:
    user = _identities(request).create_user(body.username, body.email, body.password, body.role)
    return UserResponse.from_user(user)


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, caller: Caller = Depends(require_admin)) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in _identities(request).list_users()]


@router.get("/users/me", response_model=UserResponse)
def me(request: Request, caller: Caller = Depends(get_current_caller)) -> UserResponse:
    """Return the profile of the authenticated caller."""
    return UserResponse.from_user(_identities(request).get(caller.username))


@router.get("/users/username/{username}", response_model=UserResponse)
def get_by_username(
    request: Request,
    username: str,
    caller: Caller = Depends(get_current_caller),
) -> UserResponse:
    return UserResponse.from_user(_identities(request).get(username))


@router.get("/users/email/{email}", response_model=UserResponse)
def get_by_email(
    request: Request,
    email: str,
    caller: Caller = Depends(get_current_caller),
) -> UserResponse:
    return UserResponse.from_user(_identities(request).get_by_email(email))


@router.patch("/users/{username}/make-admin", response_model=UserResponse)
def make_admin(
    request: Request,
    username: str,
    caller: Caller = Depends(require_admin),
) -> UserResponse:
    """Grant ADMIN. The new role applies from the user's next login or refresh."""
    return UserResponse.from_user(_identities(request).promote(username))


@router.patch("/users/{username}/status", response_model=UserResponse)
def set_status(
    request: Request,
    username: str,
    active: bool = Query(...),
    caller: Caller = Depends(require_admin),
) -> UserResponse:
    """Enable or disable an account. A disabled account cannot log in or refresh."""
    if not active and username == caller.username:  # [M4]
        raise Conflict("You cannot deactivate your own account.")
    return UserResponse.from_user(_identities(request).set_active(username, active))


@router.put("/users/{username}/password", status_code=204)
def reset_password(
    request: Request,
    username: str,
    body: PasswordReset,
    caller: Caller = Depends(require_admin),
) -> Response:
    _identities(request).reset_password(username, body.new_password)
    return Response(status_code=204)


@router.delete("/users/{username}", status_code=204)
def delete_user(
    request: Request,
    username: str,
    caller: Caller = Depends(require_admin),
) -> Response:
    """Delete an identity. Its outstanding refresh tokens stop working."""
    if username == caller.username:  # [M4]
        raise Conflict("You cannot delete your own account.")
    _identities(request).delete(username)
    return Response(status_code=204)
