"""
api/routes/v1/auth.py -- Session REST endpoints.

Routes:
  POST /api/v1/auth/login    -- password login; returns access + refresh token
  POST /api/v1/auth/refresh  -- spend a refresh token; returns a rotated pair
  POST /api/v1/auth/logout   -- revoke a refresh token; 204

Security:
  [H2] login and refresh are rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] AuthSessionService.authenticate() provides timing equalization.
  [M5] Cache-Control: no-store on every response that carries or consumes a token.

Failures are raised as core.errors exceptions by AuthSessionService and
rendered by the PipelineError handler in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import LoginRequest, RefreshTokenRequest, SessionResponse
from auth.models import SessionTokens
from auth.session import AuthSessionService

# Auth policy:
# - POST /api/v1/auth/login:    public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/refresh:  public -- the refresh token is the credential
# - POST /api/v1/auth/logout:   public -- the refresh token is the credential
router = APIRouter()


def _session_response(tokens: SessionTokens) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=SessionResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
        ).model_dump(by_alias=True),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=SessionResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password and open a session.

    Wrong username, wrong password and disabled account all return the same
    "bad_credentials" error so username existence is not leaked.
    """
    sessions: AuthSessionService = request.app.state.sessions
    return _session_response(sessions.login(body.username, body.password))


@limiter.limit(login_rate_limit)  # [H2]
@router.post("/auth/refresh", response_model=SessionResponse)
def refresh(request: Request, body: RefreshTokenRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token is spent."""
    sessions: AuthSessionService = request.app.state.sessions
    return _session_response(sessions.refresh(body.refresh_token))


@router.post("/auth/logout", status_code=204)
def logout(request: Request, body: RefreshTokenRequest) -> Response:
    """Revoke the presented refresh token.

    Access tokens already issued remain valid until they expire.
    """
    sessions: AuthSessionService = request.app.state.sessions
    sessions.logout(body.refresh_token)
    return Response(status_code=204, headers={"Cache-Control": "no-store"})
