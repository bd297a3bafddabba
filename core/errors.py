"""
core/errors.py -- Error taxonomy shared by every layer.

Each error carries a stable machine-readable code and the HTTP status the API
layer renders it with. api/main.py registers a single exception handler for
PipelineError, so route handlers never build error responses by hand.

None of these are retried or reinterpreted on the way up: a service that
receives a TokenState.REVOKED from the ledger raises TokenInvalid(REVOKED),
not a generic failure.

Layer rule: no imports from api/, auth/, or deals/.
"""

from __future__ import annotations

from enum import Enum


class TokenState(str, Enum):
    """Lifecycle state of a refresh-token value as seen by the ledger.

    ACTIVE is the only state from which a token may be rotated or revoked.
    The other three are terminal for that token value.
    """

    ACTIVE = "active"
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"


class PipelineError(Exception):
    """Base class for every error the API reports to a caller."""

    code: str = "error"
    status_code: int = 400
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class AuthenticationFailed(PipelineError):
    """Bad username or password. Deliberately says nothing about which one."""

    code = "bad_credentials"
    status_code = 401
    default_message = "Invalid username or password."


_TOKEN_MESSAGES: dict[TokenState, str] = {
    TokenState.NOT_FOUND: "Invalid refresh token.",
    TokenState.REVOKED: "Refresh token revoked.",
    TokenState.EXPIRED: "Refresh token expired.",
}


class TokenInvalid(PipelineError):
    """A refresh or logout was attempted with an unusable refresh token.

    The kind is part of the response: refresh tokens are opaque to clients,
    so their lifecycle state is not sensitive.
    """

    status_code = 401

    def __init__(self, kind: TokenState) -> None:
        if kind is TokenState.ACTIVE:
            raise ValueError("TokenInvalid requires a terminal token state")
        self.kind = kind
        self.code = f"token_{kind.value}"
        super().__init__(_TOKEN_MESSAGES[kind])


class AccessDenied(PipelineError):
    code = "forbidden"
    status_code = 403
    default_message = "You are not allowed to perform this action."


class IdentityNotFound(PipelineError):
    """The identity behind a valid refresh token no longer exists."""

    code = "identity_not_found"
    status_code = 401
    default_message = "User not found."


class Conflict(PipelineError):
    code = "conflict"
    status_code = 409
    default_message = "Resource already exists."


class NotFound(PipelineError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found."
