"""
auth/tokens.py -- Access-token issuing and password hashing.

Security design decisions:
  JWT: python-jose with HS256. TokenIssuer holds the signing key and is the
       only object that signs or verifies access tokens. A token carries the
       username (sub), role, iat and exp -- nothing else. The server keeps no
       record of issued access tokens, so a token cannot be revoked before it
       expires; the short TTL from Settings is the only bound on its lifetime.

       verify() collapses every failure (malformed, bad signature, expired,
       missing claim) into a single None. Callers never learn which check
       failed, so the endpoint cannot be used as a signature oracle.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization at login so response time does not reveal
       whether a username exists [C1].

Layer rule: no imports from api/ or deals/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.models import Role, User
from core.config import Settings, get_settings

logger = logging.getLogger("dealpipeline.auth.tokens")

# bcrypt refuses secrets longer than this many bytes
MAX_PASSWORD_BYTES = 72

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt raises ValueError for input longer than MAX_PASSWORD_BYTES once
    encoded, so callers validate the encoded length first.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the DB is a mismatch, not a crash.
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than later ones.
_DUMMY_HASH: str = hash_password("dealpipeline_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a bcrypt verify against the dummy hash and discard the result.

    Called when the username is unknown so that path costs the same as a
    wrong password [C1].
    """
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccessClaims:
    """The verified claim set of an access token."""

    subject: str
    role: Role
    issued_at: int
    expires_at: int


class TokenIssuer:
    """Mints and verifies short-lived signed access tokens.

    Usage:
        issuer = TokenIssuer.from_settings()
        token = issuer.issue(user)
        claims = issuer.verify(token)   # AccessClaims or None
    """

    def __init__(self, secret_key: str, ttl_seconds: int) -> None:
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "TokenIssuer":
        cfg = settings or get_settings()
        return cls(cfg.secret_key, cfg.access_token_expire_seconds)

    def issue(self, user: User) -> str:
        """Return a compact signed JWT for this identity. No side effects."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.username,
            "role": Role(user.role).value,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.ttl_seconds)).timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> AccessClaims | None:
        """Return the claims of a valid, unexpired token, or None.

        Every failure mode returns the same None.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        try:
            claims = AccessClaims(
                subject=str(payload["sub"]),
                role=Role(payload["role"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError):
            return None
        if claims.expires_at <= int(datetime.now(timezone.utc).timestamp()):
            return None
        return claims
