"""
auth/session.py -- Login, refresh and logout orchestration.

AuthSessionService wires the three collaborators together:
  UserStore           -- who the caller claims to be, and the password check
  TokenIssuer         -- short-lived signed access tokens
  RefreshTokenLedger  -- long-lived opaque refresh tokens, rotated on each use

Per refresh-token value the lifecycle is:

    ACTIVE --rotation--> REVOKED (+ a new ACTIVE successor)
    ACTIVE --logout----> REVOKED
    ACTIVE --time------> EXPIRED

Every state but ACTIVE is terminal for that value.

Failure policy: each method raises exactly the taxonomy error for the
failure it observed (core/errors.py). Ledger kinds pass through unchanged:
a REVOKED token produces TokenInvalid(REVOKED), never a generic error.
Nothing is retried here.

Layer rule: no imports from api/ or deals/.
"""

from __future__ import annotations

import logging

from auth.ledger import RefreshTokenLedger
from auth.models import SessionTokens, User
from auth.store import UserStore
from auth.tokens import TokenIssuer, burn_password_check, verify_password
from core.errors import AuthenticationFailed, IdentityNotFound, TokenInvalid

logger = logging.getLogger("dealpipeline.auth.session")


class AuthSessionService:
    """Issues, rotates and ends sessions.

    Usage:
        sessions = AuthSessionService(user_store, TokenIssuer.from_settings(), ledger)
        tokens = sessions.login("alice", "correct horse")
        tokens = sessions.refresh(tokens.refresh_token)
        sessions.logout(tokens.refresh_token)
    """

    def __init__(self, users: UserStore, issuer: TokenIssuer, ledger: RefreshTokenLedger) -> None:
        self.users = users
        self.issuer = issuer
        self.ledger = ledger

    def authenticate(self, username: str, password: str) -> User:
        """Return the identity for a correct username/password, else raise AuthenticationFailed.

        Unknown username, wrong password and disabled account all raise the
        same error, and all three paths run one bcrypt verify so response time
        does not reveal which one happened [C1].
        """
        user = self.users.get_by_username(username)
        if user is None:
            burn_password_check(password)
            raise AuthenticationFailed()
        if not verify_password(password, user.hashed_password):
            raise AuthenticationFailed()
        if not user.is_active:
            raise AuthenticationFailed()
        return user

    def login(self, username: str, password: str) -> SessionTokens:
        try:
            user = self.authenticate(username, password)
        except AuthenticationFailed:
            logger.info("Login failed for username=%r", username)
            raise
        record = self.ledger.create(user.id)
        logger.info("Login succeeded for %s (user_id=%d)", user.username, user.id)
        return SessionTokens(access_token=self.issuer.issue(user), refresh_token=record.token)

    def refresh(self, refresh_token: str) -> SessionTokens:
        """Spend a refresh token and return a new pair.

        The presented value is permanently unusable afterwards. When two
        requests race on the same value, the ledger lets exactly one rotate;
        the other gets TokenInvalid(REVOKED).
        """
        checked = self.ledger.validate(refresh_token)
        if not checked.ok:
            logger.warning("Refresh rejected: %s", checked.state.value)
            raise TokenInvalid(checked.state)

        user = self.users.get_by_id(checked.record.owner_id)
        if user is None:
            logger.warning(
                "Refresh rejected: owner %d of token %d no longer exists",
                checked.record.owner_id,
                checked.record.id,
            )
            raise IdentityNotFound()
        if not user.is_active:
            logger.warning("Refresh rejected: user %s is disabled", user.username)
            raise AuthenticationFailed()

        rotated = self.ledger.rotate(refresh_token)
        if not rotated.ok:
            # Lost a race with a concurrent refresh or logout of the same value.
            logger.warning("Refresh rejected during rotation: %s", rotated.state.value)
            raise TokenInvalid(rotated.state)

        logger.info("Refresh token rotated for %s", user.username)
        return SessionTokens(access_token=self.issuer.issue(user), refresh_token=rotated.record.token)

    def logout(self, refresh_token: str) -> None:
        """Revoke a refresh token.

        Logging out with an unknown, revoked or expired token raises
        TokenInvalid; it is not silently accepted. Access tokens already
        issued stay valid until they expire.
        """
        result = self.ledger.revoke(refresh_token)
        if not result.ok:
            logger.info("Logout rejected: %s", result.state.value)
            raise TokenInvalid(result.state)
        logger.info("Logout for user_id=%d", result.record.owner_id)
