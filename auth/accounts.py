"""
auth/accounts.py -- Identity provisioning on top of UserStore.

Shared by the /api/v1/users router and the offline admin CLI in main.py so
both surfaces apply the same rules: passwords are hashed here and nowhere
else, duplicates surface as Conflict, and a missing username as NotFound.

Authorization is the caller's job. Routes wrap these calls in require_admin;
the CLI is trusted by virtue of having database access.

Layer rule: no imports from api/ or deals/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.errors import Conflict, NotFound

logger = logging.getLogger("dealpipeline.auth.accounts")


class IdentityService:
    def __init__(self, users: UserStore) -> None:
        self.users = users

    def create_user(self, username: str, email: str, password: str, role: Role = Role.USER) -> User:
        """Create an identity. Raises Conflict if the username or email is taken."""
        if self.users.get_by_username(username) is not None:
            raise Conflict(f"Username already exists: {username}")
        if self.users.get_by_email(email) is not None:
            raise Conflict(f"Email already exists: {email}")
        try:
            user_id = self.users.create_user(
                User(username=username, email=email, hashed_password=hash_password(password), role=role)
            )
        except IntegrityError as exc:
            # Lost a race with a concurrent create of the same username or email.
            raise Conflict("A user with that username or email already exists.") from exc
        logger.info("Created user %s (role=%s)", username, Role(role).value)
        return self.users.get_by_id(user_id)

    def init_admin(self, username: str, email: str, password: str) -> User:
        """Create the first ADMIN. Only allowed while no identities exist."""
        if self.users.has_users():
            raise Conflict("Initial admin already configured.")
        return self.create_user(username, email, password, role=Role.ADMIN)

    def get(self, username: str) -> User:
        user = self.users.get_by_username(username)
        if user is None:
            raise NotFound(f"User not found: {username}")
        return user

    def get_by_email(self, email: str) -> User:
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFound(f"User not found: {email}")
        return user

    def list_users(self) -> list[User]:
        return self.users.list_users()

    def promote(self, username: str) -> User:
        """Grant ADMIN. Takes effect at the user's next token issue."""
        user = self.get(username)
        self.users.update_user(user.id, role=Role.ADMIN)
        logger.info("Promoted %s to admin", username)
        return self.get(username)

    def set_active(self, username: str, active: bool) -> User:
        user = self.get(username)
        self.users.update_user(user.id, is_active=active)
        logger.info("Set %s active=%s", username, active)
        return self.get(username)

    def reset_password(self, username: str, new_password: str) -> None:
        user = self.get(username)
        self.users.update_user(user.id, hashed_password=hash_password(new_password))
        logger.info("Password reset for %s", username)

    def delete(self, username: str) -> None:
        user = self.get(username)
        self.users.delete_user(user.id)
        logger.info("Deleted user %s", username)
