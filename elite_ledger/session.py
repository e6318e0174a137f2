"""
session.py - Explicit sessions and login

A Session carries the acting user into every ledger entry point that needs
one, instead of a process-wide "current user". The Authenticator issues
sessions: the administrator is checked against configured credentials
(username plus SHA-256 password digest), regular users are matched by email.
"""

from __future__ import annotations
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .core import (
    User, Role, ADMIN_USER_ID, ADMIN_DISPLAY_NAME,
    NotAuthorized, AuthenticationFailed,
)

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hex SHA-256 digest used for the configured admin password."""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def admin_user(username: str) -> User:
    """The singleton admin identity. Never stored as a user record."""
    return User(
        id=ADMIN_USER_ID,
        name=ADMIN_DISPLAY_NAME,
        email=username,
        role=Role.ADMIN,
        portfolio={},
    )


@dataclass(frozen=True, slots=True)
class Session:
    """The acting user for a sequence of ledger calls."""
    user: User

    @property
    def is_admin(self) -> bool:
        return self.user.is_admin

    @property
    def user_id(self) -> str:
        return self.user.id

    def require_admin(self) -> None:
        if not self.is_admin:
            raise NotAuthorized(f"User {self.user.id} is not an administrator")

    def refresh(self, users: Iterable[User]) -> Session:
        """
        A session holding the latest stored copy of the session user.

        The admin identity is not stored, so an admin session is returned as
        it is. So is a session whose user is no longer stored.
        """
        if self.is_admin:
            return self
        for candidate in users:
            if candidate.id == self.user.id:
                return Session(candidate)
        return self

    def __repr__(self):
        return f"Session({self.user.id}, role={self.user.role.value})"


@dataclass(frozen=True)
class AdminCredentials:
    username: str
    password_sha256: str

    def matches(self, username: str, password: str) -> bool:
        if not self.username or not self.password_sha256:
            return False
        same_user = hmac.compare_digest(username.encode("utf-8"), self.username.encode("utf-8"))
        same_pass = hmac.compare_digest(hash_password(password), self.password_sha256.lower())
        return same_user and same_pass


class Authenticator:
    """
    Issues sessions.

    Args:
        admin: Administrator credentials, or None to disable admin login
    """

    def __init__(self, admin: Optional[AdminCredentials] = None):
        self.admin = admin

    def login(self, identifier: str, secret: str, users: Iterable[User]) -> Session:
        """
        Open a session for an admin username or a user email.

        Raises:
            AuthenticationFailed: No admin or user matches
        """
        identifier = (identifier or "").strip()
        secret = (secret or "").strip()
        if self.admin is not None and identifier == self.admin.username:
            if self.admin.matches(identifier, secret):
                logger.info("Administrator session opened")
                return Session(admin_user(self.admin.username))
            raise AuthenticationFailed("Invalid credentials")

        wanted = identifier.lower()
        for user in users:
            if user.email.lower() == wanted:
                logger.info("Session opened for user %s", user.id)
                return Session(user)
        raise AuthenticationFailed("Invalid credentials. Please sign up.")
