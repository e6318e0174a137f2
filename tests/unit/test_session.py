"""
test_session.py - Unit tests for sessions and login
"""

import dataclasses
import pytest
from decimal import Decimal

from elite_ledger import (
    Authenticator, AdminCredentials, Session, User, Role,
    hash_password, AuthenticationFailed, NotAuthorized, ADMIN_USER_ID,
)


USERS = [
    User(id="u1", name="Alice", email="alice@example.com", balance=Decimal("10")),
    User(id="u2", name="Bob", email="bob@example.com"),
]


@pytest.fixture
def authenticator():
    return Authenticator(AdminCredentials("admin", hash_password("s3cret")))


class TestLogin:

    def test_admin_login(self, authenticator):
        session = authenticator.login("admin", "s3cret", USERS)
        assert session.is_admin
        assert session.user_id == ADMIN_USER_ID
        assert session.user.role is Role.ADMIN

    def test_admin_wrong_password(self, authenticator):
        with pytest.raises(AuthenticationFailed):
            authenticator.login("admin", "guess", USERS)

    def test_user_login_by_email(self, authenticator):
        session = authenticator.login("  Alice@Example.COM ", "", USERS)
        assert session.user is USERS[0]
        assert not session.is_admin

    def test_unknown_email(self, authenticator):
        with pytest.raises(AuthenticationFailed, match="sign up"):
            authenticator.login("carol@example.com", "", USERS)

    def test_admin_login_disabled_without_credentials(self):
        with pytest.raises(AuthenticationFailed):
            Authenticator().login("admin", "s3cret", USERS)

    def test_digest_comparison_ignores_hex_case(self):
        creds = AdminCredentials("admin", hash_password("s3cret").upper())
        assert creds.matches("admin", "s3cret")
        assert not creds.matches("Admin", "s3cret")

    def test_empty_credentials_never_match(self):
        assert not AdminCredentials("", "").matches("", "")


class TestSession:

    def test_require_admin(self):
        with pytest.raises(NotAuthorized):
            Session(USERS[0]).require_admin()

    def test_refresh_returns_session_with_stored_copy(self):
        session = Session(USERS[0])
        newer = USERS[0].with_balance(Decimal("99"))
        refreshed = session.refresh([USERS[1], newer])
        assert refreshed.user is newer
        assert session.user is USERS[0]

    def test_refresh_keeps_user_missing_from_store(self):
        session = Session(USERS[0])
        assert session.refresh([USERS[1]]) is session

    def test_refresh_leaves_admin_alone(self, authenticator):
        session = authenticator.login("admin", "s3cret", USERS)
        assert session.refresh(USERS) is session

    def test_session_is_immutable(self):
        session = Session(USERS[0])
        with pytest.raises(dataclasses.FrozenInstanceError):
            session.user = USERS[1]
