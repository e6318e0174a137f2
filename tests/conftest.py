"""
conftest.py - Shared pytest fixtures for ledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Storage (local-only and with an in-memory remote store)
- Ledgers on a fixed clock and a seeded catalog
- Admin and user sessions
- Funded users (see helpers.py)
"""

import pytest

from elite_ledger import (
    Ledger, StorageAdapter, LocalCache, AssetCatalog, Session, ADMIN_USER_ID, Role,
)
from elite_ledger.session import admin_user

from tests.fake_remote import FakeRemoteStore
from tests.helpers import T0, new_user


# =============================================================================
# STORAGE FIXTURES
# =============================================================================

@pytest.fixture
def cache():
    return LocalCache()


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def local_storage(cache):
    """Adapter with no remote store configured."""
    return StorageAdapter(cache)


@pytest.fixture
def remote_storage(cache, remote):
    return StorageAdapter(cache, remote)


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def catalog():
    return AssetCatalog(seed=42, start_time=T0)


@pytest.fixture
def ledger(local_storage, catalog):
    """Local-only ledger on a fixed clock."""
    return Ledger(local_storage, catalog, clock=lambda: T0)


@pytest.fixture
def remote_ledger(remote_storage, catalog):
    """Ledger backed by the in-memory remote store."""
    return Ledger(remote_storage, catalog, clock=lambda: T0)


@pytest.fixture
def admin_session():
    session = Session(admin_user("admin"))
    assert session.user.id == ADMIN_USER_ID
    assert session.user.role is Role.ADMIN
    return session


@pytest.fixture
def alice(ledger):
    """Alice with a balance of 1000 in the local-only ledger."""
    return new_user(ledger, balance="1000")


@pytest.fixture
def remote_alice(remote_ledger):
    """Alice with a balance of 1000 in the remote-backed ledger."""
    return new_user(remote_ledger, balance="1000")
