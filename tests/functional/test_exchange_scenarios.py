"""
test_exchange_scenarios.py - End-to-end exchange scenarios

Tests complete user journeys through the public API:
- Signup, login and a first trade
- Withdrawal held then refunded on rejection
- Deposit approved by the admin
- Working offline, then reading from a recovered remote
- Local cache surviving a restart
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from elite_ledger import (
    Ledger, StorageAdapter, LocalCache, AssetCatalog, Authenticator, AdminCredentials,
    AssetType, TransactionType, TransactionStatus, ExecuteResult, hash_password,
)
from elite_ledger.storage import USERS_TABLE, TRANSACTIONS_TABLE

from tests.helpers import T0, new_user


@pytest.fixture
def authenticator():
    return Authenticator(AdminCredentials("admin", hash_password("admin-pass")))


class TestSpecScenarios:
    """The three reference scenarios, run against the remote-backed ledger."""

    def test_buy_bitcoin(self, remote_ledger, remote, remote_alice):
        result = remote_ledger.execute_trade(remote_alice, AssetType.BITCOIN, "0.01", "BUY")

        assert result.user.balance == Decimal("57.495")
        assert result.user.portfolio[AssetType.BITCOIN] == Decimal("0.01")
        assert result.transaction.total_value == Decimal("942.505")
        assert result.transaction.status is TransactionStatus.APPROVED
        assert result.remote_synced
        assert remote.rows(USERS_TABLE)[0]["balance"] == Decimal("57.495")

    def test_withdrawal_rejected_is_refunded(self, remote_ledger, remote_alice, admin_session):
        requested = remote_ledger.request_withdrawal(remote_alice, 500, "IBAN GB00 0000")
        assert requested.user.balance == Decimal("500")
        assert requested.transaction.status is TransactionStatus.PENDING

        decided = remote_ledger.process_admin_decision(admin_session, requested.transaction, "REJECTED")
        assert decided.user.balance == Decimal("1000")
        assert decided.transaction.status is TransactionStatus.REJECTED
        assert remote_ledger.storage.get_user(remote_alice.id).balance == Decimal("1000")

    def test_deposit_approved(self, remote_ledger, admin_session):
        user = new_user(remote_ledger, balance="300")
        requested = remote_ledger.request_deposit(user, 200, "BANK-REF-77")
        assert remote_ledger.storage.get_user(user.id).balance == Decimal("300")

        decided = remote_ledger.process_admin_decision(admin_session, requested.transaction, "APPROVED")
        assert decided.user.balance == Decimal("500")
        assert decided.transaction.status is TransactionStatus.APPROVED
        assert remote_ledger.pending_requests(admin_session) == []


class TestUserJourney:

    def test_signup_login_deposit_trade(self, remote_ledger, authenticator):
        users = remote_ledger.load_state().users
        remote_ledger.register_user("Dana", "dana@example.com")
        session = authenticator.login("DANA@example.com", "", remote_ledger.load_state().users)
        assert not session.is_admin
        assert users == []

        admin = authenticator.login("admin", "admin-pass", [])
        deposit = remote_ledger.request_deposit(session.user, 5000, "WIRE-1").transaction
        remote_ledger.process_admin_decision(admin, deposit, "APPROVED")

        session = session.refresh(remote_ledger.load_state().users)
        user = session.user
        assert user.balance == Decimal("5000")

        trade = remote_ledger.execute_trade(user, AssetType.GOLD, "1", "BUY")
        user = session.refresh(remote_ledger.load_state().users).user
        assert user == trade.user
        assert remote_ledger.compute_net_worth(user) == Decimal("5000")

        history = remote_ledger.user_transactions(user)
        assert {t.type for t in history} == {TransactionType.DEPOSIT, TransactionType.BUY}

    def test_net_worth_moves_with_prices(self, ledger, catalog):
        user = new_user(ledger, balance="0", BITCOIN="1")
        before = ledger.compute_net_worth(user)
        assert catalog.advance_to(T0 + timedelta(seconds=15)) == 1
        after = ledger.compute_net_worth(user)
        assert after == catalog.get_price(AssetType.BITCOIN)
        assert before == Decimal("94250.50")


class TestOfflineOperation:

    def test_offline_writes_then_remote_recovers(self, remote_ledger, remote, remote_alice):
        remote.offline = True
        trade = remote_ledger.execute_trade(remote_alice, AssetType.GOLD, "0.1", "BUY")
        assert trade.sync.saved_locally_only
        assert remote_ledger.storage.get_user(remote_alice.id).holding(AssetType.GOLD) == Decimal("0.1")

        # The remote comes back with the pre-trade state; remote wins on read.
        remote.offline = False
        assert remote_ledger.storage.get_user(remote_alice.id).balance == Decimal("1000")
        assert remote.rows(TRANSACTIONS_TABLE) == []

    def test_decision_applies_once_across_admins(self, remote, catalog, admin_session):
        """Two ledgers over the same remote store; the second decision sees the first."""
        first = Ledger(StorageAdapter(LocalCache(), remote), catalog, clock=lambda: T0)
        second = Ledger(StorageAdapter(LocalCache(), remote), catalog, clock=lambda: T0)
        user = new_user(first, balance="100")
        tx = first.request_deposit(user, 50, "REF").transaction

        first.process_admin_decision(admin_session, tx, "APPROVED")
        repeat = second.process_admin_decision(admin_session, tx, "APPROVED")

        assert repeat.outcome is ExecuteResult.ALREADY_APPLIED
        assert second.storage.get_user(user.id).balance == Decimal("150")


class TestPersistence:

    def test_cache_file_survives_restart(self, tmp_path):
        path = tmp_path / "elite_cache.json"
        ledger = Ledger(StorageAdapter(LocalCache(path)), AssetCatalog(seed=1), clock=lambda: T0)
        user = new_user(ledger, balance="1000")
        ledger.execute_trade(user, AssetType.DIAMOND, "0.02", "BUY")

        restarted = Ledger(StorageAdapter(LocalCache(path)), AssetCatalog(seed=1), clock=lambda: T0)
        state = restarted.load_state()
        assert state.users[0].balance == Decimal("690.00")
        assert state.users[0].holding(AssetType.DIAMOND) == Decimal("0.02")
        assert [t.type for t in state.transactions] == [TransactionType.BUY]
