"""
elite_ledger - Ledger for the Elite Exchange asset-trading demo

Balances, portfolios and transaction records for a fixed catalog of
speculative assets, with deposits and withdrawals approved by an
administrator. Records are written through a local cache to an optional
PostgreSQL backend.

Usage:
    from elite_ledger import (
        Ledger, StorageAdapter, LocalCache, AssetCatalog, Authenticator,
    )

    ledger = Ledger(StorageAdapter(LocalCache()), AssetCatalog())
    alice = ledger.register_user("Alice", "alice@example.com").user

    deposit = ledger.request_deposit(alice, 1000, "BANK-REF-1").transaction
    ledger.process_admin_decision(admin_session, deposit, "APPROVED")

    alice = ledger.storage.get_user(alice.id)
    result = ledger.execute_trade(alice, "BITCOIN", "0.01", "BUY")
    if not result.remote_synced:
        print("Saved locally only; remote sync pending")
"""

# Core types
from .core import (
    Asset,
    AssetType,
    User,
    Transaction,
    PaymentGateway,
    TransactionType,
    TransactionStatus,
    TradeDirection,
    AdjustmentDirection,
    Role,
    ExecuteResult,
    LedgerError,
    ValidationError,
    InsufficientFunds,
    InvalidTransition,
    ConcurrentModification,
    NotAuthorized,
    AuthenticationFailed,
    UserNotFound,
    TransactionNotFound,
    DuplicateEmail,
    GatewayNotFound,
    PersistenceError,
    ADMIN_USER_ID,
    compute_net_worth,
    empty_portfolio,
    generate_id,
)

# Pure state transitions
from .operations import (
    Outcome,
    compute_trade,
    compute_deposit_request,
    compute_withdrawal_request,
    compute_admin_decision,
    compute_balance_adjustment,
)

# Catalog and price feed
from .catalog import AssetCatalog, DEFAULT_ASSETS, fluctuate_prices

# Storage
from .storage import (
    LocalCache,
    RemoteStore,
    RemoteStoreError,
    PostgresRemoteStore,
    StorageAdapter,
    WriteResult,
    SyncReport,
)

# Sessions
from .session import Session, Authenticator, AdminCredentials, hash_password

# Ledger
from .ledger import Ledger, LedgerResult, LedgerState

# Configuration
from .config import LedgerConfig, build_ledger, build_authenticator, configure_logging

__version__ = "1.0.0"
