"""
storage - Persistence for ledger records

LocalCache (on-device fallback and write-through mirror), RemoteStore
(relational backend) and the StorageAdapter that combines them.
"""

from .local_cache import LocalCache, USERS_KEY, TRANSACTIONS_KEY, GATEWAYS_KEY
from .remote import (
    RemoteStore,
    RemoteStoreError,
    PostgresRemoteStore,
    USERS_TABLE,
    TRANSACTIONS_TABLE,
    GATEWAYS_TABLE,
)
from .adapter import (
    StorageAdapter,
    WriteResult,
    SyncReport,
    USER_COLUMNS,
    TRANSACTION_COLUMNS,
    GATEWAY_COLUMNS,
    user_to_row,
    user_from_row,
    transaction_to_row,
    transaction_from_row,
    gateway_to_row,
    gateway_from_row,
)
