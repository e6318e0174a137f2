"""
adapter.py - Storage adapter for users, transactions and payment gateways

The adapter presents one fetch/write interface over the local cache and an
optional remote store:

    Writes: cache first, then remote. A remote failure is logged and returned
            in the WriteResult; it never undoes the cache write.
    Reads:  remote when configured and reachable, overwriting the cache
            (remote wins); otherwise the cache as it is.

The adapter is the only component that knows the remote column names. Record
fields are camelCase in the cache (the records' to_dict() shape) and
snake_case in the remote store; the mapping is one-to-one except that a
transaction's date lives in created_at.

Writes that must not race (user balance changes, transaction decisions) take
an expected version or status and are compare-and-swap against both stores.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..core import (
    User, Transaction, PaymentGateway, TransactionStatus,
    PersistenceError, ConcurrentModification, InvalidTransition, TransactionNotFound,
)
from .local_cache import LocalCache, USERS_KEY, TRANSACTIONS_KEY, GATEWAYS_KEY
from .remote import (
    RemoteStore, RemoteStoreError,
    USERS_TABLE, TRANSACTIONS_TABLE, GATEWAYS_TABLE,
)

logger = logging.getLogger(__name__)


# ============================================================================
# FIELD MAPPING
# ============================================================================

USER_COLUMNS: Dict[str, str] = {
    "id": "id",
    "name": "name",
    "email": "email",
    "address": "address",
    "phone": "phone",
    "role": "role",
    "balance": "balance",
    "portfolio": "portfolio",
    "version": "version",
}

TRANSACTION_COLUMNS: Dict[str, str] = {
    "id": "id",
    "userId": "user_id",
    "userName": "user_name",
    "assetType": "asset_type",
    "amount": "amount",
    "priceAtRequest": "price_at_request",
    "totalValue": "total_value",
    "type": "type",
    "status": "status",
    "date": "created_at",
    "externalTxId": "external_tx_id",
    "payoutDetails": "payout_details",
}

GATEWAY_COLUMNS: Dict[str, str] = {
    "name": "name",
    "active": "active",
    "apiKey": "api_key",
    "bankName": "bank_name",
    "accountNumber": "account_number",
    "currency": "currency",
    "minDeposit": "min_deposit",
    "maxDeposit": "max_deposit",
    "feePercent": "fee_percent",
    "merchantName": "merchant_name",
    "logoUrl": "logo_url",
    "link": "link",
}

# Columns stored as NUMERIC remotely and as strings in the cached JSON.
_NUMERIC_FIELDS = frozenset({
    "balance", "amount", "priceAtRequest", "totalValue",
    "minDeposit", "maxDeposit", "feePercent",
})


def to_row(record: Mapping[str, Any], columns: Mapping[str, str]) -> Dict[str, Any]:
    """camelCase record dict -> snake_case row. Numeric strings become Decimal."""
    row = {}
    for name, column in columns.items():
        value = record.get(name)
        if name in _NUMERIC_FIELDS and value is not None:
            value = Decimal(str(value))
        row[column] = value
    return row


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def from_row(row: Mapping[str, Any], columns: Mapping[str, str]) -> Dict[str, Any]:
    """snake_case row -> camelCase record dict in the cached JSON shape."""
    record = {}
    for name, column in columns.items():
        value = _plain(row.get(column))
        if name in _NUMERIC_FIELDS and value is not None:
            value = str(value)
        record[name] = value
    if isinstance(record.get("portfolio"), dict):
        record["portfolio"] = {k: str(v) for k, v in record["portfolio"].items()}
    return record


def transaction_record_from_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    record = from_row(row, TRANSACTION_COLUMNS)
    # Rows written before created_at existed carry only a date column.
    if record.get("date") is None and row.get("date") is not None:
        record["date"] = _plain(row["date"])
    return record


def user_to_row(user: User) -> Dict[str, Any]:
    return to_row(user.to_dict(), USER_COLUMNS)


def user_from_row(row: Mapping[str, Any]) -> User:
    return User.from_dict(from_row(row, USER_COLUMNS))


def transaction_to_row(tx: Transaction) -> Dict[str, Any]:
    row = to_row(tx.to_dict(), TRANSACTION_COLUMNS)
    row["created_at"] = tx.date
    return row


def transaction_from_row(row: Mapping[str, Any]) -> Transaction:
    return Transaction.from_dict(transaction_record_from_row(row))


def gateway_to_row(gateway: PaymentGateway) -> Dict[str, Any]:
    return to_row(gateway.to_dict(), GATEWAY_COLUMNS)


def gateway_from_row(row: Mapping[str, Any]) -> PaymentGateway:
    return PaymentGateway.from_dict(from_row(row, GATEWAY_COLUMNS))


# ============================================================================
# WRITE REPORTING
# ============================================================================

@dataclass(frozen=True, slots=True)
class WriteResult:
    """
    Outcome of one adapter write.

    The cache write always succeeded if a WriteResult exists (cache failures
    raise). error is set when the remote write was attempted and failed.
    """
    operation: str
    record_key: str
    remote_attempted: bool
    error: Optional[PersistenceError] = None

    @property
    def remote_synced(self) -> bool:
        return self.remote_attempted and self.error is None


@dataclass(frozen=True, slots=True)
class SyncReport:
    """Combined WriteResults of one ledger operation."""
    writes: Tuple[WriteResult, ...] = ()

    @classmethod
    def of(cls, *results: Optional[WriteResult]) -> SyncReport:
        return cls(tuple(r for r in results if r is not None))

    @property
    def failures(self) -> Tuple[PersistenceError, ...]:
        return tuple(w.error for w in self.writes if w.error is not None)

    @property
    def remote_synced(self) -> bool:
        """True only if every write reached the remote store."""
        return all(w.remote_synced for w in self.writes)

    @property
    def saved_locally_only(self) -> bool:
        return bool(self.writes) and not self.remote_synced


# ============================================================================
# ADAPTER
# ============================================================================

class StorageAdapter:
    """
    Uniform fetch/write access to ledger records.

    Args:
        cache: Local cache (write-through mirror and offline fallback)
        remote: Remote store, or None when no backend is configured
    """

    def __init__(self, cache: Optional[LocalCache] = None, remote: Optional[RemoteStore] = None):
        self.cache = cache if cache is not None else LocalCache()
        self.remote = remote

    @property
    def remote_configured(self) -> bool:
        return self.remote is not None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch(
        self,
        key: str,
        table: str,
        to_record: Callable[[Mapping[str, Any]], Dict[str, Any]],
        keep_local_if_empty: bool = False,
        **select_kwargs: Any,
    ) -> List[Dict[str, Any]]:
        local = self.cache.get(key)
        if self.remote is None:
            return local
        try:
            rows = self.remote.select(table, **select_kwargs)
        except RemoteStoreError as e:
            logger.warning("Fetching %s failed, using local cache: %s", table, e)
            return local
        if not rows and keep_local_if_empty:
            return local
        records = [to_record(r) for r in rows]
        try:
            self.cache.set(key, records)
        except PersistenceError as e:
            logger.warning("Could not refresh local cache %s: %s", key, e)
        return records

    def _remote_write(self, operation: str, record_key: str, write: Callable[[], Any]) -> WriteResult:
        if self.remote is None:
            return WriteResult(operation, record_key, remote_attempted=False)
        try:
            write()
        except RemoteStoreError as e:
            logger.error("Remote %s failed for %s: %s", operation, record_key, e)
            error = PersistenceError(
                f"{operation} for {record_key} saved locally only, remote sync pending: {e}",
                operation, record_key,
            )
            return WriteResult(operation, record_key, remote_attempted=True, error=error)
        return WriteResult(operation, record_key, remote_attempted=True)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def fetch_users(self) -> List[User]:
        # An empty remote table does not wipe users created while offline.
        records = self._fetch(
            USERS_KEY, USERS_TABLE, lambda r: from_row(r, USER_COLUMNS), keep_local_if_empty=True,
        )
        return [User.from_dict(r) for r in records]

    def get_user(self, user_id: str) -> Optional[User]:
        for user in self.fetch_users():
            if user.id == user_id:
                return user
        return None

    def sync_user(self, user: User, expected_version: Optional[int] = None) -> WriteResult:
        """
        Upsert a user.

        With expected_version, the write only succeeds if the stored record is
        still at that version (or not stored yet).

        Raises:
            ConcurrentModification: The stored version moved on
            PersistenceError: The local cache could not be written
        """
        previous = self.cache.find(USERS_KEY, user.id)
        if (expected_version is not None and previous is not None
                and int(previous.get("version") or 0) != expected_version):
            raise ConcurrentModification(
                f"User {user.id} is at version {previous.get('version')}, expected {expected_version}"
            )
        self.cache.save_item(USERS_KEY, user.to_dict())

        if self.remote is None or expected_version is None:
            return self._remote_write(
                "sync_user", user.id,
                lambda: self.remote.upsert(USERS_TABLE, user_to_row(user), key="id"),
            )

        row = user_to_row(user)
        conflict: List[bool] = []

        def compare_and_swap():
            values = {c: v for c, v in row.items() if c != "id"}
            changed = self.remote.update(USERS_TABLE, values, {"id": user.id, "version": expected_version})
            if changed:
                return
            if self.remote.select(USERS_TABLE, match={"id": user.id}):
                conflict.append(True)
                return
            self.remote.insert(USERS_TABLE, row)

        result = self._remote_write("sync_user", user.id, compare_and_swap)
        if conflict:
            self._restore(USERS_KEY, user.id, previous)
            raise ConcurrentModification(
                f"User {user.id} changed remotely since version {expected_version}"
            )
        return result

    def delete_user(self, user_id: str) -> WriteResult:
        self.cache.remove_item(USERS_KEY, user_id)
        return self._remote_write(
            "delete_user", user_id,
            lambda: self.remote.delete(USERS_TABLE, {"id": user_id}),
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def fetch_transactions(self) -> List[Transaction]:
        """All transactions, newest first."""
        records = self._fetch(
            TRANSACTIONS_KEY, TRANSACTIONS_TABLE, transaction_record_from_row,
            order_by="created_at", descending=True,
        )
        txs = [Transaction.from_dict(r) for r in records]
        txs.sort(key=lambda t: t.date, reverse=True)
        return txs

    def get_transaction(self, tx_id: str) -> Optional[Transaction]:
        for tx in self.fetch_transactions():
            if tx.id == tx_id:
                return tx
        return None

    def add_transaction(self, tx: Transaction) -> WriteResult:
        self.cache.save_item(TRANSACTIONS_KEY, tx.to_dict(), prepend=True)
        return self._remote_write(
            "add_transaction", tx.id,
            lambda: self.remote.insert(TRANSACTIONS_TABLE, transaction_to_row(tx)),
        )

    def update_transaction_status(
        self,
        tx_id: str,
        status: TransactionStatus,
        expected_status: Optional[TransactionStatus] = None,
    ) -> WriteResult:
        """
        Set a transaction's status.

        With expected_status, the change only applies if the transaction is
        cached and its stored status still equals it.

        Raises:
            TransactionNotFound: expected_status given but the transaction is
                not in the local cache
            InvalidTransition: The stored status is not expected_status
            PersistenceError: The local cache could not be written
        """
        status = TransactionStatus(status)
        previous = self.cache.find(TRANSACTIONS_KEY, tx_id)
        if expected_status is not None and previous is None:
            raise TransactionNotFound(f"Transaction {tx_id} not found locally")
        if (expected_status is not None
                and previous.get("status") != TransactionStatus(expected_status).value):
            raise InvalidTransition(
                f"Transaction {tx_id} is {previous.get('status')}, expected {TransactionStatus(expected_status).value}"
            )
        self.cache.update_item(TRANSACTIONS_KEY, tx_id, {"status": status.value})

        match: Dict[str, Any] = {"id": tx_id}
        if expected_status is not None:
            match["status"] = TransactionStatus(expected_status).value
        conflict: List[str] = []

        def compare_and_swap():
            if self.remote.update(TRANSACTIONS_TABLE, {"status": status.value}, match):
                return
            rows = self.remote.select(TRANSACTIONS_TABLE, match={"id": tx_id})
            if rows:
                conflict.append(rows[0].get("status"))
                return
            raise RemoteStoreError(f"transaction {tx_id} not found remotely")

        result = self._remote_write("update_transaction_status", tx_id, compare_and_swap)
        if conflict:
            if previous is not None:
                self.cache.update_item(TRANSACTIONS_KEY, tx_id, {"status": previous.get("status")})
            raise InvalidTransition(f"Transaction {tx_id} is already {conflict[0]} remotely")
        return result

    # ------------------------------------------------------------------
    # Payment gateways
    # ------------------------------------------------------------------

    def fetch_gateways(self) -> List[PaymentGateway]:
        records = self._fetch(GATEWAYS_KEY, GATEWAYS_TABLE, lambda r: from_row(r, GATEWAY_COLUMNS))
        return [PaymentGateway.from_dict(r) for r in records]

    def save_gateway(self, gateway: PaymentGateway) -> WriteResult:
        self.cache.save_item(GATEWAYS_KEY, gateway.to_dict(), id_key="name")
        return self._remote_write(
            "save_gateway", gateway.name,
            lambda: self.remote.upsert(GATEWAYS_TABLE, gateway_to_row(gateway), key="name"),
        )

    # ------------------------------------------------------------------

    def _restore(self, key: str, id_value: str, previous: Optional[Dict[str, Any]]) -> None:
        if previous is None:
            self.cache.remove_item(key, id_value)
        else:
            self.cache.save_item(key, previous)

    def __repr__(self):
        return f"StorageAdapter(cache={self.cache!r}, remote={self.remote!r})"
