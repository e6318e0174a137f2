"""
Remote relational store.

RemoteStore is the protocol the storage adapter talks to: plain rows keyed
by snake_case column names, no knowledge of ledger records.
PostgresRemoteStore implements it over psycopg2, one short-lived connection
per call.
"""

from __future__ import annotations
from decimal import Decimal
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

USERS_TABLE = "users"
TRANSACTIONS_TABLE = "transactions"
GATEWAYS_TABLE = "payment_gateways"

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    address TEXT,
    phone TEXT,
    role TEXT NOT NULL DEFAULT 'USER',
    balance NUMERIC NOT NULL DEFAULT 0 CHECK (balance >= 0),
    portfolio JSONB NOT NULL DEFAULT '{}'::jsonb,
    version INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    user_name TEXT NOT NULL,
    asset_type TEXT,
    amount NUMERIC NOT NULL,
    price_at_request NUMERIC NOT NULL,
    total_value NUMERIC NOT NULL,
    type TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    external_tx_id TEXT,
    payout_details TEXT
);

CREATE INDEX IF NOT EXISTS transactions_created_at_idx ON transactions (created_at DESC);

CREATE TABLE IF NOT EXISTS payment_gateways (
    name TEXT PRIMARY KEY,
    active BOOLEAN NOT NULL DEFAULT TRUE,
    api_key TEXT NOT NULL,
    bank_name TEXT,
    account_number TEXT,
    currency TEXT,
    min_deposit NUMERIC,
    max_deposit NUMERIC,
    fee_percent NUMERIC,
    merchant_name TEXT,
    logo_url TEXT,
    link TEXT
);
"""


class RemoteStoreError(Exception):
    """The remote store could not be reached or rejected the statement."""
    pass


@runtime_checkable
class RemoteStore(Protocol):
    """
    Row-level interface to the remote store.

    match arguments are column -> value equality filters joined with AND.
    """

    def select(
        self,
        table: str,
        match: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Row]:
        ...

    def insert(self, table: str, row: Mapping[str, Any]) -> None:
        ...

    def upsert(self, table: str, row: Mapping[str, Any], key: str) -> None:
        ...

    def update(self, table: str, values: Mapping[str, Any], match: Mapping[str, Any]) -> int:
        """Return the number of rows changed."""
        ...

    def delete(self, table: str, match: Mapping[str, Any]) -> int:
        ...


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _adapt(value: Any) -> Any:
    """Wrap dict values for JSONB columns."""
    if isinstance(value, dict):
        return Json(value, dumps=lambda obj: json.dumps(obj, default=_json_default))
    return value


def _where(match: Optional[Mapping[str, Any]]):
    if not match:
        return sql.SQL(""), []
    clause = sql.SQL(" WHERE ") + sql.SQL(" AND ").join(
        sql.SQL("{} = %s").format(sql.Identifier(col)) for col in match
    )
    return clause, [_adapt(v) for v in match.values()]


class PostgresRemoteStore:
    """PostgreSQL RemoteStore over psycopg2."""

    def __init__(self, database_url: str, connect_timeout: int = 5):
        if not database_url:
            raise ValueError("database_url is required")
        self.database_url = database_url
        self.connect_timeout = connect_timeout

    def get_connection(self):
        """Open a new connection."""
        return psycopg2.connect(self.database_url, connect_timeout=self.connect_timeout)

    def _execute(self, query, params, fetch: bool = False):
        try:
            conn = self.get_connection()
        except psycopg2.Error as e:
            raise RemoteStoreError(f"Cannot connect to remote store: {e}") from e
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                result = [dict(r) for r in cur.fetchall()] if fetch else cur.rowcount
            conn.commit()
            return result
        except psycopg2.Error as e:
            conn.rollback()
            raise RemoteStoreError(str(e).strip()) from e
        finally:
            conn.close()

    def create_schema(self) -> None:
        """Create the three ledger tables if they do not exist."""
        self._execute(SCHEMA, None)

    def select(self, table, match=None, order_by=None, descending=False) -> List[Row]:
        where, params = _where(match)
        query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(table)) + where
        if order_by:
            query += sql.SQL(" ORDER BY {} {}").format(
                sql.Identifier(order_by), sql.SQL("DESC" if descending else "ASC")
            )
        return self._execute(query, params, fetch=True)

    def insert(self, table, row) -> None:
        cols = list(row)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
            sql.Identifier(table),
            sql.SQL(", ").join(map(sql.Identifier, cols)),
            sql.SQL(", ").join(sql.Placeholder() * len(cols)),
        )
        self._execute(query, [_adapt(row[c]) for c in cols])

    def upsert(self, table, row, key) -> None:
        cols = list(row)
        updates = [c for c in cols if c != key]
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) ON CONFLICT ({}) DO UPDATE SET {}").format(
            sql.Identifier(table),
            sql.SQL(", ").join(map(sql.Identifier, cols)),
            sql.SQL(", ").join(sql.Placeholder() * len(cols)),
            sql.Identifier(key),
            sql.SQL(", ").join(
                sql.SQL("{} = EXCLUDED.{}").format(sql.Identifier(c), sql.Identifier(c))
                for c in updates
            ),
        )
        self._execute(query, [_adapt(row[c]) for c in cols])

    def update(self, table, values, match) -> int:
        where, where_params = _where(match)
        query = sql.SQL("UPDATE {} SET {}").format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.SQL("{} = %s").format(sql.Identifier(c)) for c in values),
        ) + where
        return self._execute(query, [_adapt(v) for v in values.values()] + where_params)

    def delete(self, table, match) -> int:
        if not match:
            raise ValueError("delete requires a match filter")
        where, params = _where(match)
        query = sql.SQL("DELETE FROM {}").format(sql.Identifier(table)) + where
        return self._execute(query, params)

    def __repr__(self):
        host = self.database_url.rsplit("@", 1)[-1]
        return f"PostgresRemoteStore({host})"
