"""
On-device record cache.

A mapping from collection name to a serialized JSON array of records. It is
the offline fallback for every read and the write-through mirror of every
remote write. There is no eviction, size bound or TTL.

When constructed with a path, the whole store is written to that file after
every change (atomic replace) and read back on startup.
"""

from __future__ import annotations
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core import PersistenceError

logger = logging.getLogger(__name__)

USERS_KEY = "local_users"
TRANSACTIONS_KEY = "local_txs"
GATEWAYS_KEY = "local_gateways"

Record = Dict[str, Any]


class LocalCache:
    """Keyed record store with upsert-by-id and delete-by-id semantics."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else None
        self._store: Dict[str, str] = {}
        self.load()

    # ------------------------------------------------------------------
    # Whole-collection access
    # ------------------------------------------------------------------

    def get(self, key: str) -> List[Record]:
        """Return a fresh copy of the records in a collection ([] if absent)."""
        raw = self._store.get(key)
        if not raw:
            return []
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable cache collection %s", key)
            return []

    def set(self, key: str, records: List[Record]) -> None:
        """Replace a collection."""
        try:
            raw = json.dumps(records)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot serialize {key}: {e}", "cache_set", key) from e
        previous = self._store.get(key)
        self._store[key] = raw
        try:
            self._flush()
        except PersistenceError:
            if previous is None:
                self._store.pop(key, None)
            else:
                self._store[key] = previous
            raise

    def keys(self) -> List[str]:
        return sorted(self._store)

    # ------------------------------------------------------------------
    # Record-level access
    # ------------------------------------------------------------------

    def find(self, key: str, id_value: Any, id_key: str = "id") -> Optional[Record]:
        for record in self.get(key):
            if record.get(id_key) == id_value:
                return record
        return None

    def save_item(self, key: str, item: Record, id_key: str = "id", prepend: bool = False) -> None:
        """
        Upsert a record by its id field.

        An existing record is replaced in place. A new record is appended, or
        put first when prepend is set (transactions are kept newest first).
        """
        records = self.get(key)
        for i, record in enumerate(records):
            if record.get(id_key) == item.get(id_key):
                records[i] = item
                break
        else:
            if prepend:
                records.insert(0, item)
            else:
                records.append(item)
        self.set(key, records)

    def update_item(self, key: str, id_value: Any, changes: Record, id_key: str = "id") -> bool:
        """Merge changes into one record. Returns False if it is not cached."""
        records = self.get(key)
        for record in records:
            if record.get(id_key) == id_value:
                record.update(changes)
                self.set(key, records)
                return True
        return False

    def remove_item(self, key: str, id_value: Any, id_key: str = "id") -> bool:
        records = self.get(key)
        kept = [r for r in records if r.get(id_key) != id_value]
        if len(kept) == len(records):
            return False
        self.set(key, kept)
        return True

    # ------------------------------------------------------------------
    # File persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        if not self.path or not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable cache file %s: %s", self.path, e)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring cache file %s: not a JSON object", self.path)
            return
        self._store = {k: v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        if not self.path:
            return
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self._store, f)
            os.replace(tmp, self.path)
        except OSError as e:
            raise PersistenceError(f"Cannot write cache file {self.path}: {e}", "cache_flush") from e

    def __repr__(self):
        where = str(self.path) if self.path else "memory"
        return f"LocalCache({len(self._store)} collections, {where})"
