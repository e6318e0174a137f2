"""
Configuration loaded from environment variables (and a .env file if present).

    DATABASE_URL                  PostgreSQL URL; unset means local cache only
    ELITE_CACHE_PATH              JSON file for the local cache; unset means in-memory
    ELITE_ADMIN_USERNAME          Administrator login
    ELITE_ADMIN_PASSWORD_SHA256   Hex SHA-256 of the administrator password
    ELITE_PRICE_TICK_SECONDS      Price fluctuation interval (default 15)
    ELITE_PRICE_SEED              Seed for the price random walk
    ELITE_LOG_LEVEL               Logging level name (default INFO)
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .catalog import AssetCatalog, DEFAULT_TICK_SECONDS
from .ledger import Ledger
from .session import AdminCredentials, Authenticator
from .storage import LocalCache, PostgresRemoteStore, StorageAdapter

logger = logging.getLogger(__name__)


def _optional_int(value: Optional[str], name: str) -> Optional[int]:
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


@dataclass(frozen=True)
class LedgerConfig:
    database_url: Optional[str] = None
    cache_path: Optional[str] = None
    admin_username: Optional[str] = None
    admin_password_sha256: Optional[str] = None
    price_tick_seconds: int = DEFAULT_TICK_SECONDS
    price_seed: Optional[int] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> LedgerConfig:
        """Read settings from the environment after loading .env."""
        load_dotenv(dotenv_path)
        tick = _optional_int(os.getenv("ELITE_PRICE_TICK_SECONDS"), "ELITE_PRICE_TICK_SECONDS")
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            cache_path=os.getenv("ELITE_CACHE_PATH") or None,
            admin_username=os.getenv("ELITE_ADMIN_USERNAME") or None,
            admin_password_sha256=os.getenv("ELITE_ADMIN_PASSWORD_SHA256") or None,
            price_tick_seconds=tick or DEFAULT_TICK_SECONDS,
            price_seed=_optional_int(os.getenv("ELITE_PRICE_SEED"), "ELITE_PRICE_SEED"),
            log_level=os.getenv("ELITE_LOG_LEVEL", "INFO").upper(),
        )

    @property
    def remote_configured(self) -> bool:
        return bool(self.database_url)

    @property
    def admin_credentials(self) -> Optional[AdminCredentials]:
        if not self.admin_username or not self.admin_password_sha256:
            return None
        return AdminCredentials(self.admin_username, self.admin_password_sha256)


def configure_logging(level: str = "INFO") -> None:
    """Basic console logging for applications embedding the ledger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_storage(config: LedgerConfig) -> StorageAdapter:
    remote = PostgresRemoteStore(config.database_url) if config.remote_configured else None
    if remote is None:
        logger.warning("DATABASE_URL not set; records are kept in the local cache only")
    return StorageAdapter(LocalCache(config.cache_path), remote)


def build_ledger(config: LedgerConfig) -> Ledger:
    """Wire cache, remote store, adapter and catalog into a Ledger."""
    catalog = AssetCatalog(tick_seconds=config.price_tick_seconds, seed=config.price_seed)
    return Ledger(build_storage(config), catalog)


def build_authenticator(config: LedgerConfig) -> Authenticator:
    if config.admin_credentials is None:
        logger.warning("Administrator credentials not configured; admin login disabled")
    return Authenticator(config.admin_credentials)
