"""
test_config.py - Unit tests for environment configuration and wiring
"""

import pytest

from elite_ledger import (
    LedgerConfig, build_ledger, build_authenticator, hash_password,
    PostgresRemoteStore, AuthenticationFailed,
)
from elite_ledger.catalog import DEFAULT_TICK_SECONDS


ENV_VARS = [
    "DATABASE_URL",
    "ELITE_CACHE_PATH",
    "ELITE_ADMIN_USERNAME",
    "ELITE_ADMIN_PASSWORD_SHA256",
    "ELITE_PRICE_TICK_SECONDS",
    "ELITE_PRICE_SEED",
    "ELITE_LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """
    Unset every ledger variable and point at an empty .env file.

    Each variable is set then deleted so monkeypatch also removes values
    that load_dotenv adds during the test.
    """
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    dotenv = tmp_path / ".env"
    dotenv.write_text("")
    return dotenv


class TestFromEnv:

    def test_defaults(self, clean_env):
        config = LedgerConfig.from_env(clean_env)
        assert config.database_url is None
        assert not config.remote_configured
        assert config.admin_credentials is None
        assert config.price_tick_seconds == DEFAULT_TICK_SECONDS
        assert config.price_seed is None
        assert config.log_level == "INFO"

    def test_environment_values(self, clean_env, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@localhost/elite")
        monkeypatch.setenv("ELITE_PRICE_TICK_SECONDS", "5")
        monkeypatch.setenv("ELITE_PRICE_SEED", "42")
        monkeypatch.setenv("ELITE_LOG_LEVEL", "debug")
        config = LedgerConfig.from_env(clean_env)
        assert config.remote_configured
        assert config.price_tick_seconds == 5
        assert config.price_seed == 42
        assert config.log_level == "DEBUG"

    def test_dotenv_file_is_read(self, clean_env):
        clean_env.write_text(
            "ELITE_ADMIN_USERNAME=root\n"
            f"ELITE_ADMIN_PASSWORD_SHA256={hash_password('pw')}\n"
        )
        config = LedgerConfig.from_env(clean_env)
        assert config.admin_credentials.matches("root", "pw")

    def test_bad_integer(self, clean_env, monkeypatch):
        monkeypatch.setenv("ELITE_PRICE_SEED", "seven")
        with pytest.raises(ValueError, match="ELITE_PRICE_SEED"):
            LedgerConfig.from_env(clean_env)


class TestWiring:

    def test_local_only_ledger(self, tmp_path):
        ledger = build_ledger(LedgerConfig(cache_path=str(tmp_path / "cache.json"), price_seed=1))
        assert ledger.storage.remote is None
        user = ledger.register_user("Alice", "alice@example.com").user
        assert (tmp_path / "cache.json").exists()
        assert ledger.storage.get_user(user.id) == user

    def test_remote_store_configured(self):
        ledger = build_ledger(LedgerConfig(database_url="postgresql://u:p@localhost/elite"))
        assert isinstance(ledger.storage.remote, PostgresRemoteStore)

    def test_tick_interval_passed_to_catalog(self):
        ledger = build_ledger(LedgerConfig(price_tick_seconds=30))
        assert ledger.catalog.tick_interval.total_seconds() == 30

    def test_authenticator(self):
        config = LedgerConfig(admin_username="root", admin_password_sha256=hash_password("pw"))
        assert build_authenticator(config).login("root", "pw", []).is_admin
        with pytest.raises(AuthenticationFailed):
            build_authenticator(LedgerConfig()).login("root", "pw", [])
