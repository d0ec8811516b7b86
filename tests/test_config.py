"""
Tests for environment-driven configuration.
"""

from datetime import timedelta

import pytest

from src.cache.config import CacheConfig, CacheTTL
from src.database.session import create_db_engine, get_database_url
from src.utils.config import Settings


class TestSettings:
    """Test application settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SELLERSPRITE_API_KEY", raising=False)
        settings = Settings(_env_file=None)

        assert settings.SELLERSPRITE_API_KEY is None
        assert settings.SELLERSPRITE_BASE_URL == "https://api.sellersprite.com"
        assert settings.SELLERSPRITE_MARKETPLACE == "US"
        assert settings.API_TIMEOUT == 45
        assert settings.PRODUCT_DELAY_SECONDS == 0.5
        assert settings.ENHANCEMENT_ITEM_DELAY_SECONDS == 1.0
        assert settings.ENHANCEMENT_BATCH_DELAY_SECONDS == 2.0

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SELLERSPRITE_API_KEY", "live-key")
        monkeypatch.setenv("sellersprite_marketplace", "DE")
        monkeypatch.setenv("PRODUCT_DELAY_SECONDS", "0")

        settings = Settings(_env_file=None)

        assert settings.SELLERSPRITE_API_KEY == "live-key"
        assert settings.SELLERSPRITE_MARKETPLACE == "DE"
        assert settings.PRODUCT_DELAY_SECONDS == 0.0


class TestDatabaseUrl:
    """Test database URL resolution."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in ("DATABASE_URL", "POSTGRES_URL", "SQLITE_PATH"):
            monkeypatch.delenv(name, raising=False)

    def test_postgres_scheme_rewritten(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db/research")
        assert get_database_url() == "postgresql://u:p@db/research"

    def test_postgres_url_fallback(self, monkeypatch):
        monkeypatch.setenv("POSTGRES_URL", "postgresql://u:p@db/other")
        assert get_database_url() == "postgresql://u:p@db/other"

    def test_sqlite_fallback(self, monkeypatch):
        monkeypatch.setenv("SQLITE_PATH", "/tmp/kw.db")
        assert get_database_url() == "sqlite:////tmp/kw.db"

    def test_sqlite_enables_foreign_keys(self):
        engine = create_db_engine("sqlite://")
        with engine.connect() as conn:
            assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1


class TestCacheConfig:
    """Test cache configuration and TTLs."""

    def test_defaults(self, monkeypatch):
        for name in ("REDIS_URL", "CACHE_ENABLED", "CACHE_NAMESPACE"):
            monkeypatch.delenv(name, raising=False)
        config = CacheConfig()

        assert config.redis_url == "redis://localhost:6379/0"
        assert config.namespace == "kw_research"
        assert config.enabled is True

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CACHE_ENABLED", "false")
        monkeypatch.setenv("CACHE_NAMESPACE", "staging")
        monkeypatch.setenv("CACHE_COMPRESSION_THRESHOLD", "2048")

        config = CacheConfig()

        assert config.enabled is False
        assert config.namespace == "staging"
        assert config.compression_threshold == 2048

    def test_component_ttls(self):
        assert CacheTTL.for_component("result") == timedelta(minutes=30)
        assert CacheTTL.for_component("gaps") == timedelta(minutes=60)
        assert CacheTTL.for_component("sessions") == timedelta(minutes=5)
        assert CacheTTL.for_component("unknown") == timedelta(minutes=30)
