"""
Pytest configuration for pgquery.

Provides fixtures for:
- Settings and connection config for unit tests
- Database availability checks for integration tests
- Creating the integration test databases
"""

from __future__ import annotations

import os

import psycopg
import pytest

from pgquery.config import Settings
from pgquery.domain.models import ConnectionConfig


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "postgres"),
        db_schema_name=os.getenv("DB_SCHEMA_NAME", "public"),
        db_pool_min_size=1,
        db_pool_max_size=2,
        db_lease_timeout_seconds=2.0,
        db_shutdown_grace_seconds=1.0,
        startup_attempts=1,
        log_level="DEBUG",
    )


@pytest.fixture
def config() -> ConnectionConfig:
    """Connection config for unit tests; never used to reach a server."""
    return ConnectionConfig(
        host="db.internal",
        port=5432,
        user="app",
        password="s3cret",
        default_database="main",
        schema_name="public",
    )


@pytest.fixture(scope="session")
def db_connection_available(test_settings: Settings) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    conninfo = test_settings.connection_config().conninfo(test_settings.db_name)
    try:
        with psycopg.connect(conninfo, connect_timeout=5) as conn:
            conn.execute("SELECT 1").fetchone()
        return True
    except Exception:
        return False


@pytest.fixture(scope="session")
def test_databases(db_connection_available: bool) -> list[str]:
    """
    Create (or reset) the integration databases and return their names.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    from scripts.setup_test_databases import TEST_DATABASES, setup_databases

    setup_databases(TEST_DATABASES)
    return list(TEST_DATABASES)
