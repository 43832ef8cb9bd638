"""
pgquery - transactional query core for PostgreSQL.

Serves queries against several databases of one Postgres server from a single
long-lived process:

- One connection pool per target database, created lazily and never re-targeted
- Explicit read-only / read-write transactions with guaranteed rollback
- Connections released on every exit path, including cancellation
- Canonical resource locators for database and table listings
- Orderly shutdown of every pool

Usage:
    from pgquery import TransactionMode, build_core

    core = build_core()
    async with core.lifecycle:
        result = await core.service.query("sales", "SELECT 1", TransactionMode.READ_ONLY)
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from pgquery.config import Settings, get_settings
from pgquery.domain import (
    ConnectionConfig,
    DatabaseConnectionError,
    PoolExhausted,
    QueryCoreError,
    QueryResult,
    RegistryClosed,
    StatementError,
    TransactionMode,
    locate,
)
from pgquery.infrastructure import LifecycleManager, PoolRegistry, TransactionalExecutor
from pgquery.service import Core, DatabaseService, Resource, build_core
from pgquery.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "ConnectionConfig",
    "QueryResult",
    "TransactionMode",
    "locate",
    # Errors
    "DatabaseConnectionError",
    "PoolExhausted",
    "QueryCoreError",
    "RegistryClosed",
    "StatementError",
    # Core
    "Core",
    "DatabaseService",
    "LifecycleManager",
    "PoolRegistry",
    "Resource",
    "TransactionalExecutor",
    "build_core",
    # Logging
    "configure_logging",
    "get_logger",
]
