"""
Query service: the single entry point the protocol layer talks to.

Usage:
    from pgquery.service import build_core

    core = build_core()
    async with core.lifecycle:
        result = await core.service.query("sales", "SELECT 1", TransactionMode.READ_ONLY)

Besides free-form queries it offers the listing operations (databases, tables)
and their resource views, each labelled with a canonical locator.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field

from pgquery.config import Settings, get_settings
from pgquery.domain.errors import QueryCoreError
from pgquery.domain.locator import locate
from pgquery.domain.models import ConnectionConfig, QueryResult, TransactionMode
from pgquery.infrastructure.db_factory import pool_factory
from pgquery.infrastructure.executor import Params, TransactionalExecutor
from pgquery.infrastructure.lifecycle import LifecycleManager
from pgquery.infrastructure.registry import PoolRegistry
from pgquery.utils.logging import get_logger

log = get_logger(__name__)

LIST_DATABASES_SQL = "SELECT datname FROM pg_database WHERE datistemplate = false"
LIST_TABLES_SQL = "SELECT table_name FROM information_schema.tables WHERE table_schema = %s"


class Resource(BaseModel):
    """A listing entry exposed as a readable resource."""

    uri: str = Field(..., description="Canonical locator of the object.")
    name: str
    description: str
    mime_type: str = "application/json"
    text: str

    model_config = {"frozen": True}


class DatabaseService:
    """
    Routes each call to the pool of its target database and executes it.
    """

    def __init__(
        self,
        registry: PoolRegistry,
        executor: TransactionalExecutor,
    ) -> None:
        self._registry = registry
        self._executor = executor

    @property
    def config(self) -> ConnectionConfig:
        return self._registry.config

    async def query(
        self,
        target_database: Optional[str],
        sql_text: str,
        mode: TransactionMode,
        params: Params = None,
    ) -> QueryResult:
        """
        Execute ``sql_text`` against ``target_database`` (default database when absent).

        Raises
        ------
        ValueError
            When ``sql_text`` is blank.
        QueryCoreError
            ``DatabaseConnectionError``, ``StatementError``, ``PoolExhausted`` or
            ``RegistryClosed``.
        """
        if not sql_text or not sql_text.strip():
            raise ValueError("sql_text must not be empty")
        database = self._registry.resolve(target_database)
        mode = TransactionMode(mode)
        log.info(f"[QUERY START] {database}", extra={"database": database, "mode": mode.value})
        try:
            pool = await self._registry.get_or_create_pool(database)
            result = await self._executor.execute(pool, sql_text, mode, params)
        except QueryCoreError as exc:
            log.warning(
                f"[QUERY FAILED] {database}",
                extra={"database": database, "mode": mode.value, "error": exc.tag},
            )
            raise
        log.info(
            f"[QUERY SUCCESS] {database}",
            extra={"database": database, "mode": mode.value, "rows": result.row_count},
        )
        return result

    async def readonly_query(
        self, sql_text: str, target_database: Optional[str] = None
    ) -> QueryResult:
        return await self.query(target_database, sql_text, TransactionMode.READ_ONLY)

    async def write_query(
        self, sql_text: str, target_database: Optional[str] = None
    ) -> QueryResult:
        return await self.query(target_database, sql_text, TransactionMode.READ_WRITE)

    async def list_databases(self, target_database: Optional[str] = None) -> QueryResult:
        """Non-template databases visible from ``target_database``'s server."""
        return await self.query(target_database, LIST_DATABASES_SQL, TransactionMode.READ_ONLY)

    async def list_tables(self, target_database: Optional[str] = None) -> QueryResult:
        """Tables of the configured schema in ``target_database``."""
        return await self.query(
            target_database,
            LIST_TABLES_SQL,
            TransactionMode.READ_ONLY,
            (self.config.schema_name,),
        )

    async def database_resources(self) -> List[Resource]:
        result = await self.list_databases()
        default_db = self.config.default_database
        return [
            self._resource(
                uri=locate(default_db, self.config.schema_name, row["datname"]),
                label=row["datname"],
                row=row,
                query=LIST_DATABASES_SQL,
            )
            for row in result.rows
        ]

    async def table_resources(self, target_database: Optional[str] = None) -> List[Resource]:
        database = self._registry.resolve(target_database)
        result = await self.list_tables(database)
        return [
            self._resource(
                uri=locate(database, self.config.schema_name, row["table_name"]),
                label=row["table_name"],
                row=row,
                query=LIST_TABLES_SQL,
            )
            for row in result.rows
        ]

    @staticmethod
    def _resource(uri: str, label: str, row: dict, query: str) -> Resource:
        return Resource(
            uri=uri,
            name=f'"{label}" database schema',
            description=(
                f'This is the "{label}" database schema. This data is requested '
                f'from the database using the following query: "{query}"'
            ),
            text=json.dumps(row, indent=2, default=str),
        )


@dataclass(frozen=True)
class Core:
    """Wired components sharing one registry."""

    registry: PoolRegistry
    executor: TransactionalExecutor
    service: DatabaseService
    lifecycle: LifecycleManager


def build_core(settings: Optional[Settings] = None) -> Core:
    """Wire config, registry, executor, service and lifecycle from settings."""
    settings = settings or get_settings()
    registry = PoolRegistry(
        settings.connection_config(),
        factory=pool_factory(
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            lease_timeout=settings.db_lease_timeout_seconds,
            connect_timeout=settings.db_connect_timeout_seconds,
            statement_timeout_ms=settings.db_statement_timeout_ms,
        ),
    )
    executor = TransactionalExecutor(lease_timeout=settings.db_lease_timeout_seconds)
    return Core(
        registry=registry,
        executor=executor,
        service=DatabaseService(registry, executor),
        lifecycle=LifecycleManager(
            registry,
            shutdown_grace_seconds=settings.db_shutdown_grace_seconds,
            startup_attempts=settings.startup_attempts,
            connect_timeout=settings.db_connect_timeout_seconds,
        ),
    )


__all__ = [
    "Core",
    "DatabaseService",
    "LIST_DATABASES_SQL",
    "LIST_TABLES_SQL",
    "Resource",
    "build_core",
]
