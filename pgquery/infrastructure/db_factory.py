"""
Database connection factory utilities for pgquery.

Builds one ``AsyncConnectionPool`` per target database. The database name is
baked into the pool's conninfo at construction and never changes afterwards,
so every connection leased from a pool targets the same database.

Includes a readiness probe with retry logic (tenacity) used at startup only;
query-time connection failures are never retried here.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

import psycopg
from psycopg import AsyncConnection
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pgquery.domain.errors import DatabaseConnectionError
from pgquery.domain.models import ConnectionConfig
from pgquery.utils.logging import get_logger

log = get_logger(__name__)

PoolFactory = Callable[[ConnectionConfig, str], Awaitable[AsyncConnectionPool]]


async def apply_statement_timeout(conn: AsyncConnection, timeout_ms: int) -> None:
    """
    Set a session-level statement timeout. ``0`` leaves the server default.
    """
    if timeout_ms <= 0:
        return
    await conn.execute("SELECT set_config('statement_timeout', %s, false)", (str(timeout_ms),))


async def probe_connection(
    config: ConnectionConfig,
    database: str,
    connect_timeout: int = 5,
) -> None:
    """
    Open and close one connection to ``database``.

    Raises
    ------
    DatabaseConnectionError
        With the engine's message when the parameters are rejected or the host
        is unreachable.
    """
    try:
        conn = await AsyncConnection.connect(
            config.conninfo(database), connect_timeout=connect_timeout, autocommit=True
        )
    except psycopg.Error as exc:
        raise DatabaseConnectionError(
            f"Cannot connect to database '{database}': {exc}", database=database
        ) from exc
    await conn.close()


async def wait_for_database(
    config: ConnectionConfig,
    database: Optional[str] = None,
    attempts: int = 5,
    connect_timeout: int = 5,
) -> None:
    """
    Block until ``database`` (default database when omitted) accepts connections.

    Retries up to ``attempts`` times with exponential backoff. Meant for process
    startup, where the engine may still be booting.
    """
    target = database or config.default_database
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(DatabaseConnectionError),
        reraise=True,
    ):
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                log.info(
                    "Retrying database readiness probe",
                    extra={"database": target, "attempt": attempt.retry_state.attempt_number},
                )
            await probe_connection(config, target, connect_timeout=connect_timeout)


def pool_factory(
    min_size: int = 1,
    max_size: int = 10,
    lease_timeout: float = 10.0,
    connect_timeout: int = 5,
    statement_timeout_ms: int = 0,
) -> PoolFactory:
    """
    Return a coroutine function creating an open pool for one database.

    Parameters
    ----------
    min_size : int
        Minimum number of idle connections to keep.
    max_size : int
        Maximum total connections in the pool.
    lease_timeout : float
        Default seconds ``getconn`` waits before raising ``PoolTimeout``.
    connect_timeout : int
        Seconds allowed for the probe connection.
    statement_timeout_ms : int
        Session statement timeout applied to every new connection.
    """

    async def _configure(conn: AsyncConnection) -> None:
        await apply_statement_timeout(conn, statement_timeout_ms)

    async def _open(config: ConnectionConfig, database: str) -> AsyncConnectionPool:
        # Probe first so a bad database name fails fast with the engine's message
        # instead of a generic pool timeout.
        await probe_connection(config, database, connect_timeout=connect_timeout)
        pool = AsyncConnectionPool(
            conninfo=config.conninfo(database),
            min_size=min(min_size, max_size),
            max_size=max_size,
            timeout=lease_timeout,
            name=f"pgquery:{database}",
            kwargs={"autocommit": True, "row_factory": dict_row},
            configure=_configure,
            open=False,
        )
        try:
            await pool.open()
        except psycopg.Error as exc:
            await pool.close()
            raise DatabaseConnectionError(
                f"Cannot open pool for database '{database}': {exc}", database=database
            ) from exc
        log.info(
            "Pool opened",
            extra={"database": database, "min_size": pool.min_size, "max_size": pool.max_size},
        )
        return pool

    return _open


__all__ = [
    "PoolFactory",
    "apply_statement_timeout",
    "pool_factory",
    "probe_connection",
    "wait_for_database",
]
