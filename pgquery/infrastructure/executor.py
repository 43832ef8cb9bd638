"""
Transactional executor: lease, BEGIN, statement, COMMIT or ROLLBACK, release.

The lease is a scoped resource. Whatever happens between lease and release
(statement error, commit error, rollback error, task cancellation) the
connection goes back to its pool exactly once before control returns to the
caller.
"""

from __future__ import annotations

import weakref
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Optional, Sequence, Union

import psycopg
from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool, PoolClosed, PoolTimeout, TooManyRequests

from pgquery.domain.errors import (
    DatabaseConnectionError,
    PoolExhausted,
    QueryCoreError,
    RegistryClosed,
    StatementError,
)
from pgquery.domain.models import QueryResult, TransactionMode
from pgquery.utils.logging import get_logger

log = get_logger(__name__)

Params = Optional[Union[Sequence[Any], dict]]

# Connections currently leased through lease(), per pool. The pool's own
# pool_size also counts connections still being opened in the background.
_leased: "weakref.WeakKeyDictionary[AsyncConnectionPool, int]" = weakref.WeakKeyDictionary()


class ExecutionState(str, Enum):
    IDLE = "idle"
    LEASED = "leased"
    BEGIN = "begin"
    EXECUTING = "executing"
    COMMITTING = "committing"
    ROLLING_BACK = "rolling_back"
    RELEASED = "released"


def leased_count(pool: AsyncConnectionPool) -> int:
    """Number of connections of ``pool`` currently out on a lease."""
    return _leased.get(pool, 0)


def _pool_database(pool: AsyncConnectionPool) -> str:
    # Pools are named "pgquery:<database>" by the factory.
    name = getattr(pool, "name", "") or ""
    return name.split(":", 1)[1] if ":" in name else name


@asynccontextmanager
async def lease(
    pool: AsyncConnectionPool, timeout: Optional[float] = None
) -> AsyncIterator[AsyncConnection]:
    """
    Lease one connection from ``pool`` and always hand it back.

    Raises
    ------
    PoolExhausted
        No connection within ``timeout`` seconds.
    RegistryClosed
        The pool was closed by shutdown.
    DatabaseConnectionError
        The pool could not produce a usable connection.
    """
    database = _pool_database(pool)
    try:
        conn = await pool.getconn(timeout=timeout)
    except (PoolTimeout, TooManyRequests) as exc:
        raise PoolExhausted(
            f"No connection available for '{database}' within {timeout or pool.timeout}s",
            database=database,
        ) from exc
    except PoolClosed as exc:
        raise RegistryClosed(f"Pool for '{database}' is closed", database=database) from exc
    except psycopg.OperationalError as exc:
        raise DatabaseConnectionError(
            f"Cannot lease a connection for '{database}': {exc}", database=database
        ) from exc
    _leased[pool] = _leased.get(pool, 0) + 1
    try:
        yield conn
    finally:
        try:
            await pool.putconn(conn)
        finally:
            _leased[pool] -= 1
        log.debug(
            f"[EXECUTOR] {ExecutionState.RELEASED.value}",
            extra={"database": database, "state": ExecutionState.RELEASED.value},
        )


class TransactionalExecutor:
    """
    Runs one statement inside an explicit transaction on a leased connection.

    READ_ONLY opens ``BEGIN TRANSACTION READ ONLY`` so the engine rejects
    mutations; READ_WRITE opens a plain ``BEGIN``. Both commit on success.
    """

    def __init__(self, lease_timeout: Optional[float] = None) -> None:
        self.lease_timeout = lease_timeout

    async def execute(
        self,
        pool: AsyncConnectionPool,
        sql_text: str,
        mode: TransactionMode,
        params: Params = None,
    ) -> QueryResult:
        if not sql_text or not sql_text.strip():
            raise ValueError("sql_text must not be empty")
        database = _pool_database(pool)
        self._transition(ExecutionState.IDLE, database, mode)

        async with lease(pool, self.lease_timeout) as conn:
            self._transition(ExecutionState.LEASED, database, mode)
            try:
                return await self._run(conn, sql_text, mode, params, database)
            except BaseException as exc:
                # Cancellation included: never hand back a connection mid-transaction.
                self._transition(ExecutionState.ROLLING_BACK, database, mode)
                await self._rollback(conn, database)
                if isinstance(exc, psycopg.Error):
                    raise self._translate(exc, conn, database) from exc
                raise

    async def _run(
        self,
        conn: AsyncConnection,
        sql_text: str,
        mode: TransactionMode,
        params: Params,
        database: str,
    ) -> QueryResult:
        self._transition(ExecutionState.BEGIN, database, mode)
        await conn.execute(mode.begin_statement)

        self._transition(ExecutionState.EXECUTING, database, mode)
        # Extended protocol: the server accepts exactly one statement, so the
        # caller cannot end or rewrite the transaction opened above.
        cur = await conn.execute(sql_text, params, prepare=True)
        rows = await cur.fetchall() if cur.description else []
        row_count = cur.rowcount if cur.rowcount is not None and cur.rowcount >= 0 else len(rows)

        self._transition(ExecutionState.COMMITTING, database, mode)
        await conn.execute("COMMIT")
        return QueryResult(rows=tuple(dict(row) for row in rows), row_count=row_count)

    @staticmethod
    async def _rollback(conn: AsyncConnection, database: str) -> None:
        try:
            await conn.execute("ROLLBACK")
        except Exception as exc:  # noqa: BLE001 - the original failure is the one surfaced
            log.warning(
                "Rollback failed",
                extra={"database": database, "error": str(exc)},
            )

    @staticmethod
    def _translate(exc: psycopg.Error, conn: AsyncConnection, database: str) -> QueryCoreError:
        if getattr(conn, "broken", False):
            return DatabaseConnectionError(
                f"Connection to '{database}' was lost: {exc}", database=database
            )
        return StatementError(str(exc).strip() or type(exc).__name__, database=database)

    @staticmethod
    def _transition(state: ExecutionState, database: str, mode: TransactionMode) -> None:
        log.debug(
            f"[EXECUTOR] {state.value}",
            extra={"database": database, "mode": mode.value, "state": state.value},
        )


__all__ = ["ExecutionState", "TransactionalExecutor", "lease", "leased_count"]
