from __future__ import annotations

import asyncio
import logging

import psycopg
import pytest
from psycopg import errors as pg_errors

from pgquery.domain.errors import (
    DatabaseConnectionError,
    PoolExhausted,
    RegistryClosed,
    StatementError,
)
from pgquery.domain.models import TransactionMode
from pgquery.infrastructure.executor import TransactionalExecutor, lease, leased_count
from tests.unit.fakes import FakePool

UPDATE_SQL = "UPDATE accounts SET active = false WHERE last_login < now() - interval '1 year'"
INSERT_SQL = "INSERT INTO accounts (email) VALUES ('a@example.com')"


def _available(pool: FakePool) -> int:
    return pool.get_stats()["pool_available"]


@pytest.mark.asyncio
async def test_read_only_success_commits_and_releases() -> None:
    pool = FakePool("sales", results={"SELECT 1 AS n": [{"n": 1}]})
    executor = TransactionalExecutor(lease_timeout=0.5)

    result = await executor.execute(pool, "SELECT 1 AS n", TransactionMode.READ_ONLY)

    assert result.rows == ({"n": 1},)
    assert result.row_count == 1
    (conn,) = pool.created
    assert conn.statements == ["BEGIN TRANSACTION READ ONLY", "SELECT 1 AS n", "COMMIT"]
    assert pool.leased == []
    assert pool.putconn_calls == 1


@pytest.mark.asyncio
async def test_read_write_uses_plain_begin_and_reports_affected_rows() -> None:
    pool = FakePool("sales", rowcounts={UPDATE_SQL: 7})
    executor = TransactionalExecutor()

    result = await executor.execute(pool, UPDATE_SQL, TransactionMode.READ_WRITE)

    assert result.rows == ()
    assert result.row_count == 7
    assert pool.created[0].statements == ["BEGIN", UPDATE_SQL, "COMMIT"]


@pytest.mark.asyncio
async def test_params_are_passed_to_the_statement() -> None:
    sql = "SELECT table_name FROM information_schema.tables WHERE table_schema = %s"
    pool = FakePool("sales", results={sql: [{"table_name": "orders"}]})
    executor = TransactionalExecutor()

    result = await executor.execute(pool, sql, TransactionMode.READ_ONLY, ("public",))

    assert result.rows == ({"table_name": "orders"},)
    conn = pool.created[0]
    assert conn.params[conn.statements.index(sql)] == ("public",)


@pytest.mark.asyncio
async def test_statement_error_rolls_back_and_releases() -> None:
    failure = pg_errors.UndefinedTable('relation "nope" does not exist')
    pool = FakePool("sales", fail_on={"SELECT * FROM nope": failure})
    executor = TransactionalExecutor()
    # Warm one idle connection so availability is observable before the call.
    await pool.putconn(await pool.getconn())
    before = _available(pool)

    with pytest.raises(StatementError, match="does not exist") as excinfo:
        await executor.execute(pool, "SELECT * FROM nope", TransactionMode.READ_ONLY)

    assert excinfo.value.__cause__ is failure
    assert excinfo.value.database == "sales"
    assert pool.created[0].statements[-1] == "ROLLBACK"
    assert "COMMIT" not in pool.created[0].statements
    assert _available(pool) == before
    assert pool.leased == []


@pytest.mark.asyncio
async def test_read_only_write_rejection_is_a_statement_error() -> None:
    failure = pg_errors.ReadOnlySqlTransaction("cannot execute INSERT in a read-only transaction")
    pool = FakePool("sales", fail_on={INSERT_SQL: failure})
    executor = TransactionalExecutor()

    with pytest.raises(StatementError, match="read-only transaction"):
        await executor.execute(pool, INSERT_SQL, TransactionMode.READ_ONLY)

    assert pool.created[0].statements == ["BEGIN TRANSACTION READ ONLY", INSERT_SQL, "ROLLBACK"]


@pytest.mark.asyncio
async def test_commit_failure_is_an_execution_failure() -> None:
    failure = pg_errors.SerializationFailure("could not serialize access")
    pool = FakePool("sales", rowcounts={UPDATE_SQL: 1}, fail_on={"COMMIT": failure})
    executor = TransactionalExecutor()

    with pytest.raises(StatementError, match="could not serialize"):
        await executor.execute(pool, UPDATE_SQL, TransactionMode.READ_WRITE)

    assert pool.created[0].statements == ["BEGIN", UPDATE_SQL, "COMMIT", "ROLLBACK"]
    assert pool.leased == []


@pytest.mark.asyncio
async def test_begin_failure_rolls_back() -> None:
    failure = psycopg.InternalError("cannot begin")
    pool = FakePool("sales", fail_on={"BEGIN": failure})

    with pytest.raises(StatementError, match="cannot begin"):
        await TransactionalExecutor().execute(pool, UPDATE_SQL, TransactionMode.READ_WRITE)

    assert pool.created[0].statements == ["BEGIN", "ROLLBACK"]


@pytest.mark.asyncio
async def test_rollback_failure_does_not_mask_original_error(caplog) -> None:
    original = pg_errors.DivisionByZero("division by zero")
    pool = FakePool(
        "sales",
        fail_on={
            "SELECT 1/0": original,
            "ROLLBACK": psycopg.OperationalError("server closed the connection"),
        },
    )

    with caplog.at_level(logging.WARNING, logger="pgquery.infrastructure.executor"):
        with pytest.raises(StatementError, match="division by zero") as excinfo:
            await TransactionalExecutor().execute(pool, "SELECT 1/0", TransactionMode.READ_ONLY)

    assert excinfo.value.__cause__ is original
    assert any(record.getMessage() == "Rollback failed" for record in caplog.records)
    assert pool.leased == []
    assert pool.putconn_calls == 1


@pytest.mark.asyncio
async def test_broken_connection_is_a_connection_error() -> None:
    pool = FakePool(
        "sales",
        fail_on={"SELECT pg_sleep(10)": psycopg.OperationalError("server closed the connection")},
        break_on_failure=True,
    )

    with pytest.raises(DatabaseConnectionError, match="lost"):
        await TransactionalExecutor().execute(pool, "SELECT pg_sleep(10)", TransactionMode.READ_ONLY)

    assert pool.leased == []


@pytest.mark.asyncio
async def test_exhausted_pool_fails_without_running_anything() -> None:
    pool = FakePool("sales", max_size=1)
    held = await pool.getconn()

    with pytest.raises(PoolExhausted) as excinfo:
        await TransactionalExecutor(lease_timeout=0.01).execute(
            pool, "SELECT 1", TransactionMode.READ_ONLY
        )

    assert excinfo.value.retryable
    assert held.statements == []
    assert pool.putconn_calls == 0


@pytest.mark.asyncio
async def test_closed_pool_reports_registry_closed() -> None:
    pool = FakePool("sales")
    await pool.close()

    with pytest.raises(RegistryClosed):
        await TransactionalExecutor().execute(pool, "SELECT 1", TransactionMode.READ_ONLY)


@pytest.mark.asyncio
@pytest.mark.parametrize("sql", ["", "   \n"])
async def test_blank_sql_is_rejected_before_leasing(sql: str) -> None:
    pool = FakePool("sales")

    with pytest.raises(ValueError):
        await TransactionalExecutor().execute(pool, sql, TransactionMode.READ_ONLY)

    assert pool.created == []


@pytest.mark.asyncio
async def test_cancellation_rolls_back_and_releases() -> None:
    sql = "SELECT pg_sleep(60)"
    pool = FakePool("sales", block_on={sql})
    executor = TransactionalExecutor()

    task = asyncio.create_task(executor.execute(pool, sql, TransactionMode.READ_ONLY))
    while not pool.created:
        await asyncio.sleep(0)
    await pool.created[0].started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert pool.created[0].statements == ["BEGIN TRANSACTION READ ONLY", sql, "ROLLBACK"]
    assert pool.leased == []
    assert pool.putconn_calls == 1


@pytest.mark.asyncio
async def test_lease_releases_on_error_inside_block() -> None:
    pool = FakePool("sales")

    with pytest.raises(RuntimeError):
        async with lease(pool) as conn:
            assert pool.leased == [conn]
            raise RuntimeError("boom")

    assert pool.leased == []
    assert pool.idle == [conn]


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", list(TransactionMode))
async def test_only_the_caller_statement_is_prepared(mode: TransactionMode) -> None:
    pool = FakePool("sales", results={"SELECT 1 AS n": [{"n": 1}]})

    await TransactionalExecutor().execute(pool, "SELECT 1 AS n", mode)

    conn = pool.created[0]
    assert dict(zip(conn.statements, conn.prepared)) == {
        mode.begin_statement: False,
        "SELECT 1 AS n": True,
        "COMMIT": False,
    }


@pytest.mark.asyncio
async def test_multi_statement_rejection_rolls_back() -> None:
    sql = "COMMIT; INSERT INTO scratch (note) VALUES ('leaked')"
    failure = pg_errors.SyntaxError("cannot insert multiple commands into a prepared statement")
    pool = FakePool("sales", fail_on={sql: failure})

    with pytest.raises(StatementError, match="multiple commands"):
        await TransactionalExecutor().execute(pool, sql, TransactionMode.READ_ONLY)

    assert pool.created[0].statements == ["BEGIN TRANSACTION READ ONLY", sql, "ROLLBACK"]


@pytest.mark.asyncio
async def test_leased_count_tracks_open_leases() -> None:
    pool = FakePool("sales", max_size=3)

    async with lease(pool):
        async with lease(pool):
            assert leased_count(pool) == 2
        assert leased_count(pool) == 1

    assert leased_count(pool) == 0


@pytest.mark.asyncio
async def test_leased_count_returns_to_zero_after_failure() -> None:
    pool = FakePool("sales", fail_on={"SELECT 1/0": pg_errors.DivisionByZero("division by zero")})
    pool.opening = 1

    with pytest.raises(StatementError):
        await TransactionalExecutor().execute(pool, "SELECT 1/0", TransactionMode.READ_ONLY)

    assert leased_count(pool) == 0
    assert pool.get_stats()["pool_size"] - pool.get_stats()["pool_available"] == 1
