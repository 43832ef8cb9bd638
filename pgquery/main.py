from __future__ import annotations

import asyncio
import sys
from typing import Awaitable, Callable, Optional, TypeVar

import typer

from pgquery.config import get_settings
from pgquery.domain.errors import QueryCoreError
from pgquery.domain.models import QueryResult, TransactionMode
from pgquery.reporter import (
    print_error,
    print_resources,
    print_result,
    query_payload,
    to_json,
)
from pgquery.service import LIST_DATABASES_SQL, LIST_TABLES_SQL, Core, build_core
from pgquery.utils.logging import configure_logging

app = typer.Typer(help="Run transactional queries against one or more Postgres databases.")

T = TypeVar("T")

_DATABASE_HELP = "Target database (defaults to DB_NAME)."


def _run(work: Callable[[Core], Awaitable[T]], startup: bool = False) -> T:
    """
    Build the core, run ``work`` and always close every pool afterwards.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    async def _main() -> T:
        core = build_core(settings)
        async with core.lifecycle:
            if startup:
                await core.lifecycle.startup(wait=True)
            return await work(core)

    try:
        return asyncio.run(_main())
    except QueryCoreError as exc:
        print_error(exc)
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        typer.echo(f"Invalid input: {exc}", err=True)
        raise typer.Exit(code=2) from exc


def _emit(result: QueryResult, sql_text: str, as_json: bool, title: str) -> None:
    if as_json:
        typer.echo(to_json(query_payload(result, sql_text)))
    else:
        print_result(result, title=title)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}:***@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"schema={settings.db_schema_name} "
        f"pool=({settings.db_pool_min_size},{settings.db_pool_max_size}) "
        f"lease_timeout={settings.db_lease_timeout_seconds}s "
        f"statement_timeout={settings.db_statement_timeout_ms}ms"
    )


@app.command()
def check() -> None:
    """
    Wait until the default database accepts connections.
    """
    settings = get_settings()

    async def work(core: Core) -> None:
        return None

    _run(work, startup=True)
    typer.echo(f"Database '{settings.db_name}' is reachable.")


@app.command()
def databases(
    database: Optional[str] = typer.Option(None, "--database", "-d", help=_DATABASE_HELP),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON payload."),
) -> None:
    """
    List all non-template databases.
    """
    result = _run(lambda core: core.service.list_databases(database))
    _emit(result, LIST_DATABASES_SQL, as_json, title="Databases")


@app.command()
def tables(
    database: Optional[str] = typer.Option(None, "--database", "-d", help=_DATABASE_HELP),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON payload."),
) -> None:
    """
    List all tables in the configured schema.
    """
    result = _run(lambda core: core.service.list_tables(database))
    _emit(result, LIST_TABLES_SQL, as_json, title="Tables")


@app.command()
def resources(
    list_tables: bool = typer.Option(False, "--tables", help="List table resources instead."),
    database: Optional[str] = typer.Option(None, "--database", "-d", help=_DATABASE_HELP),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON payload."),
) -> None:
    """
    List databases (or tables) as resources labelled with their locators.
    """
    if list_tables:
        found = _run(lambda core: core.service.table_resources(database))
    else:
        found = _run(lambda core: core.service.database_resources())
    if as_json:
        typer.echo(to_json([resource.model_dump() for resource in found]))
    else:
        print_resources(found)


@app.command()
def query(
    sql_text: str = typer.Argument(..., metavar="SQL", help="Read-only SQL to execute."),
    database: Optional[str] = typer.Option(None, "--database", "-d", help=_DATABASE_HELP),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON payload."),
) -> None:
    """
    Execute a query inside a read-only transaction.
    """
    result = _run(lambda core: core.service.query(database, sql_text, TransactionMode.READ_ONLY))
    _emit(result, sql_text, as_json, title="Query Result")


@app.command()
def write(
    sql_text: str = typer.Argument(..., metavar="SQL", help="SQL that modifies data."),
    database: Optional[str] = typer.Option(None, "--database", "-d", help=_DATABASE_HELP),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON payload."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """
    Execute a statement inside a read-write transaction.
    """
    if not yes:
        target = database or get_settings().db_name
        typer.confirm(f"Execute write query against '{target}'?\n  {sql_text}\n", abort=True)
    result = _run(lambda core: core.service.query(database, sql_text, TransactionMode.READ_WRITE))
    _emit(result, sql_text, as_json, title="Write Result")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
