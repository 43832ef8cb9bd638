"""
Create the databases used by the integration tests.

Each database gets a ``marker`` table holding a single row with its own name,
so tests can tell which database actually served a query, and an empty
``scratch`` table for write tests.
"""

from __future__ import annotations

import sys
from typing import List, Optional

import psycopg
import typer
from psycopg import sql

from pgquery.config import get_settings

app = typer.Typer(help="Create and seed the integration test databases.")

TEST_DATABASES = ["pgquery_db1", "pgquery_db2"]


def _admin_conninfo(database: Optional[str] = None) -> str:
    config = get_settings().connection_config()
    return config.conninfo(database or config.default_database)


def _create_database(name: str) -> bool:
    """Create ``name`` unless it exists. Returns True when it was created."""
    # CREATE DATABASE cannot run inside a transaction block.
    with psycopg.connect(_admin_conninfo(), autocommit=True) as conn:
        exists = conn.execute("SELECT 1 FROM pg_database WHERE datname = %s", (name,)).fetchone()
        if exists:
            return False
        conn.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(name)))
    return True


def _seed_database(name: str) -> None:
    with psycopg.connect(_admin_conninfo(name)) as conn:
        conn.execute("CREATE TABLE IF NOT EXISTS marker (name text NOT NULL)")
        conn.execute("CREATE TABLE IF NOT EXISTS scratch (id serial PRIMARY KEY, note text)")
        conn.execute("TRUNCATE marker, scratch RESTART IDENTITY")
        conn.execute("INSERT INTO marker (name) VALUES (%s)", (name,))
        conn.commit()


def setup_databases(names: List[str]) -> None:
    for name in names:
        created = _create_database(name)
        _seed_database(name)
        typer.echo(f"{'Created' if created else 'Reset'} {name}")


@app.command()
def main(
    names: Optional[List[str]] = typer.Argument(None, help="Databases to create."),
) -> None:
    """
    Create (or reset) the integration test databases.
    """
    setup_databases(names or TEST_DATABASES)


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
