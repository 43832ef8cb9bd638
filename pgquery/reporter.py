from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pgquery.domain.errors import QueryCoreError
from pgquery.domain.models import QueryResult
from pgquery.service import Resource


def query_payload(result: QueryResult, executed_query: str) -> Dict[str, Any]:
    """
    Shape a result the way protocol clients receive it.
    """
    return {
        "queryResult": [dict(row) for row in result.rows],
        "executedQuery": executed_query,
        "rowCount": result.row_count,
    }


def to_json(payload: Any) -> str:
    """Serialize a payload; Decimal, datetime and UUID values become strings."""
    return json.dumps(payload, indent=2, default=str)


def _cell(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, (dict, list)):
        return escape(json.dumps(value, default=str))
    return escape(str(value))


def print_result(
    result: QueryResult,
    title: str = "Query Result",
    console: Optional[Console] = None,
) -> None:
    """
    Render a query result as a rich table.

    Statements that return no rows (e.g. UPDATE) print the affected row count.
    """
    console = console or Console()

    if not result.rows:
        console.print(f"[yellow]No rows returned.[/yellow] Row count: {result.row_count}")
        return

    table = Table(
        title=title,
        box=box.ROUNDED,
        caption=f"{result.row_count} row(s)",
    )
    for column in result.columns:
        table.add_column(escape(column), style="cyan", overflow="fold")
    for row in result.rows:
        table.add_row(*(_cell(row.get(column)) for column in result.columns))

    console.print(table)


def print_resources(resources: Iterable[Resource], console: Optional[Console] = None) -> None:
    """Render resource listings (locator + name)."""
    console = console or Console()
    table = Table(title="Resources", box=box.ROUNDED)
    table.add_column("URI", style="green", no_wrap=True)
    table.add_column("Name", style="magenta")
    count = 0
    for resource in resources:
        table.add_row(escape(resource.uri), escape(resource.name))
        count += 1
    if not count:
        console.print("[yellow]No resources found.[/yellow]")
        return
    console.print(table)


def print_error(error: QueryCoreError, console: Optional[Console] = None) -> None:
    """Render a tagged failure on stderr."""
    console = console or Console(stderr=True)
    hint = " (retryable)" if error.retryable else ""
    console.print(f"[bold red]{error.tag}[/bold red]{hint}: {escape(error.message)}")


__all__ = ["print_error", "print_resources", "print_result", "query_payload", "to_json"]
