"""
Domain package for pgquery.

Exports the data definitions, the error taxonomy and the resource locator.
Keep this package free of I/O.
"""

from pgquery.domain.errors import (
    DatabaseConnectionError,
    PoolExhausted,
    QueryCoreError,
    RegistryClosed,
    StatementError,
)
from pgquery.domain.locator import LOCATOR_SCHEME, locate
from pgquery.domain.models import ConnectionConfig, QueryResult, TransactionMode

__all__ = [
    "ConnectionConfig",
    "DatabaseConnectionError",
    "LOCATOR_SCHEME",
    "PoolExhausted",
    "QueryCoreError",
    "QueryResult",
    "RegistryClosed",
    "StatementError",
    "TransactionMode",
    "locate",
]
