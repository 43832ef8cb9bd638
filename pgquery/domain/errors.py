"""
Typed failures raised by the database access core.

Every error carries the tag the protocol layer reports, whether retrying makes
sense for the caller, and the database it concerns when known. The engine's
own exception is always chained as ``__cause__``.
"""
from __future__ import annotations

from typing import Any, ClassVar, Dict, Optional


class QueryCoreError(Exception):
    """Base class for failures surfaced by pgquery."""

    tag: ClassVar[str] = "QueryCoreError"
    retryable: ClassVar[bool] = False

    def __init__(self, message: str, *, database: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.database = database

    def to_payload(self) -> Dict[str, Any]:
        """Render the tagged failure for the protocol layer."""
        return {
            "error": self.tag,
            "message": self.message,
            "retryable": self.retryable,
            "database": self.database,
        }


class DatabaseConnectionError(QueryCoreError):
    """A connection could not be established or leased."""

    tag = "ConnectionError"
    retryable = True


class StatementError(QueryCoreError):
    """The engine rejected or failed the SQL (including BEGIN and COMMIT)."""

    tag = "StatementError"


class PoolExhausted(QueryCoreError):
    """No connection became available within the lease timeout."""

    tag = "PoolExhausted"
    retryable = True


class RegistryClosed(QueryCoreError):
    """The registry was shut down; no new pools or leases are handed out."""

    tag = "RegistryClosed"


__all__ = [
    "DatabaseConnectionError",
    "PoolExhausted",
    "QueryCoreError",
    "RegistryClosed",
    "StatementError",
]
