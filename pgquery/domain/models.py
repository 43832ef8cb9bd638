"""
Domain models for pgquery.

Defines the immutable connection parameters, the transaction mode enum and the
normalized query result shared by the executor, the service and the CLI.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Tuple

from psycopg.conninfo import make_conninfo
from pydantic import BaseModel, Field, field_validator


class TransactionMode(str, Enum):
    """How a statement's transaction is opened."""

    READ_ONLY = "read_only"
    READ_WRITE = "read_write"

    @property
    def begin_statement(self) -> str:
        if self is TransactionMode.READ_ONLY:
            return "BEGIN TRANSACTION READ ONLY"
        return "BEGIN"


class ConnectionConfig(BaseModel):
    """
    Connection parameters supplied once at startup.

    The target database is not part of a connection string until a pool is
    created for it; ``default_database`` is only the fallback name.
    """

    host: str = Field(..., description="Postgres host name or address.")
    port: int = Field(5432, gt=0, lt=65536, description="Postgres port.")
    user: str = Field(..., description="Login role.")
    password: str = Field("", repr=False, description="Login password.")
    default_database: str = Field(..., description="Database used when none is given.")
    schema_name: str = Field("public", description="Schema used for table listings.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }

    @field_validator("host", "user", "default_database", "schema_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value

    def conninfo(self, database: str) -> str:
        """Render a libpq connection string bound to ``database``."""
        return make_conninfo(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            dbname=database,
        )


class QueryResult(BaseModel):
    """
    Normalized output of one transactional execution.
    """

    rows: Tuple[Dict[str, Any], ...] = Field(default=(), description="Rows in engine order.")
    row_count: int = Field(0, ge=0, description="Rows returned or affected.")

    model_config = {
        "frozen": True,
    }

    @property
    def columns(self) -> Tuple[str, ...]:
        if not self.rows:
            return ()
        return tuple(self.rows[0].keys())


__all__ = ["ConnectionConfig", "QueryResult", "TransactionMode"]
