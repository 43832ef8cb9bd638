"""
Infrastructure package for pgquery.

Centralizes database connectivity concerns: pool construction, the per-database
pool registry, the transactional executor and pool lifecycle. Keep this layer
focused on I/O and resource management.
"""

from pgquery.infrastructure.db_factory import (
    apply_statement_timeout,
    pool_factory,
    probe_connection,
    wait_for_database,
)
from pgquery.infrastructure.executor import ExecutionState, TransactionalExecutor, lease
from pgquery.infrastructure.lifecycle import LifecycleManager
from pgquery.infrastructure.registry import PoolRegistry

__all__ = [
    "ExecutionState",
    "LifecycleManager",
    "PoolRegistry",
    "TransactionalExecutor",
    "apply_statement_timeout",
    "lease",
    "pool_factory",
    "probe_connection",
    "wait_for_database",
]
