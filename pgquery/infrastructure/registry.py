"""
Pool registry: one connection pool per target database.

Pools are created lazily on first reference to a database name and are bound
to that name for their whole life. Creation is serialized per name, so tasks
racing on an unseen name share a single pool instead of each opening one.

The registry lives on one event loop, like the pools it owns.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from psycopg_pool import AsyncConnectionPool

from pgquery.domain.errors import RegistryClosed
from pgquery.domain.models import ConnectionConfig
from pgquery.infrastructure.db_factory import PoolFactory, pool_factory
from pgquery.infrastructure.executor import leased_count
from pgquery.utils.logging import get_logger

log = get_logger(__name__)


class PoolRegistry:
    """
    Owner of every pool in the process, keyed by database name.

    Names are case-sensitive. An empty or missing name resolves to the
    configured default database.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        factory: Optional[PoolFactory] = None,
    ) -> None:
        self._config = config
        self._factory = factory or pool_factory()
        self._pools: Dict[str, AsyncConnectionPool] = {}
        # Creation locks exist only while some task is creating or awaiting a pool.
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._closed = False

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def closed(self) -> bool:
        return self._closed

    def resolve(self, database_name: Optional[str]) -> str:
        """Return ``database_name`` or the default database when it is blank."""
        if database_name is None or not database_name.strip():
            return self._config.default_database
        return database_name

    async def get_or_create_pool(self, database_name: Optional[str] = None) -> AsyncConnectionPool:
        """
        Return the pool bound to ``database_name``, creating it on first use.

        Raises
        ------
        RegistryClosed
            After shutdown.
        DatabaseConnectionError
            When the engine rejects the connection parameters. Nothing is
            cached, so the next call tries again.
        """
        name = self.resolve(database_name)
        self._ensure_open(name)

        pool = self._pools.get(name)
        if pool is not None and not pool.closed:
            return pool

        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        self._lock_users[name] = self._lock_users.get(name, 0) + 1
        try:
            async with lock:
                return await self._create(name)
        finally:
            self._release_lock(name)

    async def _create(self, name: str) -> AsyncConnectionPool:
        # Re-check: shutdown or another task may have finished while we waited.
        self._ensure_open(name)
        pool = self._pools.get(name)
        if pool is not None:
            if not pool.closed:
                return pool
            log.warning("Dropping closed pool", extra={"database": name})
            del self._pools[name]

        log.debug("Creating pool", extra={"database": name})
        pool = await self._factory(self._config, name)
        if self._closed:
            # Shutdown ran while the pool was opening; don't leak it.
            await pool.close()
            raise RegistryClosed(
                f"Registry closed while opening pool for '{name}'", database=name
            )
        self._pools[name] = pool
        return pool

    def _release_lock(self, name: str) -> None:
        users = self._lock_users.get(name, 1) - 1
        if users > 0:
            self._lock_users[name] = users
            return
        self._lock_users.pop(name, None)
        self._locks.pop(name, None)

    def get(self, database_name: Optional[str] = None) -> Optional[AsyncConnectionPool]:
        """Return the existing pool for ``database_name`` without creating one."""
        return self._pools.get(self.resolve(database_name))

    def names(self) -> List[str]:
        return sorted(self._pools)

    def detach_all(self) -> List[AsyncConnectionPool]:
        """
        Close the registry and hand every pool over to the caller.

        Only the lifecycle manager should call this; it becomes responsible for
        closing the returned pools.
        """
        self._closed = True
        pools = list(self._pools.values())
        self._pools.clear()
        return pools

    def stats(self) -> Dict[str, Dict[str, Any]]:
        """Per-database pool occupancy for monitoring."""
        snapshot: Dict[str, Dict[str, Any]] = {}
        for name, pool in self._pools.items():
            raw = pool.get_stats()
            snapshot[name] = {
                "pool_size": raw.get("pool_size", 0),
                "pool_available": raw.get("pool_available", 0),
                "requests_waiting": raw.get("requests_waiting", 0),
                "in_use": leased_count(pool),
            }
        return snapshot

    def _ensure_open(self, name: str) -> None:
        if self._closed:
            raise RegistryClosed(f"Registry is closed; cannot serve '{name}'", database=name)

    def __contains__(self, database_name: object) -> bool:
        return database_name in self._pools

    def __len__(self) -> int:
        return len(self._pools)


__all__ = ["PoolRegistry"]
