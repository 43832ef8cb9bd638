"""
Lifecycle management for the pool registry.

Opens the default pool at startup and closes every pool at shutdown, giving
in-flight leases a bounded grace period to come back first. After shutdown the
registry refuses to create pools.
"""

from __future__ import annotations

import asyncio
import time
from types import TracebackType
from typing import List, Optional, Type

from psycopg_pool import AsyncConnectionPool

from pgquery.infrastructure.db_factory import wait_for_database
from pgquery.infrastructure.executor import leased_count
from pgquery.infrastructure.registry import PoolRegistry
from pgquery.utils.logging import get_logger

log = get_logger(__name__)

_DRAIN_POLL_SECONDS = 0.05


class LifecycleManager:
    """
    Starts and stops the registry's pools.

    Usage:
        async with LifecycleManager(registry) as lifecycle:
            ...
    """

    def __init__(
        self,
        registry: PoolRegistry,
        shutdown_grace_seconds: float = 5.0,
        startup_attempts: int = 5,
        connect_timeout: int = 5,
    ) -> None:
        self._registry = registry
        self._grace = shutdown_grace_seconds
        self._startup_attempts = startup_attempts
        self._connect_timeout = connect_timeout
        self._shutdown_done = False

    @property
    def registry(self) -> PoolRegistry:
        return self._registry

    async def startup(self, wait: bool = True) -> AsyncConnectionPool:
        """
        Open the default database's pool.

        With ``wait`` the default database is probed with retries first, which
        covers engines that are still booting.
        """
        if wait:
            await wait_for_database(
                self._registry.config,
                attempts=self._startup_attempts,
                connect_timeout=self._connect_timeout,
            )
        pool = await self._registry.get_or_create_pool(None)
        log.info("Startup complete", extra={"database": self._registry.config.default_database})
        return pool

    async def shutdown(self) -> None:
        """
        Close every pool and the registry. A second call does nothing.
        """
        if self._shutdown_done:
            return
        self._shutdown_done = True
        pools = self._registry.detach_all()
        if not pools:
            log.info("Shutdown complete", extra={"pools": 0})
            return
        await asyncio.gather(*(self._close_pool(pool) for pool in pools))
        log.info("Shutdown complete", extra={"pools": len(pools)})

    async def _close_pool(self, pool: AsyncConnectionPool) -> None:
        await self._drain(pool)
        try:
            await pool.close(timeout=self._grace)
        except Exception as exc:  # noqa: BLE001 - keep closing the remaining pools
            log.warning("Pool close failed", extra={"pool": pool.name, "error": str(exc)})

    async def _drain(self, pool: AsyncConnectionPool) -> None:
        """Wait up to the grace period for leased connections to return."""
        deadline = time.monotonic() + self._grace
        while leased_count(pool) > 0:
            if time.monotonic() >= deadline:
                log.warning(
                    "Grace period elapsed with connections still leased",
                    extra={"pool": pool.name, "in_use": leased_count(pool)},
                )
                return
            await asyncio.sleep(_DRAIN_POLL_SECONDS)

    async def __aenter__(self) -> "LifecycleManager":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.shutdown()


__all__ = ["LifecycleManager"]
