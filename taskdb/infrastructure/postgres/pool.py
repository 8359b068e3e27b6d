"""Async connection pool for PostgreSQL using asyncpg.

This module provides a single connection pool abstraction, one per store.
For primary/replica topology use `DatabaseCluster`, and for routed data
access use `taskdb.routing.ReplicaRouter`.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Literal, Self

import asyncpg
from asyncpg import Pool, Record

from ...core.exceptions import PoolNotInitializedError
from ...logger import get_logger
from .health import HealthCheckResult

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

    from asyncpg.pool import PoolConnectionProxy

    from .config import AsyncpgConfig

logger = get_logger(__name__)

type IsolationLevel = Literal["read_uncommitted", "read_committed", "repeatable_read", "serializable"]

# Failures of the store itself: driver errors, network errors and timeouts
STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError)


class AsyncConnectionPool:
    """Async connection pool for a single PostgreSQL database.

    The underlying asyncpg pool is created lazily: on `ainitialize()`, or on
    the first acquire if initialization has not happened yet (or failed
    earlier). This lets a pool object exist before its server is reachable,
    which the startup gate relies on while probing.

    Examples
    --------
    >>> async with AsyncConnectionPool(config, name="primary") as pool:
    ...     rows = await pool.afetch("SELECT * FROM tasks")
    ...     await pool.aexecute("INSERT INTO tasks (title) VALUES ($1)", "a")
    """

    __slots__ = ("_config", "_init_lock", "_name", "_pool")

    def __init__(self, config: AsyncpgConfig, name: str = "primary") -> None:
        self._config = config
        self._name = name
        self._pool: Pool[Record] | None = None
        self._init_lock = asyncio.Lock()

    async def __aenter__(self) -> Self:
        await self.ainitialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None and exc_val is not None:
            logger.error(
                "AsyncConnectionPool context manager exiting with exception",
                pool=self._name,
                exc_type=exc_type.__name__,
                exc_val=str(exc_val),
            )
        await self.aclose()

    @property
    def name(self) -> str:
        """Stable label of the store this pool connects to (e.g. ``replica1``)."""
        return self._name

    @property
    def config(self) -> AsyncpgConfig:
        return self._config

    @property
    def pool(self) -> Pool[Record]:
        """The underlying asyncpg pool.

        Raises
        ------
        PoolNotInitializedError
            If the pool has not been opened yet.
        """
        if self._pool is None:
            msg = f"Pool {self._name!r} not initialized. Call ainitialize() first."
            raise PoolNotInitializedError(msg)
        return self._pool

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    async def ainitialize(self) -> None:
        """Initialize the connection pool.

        This is idempotent - calling multiple times is safe. An asyncio lock
        ensures concurrent first uses do not create two pools and orphan one.

        Raises
        ------
        OSError, asyncpg.PostgresError
            If the server cannot be reached or rejects the connection. The
            pool stays uninitialized and a later call tries again.
        """
        async with self._init_lock:
            if self._pool is not None:
                return

            self._pool = await asyncpg.create_pool(**self._config.to_pool_params())

            logger.info("AsyncConnectionPool initialized", pool=self._name, **self._config.to_log_params())

    async def aclose(self) -> None:
        """Close the connection pool. Safe to call on an uninitialized pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("AsyncConnectionPool closed", pool=self._name)

    async def aping(self) -> None:
        """Run a minimal no-op query, opening the pool first if needed.

        Raises whatever the driver raises when the server is not ready.
        """
        await self.afetchval("SELECT 1")

    async def ahealth_check(self) -> HealthCheckResult:
        """Check pool health by executing a simple query.

        Returns
        -------
        HealthCheckResult
            Health status with latency and pool statistics.
        """
        if self._pool is None:
            return HealthCheckResult.initializing(name=self._name, pool_max_size=self._config.pool.max_size)

        try:
            started = time.perf_counter()
            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            latency_s = time.perf_counter() - started
        except STORE_ERRORS as e:
            return HealthCheckResult.unhealthy(
                name=self._name,
                pool_max_size=self._config.pool.max_size,
                error=str(e),
            )

        return HealthCheckResult.healthy(
            name=self._name,
            pool_size=self._pool.get_size(),
            pool_max_size=self._pool.get_max_size(),
            latency_s=latency_s,
            pool_idle_size=self._pool.get_idle_size(),
        )

    @asynccontextmanager
    async def aacquire(self) -> AsyncIterator[PoolConnectionProxy[Record]]:
        """Acquire a connection from the pool.

        Yields
        ------
        PoolConnectionProxy[Record]
            A connection proxy that is returned to the pool on exit.
        """
        if self._pool is None:
            await self.ainitialize()
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def atransaction(
        self,
        isolation: IsolationLevel = "read_committed",
        *,
        readonly: bool = False,
    ) -> AsyncIterator[PoolConnectionProxy[Record]]:
        """Acquire a connection and start a transaction.

        Parameters
        ----------
        isolation
            Transaction isolation level.
        readonly
            If True, the transaction is read-only.

        Yields
        ------
        PoolConnectionProxy[Record]
            A connection within a transaction context.
        """
        async with self.aacquire() as conn, conn.transaction(isolation=isolation, readonly=readonly):
            yield conn

    async def aexecute(self, query: str, *args: object, timeout: float | None = None) -> str:
        """Execute a query without returning results.

        Returns
        -------
        str
            Command status string (e.g., "INSERT 0 1").
        """
        async with self.aacquire() as conn:
            return await conn.execute(query, *args, timeout=timeout)

    async def afetch(self, query: str, *args: object, timeout: float | None = None) -> list[Record]:
        """Execute a query and return all rows."""
        async with self.aacquire() as conn:
            return await conn.fetch(query, *args, timeout=timeout)

    async def afetchrow(self, query: str, *args: object, timeout: float | None = None) -> Record | None:
        """Execute a query and return the first row, or None."""
        async with self.aacquire() as conn:
            return await conn.fetchrow(query, *args, timeout=timeout)

    async def afetchval(self, query: str, *args: object, timeout: float | None = None) -> Any:
        """Execute a query and return the first value of the first row."""
        async with self.aacquire() as conn:
            return await conn.fetchval(query, *args, timeout=timeout)
