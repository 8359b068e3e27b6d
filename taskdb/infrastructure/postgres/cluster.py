"""Database cluster: the set of long-lived store handles.

A `DatabaseCluster` owns one pool for the primary and one pool per replica.
It only manages their lifecycle and health; it makes no routing decisions.
Routing lives in `taskdb.routing.ReplicaRouter`, which is built from a
cluster and shares its pools.

Replica identity is positional and stable for the life of the process:
``replicas[0]`` is always ``replica1``. A replica that is down at boot is
kept in place (its pool opens lazily on first use) rather than removed, so
direct replica reads keep addressing the same server.

Usage
-----
>>> async with DatabaseCluster.from_config(config) as cluster:
...     router = ReplicaRouter.from_cluster(cluster)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Self

from ...logger import get_logger
from .health import ClusterHealthResult
from .pool import AsyncConnectionPool

if TYPE_CHECKING:
    import types

    from .config import DatabaseClusterConfig

logger = get_logger(__name__)


def replica_label(index: int) -> str:
    """Human-facing name of the replica at zero-based ``index``."""
    return f"replica{index + 1}"


class DatabaseCluster:
    """Holds the primary pool and the ordered replica pools.

    Attributes
    ----------
    primary : AsyncConnectionPool
        The primary (read-write) connection pool.
    replicas : tuple[AsyncConnectionPool, ...]
        Replica (read-only) pools in configuration order.
    """

    __slots__ = ("_primary", "_replicas")

    def __init__(
        self,
        primary: AsyncConnectionPool,
        replicas: list[AsyncConnectionPool] | tuple[AsyncConnectionPool, ...] | None = None,
    ) -> None:
        self._primary = primary
        self._replicas = tuple(replicas or ())

    async def __aenter__(self) -> Self:
        await self.ainitialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        if exc_type is not None and exc_val is not None:
            logger.error(
                "DatabaseCluster exiting with exception",
                exc_type=exc_type.__name__,
                exc_val=str(exc_val),
            )
        await self.aclose()

    @classmethod
    def from_config(cls, config: DatabaseClusterConfig) -> Self:
        """Create cluster from a cluster configuration (pools not yet opened)."""
        primary = AsyncConnectionPool(config.primary, name="primary")
        replicas = [AsyncConnectionPool(cfg, name=replica_label(i)) for i, cfg in enumerate(config.replicas)]
        return cls(primary, replicas)

    async def ainitialize(self) -> None:
        """Open all pools in the cluster.

        Raises
        ------
        Exception
            If the primary pool fails to open. Replica failures are logged
            and retried lazily on first use.
        """
        await self._primary.ainitialize()
        logger.info("Primary pool initialized")

        results = await asyncio.gather(*(replica.ainitialize() for replica in self._replicas), return_exceptions=True)
        for replica, result in zip(self._replicas, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Replica pool failed to initialize", replica=replica.name, error=str(result))
            else:
                logger.info("Replica pool initialized", replica=replica.name)

        logger.info(
            "Database cluster initialized",
            replica_count=len(self._replicas),
            replicas_connected=sum(1 for replica in self._replicas if replica.is_initialized),
        )

    async def aclose(self) -> None:
        """Close all pools in the cluster."""
        await self._primary.aclose()

        results = await asyncio.gather(*(replica.aclose() for replica in self._replicas), return_exceptions=True)
        for replica, result in zip(self._replicas, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Replica pool failed to close", replica=replica.name, error=str(result))

        logger.info("Database cluster closed")

    async def ahealth_check(self) -> ClusterHealthResult:
        """Check health of all pools in the cluster."""
        primary_health = await self._primary.ahealth_check()
        replica_health = await asyncio.gather(*(replica.ahealth_check() for replica in self._replicas))
        return ClusterHealthResult.aggregate(primary_health, tuple(replica_health))

    @property
    def primary(self) -> AsyncConnectionPool:
        return self._primary

    @property
    def replicas(self) -> tuple[AsyncConnectionPool, ...]:
        return self._replicas

    @property
    def replica_count(self) -> int:
        return len(self._replicas)
