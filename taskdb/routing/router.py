"""Replica-aware routing of reads and writes.

Explicit routing
----------------
Callers pick the consistency they need at each call site:

- ``write``: always the primary.
- ``read``: one replica, chosen round-robin. May lag behind the primary;
  a result that misses a recent write is expected, not an error.
- ``read_from(index, ...)``: one named replica, for callers that want a
  specific replica's view (e.g. to show its lag to an operator).
- ``read_from_primary``: read-your-writes consistency.

Failures are never retried, on the same store or another one. A failed
replica read is surfaced to the caller, who may fall back to
``read_from_primary`` or fail the request.

Usage
-----
>>> router = ReplicaRouter.from_cluster(cluster)
>>> await router.write(Query.one("INSERT INTO tasks (title) VALUES ($1) RETURNING *", "a"))
>>> await router.read_from_primary(Query.all("SELECT * FROM tasks"))
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Any, Self

from ..core.exceptions import InvalidReplicaError, StoreOperationError
from ..infrastructure.postgres.pool import STORE_ERRORS
from ..logger import get_logger
from .query import FetchMode, Query

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..infrastructure.postgres.cluster import DatabaseCluster
    from ..infrastructure.postgres.pool import AsyncConnectionPool

logger = get_logger(__name__)


class ReplicaRouter:
    """Routes `Query` objects to the primary or to replica pools.

    The router does not own the pools; closing them is the cluster's job.
    Its only state is the round-robin counter, an ``itertools.count`` whose
    ``next()`` is atomic, so concurrent tasks can share one router.
    """

    __slots__ = ("_counter", "_primary", "_replicas")

    def __init__(self, primary: AsyncConnectionPool, replicas: Sequence[AsyncConnectionPool] = ()) -> None:
        self._primary = primary
        self._replicas = tuple(replicas)
        self._counter = itertools.count()

    @classmethod
    def from_cluster(cls, cluster: DatabaseCluster) -> Self:
        return cls(cluster.primary, cluster.replicas)

    @property
    def replica_count(self) -> int:
        return len(self._replicas)

    @property
    def replica_names(self) -> tuple[str, ...]:
        return tuple(replica.name for replica in self._replicas)

    def replica_name(self, index: int) -> str:
        return self._replica_at(index).name

    async def write(self, query: Query) -> Any:
        """Run ``query`` on the primary. Never retried."""
        return await self._run(self._primary, query)

    async def read(self, query: Query) -> Any:
        """Run ``query`` on the next replica in round-robin order.

        Falls back to the primary when no replicas are configured.
        """
        return await self._run(self._next_replica(), query)

    async def read_from(self, index: int, query: Query) -> Any:
        """Run ``query`` on the replica at zero-based ``index``.

        Raises
        ------
        InvalidReplicaError
            If ``index`` is out of range. No store is contacted.
        """
        return await self._run(self._replica_at(index), query)

    async def read_from_primary(self, query: Query) -> Any:
        """Run a read on the primary, seeing every committed write."""
        return await self._run(self._primary, query)

    def _next_replica(self) -> AsyncConnectionPool:
        if not self._replicas:
            return self._primary
        return self._replicas[next(self._counter) % len(self._replicas)]

    def _replica_at(self, index: int) -> AsyncConnectionPool:
        if not 0 <= index < len(self._replicas):
            raise InvalidReplicaError(index, len(self._replicas))
        return self._replicas[index]

    async def _run(self, pool: AsyncConnectionPool, query: Query) -> Any:
        logger.debug("Routing query", target=pool.name, table=query.table, mode=query.mode)
        try:
            match query.mode:
                case FetchMode.EXECUTE:
                    return await pool.aexecute(query.sql, *query.args, timeout=query.timeout)
                case FetchMode.ALL:
                    return await pool.afetch(query.sql, *query.args, timeout=query.timeout)
                case FetchMode.ONE:
                    return await pool.afetchrow(query.sql, *query.args, timeout=query.timeout)
                case FetchMode.SCALAR:
                    return await pool.afetchval(query.sql, *query.args, timeout=query.timeout)
        except STORE_ERRORS as e:
            logger.warning("Store operation failed", target=pool.name, table=query.table, error=str(e))
            raise StoreOperationError(pool.name, query.table, e) from e
