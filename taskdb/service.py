"""Process-lifetime context wiring the startup gate, cluster and router.

Everything is constructed explicitly at boot and passed by reference; there
are no module-level connection singletons.

Usage
-----
>>> async with TaskService(get_settings()) as service:
...     task = await service.tasks.create(TaskCreate(title="a"))
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Self

from .core.exceptions import ServiceNotReadyError, StartupError
from .infrastructure.postgres.cluster import DatabaseCluster
from .infrastructure.postgres.pool import STORE_ERRORS
from .logger import get_logger
from .routing.router import ReplicaRouter
from .startup.gate import StartupGate
from .tasks.repository import TaskRepository

if TYPE_CHECKING:
    import types

    from .infrastructure.postgres.health import ClusterHealthResult
    from .settings import Settings
    from .startup.gate import StartupReport

logger = get_logger(__name__)


class TaskService:
    """Owns the long-lived store handles and hands out the router.

    `astart` runs the startup gate first; the router is only reachable once
    the gate has passed and the cluster pools are open.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        gate: StartupGate | None = None,
        cluster: DatabaseCluster | None = None,
    ) -> None:
        cluster_config = settings.to_cluster_config()
        self._settings = settings
        self._gate = gate or StartupGate(
            cluster_config.primary,
            settings.to_readiness_config(),
            settings.migration_source(),
        )
        self._cluster = cluster or DatabaseCluster.from_config(cluster_config)
        self._router: ReplicaRouter | None = None
        self._tasks: TaskRepository | None = None

    async def __aenter__(self) -> Self:
        await self.astart()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.astop()

    @property
    def is_ready(self) -> bool:
        return self._router is not None

    @property
    def router(self) -> ReplicaRouter:
        if self._router is None:
            raise ServiceNotReadyError("TaskService not started. Call astart() first.")
        return self._router

    @property
    def tasks(self) -> TaskRepository:
        if self._tasks is None:
            raise ServiceNotReadyError("TaskService not started. Call astart() first.")
        return self._tasks

    async def astart(self) -> StartupReport:
        """Run the startup gate, then open the cluster and expose the router.

        Raises
        ------
        StartupError
            If the gate fails (the cluster is then never opened) or the
            primary pool cannot be opened afterwards.
        """
        report = await self._gate.arun()
        try:
            await self._cluster.ainitialize()
        except STORE_ERRORS as e:
            await self._cluster.aclose()
            raise StartupError(f"Primary pool failed to open: {e}") from e
        self._router = ReplicaRouter.from_cluster(self._cluster)
        self._tasks = TaskRepository(self._router)
        logger.info(
            "Service ready",
            port=self._settings.port,
            replicas=list(self._router.replica_names),
        )
        return report

    async def astop(self) -> None:
        self._router = None
        self._tasks = None
        await self._cluster.aclose()
        logger.info("Service stopped")

    async def ahealth(self) -> ClusterHealthResult:
        return await self._cluster.ahealth_check()
