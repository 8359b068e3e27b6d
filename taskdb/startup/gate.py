"""Startup gate: readiness probe, then migrations, then ready.

The gate runs once per process, before any data access is exposed. It
works on its own single-connection pool to the primary, separate from the
long-lived cluster pools, and always closes that pool before returning.
Every failure is fatal and propagates as a `StartupError`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import aclosing

from pydantic import BaseModel, ConfigDict

from ..infrastructure.postgres.config import AsyncpgConfig, DatabaseClusterConfig
from ..infrastructure.postgres.pool import AsyncConnectionPool
from ..logger import get_logger
from .migrations import MigrationReport, MigrationSource, PackageMigrationSource, apply_pending_migrations
from .readiness import ReadinessConfig, ReadinessResult, SleepFn, wait_until_ready

logger = get_logger(__name__)

type PoolFactory = Callable[[AsyncpgConfig, str], AsyncConnectionPool]


class StartupReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    readiness: ReadinessResult
    migrations: MigrationReport


class StartupGate:
    """Bring the primary store to the target schema before serving.

    Parameters
    ----------
    primary_config
        Connection settings of the primary store.
    readiness
        Retry budget for the readiness probe.
    migrations
        Source of the schema changes to apply.
    sleep
        Coroutine used between probe attempts.
    pool_factory
        Builds the scoped pool; ``AsyncConnectionPool`` by default.
    """

    def __init__(
        self,
        primary_config: AsyncpgConfig,
        readiness: ReadinessConfig | None = None,
        migrations: MigrationSource | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        pool_factory: PoolFactory = AsyncConnectionPool,
    ) -> None:
        self._primary_config = primary_config
        self._readiness = readiness or ReadinessConfig()
        self._migrations = migrations or PackageMigrationSource()
        self._sleep = sleep
        self._pool_factory = pool_factory
        self._report: StartupReport | None = None
        self._started = False

    @property
    def is_ready(self) -> bool:
        return self._report is not None

    @property
    def report(self) -> StartupReport | None:
        return self._report

    async def arun(self) -> StartupReport:
        """Probe the primary, apply pending migrations, and signal ready.

        Raises
        ------
        ReadinessTimeoutError
            The primary never answered.
        MigrationError
            A migration could not be applied.
        RuntimeError
            The gate was already run.
        """
        if self._started:
            raise RuntimeError("StartupGate already ran; it runs once per process")
        self._started = True

        scoped = self._pool_factory(self._primary_config.for_single_connection(), "primary-migrations")
        async with aclosing(scoped) as pool:
            readiness = await wait_until_ready(pool, self._readiness, sleep=self._sleep)
            logger.info("Checking schema migrations")
            migrations = await apply_pending_migrations(pool, self._migrations)

        self._report = StartupReport(readiness=readiness, migrations=migrations)
        logger.info(
            "Startup gate passed",
            probe_attempts=readiness.attempts,
            migrations_applied=len(migrations.applied),
        )
        return self._report


async def startup(
    cluster_config: DatabaseClusterConfig,
    readiness: ReadinessConfig | None = None,
    migrations: MigrationSource | None = None,
) -> StartupReport:
    """Run a fresh `StartupGate` against the primary of ``cluster_config``."""
    return await StartupGate(cluster_config.primary, readiness, migrations).arun()
