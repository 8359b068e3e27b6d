from __future__ import annotations

from datetime import UTC, datetime
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ...core.enums import HealthStatus


class HealthCheckResult(BaseModel):
    """Result of a health check for a single pool."""

    model_config = ConfigDict(frozen=True)

    name: str
    status: HealthStatus
    pool_size: int
    pool_max_size: int
    pool_idle_size: int = 0
    latency_s: float | None = None
    message: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def pool_utilization_pct(self) -> float:
        """Pool utilization as percentage."""
        if self.pool_max_size == 0:
            return 0.0
        return (self.pool_size / self.pool_max_size) * 100

    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    @classmethod
    def initializing(cls: type[Self], name: str, pool_max_size: int) -> Self:
        return cls(
            name=name,
            status=HealthStatus.INITIALIZING,
            pool_size=0,
            pool_max_size=pool_max_size,
            message="Pool not initialized",
        )

    @classmethod
    def unhealthy(cls: type[Self], name: str, pool_max_size: int, error: str) -> Self:
        return cls(
            name=name,
            status=HealthStatus.UNHEALTHY,
            pool_size=0,
            pool_max_size=pool_max_size,
            message=error,
        )

    @classmethod
    def healthy(
        cls: type[Self],
        name: str,
        pool_size: int,
        pool_max_size: int,
        latency_s: float,
        pool_idle_size: int,
    ) -> Self:
        return cls(
            name=name,
            status=HealthStatus.HEALTHY,
            pool_size=pool_size,
            pool_max_size=pool_max_size,
            latency_s=latency_s,
            message="Pool is healthy",
            pool_idle_size=pool_idle_size,
        )


class ClusterHealthResult(BaseModel):
    """Health check result for the entire database cluster.

    The primary decides whether the cluster is operational; unhealthy
    replicas only degrade it.
    """

    model_config = ConfigDict(frozen=True)

    status: HealthStatus
    primary: HealthCheckResult
    replicas: tuple[HealthCheckResult, ...]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def aggregate(cls: type[Self], primary: HealthCheckResult, replicas: tuple[HealthCheckResult, ...]) -> Self:
        healthy_count = sum(1 for replica in replicas if replica.is_healthy())
        if not primary.is_healthy():
            status = HealthStatus.UNHEALTHY
        elif healthy_count < len(replicas):
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY
        return cls(status=status, primary=primary, replicas=replicas)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def healthy_replica_count(self) -> int:
        return sum(1 for replica in self.replicas if replica.is_healthy())

    @property
    def is_operational(self) -> bool:
        """Check if cluster can serve requests (primary healthy)."""
        return self.primary.is_healthy()
