"""Unit tests for DatabaseCluster lifecycle and health aggregation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from taskdb.core.enums import HealthStatus
from taskdb.infrastructure.postgres.cluster import DatabaseCluster, replica_label
from taskdb.infrastructure.postgres.config import AsyncpgConfig, AsyncpgConnectionSettings, DatabaseClusterConfig

if TYPE_CHECKING:
    from collections.abc import Callable

    from tests.unit.conftest import FakeStore


@pytest.fixture
def stores(make_store: Callable[..., FakeStore]) -> tuple[FakeStore, list[FakeStore]]:
    return make_store("primary"), [make_store("replica1", read_only=True), make_store("replica2", read_only=True)]


class TestFromConfig:
    def test_names_follow_configuration_order(self) -> None:
        primary = AsyncpgConfig(connection=AsyncpgConnectionSettings(host="db-main"))
        config = DatabaseClusterConfig.with_replica_hosts(primary, ["db-replica1", "db-replica2", "db-replica3"])

        cluster = DatabaseCluster.from_config(config)

        assert cluster.primary.name == "primary"
        assert [replica.name for replica in cluster.replicas] == ["replica1", "replica2", "replica3"]
        assert [replica.config.connection.host for replica in cluster.replicas] == [
            "db-replica1",
            "db-replica2",
            "db-replica3",
        ]
        assert not cluster.primary.is_initialized

    def test_replica_label_is_one_based(self) -> None:
        assert [replica_label(i) for i in range(3)] == ["replica1", "replica2", "replica3"]


class TestLifecycle:
    async def test_initializes_and_closes_every_pool(self, stores: tuple[FakeStore, list[FakeStore]]) -> None:
        primary, replicas = stores

        async with DatabaseCluster(primary, replicas) as cluster:
            assert cluster.replica_count == 2
            assert primary.initialized
            assert all(replica.initialized for replica in replicas)

        assert primary.closed == 1
        assert [replica.closed for replica in replicas] == [1, 1]

    async def test_primary_failure_propagates(self, stores: tuple[FakeStore, list[FakeStore]]) -> None:
        primary, replicas = stores
        primary.init_error = ConnectionRefusedError("primary down")

        with pytest.raises(ConnectionRefusedError):
            await DatabaseCluster(primary, replicas).ainitialize()

    async def test_replica_down_at_boot_keeps_its_position(self, stores: tuple[FakeStore, list[FakeStore]]) -> None:
        """A replica that cannot connect at boot stays in place.

        Arrange
        -------
        - replica1 refuses to initialize

        Assert
        ------
        - Cluster starts; replica1 is still ``replicas[0]`` and replica2 is ``replicas[1]``
        - Health reports the cluster as degraded but operational
        """
        primary, replicas = stores
        replicas[0].init_error = ConnectionRefusedError("replica1 down")
        cluster = DatabaseCluster(primary, replicas)

        await cluster.ainitialize()
        health = await cluster.ahealth_check()

        assert [replica.name for replica in cluster.replicas] == ["replica1", "replica2"]
        assert not replicas[0].initialized
        assert replicas[1].initialized
        assert health.status == HealthStatus.DEGRADED
        assert health.healthy_replica_count == 1
        assert health.is_operational


class TestHealth:
    async def test_all_up_is_healthy(self, stores: tuple[FakeStore, list[FakeStore]]) -> None:
        primary, replicas = stores
        async with DatabaseCluster(primary, replicas) as cluster:
            health = await cluster.ahealth_check()

        assert health.status == HealthStatus.HEALTHY
        assert health.healthy_replica_count == 2

    async def test_unhealthy_primary_is_not_operational(self, stores: tuple[FakeStore, list[FakeStore]]) -> None:
        primary, replicas = stores
        cluster = DatabaseCluster(primary, replicas)

        health = await cluster.ahealth_check()

        assert health.status == HealthStatus.UNHEALTHY
        assert not health.is_operational
