"""Shared fixtures for integration tests.

Provides:
- postgres_container: Session-scoped PostgreSQL container
- settings: Settings pointing at the container, with two "replicas" that
  are the same server (there is no streaming replication in tests)
- primary_pool: Function-scoped pool on a freshly emptied database
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, cast

import pytest
from pydantic import SecretStr

from taskdb.infrastructure.postgres.pool import AsyncConnectionPool
from taskdb.settings import Settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

DB_NAME = "test_db"
DB_USER = "test_user"
DB_PASSWORD = "test_password"


class PostgresContainerProtocol(Protocol):
    """Protocol for PostgreSQL container interface."""

    def get_exposed_port(self, port: int) -> int: ...
    def get_container_host_ip(self) -> str: ...
    def start(self) -> PostgresContainerProtocol: ...
    def stop(self) -> None: ...


def _configure_docker_environment() -> None:
    """Point testcontainers at the macOS Docker Desktop socket when DOCKER_HOST is unset."""
    if os.environ.get("DOCKER_HOST"):
        return

    macos_socket = Path.home() / ".docker" / "run" / "docker.sock"
    if macos_socket.exists():
        os.environ["DOCKER_HOST"] = f"unix://{macos_socket}"


def _check_docker_available() -> bool:
    """Check if the Docker daemon answers a ping.

    Returns:
        True if Docker daemon is accessible, False otherwise.
    """
    from docker import from_env  # type: ignore[import-untyped]
    from docker.errors import DockerException  # type: ignore[import-untyped]

    try:
        from_env().ping()
    except DockerException:
        return False
    return True


def _create_postgres_container() -> PostgresContainerProtocol:
    from testcontainers.postgres import PostgresContainer  # type: ignore[import-untyped]

    container = PostgresContainer(
        "postgres:17-alpine",
        username=DB_USER,
        password=DB_PASSWORD,
        dbname=DB_NAME,
    )
    return cast(PostgresContainerProtocol, container)


@pytest.fixture(scope="session")
def postgres_container() -> Iterator[PostgresContainerProtocol]:
    """Provide session-scoped PostgreSQL container.

    Skips:
        If Docker daemon is not available.

    Yields:
        Running PostgreSQL container instance.
    """
    _configure_docker_environment()

    if not _check_docker_available():
        pytest.skip(
            "Docker daemon not available. "
            "Install Docker Desktop (macOS) or Docker Engine (Linux) to run integration tests."
        )

    container = _create_postgres_container()
    container.start()

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture
def settings(postgres_container: PostgresContainerProtocol) -> Settings:
    host = postgres_container.get_container_host_ip()
    return Settings(
        _env_file=None,
        db_host_main=host,
        db_replica_hosts=(host, host),
        db_port=postgres_container.get_exposed_port(5432),
        db_user=DB_USER,
        db_password=SecretStr(DB_PASSWORD),
        db_name=DB_NAME,
        db_pool_min_size=1,
        db_pool_max_size=4,
        db_ready_max_attempts=5,
        db_ready_interval_ms=100,
    )


@pytest.fixture
async def primary_pool(settings: Settings) -> AsyncIterator[AsyncConnectionPool]:
    """Provide a primary pool on a database with no tables left from earlier tests."""
    pool = AsyncConnectionPool(settings.to_cluster_config().primary, name="primary")
    await pool.ainitialize()

    await pool.aexecute("DROP SCHEMA public CASCADE")
    await pool.aexecute("CREATE SCHEMA public")

    try:
        yield pool
    finally:
        await pool.aclose()
