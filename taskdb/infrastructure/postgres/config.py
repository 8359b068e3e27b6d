"""Configuration models for the PostgreSQL stores.

- `AsyncpgConfig`: one store (the primary, or one replica)
- `DatabaseClusterConfig`: the primary plus its ordered replicas

Replica configs are derived from the primary's: replicas of a streaming
replication setup share the database name, credentials and pool sizing,
and differ only in where they live.
"""

from __future__ import annotations

from typing import Any, Literal, Self
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict, Field, SecretStr, computed_field, model_validator


class AsyncpgConnectionSettings(BaseModel):
    """Where one store lives and how to authenticate against it."""

    model_config = ConfigDict(extra="forbid")

    host: str = Field(default="localhost")
    port: int = Field(default=5432, ge=1, le=65535)
    database: str = Field(default="appdb")
    user: str = Field(default="postgres")
    password: SecretStr | None = Field(default=None)
    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait for a new connection; bounds each readiness probe attempt",
    )


class AsyncpgPoolSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_size: int = Field(default=2, ge=0, le=100)
    max_size: int = Field(default=10, ge=1, le=200)
    max_inactive_connection_lifetime: float = Field(default=300.0, ge=0.0)
    command_timeout: float = Field(default=60.0, ge=1.0, le=300.0)

    @model_validator(mode="after")
    def _check_bounds(self) -> Self:
        if self.min_size > self.max_size:
            msg = f"min_size ({self.min_size}) must not exceed max_size ({self.max_size})"
            raise ValueError(msg)
        return self


class AsyncpgServerSettings(BaseModel):
    """PostgreSQL run-time parameters set on every connection."""

    model_config = ConfigDict(extra="forbid")

    application_name: str = Field(default="taskdb")
    jit: Literal["on", "off"] = Field(default="off")


class AsyncpgConfig(BaseModel):
    """Everything needed to open the pool for one store.

    Examples
    --------
    >>> config = AsyncpgConfig(
    ...     connection=AsyncpgConnectionSettings(host="db-main", password=SecretStr("example")),
    ...     pool=AsyncpgPoolSettings(min_size=2, max_size=10),
    ... )
    >>> replica = config.for_replica("db-replica1")
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    connection: AsyncpgConnectionSettings = Field(default_factory=AsyncpgConnectionSettings)
    pool: AsyncpgPoolSettings = Field(default_factory=AsyncpgPoolSettings)
    server_settings: AsyncpgServerSettings = Field(default_factory=AsyncpgServerSettings)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def dsn(self) -> str:
        """``postgresql://`` URL with user and password percent-escaped."""
        user = quote_plus(self.connection.user)
        password = self.connection.password.get_secret_value() if self.connection.password else ""
        auth = f"{user}:{quote_plus(password)}@" if password else f"{user}@"
        return f"postgresql://{auth}{self.connection.host}:{self.connection.port}/{self.connection.database}"

    def to_pool_params(self) -> dict[str, Any]:
        """Keyword arguments for ``asyncpg.create_pool()``."""
        return {
            "dsn": self.dsn,
            "timeout": self.connection.connect_timeout,
            **self.pool.model_dump(),
            "server_settings": self.server_settings.model_dump(),
        }

    def to_log_params(self) -> dict[str, Any]:
        """Pool identity that is safe to log (no credentials)."""
        return {
            "host": self.connection.host,
            "port": self.connection.port,
            "database": self.connection.database,
            "min_size": self.pool.min_size,
            "max_size": self.pool.max_size,
        }

    def for_replica(self, host: str, port: int | None = None) -> Self:
        """Copy of this config pointing at ``host`` (and ``port``, if given).

        >>> primary.for_replica("db-replica2", port=5433)
        """
        new_connection = self.connection.model_copy(
            update={"host": host, "port": port if port is not None else self.connection.port}
        )
        return self.model_copy(update={"connection": new_connection})

    def for_single_connection(self) -> Self:
        """Copy sized for exactly one connection.

        The startup gate uses it for its scoped handle: one connection holds
        the migration lock and runs every migration.
        """
        new_pool = self.pool.model_copy(update={"min_size": 1, "max_size": 1})
        return self.model_copy(update={"pool": new_pool})


class DatabaseClusterConfig(BaseModel):
    """The primary store and its replicas.

    Replica order is significant: it defines the stable identity
    ("replica1", "replica2", ...) used for direct replica reads.

    Examples
    --------
    >>> config = DatabaseClusterConfig.with_replica_hosts(primary_cfg, ["db-replica1", "db-replica2"])
    >>> cluster = DatabaseCluster.from_config(config)
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    primary: AsyncpgConfig
    replicas: tuple[AsyncpgConfig, ...] = Field(default_factory=tuple)

    @classmethod
    def with_replica_hosts(cls, primary: AsyncpgConfig, hosts: list[str] | tuple[str, ...]) -> Self:
        """One replica per host, in the given order, inheriting everything else from ``primary``."""
        return cls(primary=primary, replicas=tuple(primary.for_replica(host) for host in hosts))
