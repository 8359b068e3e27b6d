"""Environment-driven settings (pydantic-settings).

Variable names follow the deployment environment of the tasks service:
``DB_HOST_MAIN``, ``DB_REPLICA_HOSTS`` (comma-separated, ordered) or one
``DB_HOST_REPLICA<N>`` per replica (ordered by N),
``DB_USER``, ``DB_PASSWORD``, ``DB_NAME``, ``DB_PORT``, ``PORT`` and the
readiness probe budget ``DB_READY_MAX_ATTEMPTS`` / ``DB_READY_INTERVAL_MS``.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal, Self

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .infrastructure.postgres.config import (
    AsyncpgConfig,
    AsyncpgConnectionSettings,
    AsyncpgPoolSettings,
    DatabaseClusterConfig,
)
from .startup.migrations import DirectoryMigrationSource, MigrationSource, PackageMigrationSource
from .startup.readiness import ReadinessConfig

_REPLICA_HOST_RE = re.compile(r"^DB_HOST_REPLICA(\d+)$", re.IGNORECASE)


def numbered_replica_hosts(environ: Mapping[str, str]) -> tuple[str, ...]:
    """``DB_HOST_REPLICA1``, ``DB_HOST_REPLICA2``, ... values in numeric order; blanks skipped."""
    numbered: list[tuple[int, str]] = []
    for key, value in environ.items():
        match = _REPLICA_HOST_RE.match(key)
        if match is not None and value.strip():
            numbered.append((int(match[1]), value.strip()))
    return tuple(host for _, host in sorted(numbered))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", frozen=True)

    db_host_main: str = "localhost"
    db_replica_hosts: Annotated[tuple[str, ...], NoDecode] = ()
    db_user: str = "postgres"
    db_password: SecretStr = Field(default=SecretStr("example"), repr=False)
    db_name: str = "appdb"
    db_port: int = Field(default=5432, ge=1, le=65535)

    db_pool_min_size: int = Field(default=2, ge=0, le=100)
    db_pool_max_size: int = Field(default=10, ge=1, le=200)
    db_command_timeout: float = Field(default=60.0, ge=1.0, le=300.0)
    db_connect_timeout: float = Field(default=10.0, gt=0)

    db_ready_max_attempts: int = Field(default=30, ge=1)
    db_ready_interval_ms: int = Field(default=2000, ge=0)
    db_ready_backoff: Literal["fixed", "linear"] = "fixed"

    db_migrations_path: Path | None = None

    port: int = Field(default=3000, ge=1, le=65535)

    @field_validator("db_replica_hosts", mode="before")
    @classmethod
    def _split_hosts(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(host.strip() for host in value.split(",") if host.strip())
        return value

    @model_validator(mode="before")
    @classmethod
    def _numbered_replicas(cls, data: Any) -> Any:
        # DB_REPLICA_HOSTS wins when both styles are set
        if isinstance(data, dict) and not data.get("db_replica_hosts"):
            hosts = numbered_replica_hosts(os.environ)
            if hosts:
                return {**data, "db_replica_hosts": hosts}
        return data

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> Self:
        if self.db_pool_min_size > self.db_pool_max_size:
            msg = (
                f"DB_POOL_MIN_SIZE ({self.db_pool_min_size}) must not exceed "
                f"DB_POOL_MAX_SIZE ({self.db_pool_max_size})"
            )
            raise ValueError(msg)
        return self

    def to_cluster_config(self) -> DatabaseClusterConfig:
        primary = AsyncpgConfig(
            connection=AsyncpgConnectionSettings(
                host=self.db_host_main,
                port=self.db_port,
                database=self.db_name,
                user=self.db_user,
                password=self.db_password,
                connect_timeout=self.db_connect_timeout,
            ),
            pool=AsyncpgPoolSettings(
                min_size=self.db_pool_min_size,
                max_size=self.db_pool_max_size,
                command_timeout=self.db_command_timeout,
            ),
        )
        return DatabaseClusterConfig.with_replica_hosts(primary, self.db_replica_hosts)

    def to_readiness_config(self) -> ReadinessConfig:
        return ReadinessConfig(
            max_attempts=self.db_ready_max_attempts,
            interval_s=self.db_ready_interval_ms / 1000,
            backoff=self.db_ready_backoff,
        )

    def migration_source(self) -> MigrationSource:
        if self.db_migrations_path is not None:
            return DirectoryMigrationSource(self.db_migrations_path)
        return PackageMigrationSource()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
