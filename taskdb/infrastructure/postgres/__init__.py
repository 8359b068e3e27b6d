"""PostgreSQL infrastructure with asyncpg.

This module provides:

- `AsyncConnectionPool`: Single connection pool for one database
- `DatabaseCluster`: Primary + ordered replica pools (the connection set)
- `DatabaseClusterConfig`: Configuration for cluster topology
"""

from .cluster import DatabaseCluster, replica_label
from .config import (
    AsyncpgConfig,
    AsyncpgConnectionSettings,
    AsyncpgPoolSettings,
    AsyncpgServerSettings,
    DatabaseClusterConfig,
)
from .health import ClusterHealthResult, HealthCheckResult
from .pool import AsyncConnectionPool, IsolationLevel

__all__ = [
    "AsyncConnectionPool",
    "AsyncpgConfig",
    "AsyncpgConnectionSettings",
    "AsyncpgPoolSettings",
    "AsyncpgServerSettings",
    "ClusterHealthResult",
    "DatabaseCluster",
    "DatabaseClusterConfig",
    "HealthCheckResult",
    "IsolationLevel",
    "replica_label",
]
