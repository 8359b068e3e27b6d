"""Core module exports."""

from __future__ import annotations

from .enums import HealthStatus
from .exceptions import (
    InvalidReplicaError,
    MigrationError,
    PoolNotInitializedError,
    ReadinessTimeoutError,
    ServiceNotReadyError,
    StartupError,
    StoreOperationError,
    TaskDBError,
)

__all__ = [
    "HealthStatus",
    "InvalidReplicaError",
    "MigrationError",
    "PoolNotInitializedError",
    "ReadinessTimeoutError",
    "ServiceNotReadyError",
    "StartupError",
    "StoreOperationError",
    "TaskDBError",
]
