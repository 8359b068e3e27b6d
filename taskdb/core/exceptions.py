"""Error taxonomy for the data access layer.

Startup errors (`StartupError` and subclasses) are fatal: the process must
exit before serving traffic. Runtime errors are local to the single routed
operation that raised them.
"""

from __future__ import annotations


class TaskDBError(Exception):
    """Base class for all taskdb errors."""


class StartupError(TaskDBError):
    """A failure of the startup gate. Never recovered from."""


class ReadinessTimeoutError(StartupError, TimeoutError):
    """The primary store did not answer within the readiness retry budget."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Database connection timeout after {attempts} attempts")
        self.attempts = attempts


class MigrationError(StartupError):
    """A schema migration could not be loaded or applied.

    Parameters
    ----------
    message
        Human-readable description of the failure.
    version
        Version of the failing migration, or None when the failure is not
        attributable to a single migration (ledger access, source loading).
    migration_name
        Name of the failing migration, if known.
    """

    def __init__(self, message: str, *, version: int | None = None, migration_name: str | None = None) -> None:
        if version is not None:
            label = f"{version:04d}_{migration_name}" if migration_name else f"{version:04d}"
            message = f"Migration {label} failed: {message}"
        super().__init__(message)
        self.version = version
        self.migration_name = migration_name


class StoreOperationError(TaskDBError):
    """A routed read or write failed on the store it was sent to.

    The driver error is available unchanged as ``__cause__``.
    """

    def __init__(self, target: str, table: str | None, cause: BaseException) -> None:
        where = f"{target}.{table}" if table else target
        super().__init__(f"Store operation on {where} failed: {type(cause).__name__}: {cause}")
        self.target = target
        self.table = table


class InvalidReplicaError(TaskDBError, IndexError):
    """A direct replica read named an index outside the configured replicas."""

    def __init__(self, index: int, replica_count: int) -> None:
        super().__init__(f"Replica index {index} out of range (configured replicas: {replica_count})")
        self.index = index
        self.replica_count = replica_count


class ServiceNotReadyError(TaskDBError, RuntimeError):
    """Data access was requested before the startup gate signalled ready."""


class PoolNotInitializedError(TaskDBError, RuntimeError):
    """The asyncpg pool of a store was used before it was opened."""
