"""Startup gate: readiness probing and schema migrations."""

from __future__ import annotations

from .gate import StartupGate, StartupReport, startup
from .migrations import (
    DirectoryMigrationSource,
    Migration,
    MigrationReport,
    MigrationSource,
    PackageMigrationSource,
    StaticMigrationSource,
    apply_pending_migrations,
)
from .readiness import ReadinessConfig, ReadinessResult, wait_until_ready

__all__ = [
    "DirectoryMigrationSource",
    "Migration",
    "MigrationReport",
    "MigrationSource",
    "PackageMigrationSource",
    "ReadinessConfig",
    "ReadinessResult",
    "StartupGate",
    "StartupReport",
    "StaticMigrationSource",
    "apply_pending_migrations",
    "startup",
    "wait_until_ready",
]
