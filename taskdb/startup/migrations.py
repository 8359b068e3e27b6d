"""Versioned SQL migrations and the applier that brings a store up to date.

A migration is one ``.sql`` script identified by an integer version. Applied
versions are recorded in a ledger table inside the primary store itself, so
running the applier again against an up-to-date store is a no-op.

Each migration runs in its own transaction together with its ledger insert:
either the schema change and its ledger row both commit, or neither does.
The first failing migration stops the run; earlier ones stay applied.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable, Sequence
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field

from ..core.exceptions import MigrationError
from ..infrastructure.postgres.pool import STORE_ERRORS
from ..logger import get_logger

if TYPE_CHECKING:
    from importlib.resources.abc import Traversable

    import asyncpg

    from ..infrastructure.postgres.pool import AsyncConnectionPool

logger = get_logger(__name__)

LEDGER_TABLE = "schema_migrations"

# pg_advisory_lock key shared by every process migrating the same database
MIGRATION_LOCK_KEY = 0x7461736B6462

_FILENAME_RE = re.compile(r"^(?P<version>\d+)_(?P<name>[A-Za-z0-9_\-]+)\.sql$")

_CREATE_LEDGER_SQL = f"""
CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
    version integer PRIMARY KEY,
    name text NOT NULL,
    checksum text NOT NULL,
    applied_at timestamptz NOT NULL DEFAULT now()
)
"""
_SELECT_APPLIED_SQL = f"SELECT version, checksum FROM {LEDGER_TABLE} ORDER BY version"
_INSERT_APPLIED_SQL = f"INSERT INTO {LEDGER_TABLE} (version, name, checksum) VALUES ($1, $2, $3)"


class Migration(BaseModel):
    """One schema change."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: int = Field(ge=1)
    name: str = Field(min_length=1)
    sql: str = Field(min_length=1)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()

    @property
    def label(self) -> str:
        return f"{self.version:04d}_{self.name}"


class MigrationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    applied: tuple[int, ...] = ()
    skipped: tuple[int, ...] = ()


class MigrationSource(Protocol):
    def load(self) -> tuple[Migration, ...]: ...


def ordered_migrations(migrations: Iterable[Migration]) -> tuple[Migration, ...]:
    """Sort by version and reject duplicate versions."""
    ordered = tuple(sorted(migrations, key=lambda m: m.version))
    for previous, current in zip(ordered, ordered[1:], strict=False):
        if previous.version == current.version:
            msg = f"duplicate version ({previous.name!r} and {current.name!r})"
            raise MigrationError(msg, version=current.version, migration_name=current.name)
    return ordered


def _load_script(script: Path | Traversable) -> Migration:
    match = _FILENAME_RE.match(script.name)
    if match is None:
        msg = f"Migration file {script.name!r} does not match <version>_<name>.sql"
        raise MigrationError(msg)
    version, name = int(match["version"]), match["name"]
    try:
        return Migration(version=version, name=name, sql=script.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        msg = f"cannot read {script.name!r}: {e}"
        raise MigrationError(msg, version=version, migration_name=name) from e
    except ValidationError as e:
        msg = f"{script.name!r} has no SQL"
        raise MigrationError(msg, version=version, migration_name=name) from e


class StaticMigrationSource:
    """Migrations given in code."""

    def __init__(self, migrations: Sequence[Migration]) -> None:
        self._migrations = tuple(migrations)

    def load(self) -> tuple[Migration, ...]:
        return ordered_migrations(self._migrations)


class DirectoryMigrationSource:
    """Migrations read from ``<version>_<name>.sql`` files in a directory."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> tuple[Migration, ...]:
        if not self._path.is_dir():
            msg = f"Migrations directory {self._path} does not exist"
            raise MigrationError(msg)
        return ordered_migrations(
            _load_script(script)
            for script in self._path.iterdir()
            if script.suffix == ".sql"
        )


class PackageMigrationSource:
    """Migrations embedded as package resources (default: ``taskdb.migrations``)."""

    def __init__(self, package: str = "taskdb.migrations") -> None:
        self._package = package

    def load(self) -> tuple[Migration, ...]:
        try:
            root: Traversable = resources.files(self._package)
        except ModuleNotFoundError as e:
            raise MigrationError(f"Migrations package {self._package!r} not found") from e
        return ordered_migrations(
            _load_script(script)
            for script in root.iterdir()
            if script.name.endswith(".sql")
        )


def _check_drift(migrations: tuple[Migration, ...], applied: dict[int, str]) -> None:
    for migration in migrations:
        recorded = applied.get(migration.version)
        if recorded is not None and recorded != migration.checksum:
            raise MigrationError(
                "already applied with a different checksum; applied migrations must not be edited",
                version=migration.version,
                migration_name=migration.name,
            )


async def _apply_one(conn: asyncpg.Connection, migration: Migration) -> None:
    try:
        async with conn.transaction():
            await conn.execute(migration.sql)
            await conn.execute(_INSERT_APPLIED_SQL, migration.version, migration.name, migration.checksum)
    except STORE_ERRORS as e:
        logger.error("Migration failed", version=migration.version, name=migration.name, error=str(e))
        raise MigrationError(str(e), version=migration.version, migration_name=migration.name) from e
    logger.info("Migration applied", version=migration.version, name=migration.name)


async def _release_lock(conn: asyncpg.Connection) -> None:
    if conn.is_closed():
        return
    try:
        await conn.execute("SELECT pg_advisory_unlock($1)", MIGRATION_LOCK_KEY)
    except STORE_ERRORS as e:
        # the server drops session locks when the connection closes
        logger.warning("Could not release migration lock", error=str(e))


async def apply_pending_migrations(store: AsyncConnectionPool, source: MigrationSource) -> MigrationReport:
    """Apply every migration from ``source`` not yet recorded on ``store``.

    Parameters
    ----------
    store
        A ready pool for the primary store.
    source
        Where the migrations come from.

    Returns
    -------
    MigrationReport
        Versions applied by this call and versions already present.

    Raises
    ------
    MigrationError
        If the source is invalid, the ledger cannot be read, an applied
        migration was edited, or a migration fails. In the last case
        ``version`` identifies it and ``__cause__`` holds the driver error.
    """
    migrations = source.load()

    try:
        async with store.aacquire() as conn:
            await conn.execute("SELECT pg_advisory_lock($1)", MIGRATION_LOCK_KEY)
            try:
                await conn.execute(_CREATE_LEDGER_SQL)
                applied = {row["version"]: row["checksum"] for row in await conn.fetch(_SELECT_APPLIED_SQL)}
                _check_drift(migrations, applied)

                pending = [m for m in migrations if m.version not in applied]
                skipped = tuple(m.version for m in migrations if m.version in applied)
                if not pending:
                    logger.info("Schema is up to date", migrations=len(migrations))
                    return MigrationReport(skipped=skipped)

                logger.info(
                    "Running migrations",
                    pending=[m.label for m in pending],
                    already_applied=list(skipped),
                )
                for migration in pending:
                    await _apply_one(conn, migration)
            finally:
                await _release_lock(conn)
    except STORE_ERRORS as e:
        raise MigrationError(f"Migration ledger unavailable: {e}") from e

    logger.info("Migrations completed successfully", applied=len(pending))
    return MigrationReport(applied=tuple(m.version for m in pending), skipped=skipped)
