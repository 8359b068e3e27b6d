"""Shared fixtures for unit tests.

Provides an in-memory `FakeStore` that stands in for `AsyncConnectionPool`:
it understands the handful of statements the migration applier, the
readiness probe and the task repository issue, and records every call.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import asyncpg
import pytest

from taskdb.infrastructure.postgres.health import HealthCheckResult


class FakeConnection:
    """Connection handed out by `FakeStore.aacquire`."""

    def __init__(self, store: FakeStore) -> None:
        self._store = store

    async def execute(self, sql: str, *args: Any, timeout: float | None = None) -> str:
        status, _ = self._store.run(sql, args)
        return status

    async def fetch(self, sql: str, *args: Any, timeout: float | None = None) -> list[dict[str, Any]]:
        _, rows = self._store.run(sql, args)
        return rows

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        ledger = dict(self._store.ledger)
        schema = list(self._store.schema)
        try:
            yield
        except BaseException:
            self._store.ledger = ledger
            self._store.schema = schema
            raise

    def is_closed(self) -> bool:
        return False


class FakeStore:
    """In-memory PostgreSQL stand-in with the `AsyncConnectionPool` surface."""

    def __init__(self, name: str = "primary", *, read_only: bool = False) -> None:
        self.name = name
        self.read_only = read_only
        self.tasks: list[dict[str, Any]] = []
        self.ledger: dict[int, dict[str, Any]] = {}
        self.schema: list[str] = []
        self.statements: list[str] = []
        self.lock_calls: list[str] = []
        self.fail_sql: set[str] = set()
        self.fail_with: BaseException | None = None
        self.down_for_pings = 0
        self.init_error: BaseException | None = None
        self.pings = 0
        self.initialized = False
        self.closed = 0

    # -- pool surface -------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self.initialized

    async def ainitialize(self) -> None:
        if self.init_error is not None:
            raise self.init_error
        self.initialized = True

    async def aclose(self) -> None:
        self.initialized = False
        self.closed += 1

    async def aping(self) -> None:
        self.pings += 1
        if self.pings <= self.down_for_pings:
            raise ConnectionRefusedError(f"{self.name} refused connection (ping {self.pings})")

    async def ahealth_check(self) -> HealthCheckResult:
        if self.init_error is not None or not self.initialized:
            return HealthCheckResult.unhealthy(name=self.name, pool_max_size=10, error="down")
        return HealthCheckResult.healthy(name=self.name, pool_size=1, pool_max_size=10, latency_s=0.001, pool_idle_size=1)

    @asynccontextmanager
    async def aacquire(self) -> AsyncIterator[FakeConnection]:
        if self.fail_with is not None:
            raise self.fail_with
        yield FakeConnection(self)

    async def aexecute(self, sql: str, *args: Any, timeout: float | None = None) -> str:
        status, _ = self.run(sql, args)
        return status

    async def afetch(self, sql: str, *args: Any, timeout: float | None = None) -> list[dict[str, Any]]:
        _, rows = self.run(sql, args)
        return rows

    async def afetchrow(self, sql: str, *args: Any, timeout: float | None = None) -> dict[str, Any] | None:
        _, rows = self.run(sql, args)
        return rows[0] if rows else None

    async def afetchval(self, sql: str, *args: Any, timeout: float | None = None) -> Any:
        _, rows = self.run(sql, args)
        return next(iter(rows[0].values())) if rows else None

    # -- helpers ------------------------------------------------------------

    def copy_from(self, other: FakeStore) -> None:
        """Catch up with ``other``, as streaming replication eventually would."""
        self.tasks = [dict(row) for row in other.tasks]

    @property
    def inserts(self) -> int:
        return sum(1 for sql in self.statements if sql.startswith("INSERT INTO tasks"))

    @property
    def selects(self) -> int:
        return sum(1 for sql in self.statements if sql.startswith("SELECT id, title"))

    def run(self, sql: str, args: tuple[Any, ...]) -> tuple[str, list[dict[str, Any]]]:
        if self.fail_with is not None:
            raise self.fail_with

        statement = " ".join(sql.split())
        self.statements.append(statement)

        if statement.startswith("SELECT 1"):
            return "SELECT 1", [{"?column?": 1}]
        if statement.startswith("SELECT pg_advisory"):
            self.lock_calls.append(statement.split("(")[0].removeprefix("SELECT "))
            return "SELECT 1", [{"pg_advisory": None}]
        if statement.startswith("CREATE TABLE IF NOT EXISTS schema_migrations"):
            return "CREATE TABLE", []
        if statement.startswith("SELECT version, checksum FROM schema_migrations"):
            return "SELECT", [
                {"version": version, "checksum": row["checksum"]} for version, row in sorted(self.ledger.items())
            ]
        if statement.startswith("INSERT INTO schema_migrations"):
            version, name, checksum = args
            self.ledger[version] = {"name": name, "checksum": checksum}
            return "INSERT 0 1", []
        if statement.startswith(("INSERT INTO tasks", "UPDATE tasks", "DELETE FROM tasks")) and self.read_only:
            raise asyncpg.exceptions.ReadOnlySQLTransactionError("cannot execute in a read-only transaction")
        if statement.startswith("INSERT INTO tasks"):
            row = {
                "id": uuid.uuid4(),
                "title": args[0],
                "completed": False,
                "created_at": datetime.now(UTC),
            }
            self.tasks.append(row)
            return "INSERT 0 1", [dict(row)]
        if statement.startswith("SELECT id, title, completed, created_at FROM tasks"):
            return f"SELECT {len(self.tasks)}", [dict(row) for row in self.tasks]
        if statement.startswith("UPDATE tasks"):
            task_id, title, completed = args
            for row in self.tasks:
                if row["id"] == task_id:
                    row["title"] = title if title is not None else row["title"]
                    row["completed"] = completed if completed is not None else row["completed"]
                    return "UPDATE 1", [dict(row)]
            return "UPDATE 0", []
        if statement.startswith("DELETE FROM tasks"):
            before = len(self.tasks)
            self.tasks = [row for row in self.tasks if row["id"] != args[0]]
            return f"DELETE {before - len(self.tasks)}", []

        if any(marker in statement for marker in self.fail_sql):
            raise asyncpg.exceptions.PostgresSyntaxError(f"syntax error at or near {statement[:20]!r}")
        self.schema.append(statement)
        return "CREATE TABLE", []


@pytest.fixture
def make_store() -> Callable[..., FakeStore]:
    """Factory for named fake stores."""
    return FakeStore


@pytest.fixture
def primary() -> FakeStore:
    store = FakeStore("primary")
    store.initialized = True
    return store


@pytest.fixture
def replicas() -> list[FakeStore]:
    stores = [FakeStore("replica1", read_only=True), FakeStore("replica2", read_only=True)]
    for store in stores:
        store.initialized = True
    return stores
