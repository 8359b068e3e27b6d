"""Task persistence through the replica router.

This is the surface an HTTP layer calls. It never touches a pool directly:
writes go through ``router.write``, list views through ``router.read`` or
one of the explicit read variants.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..logger import get_logger
from ..routing.query import Query
from .domain import ReplicaSnapshot, Task, TaskCreate, TaskUpdate

if TYPE_CHECKING:
    from uuid import UUID

    from ..routing.router import ReplicaRouter

logger = get_logger(__name__)

TASKS_TABLE = "tasks"
_COLUMNS = "id, title, completed, created_at"

_INSERT_SQL = f"INSERT INTO {TASKS_TABLE} (title) VALUES ($1) RETURNING {_COLUMNS}"
_SELECT_ALL_SQL = f"SELECT {_COLUMNS} FROM {TASKS_TABLE} ORDER BY created_at, id"
_UPDATE_SQL = f"""
UPDATE {TASKS_TABLE}
SET title = COALESCE($2, title),
    completed = COALESCE($3, completed)
WHERE id = $1
RETURNING {_COLUMNS}
"""
_DELETE_SQL = f"DELETE FROM {TASKS_TABLE} WHERE id = $1"


class TaskRepository:
    def __init__(self, router: ReplicaRouter) -> None:
        self._router = router

    async def create(self, data: TaskCreate) -> Task:
        record = await self._router.write(Query.one(_INSERT_SQL, data.title, table=TASKS_TABLE))
        task = Task.from_record(record)
        logger.info("Task created", task_id=str(task.id))
        return task

    async def list_all(self) -> list[Task]:
        """All tasks from one replica (round-robin). May lag recent writes."""
        records = await self._router.read(Query.all(_SELECT_ALL_SQL, table=TASKS_TABLE))
        return [Task.from_record(record) for record in records]

    async def list_from_replica(self, index: int) -> ReplicaSnapshot:
        """All tasks as seen by the replica at zero-based ``index``."""
        records = await self._router.read_from(index, Query.all(_SELECT_ALL_SQL, table=TASKS_TABLE))
        return ReplicaSnapshot(
            source=self._router.replica_name(index),
            tasks=[Task.from_record(record) for record in records],
        )

    async def list_from_primary(self) -> list[Task]:
        records = await self._router.read_from_primary(Query.all(_SELECT_ALL_SQL, table=TASKS_TABLE))
        return [Task.from_record(record) for record in records]

    async def update(self, task_id: UUID, data: TaskUpdate) -> Task | None:
        """Apply a partial update. Returns None when no task has ``task_id``."""
        record = await self._router.write(
            Query.one(_UPDATE_SQL, task_id, data.title, data.completed, table=TASKS_TABLE)
        )
        if record is None:
            return None
        return Task.from_record(record)

    async def delete(self, task_id: UUID) -> bool:
        """Delete a task. Returns whether a row was removed."""
        status = await self._router.write(Query.execute(_DELETE_SQL, task_id, table=TASKS_TABLE))
        deleted = status == "DELETE 1"
        if deleted:
            logger.info("Task deleted", task_id=str(task_id))
        return deleted
