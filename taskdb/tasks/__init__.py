from __future__ import annotations

from .domain import ReplicaSnapshot, Task, TaskCreate, TaskUpdate
from .repository import TaskRepository

__all__ = ["ReplicaSnapshot", "Task", "TaskCreate", "TaskRepository", "TaskUpdate"]
