from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Task(BaseModel):
    """A task record as stored in the ``tasks`` table."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: UUID
    title: str
    completed: bool = False
    created_at: datetime

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Self:
        return cls.model_validate(dict(record))


class TaskCreate(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str = Field(min_length=1)


class TaskUpdate(BaseModel):
    """Partial update. Fields left as None keep their stored value."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str | None = Field(default=None, min_length=1)
    completed: bool | None = None


class ReplicaSnapshot(BaseModel):
    """Tasks as seen by one named replica."""

    model_config = ConfigDict(frozen=True)

    source: str
    tasks: list[Task]
