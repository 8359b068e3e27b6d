from __future__ import annotations

from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field


class FetchMode(StrEnum):
    EXECUTE = "execute"
    ALL = "all"
    ONE = "one"
    SCALAR = "scalar"


class Query(BaseModel):
    """A single SQL statement plus how to collect its result.

    The router decides *where* a query runs; the query only says *what* runs.

    Examples
    --------
    >>> Query.all("SELECT * FROM tasks", table="tasks")
    >>> Query.one("INSERT INTO tasks (title) VALUES ($1) RETURNING *", "a", table="tasks")
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    sql: str = Field(min_length=1)
    args: tuple[Any, ...] = ()
    mode: FetchMode = FetchMode.ALL
    table: str | None = Field(default=None, description="Logical table the query targets, for logs and errors")
    timeout: float | None = Field(default=None, gt=0)

    @classmethod
    def execute(cls, sql: str, *args: Any, table: str | None = None) -> Self:
        return cls(sql=sql, args=args, mode=FetchMode.EXECUTE, table=table)

    @classmethod
    def all(cls, sql: str, *args: Any, table: str | None = None) -> Self:
        return cls(sql=sql, args=args, mode=FetchMode.ALL, table=table)

    @classmethod
    def one(cls, sql: str, *args: Any, table: str | None = None) -> Self:
        return cls(sql=sql, args=args, mode=FetchMode.ONE, table=table)

    @classmethod
    def scalar(cls, sql: str, *args: Any, table: str | None = None) -> Self:
        return cls(sql=sql, args=args, mode=FetchMode.SCALAR, table=table)
