"""Replica-aware data access: the only entry points for the request layer."""

from __future__ import annotations

from .query import FetchMode, Query
from .router import ReplicaRouter

__all__ = ["FetchMode", "Query", "ReplicaRouter"]
