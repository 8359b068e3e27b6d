"""Replica-aware PostgreSQL data access for the tasks service.

- `taskdb.startup`: readiness probe, migrations, startup gate
- `taskdb.routing`: `ReplicaRouter` and `Query`
- `taskdb.service`: `TaskService`, the process-lifetime context
"""

from __future__ import annotations

__version__ = "0.1.0"
