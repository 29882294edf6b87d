"""Local persistence for tasks and pending operations.

Provides a single SQLite database holding:
- Task records keyed by id (the local entity cache)
- The operation log of queued create/update/delete intents
"""

from .database import Database
from .operation_log import OperationLog
from .task_store import TaskStore

__all__ = ["Database", "OperationLog", "TaskStore"]
