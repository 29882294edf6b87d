"""tasksync: offline-first task list synchronized with a remote service."""

from .engine import Engine, open_engine
from .models import OperationKind, QueueEntry, Task
from .service import TaskService

__version__ = "0.1.0"

__all__ = [
    "Engine",
    "OperationKind",
    "QueueEntry",
    "Task",
    "TaskService",
    "open_engine",
]
