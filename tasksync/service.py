"""Task operations for the host application.

Every mutation is written to the local store first, so reads reflect it
immediately, and then queued for the remote.
"""

import logging
from datetime import date
from typing import Any

from .errors import TaskNotFoundError
from .models import OperationKind, Task, parse_due_date
from .storage import OperationLog, TaskStore
from .sync import SyncOrchestrator, SyncResult

logger = logging.getLogger(__name__)

FILTERS = ("all", "active", "completed", "important")
EDITABLE_FIELDS = ("title", "completed", "important", "due_date", "description")


def _sort_key(task: Task) -> tuple:
    # Incomplete first, then important, then earliest due date, undated last
    return (
        task.completed,
        not task.important,
        task.due_date is None,
        task.due_date or date.max,
    )


def _matches(task: Task, task_filter: str) -> bool:
    if task_filter == "active":
        return not task.completed
    if task_filter == "completed":
        return task.completed
    if task_filter == "important":
        return task.important
    return True


class TaskService:
    """Optimistic task mutations backed by the sync engine."""

    def __init__(self, store: TaskStore, orchestrator: SyncOrchestrator):
        self.store = store
        self.orchestrator = orchestrator

    @property
    def log(self) -> OperationLog:
        return self.orchestrator.log

    def _require(self, task_id: str) -> Task:
        task = self.store.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def add_task(
        self,
        title: str,
        due_date: date | str | None = None,
        important: bool = False,
        description: str = "",
    ) -> Task:
        """Create a provisional task and queue its remote create."""
        task = Task.new(
            title=title,
            important=important,
            due_date=parse_due_date(due_date),
            description=description,
        )
        self.store.put(task)
        self.orchestrator.queue_operation(
            OperationKind.CREATE, {**task.fields(), "client_id": task.id}
        )
        logger.info(f"Added task {task.id}: {task.title}")
        return task

    def update_task(self, task_id: str, **changes: Any) -> Task:
        """Edit task fields.

        Raises:
            TaskNotFoundError: Unknown task id.
            ValueError: A field name is not editable.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot edit fields: {', '.join(sorted(unknown))}")

        task = self._require(task_id).with_changes(**changes)
        self.store.put(task)
        self.orchestrator.queue_operation(OperationKind.UPDATE, task.to_dict())
        return task

    def toggle_complete(self, task_id: str) -> Task:
        task = self._require(task_id)
        return self.update_task(task_id, completed=not task.completed)

    def toggle_important(self, task_id: str) -> Task:
        task = self._require(task_id)
        return self.update_task(task_id, important=not task.important)

    def delete_task(self, task_id: str) -> None:
        """Remove a task locally and queue its remote delete."""
        self._require(task_id)
        self.store.delete(task_id)
        self.orchestrator.queue_operation(OperationKind.DELETE, {"id": task_id})
        logger.info(f"Deleted task {task_id}")

    def get_task(self, task_id: str) -> Task:
        return self._require(task_id)

    def list_tasks(self, task_filter: str = "all", search: str = "") -> list[Task]:
        """List local tasks, filtered and sorted for display.

        Args:
            task_filter: One of "all", "active", "completed", "important".
            search: Case-insensitive text matched against title and description.
        """
        if task_filter not in FILTERS:
            raise ValueError(f"Unknown filter: {task_filter}")

        needle = search.strip().lower()
        tasks = [
            t
            for t in self.store.get_all()
            if _matches(t, task_filter)
            and (
                not needle
                or needle in t.title.lower()
                or needle in t.description.lower()
            )
        ]
        return sorted(tasks, key=_sort_key)

    def filter_counts(self) -> dict[str, int]:
        tasks = self.store.get_all()
        return {name: sum(1 for t in tasks if _matches(t, name)) for name in FILTERS}

    async def refresh(self) -> SyncResult:
        """Push pending changes and pull the remote listing."""
        return await self.orchestrator.full_sync()

    def clear_all_data(self) -> None:
        """Delete every local task and pending operation."""
        self.store.clear()
        self.log.clear()
        logger.warning("All local task data cleared")
