"""In-process remote gateway for testing and offline demos."""

import asyncio
import itertools
from dataclasses import dataclass

from ..errors import NotFoundError, RemoteError, UnauthorizedError, UnreachableError
from ..models import Confirmed, Task
from .gateway import RemoteGateway


@dataclass
class GatewayCall:
    """One call received by the in-memory gateway."""

    method: str
    task_id: str | None = None
    task: Task | None = None


class InMemoryGateway(RemoteGateway):
    """Remote gateway backed by a dict.

    Records every call it receives and supports failure injection so sync
    behaviour can be exercised without a network.
    """

    def __init__(self, tasks: list[Task] | None = None, authorized: bool = True):
        self.tasks: dict[str, Task] = {t.id: t for t in tasks or []}
        self.authorized = authorized
        self.reachable = True
        self.delay = 0.0
        self.calls: list[GatewayCall] = []
        self._failures: dict[tuple[str, str | None], RemoteError] = {}
        self._ids = itertools.count(1)
        self._in_flight = 0
        self.max_in_flight = 0

    def fail(self, method: str, task_id: str | None = None, error: RemoteError | None = None) -> None:
        """Make a method fail, optionally only for one task id or title.

        Args:
            method: Gateway method name ("create_task", "list_tasks", ...).
            task_id: Restrict to this id (title for create_task).
            error: Error to raise; defaults to UnreachableError.
        """
        self._failures[(method, task_id)] = error or UnreachableError(f"{method} failed")

    def clear_failures(self) -> None:
        self._failures.clear()

    def calls_to(self, method: str) -> list[GatewayCall]:
        return [c for c in self.calls if c.method == method]

    async def _call(self, method: str, task_id: str | None = None, task: Task | None = None) -> None:
        self.calls.append(GatewayCall(method, task_id, task))
        self._in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
        finally:
            self._in_flight -= 1

        if not self.authorized:
            raise UnauthorizedError("No API token configured")
        if not self.reachable:
            raise UnreachableError("Remote unreachable")
        key = task.title if method == "create_task" and task else task_id
        error = self._failures.get((method, key)) or self._failures.get((method, None))
        if error:
            raise error

    async def list_tasks(self) -> list[Task]:
        await self._call("list_tasks")
        return list(self.tasks.values())

    async def get_task(self, task_id: str) -> Task:
        await self._call("get_task", task_id)
        if task_id not in self.tasks:
            raise NotFoundError(task_id)
        return self.tasks[task_id]

    async def create_task(self, task: Task) -> Task:
        await self._call("create_task", task=task)
        created = task.with_changes(key=Confirmed(f"srv-{next(self._ids)}"))
        self.tasks[created.id] = created
        return created

    async def update_task(self, task_id: str, task: Task) -> Task:
        await self._call("update_task", task_id, task)
        if task_id not in self.tasks:
            raise NotFoundError(task_id)
        updated = task.with_changes(key=Confirmed(task_id))
        self.tasks[task_id] = updated
        return updated

    async def delete_task(self, task_id: str) -> bool:
        await self._call("delete_task", task_id)
        if task_id not in self.tasks:
            raise NotFoundError(task_id)
        del self.tasks[task_id]
        return True

    async def ping(self) -> bool:
        return self.reachable
