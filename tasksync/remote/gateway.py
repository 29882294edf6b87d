"""Abstract contract for the remote task service."""

from abc import ABC, abstractmethod

from ..models import Task


class RemoteGateway(ABC):
    """CRUD access to the authoritative task collection.

    Every method raises UnauthorizedError when no credential is configured
    or it is rejected, UnreachableError on network failure, and ServerError
    on any other non-success status.
    """

    @abstractmethod
    async def list_tasks(self) -> list[Task]:
        """Fetch every remote task."""
        pass

    @abstractmethod
    async def get_task(self, task_id: str) -> Task:
        """Fetch one task.

        Raises:
            NotFoundError: If the task does not exist.
        """
        pass

    @abstractmethod
    async def create_task(self, task: Task) -> Task:
        """Create a task. The server assigns the final id.

        Args:
            task: Task data; its id is ignored.

        Returns:
            The created task with its confirmed id.
        """
        pass

    @abstractmethod
    async def update_task(self, task_id: str, task: Task) -> Task:
        """Overwrite a task's fields."""
        pass

    @abstractmethod
    async def delete_task(self, task_id: str) -> bool:
        """Delete a task.

        Raises:
            NotFoundError: If the task does not exist.
        """
        pass

    async def ping(self) -> bool:
        """Check whether the remote service is reachable.

        Default implementation lists tasks; subclasses may override with
        something cheaper.
        """
        try:
            await self.list_tasks()
            return True
        except Exception:
            return False

    async def close(self) -> None:
        """Release network resources."""
        pass
