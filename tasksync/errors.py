"""Exception hierarchy for the task sync engine."""


class TaskSyncError(Exception):
    """Base class for all tasksync errors."""


class LocalStorageError(TaskSyncError):
    """The local database could not be read or written.

    Fatal to the triggering call; the engine never retries these.
    """


class InvalidOperationError(TaskSyncError):
    """A queued operation is structurally invalid and cannot be applied."""


class TaskNotFoundError(TaskSyncError):
    """No task with the given id exists in the local store."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class RemoteError(TaskSyncError):
    """Base class for failures reported by a remote gateway."""


class UnreachableError(RemoteError):
    """The remote service could not be reached (connection error, timeout)."""


class ServerError(RemoteError):
    """The remote service answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UnauthorizedError(RemoteError):
    """No credential configured, or the remote rejected it."""


class NotFoundError(RemoteError):
    """The remote record does not exist."""

    def __init__(self, task_id: str):
        super().__init__(f"Remote task not found: {task_id}")
        self.task_id = task_id
