"""Remote gateway for a Cockpit CMS content collection.

Tasks live in a Cockpit "collection" model and are read and written through
the content API with an ``api-key`` header.
"""

import asyncio
import logging
from typing import Any

import httpx

from ..errors import NotFoundError, ServerError, UnauthorizedError, UnreachableError
from ..models import Confirmed, Task, parse_due_date
from .gateway import RemoteGateway

logger = logging.getLogger(__name__)

# Methods safe to repeat after a connection failure
IDEMPOTENT_METHODS = ("GET", "DELETE")


def task_from_remote(data: dict[str, Any]) -> Task:
    """Convert a Cockpit item into a Task."""
    return Task(
        key=Confirmed(str(data["_id"])),
        title=data.get("title") or "",
        completed=bool(data.get("completed", False)),
        important=bool(data.get("important", False)),
        due_date=parse_due_date(data.get("dueDate")),
        description=data.get("description") or "",
    )


def task_to_remote(task: Task) -> dict[str, Any]:
    """Convert a Task into the Cockpit item fields (without id)."""
    return {
        "title": task.title,
        "completed": task.completed,
        "important": task.important,
        "dueDate": task.due_date.isoformat() if task.due_date else None,
        "description": task.description,
        "_state": 1,  # published
    }


class CockpitGateway(RemoteGateway):
    """Cockpit CMS implementation of the remote gateway."""

    def __init__(
        self,
        base_url: str,
        content_name: str = "tasks",
        api_token: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the gateway.

        Args:
            base_url: API root (e.g., "https://cms.example.com/:space/api").
            content_name: Name of the collection holding tasks.
            api_token: Cockpit API key. Calls fail with UnauthorizedError
                while it is unset.
            timeout: Per-request timeout in seconds.
            max_retries: Attempts for idempotent requests.
            retry_backoff: Initial backoff between attempts in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.base_url = base_url.rstrip("/")
        self.content_name = content_name
        self.api_token = api_token
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_backoff = retry_backoff
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def set_token(self, token: str | None) -> None:
        self.api_token = token or None

    @property
    def has_token(self) -> bool:
        return bool(self.api_token)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Any = None,
        task_id: str | None = None,
    ) -> Any:
        """Make an API request, retrying idempotent calls with backoff.

        Returns:
            Decoded JSON body, or None for an empty body.
        """
        if not self.api_token:
            raise UnauthorizedError(
                "API token not configured. Set remote.api_token or TASKSYNC_API_TOKEN."
            )

        client = await self._get_client()
        headers = {"api-key": self.api_token}
        attempts = self.max_retries if method in IDEMPOTENT_METHODS else 1
        backoff = self.retry_backoff
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                response = await client.request(
                    method, path, json=json_data, headers=headers
                )
            except (httpx.ConnectError, httpx.TimeoutException) as e:
                logger.warning(
                    f"{method} {path} unreachable ({type(e).__name__}), "
                    f"attempt {attempt + 1}/{attempts}"
                )
                last_error = UnreachableError(f"{method} {path}: {e}")
            except httpx.HTTPError as e:
                raise UnreachableError(f"{method} {path}: {e}") from e
            else:
                if response.status_code in (401, 403):
                    raise UnauthorizedError(
                        f"API key rejected: HTTP {response.status_code}"
                    )
                if response.status_code == 404 and task_id is not None:
                    raise NotFoundError(task_id)
                if response.is_success:
                    return self._decode(response, method, path)
                if response.status_code < 500:
                    # Client error, don't retry
                    raise ServerError(
                        f"HTTP {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                logger.warning(
                    f"Server error {response.status_code} on {method} {path}, "
                    f"attempt {attempt + 1}/{attempts}"
                )
                last_error = ServerError(
                    f"HTTP {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )

            # Exponential backoff
            if attempt < attempts - 1:
                await asyncio.sleep(backoff)
                backoff *= 2

        raise last_error

    @staticmethod
    def _decode(response: httpx.Response, method: str, path: str) -> Any:
        """Decode a success body; anything but JSON is a server fault."""
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ServerError(
                f"{method} {path}: unreadable response body ({e})",
                status_code=response.status_code,
            ) from e

    @staticmethod
    def _to_task(data: Any) -> Task:
        try:
            return task_from_remote(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ServerError(f"Malformed task item from remote: {e!r}") from e

    async def list_tasks(self) -> list[Task]:
        data = await self._request("GET", f"/content/items/{self.content_name}")
        return [self._to_task(item) for item in data or []]

    async def get_task(self, task_id: str) -> Task:
        data = await self._request(
            "GET", f"/content/item/{self.content_name}/{task_id}", task_id=task_id
        )
        if not data:
            raise NotFoundError(task_id)
        return self._to_task(data)

    async def create_task(self, task: Task) -> Task:
        data = await self._request(
            "POST",
            f"/content/item/{self.content_name}",
            json_data={"data": task_to_remote(task)},
        )
        created = self._to_task(data)
        logger.debug(f"Created remote task {created.id}")
        return created

    async def update_task(self, task_id: str, task: Task) -> Task:
        # Cockpit updates through the create endpoint when _id is present
        fields = task_to_remote(task)
        fields["_id"] = task_id
        data = await self._request(
            "POST",
            f"/content/item/{self.content_name}",
            json_data={"data": fields},
            task_id=task_id,
        )
        return self._to_task(data)

    async def delete_task(self, task_id: str) -> bool:
        await self._request(
            "DELETE", f"/content/item/{self.content_name}/{task_id}", task_id=task_id
        )
        return True

    async def ping(self) -> bool:
        """Any HTTP answer from the API root counts as reachable."""
        client = await self._get_client()
        try:
            await client.get("/")
            return True
        except httpx.HTTPError as e:
            logger.debug(f"Ping failed: {e}")
            return False
