"""Data model: tasks, their identity, and queued operations."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any

DEFAULT_TITLE = "Untitled"
PROVISIONAL_PREFIX = "local-"


@dataclass(frozen=True)
class Provisional:
    """Identity of a task created locally and not yet confirmed remotely."""

    client_id: str

    @property
    def value(self) -> str:
        return self.client_id


@dataclass(frozen=True)
class Confirmed:
    """Identity issued by the remote service."""

    server_id: str

    @property
    def value(self) -> str:
        return self.server_id


TaskKey = Provisional | Confirmed


def new_client_id() -> str:
    """Generate a placeholder id for a task created offline."""
    return f"{PROVISIONAL_PREFIX}{uuid.uuid4().hex}"


def is_provisional_id(task_id: str) -> bool:
    return task_id.startswith(PROVISIONAL_PREFIX)


def key_for(task_id: str) -> TaskKey:
    """Build the tagged identity for a stored id."""
    if is_provisional_id(task_id):
        return Provisional(task_id)
    return Confirmed(task_id)


def normalize_title(title: str | None) -> str:
    """Blank titles become the default title."""
    title = (title or "").strip()
    return title or DEFAULT_TITLE


def parse_due_date(value: Any) -> date | None:
    """Parse a due date from a date, a datetime, or an ISO string."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Remote services sometimes send full timestamps
    return date.fromisoformat(str(value)[:10])


@dataclass
class Task:
    """A single task record."""

    key: TaskKey
    title: str = DEFAULT_TITLE
    completed: bool = False
    important: bool = False
    due_date: date | None = None
    description: str = ""

    def __post_init__(self) -> None:
        self.title = normalize_title(self.title)
        self.description = self.description or ""

    @property
    def id(self) -> str:
        return self.key.value

    @property
    def provisional(self) -> bool:
        return isinstance(self.key, Provisional)

    @classmethod
    def new(
        cls,
        title: str,
        completed: bool = False,
        important: bool = False,
        due_date: date | None = None,
        description: str = "",
    ) -> "Task":
        """Create a provisional task with a fresh client id."""
        return cls(
            key=Provisional(new_client_id()),
            title=title,
            completed=completed,
            important=important,
            due_date=due_date,
            description=description,
        )

    def with_changes(self, **changes: Any) -> "Task":
        """Return a copy with the given fields replaced."""
        if "due_date" in changes:
            changes["due_date"] = parse_due_date(changes["due_date"])
        return replace(self, **changes)

    def fields(self) -> dict[str, Any]:
        """The record fields without the id."""
        return {
            "title": self.title,
            "completed": self.completed,
            "important": self.important,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "description": self.description,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"id": self.id, **self.fields()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Create from dictionary. Requires an ``id`` key."""
        return cls(
            key=key_for(data["id"]),
            title=data.get("title", DEFAULT_TITLE),
            completed=bool(data.get("completed", False)),
            important=bool(data.get("important", False)),
            due_date=parse_due_date(data.get("due_date")),
            description=data.get("description") or "",
        )


class OperationKind(Enum):
    """Kind of mutation recorded in the operation log."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class QueueEntry:
    """A pending mutation intent."""

    sequence: int
    kind: OperationKind
    payload: dict[str, Any]
    enqueued_at: datetime = field(default_factory=datetime.now)

    @property
    def target_id(self) -> str | None:
        """Id of the record this entry acts on, if any."""
        if self.kind is OperationKind.CREATE:
            return self.payload.get("client_id")
        return self.payload.get("id")

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "kind": self.kind.value,
            "payload": self.payload,
            "enqueued_at": self.enqueued_at.isoformat(),
        }
