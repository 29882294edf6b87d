"""Durable key-value store for task records."""

import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime

from ..models import Confirmed, Provisional, Task, parse_due_date
from .database import Database

logger = logging.getLogger(__name__)

_UPSERT = """
INSERT INTO tasks (
    id, title, completed, important, due_date, description, provisional, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    title = excluded.title,
    completed = excluded.completed,
    important = excluded.important,
    due_date = excluded.due_date,
    description = excluded.description,
    provisional = excluded.provisional,
    updated_at = excluded.updated_at
"""


def _row_params(task: Task) -> tuple:
    return (
        task.id,
        task.title,
        int(task.completed),
        int(task.important),
        task.due_date.isoformat() if task.due_date else None,
        task.description,
        int(task.provisional),
        datetime.now().isoformat(),
    )


def _row_to_task(row: sqlite3.Row) -> Task:
    key = Provisional(row["id"]) if row["provisional"] else Confirmed(row["id"])
    return Task(
        key=key,
        title=row["title"],
        completed=bool(row["completed"]),
        important=bool(row["important"]),
        due_date=parse_due_date(row["due_date"]),
        description=row["description"],
    )


class TaskStore:
    """Local task records keyed by id.

    Never touches the network. Every call runs in its own transaction on
    the shared connection, so operations on one id never interleave.
    """

    def __init__(self, db: Database):
        self.db = db

    def get_all(self) -> list[Task]:
        with self.db.transaction() as conn:
            rows = conn.execute("SELECT * FROM tasks ORDER BY rowid").fetchall()
        return [_row_to_task(row) for row in rows]

    def get(self, task_id: str) -> Task | None:
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ?", (task_id,)
            ).fetchone()
        return _row_to_task(row) if row else None

    def put(self, task: Task) -> None:
        """Insert or overwrite a task by id."""
        with self.db.transaction() as conn:
            conn.execute(_UPSERT, _row_params(task))
        logger.debug(f"Stored task {task.id}")

    def put_many(self, tasks: Iterable[Task]) -> int:
        """Upsert several tasks as a single durable unit.

        Returns:
            Number of tasks written.
        """
        params = [_row_params(t) for t in tasks]
        with self.db.transaction() as conn:
            conn.executemany(_UPSERT, params)
        return len(params)

    def delete(self, task_id: str) -> bool:
        """Delete a task. Missing ids are not an error.

        Returns:
            True if a record was removed.
        """
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        return cursor.rowcount > 0

    def clear(self) -> None:
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM tasks")
        logger.info("Cleared all local tasks")

    def replace_all(self, tasks: Iterable[Task], keep_ids: Iterable[str] = ()) -> int:
        """Replace the store content with a fresh listing.

        Clear and upsert run in one transaction, so a failure leaves the
        previous content intact.

        Args:
            tasks: The complete remote listing.
            keep_ids: Provisional ids to preserve because their create is
                still pending.

        Returns:
            Number of tasks written.
        """
        params = [_row_params(t) for t in tasks]
        keep = list(keep_ids)
        with self.db.transaction() as conn:
            if keep:
                placeholders = ",".join("?" * len(keep))
                conn.execute(
                    f"DELETE FROM tasks WHERE id NOT IN ({placeholders})", keep
                )
            else:
                conn.execute("DELETE FROM tasks")
            conn.executemany(_UPSERT, params)

        logger.info(f"Replaced local tasks with {len(params)} remote records")
        return len(params)

    def replace_provisional(self, client_id: str, task: Task) -> None:
        """Swap a provisional record for its confirmed counterpart.

        Local edits made to the provisional record since the create was
        queued are kept; only the identity changes. If the provisional record
        was deleted locally, nothing is written.
        """
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ?", (client_id,)
            ).fetchone()
            if row is None:
                return
            local = _row_to_task(row)
            confirmed = local.with_changes(key=task.key)
            conn.execute("DELETE FROM tasks WHERE id = ?", (client_id,))
            conn.execute(_UPSERT, _row_params(confirmed))

        logger.debug(f"Provisional task {client_id} confirmed as {task.id}")

    def count(self) -> int:
        with self.db.transaction() as conn:
            return conn.execute("SELECT COUNT(*) FROM tasks").fetchone()[0]
