"""Durable, insertion-ordered queue of pending mutations.

Entries are appended by producers and removed by the sync orchestrator once
their remote effect is confirmed. They are never reordered or merged.
"""

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any

from ..errors import InvalidOperationError
from ..models import OperationKind, QueueEntry, is_provisional_id
from .database import Database

logger = logging.getLogger(__name__)


def _row_to_entry(row: sqlite3.Row) -> QueueEntry:
    return QueueEntry(
        sequence=row["sequence"],
        kind=OperationKind(row["kind"]),
        payload=json.loads(row["payload"]),
        enqueued_at=datetime.fromisoformat(row["enqueued_at"]),
    )


class OperationLog:
    """Pending create/update/delete intents, ordered by sequence."""

    def __init__(self, db: Database):
        self.db = db

    def enqueue(self, kind: OperationKind | str, payload: dict[str, Any]) -> int:
        """Append an intent durably.

        Args:
            kind: Operation kind, or its string value.
            payload: Task data (full record, or {"id": ...} for delete).

        Returns:
            The sequence number assigned to the entry.

        Raises:
            InvalidOperationError: If the kind is unknown.
            LocalStorageError: If the append could not be persisted.
        """
        try:
            kind = OperationKind(kind)
        except ValueError as e:
            raise InvalidOperationError(f"Unknown operation kind: {kind}") from e

        # The INSERT allocates the sequence inside the same transaction
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO sync_queue (kind, payload, enqueued_at) VALUES (?, ?, ?)",
                (kind.value, json.dumps(payload), datetime.now().isoformat()),
            )
            sequence = cursor.lastrowid

        logger.debug(f"Queued {kind.value} as #{sequence}")
        return sequence

    def list_pending(self) -> list[QueueEntry]:
        """All pending entries, oldest first."""
        with self.db.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM sync_queue ORDER BY sequence ASC"
            ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def get(self, sequence: int) -> QueueEntry | None:
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM sync_queue WHERE sequence = ?", (sequence,)
            ).fetchone()
        return _row_to_entry(row) if row else None

    def remove(self, sequence: int) -> bool:
        """Remove an entry. Removing a missing entry is a no-op.

        Returns:
            True if an entry was removed.
        """
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM sync_queue WHERE sequence = ?", (sequence,)
            )
        return cursor.rowcount > 0

    def clear(self) -> None:
        """Drop every entry. Only used by a full data reset."""
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM sync_queue")
        logger.info("Cleared sync queue")

    def count(self) -> int:
        with self.db.transaction() as conn:
            return conn.execute("SELECT COUNT(*) FROM sync_queue").fetchone()[0]

    def rebind_id(self, old_id: str, new_id: str) -> int:
        """Point pending update/delete entries at a newly confirmed id.

        Returns:
            Number of entries rewritten.
        """
        rewritten = 0
        with self.db.transaction() as conn:
            rows = conn.execute(
                "SELECT sequence, payload FROM sync_queue WHERE kind != ?",
                (OperationKind.CREATE.value,),
            ).fetchall()
            for row in rows:
                payload = json.loads(row["payload"])
                if payload.get("id") != old_id:
                    continue
                payload["id"] = new_id
                conn.execute(
                    "UPDATE sync_queue SET payload = ? WHERE sequence = ?",
                    (json.dumps(payload), row["sequence"]),
                )
                rewritten += 1

        if rewritten:
            logger.debug(f"Rebound {rewritten} queued entries from {old_id} to {new_id}")
        return rewritten

    def pending_client_ids(self) -> set[str]:
        """Client ids of provisional tasks whose create is still queued."""
        ids = set()
        for entry in self.list_pending():
            if entry.kind is OperationKind.CREATE:
                client_id = entry.payload.get("client_id")
                if isinstance(client_id, str) and is_provisional_id(client_id):
                    ids.add(client_id)
        return ids

    def get_stats(self) -> dict[str, Any]:
        """Queue statistics.

        Returns:
            Dictionary with total and per-kind counts and the oldest entry time.
        """
        with self.db.transaction() as conn:
            total = conn.execute("SELECT COUNT(*) FROM sync_queue").fetchone()[0]
            by_kind = {
                row[0]: row[1]
                for row in conn.execute(
                    "SELECT kind, COUNT(*) FROM sync_queue GROUP BY kind"
                )
            }
            oldest = conn.execute("SELECT MIN(enqueued_at) FROM sync_queue").fetchone()[0]

        return {
            "pending_entries": total,
            "entries_by_kind": by_kind,
            "oldest_enqueued_at": oldest,
        }
