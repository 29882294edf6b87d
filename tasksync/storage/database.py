"""SQLite database shared by the task store and the operation log.

Both collections live in one file. The schema is versioned through
``PRAGMA user_version`` so new migrations apply in place on startup.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..errors import LocalStorageError

logger = logging.getLogger(__name__)

# (version, script) pairs, applied in order to databases below that version
MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        -- Task records keyed by id
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            completed INTEGER NOT NULL DEFAULT 0,
            important INTEGER NOT NULL DEFAULT 0,
            due_date TEXT,
            description TEXT NOT NULL DEFAULT '',
            provisional INTEGER NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL
        );

        -- Pending mutations; AUTOINCREMENT never reuses a sequence
        CREATE TABLE IF NOT EXISTS sync_queue (
            sequence INTEGER PRIMARY KEY AUTOINCREMENT,
            kind TEXT NOT NULL,
            payload TEXT NOT NULL,
            enqueued_at TEXT NOT NULL
        );
        """,
    ),
    (
        2,
        """
        CREATE INDEX IF NOT EXISTS idx_tasks_completed ON tasks(completed);
        CREATE INDEX IF NOT EXISTS idx_tasks_important ON tasks(important);
        """,
    ),
]

SCHEMA_VERSION = MIGRATIONS[-1][0]


class Database:
    """Owns the SQLite connection and schema migrations."""

    def __init__(self, db_path: str | Path):
        """Initialize the database.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    @property
    def in_memory(self) -> bool:
        return str(self.db_path) == ":memory:"

    def connect(self) -> None:
        """Open the connection and bring the schema up to date."""
        if self._conn is not None:
            return

        try:
            if not self.in_memory:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._migrate(self._conn)
        except (sqlite3.Error, OSError) as e:
            self._conn = None
            raise LocalStorageError(f"Cannot open database {self.db_path}: {e}") from e

        logger.info(f"Database connected to {self.db_path}, schema v{SCHEMA_VERSION}")

    def _migrate(self, conn: sqlite3.Connection) -> None:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        for target, script in MIGRATIONS:
            if version >= target:
                continue
            conn.executescript(script)
            conn.execute(f"PRAGMA user_version = {target}")
            conn.commit()
            logger.info(f"Migrated database schema to v{target}")
            version = target

    @property
    def schema_version(self) -> int:
        conn = self._ensure_connected()
        return conn.execute("PRAGMA user_version").fetchone()[0]

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database connection exists."""
        if self._conn is None:
            self.connect()
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction.

        Commits on success, rolls back on error. SQLite failures are
        re-raised as LocalStorageError.
        """
        conn = self._ensure_connected()
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            logger.error(f"Local storage failure: {e}")
            raise LocalStorageError(str(e)) from e
