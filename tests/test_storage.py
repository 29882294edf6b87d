"""Tests for the local database, task store, and operation log."""

import sqlite3

import pytest
from datetime import date

from tasksync.errors import InvalidOperationError, LocalStorageError
from tasksync.models import Confirmed, OperationKind, Provisional, Task
from tasksync.storage import Database, OperationLog, TaskStore
from tasksync.storage.database import MIGRATIONS, SCHEMA_VERSION


@pytest.fixture
def db():
    """Create an in-memory database."""
    db = Database(":memory:")
    db.connect()
    yield db
    db.close()


@pytest.fixture
def store(db):
    return TaskStore(db)


@pytest.fixture
def log(db):
    return OperationLog(db)


def make_task(task_id: str, **fields) -> Task:
    return Task(key=Confirmed(task_id), **fields)


class TestDatabaseSchema:
    """Tests for schema creation and migrations."""

    def test_connect_creates_tables(self, db):
        """Test that connect() creates both collections."""
        tables = db._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
        table_names = [t[0] for t in tables]

        assert "tasks" in table_names
        assert "sync_queue" in table_names

    def test_schema_version_is_latest(self, db):
        """Test that a fresh database is at the latest schema version."""
        assert db.schema_version == SCHEMA_VERSION

    def test_connect_is_idempotent(self, db):
        """Test that calling connect() again keeps the same connection."""
        conn = db._conn
        db.connect()
        assert db._conn is conn

    def test_migrates_v1_database_in_place(self, tmp_path):
        """Test that an older database gains new indexes without losing data."""
        path = tmp_path / "old.db"
        conn = sqlite3.connect(str(path))
        conn.executescript(MIGRATIONS[0][1])
        conn.execute(
            "INSERT INTO tasks (id, title, updated_at) VALUES ('a', 'Keep me', '2026-01-01')"
        )
        conn.execute("PRAGMA user_version = 1")
        conn.commit()
        conn.close()

        db = Database(path)
        db.connect()

        assert db.schema_version == SCHEMA_VERSION
        indexes = [
            row[0]
            for row in db._conn.execute(
                "SELECT name FROM sqlite_master WHERE type='index'"
            )
        ]
        assert "idx_tasks_completed" in indexes
        assert TaskStore(db).get("a").title == "Keep me"
        db.close()

    def test_unopenable_path_raises_storage_error(self, tmp_path):
        """Test that an unusable database path surfaces LocalStorageError."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        db = Database(blocker / "tasks.db")

        with pytest.raises(LocalStorageError):
            db.connect()


class TestTaskStore:
    """Tests for the entity store."""

    def test_put_and_get(self, store):
        """Test storing and reading back a task."""
        task = make_task("a", title="Buy milk", due_date=date(2026, 5, 1))
        store.put(task)

        loaded = store.get("a")

        assert loaded == task
        assert loaded.due_date == date(2026, 5, 1)

    def test_get_missing_returns_none(self, store):
        assert store.get("nope") is None

    def test_put_overwrites_by_id(self, store):
        """Test that put is an upsert keyed by id."""
        store.put(make_task("a", title="First"))
        store.put(make_task("a", title="Second", completed=True))

        assert store.count() == 1
        assert store.get("a").title == "Second"
        assert store.get("a").completed is True

    def test_provisional_identity_round_trips(self, store):
        """Test that provisional tasks keep their tagged identity."""
        task = Task.new("Offline task")
        store.put(task)

        loaded = store.get(task.id)

        assert isinstance(loaded.key, Provisional)
        assert loaded.provisional

    def test_put_many(self, store):
        count = store.put_many([make_task("a"), make_task("b"), make_task("c")])

        assert count == 3
        assert [t.id for t in store.get_all()] == ["a", "b", "c"]

    def test_delete_is_idempotent(self, store):
        """Test that deleting a missing id is not an error."""
        store.put(make_task("a"))

        assert store.delete("a") is True
        assert store.delete("a") is False
        assert store.get("a") is None

    def test_clear(self, store):
        store.put_many([make_task("a"), make_task("b")])
        store.clear()
        assert store.get_all() == []

    def test_replace_all(self, store):
        """Test that replace_all swaps the content for the new listing."""
        store.put_many([make_task("old1"), make_task("old2")])

        store.replace_all([make_task("new1", title="Fresh")])

        assert [t.id for t in store.get_all()] == ["new1"]
        assert store.get("new1").title == "Fresh"

    def test_replace_all_keeps_listed_provisional_ids(self, store):
        """Test that pending provisional records survive a replace."""
        pending = Task.new("Not yet pushed")
        store.put(pending)
        store.put(make_task("stale"))

        store.replace_all([make_task("remote")], keep_ids=[pending.id])

        ids = {t.id for t in store.get_all()}
        assert ids == {pending.id, "remote"}

    def test_replace_provisional(self, store):
        """Test swapping a provisional record for the confirmed one."""
        local = Task.new("Draft")
        store.put(local)
        store.put(local.with_changes(completed=True))

        store.replace_provisional(local.id, make_task("srv-9", title="Draft"))

        assert store.get(local.id) is None
        confirmed = store.get("srv-9")
        assert confirmed.provisional is False
        assert confirmed.completed is True  # local edit kept

    def test_replace_provisional_after_local_delete(self, store):
        """Test that a deleted provisional record is not resurrected."""
        store.replace_provisional("local-gone", make_task("srv-1"))
        assert store.get("srv-1") is None

    def test_persists_across_restart(self, tmp_path):
        """Test that tasks survive closing and reopening the database."""
        path = tmp_path / "tasks.db"
        db = Database(path)
        TaskStore(db).put(make_task("a", title="Durable"))
        db.close()

        reopened = Database(path)
        assert TaskStore(reopened).get("a").title == "Durable"
        reopened.close()


class TestOperationLog:
    """Tests for the durable operation queue."""

    def test_enqueue_returns_increasing_sequences(self, log):
        s1 = log.enqueue(OperationKind.CREATE, {"title": "a"})
        s2 = log.enqueue("update", {"id": "x"})
        s3 = log.enqueue("delete", {"id": "x"})

        assert s1 < s2 < s3

    def test_list_pending_preserves_order(self, log):
        """Test that entries come back in enqueue order."""
        sequences = [log.enqueue("update", {"id": str(i)}) for i in range(5)]

        pending = log.list_pending()

        assert [e.sequence for e in pending] == sequences
        assert [e.payload["id"] for e in pending] == ["0", "1", "2", "3", "4"]
        assert all(e.kind is OperationKind.UPDATE for e in pending)

    def test_remove_is_idempotent(self, log):
        """Test that removing twice is a no-op the second time."""
        s1 = log.enqueue("delete", {"id": "a"})
        log.enqueue("delete", {"id": "b"})

        assert log.remove(s1) is True
        assert log.remove(s1) is False
        assert log.count() == 1

    def test_sequences_are_not_reused(self, log):
        """Test that a removed sequence is never handed out again."""
        s1 = log.enqueue("delete", {"id": "a"})
        log.remove(s1)

        s2 = log.enqueue("delete", {"id": "b"})

        assert s2 > s1

    def test_unknown_kind_rejected(self, log):
        with pytest.raises(InvalidOperationError):
            log.enqueue("upsert", {"id": "a"})
        assert log.count() == 0

    def test_enqueue_failure_raises(self, db, log):
        """Test that a failed append surfaces instead of pretending to queue."""
        db._conn.execute("DROP TABLE sync_queue")

        with pytest.raises(LocalStorageError):
            log.enqueue("create", {"title": "lost?"})

    def test_clear(self, log):
        log.enqueue("delete", {"id": "a"})
        log.enqueue("delete", {"id": "b"})
        log.clear()
        assert log.list_pending() == []

    def test_get(self, log):
        seq = log.enqueue("update", {"id": "a", "completed": True})

        entry = log.get(seq)

        assert entry.payload == {"id": "a", "completed": True}
        assert entry.target_id == "a"
        assert log.get(seq + 100) is None

    def test_rebind_id(self, log):
        """Test that pending entries follow a provisional id to its server id."""
        log.enqueue("create", {"title": "t", "client_id": "local-1"})
        log.enqueue("update", {"id": "local-1", "completed": True})
        log.enqueue("delete", {"id": "local-1"})
        log.enqueue("update", {"id": "other"})

        rewritten = log.rebind_id("local-1", "srv-1")

        assert rewritten == 2
        ids = [e.payload.get("id") for e in log.list_pending()]
        assert ids == [None, "srv-1", "srv-1", "other"]

    def test_pending_client_ids(self, log):
        log.enqueue("create", {"title": "a", "client_id": "local-a"})
        log.enqueue("create", {"title": "b"})
        log.enqueue("create", {"title": "c", "client_id": 7})
        log.enqueue("update", {"id": "local-c"})

        assert log.pending_client_ids() == {"local-a"}

    def test_get_stats(self, log):
        log.enqueue("create", {"title": "a"})
        log.enqueue("update", {"id": "a"})
        log.enqueue("update", {"id": "b"})

        stats = log.get_stats()

        assert stats["pending_entries"] == 3
        assert stats["entries_by_kind"] == {"create": 1, "update": 2}
        assert stats["oldest_enqueued_at"] is not None
