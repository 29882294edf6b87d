"""Tests for the task and queue entry models."""

import pytest
from datetime import date, datetime

from tasksync.models import (
    Confirmed,
    OperationKind,
    Provisional,
    QueueEntry,
    Task,
    is_provisional_id,
    key_for,
    parse_due_date,
)


class TestTask:
    """Tests for the Task dataclass."""

    def test_new_task_is_provisional(self):
        task = Task.new("Buy milk")

        assert isinstance(task.key, Provisional)
        assert is_provisional_id(task.id)
        assert task.completed is False
        assert task.description == ""

    def test_new_tasks_get_unique_ids(self):
        assert Task.new("a").id != Task.new("a").id

    def test_blank_title_normalized(self):
        assert Task(key=Confirmed("x"), title="  ").title == "Untitled"

    def test_to_dict(self):
        task = Task(
            key=Confirmed("abc"),
            title="Pay rent",
            important=True,
            due_date=date(2026, 11, 1),
        )

        assert task.to_dict() == {
            "id": "abc",
            "title": "Pay rent",
            "completed": False,
            "important": True,
            "due_date": "2026-11-01",
            "description": "",
        }

    def test_from_dict_restores_identity(self):
        confirmed = Task.from_dict({"id": "srv-1", "title": "A"})
        provisional = Task.from_dict({"id": "local-123", "title": "B"})

        assert confirmed.key == Confirmed("srv-1")
        assert provisional.key == Provisional("local-123")

    def test_with_changes_parses_due_date(self):
        task = Task(key=Confirmed("x")).with_changes(due_date="2026-03-04")

        assert task.due_date == date(2026, 3, 4)

    def test_with_changes_normalizes_title(self):
        task = Task(key=Confirmed("x"), title="Keep").with_changes(title="")
        assert task.title == "Untitled"


class TestHelpers:
    """Tests for id and date helpers."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, None),
            ("", None),
            ("2026-10-18", date(2026, 10, 18)),
            ("2026-10-18T09:30:00.000Z", date(2026, 10, 18)),
            (datetime(2026, 10, 18, 9, 30), date(2026, 10, 18)),
            (date(2026, 10, 18), date(2026, 10, 18)),
        ],
    )
    def test_parse_due_date(self, value, expected):
        assert parse_due_date(value) == expected

    def test_key_for(self):
        assert key_for("local-1") == Provisional("local-1")
        assert key_for("64ab") == Confirmed("64ab")


class TestQueueEntry:
    """Tests for QueueEntry."""

    def test_target_id(self):
        create = QueueEntry(1, OperationKind.CREATE, {"title": "t", "client_id": "local-1"})
        delete = QueueEntry(2, OperationKind.DELETE, {"id": "abc"})

        assert create.target_id == "local-1"
        assert delete.target_id == "abc"

    def test_to_dict(self):
        entry = QueueEntry(
            3, OperationKind.UPDATE, {"id": "a"}, enqueued_at=datetime(2026, 1, 2, 3, 4, 5)
        )

        assert entry.to_dict() == {
            "sequence": 3,
            "kind": "update",
            "payload": {"id": "a"},
            "enqueued_at": "2026-01-02T03:04:05",
        }
