"""Tests for TaskService."""

import pytest
from datetime import date

from tasksync.errors import TaskNotFoundError
from tasksync.models import Confirmed, OperationKind, Task
from tasksync.remote import InMemoryGateway
from tasksync.service import TaskService
from tasksync.storage import Database, OperationLog, TaskStore
from tasksync.sync import ConnectivityMonitor, SyncOrchestrator, SyncStatus


@pytest.fixture
def db():
    db = Database(":memory:")
    db.connect()
    yield db
    db.close()


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def monitor():
    return ConnectivityMonitor(initial_online=False)


@pytest.fixture
def service(db, gateway, monitor):
    """Service over an offline engine."""
    store = TaskStore(db)
    orchestrator = SyncOrchestrator(store, OperationLog(db), gateway, monitor)
    return TaskService(store, orchestrator)


class TestTaskMutations:
    """Tests for optimistic local writes."""

    def test_add_task_is_provisional_and_queued(self, service):
        """Test that a new task is stored locally and its create queued."""
        task = service.add_task("  Buy milk  ", due_date="2026-10-20", important=True)

        assert task.provisional
        assert task.title == "Buy milk"
        assert service.store.get(task.id) == task

        [entry] = service.log.list_pending()
        assert entry.kind is OperationKind.CREATE
        assert entry.payload["client_id"] == task.id
        assert entry.payload["due_date"] == "2026-10-20"
        assert entry.payload["important"] is True

    def test_blank_title_uses_default(self, service):
        assert service.add_task("   ").title == "Untitled"

    def test_toggle_complete(self, service):
        task = service.add_task("Walk dog")

        toggled = service.toggle_complete(task.id)

        assert toggled.completed is True
        assert service.store.get(task.id).completed is True
        update = service.log.list_pending()[-1]
        assert update.kind is OperationKind.UPDATE
        assert update.payload["completed"] is True
        assert update.payload["id"] == task.id

    def test_toggle_important_twice(self, service):
        task = service.add_task("Call mom")

        service.toggle_important(task.id)
        again = service.toggle_important(task.id)

        assert again.important is False
        assert service.log.count() == 3

    def test_update_task(self, service):
        task = service.add_task("Draft")

        updated = service.update_task(
            task.id, title="", description="Notes", due_date="2026-12-24"
        )

        assert updated.title == "Untitled"
        assert updated.description == "Notes"
        assert updated.due_date == date(2026, 12, 24)

    def test_update_rejects_unknown_fields(self, service):
        task = service.add_task("x")
        with pytest.raises(ValueError):
            service.update_task(task.id, owner="me")

    def test_unknown_task_raises(self, service):
        with pytest.raises(TaskNotFoundError):
            service.toggle_complete("nope")
        with pytest.raises(TaskNotFoundError):
            service.delete_task("nope")

    def test_delete_task(self, service):
        task = service.add_task("Temp")

        service.delete_task(task.id)

        assert service.store.get(task.id) is None
        entry = service.log.list_pending()[-1]
        assert entry.kind is OperationKind.DELETE
        assert entry.payload == {"id": task.id}

    def test_clear_all_data(self, service):
        service.add_task("a")
        service.add_task("b")

        service.clear_all_data()

        assert service.list_tasks() == []
        assert service.log.count() == 0


class TestTaskQueries:
    """Tests for listing and filtering."""

    @pytest.fixture
    def populated(self, service):
        service.store.put_many([
            Task(key=Confirmed("done"), title="Done", completed=True),
            Task(key=Confirmed("later"), title="Later", due_date=date(2026, 12, 1)),
            Task(key=Confirmed("soon"), title="Soon", due_date=date(2026, 10, 20)),
            Task(key=Confirmed("star"), title="Star", important=True),
            Task(key=Confirmed("plain"), title="Plain", description="groceries list"),
        ])
        return service

    def test_sort_order(self, populated):
        """Test incomplete first, then important, then by due date."""
        ids = [t.id for t in populated.list_tasks()]
        assert ids == ["star", "soon", "later", "plain", "done"]

    def test_filters(self, populated):
        assert [t.id for t in populated.list_tasks("completed")] == ["done"]
        assert [t.id for t in populated.list_tasks("important")] == ["star"]
        assert "done" not in [t.id for t in populated.list_tasks("active")]

    def test_search_matches_title_and_description(self, populated):
        assert [t.id for t in populated.list_tasks(search="SOON")] == ["soon"]
        assert [t.id for t in populated.list_tasks(search="grocer")] == ["plain"]

    def test_unknown_filter(self, populated):
        with pytest.raises(ValueError):
            populated.list_tasks("overdue")

    def test_filter_counts(self, populated):
        assert populated.filter_counts() == {
            "all": 5,
            "active": 4,
            "completed": 1,
            "important": 1,
        }


class TestRefresh:
    """Tests for the end-to-end offline workflow."""

    @pytest.mark.asyncio
    async def test_offline_edits_reach_remote_after_refresh(self, service, monitor, gateway):
        """Test that tasks created and edited offline end up confirmed."""
        task = service.add_task("Offline task")
        service.toggle_complete(task.id)

        monitor.set_online(True)
        await service.orchestrator.wait_idle()
        result = await service.refresh()

        assert result.status == SyncStatus.SUCCESS
        [local] = service.list_tasks()
        assert local.provisional is False
        assert local.completed is True
        assert gateway.tasks[local.id].completed is True
        assert service.log.count() == 0

    @pytest.mark.asyncio
    async def test_refresh_offline(self, service):
        result = await service.refresh()
        assert result.status == SyncStatus.OFFLINE
