"""Sync orchestrator: drains the operation log and reconciles with the remote.

Only one drain or full sync runs at a time. A trigger that arrives while a
sync is in flight is dropped; the next connectivity flip or queued operation
tries again.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..errors import (
    InvalidOperationError,
    LocalStorageError,
    NotFoundError,
    RemoteError,
    UnauthorizedError,
)
from ..models import OperationKind, QueueEntry, Task, is_provisional_id, new_client_id
from ..remote import RemoteGateway
from ..storage import OperationLog, TaskStore
from .connectivity import ConnectivityMonitor

logger = logging.getLogger(__name__)

StatusListener = Callable[[dict[str, bool]], None]


class SyncState(Enum):
    """What the orchestrator is currently doing."""

    IDLE = "idle"
    DRAINING = "draining"
    PULLING = "pulling"


class SyncStatus(Enum):
    """Status of a sync operation."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some entries deferred
    FAILED = "failed"
    OFFLINE = "offline"
    SKIPPED = "skipped"  # Another sync was already running


class Outcome(Enum):
    """What happened to one queue entry during a drain."""

    APPLIED = "applied"
    DEFERRED = "deferred"
    DISCARDED = "discarded"


@dataclass
class EntryOutcome:
    """Result of applying one queue entry."""

    sequence: int
    kind: OperationKind
    outcome: Outcome
    reason: str | None = None
    task_id: str | None = None


@dataclass
class DrainReport:
    """Per-entry results of one drain pass."""

    outcomes: list[EntryOutcome] = field(default_factory=list)
    remaining: int = 0

    def _with(self, outcome: Outcome) -> list[EntryOutcome]:
        return [o for o in self.outcomes if o.outcome is outcome]

    @property
    def applied(self) -> list[EntryOutcome]:
        return self._with(Outcome.APPLIED)

    @property
    def deferred(self) -> list[EntryOutcome]:
        return self._with(Outcome.DEFERRED)

    @property
    def discarded(self) -> list[EntryOutcome]:
        return self._with(Outcome.DISCARDED)

    @property
    def complete(self) -> bool:
        """True if no entry from the snapshot was left behind."""
        return not self.deferred


@dataclass
class SyncResult:
    """Result of a drain or full sync."""

    status: SyncStatus
    drain: DrainReport | None = None
    entries_pulled: int = 0
    error: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)


class _AwaitingCreate(Exception):
    """Entry targets a provisional task whose create is not confirmed yet."""


def _task_from_payload(entry: QueueEntry, data: dict[str, Any]) -> Task:
    """Build a Task from queued fields, rejecting values that cannot be parsed."""
    try:
        return Task.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise InvalidOperationError(
            f"{entry.kind.value} entry #{entry.sequence} has malformed fields: {e}"
        ) from e


class SyncOrchestrator:
    """Pushes queued local mutations to the remote and pulls remote state.

    Supports:
    - Drain: apply pending queue entries in sequence order
    - Full sync: drain, then replace the local store with a remote listing
    - Observers: status events on online/syncing transitions
    """

    def __init__(
        self,
        store: TaskStore,
        log: OperationLog,
        gateway: RemoteGateway,
        monitor: ConnectivityMonitor,
        discard_invalid: bool = False,
    ):
        """Initialize the orchestrator.

        Args:
            store: Local task store.
            log: Operation log to drain.
            gateway: Remote service.
            monitor: Connectivity source; regaining connectivity starts a drain.
            discard_invalid: Remove structurally invalid entries instead of
                leaving them queued for the host to decide.
        """
        self.store = store
        self.log = log
        self.gateway = gateway
        self.monitor = monitor
        self.discard_invalid = discard_invalid

        self._listeners: list[StatusListener] = []
        self._syncing = False
        self._state = SyncState.IDLE
        self._background: set[asyncio.Task] = set()
        self._last_sync: datetime | None = None
        self.last_error: str | None = None

        monitor.on_change(self._handle_connectivity)

    @property
    def online(self) -> bool:
        return self.monitor.online

    @property
    def syncing(self) -> bool:
        return self._syncing

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def last_sync(self) -> datetime | None:
        """Get timestamp of last completed drain or full sync."""
        return self._last_sync

    # ==================== Observers ====================

    def add_listener(self, listener: StatusListener) -> None:
        """Subscribe to {"online": bool} and {"syncing": bool} events."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: dict[str, bool]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Status listener failed on {event}")

    def _handle_connectivity(self, online: bool) -> None:
        self._notify({"online": online})
        if online:
            self.request_drain()

    # ==================== Triggers ====================

    def queue_operation(self, kind: OperationKind | str, payload: dict[str, Any]) -> int:
        """Record a local mutation and try to push it if online.

        The drain runs in the background; this returns once the entry is
        durable.

        Returns:
            Sequence number of the queued entry.

        Raises:
            InvalidOperationError: Unknown kind.
            LocalStorageError: The entry could not be persisted.
        """
        sequence = self.log.enqueue(kind, payload)
        if self.online:
            self.request_drain()
        return sequence

    def request_drain(self) -> asyncio.Task | None:
        """Start a background drain unless offline or already syncing.

        Returns:
            The scheduled task, or None if the trigger was dropped.
        """
        if not self.online or self._syncing:
            logger.debug("Drain trigger dropped")
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; drain deferred to next trigger")
            return None

        task = loop.create_task(self._drain_in_background())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _drain_in_background(self) -> None:
        try:
            result = await self.drain()
        except (UnauthorizedError, LocalStorageError) as e:
            self.last_error = str(e)
            logger.error(f"Background sync aborted: {e}")
            return
        except Exception as e:
            self.last_error = str(e)
            logger.exception(f"Background sync failed: {e}")
            return

        if result.drain:
            logger.info(
                f"Sync: {result.status.value}, "
                f"applied={len(result.drain.applied)}, "
                f"deferred={len(result.drain.deferred)}"
            )

    async def wait_idle(self) -> None:
        """Wait for background drains started by triggers to finish."""
        while self._background:
            await asyncio.gather(*list(self._background))

    # ==================== Sync cycles ====================

    def _begin(self, state: SyncState) -> None:
        self._syncing = True
        self._state = state
        self._notify({"syncing": True})

    def _end(self) -> None:
        self._syncing = False
        self._state = SyncState.IDLE
        self._notify({"syncing": False})

    async def drain(self) -> SyncResult:
        """Run one drain pass over the operation log.

        Returns:
            SyncResult with the per-entry DrainReport.

        Raises:
            UnauthorizedError: The remote rejected our credential; the pass
                stopped and the remaining entries are untouched.
            LocalStorageError: The log or store could not be updated.
        """
        if not self.online:
            return SyncResult(status=SyncStatus.OFFLINE, error="Cannot sync while offline")
        if self._syncing:
            return SyncResult(status=SyncStatus.SKIPPED)

        self._begin(SyncState.DRAINING)
        try:
            report = await self._drain_pass()
        except UnauthorizedError as e:
            self.last_error = str(e)
            raise
        finally:
            self._end()

        self._last_sync = datetime.now()
        status = SyncStatus.SUCCESS if report.complete else SyncStatus.PARTIAL
        return SyncResult(status=status, drain=report, timestamp=self._last_sync)

    async def full_sync(self) -> SyncResult:
        """Drain the queue, then replace local tasks with the remote listing.

        The local store is only touched after the listing succeeds.

        Raises:
            UnauthorizedError: The remote rejected our credential.
            LocalStorageError: The log or store could not be updated.
        """
        if not self.online:
            return SyncResult(status=SyncStatus.OFFLINE, error="Cannot sync while offline")
        if self._syncing:
            return SyncResult(status=SyncStatus.SKIPPED)

        self._begin(SyncState.DRAINING)
        try:
            report = await self._drain_pass()

            self._state = SyncState.PULLING
            try:
                tasks = await self.gateway.list_tasks()
            except UnauthorizedError:
                raise
            except RemoteError as e:
                logger.warning(f"Pull failed, local tasks left unchanged: {e}")
                return SyncResult(status=SyncStatus.FAILED, drain=report, error=str(e))

            pulled = self.store.replace_all(tasks, keep_ids=self.log.pending_client_ids())
        except UnauthorizedError as e:
            self.last_error = str(e)
            raise
        finally:
            self._end()

        self._last_sync = datetime.now()
        self.last_error = None
        status = SyncStatus.SUCCESS if report.complete else SyncStatus.PARTIAL
        return SyncResult(
            status=status,
            drain=report,
            entries_pulled=pulled,
            timestamp=self._last_sync,
        )

    async def _drain_pass(self) -> DrainReport:
        # Snapshot: entries queued during the pass wait for the next drain
        entries = self.log.list_pending()
        report = DrainReport()
        confirmed: dict[str, str] = {}

        for entry in entries:
            report.outcomes.append(await self._process_entry(entry, confirmed))

        report.remaining = self.log.count()
        return report

    async def _process_entry(self, entry: QueueEntry, confirmed: dict[str, str]) -> EntryOutcome:
        """Apply one entry and translate failures into an outcome."""
        fields = {"sequence": entry.sequence, "kind": entry.kind.value}
        target = entry.target_id if isinstance(entry.payload, dict) else None
        if isinstance(target, str):
            fields["task_id"] = target

        try:
            task_id = await self._apply(entry, confirmed)
        except _AwaitingCreate as e:
            return EntryOutcome(entry.sequence, entry.kind, Outcome.DEFERRED, str(e))
        except InvalidOperationError as e:
            if self.discard_invalid:
                self.log.remove(entry.sequence)
                logger.warning(
                    f"Discarded invalid entry #{entry.sequence}: {e}",
                    extra={**fields, "outcome": Outcome.DISCARDED.value},
                )
                return EntryOutcome(entry.sequence, entry.kind, Outcome.DISCARDED, str(e))
            logger.warning(
                f"Invalid entry #{entry.sequence} kept for review: {e}",
                extra={**fields, "outcome": Outcome.DEFERRED.value},
            )
            return EntryOutcome(entry.sequence, entry.kind, Outcome.DEFERRED, str(e))
        except UnauthorizedError:
            logger.error(f"Sync aborted at entry #{entry.sequence}: unauthorized", extra=fields)
            raise
        except RemoteError as e:
            logger.warning(
                f"Entry #{entry.sequence} ({entry.kind.value}) deferred: {e}",
                extra={**fields, "outcome": Outcome.DEFERRED.value},
            )
            return EntryOutcome(entry.sequence, entry.kind, Outcome.DEFERRED, str(e))
        except LocalStorageError:
            raise
        except Exception as e:
            logger.exception(
                f"Entry #{entry.sequence} ({entry.kind.value}) failed unexpectedly",
                extra={**fields, "outcome": Outcome.DEFERRED.value},
            )
            return EntryOutcome(entry.sequence, entry.kind, Outcome.DEFERRED, str(e))

        self.log.remove(entry.sequence)
        logger.debug(
            f"Applied entry #{entry.sequence} ({entry.kind.value})",
            extra={**fields, "task_id": task_id, "outcome": Outcome.APPLIED.value},
        )
        return EntryOutcome(entry.sequence, entry.kind, Outcome.APPLIED, task_id=task_id)

    async def _apply(self, entry: QueueEntry, confirmed: dict[str, str]) -> str:
        """Send one entry to the remote.

        Returns:
            Id of the remote task affected.
        """
        payload = entry.payload
        if not isinstance(payload, dict):
            raise InvalidOperationError(f"Payload of #{entry.sequence} is not a record")

        if entry.kind is OperationKind.CREATE:
            client_id = payload.get("client_id")
            if client_id is not None and not isinstance(client_id, str):
                raise InvalidOperationError(
                    f"create entry #{entry.sequence} has a non-string client id"
                )
            task = _task_from_payload(entry, {**payload, "id": client_id or new_client_id()})
            created = await self.gateway.create_task(task)
            if client_id:
                self.store.replace_provisional(client_id, created)
                self.log.rebind_id(client_id, created.id)
                confirmed[client_id] = created.id
            return created.id

        task_id = payload.get("id")
        if not task_id or not isinstance(task_id, str):
            raise InvalidOperationError(
                f"{entry.kind.value} entry #{entry.sequence} has no valid task id"
            )
        # Snapshot entries still carry the provisional id
        task_id = confirmed.get(task_id, task_id)
        if is_provisional_id(task_id):
            if task_id in self.log.pending_client_ids():
                raise _AwaitingCreate(f"Awaiting remote create of {task_id}")
            raise InvalidOperationError(f"No pending create for provisional task {task_id}")

        if entry.kind is OperationKind.DELETE:
            try:
                await self.gateway.delete_task(task_id)
            except NotFoundError:
                logger.debug(f"Remote task {task_id} already deleted")
            return task_id

        task = await self._merge_update(entry, task_id)
        try:
            await self.gateway.update_task(task_id, task)
        except NotFoundError as e:
            raise InvalidOperationError(f"Cannot update missing remote task {task_id}") from e
        return task_id

    async def _merge_update(self, entry: QueueEntry, task_id: str) -> Task:
        """Complete a partial update payload from the best known record."""
        base = self.store.get(task_id)
        if base is None:
            try:
                base = await self.gateway.get_task(task_id)
            except NotFoundError as e:
                raise InvalidOperationError(
                    f"Cannot update missing remote task {task_id}"
                ) from e
        return _task_from_payload(entry, {**base.to_dict(), **entry.payload, "id": task_id})

    def discard(self, sequence: int) -> bool:
        """Drop a queue entry the host has decided not to apply."""
        removed = self.log.remove(sequence)
        if removed:
            logger.info(f"Discarded queue entry #{sequence}")
        return removed

    def get_sync_status(self) -> dict[str, Any]:
        """Get current sync status.

        Returns:
            Dictionary with connectivity, sync state and queue statistics.
        """
        stats = self.log.get_stats()
        return {
            "online": self.online,
            "syncing": self._syncing,
            "state": self._state.value,
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
            "last_error": self.last_error,
            "pending_entries": stats["pending_entries"],
            "entries_by_kind": stats["entries_by_kind"],
            "local_tasks": self.store.count(),
        }
