"""Wiring of the sync engine components from configuration."""

import logging
from dataclasses import dataclass

from .config import Config
from .remote import CockpitGateway, RemoteGateway
from .service import TaskService
from .storage import Database, OperationLog, TaskStore
from .sync import ConnectivityMonitor, SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """All components of a running sync engine."""

    db: Database
    store: TaskStore
    log: OperationLog
    gateway: RemoteGateway
    monitor: ConnectivityMonitor
    orchestrator: SyncOrchestrator
    service: TaskService

    async def close(self) -> None:
        """Wait for background drains, then release resources."""
        try:
            await self.orchestrator.wait_idle()
        finally:
            await self.gateway.close()
            self.db.close()


async def open_engine(config: Config, gateway: RemoteGateway | None = None) -> Engine:
    """Build and start the engine.

    Args:
        config: Loaded configuration.
        gateway: Remote gateway to use instead of the configured Cockpit one.

    Returns:
        A connected Engine. Call ``close()`` when done.
    """
    db = Database(config.storage.db_path)
    db.connect()
    store = TaskStore(db)
    log = OperationLog(db)

    if gateway is None:
        gateway = CockpitGateway(
            base_url=config.remote.base_url,
            content_name=config.remote.content_name,
            api_token=config.remote.api_token,
            timeout=config.remote.timeout,
            max_retries=config.remote.max_retries,
        )

    initial = config.sync.initial_online
    monitor = ConnectivityMonitor(initial_online=bool(initial), probe=gateway.ping)
    if initial is None:
        # Startup status comes from the runtime before any listener exists
        await monitor.check()

    orchestrator = SyncOrchestrator(
        store,
        log,
        gateway,
        monitor,
        discard_invalid=config.sync.discard_invalid,
    )
    logger.info(
        f"Engine ready ({'online' if monitor.online else 'offline'}, "
        f"{log.count()} pending)"
    )

    return Engine(
        db=db,
        store=store,
        log=log,
        gateway=gateway,
        monitor=monitor,
        orchestrator=orchestrator,
        service=TaskService(store, orchestrator),
    )
