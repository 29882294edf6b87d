"""Connectivity tracking for the sync engine."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]
Probe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """Tracks online/offline state and notifies listeners of transitions.

    The host feeds its native network signal through ``set_online``. When a
    probe coroutine is supplied, ``watch`` polls it so that a regained
    connection is noticed even without a host signal.
    """

    def __init__(self, initial_online: bool = False, probe: Probe | None = None):
        """Initialize the monitor.

        Args:
            initial_online: Network status at startup.
            probe: Coroutine returning True when the remote is reachable.
        """
        self._online = initial_online
        self._probe = probe
        self._listeners: list[ConnectivityListener] = []

    @property
    def online(self) -> bool:
        return self._online

    def on_change(self, listener: ConnectivityListener) -> None:
        """Register a callback invoked with the new status on every flip."""
        self._listeners.append(listener)

    def set_online(self, online: bool) -> bool:
        """Apply a connectivity signal.

        Listeners run synchronously, in registration order, before this
        returns. Repeating the current status does nothing.

        Returns:
            True if the status changed.
        """
        if online == self._online:
            return False

        self._online = online
        logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        for listener in list(self._listeners):
            listener(online)
        return True

    async def check(self) -> bool:
        """Run the probe once and apply its result.

        Returns:
            The current online status.
        """
        if self._probe is None:
            return self._online

        try:
            reachable = await self._probe()
        except Exception as e:
            logger.debug(f"Connectivity probe failed: {e}")
            reachable = False

        self.set_online(reachable)
        return self._online

    async def watch(
        self,
        interval_seconds: float = 30.0,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Poll the probe until stopped.

        Args:
            interval_seconds: Seconds between probes.
            stop_event: Event to signal loop should stop.
        """
        if self._probe is None:
            raise RuntimeError("ConnectivityMonitor.watch requires a probe")

        logger.info(f"Watching connectivity every {interval_seconds}s")

        while not (stop_event and stop_event.is_set()):
            await self.check()

            if stop_event:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
                    break
                except asyncio.TimeoutError:
                    pass
            else:
                await asyncio.sleep(interval_seconds)

        logger.info("Connectivity watch stopped")
