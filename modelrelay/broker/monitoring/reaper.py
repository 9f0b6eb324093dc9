"""Idle connection reaper."""

import asyncio
import inspect
from typing import Any, Callable, List, Optional

from modelrelay.logger import logger
from modelrelay.ws.utils import close_websocket_safely
from ..core.registry import ConnectionRegistry


class IdleConnectionReaper:
    """Periodically closes and evicts connections with no recent activity.

    Eviction closes the socket and then runs ``on_evict`` (the same cleanup a
    peer-initiated close triggers), so racing with the connection's own read
    loop only results in idempotent removals.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        on_evict: Optional[Callable[[str], Any]] = None,
        idle_timeout: float = 300.0,
    ):
        self.registry = registry
        self.idle_timeout = idle_timeout
        self._on_evict = on_evict
        self._running = False
        self._reaper_task: Optional[asyncio.Task] = None
        self._interval = 60.0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self, interval: float = 60.0):
        """Start the periodic sweep."""
        if self._running:
            logger.warning("Idle connection reaper is already running")
            return

        self._interval = interval
        self._running = True
        self._reaper_task = asyncio.create_task(self._reaper_loop())
        logger.info(
            f"Started idle connection reaper with {interval:g}s interval, {self.idle_timeout:g}s idle timeout"
        )

    async def stop(self):
        """Stop the periodic sweep."""
        if not self._running:
            return

        self._running = False
        if self._reaper_task:
            self._reaper_task.cancel()
            try:
                await self._reaper_task
            except asyncio.CancelledError:
                pass
            self._reaper_task = None

        logger.info("Stopped idle connection reaper")

    async def sweep(self) -> List[str]:
        """Close every idle connection once; returns the evicted ids."""
        evicted = []
        for record in self.registry.find_idle(self.idle_timeout):
            logger.info(
                f"Closing inactive {record.role.value} connection: {record.connection_id} "
                f"(last activity {record.last_activity_at.isoformat()})"
            )
            await close_websocket_safely(record.websocket, 1001, "idle timeout")

            if self._on_evict is not None:
                result = self._on_evict(record.connection_id)
                if inspect.isawaitable(result):
                    await result
            else:
                self.registry.remove(record.connection_id)
            evicted.append(record.connection_id)

        return evicted

    async def _reaper_loop(self):
        """Main sweep loop."""
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                evicted = await self.sweep()
                if evicted:
                    logger.debug(f"Idle sweep evicted {len(evicted)} connection(s)")
            except Exception as e:
                logger.error(f"Error in idle connection reaper loop: {e}")
