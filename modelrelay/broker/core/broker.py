"""Broker facade owning the relay state and its background tasks."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from modelrelay.config import BrokerSettings
from modelrelay.logger import logger
from ..monitoring.reaper import IdleConnectionReaper
from ..storage.models import ConnectionRecord, ConnectionRole
from .handler import BrokerProtocolHandler
from .pending import PendingRequestTable
from .registry import ConnectionRegistry
from .selector import SelectionStrategy, WorkerSelector


class Broker:
    """Central relay between clients and workers."""

    def __init__(
        self,
        settings: Optional[BrokerSettings] = None,
        strategy: SelectionStrategy = SelectionStrategy.FIRST_AVAILABLE,
    ):
        self.settings = settings or BrokerSettings()
        self.registry = ConnectionRegistry()
        self.pending = PendingRequestTable()
        self.selector = WorkerSelector(
            self.registry, strategy, pending_counter=self.pending.count_for_worker
        )
        self.handler = BrokerProtocolHandler(
            self.registry, self.pending, self.selector, self.settings
        )
        self.reaper = IdleConnectionReaper(
            self.registry,
            on_evict=self.handler.on_disconnect,
            idle_timeout=self.settings.idle_timeout,
        )

        self._running = False
        self._started_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the broker's background tasks."""
        if self._running:
            logger.warning("Broker is already running")
            return

        self._running = True
        self._started_at = datetime.now()
        logger.info("Starting broker...")

        await self.reaper.start(self.settings.reaper_interval)

        logger.info("Broker started successfully")

    async def stop(self):
        """Stop background tasks and drop in-flight requests."""
        if not self._running:
            return

        self._running = False
        logger.info("Stopping broker...")

        await self.reaper.stop()

        dropped = len(self.pending)
        await self.pending.close()
        if dropped:
            logger.warning(f"Dropped {dropped} pending request(s) on shutdown")

        logger.info("Broker stopped")

    # Connection views

    def list_clients(self) -> List[ConnectionRecord]:
        return self.registry.list_by_role(ConnectionRole.CLIENT)

    def list_workers(self) -> List[ConnectionRecord]:
        return self.registry.list_by_role(ConnectionRole.WORKER)

    def get_available_models(self) -> List[str]:
        """Models advertised by workers that can currently take requests."""
        models: List[str] = []
        for worker in self.selector.get_available_workers():
            for model in worker.capabilities.models:
                if model not in models:
                    models.append(model)
        return models

    def get_connection_stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        return self.registry.get_connection_stats()

    # Statistics and Monitoring

    def get_system_stats(self) -> Dict[str, Any]:
        """Get comprehensive broker statistics."""
        available = self.handler.worker_pool_size()
        stats = {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "connections": self.get_connection_stats(),
            "available_workers": available,
            "pending_requests": len(self.pending),
            "available_models": self.get_available_models(),
            "worker_connectivity": "connected" if available else "disconnected",
        }
        return stats

    # Context manager support

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()
