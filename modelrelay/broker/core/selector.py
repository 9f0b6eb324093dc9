"""Worker selection for dispatching requests."""

from enum import Enum
from typing import Callable, List, Optional

from modelrelay.logger import logger
from modelrelay.ws.utils import is_websocket_closed
from ..storage.models import ConnectionRecord, ConnectionRole
from .registry import ConnectionRegistry


class SelectionStrategy(str, Enum):
    """Worker selection strategy."""

    FIRST_AVAILABLE = "first_available"     # Earliest registered open worker
    LEAST_PENDING = "least_pending"         # Fewest in-flight requests, then registration order


class WorkerSelector:
    """Chooses an eligible, currently open worker for a request."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        strategy: SelectionStrategy = SelectionStrategy.FIRST_AVAILABLE,
        pending_counter: Optional[Callable[[str], int]] = None,
    ):
        self.registry = registry
        self.strategy = strategy
        self._pending_counter = pending_counter

    def select_worker(self, model_hint: Optional[str] = None) -> Optional[str]:
        """Return the chosen worker's connection id, or None when none is available."""
        candidates = self.get_available_workers()
        if not candidates:
            logger.warning("No available workers for dispatch")
            return None

        if model_hint:
            matching = [w for w in candidates if w.capabilities.supports(model_hint)]
            if matching:
                candidates = matching
            else:
                logger.debug(f"No worker advertises '{model_hint}', falling back to any open worker")

        selected = self._select(candidates)
        logger.debug(f"Selected worker {selected.connection_id} for model '{model_hint}'")
        return selected.connection_id

    def get_available_workers(self) -> List[ConnectionRecord]:
        """Registered workers with an open socket, in registration order."""
        workers = [
            record for record in self.registry.list_by_role(ConnectionRole.WORKER)
            if record.is_registered and not is_websocket_closed(record.websocket)
        ]
        workers.sort(key=lambda record: record.registration_seq)
        return workers

    def _select(self, candidates: List[ConnectionRecord]) -> ConnectionRecord:
        if self.strategy == SelectionStrategy.LEAST_PENDING and self._pending_counter:
            # min() keeps the first of equal counts, preserving registration order
            return min(candidates, key=lambda record: self._pending_counter(record.connection_id))
        return candidates[0]
