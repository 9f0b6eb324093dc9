"""Connection registry tracking every live client and worker connection."""

from datetime import datetime, timedelta
from itertools import count
from typing import Any, Dict, List, Optional

from modelrelay.logger import logger
from ..storage.models import (
    ConnectionRecord,
    ConnectionRole,
    ConnectionState,
    WorkerCapabilities,
)


class ConnectionRegistry:
    """Sole owner of connection records.

    Clients and workers are kept in two independent maps. Everything else
    refers to a record by its connection id and mutates it only through the
    accessors below.
    """

    def __init__(self):
        self._connections: Dict[ConnectionRole, Dict[str, ConnectionRecord]] = {
            ConnectionRole.CLIENT: {},
            ConnectionRole.WORKER: {},
        }
        self._registration_counter = count(1)

    def register(
        self,
        role: ConnectionRole,
        websocket: Any = None,
        capabilities: Optional[WorkerCapabilities] = None,
        remote_address: str = "unknown",
    ) -> str:
        """Store a new connection record and return its generated id."""
        record = ConnectionRecord(
            role=role,
            websocket=websocket,
            remote_address=remote_address,
        )
        self._connections[role][record.connection_id] = record

        if capabilities is not None:
            self.set_capabilities(record.connection_id, capabilities)

        logger.debug(f"Registered {role.value} connection {record.connection_id}")
        return record.connection_id

    def touch(self, connection_id: str) -> None:
        """Record inbound activity; no-op for unknown ids."""
        record = self.get(connection_id)
        if record is None:
            return
        record.last_activity_at = datetime.now()
        record.message_count += 1

    def get(self, connection_id: str) -> Optional[ConnectionRecord]:
        for connections in self._connections.values():
            record = connections.get(connection_id)
            if record is not None:
                return record
        return None

    def list_by_role(self, role: ConnectionRole) -> List[ConnectionRecord]:
        """Snapshot of records for a role, in insertion order."""
        return list(self._connections[role].values())

    def list_all(self) -> List[ConnectionRecord]:
        return [record for connections in self._connections.values() for record in connections.values()]

    def remove(self, connection_id: str) -> Optional[ConnectionRecord]:
        """Delete a record; idempotent."""
        for connections in self._connections.values():
            record = connections.pop(connection_id, None)
            if record is not None:
                record.state = ConnectionState.CLOSED
                logger.debug(f"Removed {record.role.value} connection {connection_id}")
                return record
        return None

    def set_capabilities(self, connection_id: str, capabilities: WorkerCapabilities) -> bool:
        """Store worker capabilities; first registration fixes the selection order."""
        record = self._connections[ConnectionRole.WORKER].get(connection_id)
        if record is None:
            return False
        record.capabilities = capabilities
        if record.registration_seq is None:
            record.registration_seq = next(self._registration_counter)
        return True

    def set_worker_id(self, connection_id: str, worker_id: Optional[str]) -> None:
        record = self._connections[ConnectionRole.WORKER].get(connection_id)
        if record is not None and worker_id:
            record.worker_id = worker_id

    def clear_capabilities(self, connection_id: str) -> None:
        """Exclude a worker from selection without removing its record."""
        record = self._connections[ConnectionRole.WORKER].get(connection_id)
        if record is not None:
            record.capabilities = None
            record.registration_seq = None

    def bind_model(self, connection_id: str, model: Optional[str]) -> None:
        record = self._connections[ConnectionRole.CLIENT].get(connection_id)
        if record is not None and model:
            record.bound_model = model

    def set_state(self, connection_id: str, state: ConnectionState) -> None:
        record = self.get(connection_id)
        if record is not None:
            record.state = state

    def find_idle(self, idle_timeout: float, now: Optional[datetime] = None) -> List[ConnectionRecord]:
        """Records whose last activity is older than ``idle_timeout`` seconds."""
        now = now or datetime.now()
        threshold = timedelta(seconds=idle_timeout)
        return [record for record in self.list_all() if now - record.last_activity_at > threshold]

    def count(self, role: ConnectionRole) -> int:
        return len(self._connections[role])

    def get_connection_stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        workers = self.list_by_role(ConnectionRole.WORKER)
        return {
            "clients": self.count(ConnectionRole.CLIENT),
            "workers": len(workers),
            "registered_workers": sum(1 for w in workers if w.is_registered),
        }
