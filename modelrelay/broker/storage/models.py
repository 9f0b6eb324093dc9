"""Data models for the broker's in-memory state."""

import asyncio
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ConnectionRole(str, Enum):
    """Role of a connection, decided once from the endpoint it connected to."""

    CLIENT = "client"           # Submits work requests
    WORKER = "worker"           # Offers generation capacity


class ConnectionState(str, Enum):
    """Connection lifecycle state."""

    CONNECTING = "connecting"   # Accepted, nothing interpreted yet
    REGISTERED = "registered"   # Worker capabilities stored
    ACTIVE = "active"           # Steady state
    CLOSED = "closed"           # Socket closed or evicted


class WorkerCapabilities(BaseModel):
    """Models a worker can serve."""

    models: List[str] = Field(default_factory=list)
    default_model: Optional[str] = None

    def supports(self, model: Optional[str]) -> bool:
        if not model:
            return False
        return model in self.models or model == self.default_model


class ConnectionRecord(BaseModel):
    """One live socket, client or worker."""

    # Identifiers
    connection_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: ConnectionRole
    remote_address: str = "unknown"

    # Transport handle (never serialized)
    websocket: Any = Field(default=None, exclude=True)

    # Lifecycle
    state: ConnectionState = ConnectionState.CONNECTING
    connected_at: datetime = Field(default_factory=datetime.now)
    last_activity_at: datetime = Field(default_factory=datetime.now)
    message_count: int = 0

    # Worker only
    worker_id: Optional[str] = None                # Self-reported, stable across reconnects
    capabilities: Optional[WorkerCapabilities] = None
    registration_seq: Optional[int] = None         # Order of registration, for tie-breaks

    # Client only
    bound_model: Optional[str] = None

    class Config:
        arbitrary_types_allowed = True

    @property
    def is_registered(self) -> bool:
        return self.capabilities is not None and self.registration_seq is not None

    def summary(self) -> Dict[str, Any]:
        """Status-surface view of the record (camelCase)."""
        data: Dict[str, Any] = {
            "id": self.connection_id,
            "role": self.role.value,
            "state": self.state.value,
            "remoteAddress": self.remote_address,
            "connectedAt": self.connected_at.isoformat(),
            "lastActivityAt": self.last_activity_at.isoformat(),
            "messageCount": self.message_count,
        }
        if self.role == ConnectionRole.WORKER:
            data["workerId"] = self.worker_id
            data["capabilities"] = self.capabilities.models if self.capabilities else []
            data["defaultModel"] = self.capabilities.default_model if self.capabilities else None
        else:
            data["model"] = self.bound_model
        return data


class PendingRequest(BaseModel):
    """An in-flight request awaiting a worker reply."""

    request_id: str
    client_connection_id: Optional[str] = None     # Lookup only; None when an HTTP caller awaits ``outcome``
    worker_connection_id: Optional[str] = None
    model: Optional[str] = None
    content_preview: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
    deadline: datetime

    # Completion primitive: resolved exactly once with the outcome
    outcome: Optional[asyncio.Future] = Field(default=None, exclude=True)
    timer: Optional[asyncio.TimerHandle] = Field(default=None, exclude=True)

    class Config:
        arbitrary_types_allowed = True

    @property
    def done(self) -> bool:
        return self.outcome is not None and self.outcome.done()


class WorkerReply(BaseModel):
    """Outcome of a pending request produced by a worker message."""

    success: bool
    content: str = ""
    model: Optional[str] = None
    error: Optional[str] = None
