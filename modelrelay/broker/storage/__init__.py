"""In-memory state models for the broker."""

from .models import (
    ConnectionRecord,
    ConnectionRole,
    ConnectionState,
    PendingRequest,
    WorkerCapabilities,
    WorkerReply,
)

__all__ = [
    "ConnectionRecord",
    "ConnectionRole",
    "ConnectionState",
    "PendingRequest",
    "WorkerCapabilities",
    "WorkerReply",
]
