"""Broker side of ModelRelay."""

from .core.broker import Broker
from .core.registry import ConnectionRegistry
from .core.selector import WorkerSelector
from .core.pending import PendingRequestTable
from .core.handler import BrokerProtocolHandler
from .storage.models import ConnectionRecord, ConnectionRole, ConnectionState, PendingRequest
from .monitoring.reaper import IdleConnectionReaper
from .server.server import BrokerServer
from .api.server import APIServer

__all__ = [
    "Broker",
    "ConnectionRegistry",
    "WorkerSelector",
    "PendingRequestTable",
    "BrokerProtocolHandler",
    "IdleConnectionReaper",
    "BrokerServer",
    "APIServer",
    "ConnectionRecord",
    "ConnectionRole",
    "ConnectionState",
    "PendingRequest",
]
