"""ModelRelay: WebSocket broker relaying code-generation requests to remote model workers."""

from .broker.core.broker import Broker
from .broker.server.server import BrokerServer
from .broker.api.server import APIServer
from .config import BrokerSettings, WorkerSettings, settings
from .worker.agent import WorkerAgent

__version__ = "0.1.0"

__all__ = [
    "Broker",
    "BrokerServer",
    "APIServer",
    "BrokerSettings",
    "WorkerSettings",
    "WorkerAgent",
    "settings",
]
