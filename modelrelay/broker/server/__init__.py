"""WebSocket server for the broker."""

from .server import BrokerServer

__all__ = [
    "BrokerServer",
]
