"""Core components of the broker."""

from .registry import ConnectionRegistry
from .selector import SelectionStrategy, WorkerSelector
from .pending import PendingRequestTable
from .handler import BrokerProtocolHandler
from .broker import Broker

__all__ = [
    "ConnectionRegistry",
    "SelectionStrategy",
    "WorkerSelector",
    "PendingRequestTable",
    "BrokerProtocolHandler",
    "Broker",
]
