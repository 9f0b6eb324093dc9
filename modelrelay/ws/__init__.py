"""Wire protocol shared by the broker and the worker agent."""

from .events import (
    BrokerToClientMessages,
    BrokerToWorkerMessages,
    ClientMessages,
    WorkerMessages,
    WorkerStatus,
    create_message,
)
from .retry_config import RetryConfig, calculate_retry_delay, should_retry

__all__ = [
    "BrokerToClientMessages",
    "BrokerToWorkerMessages",
    "ClientMessages",
    "WorkerMessages",
    "WorkerStatus",
    "create_message",
    "RetryConfig",
    "calculate_retry_delay",
    "should_retry",
]
