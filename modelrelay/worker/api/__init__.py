"""HTTP health and status API for a worker."""

from .server import WorkerAPIServer

__all__ = [
    "WorkerAPIServer",
]
