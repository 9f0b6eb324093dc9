"""HTTP status API for the broker."""

from .server import APIServer

__all__ = [
    "APIServer",
]
