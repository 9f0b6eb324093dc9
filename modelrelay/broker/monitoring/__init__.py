"""Monitoring components for the broker."""

from .reaper import IdleConnectionReaper

__all__ = [
    "IdleConnectionReaper",
]
