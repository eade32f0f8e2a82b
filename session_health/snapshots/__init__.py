"""Snapshot capture and restore."""

from .backends import GitSnapshotBackend, JsonSnapshotBackend, SnapshotBackend
from .snapshot_manager import SnapshotManager, make_backend

__all__ = [
    "SnapshotBackend",
    "JsonSnapshotBackend",
    "GitSnapshotBackend",
    "SnapshotManager",
    "make_backend",
]
