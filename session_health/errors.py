"""Error taxonomy for the session health engine."""

from __future__ import annotations


class ContextManagerError(Exception):
    """Base class for all session health errors."""


class NotFoundError(ContextManagerError):
    """A session or snapshot id could not be resolved."""


class SessionNotFoundError(NotFoundError):
    """Raised when a session record does not exist."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SnapshotNotFoundError(NotFoundError):
    """Raised when a snapshot hash is not referenced by the session."""

    def __init__(self, session_id: str, commit_hash: str):
        self.session_id = session_id
        self.commit_hash = commit_hash
        super().__init__(f"Snapshot not found: {commit_hash} (session {session_id})")


class InvalidArgumentError(ContextManagerError, ValueError):
    """Raised when a threshold or option is outside its allowed range."""


class CorruptDataError(ContextManagerError):
    """Raised when a persisted session record cannot be parsed."""

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Corrupt session record {session_id}: {reason}")


class StorageIOError(ContextManagerError):
    """Raised when writing a session record fails."""

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Failed to write session {session_id}: {reason}")


class BackendUnavailableError(ContextManagerError):
    """Raised when an optional backend is not usable in this environment."""

    def __init__(self, backend: str, reason: str):
        self.backend = backend
        self.reason = reason
        super().__init__(f"{backend} backend unavailable: {reason}")


__all__ = [
    "ContextManagerError",
    "NotFoundError",
    "SessionNotFoundError",
    "SnapshotNotFoundError",
    "InvalidArgumentError",
    "CorruptDataError",
    "StorageIOError",
    "BackendUnavailableError",
]
