"""
Session Store for the session health engine.

Durable key-value persistence of session records, one JSON file per
session in {sessions_dir}/{session_id}.json.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .errors import (
    CorruptDataError,
    InvalidArgumentError,
    SessionNotFoundError,
    StorageIOError,
)
from .session_schema import Session, SessionMetadata, utcnow

logger = logging.getLogger(__name__)

_IMMUTABLE_KEYS = {"id", "created_at", "createdAt"}


def _merge(base: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge changes into base; nested dicts merge, others replace."""
    merged = dict(base)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class SessionStore:
    """
    Persists sessions under a base directory.

    Writes are crash-safe: the record is written to a temp file in the
    same directory, flushed to disk, then renamed over the target.
    The store is single-writer; update() is read-modify-write and not
    transactional.
    """

    def __init__(self, base_dir: Path | str):
        """
        Initialize session store.

        Args:
            base_dir: Directory holding session records (created if missing)
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def get_session_file(self, session_id: str) -> Path:
        """Get the record path for a session."""
        if not session_id or "/" in session_id or "\\" in session_id or session_id in (".", ".."):
            raise InvalidArgumentError(f"Invalid session id: {session_id!r}")
        return self.base_dir / f"{session_id}.json"

    def exists(self, session_id: str) -> bool:
        """Check if a session record exists."""
        return self.get_session_file(session_id).exists()

    def create(self, session_id: str, initial_prompt: str) -> Session:
        """
        Create and persist a new, empty session record.

        Args:
            session_id: Unique session identifier
            initial_prompt: Prompt that started the session (write-once)

        Returns:
            Newly created session

        Raises:
            InvalidArgumentError: If the id is malformed or already exists
        """
        if self.exists(session_id):
            raise InvalidArgumentError(f"Session already exists: {session_id}")

        now = utcnow()
        session = Session(
            id=session_id,
            created_at=now,
            updated_at=now,
            metadata=SessionMetadata(initial_prompt=initial_prompt),
        )
        self._write(session)
        logger.info(f"Created session record {session_id}")
        return session

    def get(self, session_id: str) -> Session:
        """
        Load a session record.

        Raises:
            SessionNotFoundError: If no record exists
            CorruptDataError: If the record cannot be parsed
        """
        path = self.get_session_file(session_id)
        if not path.exists():
            raise SessionNotFoundError(session_id)

        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise SessionNotFoundError(session_id) from e
        except UnicodeDecodeError as e:
            raise CorruptDataError(session_id, f"not valid UTF-8: {e}") from e

        try:
            return Session.model_validate_json(text)
        except (ValidationError, ValueError) as e:
            raise CorruptDataError(session_id, str(e)) from e

    def save(self, session: Session) -> Session:
        """
        Write a whole session record, refreshing updated_at.

        Raises:
            StorageIOError: If the write fails
        """
        session.updated_at = utcnow()
        self._write(session)
        return session

    def update(self, session_id: str, changes: dict[str, Any]) -> Session:
        """
        Merge a partial change set into a stored session.

        Keys may be snake_case or camelCase. id and createdAt are never
        changed.

        Raises:
            SessionNotFoundError: If no record exists
        """
        current = self.get(session_id)
        changes = {k: v for k, v in changes.items() if k not in _IMMUTABLE_KEYS}

        merged = _merge(current.model_dump(mode="json", by_alias=True), _camelize(changes))
        merged["id"] = current.id
        merged["createdAt"] = current.created_at.isoformat()

        try:
            session = Session.model_validate(merged)
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid update for session {session_id}: {e}") from e
        if session.metadata.initial_prompt != current.metadata.initial_prompt:
            raise InvalidArgumentError("initialPrompt cannot be changed")

        return self.save(session)

    def delete(self, session_id: str) -> None:
        """Delete a session record. Unknown ids are ignored."""
        path = self.get_session_file(session_id)
        if path.exists():
            path.unlink()
            logger.info(f"Deleted session record {session_id}")

    def list(self) -> list[Session]:
        """
        List all readable sessions, newest first by createdAt.

        Records that fail to parse are skipped with a warning.
        """
        sessions = []
        for path in self.base_dir.glob("*.json"):
            try:
                sessions.append(self.get(path.stem))
            except (CorruptDataError, InvalidArgumentError) as e:
                logger.warning(f"Skipping unreadable session record {path.name}: {e}")
                continue

        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions

    def _write(self, session: Session) -> None:
        """
        Atomically write a session record.

        Uses write-to-temp, fsync, then rename to prevent corruption.
        """
        target_path = self.get_session_file(session.id)

        fd, temp_path = tempfile.mkstemp(
            suffix=".tmp",
            prefix=f"{session.id}_",
            dir=self.base_dir,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(session.to_json())
                f.flush()
                os.fsync(f.fileno())
            # Atomic rename
            os.replace(temp_path, target_path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise StorageIOError(session.id, str(e)) from e


def _camelize(changes: dict[str, Any]) -> dict[str, Any]:
    """Convert snake_case keys of a (nested) change set to camelCase."""
    result: dict[str, Any] = {}
    for key, value in changes.items():
        if isinstance(value, dict):
            value = _camelize(value)
        if "_" in key:
            head, *rest = key.split("_")
            key = head + "".join(part.title() for part in rest)
        result[key] = value
    return result


__all__ = ["SessionStore"]
