"""Snapshot backing strategies.

JsonSnapshotBackend keeps snapshots as references inside the session
record. GitSnapshotBackend commits the session record to the enclosing git
repository and uses the commit id as the snapshot hash.
"""

from __future__ import annotations

import hashlib
import logging
import os
import secrets
import subprocess
import time
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from ..errors import BackendUnavailableError, SnapshotNotFoundError
from ..session_schema import Session, SnapshotRef

if TYPE_CHECKING:
    from ..session_store import SessionStore

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 30


class SnapshotBackend(Protocol):
    """Capability behind SnapshotManager."""

    name: str

    def create(self, session: Session, description: str) -> str:
        """Produce a unique snapshot hash for the session's current state."""
        ...

    def restore(self, session: Session, commit_hash: str) -> None:
        """Check the snapshot can be restored. Raise if it cannot."""
        ...

    def list(self, session: Session) -> list[SnapshotRef]:
        """Snapshot references available for the session."""
        ...


def generate_snapshot_hash() -> str:
    """Opaque id from a time / randomness / process mix."""
    content = f"{time.time_ns()}:{secrets.token_hex(8)}:{os.getpid()}"
    return hashlib.sha256(content.encode()).hexdigest()[:16]


class JsonSnapshotBackend:
    """Default backend: snapshots live only in the session record."""

    name = "json"

    def create(self, session: Session, description: str) -> str:
        commit_hash = generate_snapshot_hash()
        while session.find_snapshot(commit_hash) is not None:
            commit_hash = generate_snapshot_hash()
        return commit_hash

    def restore(self, session: Session, commit_hash: str) -> None:
        if session.find_snapshot(commit_hash) is None:
            raise SnapshotNotFoundError(session.id, commit_hash)

    def list(self, session: Session) -> list[SnapshotRef]:
        return list(session.snapshots)


class GitSnapshotBackend:
    """
    Commit-backed snapshots.

    The sessions directory must already be inside a git work tree.
    Commits are never deleted; deleting a snapshot only drops the
    session's reference to it.
    """

    name = "git"

    def __init__(self, store: "SessionStore"):
        self.store = store

    @property
    def repo_dir(self) -> Path:
        return self.store.base_dir

    def _git(self, *args: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.repo_dir,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT_SECONDS,
                check=False,
            )
        except FileNotFoundError as e:
            raise BackendUnavailableError(self.name, "git executable not found") from e
        except subprocess.TimeoutExpired as e:
            raise BackendUnavailableError(self.name, f"git {args[0]} timed out") from e

    def ensure_available(self) -> None:
        """Raise BackendUnavailableError unless inside a git work tree."""
        result = self._git("rev-parse", "--is-inside-work-tree")
        if result.returncode != 0 or result.stdout.strip() != "true":
            raise BackendUnavailableError(self.name, f"{self.repo_dir} is not inside a git repository")

    def create(self, session: Session, description: str) -> str:
        self.ensure_available()

        # Saving refreshes updatedAt, so the record always differs from HEAD
        self.store.save(session)
        record = self.store.get_session_file(session.id)

        add = self._git("add", "--", str(record))
        if add.returncode != 0:
            raise BackendUnavailableError(self.name, add.stderr.strip() or "git add failed")

        # Commit only the record, leaving anything else staged untouched
        message = f"context snapshot {session.id}: {description}"
        commit = self._git("commit", "-m", message, "--", str(record))
        if commit.returncode != 0:
            raise BackendUnavailableError(self.name, commit.stderr.strip() or "git commit failed")

        head = self._git("rev-parse", "HEAD")
        if head.returncode != 0:
            raise BackendUnavailableError(self.name, head.stderr.strip() or "git rev-parse failed")

        commit_hash = head.stdout.strip()
        logger.info(f"Committed snapshot {commit_hash[:12]} for session {session.id}")
        return commit_hash

    def commit_exists(self, commit_hash: str) -> bool:
        result = self._git("cat-file", "-e", f"{commit_hash}^{{commit}}")
        return result.returncode == 0

    def restore(self, session: Session, commit_hash: str) -> None:
        self.ensure_available()
        if session.find_snapshot(commit_hash) is None or not self.commit_exists(commit_hash):
            raise SnapshotNotFoundError(session.id, commit_hash)

    def list(self, session: Session) -> list[SnapshotRef]:
        self.ensure_available()
        return [ref for ref in session.snapshots if self.commit_exists(ref.commit_hash)]


__all__ = [
    "SnapshotBackend",
    "JsonSnapshotBackend",
    "GitSnapshotBackend",
    "generate_snapshot_hash",
]
