"""
Snapshot Manager for the session health engine.

A snapshot is a named checkpoint of a session's health signal, not a copy
of its transcript. Restoring resets metadata.healthScore and sets the
phase to "restored"; the event log is left alone because it is the system
of record.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..config import HealthConfig, SnapshotConfig
from ..errors import InvalidArgumentError, SnapshotNotFoundError
from ..session_schema import EventType, Session, SnapshotRef, parse_timestamp, utcnow
from ..session_store import SessionStore
from .backends import GitSnapshotBackend, JsonSnapshotBackend, SnapshotBackend

logger = logging.getLogger(__name__)


def make_backend(name: str, store: SessionStore) -> SnapshotBackend:
    """Build a backend from its configured name."""
    if name == "json":
        return JsonSnapshotBackend()
    if name == "git":
        return GitSnapshotBackend(store)
    raise InvalidArgumentError(f"Unknown snapshot backend: {name!r}")


class SnapshotManager:
    """
    Captures, lists, queries and restores session snapshots.

    All operations load the session from the store and persist the result.
    """

    def __init__(
        self,
        store: SessionStore,
        backend: SnapshotBackend | None = None,
        config: SnapshotConfig | None = None,
        health_config: HealthConfig | None = None,
    ):
        self.store = store
        self.config = config or SnapshotConfig()
        self.health_config = health_config or HealthConfig()
        self.backend = backend or make_backend(self.config.backend, store)

    def snapshot_session(self, session: Session, description: str | None = None) -> SnapshotRef:
        """
        Snapshot an in-memory session without persisting it.

        Captures metadata.healthScore as it is at the moment of the call.
        """
        description = description or f"Snapshot at {session.metadata.phase}"
        health = session.metadata.health_score
        commit_hash = self.backend.create(session, description)

        ref = SnapshotRef(
            commit_hash=commit_hash,
            timestamp=utcnow(),
            health_score=health,
            description=description,
        )
        session.snapshots.append(ref)
        session.append_event(
            EventType.SNAPSHOT,
            {
                "action": "create",
                "commitHash": commit_hash,
                "healthScore": health,
                "description": description,
                "backend": self.backend.name,
            },
        )
        logger.info(f"Created snapshot {commit_hash} for session {session.id} (health {health:.2f})")
        return ref

    def create_snapshot(self, session_id: str, description: str | None = None) -> SnapshotRef:
        """
        Create a snapshot of a stored session.

        Raises:
            SessionNotFoundError: If the session does not exist
            BackendUnavailableError: If the backend cannot be used here
        """
        session = self.store.get(session_id)
        ref = self.snapshot_session(session, description)
        self.store.save(session)
        return ref

    def get_snapshots(self, session_id: str) -> list[SnapshotRef]:
        """All snapshot references, oldest first."""
        return self.backend.list(self.store.get(session_id))

    def get_snapshot(self, session_id: str, commit_hash: str) -> SnapshotRef | None:
        return self.store.get(session_id).find_snapshot(commit_hash)

    def restore_session(self, session: Session, commit_hash: str) -> SnapshotRef:
        """Restore an in-memory session's health signal from a snapshot."""
        ref = session.find_snapshot(commit_hash)
        if ref is None:
            raise SnapshotNotFoundError(session.id, commit_hash)
        self.backend.restore(session, commit_hash)

        from_health = session.metadata.health_score
        session.metadata.health_score = ref.health_score
        session.metadata.phase = "restored"
        session.append_event(
            EventType.SNAPSHOT,
            {
                "action": "restore",
                "commitHash": commit_hash,
                "fromHealthScore": from_health,
                "toHealthScore": ref.health_score,
            },
        )
        logger.info(f"Restored session {session.id} from snapshot {commit_hash}")
        return ref

    def restore_snapshot(self, session_id: str, commit_hash: str) -> None:
        """
        Restore a stored session from a snapshot.

        Raises:
            SessionNotFoundError: If the session does not exist
            SnapshotNotFoundError: If the hash is not referenced by the session
        """
        session = self.store.get(session_id)
        self.restore_session(session, commit_hash)
        self.store.save(session)

    def delete_snapshot(self, session_id: str, commit_hash: str) -> bool:
        """
        Remove a snapshot reference.

        Returns:
            False if the hash is unknown, True if exactly one entry was removed
        """
        session = self.store.get(session_id)
        ref = session.find_snapshot(commit_hash)
        if ref is None:
            return False

        session.snapshots = [s for s in session.snapshots if s.commit_hash != commit_hash]
        session.append_event(EventType.SNAPSHOT, {"action": "delete", "commitHash": commit_hash})
        self.store.save(session)
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def get_latest_snapshot(self, session_id: str) -> SnapshotRef | None:
        snapshots = self.store.get(session_id).snapshots
        if not snapshots:
            return None
        return max(enumerate(snapshots), key=lambda item: (item[1].timestamp, item[0]))[1]

    def get_healthiest_snapshot(self, session_id: str) -> SnapshotRef | None:
        """Highest health score; ties go to the latest snapshot."""
        snapshots = self.store.get(session_id).snapshots
        if not snapshots:
            return None
        return max(
            enumerate(snapshots),
            key=lambda item: (item[1].health_score, item[1].timestamp, item[0]),
        )[1]

    def find_snapshots_by_health(self, session_id: str, min_health: float, max_health: float) -> list[SnapshotRef]:
        """Snapshots with min_health <= health <= max_health."""
        if min_health > max_health:
            raise InvalidArgumentError(f"min_health {min_health} is greater than max_health {max_health}")
        return [
            s for s in self.store.get(session_id).snapshots
            if min_health <= s.health_score <= max_health
        ]

    def find_snapshots_by_time(self, session_id: str, start: datetime, end: datetime) -> list[SnapshotRef]:
        """Snapshots taken within [start, end]."""
        start, end = parse_timestamp(start), parse_timestamp(end)
        if start > end:
            raise InvalidArgumentError(f"start {start.isoformat()} is after end {end.isoformat()}")
        return [
            s for s in self.store.get(session_id).snapshots
            if start <= parse_timestamp(s.timestamp) <= end
        ]

    # =========================================================================
    # Auto-snapshot policy
    # =========================================================================

    def last_snapshot_at(self, session: Session) -> datetime | None:
        if not session.snapshots:
            return None
        return max(parse_timestamp(s.timestamp) for s in session.snapshots)

    def should_auto_snapshot(self, session: Session, now: datetime | None = None) -> bool:
        """
        True when health is good and no snapshot is recent, or when health
        is critical (safety checkpoint before compaction).
        """
        now = now or utcnow()
        health = session.metadata.health_score
        if health < self.health_config.critical:
            return True
        if health <= self.health_config.good:
            return False

        last = self.last_snapshot_at(session)
        return last is None or now - last >= timedelta(seconds=self.config.staleness_seconds)


__all__ = ["SnapshotManager", "make_backend"]
