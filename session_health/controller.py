"""
Context Controller for the session health engine.

Orchestrates monitor, analyzer, compactor and snapshot manager around the
session store. Exposes the session lifecycle API and a priority-ordered
decision loop (tick) that remediates unhealthy sessions.

Single-writer: calls for the same session must be serialized by the caller.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Protocol

from .analysis.drift_detector import DriftAnalyzer, DriftResult, TopicDriftDetector, validate_threshold
from .analysis.health_analyzer import HealthReport, SessionAnalyzer, SessionStatus, health_state
from .analysis.keyword_extractor import KeywordExtractor
from .analysis.phase_classifier import classify_session
from .analysis.vocabulary import DEFAULT_PHASE_RULES, Phase, PhaseRules
from .compactor import CompactOptions, CompactResult, SessionCompactor
from .config import ContextConfig
from .errors import BackendUnavailableError, ContextManagerError
from .monitor import SessionMonitor
from .session_schema import EventType, MessageRole, Session, SessionEvent, SnapshotRef, utcnow
from .session_store import SessionStore
from .snapshots.snapshot_manager import SnapshotManager

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    """Remediation actions the controller can take."""

    COMPACT = "compact"
    SNAPSHOT = "snapshot"
    ALERT = "alert"
    TRIM = "trim"


@dataclass
class ControllerAction:
    """One decided action and its outcome."""

    action: ActionType
    reason: str
    executed: bool = False
    result: dict[str, Any] | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "reason": self.reason,
            "executed": self.executed,
            "result": self.result,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TickResult:
    """Outcome of one tick for one session."""

    session_id: str
    health_score: float
    drift_score: float
    phase: str
    actions: list[ControllerAction] = field(default_factory=list)
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "healthScore": self.health_score,
            "driftScore": self.drift_score,
            "phase": self.phase,
            "skipped": self.skipped,
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclass
class TrimResult:
    """Outcome reported by an output trimmer."""

    kept_count: int
    removed_count: int


class OutputTrimmer(Protocol):
    """External collaborator that trims conversation output."""

    def needs_trimming(self, session: Session) -> bool:
        ...

    def trim(self, session: Session, options: dict[str, Any]) -> TrimResult:
        ...


class ActionCache:
    """
    Most recent action per session, bounded by LRU eviction.
    """

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._entries: OrderedDict[str, ControllerAction] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    def keys(self) -> list[str]:
        """Session ids, least recently used first."""
        return list(self._entries)

    def get(self, session_id: str) -> ControllerAction | None:
        action = self._entries.get(session_id)
        if action is not None:
            self._entries.move_to_end(session_id)
        return action

    def put(self, session_id: str, action: ControllerAction) -> None:
        self._entries[session_id] = action
        self._entries.move_to_end(session_id)
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def remove(self, session_id: str) -> None:
        self._entries.pop(session_id, None)


class ContextController:
    """
    Session lifecycle API and remediation loop.

    Tick priority (at most one health action, plus an independent trim):
    1. health < critical  -> compact, then snapshot
    2. drift > threshold  -> alert
    3. health < warning   -> compact
    4. health > good      -> snapshot, unless one was just taken
    5. counts over limits -> trim
    """

    def __init__(
        self,
        config: ContextConfig | None = None,
        store: SessionStore | None = None,
        deep_analyzer: DriftAnalyzer | None = None,
        trimmer: OutputTrimmer | None = None,
        on_alert: Callable[[str, DriftResult], None] | None = None,
        phase_rules: PhaseRules = DEFAULT_PHASE_RULES,
        snapshot_manager: SnapshotManager | None = None,
    ):
        self.config = config or ContextConfig()
        self.store = store or SessionStore(self.config.storage.sessions_dir)

        extractor = KeywordExtractor()
        self.drift_detector = TopicDriftDetector(
            extractor=extractor,
            deep_analyzer=deep_analyzer,
            recent_messages=self.config.drift.recent_messages,
        )
        self.monitor = SessionMonitor(
            config=self.config.tracking,
            extractor=extractor,
            retain_transcript=self.config.storage.retain_transcript,
        )
        self.analyzer = SessionAnalyzer(
            drift_detector=self.drift_detector,
            health_config=self.config.health,
            drift_config=self.config.drift,
        )
        self.compactor = SessionCompactor(self.config.compaction)
        self.snapshots = snapshot_manager or SnapshotManager(
            self.store,
            config=self.config.snapshots,
            health_config=self.config.health,
        )
        self.trimmer = trimmer
        self.on_alert = on_alert
        self.phase_rules = phase_rules

        self.action_cache = ActionCache(self.config.controller.action_cache_size)
        self._current_session_id: str | None = None
        self._stop_event: asyncio.Event | None = None
        self._monitoring = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def current_session_id(self) -> str | None:
        """Session most recently created or tracked."""
        return self._current_session_id

    def create_session(self, initial_prompt: str, session_id: str | None = None) -> Session:
        """
        Create a session seeded with its initial prompt.

        Args:
            initial_prompt: Prompt that starts the session
            session_id: Optional id (default: random uuid4)

        Returns:
            The persisted session (one seed event, health 1.0,
            phase "initialization")
        """
        session_id = session_id or str(uuid.uuid4())
        session = self.store.create(session_id, initial_prompt)
        self.monitor.record_seed(session)
        self.store.save(session)

        self._current_session_id = session_id
        logger.info(f"Session {session_id} created")
        return session

    def get_session(self, session_id: str) -> Session:
        return self.store.get(session_id)

    def get_current_session(self) -> Session | None:
        if self._current_session_id is None or not self.store.exists(self._current_session_id):
            return None
        return self.store.get(self._current_session_id)

    def list_sessions(self) -> list[Session]:
        """All sessions, newest first."""
        return self.store.list()

    def end_session(self, session_id: str) -> Session:
        """Mark a session ended. The record is kept for later analysis."""
        session = self.store.get(session_id)
        session.metadata.phase = Phase.ENDED.value
        self.store.save(session)
        self.monitor.retry_window.forget(session_id)
        if self._current_session_id == session_id:
            self._current_session_id = None
        logger.info(f"Session {session_id} ended")
        return session

    def delete_session(self, session_id: str) -> None:
        """Permanently delete a session record."""
        self.store.get(session_id)
        self.store.delete(session_id)
        self.monitor.retry_window.forget(session_id)
        self.action_cache.remove(session_id)
        if self._current_session_id == session_id:
            self._current_session_id = None

    # =========================================================================
    # Tracking
    # =========================================================================

    def _track(self, session_id: str, record: Callable[[Session], SessionEvent]) -> SessionEvent:
        session = self.store.get(session_id)
        event = record(session)
        self.store.save(session)
        self._current_session_id = session_id
        return event

    def track_message(self, session_id: str, role: MessageRole | str, content: str) -> SessionEvent:
        return self._track(session_id, lambda s: self.monitor.track_message(s, role, content))

    def track_tool(self, session_id: str, name: str, args: Any = None, result: Any = None) -> SessionEvent:
        return self._track(session_id, lambda s: self.monitor.track_tool(s, name, args, result))

    def track_error(self, session_id: str, error: BaseException | str) -> SessionEvent:
        return self._track(session_id, lambda s: self.monitor.track_error(s, error))

    # =========================================================================
    # Health
    # =========================================================================

    def refresh_health(self, session: Session, now: datetime | None = None) -> HealthReport:
        """Recompute health and drift on an in-memory session."""
        report = self.analyzer.analyze_health(session, now)
        session.metadata.health_score = report.score
        session.metrics.drift_score = report.factors.drift
        return report

    def get_health_score(self, session_id: str) -> float:
        """Current health score in [0, 1]; persisted on the session."""
        session = self.store.get(session_id)
        report = self.refresh_health(session)
        self.store.save(session)
        return report.score

    def get_status(self, session_id: str) -> SessionStatus:
        """Health status; refreshes and persists health and drift."""
        session = self.store.get(session_id)
        report = self.refresh_health(session)
        self.store.save(session)
        return self.analyzer.get_status(session, report)

    def analyze_drift(self, session_id: str) -> DriftResult:
        session = self.store.get(session_id)
        result = self.drift_detector.detect(session, self.get_drift_threshold())
        session.metrics.drift_score = result.drift_score
        self.store.save(session)
        return result

    def set_drift_threshold(self, threshold: float) -> None:
        """
        Raises:
            InvalidArgumentError: Outside [0, 1]; the previous value is kept
        """
        self.config.drift.threshold = validate_threshold(threshold, "drift threshold")

    def get_drift_threshold(self) -> float:
        return self.config.drift.threshold

    # =========================================================================
    # Remediation (manual)
    # =========================================================================

    def compact(self, session_id: str, options: CompactOptions | None = None) -> CompactResult:
        session = self.store.get(session_id)
        result = self.compactor.compact(session, options)
        if result.events_removed and not result.dry_run:
            self.store.save(session)
        return result

    def create_snapshot(self, session_id: str, description: str | None = None) -> SnapshotRef:
        return self.snapshots.create_snapshot(session_id, description)

    def restore_snapshot(self, session_id: str, commit_hash: str) -> None:
        self.snapshots.restore_snapshot(session_id, commit_hash)

    def get_snapshots(self, session_id: str) -> list[SnapshotRef]:
        return self.snapshots.get_snapshots(session_id)

    def get_latest_snapshot(self, session_id: str) -> SnapshotRef | None:
        return self.snapshots.get_latest_snapshot(session_id)

    def get_healthiest_snapshot(self, session_id: str) -> SnapshotRef | None:
        return self.snapshots.get_healthiest_snapshot(session_id)

    def delete_snapshot(self, session_id: str, commit_hash: str) -> bool:
        return self.snapshots.delete_snapshot(session_id, commit_hash)

    def trim_output(self, session_id: str, options: dict[str, Any] | None = None) -> TrimResult:
        """
        Delegate trimming to the output trimmer.

        Raises:
            BackendUnavailableError: If no trimmer is configured
        """
        if self.trimmer is None:
            raise BackendUnavailableError("trimmer", "no output trimmer configured")
        session = self.store.get(session_id)
        result = self.trimmer.trim(session, options or {})
        self.store.save(session)
        return result

    def get_last_action(self, session_id: str) -> ControllerAction | None:
        return self.action_cache.get(session_id)

    # =========================================================================
    # Decision loop
    # =========================================================================

    def tick(self, session_id: str, now: datetime | None = None) -> TickResult:
        """
        Evaluate remediation rules for one session and execute the outcome.

        Advisory failures (snapshot backend unavailable, nothing to compact,
        no trimmer) are captured on the action instead of raised.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        now = now or utcnow()
        session = self.store.get(session_id)

        if session.metadata.phase == Phase.ENDED.value:
            return TickResult(
                session_id=session_id,
                health_score=session.metadata.health_score,
                drift_score=session.metrics.drift_score,
                phase=session.metadata.phase,
                skipped=True,
            )

        report = self.refresh_health(session, now)
        session.metadata.phase = classify_session(
            session, self.phase_rules, self.config.health.phase_window
        ).value

        health = report.score
        drift = report.factors.drift
        threshold = self.get_drift_threshold()
        hc = self.config.health
        actions: list[ControllerAction] = []

        if health < hc.critical:
            reason = f"health {health:.2f} below critical {hc.critical:.2f}"
            actions.append(self._run_compact(session, reason))
            actions.append(self._run_snapshot(session, reason))
        elif drift > threshold:
            actions.append(self._run_alert(session, report, threshold))
        elif health < hc.warning:
            actions.append(self._run_compact(session, f"health {health:.2f} below warning {hc.warning:.2f}"))
        elif health > hc.good and self._snapshot_due(session, now):
            actions.append(self._run_snapshot(session, f"health {health:.2f} above good {hc.good:.2f}"))

        trim_reason = self._trim_reason(session)
        if trim_reason:
            actions.append(self._run_trim(session, trim_reason))

        for action in actions:
            action.timestamp = now
            self._record(session, action)

        drift_after = self.drift_detector.detect(session, threshold)
        session.metrics.drift_score = drift_after.drift_score
        self.store.save(session)

        logger.debug(
            f"Tick {session_id}: health={health:.2f} drift={drift_after.drift_score:.2f} "
            f"actions={[a.action.value for a in actions]}"
        )
        return TickResult(
            session_id=session_id,
            health_score=session.metadata.health_score,
            drift_score=drift_after.drift_score,
            phase=session.metadata.phase,
            actions=actions,
        )

    def tick_all(self) -> list[TickResult]:
        """Tick every session that has not ended."""
        results = []
        for session in self.store.list():
            if session.metadata.phase == Phase.ENDED.value:
                continue
            results.append(self.tick(session.id))
        return results

    def _snapshot_due(self, session: Session, now: datetime) -> bool:
        last = self.action_cache.get(session.id)
        if (
            last is not None
            and last.action == ActionType.SNAPSHOT
            and last.executed
            and now - last.timestamp < timedelta(seconds=self.config.snapshots.staleness_seconds)
        ):
            return False
        return self.snapshots.should_auto_snapshot(session, now)

    def _trim_reason(self, session: Session) -> str | None:
        limits = self.config.limits
        if session.metrics.total_tokens > limits.max_tokens:
            return f"{session.metrics.total_tokens} tokens exceed limit {limits.max_tokens}"
        if session.metrics.message_count > limits.max_messages:
            return f"{session.metrics.message_count} messages exceed limit {limits.max_messages}"
        if len(session.events) > limits.max_events:
            return f"{len(session.events)} events exceed limit {limits.max_events}"
        if self.trimmer is not None:
            try:
                if self.trimmer.needs_trimming(session):
                    return "output trimmer requested trimming"
            except Exception as e:
                logger.warning(f"Output trimmer check failed for session {session.id}: {e}")
        return None

    def _run_compact(self, session: Session, reason: str) -> ControllerAction:
        action = ControllerAction(action=ActionType.COMPACT, reason=reason)
        try:
            result = self.compactor.compact(session)
        except ContextManagerError as e:
            action.error = str(e)
            return action

        action.result = result.to_dict()
        action.executed = result.events_removed > 0
        return action

    def _run_snapshot(self, session: Session, reason: str) -> ControllerAction:
        action = ControllerAction(action=ActionType.SNAPSHOT, reason=reason)
        try:
            ref = self.snapshots.snapshot_session(session, f"Auto snapshot: {reason}")
        except ContextManagerError as e:
            logger.warning(f"Auto snapshot failed for session {session.id}: {e}")
            action.error = str(e)
            return action

        action.executed = True
        action.result = {"commitHash": ref.commit_hash, "healthScore": ref.health_score}
        return action

    def _run_alert(self, session: Session, report: HealthReport, threshold: float) -> ControllerAction:
        drift = report.factors.drift
        logger.warning(f"Topic drift {drift:.2f} exceeds threshold {threshold:.2f} in session {session.id}")
        action = ControllerAction(
            action=ActionType.ALERT,
            reason=f"drift {drift:.2f} above threshold {threshold:.2f}",
            result={
                "driftScore": drift,
                "threshold": threshold,
                "needsDeepAnalysis": report.drift.needs_deep_analysis if report.drift else False,
            },
        )
        if self.on_alert is not None and report.drift is not None:
            try:
                self.on_alert(session.id, report.drift)
            except Exception as e:
                logger.warning(f"Alert callback failed for session {session.id}: {e}")
                action.error = str(e)
                return action
        action.executed = True
        return action

    def _run_trim(self, session: Session, reason: str) -> ControllerAction:
        action = ControllerAction(action=ActionType.TRIM, reason=reason)
        if self.trimmer is None:
            action.error = "no output trimmer configured"
            return action

        try:
            result = self.trimmer.trim(session, {"reason": reason})
        except Exception as e:
            logger.warning(f"Output trim failed for session {session.id}: {e}")
            action.error = str(e)
            return action

        action.executed = True
        action.result = {"keptCount": result.kept_count, "removedCount": result.removed_count}
        return action

    def _record(self, session: Session, action: ControllerAction) -> None:
        session.append_event(EventType.ACTION, action.to_dict())
        self.action_cache.put(session.id, action)

    # =========================================================================
    # Monitoring loop
    # =========================================================================

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    async def run_monitor(self, interval_seconds: float | None = None) -> None:
        """Tick all sessions every interval until stop() is called."""
        interval = interval_seconds or self.config.controller.monitor_interval_seconds
        self._stop_event = asyncio.Event()
        self._monitoring = True
        logger.info(f"Monitoring started (interval {interval}s)")
        try:
            while not self._stop_event.is_set():
                self.tick_all()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._monitoring = False
            logger.info("Monitoring stopped")

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Aggregate statistics across all sessions."""
        sessions = self.store.list()
        active = [s for s in sessions if s.metadata.phase != Phase.ENDED.value]
        by_state = {"healthy": 0, "warning": 0, "critical": 0}
        for s in active:
            by_state[health_state(s.metadata.health_score)] += 1

        return {
            "totalSessions": len(sessions),
            "activeSessions": len(active),
            "endedSessions": len(sessions) - len(active),
            "averageHealth": (
                sum(s.metadata.health_score for s in active) / len(active) if active else None
            ),
            "byState": by_state,
            "totalEvents": sum(len(s.events) for s in sessions),
            "totalTokens": sum(s.metrics.total_tokens for s in sessions),
            "totalSnapshots": sum(len(s.snapshots) for s in sessions),
            "currentSessionId": self._current_session_id,
        }


__all__ = [
    "ActionType",
    "ControllerAction",
    "TickResult",
    "TrimResult",
    "OutputTrimmer",
    "ActionCache",
    "ContextController",
]
