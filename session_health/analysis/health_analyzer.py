"""
Session health analysis.

Combines drift, error rate, session length and recency of activity into
one score in [0, 1] (higher is healthier):

    score = 1 - clamp01(0.4*drift + 0.3*errors + 0.15*length + 0.15*(1 - activity))

The activity factor decays linearly over `activity_decay_hours` since the
last tracked message, tool call or error. Writes that only refresh the
record (health reads, snapshots, ticks) do not count as activity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from ..config import DriftConfig, HealthConfig
from ..session_schema import EventType, Session, clamp01, parse_timestamp, utcnow
from .drift_detector import DriftResult, TopicDriftDetector

DRIFT_WEIGHT = 0.4
ERROR_WEIGHT = 0.3
LENGTH_WEIGHT = 0.15
ACTIVITY_WEIGHT = 0.15

# Session length at which the length factor saturates
LENGTH_SATURATION = 100
ERROR_RATE_MULTIPLIER = 5

HealthState = Literal["healthy", "warning", "critical"]


@dataclass
class HealthFactors:
    """Individual health factors, each in [0, 1]."""

    drift: float
    errors: float
    length: float
    activity: float

    def to_dict(self) -> dict[str, float]:
        return {
            "drift": self.drift,
            "errors": self.errors,
            "length": self.length,
            "activity": self.activity,
        }


@dataclass
class HealthReport:
    """Result of analyze_health."""

    score: float
    factors: HealthFactors
    recommendations: list[str] = field(default_factory=list)
    drift: DriftResult | None = None


@dataclass
class SessionStatus:
    """Status view of a session. health_score is the canonical [0, 1] value."""

    session_id: str
    health_score: float
    state: HealthState
    drift_score: float
    phase: str
    message_count: int
    token_count: int
    last_compact_at: datetime | None
    last_snapshot_at: datetime | None
    recommendations: list[str]
    needs_attention: bool

    @property
    def health_percent(self) -> int:
        """Health on the 0-100 presentation scale."""
        return round(self.health_score * 100)

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "healthScore": self.health_score,
            "healthPercent": self.health_percent,
            "state": self.state,
            "driftScore": self.drift_score,
            "phase": self.phase,
            "messageCount": self.message_count,
            "tokenCount": self.token_count,
            "lastCompactAt": self.last_compact_at.isoformat() if self.last_compact_at else None,
            "lastSnapshotAt": self.last_snapshot_at.isoformat() if self.last_snapshot_at else None,
            "recommendations": list(self.recommendations),
            "needsAttention": self.needs_attention,
        }


def health_state(score: float) -> HealthState:
    """Map a score to its state label."""
    if score >= 0.7:
        return "healthy"
    if score >= 0.4:
        return "warning"
    return "critical"


def error_factor(session: Session) -> float:
    messages = session.metrics.message_count
    if messages == 0:
        return 0.0
    return min(1.0, (session.metrics.error_count / messages) * ERROR_RATE_MULTIPLIER)


def length_factor(session: Session) -> float:
    size = max(session.metrics.message_count, len(session.events))
    return min(1.0, size / LENGTH_SATURATION)


ACTIVITY_EVENT_TYPES = frozenset({EventType.MESSAGE, EventType.TOOL, EventType.ERROR})


def last_activity_at(session: Session) -> datetime:
    """Timestamp of the latest tracked event, or createdAt when none."""
    for event in reversed(session.events):
        if event.type in ACTIVITY_EVENT_TYPES:
            return parse_timestamp(event.timestamp)
    return session.created_at


def activity_factor(session: Session, now: datetime | None = None, decay_hours: float = 4.0) -> float:
    now = now or utcnow()
    hours = max(0.0, (now - last_activity_at(session)).total_seconds() / 3600)
    return max(0.0, 1.0 - hours / decay_hours)


def combine_factors(factors: HealthFactors) -> float:
    """Weighted combination of factors into a health score."""
    penalty = (
        DRIFT_WEIGHT * factors.drift
        + ERROR_WEIGHT * factors.errors
        + LENGTH_WEIGHT * factors.length
        + ACTIVITY_WEIGHT * (1.0 - factors.activity)
    )
    return clamp01(1.0 - clamp01(penalty))


class SessionAnalyzer:
    """Computes health scores, status and recommendations for sessions."""

    def __init__(
        self,
        drift_detector: TopicDriftDetector | None = None,
        health_config: HealthConfig | None = None,
        drift_config: DriftConfig | None = None,
    ):
        self.drift_detector = drift_detector or TopicDriftDetector()
        self.health_config = health_config or HealthConfig()
        self.drift_config = drift_config or DriftConfig()

    @property
    def drift_threshold(self) -> float:
        return self.drift_config.threshold

    def analyze_health(self, session: Session, now: datetime | None = None) -> HealthReport:
        """
        Score a session.

        Args:
            session: Session to analyze
            now: Reference time for the activity factor (default: now)

        Returns:
            HealthReport with score, factors and recommendations
        """
        drift = self.drift_detector.detect(session, self.drift_threshold)
        factors = HealthFactors(
            drift=drift.drift_score,
            errors=error_factor(session),
            length=length_factor(session),
            activity=activity_factor(session, now, self.health_config.activity_decay_hours),
        )
        return HealthReport(
            score=combine_factors(factors),
            factors=factors,
            recommendations=self.recommendations(session, factors),
            drift=drift,
        )

    def recommendations(self, session: Session, factors: HealthFactors) -> list[str]:
        """Advisory text, one entry per factor over its threshold."""
        recs = []
        if factors.drift > self.drift_threshold:
            recs.append(
                f"Conversation has drifted from the original task (drift {factors.drift:.2f}); "
                "refocus on the initial prompt or start a new session."
            )
        if factors.errors > 0.5:
            recs.append(
                f"High error rate ({session.metrics.error_count} errors in "
                f"{session.metrics.message_count} messages); review failing steps before continuing."
            )
        if factors.length > 0.7:
            recs.append("Session is getting long; compact the event log or create a snapshot.")
        if factors.activity < 0.3:
            recs.append("Session has been idle for a while; consider ending it or summarizing progress.")
        if session.metrics.retry_count > 5:
            recs.append(
                f"{session.metrics.retry_count} repeated tool calls detected; the agent may be stuck in a loop."
            )
        return recs

    def get_status(self, session: Session, report: HealthReport | None = None) -> SessionStatus:
        """Build the status view for a session."""
        report = report or self.analyze_health(session)
        last_compact = session.last_event_of_type(EventType.COMPACT)
        last_snapshot = session.snapshots[-1] if session.snapshots else None
        drift_score = report.factors.drift

        return SessionStatus(
            session_id=session.id,
            health_score=report.score,
            state=health_state(report.score),
            drift_score=drift_score,
            phase=session.metadata.phase,
            message_count=session.metrics.message_count,
            token_count=session.metrics.total_tokens,
            last_compact_at=parse_timestamp(last_compact.timestamp) if last_compact else None,
            last_snapshot_at=parse_timestamp(last_snapshot.timestamp) if last_snapshot else None,
            recommendations=report.recommendations,
            needs_attention=report.score < 0.5 or drift_score > self.drift_threshold,
        )


__all__ = [
    "HealthFactors",
    "HealthReport",
    "SessionStatus",
    "SessionAnalyzer",
    "health_state",
    "combine_factors",
    "activity_factor",
    "last_activity_at",
]
