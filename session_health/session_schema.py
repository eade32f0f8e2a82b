"""
Session schema models for the session health engine.

Pydantic models for the persisted session record. Python attributes use
snake_case; the JSON record uses camelCase field names
(``initialPrompt``, ``healthScore``, ``commitHash`` ...).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given."""
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def clamp01(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


_MODEL_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "use_enum_values": True,
}


class EventType(str, Enum):
    """
    Kind of entry in the session event log.

    message, tool, error, snapshot and compact are the record format's core
    types. action is an extension written by the controller for its own
    decisions (alerts, trims, automatic compactions and snapshots); readers
    that only know the core types should skip it.
    """

    MESSAGE = "message"
    TOOL = "tool"
    ERROR = "error"
    SNAPSHOT = "snapshot"
    COMPACT = "compact"
    ACTION = "action"


class MessageRole(str, Enum):
    """Author of a transcript message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class SessionEvent(BaseModel):
    """One immutable entry of the append-only event log."""

    timestamp: str
    type: EventType
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = {**_MODEL_CONFIG, "frozen": True}


class SnapshotRef(BaseModel):
    """Lightweight checkpoint of a session's health signal."""

    commit_hash: str
    timestamp: datetime
    health_score: float = Field(ge=0.0, le=1.0)
    description: str = ""

    model_config = {**_MODEL_CONFIG, "frozen": True}


class Message(BaseModel):
    """A transcript message, kept only when transcript retention is on."""

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)

    model_config = _MODEL_CONFIG


class SessionMetadata(BaseModel):
    """Descriptive session metadata."""

    initial_prompt: str = Field(frozen=True)
    phase: str = "initialization"
    health_score: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = {**_MODEL_CONFIG, "validate_assignment": True}


class SessionMetrics(BaseModel):
    """Resource counters for a session."""

    total_tokens: int = Field(default=0, ge=0)
    message_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    retry_count: int = Field(default=0, ge=0)
    drift_score: float = Field(default=0.0, ge=0.0, le=1.0)

    model_config = {**_MODEL_CONFIG, "validate_assignment": True}


class TopicTracking(BaseModel):
    """Bounded, insertion-ordered keyword and file path sets."""

    keywords: list[str] = Field(default_factory=list)
    file_paths: list[str] = Field(default_factory=list)

    model_config = _MODEL_CONFIG


class Session(BaseModel):
    """
    Root aggregate: one record per conversation.

    ``events`` is the audit trail of everything that happened to the
    session. Only the compactor removes entries from it.
    """

    id: str = Field(frozen=True)
    created_at: datetime = Field(default_factory=utcnow, frozen=True)
    updated_at: datetime = Field(default_factory=utcnow)
    metadata: SessionMetadata
    metrics: SessionMetrics = Field(default_factory=SessionMetrics)
    topic_tracking: TopicTracking = Field(default_factory=TopicTracking)
    events: list[SessionEvent] = Field(default_factory=list)
    snapshots: list[SnapshotRef] = Field(default_factory=list)
    messages: list[Message] | None = None

    model_config = {**_MODEL_CONFIG, "extra": "forbid"}

    def append_event(
        self,
        event_type: EventType | str,
        data: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> SessionEvent:
        """
        Append an event to the log.

        Timestamps are strictly increasing within a session, so that
        (timestamp, type) identifies a single event.
        """
        ts = parse_timestamp(now) if now else utcnow()
        if self.events:
            last = parse_timestamp(self.events[-1].timestamp)
            if ts <= last:
                ts = last + timedelta(microseconds=1)
        event = SessionEvent(
            timestamp=ts.astimezone(timezone.utc).isoformat(timespec="microseconds"),
            type=EventType(event_type),
            data=data or {},
        )
        self.events.append(event)
        return event

    def events_of_type(self, event_type: EventType | str) -> list[SessionEvent]:
        """Events of one type, in log order."""
        wanted = EventType(event_type).value
        return [e for e in self.events if e.type == wanted]

    def last_event_of_type(self, event_type: EventType | str) -> SessionEvent | None:
        """Most recent event of one type."""
        wanted = EventType(event_type).value
        for event in reversed(self.events):
            if event.type == wanted:
                return event
        return None

    def find_snapshot(self, commit_hash: str) -> SnapshotRef | None:
        """Snapshot reference by hash."""
        for ref in self.snapshots:
            if ref.commit_hash == commit_hash:
                return ref
        return None

    def to_json(self) -> str:
        """Serialize with camelCase field names."""
        return self.model_dump_json(by_alias=True, indent=2)


__all__ = [
    "utcnow",
    "parse_timestamp",
    "clamp01",
    "EventType",
    "MessageRole",
    "SessionEvent",
    "SnapshotRef",
    "Message",
    "SessionMetadata",
    "SessionMetrics",
    "TopicTracking",
    "Session",
]
