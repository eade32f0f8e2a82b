"""Session health & compaction engine.

Tracks long-running LLM agent conversations, scores their health, detects
topic drift, compacts event logs and checkpoints sessions.

Layers:
- Store: one JSON record per session, crash-safe writes
- Monitor / Analyzer: event recording, drift, health, phase
- Compactor / Snapshots: remediation primitives
- Controller: lifecycle API and remediation loop
"""

__version__ = "0.1.0"

# Records
from .session_schema import EventType, MessageRole, Session, SessionEvent, SnapshotRef
from .session_store import SessionStore
from .errors import (
    BackendUnavailableError,
    ContextManagerError,
    CorruptDataError,
    InvalidArgumentError,
    NotFoundError,
    SessionNotFoundError,
    SnapshotNotFoundError,
    StorageIOError,
)

# Analysis
from .analysis import DriftResult, LLMDriftAnalyzer, SessionAnalyzer, SessionStatus, TopicDriftDetector
from .monitor import SessionMonitor

# Remediation
from .compactor import CompactOptions, CompactResult, SessionCompactor
from .snapshots import SnapshotManager
from .controller import ActionType, ContextController, ControllerAction, TickResult, TrimResult

# Config
from .config import ContextConfig, default_config

__all__ = [
    # Records
    "EventType",
    "MessageRole",
    "Session",
    "SessionEvent",
    "SnapshotRef",
    "SessionStore",
    # Errors
    "ContextManagerError",
    "NotFoundError",
    "SessionNotFoundError",
    "SnapshotNotFoundError",
    "InvalidArgumentError",
    "CorruptDataError",
    "StorageIOError",
    "BackendUnavailableError",
    # Analysis
    "DriftResult",
    "LLMDriftAnalyzer",
    "SessionAnalyzer",
    "SessionStatus",
    "TopicDriftDetector",
    "SessionMonitor",
    # Remediation
    "CompactOptions",
    "CompactResult",
    "SessionCompactor",
    "SnapshotManager",
    "ActionType",
    "ContextController",
    "ControllerAction",
    "TickResult",
    "TrimResult",
    # Config
    "ContextConfig",
    "default_config",
]
