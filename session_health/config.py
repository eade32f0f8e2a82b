"""
Configuration management for the session health engine.

Settings live in ~/.claude/context-manager-config.json; a missing file
means defaults. CONTEXT_SESSIONS_DIR and CONTEXT_DRIFT_THRESHOLD override
the file.
"""

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

from .errors import InvalidArgumentError

CONFIG_PATH = Path.home() / ".claude" / "context-manager-config.json"


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


def validate_threshold(value: float, name: str = "threshold") -> float:
    """Reject thresholds outside [0, 1]."""
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not 0.0 <= value <= 1.0:
        raise InvalidArgumentError(f"{name} must be within [0, 1], got {value!r}")
    return float(value)


@dataclass
class StorageConfig:
    """Where session records live."""

    sessions_dir: str = ".claude/sessions"
    # Keep the full message transcript on the session record
    retain_transcript: bool = False


@dataclass
class TrackingConfig:
    """Configuration for the session monitor."""

    max_keywords: int = 50
    max_file_paths: int = 20
    retry_window_seconds: float = 30.0
    retry_history_per_tool: int = 10
    retry_max_sessions: int = 100


@dataclass
class DriftConfig:
    """Configuration for topic drift detection."""

    threshold: float = 0.7
    recent_messages: int = 5


@dataclass
class HealthConfig:
    """
    Health score thresholds.

    Scores are floats in [0, 1]. activity_decay_hours is the window over
    which the activity factor decays from 1 to 0 since the last tracked event.
    """

    critical: float = 0.4
    warning: float = 0.7
    good: float = 0.85
    activity_decay_hours: float = 4.0
    phase_window: int = 10


@dataclass
class CompactionConfig:
    """Defaults for event log compaction."""

    threshold: int = 100
    keep_last_n: int = 50
    preserve_errors: bool = True
    preserve_snapshots: bool = True


@dataclass
class SnapshotConfig:
    """Snapshot backend and auto-snapshot policy."""

    backend: Literal["json", "git"] = "json"
    staleness_seconds: float = 3600.0


@dataclass
class LimitsConfig:
    """Counts above which the controller asks for output trimming."""

    max_tokens: int = 150_000
    max_messages: int = 200
    max_events: int = 500


@dataclass
class ControllerConfig:
    """Controller bookkeeping."""

    action_cache_size: int = 100
    monitor_interval_seconds: float = 60.0


@dataclass
class ContextConfig:
    """Complete session health configuration."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    drift: DriftConfig = field(default_factory=DriftConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    compaction: CompactionConfig = field(default_factory=CompactionConfig)
    snapshots: SnapshotConfig = field(default_factory=SnapshotConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    controller: ControllerConfig = field(default_factory=ControllerConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "ContextConfig":
        """
        Load configuration from file, then apply environment overrides.

        Args:
            path: Optional config file path. Defaults to CONFIG_PATH

        Returns:
            ContextConfig with user settings merged over defaults

        Raises:
            InvalidArgumentError: If the drift threshold is outside [0, 1]
        """
        if path is None:
            path = CONFIG_PATH

        data: dict[str, Any] = {}
        if path.exists():
            with open(path) as f:
                data = json.load(f)

        config = cls(
            storage=StorageConfig(**_filter_dataclass_fields(data.get("storage", {}), StorageConfig)),
            tracking=TrackingConfig(**_filter_dataclass_fields(data.get("tracking", {}), TrackingConfig)),
            drift=DriftConfig(**_filter_dataclass_fields(data.get("drift", {}), DriftConfig)),
            health=HealthConfig(**_filter_dataclass_fields(data.get("health", {}), HealthConfig)),
            compaction=CompactionConfig(**_filter_dataclass_fields(data.get("compaction", {}), CompactionConfig)),
            snapshots=SnapshotConfig(**_filter_dataclass_fields(data.get("snapshots", {}), SnapshotConfig)),
            limits=LimitsConfig(**_filter_dataclass_fields(data.get("limits", {}), LimitsConfig)),
            controller=ControllerConfig(**_filter_dataclass_fields(data.get("controller", {}), ControllerConfig)),
        )
        config.apply_env()
        config.drift.threshold = validate_threshold(config.drift.threshold, "drift threshold")
        return config

    def apply_env(self) -> None:
        """Apply environment variable overrides (highest priority)."""
        sessions_dir = os.getenv("CONTEXT_SESSIONS_DIR")
        if sessions_dir:
            self.storage.sessions_dir = sessions_dir

        threshold = os.getenv("CONTEXT_DRIFT_THRESHOLD")
        if threshold is not None:
            try:
                value = float(threshold)
            except ValueError as e:
                raise InvalidArgumentError(f"CONTEXT_DRIFT_THRESHOLD must be a number, got {threshold!r}") from e
            self.drift.threshold = validate_threshold(value, "CONTEXT_DRIFT_THRESHOLD")

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)


# Default configuration instance
default_config = ContextConfig()


__all__ = [
    "CONFIG_PATH",
    "StorageConfig",
    "TrackingConfig",
    "DriftConfig",
    "HealthConfig",
    "CompactionConfig",
    "SnapshotConfig",
    "LimitsConfig",
    "ControllerConfig",
    "ContextConfig",
    "default_config",
]
