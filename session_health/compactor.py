"""
Session Compactor for the session health engine.

Reduces an event log to a bounded working set. Snapshot, error and prior
compact events survive according to the preserve flags, plus the last N
events by position. Everything removed is summarized into the compact
event appended at the end, so the log keeps its own provenance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import groupby
from pathlib import PurePath

from .config import CompactionConfig
from .errors import InvalidArgumentError
from .session_schema import EventType, Session, SessionEvent

logger = logging.getLogger(__name__)

# Tool names counted as file reads / writes in summaries
READ_TOOLS = frozenset({"read", "read_file", "view", "cat", "glob", "grep", "ls", "notebookread"})
WRITE_TOOLS = frozenset({"write", "write_file", "edit", "multiedit", "create_file", "str_replace", "notebookedit", "apply_patch"})

# Error buckets, checked in order against the lower-cased message
ERROR_BUCKETS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("not_found", ("not found", "not_found", "no such file", "enoent", "404")),
    ("permission", ("permission", "denied", "eacces", "forbidden", "403")),
    ("timeout", ("timeout", "timed out", "etimedout")),
    ("syntax", ("syntax", "parse error", "unexpected token")),
)

MAX_FILES_IN_SUMMARY = 5


@dataclass
class CompactOptions:
    """Options for one compaction pass. None falls back to configuration."""

    keep_last_n: int | None = None
    preserve_errors: bool = True
    preserve_snapshots: bool = True
    dry_run: bool = False
    threshold: int | None = None


@dataclass
class CompactResult:
    """Outcome of a compaction pass."""

    original_events: int
    events_removed: int
    events_kept: int
    summary: str
    space_saved: int
    dry_run: bool = False

    def to_dict(self) -> dict:
        return {
            "originalEvents": self.original_events,
            "eventsRemoved": self.events_removed,
            "eventsKept": self.events_kept,
            "summary": self.summary,
            "spaceSaved": self.space_saved,
            "dryRun": self.dry_run,
        }


def _event_key(event: SessionEvent) -> tuple[str, str]:
    return (event.timestamp, event.type)


def _event_size(events: list[SessionEvent]) -> int:
    return sum(len(e.model_dump_json(by_alias=True).encode("utf-8")) for e in events)


def _error_bucket(message: str) -> str:
    lowered = message.lower()
    for bucket, needles in ERROR_BUCKETS:
        if any(n in lowered for n in needles):
            return bucket
    return "other"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _summarize_tools(events: list[SessionEvent]) -> str:
    reads = writes = other = 0
    files: list[str] = []
    for event in events:
        name = str(event.data.get("name", "")).lower()
        if name in READ_TOOLS:
            reads += 1
        elif name in WRITE_TOOLS:
            writes += 1
        else:
            other += 1
        for path in event.data.get("filePaths", []) or []:
            if path not in files:
                files.append(path)

    parts = []
    if reads:
        parts.append(f"{_plural(reads, 'file read')}")
    if writes:
        parts.append(f"{_plural(writes, 'file write')}")
    if other:
        parts.append(f"{_plural(other, 'other tool call')}")
    sentence = f"Ran {_plural(len(events), 'tool call')} ({', '.join(parts)})"

    if files:
        shown = [PurePath(p).name for p in files[:MAX_FILES_IN_SUMMARY]]
        more = f" (+{len(files) - MAX_FILES_IN_SUMMARY} more)" if len(files) > MAX_FILES_IN_SUMMARY else ""
        sentence += f" touching {', '.join(shown)}{more}"
    return sentence + "."


def _summarize_errors(events: list[SessionEvent]) -> str:
    buckets: dict[str, int] = {}
    for event in events:
        bucket = _error_bucket(str(event.data.get("message", "")))
        buckets[bucket] = buckets.get(bucket, 0) + 1
    detail = ", ".join(f"{count} {bucket}" for bucket, count in buckets.items())
    return f"Encountered {_plural(len(events), 'error')} ({detail})."


def _summarize_snapshots(events: list[SessionEvent]) -> str:
    scores = [
        float(e.data["healthScore"])
        for e in events
        if isinstance(e.data.get("healthScore"), (int, float))
    ]
    if not scores:
        return f"Recorded {_plural(len(events), 'snapshot event')}."
    return f"Recorded {_plural(len(events), 'snapshot event')} (average health {sum(scores) / len(scores):.2f})."


def _summarize_actions(events: list[SessionEvent]) -> str:
    kinds: dict[str, int] = {}
    for event in events:
        kind = str(event.data.get("action", "unknown"))
        kinds[kind] = kinds.get(kind, 0) + 1
    detail = ", ".join(f"{kind} x{count}" for kind, count in kinds.items())
    return f"Controller ran {_plural(len(events), 'action')} ({detail})."


def summarize_events(events: list[SessionEvent]) -> str:
    """
    One sentence per run of consecutive events of the same type.

    Args:
        events: Removed events, in log order

    Returns:
        Human-readable summary
    """
    if not events:
        return "No events removed."

    sentences = []
    for event_type, run in groupby(events, key=lambda e: e.type):
        run = list(run)
        if event_type == EventType.MESSAGE.value:
            sentences.append(f"Exchanged {_plural(len(run), 'message')}.")
        elif event_type == EventType.TOOL.value:
            sentences.append(_summarize_tools(run))
        elif event_type == EventType.ERROR.value:
            sentences.append(_summarize_errors(run))
        elif event_type == EventType.SNAPSHOT.value:
            sentences.append(_summarize_snapshots(run))
        elif event_type == EventType.ACTION.value:
            sentences.append(_summarize_actions(run))
        else:
            sentences.append(f"Removed {_plural(len(run), event_type + ' event')}.")
    return " ".join(sentences)


class SessionCompactor:
    """Compacts a session's event log in place."""

    def __init__(self, config: CompactionConfig | None = None):
        self.config = config or CompactionConfig()

    def resolve_options(self, options: CompactOptions | None) -> CompactOptions:
        """Fill unset options from configuration and validate them."""
        options = options or CompactOptions(
            preserve_errors=self.config.preserve_errors,
            preserve_snapshots=self.config.preserve_snapshots,
        )
        keep_last_n = self.config.keep_last_n if options.keep_last_n is None else options.keep_last_n
        threshold = self.config.threshold if options.threshold is None else options.threshold

        if keep_last_n < 0:
            raise InvalidArgumentError(f"keep_last_n must be >= 0, got {keep_last_n}")
        if threshold < 0:
            raise InvalidArgumentError(f"threshold must be >= 0, got {threshold}")

        return CompactOptions(
            keep_last_n=keep_last_n,
            preserve_errors=options.preserve_errors,
            preserve_snapshots=options.preserve_snapshots,
            dry_run=options.dry_run,
            threshold=threshold,
        )

    def select_kept(self, events: list[SessionEvent], options: CompactOptions) -> list[SessionEvent]:
        """
        Events that survive compaction, sorted by timestamp.

        Policy, accumulated in order then de-duplicated by (timestamp, type):
        1. snapshot events (if preserve_snapshots)
        2. error events (if preserve_errors)
        3. all compact events
        4. the last keep_last_n events by position
        """
        kept: list[SessionEvent] = []
        if options.preserve_snapshots:
            kept.extend(e for e in events if e.type == EventType.SNAPSHOT.value)
        if options.preserve_errors:
            kept.extend(e for e in events if e.type == EventType.ERROR.value)
        kept.extend(e for e in events if e.type == EventType.COMPACT.value)
        if options.keep_last_n:
            kept.extend(events[-options.keep_last_n:])

        unique: dict[tuple[str, str], SessionEvent] = {}
        for event in kept:
            unique.setdefault(_event_key(event), event)
        return sorted(unique.values(), key=lambda e: e.timestamp)

    def compact(self, session: Session, options: CompactOptions | None = None) -> CompactResult:
        """
        Compact a session's event log.

        Args:
            session: Session to compact (mutated unless dry_run)
            options: Compaction options

        Returns:
            CompactResult; events_removed is 0 when the log is at or below
            the threshold
        """
        options = self.resolve_options(options)
        events = list(session.events)
        original = len(events)

        if original <= options.threshold:
            return CompactResult(
                original_events=original,
                events_removed=0,
                events_kept=original,
                summary=f"No compaction needed ({original} events, threshold {options.threshold}).",
                space_saved=0,
                dry_run=options.dry_run,
            )

        kept = self.select_kept(events, options)
        kept_keys = {_event_key(e) for e in kept}
        removed = [e for e in events if _event_key(e) not in kept_keys]

        summary = summarize_events(removed)
        result = CompactResult(
            original_events=original,
            events_removed=len(removed),
            events_kept=len(kept),
            summary=summary,
            space_saved=_event_size(removed),
            dry_run=options.dry_run,
        )

        if options.dry_run:
            return result

        session.events = kept
        session.append_event(
            EventType.COMPACT,
            {
                "eventsRemoved": result.events_removed,
                "eventsKept": result.events_kept,
                "summary": summary,
                "spaceSaved": result.space_saved,
            },
        )
        logger.info(
            f"Compacted session {session.id}: removed {result.events_removed}, kept {result.events_kept}"
        )
        return result


__all__ = [
    "CompactOptions",
    "CompactResult",
    "SessionCompactor",
    "summarize_events",
]
