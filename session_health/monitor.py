"""
Session Monitor for the session health engine.

Records messages, tool calls and errors on an in-memory Session: appends
one event per call, updates counters, and feeds topic tracking. The caller
persists the session.
"""

from __future__ import annotations

import json
import logging
import math
import re
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Any

from .analysis.keyword_extractor import KeywordExtractor
from .config import TrackingConfig
from .session_schema import EventType, Message, MessageRole, Session, SessionEvent

logger = logging.getLogger(__name__)

# Hiragana/Katakana, CJK ext A, CJK unified, compatibility ideographs, Hangul
_CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff\uac00-\ud7af]")

CONTENT_PREVIEW_CHARS = 500
RESULT_PREVIEW_CHARS = 300

# Argument keys that name files touched by a tool
_PATH_KEYS = ("path", "file_path", "filePath", "filename", "file", "paths", "files", "notebook_path")


def estimate_tokens(text: str) -> int:
    """
    Character-count token estimate.

    4 chars per token for ASCII-dominant text, 2 when CJK is present.
    """
    if not text:
        return 0
    divisor = 2 if _CJK_RE.search(text) else 4
    return math.ceil(len(text) / divisor)


def serialize_args(args: Any) -> str:
    """Stable string form of tool arguments."""
    if isinstance(args, str):
        return args
    try:
        return json.dumps(args, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return str(args)


def is_near_identical(a: str, b: str) -> bool:
    """
    Exact match, or <=10% length difference with >90% positional overlap.
    """
    if a == b:
        return True
    longest = max(len(a), len(b))
    if longest == 0:
        return True
    if abs(len(a) - len(b)) / longest > 0.1:
        return False
    same = sum(1 for x, y in zip(a, b) if x == y)
    return same / longest > 0.9


def merge_bounded(existing: list[str], new: list[str], cap: int) -> list[str]:
    """
    Insertion-ordered bounded set.

    Re-added entries move to the most recent end; overflow drops the oldest.
    """
    if not new:
        return existing
    incoming = set(new)
    merged = [item for item in existing if item not in incoming]
    for item in new:
        if item not in merged:
            merged.append(item)
    if cap >= 0 and len(merged) > cap:
        merged = merged[len(merged) - cap:]
    return merged


@dataclass
class _ToolCall:
    at: float
    args: str


class RetryWindow:
    """
    Recent tool calls for retry detection.

    Bounded three ways: entries older than window_seconds are pruned,
    each tool keeps at most per_tool calls, and at most max_sessions
    sessions are tracked (least recently used evicted).
    """

    def __init__(self, window_seconds: float = 30.0, per_tool: int = 10, max_sessions: int = 100):
        self.window_seconds = window_seconds
        self.per_tool = per_tool
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, dict[str, deque[_ToolCall]]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def check_and_record(self, session_id: str, tool_name: str, args: str, now: float | None = None) -> bool:
        """
        Record a call and report whether it repeats a recent one.

        Returns:
            True if a call to the same tool within the window had
            near-identical arguments
        """
        now = time.monotonic() if now is None else now
        tools = self._sessions.get(session_id)
        if tools is None:
            tools = {}
            self._sessions[session_id] = tools
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.debug(f"Retry window evicted session {evicted}")
        else:
            self._sessions.move_to_end(session_id)

        calls = tools.setdefault(tool_name, deque(maxlen=self.per_tool))
        while calls and now - calls[0].at > self.window_seconds:
            calls.popleft()

        is_retry = any(is_near_identical(c.args, args) for c in calls)
        calls.append(_ToolCall(at=now, args=args))
        return is_retry

    def forget(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class SessionMonitor:
    """
    Real-time event and metric recorder.

    Every track_* call appends exactly one event to the session.
    """

    def __init__(
        self,
        config: TrackingConfig | None = None,
        extractor: KeywordExtractor | None = None,
        retain_transcript: bool = False,
    ):
        self.config = config or TrackingConfig()
        self.extractor = extractor or KeywordExtractor()
        self.retain_transcript = retain_transcript
        self.retry_window = RetryWindow(
            window_seconds=self.config.retry_window_seconds,
            per_tool=self.config.retry_history_per_tool,
            max_sessions=self.config.retry_max_sessions,
        )

    def update_topics(self, session: Session, text: str, extra_paths: list[str] | None = None) -> None:
        """Merge keywords and file paths found in text into topic tracking."""
        tracking = session.topic_tracking
        tracking.keywords = merge_bounded(
            tracking.keywords, self.extractor.extract_keywords(text), self.config.max_keywords
        )
        paths = self.extractor.extract_file_paths(text) + list(extra_paths or [])
        tracking.file_paths = merge_bounded(tracking.file_paths, paths, self.config.max_file_paths)

    def record_seed(self, session: Session) -> SessionEvent:
        """
        Seed a new session with its initial prompt.

        The seed is a message event but does not count toward messageCount.
        """
        prompt = session.metadata.initial_prompt
        tokens = estimate_tokens(prompt)
        session.metrics.total_tokens += tokens
        if self.retain_transcript:
            session.messages = [Message(role=MessageRole.USER, content=prompt)]
        self.update_topics(session, prompt)
        return session.append_event(
            EventType.MESSAGE,
            {"role": "user", "content": prompt[:CONTENT_PREVIEW_CHARS], "tokens": tokens, "initial": True},
        )

    def track_message(self, session: Session, role: MessageRole | str, content: str) -> SessionEvent:
        """
        Track a user, assistant or system message.

        Args:
            session: Session to update
            role: Message author
            content: Message text

        Returns:
            The appended message event
        """
        role = MessageRole(role)
        tokens = estimate_tokens(content)

        session.metrics.message_count += 1
        session.metrics.total_tokens += tokens
        if self.retain_transcript:
            if session.messages is None:
                session.messages = []
            session.messages.append(Message(role=role, content=content))
        self.update_topics(session, content)

        return session.append_event(
            EventType.MESSAGE,
            {"role": role.value, "content": content[:CONTENT_PREVIEW_CHARS], "tokens": tokens},
        )

    def track_tool(self, session: Session, name: str, args: Any = None, result: Any = None) -> SessionEvent:
        """
        Track a tool invocation.

        A call is flagged isRetry when the same tool was called with
        near-identical arguments within the retry window.
        """
        args_text = serialize_args(args)
        result_text = "" if result is None else serialize_args(result)
        tokens = estimate_tokens(args_text) + estimate_tokens(result_text)

        is_retry = self.retry_window.check_and_record(session.id, name, args_text)
        if is_retry:
            session.metrics.retry_count += 1
            logger.debug(f"Retry detected for tool {name} in session {session.id}")

        session.metrics.total_tokens += tokens
        file_paths = _paths_from_args(args)
        self.update_topics(session, args_text, extra_paths=file_paths)

        return session.append_event(
            EventType.TOOL,
            {
                "name": name,
                "args": args_text[:CONTENT_PREVIEW_CHARS],
                "result": result_text[:RESULT_PREVIEW_CHARS],
                "tokens": tokens,
                "isRetry": is_retry,
                "filePaths": file_paths,
            },
        )

    def track_error(self, session: Session, error: BaseException | str) -> SessionEvent:
        """Track an error (exception instance or message)."""
        if isinstance(error, BaseException):
            message = str(error) or type(error).__name__
            error_type = type(error).__name__
        else:
            message = str(error)
            error_type = "Error"

        session.metrics.error_count += 1
        self.update_topics(session, message)

        return session.append_event(
            EventType.ERROR,
            {"message": message[:CONTENT_PREVIEW_CHARS], "errorType": error_type},
        )


def _paths_from_args(args: Any) -> list[str]:
    """File paths named by well-known argument keys."""
    if not isinstance(args, dict):
        return []
    paths: list[str] = []
    for key in _PATH_KEYS:
        value = args.get(key)
        if isinstance(value, str) and value:
            paths.append(value)
        elif isinstance(value, (list, tuple)):
            paths.extend(v for v in value if isinstance(v, str) and v)
    return paths


__all__ = [
    "SessionMonitor",
    "RetryWindow",
    "estimate_tokens",
    "is_near_identical",
    "merge_bounded",
    "serialize_args",
]
