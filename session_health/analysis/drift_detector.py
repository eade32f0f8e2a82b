"""
Topic drift detection.

Drift is 1 - Jaccard similarity between the keyword set of the initial
prompt and the keyword set of the most recent messages. Scores at or above
the threshold go through a pluggable deep-analysis hook.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, Protocol

from ..config import validate_threshold
from ..session_schema import EventType, Session, clamp01
from .keyword_extractor import KeywordExtractor, jaccard_similarity

if TYPE_CHECKING:
    from ..llm_client import LLMClient

logger = logging.getLogger(__name__)


class DriftAnalysisError(Exception):
    """Deep drift analysis backend failed."""


class DriftAnalyzer(Protocol):
    """Semantic drift backend."""

    def analyze(self, initial_keywords: set[str], recent_text: str) -> float:
        """Return a drift score in [0, 1]."""
        ...


@dataclass
class DriftResult:
    """Outcome of one drift detection pass."""

    drift_score: float
    method: Literal["keyword", "deep"]
    needs_deep_analysis: bool
    initial_keywords: set[str] = field(default_factory=set)
    recent_keywords: set[str] = field(default_factory=set)

    def to_dict(self) -> dict:
        return {
            "driftScore": self.drift_score,
            "method": self.method,
            "needsDeepAnalysis": self.needs_deep_analysis,
            "initialKeywords": sorted(self.initial_keywords),
            "recentKeywords": sorted(self.recent_keywords),
        }


class TopicDriftDetector:
    """
    Keyword-set drift detector with a threshold-gated escalation hook.

    With no DriftAnalyzer wired, the hook returns the keyword score
    unchanged.
    """

    def __init__(
        self,
        extractor: KeywordExtractor | None = None,
        deep_analyzer: DriftAnalyzer | None = None,
        recent_messages: int = 5,
    ):
        self.extractor = extractor or KeywordExtractor()
        self.deep_analyzer = deep_analyzer
        self.recent_messages = recent_messages

    def recent_texts(self, session: Session) -> list[str]:
        """
        Text of the most recent messages.

        Uses the transcript when retained, otherwise the content recorded
        on message events, otherwise the initial prompt.
        """
        n = self.recent_messages
        if session.messages:
            return [m.content for m in session.messages[-n:]]

        texts = [
            str(e.data.get("content", ""))
            for e in session.events_of_type(EventType.MESSAGE)
            if e.data.get("content")
        ]
        if texts:
            return texts[-n:]
        return [session.metadata.initial_prompt]

    def detect(self, session: Session, threshold: float) -> DriftResult:
        """
        Compute the drift score for a session.

        Args:
            session: Session to analyze
            threshold: Escalation threshold in [0, 1]

        Returns:
            DriftResult
        """
        threshold = validate_threshold(threshold)

        initial = set(self.extractor.extract_keywords(session.metadata.initial_prompt))
        texts = self.recent_texts(session)
        recent = self.extractor.keyword_set(texts)

        keyword_score = clamp01(1.0 - jaccard_similarity(initial, recent))

        # Fast path
        if keyword_score < threshold:
            return DriftResult(
                drift_score=keyword_score,
                method="keyword",
                needs_deep_analysis=False,
                initial_keywords=initial,
                recent_keywords=recent,
            )

        score, method = self._deep_analysis(initial, "\n".join(texts), keyword_score)
        return DriftResult(
            drift_score=score,
            method=method,
            needs_deep_analysis=score >= threshold,
            initial_keywords=initial,
            recent_keywords=recent,
        )

    def _deep_analysis(
        self, initial: set[str], recent_text: str, keyword_score: float
    ) -> tuple[float, Literal["keyword", "deep"]]:
        if self.deep_analyzer is None:
            return keyword_score, "keyword"

        try:
            score = self.deep_analyzer.analyze(initial, recent_text)
        except DriftAnalysisError as e:
            logger.warning(f"Deep drift analysis failed, using keyword score: {e}")
            return keyword_score, "keyword"

        return clamp01(score), "deep"


_SCORE_RE = re.compile(r"(?<![\d.])(0(?:\.\d+)?|1(?:\.0+)?)(?![\d.])")

_DRIFT_PROMPT = """A coding session started with these topic keywords:
{keywords}

Recent conversation:
{recent}

On a scale from 0 (same topic) to 1 (completely different topic), how far has the
recent conversation drifted from the original topic? Reply with a single number."""


@dataclass
class LLMDriftAnalyzer:
    """DriftAnalyzer that asks an LLM for a semantic drift score."""

    client: "LLMClient"
    max_recent_chars: int = 4000

    def analyze(self, initial_keywords: set[str], recent_text: str) -> float:
        from ..llm_client import LLMError

        prompt = _DRIFT_PROMPT.format(
            keywords=", ".join(sorted(initial_keywords)) or "(none)",
            recent=recent_text[-self.max_recent_chars:],
        )
        try:
            reply = self.client.call(prompt)
        except LLMError as e:
            raise DriftAnalysisError(str(e)) from e

        match = _SCORE_RE.search(reply)
        if not match:
            raise DriftAnalysisError(f"Unparseable drift score: {reply[:80]!r}")
        return clamp01(float(match.group(1)))


__all__ = [
    "DriftAnalysisError",
    "DriftAnalyzer",
    "DriftResult",
    "TopicDriftDetector",
    "LLMDriftAnalyzer",
    "validate_threshold",
]
