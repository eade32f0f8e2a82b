"""Classify a session's working phase from recent event text."""
from __future__ import annotations

import re

from ..session_schema import EventType, Session
from .vocabulary import DEFAULT_PHASE_RULES, Phase, PhaseRules

# Lifecycle endpoints are assigned explicitly, never by pattern matching
LIFECYCLE_PHASES = frozenset({Phase.ENDED})


def classify_phase(
    texts: list[str],
    rules: PhaseRules = DEFAULT_PHASE_RULES,
    previous: Phase | str = Phase.INITIALIZATION,
) -> Phase:
    """
    Label the phase of a window of recent texts.

    Each pattern match is one vote. The phase with most votes wins; a tie
    goes to the tied phase whose latest match comes last in the window.
    No matches keeps the previous phase.

    Args:
        texts: Recent texts, oldest first
        rules: Phase pattern table
        previous: Current label

    Returns:
        Phase label
    """
    votes: dict[Phase, int] = {}
    last_seen: dict[Phase, tuple[int, int]] = {}

    for text_idx, text in enumerate(texts):
        lowered = text.lower()
        for phase, pattern in rules.patterns:
            for match in re.finditer(pattern, lowered):
                votes[phase] = votes.get(phase, 0) + 1
                last_seen[phase] = max(last_seen.get(phase, (-1, -1)), (text_idx, match.start()))

    if not votes:
        return Phase(previous)

    best = max(votes.values())
    tied = [p for p, count in votes.items() if count == best]
    return max(tied, key=lambda p: last_seen[p])


def event_texts(session: Session, window: int = 10) -> list[str]:
    """Text of the last `window` message, tool and error events."""
    texts = []
    for event in session.events:
        if event.type == EventType.MESSAGE.value:
            texts.append(str(event.data.get("content", "")))
        elif event.type == EventType.TOOL.value:
            texts.append(f"{event.data.get('name', '')} {event.data.get('args', '')}")
        elif event.type == EventType.ERROR.value:
            texts.append(str(event.data.get("message", "")))
    return texts[-window:] if window > 0 else []


def classify_session(
    session: Session,
    rules: PhaseRules = DEFAULT_PHASE_RULES,
    window: int = 10,
) -> Phase:
    """Classify a session, leaving lifecycle endpoints untouched."""
    try:
        current = Phase(session.metadata.phase)
    except ValueError:
        current = Phase.INITIALIZATION

    if current in LIFECYCLE_PHASES:
        return current
    return classify_phase(event_texts(session, window), rules, previous=current)


__all__ = ["classify_phase", "classify_session", "event_texts"]
