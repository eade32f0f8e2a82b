"""Tests for phase classification."""

from session_health.analysis.phase_classifier import classify_phase, classify_session, event_texts
from session_health.analysis.vocabulary import Phase, PhaseRules
from session_health.session_schema import Session, SessionMetadata


def make_session(phase: str = "initialization") -> Session:
    return Session(id="s1", metadata=SessionMetadata(initial_prompt="Implement auth", phase=phase))


class TestClassifyPhase:
    """Tests for classify_phase."""

    def test_majority_wins(self):
        """The phase with most matches wins."""
        assert classify_phase(["Let's fix this bug in the parser"]) == Phase.DEBUGGING

    def test_votes_across_window(self):
        """Votes are counted across all texts."""
        assert classify_phase(["fix the error", "add tests"]) == Phase.DEBUGGING

    def test_no_match_keeps_previous(self):
        """Without matches the previous label is kept."""
        assert classify_phase(["hello there"], previous=Phase.PLANNING) == Phase.PLANNING
        assert classify_phase([], previous="review") == Phase.REVIEW

    def test_tie_goes_to_latest_match(self):
        """Ties resolve to the phase matched last."""
        assert classify_phase(["write the docs"]) == Phase.DOCUMENTATION
        assert classify_phase(["update docs then write"]) == Phase.IMPLEMENTATION

    def test_tie_across_texts(self):
        """A later text wins a tie over an earlier one."""
        assert classify_phase(["refactor", "review"]) == Phase.REVIEW

    def test_case_insensitive(self):
        assert classify_phase(["PYTEST COVERAGE"]) == Phase.TESTING

    def test_custom_rules(self):
        """Injected rules replace the default table."""
        rules = PhaseRules(patterns=((Phase.REVIEW, r"\blgtm\b"),))
        assert classify_phase(["lgtm, fix later"], rules) == Phase.REVIEW


class TestClassifySession:
    """Tests for classify_session and event_texts."""

    def test_ended_is_terminal(self):
        """Ended sessions are never relabeled."""
        session = make_session("ended")
        session.append_event("message", {"content": "fix the bug"})
        assert classify_session(session) == Phase.ENDED

    def test_unknown_phase_treated_as_initialization(self):
        """An unrecognised stored label falls back to initialization."""
        assert classify_session(make_session("something-else")) == Phase.INITIALIZATION

    def test_restored_can_be_relabeled(self):
        """Restored sessions get a new label on the next pass."""
        session = make_session("restored")
        session.append_event("message", {"content": "write a pytest for the parser"})
        session.append_event("tool", {"name": "Bash", "args": "pytest -q"})
        assert classify_session(session) == Phase.TESTING

    def test_event_texts_window(self):
        """Only the last N message, tool and error events contribute."""
        session = make_session()
        for i in range(5):
            session.append_event("message", {"content": f"m{i}"})
        session.append_event("snapshot", {"description": "ignored"})
        session.append_event("error", {"message": "boom"})

        assert event_texts(session, window=3) == ["m3", "m4", "boom"]
        assert event_texts(session, window=0) == []
