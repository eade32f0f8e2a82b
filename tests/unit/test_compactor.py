"""Tests for event log compaction."""

import pytest

from session_health.compactor import CompactOptions, SessionCompactor, summarize_events
from session_health.config import CompactionConfig
from session_health.errors import InvalidArgumentError
from session_health.session_schema import Session, SessionMetadata


def make_session(messages: int = 0) -> Session:
    session = Session(id="s1", metadata=SessionMetadata(initial_prompt="Implement auth"))
    for i in range(messages):
        session.append_event("message", {"role": "user", "content": f"message {i}"})
    return session


def mixed_session() -> Session:
    """1 snapshot, 5 errors, then 114 messages (120 events)."""
    session = make_session()
    session.append_event("snapshot", {"action": "create", "commitHash": "abc", "healthScore": 0.9})
    for i in range(5):
        session.append_event("error", {"message": f"File not found: f{i}.py"})
    for i in range(114):
        session.append_event("message", {"role": "user", "content": f"message {i}"})
    return session


@pytest.fixture
def compactor():
    return SessionCompactor()


class TestCompact:
    """Tests for SessionCompactor.compact."""

    def test_noop_at_threshold(self, compactor):
        """Logs at or below the threshold are left alone."""
        session = make_session(100)
        before = list(session.events)
        result = compactor.compact(session)

        assert result.events_removed == 0
        assert result.events_kept == 100
        assert session.events == before

    def test_compacts_over_threshold(self, compactor):
        """101 events with the default threshold of 100 compacts."""
        session = make_session(101)
        result = compactor.compact(session)

        assert result.original_events == 101
        assert result.events_removed == 51
        assert result.events_kept == 50
        assert result.space_saved > 0
        assert len(session.events) == 51
        assert session.events[-1].type == "compact"

    def test_preserves_snapshots_and_errors(self, compactor):
        """Snapshot and error events survive regardless of position."""
        session = mixed_session()
        result = compactor.compact(session, CompactOptions(keep_last_n=50, threshold=100))

        assert result.events_kept == 56
        assert result.events_removed == 64
        kinds = [e.type for e in session.events]
        assert kinds.count("snapshot") == 1
        assert kinds.count("error") == 5
        assert kinds.count("message") == 50
        assert kinds[-1] == "compact"

    def test_kept_events_sorted(self, compactor):
        """Surviving events stay in timestamp order."""
        session = mixed_session()
        compactor.compact(session, CompactOptions(keep_last_n=10, threshold=0))
        stamps = [e.timestamp for e in session.events]
        assert stamps == sorted(stamps)

    def test_drop_errors(self, compactor):
        """preserve_errors=False lets old errors go."""
        session = mixed_session()
        compactor.compact(session, CompactOptions(keep_last_n=50, threshold=100, preserve_errors=False))
        assert not any(e.type == "error" for e in session.events)

    def test_keep_last_zero(self, compactor):
        """keep_last_n=0 keeps only preserved events."""
        session = mixed_session()
        result = compactor.compact(session, CompactOptions(keep_last_n=0, threshold=0))

        assert result.events_kept == 6
        assert len(session.events) == 7

    def test_prior_compact_events_survive(self, compactor):
        """Earlier compact events are always kept."""
        session = make_session(150)
        compactor.compact(session, CompactOptions(keep_last_n=10, threshold=0))
        for i in range(100):
            session.append_event("message", {"content": f"more {i}"})
        compactor.compact(session, CompactOptions(keep_last_n=10, threshold=0))

        assert [e.type for e in session.events].count("compact") == 2

    def test_compact_event_data(self, compactor):
        """The appended compact event carries the result figures."""
        session = make_session(120)
        result = compactor.compact(session)
        data = session.events[-1].data

        assert data["eventsRemoved"] == result.events_removed
        assert data["eventsKept"] == result.events_kept
        assert data["summary"] == result.summary
        assert data["spaceSaved"] == result.space_saved

    def test_dry_run(self, compactor):
        """dry_run reports without mutating the session."""
        session = make_session(120)
        before = list(session.events)
        result = compactor.compact(session, CompactOptions(dry_run=True))

        assert result.dry_run is True
        assert result.events_removed == 70
        assert session.events == before

    def test_config_defaults(self):
        """Unset options come from configuration."""
        compactor = SessionCompactor(CompactionConfig(threshold=10, keep_last_n=5))
        session = make_session(20)
        result = compactor.compact(session)
        assert result.events_kept == 5

    @pytest.mark.parametrize("options", [CompactOptions(keep_last_n=-1), CompactOptions(threshold=-5)])
    def test_negative_options_rejected(self, compactor, options):
        with pytest.raises(InvalidArgumentError):
            compactor.compact(make_session(5), options)


class TestSummarize:
    """Tests for summarize_events."""

    def test_empty(self):
        assert summarize_events([]) == "No events removed."

    def test_message_run(self):
        session = make_session(3)
        assert summarize_events(session.events) == "Exchanged 3 messages."

    def test_tool_run(self):
        """Tool runs count reads and writes and name touched files."""
        session = make_session()
        session.append_event("tool", {"name": "Read", "filePaths": ["src/auth.py"]})
        session.append_event("tool", {"name": "Edit", "filePaths": ["src/auth.py", "src/jwt.py"]})
        session.append_event("tool", {"name": "Bash"})

        summary = summarize_events(session.events)
        assert "Ran 3 tool calls" in summary
        assert "1 file read" in summary
        assert "1 file write" in summary
        assert "1 other tool call" in summary
        assert "auth.py, jwt.py" in summary

    def test_error_buckets(self):
        """Errors are bucketed by message."""
        session = make_session()
        session.append_event("error", {"message": "ENOENT: no such file"})
        session.append_event("error", {"message": "Request timed out"})
        session.append_event("error", {"message": "Something odd"})

        summary = summarize_events(session.events)
        assert summary == "Encountered 3 errors (1 not_found, 1 timeout, 1 other)."

    def test_runs_in_order(self):
        """One sentence per run of same-type events."""
        session = make_session(2)
        session.append_event("error", {"message": "Permission denied"})
        session.append_event("message", {"content": "retrying"})

        summary = summarize_events(session.events)
        assert summary == (
            "Exchanged 2 messages. Encountered 1 error (1 permission). Exchanged 1 message."
        )
