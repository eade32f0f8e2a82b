"""Tests for session_schema models."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from session_health.session_schema import (
    EventType,
    Session,
    SessionMetadata,
    SnapshotRef,
    clamp01,
    parse_timestamp,
)


def make_session(prompt: str = "Implement auth") -> Session:
    """Helper to build an empty session."""
    return Session(id="s1", metadata=SessionMetadata(initial_prompt=prompt))


class TestHelpers:
    """Tests for module helpers."""

    def test_parse_timestamp_naive_is_utc(self):
        """Naive timestamps are read as UTC."""
        dt = parse_timestamp("2024-05-01T12:00:00")
        assert dt.tzinfo == timezone.utc

    def test_parse_timestamp_keeps_offset(self):
        """Offsets are preserved."""
        dt = parse_timestamp("2024-05-01T12:00:00+02:00")
        assert dt.utcoffset() == timedelta(hours=2)

    def test_clamp01(self):
        """Scores are clamped to [0, 1]."""
        assert clamp01(-0.5) == 0.0
        assert clamp01(0.25) == 0.25
        assert clamp01(3) == 1.0


class TestAppendEvent:
    """Tests for Session.append_event."""

    def test_append_event(self):
        """Events are appended with type and data."""
        session = make_session()
        event = session.append_event(EventType.MESSAGE, {"role": "user", "content": "hi"})

        assert session.events == [event]
        assert event.type == "message"
        assert event.data["content"] == "hi"

    def test_timestamps_strictly_increasing(self):
        """Events appended at the same instant get distinct, ordered timestamps."""
        session = make_session()
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        first = session.append_event("message", now=now)
        second = session.append_event("message", now=now)
        third = session.append_event("error", now=now - timedelta(seconds=5))

        stamps = [parse_timestamp(e.timestamp) for e in (first, second, third)]
        assert stamps[0] < stamps[1] < stamps[2]

    def test_timestamps_are_utc_iso(self):
        """Timestamps are ISO-8601 UTC with microseconds."""
        session = make_session()
        event = session.append_event("tool", now=datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc))
        assert event.timestamp == "2024-01-01T08:00:00.000000+00:00"

    def test_unknown_event_type_rejected(self):
        """Only known event types can be appended."""
        with pytest.raises(ValueError):
            make_session().append_event("bogus")

    def test_events_are_frozen(self):
        """Appended events are immutable."""
        event = make_session().append_event("message")
        with pytest.raises(ValidationError):
            event.type = "error"

    def test_event_queries(self):
        """events_of_type and last_event_of_type filter by type."""
        session = make_session()
        session.append_event("message", {"n": 1})
        session.append_event("error", {"n": 2})
        session.append_event("message", {"n": 3})

        assert [e.data["n"] for e in session.events_of_type(EventType.MESSAGE)] == [1, 3]
        assert session.last_event_of_type("message").data["n"] == 3
        assert session.last_event_of_type("compact") is None


class TestValidation:
    """Tests for field constraints."""

    def test_id_is_frozen(self):
        """Session id cannot be reassigned."""
        session = make_session()
        with pytest.raises(ValidationError):
            session.id = "other"

    def test_initial_prompt_is_frozen(self):
        """initialPrompt is write-once."""
        session = make_session()
        with pytest.raises(ValidationError):
            session.metadata.initial_prompt = "Other"

    def test_health_score_bounds(self):
        """healthScore must stay within [0, 1]."""
        session = make_session()
        with pytest.raises(ValidationError):
            session.metadata.health_score = 1.2

    def test_snapshot_health_bounds(self):
        """Snapshot health is within [0, 1]."""
        with pytest.raises(ValidationError):
            SnapshotRef(commit_hash="abc", timestamp=datetime.now(timezone.utc), health_score=-0.1)

    def test_extra_fields_rejected(self):
        """Unknown top-level fields are rejected."""
        with pytest.raises(ValidationError):
            Session.model_validate({"id": "s1", "metadata": {"initialPrompt": "x"}, "bogus": 1})

    def test_find_snapshot(self):
        """find_snapshot looks up by hash."""
        session = make_session()
        ref = SnapshotRef(commit_hash="abc", timestamp=datetime.now(timezone.utc), health_score=0.9)
        session.snapshots.append(ref)

        assert session.find_snapshot("abc") is ref
        assert session.find_snapshot("def") is None


class TestSerialization:
    """Tests for JSON serialization."""

    def test_to_json_camel_case(self):
        """to_json uses camelCase and round-trips through model_validate_json."""
        session = make_session()
        session.append_event("message", {"content": "hi"})
        session.snapshots.append(
            SnapshotRef(commit_hash="abc", timestamp=datetime.now(timezone.utc), health_score=0.8)
        )

        data = json.loads(session.to_json())
        assert data["snapshots"][0]["commitHash"] == "abc"
        assert data["snapshots"][0]["healthScore"] == 0.8
        assert data["metrics"]["driftScore"] == 0.0

        loaded = Session.model_validate_json(session.to_json())
        assert loaded.events == session.events
        assert loaded.snapshots == session.snapshots

    def test_transcript_omitted_by_default(self):
        """messages is None unless transcript retention is on."""
        data = json.loads(make_session().to_json())
        assert data["messages"] is None
