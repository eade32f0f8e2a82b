"""
Unit tests for session_store module.

Covers persistence, partial updates, listing and crash-safe writes.
"""

import json
import os
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from session_health.errors import (
    CorruptDataError,
    InvalidArgumentError,
    SessionNotFoundError,
    StorageIOError,
)
from session_health.session_schema import Session, SessionMetadata
from session_health.session_store import SessionStore


@pytest.fixture
def store(tmp_path):
    """SessionStore over a temp directory."""
    return SessionStore(tmp_path / "sessions")


class TestCreateAndGet:
    """Tests for create() and get()."""

    def test_init_creates_base_dir(self, tmp_path):
        """Initialization creates the base directory."""
        store = SessionStore(tmp_path / "a" / "b")
        assert store.base_dir.exists()

    def test_create_writes_record(self, store):
        """create() persists one JSON file named after the session."""
        session = store.create("s1", "Implement auth")

        assert session.id == "s1"
        assert session.metadata.initial_prompt == "Implement auth"
        assert session.metadata.health_score == 1.0
        assert session.events == []
        assert (store.base_dir / "s1.json").exists()

    def test_create_duplicate_rejected(self, store):
        """Creating an existing id fails."""
        store.create("s1", "Implement auth")
        with pytest.raises(InvalidArgumentError):
            store.create("s1", "Other prompt")

    def test_get_roundtrip(self, store):
        """get() returns what was created."""
        created = store.create("s1", "Implement auth")
        loaded = store.get("s1")

        assert loaded.id == created.id
        assert loaded.created_at == created.created_at
        assert loaded.metadata.initial_prompt == "Implement auth"

    def test_get_missing(self, store):
        """get() on an unknown id raises SessionNotFoundError."""
        with pytest.raises(SessionNotFoundError) as exc_info:
            store.get("nope")
        assert "not found" in str(exc_info.value).lower()

    def test_get_corrupt_record(self, store):
        """A record that fails validation raises CorruptDataError."""
        (store.base_dir / "bad.json").write_text("{not json")
        with pytest.raises(CorruptDataError):
            store.get("bad")

    def test_get_undecodable_record(self, store):
        """Bytes that are not UTF-8 raise CorruptDataError."""
        (store.base_dir / "bad.json").write_bytes(b"\xff\xfe garbage")
        with pytest.raises(CorruptDataError) as exc_info:
            store.get("bad")
        assert exc_info.value.session_id == "bad"

    @pytest.mark.parametrize("bad_id", ["", ".", "..", "a/b", "a\\b"])
    def test_invalid_ids_rejected(self, store, bad_id):
        """Ids that would escape the base directory are rejected."""
        with pytest.raises(InvalidArgumentError):
            store.get_session_file(bad_id)

    def test_record_uses_camel_case(self, store):
        """Persisted JSON uses camelCase field names."""
        store.create("s1", "Implement auth")
        data = json.loads((store.base_dir / "s1.json").read_text())

        assert "createdAt" in data
        assert "initialPrompt" in data["metadata"]
        assert "healthScore" in data["metadata"]
        assert "totalTokens" in data["metrics"]
        assert "topicTracking" in data


class TestSaveAndUpdate:
    """Tests for save() and update()."""

    def test_save_refreshes_updated_at(self, store):
        """save() bumps updated_at and keeps created_at."""
        session = store.create("s1", "Implement auth")
        before = session.updated_at

        session.metrics.message_count = 3
        store.save(session)
        loaded = store.get("s1")

        assert loaded.updated_at >= before
        assert loaded.created_at == session.created_at
        assert loaded.metrics.message_count == 3

    def test_update_merges_nested(self, store):
        """update() merges nested changes and keeps other fields."""
        store.create("s1", "Implement auth")
        updated = store.update("s1", {"metadata": {"phase": "planning"}, "metrics": {"error_count": 2}})

        assert updated.metadata.phase == "planning"
        assert updated.metadata.initial_prompt == "Implement auth"
        assert updated.metrics.error_count == 2
        assert store.get("s1").metadata.phase == "planning"

    def test_update_accepts_camel_case(self, store):
        """update() accepts camelCase keys."""
        store.create("s1", "Implement auth")
        updated = store.update("s1", {"metadata": {"healthScore": 0.5}})
        assert updated.metadata.health_score == 0.5

    def test_update_ignores_id_and_created_at(self, store):
        """id and createdAt cannot be changed through update()."""
        created = store.create("s1", "Implement auth")
        updated = store.update("s1", {"id": "other", "createdAt": "2000-01-01T00:00:00+00:00"})

        assert updated.id == "s1"
        assert updated.created_at == created.created_at

    def test_update_rejects_initial_prompt_change(self, store):
        """initialPrompt is write-once."""
        store.create("s1", "Implement auth")
        with pytest.raises(InvalidArgumentError):
            store.update("s1", {"metadata": {"initialPrompt": "Something else"}})
        assert store.get("s1").metadata.initial_prompt == "Implement auth"

    def test_update_rejects_invalid_values(self, store):
        """Out-of-range values are rejected."""
        store.create("s1", "Implement auth")
        with pytest.raises(InvalidArgumentError):
            store.update("s1", {"metadata": {"healthScore": 1.5}})

    def test_update_missing(self, store):
        """update() on an unknown id raises SessionNotFoundError."""
        with pytest.raises(SessionNotFoundError):
            store.update("nope", {"metadata": {"phase": "x"}})


class TestAtomicWrite:
    """Tests for crash-safe writes."""

    def test_no_temp_files_left(self, store):
        """Successful writes leave only the record."""
        session = store.create("s1", "Implement auth")
        store.save(session)
        assert sorted(p.name for p in store.base_dir.iterdir()) == ["s1.json"]

    def test_failed_rename_keeps_previous_record(self, store):
        """A failed rename raises StorageIOError and keeps the old record."""
        session = store.create("s1", "Implement auth")
        session.metrics.message_count = 99

        with patch("session_health.session_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageIOError):
                store.save(session)

        assert store.get("s1").metrics.message_count == 0
        assert not any(p.suffix == ".tmp" for p in store.base_dir.iterdir())


class TestDeleteAndList:
    """Tests for delete() and list()."""

    def _write(self, store, session_id, created_at):
        session = Session(
            id=session_id,
            created_at=created_at,
            metadata=SessionMetadata(initial_prompt=f"prompt {session_id}"),
        )
        store.save(session)

    def test_delete(self, store):
        """delete() removes the record."""
        store.create("s1", "Implement auth")
        store.delete("s1")
        assert not store.exists("s1")

    def test_delete_unknown_is_noop(self, store):
        """Deleting an unknown id does nothing."""
        store.delete("nope")

    def test_list_newest_first(self, store):
        """list() sorts by createdAt descending."""
        self._write(store, "old", datetime(2024, 1, 1, tzinfo=timezone.utc))
        self._write(store, "new", datetime(2024, 3, 1, tzinfo=timezone.utc))
        self._write(store, "mid", datetime(2024, 2, 1, tzinfo=timezone.utc))

        assert [s.id for s in store.list()] == ["new", "mid", "old"]

    def test_list_skips_corrupt(self, store):
        """Corrupt records are skipped, not fatal."""
        store.create("s1", "Implement auth")
        (store.base_dir / "bad.json").write_text('{"id": 3}')

        assert [s.id for s in store.list()] == ["s1"]

    def test_list_skips_undecodable(self, store):
        """A record that is not UTF-8 does not break listing."""
        store.create("s1", "Implement auth")
        (store.base_dir / "bad.json").write_bytes(b"\xff\xfe garbage")

        assert [s.id for s in store.list()] == ["s1"]

    def test_list_ignores_non_json(self, store):
        """Only *.json files are records."""
        store.create("s1", "Implement auth")
        (store.base_dir / "notes.txt").write_text("hello")
        os.makedirs(store.base_dir / "sub")

        assert [s.id for s in store.list()] == ["s1"]
