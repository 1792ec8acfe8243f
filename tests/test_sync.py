"""Tests for DocumentStore persistence and last-writer-wins sync."""

import json

import pytest

from focusdial.models import STORE_KEY, VERSION, default_state, serialize_state
from focusdial.store import SessionStore
from focusdial.sync import DocumentStore, SyncCoordinator

from helpers import FixedClock, make_state, ts


@pytest.fixture
def documents():
    with DocumentStore.open_in_memory() as docs:
        yield docs


def coordinator(documents, now, client_id):
    store = SessionStore(clock=FixedClock(now))
    sync = SyncCoordinator(store, documents, client_id=client_id)
    sync.load()
    return store, sync


def stored_doc(documents):
    return json.loads(documents.get(STORE_KEY))


class TestDocumentStore:
    """Tests for the SQLite slot."""

    def test_missing_key(self, documents):
        """Verify an unknown key reads as None."""
        assert documents.get("nope") is None

    def test_set_replaces(self, documents):
        """Test that set overwrites the previous value."""
        documents.set("k", "one")
        documents.set("k", "two")
        assert documents.get("k") == "two"

    def test_delete(self, documents):
        documents.set("k", "one")
        documents.delete("k")
        assert documents.get("k") is None

    def test_open_creates_parents(self, tmp_path):
        """Verify opening a nested path creates its directories and persists."""
        path = tmp_path / "nested" / "state.db"
        with DocumentStore.open(path) as docs:
            docs.set("k", "v")
        with DocumentStore.open(path) as docs:
            assert docs.get("k") == "v"


class TestLoadSave:
    """Tests for loading and stamping saves."""

    def test_load_defaults_when_empty(self, documents):
        """Test that an empty slot loads the default document."""
        store, _ = coordinator(documents, ts(9), "me")
        assert store.sessions == []
        assert store.state.meta.client_id == "me"

    def test_load_unreadable_value(self, documents):
        """Verify an unparseable stored value falls back to defaults."""
        documents.set(STORE_KEY, "{broken")
        store, _ = coordinator(documents, ts(9), "me")
        assert store.state.goal_minutes == 240

    def test_local_change_saves_with_stamp(self, documents):
        """Verify each local change is saved with our clock and client id."""
        store, _ = coordinator(documents, ts(9), "me")
        store.start_session()
        doc = stored_doc(documents)
        assert doc["version"] == VERSION
        assert doc["meta"] == {"updatedAt": ts(9), "clientId": "me"}
        assert doc["sessions"] == [{"start": ts(9), "end": None, "tag": "Session 1"}]

    def test_load_restores_saved_state(self, documents):
        store, _ = coordinator(documents, ts(9), "me")
        store.set_goal(90)
        reloaded, _ = coordinator(documents, ts(10), "me")
        assert reloaded.state.goal_minutes == 90

    def test_save_failure_keeps_memory(self, tmp_path, caplog):
        """Test that a failed write is logged and memory stays authoritative."""
        docs = DocumentStore.open(tmp_path / "state.db")
        store, sync = coordinator(docs, ts(9), "me")
        docs.close()
        store.start_session()
        assert store.is_running()
        assert not sync.save()
        assert "Could not persist state" in caplog.text

    def test_detach_stops_saving(self, documents):
        store, sync = coordinator(documents, ts(9), "me")
        sync.detach()
        store.start_session()
        assert documents.get(STORE_KEY) is None

    def test_stamp_stays_ahead_of_adopted_document(self, documents):
        """Verify a save after adopting a document from a faster clock is stamped past it."""
        store, sync = coordinator(documents, ts(9), "me")
        newer = default_state("other")
        newer.meta.updated_at = ts(10)
        assert sync.on_storage_change(serialize_state(newer))
        store.set_goal(90)
        doc = stored_doc(documents)
        assert doc["meta"] == {"updatedAt": ts(10) + 1, "clientId": "me"}
        assert doc["goalMinutes"] == 90

    def test_edit_after_adopt_reaches_faster_instance(self, tmp_path):
        path = tmp_path / "state.db"
        with DocumentStore.open(path) as docs_a, DocumentStore.open(path) as docs_b:
            store_a, sync_a = coordinator(docs_a, ts(10), "a")
            store_b, sync_b = coordinator(docs_b, ts(9), "b")
            store_a.set_goal(60)
            assert sync_b.poll()
            store_b.set_goal(90)
            assert sync_a.poll()
            assert store_a.state.goal_minutes == 90


class TestLastWriterWins:
    """Tests for adopting newer documents from other instances."""

    def test_two_instances_converge(self, tmp_path):
        """Verify two instances on one database see each other's edits."""
        path = tmp_path / "state.db"
        with DocumentStore.open(path) as docs_a, DocumentStore.open(path) as docs_b:
            store_a, sync_a = coordinator(docs_a, ts(9), "a")
            store_b, sync_b = coordinator(docs_b, ts(9), "b")

            store_a.start_session()
            assert sync_b.poll()
            assert store_b.is_running()
            # Adopting must not re-save under b's name
            assert stored_doc(docs_a)["meta"]["clientId"] == "a"

            store_b.clock.advance(30 * 60_000)
            store_b.stop_session()
            assert sync_a.poll()
            assert store_a.sessions[0].end == ts(9, 30)
            assert not sync_a.poll()

    def test_older_document_ignored(self, documents):
        """Test that a document stamped earlier than ours is ignored."""
        store, sync = coordinator(documents, ts(9), "me")
        store.set_goal(90)
        older = make_state(goal_minutes=30)
        older.meta.updated_at = ts(8)
        assert not sync.on_storage_change(serialize_state(older))
        assert store.state.goal_minutes == 90

    def test_equal_timestamp_ignored(self, documents):
        """Test that an equal stamp does not count as newer."""
        store, sync = coordinator(documents, ts(9), "me")
        store.set_goal(90)
        same = make_state(goal_minutes=30)
        same.meta.updated_at = ts(9)
        assert not sync.on_storage_change(serialize_state(same))

    def test_newer_document_adopted_wholesale(self, documents):
        """Verify a newer document replaces local state entirely."""
        store, sync = coordinator(documents, ts(9), "me")
        store.set_goal(90)
        newer = default_state("other")
        newer.meta.updated_at = ts(10)
        assert sync.on_storage_change(serialize_state(newer))
        assert store.state.goal_minutes == 240
        assert store.state.meta.client_id == "other"

    def test_unreadable_change_ignored(self, documents):
        _, sync = coordinator(documents, ts(9), "me")
        assert not sync.on_storage_change("not json")
        assert not sync.on_storage_change(None)

    def test_sync_from_storage(self, documents):
        """Verify an explicit re-read adopts a newer stored document."""
        store, sync = coordinator(documents, ts(9), "me")
        newer = default_state("other")
        newer.goal_minutes = 60
        newer.meta.updated_at = ts(10)
        documents.set(STORE_KEY, serialize_state(newer))
        assert sync.sync_from_storage()
        assert store.state.goal_minutes == 60
