"""Shared storage slot and last-writer-wins synchronisation between instances."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from focusdial.models import (
    STORE_KEY,
    VERSION,
    AppState,
    default_state,
    new_client_id,
    read_state_from_value,
    serialize_state,
)
from focusdial.store import ChangeKind, SessionStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class DocumentStore:
    """SQLite-backed key/value slots holding whole JSON documents.

    Not thread-safe. Each instance should have its own DocumentStore.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._init_schema()

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def _init_schema(self) -> None:
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    @classmethod
    def open(cls, path: Path) -> DocumentStore:
        """Open or create a database at the given path."""
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path)
        conn.row_factory = sqlite3.Row
        return cls(conn)

    @classmethod
    def open_in_memory(cls) -> DocumentStore:
        """Create an in-memory database for testing."""
        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        return cls(conn)

    def get(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM documents WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO documents (key, value) VALUES (?, ?)",
            (key, value),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM documents WHERE key = ?", (key,))
        self._conn.commit()


class SyncCoordinator:
    """Persists a SessionStore and adopts strictly newer shared documents.

    Local changes are written through on every store notification. Another
    instance's document replaces ours wholesale when its `updatedAt` is
    strictly greater; there is no field-level merge.
    """

    def __init__(
        self,
        store: SessionStore,
        documents: DocumentStore,
        *,
        key: str = STORE_KEY,
        client_id: str | None = None,
    ) -> None:
        self.store = store
        self.documents = documents
        self.key = key
        self.client_id = client_id or new_client_id()
        self._last_raw: str | None = None
        self._unsubscribe = store.subscribe(self._on_store_change)

    def detach(self) -> None:
        self._unsubscribe()

    def _on_store_change(self, kind: ChangeKind) -> None:
        if kind is ChangeKind.LOCAL:
            self.save()

    def _read_raw(self) -> str | None:
        try:
            return self.documents.get(self.key)
        except sqlite3.Error as e:
            logger.warning("Could not read stored state: %s", e)
            return None

    def load(self) -> AppState:
        """Load the stored document into the store (defaults when absent)."""
        raw = self._read_raw()
        self._last_raw = raw
        state = read_state_from_value(raw, client_id=self.client_id)
        if state is None:
            state = default_state(self.client_id)
        self.store.state = state
        self.store.colors.clear_cache()
        return state

    def save(self) -> bool:
        """Stamp and write the whole document. Failures leave memory authoritative."""
        state = self.store.state
        state.version = VERSION
        # Never stamp at or below the adopted document, even if our clock lags
        state.meta.updated_at = max(self.store.now(), state.meta.updated_at + 1)
        state.meta.client_id = self.client_id
        raw = serialize_state(state)
        try:
            self.documents.set(self.key, raw)
        except sqlite3.Error as e:
            logger.warning("Could not persist state: %s", e)
            return False
        self._last_raw = raw
        return True

    def on_storage_change(self, raw_value: str | None) -> bool:
        """Apply another writer's document if it is strictly newer than ours."""
        incoming = read_state_from_value(raw_value, client_id=self.client_id)
        if incoming is None:
            return False
        current = self.store.state.meta.updated_at or 0
        if incoming.meta.updated_at <= current:
            logger.debug("Ignoring stored state at %d (ours %d)", incoming.meta.updated_at, current)
            return False
        logger.debug(
            "Adopting state from %s at %d (ours %d)",
            incoming.meta.client_id,
            incoming.meta.updated_at,
            current,
        )
        self.store.replace_state(incoming)
        return True

    def sync_from_storage(self) -> bool:
        """Re-read the slot, as on focus or visibility restore."""
        raw = self._read_raw()
        self._last_raw = raw
        return self.on_storage_change(raw)

    def poll(self) -> bool:
        """Check the slot for a value written by someone else since we last looked."""
        raw = self._read_raw()
        if raw is None or raw == self._last_raw:
            return False
        self._last_raw = raw
        return self.on_storage_change(raw)
