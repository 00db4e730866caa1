"""Tests for the local fallback store."""

import pytest

from cravelog.errors import LocalStoreError
from cravelog.storage import LocalStore


@pytest.fixture
def store():
    """Create an in-memory LocalStore for testing."""
    store = LocalStore(":memory:")
    store.connect()
    yield store
    store.close()


class TestLocalStoreSchema:
    """Tests for database schema initialization."""

    def test_connect_creates_table(self, store):
        tables = store._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()

        assert "kv_store" in [t[0] for t in tables]

    def test_connect_is_idempotent(self, store):
        store.connect()
        store.connect()

        assert store.read_all() == []

    def test_creates_parent_directory(self, tmp_path):
        """Test the database directory is created on connect."""
        store = LocalStore(tmp_path / "nested" / "local.db")
        store.connect()

        assert (tmp_path / "nested" / "local.db").exists()
        store.close()


class TestLocalStoreReadWrite:
    """Tests for reading and writing the collection."""

    def test_empty_store_reads_empty(self, store):
        assert store.read_all() == []

    def test_write_then_read(self, store):
        items = [{"id": "a", "duration": 100, "date": "2025-03-01T00:00:00.000+00:00"}]

        store.write_all(items)

        assert store.read_all() == items

    def test_write_replaces_collection(self, store):
        store.write_all([{"id": "a"}])
        store.write_all([{"id": "b"}, {"id": "c"}])

        assert store.read_all() == [{"id": "b"}, {"id": "c"}]

    def test_keys_are_independent(self, tmp_path):
        """Test two keys in one database do not share data."""
        path = tmp_path / "local.db"
        first = LocalStore(path, key="one")
        second = LocalStore(path, key="two")

        first.write_all([{"id": "a"}])

        assert second.read_all() == []
        first.close()
        second.close()

    def test_persists_across_connections(self, tmp_path):
        """Test data survives closing and reopening the store."""
        path = tmp_path / "local.db"
        store = LocalStore(path)
        store.write_all([{"id": "a", "duration": 1}])
        store.close()

        reopened = LocalStore(path)
        assert reopened.read_all() == [{"id": "a", "duration": 1}]
        reopened.close()

    def test_clear(self, store):
        store.write_all([{"id": "a"}])
        store.clear()

        assert store.read_all() == []


class TestLocalStoreErrors:
    """Tests for corrupt or inaccessible data."""

    def test_corrupt_payload_raises(self, store):
        store._conn.execute(
            "INSERT INTO kv_store (key, value) VALUES (?, ?)",
            (store.key, "{not json"),
        )

        with pytest.raises(LocalStoreError):
            store.read_all()

    def test_non_array_payload_raises(self, store):
        store._conn.execute(
            "INSERT INTO kv_store (key, value) VALUES (?, ?)",
            (store.key, '{"id": "a"}'),
        )

        with pytest.raises(LocalStoreError):
            store.read_all()

    def test_unserializable_items_raise(self, store):
        with pytest.raises(LocalStoreError):
            store.write_all([{"bad": object()}])

    def test_unopenable_path_raises(self, tmp_path):
        """Test a path whose parent is a file cannot be opened."""
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = LocalStore(blocker / "local.db")

        with pytest.raises(LocalStoreError):
            store.read_all()

    def test_closed_database_error_wrapped(self, store):
        """Test sqlite errors surface as LocalStoreError."""
        conn = store._conn
        conn.close()

        with pytest.raises(LocalStoreError):
            store.read_all()
