"""
Tests for the Persistence Layer
"""

import threading

import pytest

from keyrail.core import KeyStatus, KeyStore
from keyrail.errors import MalformedKey, UnsupportedSuite, ValidationError
from keyrail.persistence import Database, KeyRecordRepository


@pytest.fixture
def repository():
    return KeyRecordRepository(Database("sqlite:///:memory:"))


class TestDatabase:
    """Test connection management."""

    def test_rejects_non_sqlite_url(self):
        with pytest.raises(ValueError):
            Database("postgresql://localhost/keyrail")

    def test_file_database(self, temp_db):
        db = Database(f"sqlite:///{temp_db}").initialize()

        rows = db.execute("SELECT version FROM schema_version")
        db.close()

        assert rows == [{"version": 1}]

    def test_initialize_is_idempotent(self):
        db = Database("sqlite:///:memory:")

        assert db.initialize() is db.initialize()

    def test_memory_connection_shared_across_threads(self):
        """Concurrent first callers all get the one in-memory connection."""
        db = Database("sqlite:///:memory:")
        barrier = threading.Barrier(8)
        connections = []

        def worker():
            barrier.wait()
            connections.append(db._get_connection())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len({id(c) for c in connections}) == 1
        db.close()


class TestKeyRecordRepository:
    """Test saving and restoring public key records."""

    def test_save_and_get(self, store, repository):
        record = store.create_key("agent-1", "classical-secp256k1")

        repository.save(record)
        stored = repository.get(record.key_id)

        assert stored.agent_id == "agent-1"
        assert stored.public_key_bytes == record.public_key
        assert stored.usage == ["sign", "verify"]
        assert stored.status == "active"

    def test_no_private_material_persisted(self, store, repository):
        record = store.create_key("agent-1", "ed25519")
        repository.save(record)

        row = repository.db.execute("SELECT * FROM key_records")[0]

        assert set(row) == {
            "key_id", "agent_id", "suite_id", "usage",
            "status", "public_key", "created_at", "saved_at",
        }

    def test_save_is_upsert(self, store, repository):
        record = store.create_key("agent-1", "ed25519")
        repository.save(record)
        store.deactivate(record.key_id)

        repository.save(record)

        assert len(repository.list_all()) == 1
        assert repository.get(record.key_id).status == "inactive"

    def test_list_for_agent(self, store, repository):
        store.create_key("agent-1", "ed25519")
        store.create_key("agent-1", "ml-dsa-44")
        store.create_key("agent-2", "ed25519")

        assert repository.save_all(store.list_all()) == 3
        assert len(repository.list_for_agent("agent-1")) == 2
        assert repository.get("missing") is None

    def test_delete_and_clear(self, store, repository):
        first = store.create_key("agent-1", "ed25519")
        second = store.create_key("agent-1", "ed25519")
        repository.save_all([first, second])

        assert repository.delete(first.key_id) is True
        assert repository.delete(first.key_id) is False
        assert repository.clear() == 1
        assert repository.list_all() == []

    def test_restore_as_verify_only(self, store, engine, repository, registry):
        """Restored keys verify old signatures but cannot sign."""
        record = store.create_key("agent-1", "classical-secp256k1")
        retired = store.create_key("agent-1", "ed25519")
        store.deactivate(retired.key_id)
        signature = engine.sign(record.key_id, b"hello")
        repository.save_all([record, retired])

        fresh = KeyStore(registry)
        restored = repository.restore(fresh)

        assert sorted(restored) == sorted([record.key_id, retired.key_id])
        twin = fresh.get(record.key_id)
        assert twin.is_verify_only is True
        assert twin.created_at == record.created_at
        assert fresh.get(retired.key_id).status == KeyStatus.INACTIVE

        from keyrail.core import SigningEngine
        assert SigningEngine(fresh, registry).verify(record.key_id, b"hello", signature) is True

    def test_restore_skips_present_ids(self, store, repository):
        record = store.create_key("agent-1", "ed25519")
        repository.save(record)

        assert repository.restore(store) == []
        assert store.get(record.key_id).can_sign is True

    def test_failed_restore_leaves_store_untouched(self, store, repository):
        """A row whose suite is not registered aborts restore before any import."""
        from keyrail.config import Settings
        from keyrail.crypto import default_registry

        store.create_key("agent-1", "ed25519")
        store.create_key("agent-1", "ml-dsa-44")
        repository.save_all(store.list_all())
        ed25519_only = KeyStore(default_registry(Settings(enabled_suites=("ed25519",))))

        with pytest.raises(UnsupportedSuite):
            repository.restore(ed25519_only)

        assert len(ed25519_only) == 0

    def test_retired_id_aborts_restore(self, store, repository, registry):
        """A saved id that was purged from the target store is never reissued."""
        first = store.create_key("agent-1", "ed25519")
        second = store.create_key("agent-1", "ed25519")
        repository.save_all([first, second])
        fresh = KeyStore(registry)
        repository.restore(fresh)
        fresh.purge(second.key_id)

        with pytest.raises(ValidationError):
            repository.restore(fresh)

        assert second.key_id not in fresh
        assert first.key_id in fresh

    def test_corrupt_row_aborts_restore(self, store, repository, registry):
        record = store.create_key("agent-1", "classical-secp256k1")
        repository.save(record)
        repository.db.execute(
            "INSERT INTO key_records VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            ("ecdsa-broken", "agent-1", "classical-secp256k1", '["verify"]',
             "active", "05" + "11" * 32, "9999-01-01T00:00:00+00:00", "9999-01-01T00:00:00+00:00"),
        )
        fresh = KeyStore(registry)

        with pytest.raises(MalformedKey):
            repository.restore(fresh)

        assert len(fresh) == 0

    def test_inactive_record_is_restored_inactive(self, store, repository, registry):
        record = store.create_key("agent-1", "ed25519")
        store.deactivate(record.key_id)
        repository.save(record)
        fresh = KeyStore(registry)

        imported = []
        original_insert = fresh._insert

        def watch(restored_record):
            imported.append(restored_record.status)
            original_insert(restored_record)

        fresh._insert = watch
        repository.restore(fresh)

        assert imported == [KeyStatus.INACTIVE]
