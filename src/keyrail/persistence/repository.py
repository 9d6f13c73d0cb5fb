"""
Repository Layer for Keyrail

CRUD for persisted public key records, plus restoring them into a
KeyStore as verify-only records.
"""

from typing import Iterable, List, Optional
import structlog

from ..core.gateway import KeyEncoding, decode
from ..core.keystore import KeyRecord, KeyStatus, KeyStore
from ..errors import MalformedKey, UnknownSuite, UnsupportedSuite, ValidationError
from .database import Database
from .models import StoredKeyRecord

logger = structlog.get_logger()

_UPSERT_SQL = """INSERT OR REPLACE INTO key_records
   (key_id, agent_id, suite_id, usage, status, public_key, created_at, saved_at)
   VALUES (?, ?, ?, ?, ?, ?, ?, ?)"""


class KeyRecordRepository:
    """Repository for public key records."""

    def __init__(self, db: Database):
        self.db = db.initialize()

    def save(self, record: KeyRecord) -> StoredKeyRecord:
        """Insert or update the public view of a record."""
        stored = StoredKeyRecord.from_record(record)
        self.db.execute(_UPSERT_SQL, stored.to_db_tuple())
        logger.info("key_record_saved", key_id=record.key_id, agent_id=record.agent_id)
        return stored

    def save_all(self, records: Iterable[KeyRecord]) -> int:
        stored = [StoredKeyRecord.from_record(r) for r in records]
        if not stored:
            return 0
        self.db.execute_many(_UPSERT_SQL, [s.to_db_tuple() for s in stored])
        logger.info("key_records_saved", count=len(stored))
        return len(stored)

    def get(self, key_id: str) -> Optional[StoredKeyRecord]:
        results = self.db.execute(
            "SELECT * FROM key_records WHERE key_id = ?",
            (key_id,)
        )
        return StoredKeyRecord.from_row(results[0]) if results else None

    def list_for_agent(self, agent_id: str) -> List[StoredKeyRecord]:
        results = self.db.execute(
            "SELECT * FROM key_records WHERE agent_id = ? ORDER BY created_at, rowid",
            (agent_id,)
        )
        return [StoredKeyRecord.from_row(r) for r in results]

    def list_all(self) -> List[StoredKeyRecord]:
        results = self.db.execute("SELECT * FROM key_records ORDER BY created_at, rowid")
        return [StoredKeyRecord.from_row(r) for r in results]

    def delete(self, key_id: str) -> bool:
        existed = self.get(key_id) is not None
        self.db.execute("DELETE FROM key_records WHERE key_id = ?", (key_id,))
        if existed:
            logger.info("key_record_deleted", key_id=key_id)
        return existed

    def clear(self) -> int:
        count = self.db.execute("SELECT COUNT(*) AS count FROM key_records")[0]["count"]
        self.db.execute("DELETE FROM key_records")
        logger.info("key_records_cleared", count=count)
        return count

    def restore(self, store: KeyStore) -> List[str]:
        """
        Load every saved record into store as a verify-only key.

        Records whose id is already present are skipped. Inactive records
        come back inactive. Every remaining row is checked against the
        store's registry before the first import, so a bad row leaves the
        store untouched. Returns the restored key ids.
        """
        pending = []
        for stored in self.list_all():
            if stored.key_id in store:
                continue
            pending.append((stored, self._validated_public_key(store, stored)))

        restored = []
        for stored, public_key in pending:
            restored.append(store.import_public_key(
                public_key,
                stored.suite_id,
                agent_id=stored.agent_id,
                key_id=stored.key_id,
                created_at=stored.created_at,
                status=KeyStatus(stored.status),
            ))

        logger.info("key_records_restored", count=len(restored))
        return restored

    def _validated_public_key(self, store: KeyStore, stored: StoredKeyRecord) -> bytes:
        try:
            suite = store.registry.suite(stored.suite_id)
        except UnknownSuite:
            logger.warning("key_record_restore_rejected", key_id=stored.key_id,
                           suite_id=stored.suite_id, reason="unknown_suite")
            raise UnsupportedSuite(stored.suite_id) from None

        if store.is_retired(stored.key_id):
            logger.warning("key_record_restore_rejected", key_id=stored.key_id, reason="retired_id")
            raise ValidationError(f"Key identifier was retired: {stored.key_id}")

        try:
            public_key = decode(stored.public_key, KeyEncoding.HEX)
            if len(public_key) != suite.public_key_size:
                raise ValueError(f"expected {suite.public_key_size} bytes, got {len(public_key)}")
            suite.validate_public_key(public_key)
            KeyStatus(stored.status)
        except (MalformedKey, ValueError) as e:
            logger.warning("key_record_restore_rejected", key_id=stored.key_id,
                           suite_id=stored.suite_id, reason="invalid_record", error=str(e))
            raise MalformedKey(f"Saved record {stored.key_id} is not restorable: {e}") from e
        return public_key
