"""
Data Models for Persistence Layer

Storage shape of a key record: public material and metadata only.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List
import json

from ..core.keystore import KeyRecord


@dataclass
class StoredKeyRecord:
    """Persisted public key record."""
    key_id: str
    agent_id: str
    suite_id: str
    usage: List[str]
    status: str
    public_key: str  # hex
    created_at: str
    saved_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def public_key_bytes(self) -> bytes:
        return bytes.fromhex(self.public_key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_id": self.key_id,
            "agent_id": self.agent_id,
            "suite_id": self.suite_id,
            "usage": self.usage,
            "status": self.status,
            "public_key": self.public_key,
            "created_at": self.created_at,
            "saved_at": self.saved_at,
        }

    def to_db_tuple(self) -> tuple:
        """Convert to database insert tuple."""
        return (
            self.key_id,
            self.agent_id,
            self.suite_id,
            json.dumps(self.usage),
            self.status,
            self.public_key,
            self.created_at,
            self.saved_at,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "StoredKeyRecord":
        return cls(
            key_id=row["key_id"],
            agent_id=row["agent_id"],
            suite_id=row["suite_id"],
            usage=json.loads(row["usage"]),
            status=row["status"],
            public_key=row["public_key"],
            created_at=row["created_at"],
            saved_at=row["saved_at"],
        )

    @classmethod
    def from_record(cls, record: KeyRecord) -> "StoredKeyRecord":
        return cls(
            key_id=record.key_id,
            agent_id=record.agent_id,
            suite_id=record.suite_id,
            usage=sorted(record.usage),
            status=record.status.value,
            public_key=record.public_key.hex(),
            created_at=record.created_at,
        )
