"""
Key Store for Keyrail

Owns every key record in the process: creation, lookup, listing,
deactivation, verify-only imports and purge.

Concurrency model:
- Readers (get, get_public_key, list_keys_for_agent) take no lock.
- Mutators hold the store lock only for the single insert or status
  update. Key generation happens before the lock is acquired so slow
  lattice key generation never blocks readers or other writers.
"""

import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Set
import structlog

from ..crypto.registry import SuiteRegistry
from ..errors import (
    KeyGenerationFailed,
    KeyNotFound,
    MalformedKey,
    UnknownSuite,
    UnsupportedSuite,
    ValidationError,
)

logger = structlog.get_logger()

USAGE_SIGN = "sign"
USAGE_VERIFY = "verify"
SIGNING_USAGE: FrozenSet[str] = frozenset({USAGE_SIGN, USAGE_VERIFY})
VERIFY_USAGE: FrozenSet[str] = frozenset({USAGE_VERIFY})

# Owner assigned to imported public keys when the caller does not name one
IMPORTED_AGENT = "imported"


class KeyStatus(Enum):
    """Lifecycle status of a key record."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class PrivateKeyHandle:
    """
    Opaque owner of secret key material.

    The handle cannot be pickled, copied or printed. Only the signing
    engine unwraps it, and only for the duration of a sign call.
    """

    __slots__ = ("_suite_id", "_secret")

    def __init__(self, suite_id: str, secret: Any):
        self._suite_id = suite_id
        self._secret = secret

    @property
    def suite_id(self) -> str:
        return self._suite_id

    def _reveal(self) -> Any:
        return self._secret

    def __repr__(self) -> str:
        return f"<PrivateKeyHandle {self._suite_id} [redacted]>"

    def __reduce_ex__(self, protocol):
        raise TypeError("Private key handles cannot be serialized")

    def __copy__(self):
        raise TypeError("Private key handles cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("Private key handles cannot be copied")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(eq=False)
class KeyRecord:
    """
    A cryptographic identity bound to one agent and one suite.

    Only `status` may change after creation; every other attribute is
    fixed when the record is built.
    """
    key_id: str
    agent_id: str
    suite_id: str
    public_key: bytes
    usage: FrozenSet[str]
    status: KeyStatus = KeyStatus.ACTIVE
    created_at: str = field(default_factory=_utc_now)
    private_handle: Optional[PrivateKeyHandle] = field(default=None, repr=False)

    _MUTABLE_FIELDS = frozenset({"status"})

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self.__dict__ and name not in self._MUTABLE_FIELDS:
            raise AttributeError(f"KeyRecord.{name} is immutable")
        object.__setattr__(self, name, value)

    @property
    def is_active(self) -> bool:
        return self.status == KeyStatus.ACTIVE

    @property
    def is_verify_only(self) -> bool:
        return self.private_handle is None

    @property
    def can_sign(self) -> bool:
        return self.private_handle is not None and USAGE_SIGN in self.usage

    def to_dict(self) -> Dict[str, Any]:
        """Public view of the record. Never includes private material."""
        return {
            "key_id": self.key_id,
            "agent_id": self.agent_id,
            "suite_id": self.suite_id,
            "usage": sorted(self.usage),
            "status": self.status.value,
            "public_key": self.public_key.hex(),
            "public_key_size": len(self.public_key),
            "created_at": self.created_at,
            "verify_only": self.is_verify_only,
        }


class KeyStore:
    """
    In-memory registry of key records.

    Features:
    - Key generation through the suite registry
    - Verify-only public key imports
    - Idempotent deactivation
    - Identifiers are never reissued, even after purge
    """

    def __init__(self, registry: SuiteRegistry):
        self.registry = registry
        self._records: Dict[str, KeyRecord] = {}
        self._by_agent: Dict[str, List[str]] = {}
        self._retired_ids: Set[str] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_key(self, agent_id: str, suite_id: str) -> KeyRecord:
        """Generate a new signing key for agent_id using suite_id."""
        try:
            suite = self.registry.suite(suite_id)
        except UnknownSuite:
            logger.warning("key_creation_rejected", agent_id=agent_id, suite_id=suite_id)
            raise UnsupportedSuite(suite_id) from None

        descriptor = suite.descriptor
        try:
            public_key, secret = suite.generate_keypair()
        except Exception as e:
            logger.error("key_generation_failed",
                         agent_id=agent_id,
                         suite_id=descriptor.suite_id,
                         error=str(e))
            raise KeyGenerationFailed(descriptor.suite_id, str(e)) from e

        public_key = bytes(public_key)
        if len(public_key) != descriptor.public_key_size:
            logger.error("key_generation_failed",
                         agent_id=agent_id,
                         suite_id=descriptor.suite_id,
                         public_key_size=len(public_key),
                         expected=descriptor.public_key_size)
            raise KeyGenerationFailed(
                descriptor.suite_id,
                f"public key is {len(public_key)} bytes, expected {descriptor.public_key_size}",
            )

        handle = PrivateKeyHandle(descriptor.suite_id, secret)
        with self._lock:
            record = KeyRecord(
                key_id=self._new_key_id(suite.key_prefix),
                agent_id=agent_id,
                suite_id=descriptor.suite_id,
                public_key=public_key,
                usage=SIGNING_USAGE,
                private_handle=handle,
            )
            self._insert(record)

        logger.info("key_created",
                    key_id=record.key_id,
                    agent_id=agent_id,
                    suite_id=record.suite_id,
                    public_key_size=len(public_key))
        return record

    def import_public_key(
        self,
        public_key: bytes,
        suite_id: str,
        agent_id: str = IMPORTED_AGENT,
        key_id: Optional[str] = None,
        created_at: Optional[str] = None,
        status: KeyStatus = KeyStatus.ACTIVE,
    ) -> str:
        """
        Create a verify-only record from foreign public key bytes.

        `key_id`, `created_at` and `status` are only supplied when restoring
        records that were persisted earlier; a supplied id must not be in
        use or retired.
        """
        try:
            suite = self.registry.suite(suite_id)
        except UnknownSuite:
            logger.warning("key_import_rejected", suite_id=suite_id, reason="unknown_suite")
            raise UnsupportedSuite(suite_id) from None

        descriptor = suite.descriptor
        public_key = bytes(public_key)
        if len(public_key) != descriptor.public_key_size:
            logger.warning("key_import_rejected",
                           suite_id=descriptor.suite_id,
                           public_key_size=len(public_key),
                           expected=descriptor.public_key_size)
            raise MalformedKey(
                f"{descriptor.suite_id} public keys are {descriptor.public_key_size} bytes, "
                f"got {len(public_key)}"
            )

        try:
            suite.validate_public_key(public_key)
        except ValueError as e:
            logger.warning("key_import_rejected",
                           suite_id=descriptor.suite_id,
                           reason="invalid_encoding",
                           error=str(e))
            raise MalformedKey(f"Invalid {descriptor.suite_id} public key: {e}") from e

        with self._lock:
            if key_id is None:
                key_id = self._new_key_id("imported")
            elif key_id in self._records or key_id in self._retired_ids:
                raise ValidationError(f"Key identifier already in use: {key_id}")

            record = KeyRecord(
                key_id=key_id,
                agent_id=agent_id,
                suite_id=descriptor.suite_id,
                public_key=public_key,
                usage=VERIFY_USAGE,
                status=status,
                created_at=created_at or _utc_now(),
            )
            self._insert(record)

        logger.info("public_key_imported",
                    key_id=record.key_id,
                    agent_id=agent_id,
                    suite_id=record.suite_id)
        return record.key_id

    def deactivate(self, key_id: str) -> KeyRecord:
        """Mark a key inactive. Deactivating an inactive key is a no-op."""
        with self._lock:
            record = self._records.get(key_id)
            if record is None:
                raise KeyNotFound(key_id)
            changed = record.status != KeyStatus.INACTIVE
            record.status = KeyStatus.INACTIVE

        if changed:
            logger.info("key_deactivated", key_id=key_id, agent_id=record.agent_id)
        return record

    def purge(self, key_id: str) -> None:
        """Remove a record permanently. Its identifier is retired."""
        with self._lock:
            record = self._records.pop(key_id, None)
            if record is None:
                raise KeyNotFound(key_id)
            self._retired_ids.add(key_id)
            owned = self._by_agent.get(record.agent_id, [])
            self._by_agent[record.agent_id] = [k for k in owned if k != key_id]

        logger.info("key_purged", key_id=key_id, agent_id=record.agent_id)

    # ------------------------------------------------------------------
    # Reads (lock-free)
    # ------------------------------------------------------------------

    def get(self, key_id: str) -> KeyRecord:
        record = self._records.get(key_id)
        if record is None:
            raise KeyNotFound(key_id)
        return record

    def get_public_key(self, key_id: str) -> bytes:
        """Get public key bytes by key ID."""
        return self.get(key_id).public_key

    def list_keys_for_agent(self, agent_id: str, active_only: bool = False) -> List[KeyRecord]:
        """List an agent's keys in creation order."""
        key_ids = list(self._by_agent.get(agent_id, ()))
        records = [self._records[k] for k in key_ids if k in self._records]
        if active_only:
            records = [r for r in records if r.is_active]
        return records

    def list_all(self) -> List[KeyRecord]:
        return list(self._records.values())

    def agents(self) -> List[str]:
        return [agent for agent, keys in list(self._by_agent.items()) if keys]

    def is_retired(self, key_id: str) -> bool:
        return key_id in self._retired_ids

    def __contains__(self, key_id: str) -> bool:
        return key_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _new_key_id(self, prefix: str) -> str:
        while True:
            key_id = f"{prefix}-{secrets.token_hex(8)}"
            if key_id not in self._records and key_id not in self._retired_ids:
                return key_id

    def _insert(self, record: KeyRecord) -> None:
        self._records[record.key_id] = record
        self._by_agent.setdefault(record.agent_id, []).append(record.key_id)
