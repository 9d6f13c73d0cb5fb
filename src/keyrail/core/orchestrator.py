"""
Lifecycle Orchestrator

The single entry point callers (CLI, HTTP API, tests) use. It sequences
multi-step workflows on top of the key store, signing engine and
gateway:

- rotate: create a same-suite successor for each active signing key
- hybrid_sign: sign one message with several keys, all-or-nothing
- profile: aggregate an agent's active keys into a security posture

Flow for hybrid signing:
1. Sign with key 1
2. Sign with key 2
3. ... in the given order, stopping at the first failure
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Union
import structlog

from ..crypto.registry import SuiteRegistry
from ..crypto.suites import SecurityCategory
from ..errors import HybridSignError, KeyNotFound, KeyrailError
from .engine import Signature, SigningEngine
from .gateway import KeyEncoding, KeyGateway
from .keystore import IMPORTED_AGENT, KeyRecord, KeyStore

logger = structlog.get_logger()


class ProfileMode(Enum):
    """Security posture of an agent's active keys."""
    HYBRID = "hybrid"  # Classical and post-quantum both present
    POST_QUANTUM_ONLY = "post-quantum-only"
    CLASSICAL_ONLY = "classical-only"
    NONE = "none"


@dataclass(frozen=True)
class KeyProfile:
    """Aggregate status of an agent's active keys."""
    agent_id: str
    active_count: int
    suites_present: FrozenSet[str]
    categories_present: FrozenSet[SecurityCategory]

    @property
    def mode(self) -> ProfileMode:
        classical = SecurityCategory.CLASSICAL in self.categories_present
        pqc = SecurityCategory.POST_QUANTUM in self.categories_present
        if classical and pqc:
            return ProfileMode.HYBRID
        if pqc:
            return ProfileMode.POST_QUANTUM_ONLY
        if classical:
            return ProfileMode.CLASSICAL_ONLY
        return ProfileMode.NONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "active_count": self.active_count,
            "suites_present": sorted(self.suites_present),
            "categories_present": sorted(c.value for c in self.categories_present),
            "mode": self.mode.value,
        }


class LifecycleOrchestrator:
    """
    Top-level coordinator for key lifecycles.

    Built once per process by the owning application and passed by
    reference; there is no module-level instance.
    """

    def __init__(
        self,
        registry: SuiteRegistry,
        store: Optional[KeyStore] = None,
        engine: Optional[SigningEngine] = None,
        gateway: Optional[KeyGateway] = None,
    ):
        self.registry = registry
        self.store = store or KeyStore(registry)
        self.engine = engine or SigningEngine(self.store, registry)
        self.gateway = gateway or KeyGateway(self.store)

        # Metrics
        self._metrics_lock = threading.Lock()
        self._keys_created = 0
        self._signatures_created = 0
        self._verifications = 0
        self._rotations = 0
        self._hybrid_signatures = 0
        self._failures = 0

    # ------------------------------------------------------------------
    # Key lifecycle
    # ------------------------------------------------------------------

    def create_key(self, agent_id: str, suite_id: str) -> KeyRecord:
        record = self._tracked(self.store.create_key, agent_id, suite_id)
        self._count("_keys_created")
        return record

    def get_key(self, key_id: str) -> KeyRecord:
        return self.store.get(key_id)

    def list_keys(self, agent_id: str, active_only: bool = False) -> List[KeyRecord]:
        return self.store.list_keys_for_agent(agent_id, active_only=active_only)

    def deactivate(self, key_id: str) -> KeyRecord:
        return self._tracked(self.store.deactivate, key_id)

    def rotate(self, agent_id: str) -> List[KeyRecord]:
        """
        Create a replacement for each of the agent's active signing keys.

        The predecessors stay active; retiring them is a separate caller
        decision. Verify-only keys have nothing to rotate and are skipped.
        """
        current = [r for r in self.store.list_keys_for_agent(agent_id, active_only=True) if r.can_sign]

        created = []
        for record in current:
            successor = self.create_key(agent_id, record.suite_id)
            logger.info("key_rotated",
                        agent_id=agent_id,
                        old_key_id=record.key_id,
                        new_key_id=successor.key_id,
                        suite_id=record.suite_id)
            created.append(successor)

        self._count("_rotations")
        logger.info("agent_rotated", agent_id=agent_id, new_keys=len(created))
        return created

    def profile(self, agent_id: str) -> KeyProfile:
        active = self.store.list_keys_for_agent(agent_id, active_only=True)
        suites = frozenset(r.suite_id for r in active)
        categories = frozenset(self.registry.describe(s).category for s in suites)
        return KeyProfile(
            agent_id=agent_id,
            active_count=len(active),
            suites_present=suites,
            categories_present=categories,
        )

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign(self, key_id: str, message: bytes) -> Signature:
        signature = self._tracked(self.engine.sign, key_id, message)
        self._count("_signatures_created")
        return signature

    def verify(self, key_id: str, message: bytes, signature: Union[bytes, Signature]) -> bool:
        valid = self._tracked(self.engine.verify, key_id, message, signature)
        self._count("_verifications")
        return valid

    def hybrid_sign(self, key_ids: Sequence[str], message: bytes) -> List[Signature]:
        """
        Sign message with every key in order.

        Members are signed one after another. The first failure raises
        HybridSignError naming the failing position; signatures already
        produced are discarded, never returned.
        """
        key_ids = list(key_ids)
        if not key_ids:
            raise ValueError("hybrid_sign requires at least one key")

        signatures = []
        for index, key_id in enumerate(key_ids):
            try:
                signatures.append(self.engine.sign(key_id, message))
            except KeyrailError as e:
                suite_id = self._suite_of(key_id)
                logger.warning("hybrid_sign_failed",
                               index=index,
                               key_id=key_id,
                               suite_id=suite_id,
                               error=str(e))
                self._count("_failures")
                raise HybridSignError(index, key_id, e, suite_id=suite_id) from e

        self._count("_signatures_created", len(signatures))
        self._count("_hybrid_signatures")
        logger.info("hybrid_signature_created",
                    key_ids=key_ids,
                    suites=[s.suite_id for s in signatures],
                    total_size=sum(len(s) for s in signatures))
        return signatures

    def hybrid_verify(
        self,
        key_ids: Sequence[str],
        message: bytes,
        signatures: Sequence[Union[bytes, Signature]],
    ) -> bool:
        """True only if every signature verifies under its key."""
        key_ids = list(key_ids)
        signatures = list(signatures)
        if not key_ids or len(key_ids) != len(signatures):
            return False

        results = [self.verify(k, message, s) for k, s in zip(key_ids, signatures)]
        return all(results)

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_public_key(self, key_id: str, encoding: KeyEncoding = KeyEncoding.RAW):
        return self._tracked(self.gateway.export_public_key, key_id, encoding)

    def import_public_key(
        self,
        data: Union[bytes, str],
        suite_id: str,
        encoding: KeyEncoding = KeyEncoding.RAW,
        agent_id: str = IMPORTED_AGENT,
    ) -> str:
        return self._tracked(self.gateway.import_public_key, data, suite_id, encoding, agent_id)

    def export_bundle(self, key_ids: Iterable[str]) -> str:
        return self._tracked(self.gateway.export_bundle, key_ids)

    def import_bundle(self, text: Union[str, bytes]) -> List[str]:
        return self._tracked(self.gateway.import_bundle, text)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """Get lifecycle metrics."""
        return {
            "keys_created": self._keys_created,
            "signatures_created": self._signatures_created,
            "verifications": self._verifications,
            "rotations": self._rotations,
            "hybrid_signatures": self._hybrid_signatures,
            "failures": self._failures,
            "total_keys": len(self.store),
            "suites": sorted(self.registry.suite_ids()),
        }

    def _count(self, name: str, amount: int = 1) -> None:
        with self._metrics_lock:
            setattr(self, name, getattr(self, name) + amount)

    def _tracked(self, operation, *args):
        try:
            return operation(*args)
        except KeyrailError:
            self._count("_failures")
            raise

    def _suite_of(self, key_id: str) -> Optional[str]:
        try:
            return self.store.get(key_id).suite_id
        except KeyNotFound:
            return None
