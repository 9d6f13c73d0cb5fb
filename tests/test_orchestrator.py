"""
Tests for the Lifecycle Orchestrator

Rotation, profiles, hybrid signing and metrics.
"""

import pytest

from keyrail.core import KeyStatus, ProfileMode
from keyrail.crypto import Secp256k1Suite
from keyrail.errors import (
    HybridSignError,
    InactiveKey,
    KeyNotFound,
    UnsupportedSuite,
    VerifyOnlyKey,
)


class TestRotate:
    """Test key rotation."""

    def test_rotate_creates_successor_per_active_key(self, orchestrator):
        ecdsa = orchestrator.create_key("agent-1", "classical-secp256k1")
        ed = orchestrator.create_key("agent-1", "ed25519")

        created = orchestrator.rotate("agent-1")

        assert [r.suite_id for r in created] == [ecdsa.suite_id, ed.suite_id]
        assert {r.key_id for r in created}.isdisjoint({ecdsa.key_id, ed.key_id})
        assert all(r.agent_id == "agent-1" for r in created)

    def test_predecessors_stay_active(self, orchestrator):
        record = orchestrator.create_key("agent-1", "ed25519")

        orchestrator.rotate("agent-1")

        assert orchestrator.get_key(record.key_id).status == KeyStatus.ACTIVE
        assert len(orchestrator.list_keys("agent-1", active_only=True)) == 2

    def test_inactive_and_verify_only_keys_are_skipped(self, orchestrator):
        inactive = orchestrator.create_key("agent-1", "ed25519")
        orchestrator.deactivate(inactive.key_id)
        public_key, _ = Secp256k1Suite().generate_keypair()
        orchestrator.import_public_key(public_key, "classical-secp256k1", agent_id="agent-1")

        assert orchestrator.rotate("agent-1") == []

    def test_rotate_unknown_agent(self, orchestrator):
        assert orchestrator.rotate("nobody") == []


class TestProfile:
    """Test security posture aggregation."""

    def test_empty_profile(self, orchestrator):
        profile = orchestrator.profile("nobody")

        assert profile.active_count == 0
        assert profile.mode == ProfileMode.NONE

    def test_classical_only(self, orchestrator):
        orchestrator.create_key("agent-1", "classical-secp256k1")

        assert orchestrator.profile("agent-1").mode == ProfileMode.CLASSICAL_ONLY

    def test_post_quantum_only(self, orchestrator):
        orchestrator.create_key("agent-1", "ml-dsa-44")

        assert orchestrator.profile("agent-1").mode == ProfileMode.POST_QUANTUM_ONLY

    def test_hybrid(self, orchestrator):
        orchestrator.create_key("agent-1", "classical-secp256k1")
        orchestrator.create_key("agent-1", "ml-dsa-44")

        profile = orchestrator.profile("agent-1")

        assert profile.mode == ProfileMode.HYBRID
        assert profile.active_count == 2
        assert profile.suites_present == frozenset({"classical-secp256k1", "ml-dsa-44"})
        assert profile.to_dict()["mode"] == "hybrid"

    def test_inactive_keys_do_not_count(self, orchestrator):
        orchestrator.create_key("agent-1", "classical-secp256k1")
        pqc = orchestrator.create_key("agent-1", "ml-dsa-44")
        orchestrator.deactivate(pqc.key_id)

        assert orchestrator.profile("agent-1").mode == ProfileMode.CLASSICAL_ONLY


class TestHybridSign:
    """Test multi-key signing."""

    def test_hybrid_sign_and_verify(self, orchestrator):
        """One signature per key, in order, each verifying independently."""
        ecdsa = orchestrator.create_key("agent-1", "classical-secp256k1")
        pqc = orchestrator.create_key("agent-1", "ml-dsa-44")
        key_ids = [ecdsa.key_id, pqc.key_id]

        signatures = orchestrator.hybrid_sign(key_ids, b"Hello, quantum-safe world!")

        assert [s.key_id for s in signatures] == key_ids
        assert [len(s) for s in signatures] == [64, 2420]
        assert orchestrator.verify(ecdsa.key_id, b"Hello, quantum-safe world!", signatures[0])
        assert orchestrator.hybrid_verify(key_ids, b"Hello, quantum-safe world!", signatures)

    def test_hybrid_verify_fails_if_any_member_fails(self, orchestrator):
        first = orchestrator.create_key("agent-1", "classical-secp256k1")
        second = orchestrator.create_key("agent-1", "ed25519")
        key_ids = [first.key_id, second.key_id]
        signatures = [s.value for s in orchestrator.hybrid_sign(key_ids, b"hello")]
        tampered = bytearray(signatures[1])
        tampered[0] ^= 0x01

        assert orchestrator.hybrid_verify(key_ids, b"hello", [signatures[0], bytes(tampered)]) is False

    def test_hybrid_verify_length_mismatch(self, orchestrator):
        record = orchestrator.create_key("agent-1", "ed25519")
        signatures = orchestrator.hybrid_sign([record.key_id], b"hello")

        assert orchestrator.hybrid_verify([record.key_id, record.key_id], b"hello", signatures) is False

    def test_failure_names_position(self, orchestrator):
        good = orchestrator.create_key("agent-1", "classical-secp256k1")
        bad = orchestrator.create_key("agent-1", "ed25519")
        orchestrator.deactivate(bad.key_id)

        with pytest.raises(HybridSignError) as exc:
            orchestrator.hybrid_sign([good.key_id, bad.key_id], b"hello")

        assert exc.value.index == 1
        assert exc.value.key_id == bad.key_id
        assert exc.value.suite_id == "classical-ed25519"
        assert isinstance(exc.value.cause, InactiveKey)
        assert exc.value.__cause__ is exc.value.cause

    def test_unknown_member(self, orchestrator):
        record = orchestrator.create_key("agent-1", "ed25519")

        with pytest.raises(HybridSignError) as exc:
            orchestrator.hybrid_sign([record.key_id, "missing"], b"hello")

        assert exc.value.index == 1
        assert exc.value.suite_id is None
        assert isinstance(exc.value.cause, KeyNotFound)

    def test_verify_only_member(self, orchestrator):
        public_key, _ = Secp256k1Suite().generate_keypair()
        key_id = orchestrator.import_public_key(public_key, "classical-secp256k1")

        with pytest.raises(HybridSignError) as exc:
            orchestrator.hybrid_sign([key_id], b"hello")

        assert exc.value.index == 0
        assert isinstance(exc.value.cause, VerifyOnlyKey)

    def test_empty_key_list(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.hybrid_sign([], b"hello")


class TestMetrics:
    """Test lifecycle counters."""

    def test_counters(self, orchestrator):
        first = orchestrator.create_key("agent-1", "classical-secp256k1")
        second = orchestrator.create_key("agent-1", "ed25519")
        signatures = orchestrator.hybrid_sign([first.key_id, second.key_id], b"hello")
        orchestrator.hybrid_verify([first.key_id, second.key_id], b"hello", signatures)
        orchestrator.rotate("agent-1")

        metrics = orchestrator.get_metrics()

        assert metrics["keys_created"] == 4
        assert metrics["signatures_created"] == 2
        assert metrics["verifications"] == 2
        assert metrics["hybrid_signatures"] == 1
        assert metrics["rotations"] == 1
        assert metrics["total_keys"] == 4
        assert "ml-dsa-65" in metrics["suites"]

    def test_failures_are_counted(self, orchestrator):
        with pytest.raises(UnsupportedSuite):
            orchestrator.create_key("agent-1", "rsa-2048")
        with pytest.raises(KeyNotFound):
            orchestrator.sign("missing", b"hello")

        metrics = orchestrator.get_metrics()

        assert metrics["failures"] == 2
        assert metrics["keys_created"] == 0
