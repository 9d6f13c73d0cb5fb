"""
Tests for Signature Suites

Tests ECDSA secp256k1, Ed25519 and ML-DSA primitives directly.
"""

import pytest

from keyrail.crypto import (
    Ed25519Suite,
    MLDSASuite,
    Secp256k1Suite,
    SecurityCategory,
)
from keyrail.crypto.suites import ML_DSA_PARAMETERS


class TestSecp256k1Suite:
    """Test ECDSA over secp256k1."""

    def test_descriptor(self):
        """Descriptor should report compressed keys and compact signatures."""
        descriptor = Secp256k1Suite().descriptor

        assert descriptor.suite_id == "classical-secp256k1"
        assert descriptor.category == SecurityCategory.CLASSICAL
        assert descriptor.public_key_size == 33
        assert descriptor.signature_size == 64
        assert descriptor.is_pqc is False

    def test_generate_keypair(self):
        """Public key should be a compressed SEC1 point."""
        public_key, _ = Secp256k1Suite().generate_keypair()

        assert len(public_key) == 33
        assert public_key[0] in (0x02, 0x03)

    def test_sign_and_verify(self):
        """Signature should be 64 bytes and verify."""
        suite = Secp256k1Suite()
        public_key, secret = suite.generate_keypair()

        signature = suite.sign(secret, b"hello")

        assert len(signature) == 64
        assert suite.verify(public_key, b"hello", signature) is True

    def test_signature_is_low_s(self):
        """s should always be in the lower half of the group order."""
        suite = Secp256k1Suite()
        _, secret = suite.generate_keypair()

        for i in range(10):
            signature = suite.sign(secret, f"message {i}".encode())
            s = int.from_bytes(signature[32:], "big")
            assert s <= Secp256k1Suite.ORDER // 2

    def test_flipped_byte_fails(self):
        """Any flipped signature byte should fail verification."""
        suite = Secp256k1Suite()
        public_key, secret = suite.generate_keypair()
        signature = bytearray(suite.sign(secret, b"hello"))
        signature[0] ^= 0x01

        assert suite.verify(public_key, b"hello", bytes(signature)) is False

    def test_zero_scalars_rejected(self):
        """r or s of zero is never a valid signature."""
        suite = Secp256k1Suite()
        public_key, _ = suite.generate_keypair()

        assert suite.verify(public_key, b"hello", b"\x00" * 64) is False

    def test_wrong_message_fails(self):
        suite = Secp256k1Suite()
        public_key, secret = suite.generate_keypair()
        signature = suite.sign(secret, b"original")

        assert suite.verify(public_key, b"different", signature) is False

    def test_validate_rejects_invalid_point(self):
        """A 33-byte string that is not on the curve should be rejected."""
        suite = Secp256k1Suite()

        with pytest.raises(ValueError):
            suite.validate_public_key(b"\x05" + b"\x00" * 32)


class TestEd25519Suite:
    """Test Ed25519 signature implementation."""

    def test_sign_and_verify(self):
        suite = Ed25519Suite()
        public_key, secret = suite.generate_keypair()

        signature = suite.sign(secret, b"test message to sign")

        assert len(public_key) == 32
        assert len(signature) == 64
        assert suite.verify(public_key, b"test message to sign", signature) is True

    def test_wrong_data_fails_verification(self):
        """Wrong data should fail verification."""
        suite = Ed25519Suite()
        public_key, secret = suite.generate_keypair()
        signature = suite.sign(secret, b"original message")

        assert suite.verify(public_key, b"different message", signature) is False

    def test_deterministic_signatures(self):
        """Ed25519 signs the same message identically."""
        suite = Ed25519Suite()
        _, secret = suite.generate_keypair()

        assert suite.sign(secret, b"data") == suite.sign(secret, b"data")


class TestMLDSASuite:
    """Test ML-DSA post-quantum signatures."""

    @pytest.mark.parametrize("parameter_set", sorted(ML_DSA_PARAMETERS))
    def test_descriptor_sizes(self, parameter_set):
        """Each parameter set should report FIPS 204 sizes."""
        suite = MLDSASuite(parameter_set)
        public_key_size, signature_size, level = ML_DSA_PARAMETERS[parameter_set]

        assert suite.suite_id == parameter_set.lower()
        assert suite.descriptor.category == SecurityCategory.POST_QUANTUM
        assert suite.descriptor.is_pqc is True
        assert suite.public_key_size == public_key_size
        assert suite.signature_size == signature_size
        assert suite.nist_level == level

    def test_sign_verify(self):
        """ML-DSA-44 should sign and verify with real sizes."""
        suite = MLDSASuite("ML-DSA-44")
        public_key, secret = suite.generate_keypair()

        signature = suite.sign(secret, b"test message")

        assert len(public_key) == 1312
        assert len(signature) == 2420
        assert suite.verify(public_key, b"test message", signature) is True

    def test_tampered_signature_fails(self):
        """Tampered signature should fail."""
        suite = MLDSASuite("ML-DSA-44")
        public_key, secret = suite.generate_keypair()
        signature = bytearray(suite.sign(secret, b"test message"))
        signature[10] ^= 0xFF

        assert suite.verify(public_key, b"test message", bytes(signature)) is False

    def test_default_backend(self):
        assert MLDSASuite("ML-DSA-44").backend_name == "dilithium-py"

    def test_unknown_parameter_set(self):
        with pytest.raises(ValueError):
            MLDSASuite("ML-DSA-99")

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            MLDSASuite("ML-DSA-44", backend="openssl")
