"""
Signature Suite Implementations

Each suite wraps one external primitive behind the same four capabilities:
key pair generation, signing, verification and static size metadata.

Supports:
- ECDSA over secp256k1 - Classical (Bitcoin SV compatible, 33-byte keys)
- Ed25519 - Classical (fast, small signatures)
- ML-DSA-44 / 65 / 87 - Post-quantum lattice signatures (NIST FIPS 204)
  via dilithium-py, or liboqs when configured
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple
import structlog

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

logger = structlog.get_logger()


class SecurityCategory(Enum):
    """Security category of a suite."""
    CLASSICAL = "classical"
    POST_QUANTUM = "post-quantum"


@dataclass(frozen=True)
class SuiteDescriptor:
    """Static description of a signature suite."""
    suite_id: str
    category: SecurityCategory
    public_key_size: int
    signature_size: int
    algorithm: str
    nist_level: Optional[int] = None

    @property
    def is_pqc(self) -> bool:
        return self.category == SecurityCategory.POST_QUANTUM

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suite_id": self.suite_id,
            "category": self.category.value,
            "algorithm": self.algorithm,
            "public_key_size": self.public_key_size,
            "signature_size": self.signature_size,
            "nist_level": self.nist_level,
        }


class SignatureSuite(ABC):
    """
    Abstract base class for signature suites.

    Subclasses declare their size metadata as class attributes and
    implement the primitive operations. The secret returned by
    generate_keypair is suite-specific and only ever handed back to
    the same suite's sign().
    """

    suite_id: str
    algorithm: str
    category: SecurityCategory
    public_key_size: int
    signature_size: int
    nist_level: Optional[int] = None
    key_prefix: str = "key"

    @property
    def descriptor(self) -> SuiteDescriptor:
        return SuiteDescriptor(
            suite_id=self.suite_id,
            category=self.category,
            public_key_size=self.public_key_size,
            signature_size=self.signature_size,
            algorithm=self.algorithm,
            nist_level=self.nist_level,
        )

    @abstractmethod
    def generate_keypair(self) -> Tuple[bytes, Any]:
        """Generate a key pair and return (public_key, secret)."""
        pass

    @abstractmethod
    def sign(self, secret: Any, message: bytes) -> bytes:
        """Sign message with the secret produced by generate_keypair."""
        pass

    @abstractmethod
    def verify(self, public_key: bytes, message: bytes, signature: bytes) -> bool:
        """Verify a signature. Returns False for a signature that does not match."""
        pass

    def validate_public_key(self, public_key: bytes) -> None:
        """
        Check that public_key is structurally usable by this suite.

        Raises ValueError when it is not. The default only checks length.
        """
        if len(public_key) != self.public_key_size:
            raise ValueError(
                f"expected {self.public_key_size} bytes, got {len(public_key)}"
            )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.suite_id}>"


class Secp256k1Suite(SignatureSuite):
    """
    ECDSA over secp256k1 with SHA-256 using the cryptography library.

    Public keys are SEC1 compressed points (33 bytes). Signatures are the
    fixed-width r || s encoding (64 bytes) normalised to low-S.
    """

    suite_id = "classical-secp256k1"
    algorithm = "ECDSA-secp256k1"
    category = SecurityCategory.CLASSICAL
    public_key_size = 33
    signature_size = 64
    key_prefix = "ecdsa"

    # Group order of secp256k1
    ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
    _SCALAR_SIZE = 32

    def generate_keypair(self) -> Tuple[bytes, ec.EllipticCurvePrivateKey]:
        private_key = ec.generate_private_key(ec.SECP256K1())
        public_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.CompressedPoint,
        )
        return public_bytes, private_key

    def sign(self, secret: ec.EllipticCurvePrivateKey, message: bytes) -> bytes:
        der = secret.sign(message, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        if s > self.ORDER // 2:
            s = self.ORDER - s
        return r.to_bytes(self._SCALAR_SIZE, "big") + s.to_bytes(self._SCALAR_SIZE, "big")

    def verify(self, public_key: bytes, message: bytes, signature: bytes) -> bool:
        r = int.from_bytes(signature[:self._SCALAR_SIZE], "big")
        s = int.from_bytes(signature[self._SCALAR_SIZE:], "big")
        if not (0 < r < self.ORDER and 0 < s < self.ORDER):
            return False

        key = self._load_public_key(public_key)
        try:
            key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
            return True
        except InvalidSignature:
            return False

    def validate_public_key(self, public_key: bytes) -> None:
        super().validate_public_key(public_key)
        self._load_public_key(public_key)

    def _load_public_key(self, public_key: bytes) -> ec.EllipticCurvePublicKey:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), public_key)


class Ed25519Suite(SignatureSuite):
    """Ed25519 signature suite using the cryptography library."""

    suite_id = "classical-ed25519"
    algorithm = "Ed25519"
    category = SecurityCategory.CLASSICAL
    public_key_size = 32
    signature_size = 64
    key_prefix = "ed25519"

    def generate_keypair(self) -> Tuple[bytes, ed25519.Ed25519PrivateKey]:
        private_key = ed25519.Ed25519PrivateKey.generate()
        public_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return public_bytes, private_key

    def sign(self, secret: ed25519.Ed25519PrivateKey, message: bytes) -> bytes:
        return secret.sign(message)

    def verify(self, public_key: bytes, message: bytes, signature: bytes) -> bool:
        key = ed25519.Ed25519PublicKey.from_public_bytes(public_key)
        try:
            key.verify(signature, message)
            return True
        except InvalidSignature:
            return False

    def validate_public_key(self, public_key: bytes) -> None:
        super().validate_public_key(public_key)
        ed25519.Ed25519PublicKey.from_public_bytes(public_key)


# ============================================================================
# ML-DSA (FIPS 204)
# ============================================================================

# parameter set -> (public key bytes, signature bytes, NIST level)
ML_DSA_PARAMETERS: Dict[str, Tuple[int, int, int]] = {
    "ML-DSA-44": (1312, 2420, 2),
    "ML-DSA-65": (1952, 3309, 3),
    "ML-DSA-87": (2592, 4627, 5),
}


class DilithiumPyBackend:
    """Pure Python ML-DSA from dilithium-py."""

    name = "dilithium-py"

    def __init__(self, parameter_set: str):
        from dilithium_py.ml_dsa import ML_DSA_44, ML_DSA_65, ML_DSA_87

        schemes = {
            "ML-DSA-44": ML_DSA_44,
            "ML-DSA-65": ML_DSA_65,
            "ML-DSA-87": ML_DSA_87,
        }
        self.parameter_set = parameter_set
        self._scheme = schemes[parameter_set]

    def keygen(self) -> Tuple[bytes, bytes]:
        public_key, secret_key = self._scheme.keygen()
        return public_key, secret_key

    def sign(self, secret_key: bytes, message: bytes) -> bytes:
        return self._scheme.sign(secret_key, message)

    def verify(self, public_key: bytes, message: bytes, signature: bytes) -> bool:
        return bool(self._scheme.verify(public_key, message, signature))


class LiboqsBackend:
    """
    Native ML-DSA via liboqs-python.

    Only imported when explicitly configured; liboqs must be installed.
    """

    name = "liboqs"

    def __init__(self, parameter_set: str):
        try:
            import oqs
        except ImportError as e:
            raise RuntimeError(
                "liboqs backend requires liboqs-python. Install with: pip install liboqs-python"
            ) from e

        if parameter_set not in oqs.get_enabled_sig_mechanisms():
            raise RuntimeError(f"liboqs does not provide {parameter_set}")

        self._oqs = oqs
        self.parameter_set = parameter_set
        logger.info("liboqs_backend_loaded",
                    version=oqs.oqs_version(),
                    parameter_set=parameter_set)

    def keygen(self) -> Tuple[bytes, bytes]:
        with self._oqs.Signature(self.parameter_set) as sig:
            public_key = sig.generate_keypair()
            secret_key = sig.export_secret_key()
        return bytes(public_key), bytes(secret_key)

    def sign(self, secret_key: bytes, message: bytes) -> bytes:
        with self._oqs.Signature(self.parameter_set, secret_key=secret_key) as sig:
            return bytes(sig.sign(message))

    def verify(self, public_key: bytes, message: bytes, signature: bytes) -> bool:
        with self._oqs.Signature(self.parameter_set) as sig:
            return bool(sig.verify(message, signature, public_key))


LATTICE_BACKEND_CLASSES = {
    DilithiumPyBackend.name: DilithiumPyBackend,
    LiboqsBackend.name: LiboqsBackend,
}


class MLDSASuite(SignatureSuite):
    """
    ML-DSA post-quantum signature suite.

    One instance per parameter set. The lattice backend is resolved when
    the suite is constructed, never per call.
    """

    category = SecurityCategory.POST_QUANTUM

    def __init__(self, parameter_set: str = "ML-DSA-65", backend: str = "dilithium-py"):
        if parameter_set not in ML_DSA_PARAMETERS:
            raise ValueError(f"Unknown ML-DSA parameter set: {parameter_set}")
        if backend not in LATTICE_BACKEND_CLASSES:
            raise ValueError(f"Unknown lattice backend: {backend}")

        public_key_size, signature_size, level = ML_DSA_PARAMETERS[parameter_set]
        self.suite_id = parameter_set.lower()
        self.algorithm = parameter_set
        self.public_key_size = public_key_size
        self.signature_size = signature_size
        self.nist_level = level
        self.key_prefix = "pqc"
        self._backend = LATTICE_BACKEND_CLASSES[backend](parameter_set)

    @property
    def backend_name(self) -> str:
        return self._backend.name

    def generate_keypair(self) -> Tuple[bytes, bytes]:
        return self._backend.keygen()

    def sign(self, secret: bytes, message: bytes) -> bytes:
        return self._backend.sign(secret, message)

    def verify(self, public_key: bytes, message: bytes, signature: bytes) -> bool:
        try:
            return self._backend.verify(public_key, message, signature)
        except (ValueError, IndexError):
            # Tampered hint bytes can fail to unpack; that is a mismatch, not malformation
            return False
