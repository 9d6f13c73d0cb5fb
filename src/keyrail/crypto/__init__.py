"""
Signature Suites for Keyrail

Supports:
- ECDSA secp256k1 - Classical (Bitcoin SV compatible)
- Ed25519 - Classical
- ML-DSA-44/65/87 (Dilithium) - Post-quantum signatures (NIST FIPS 204)
"""

from .suites import (
    SecurityCategory,
    SuiteDescriptor,
    SignatureSuite,
    Secp256k1Suite,
    Ed25519Suite,
    MLDSASuite,
)
from .registry import SuiteRegistry, default_registry

__all__ = [
    "SecurityCategory",
    "SuiteDescriptor",
    "SignatureSuite",
    "Secp256k1Suite",
    "Ed25519Suite",
    "MLDSASuite",
    "SuiteRegistry",
    "default_registry",
]
