"""
KEYRAIL - Core Module
Key lifecycle and dual-algorithm signing orchestration.
"""

from .keystore import KeyRecord, KeyStatus, KeyStore, PrivateKeyHandle, IMPORTED_AGENT
from .engine import Signature, SigningEngine
from .gateway import KeyEncoding, KeyGateway, PublicKeyBundle, encode, decode
from .orchestrator import KeyProfile, LifecycleOrchestrator, ProfileMode

__all__ = [
    "KeyRecord",
    "KeyStatus",
    "KeyStore",
    "PrivateKeyHandle",
    "IMPORTED_AGENT",
    "Signature",
    "SigningEngine",
    "KeyEncoding",
    "KeyGateway",
    "PublicKeyBundle",
    "encode",
    "decode",
    "KeyProfile",
    "LifecycleOrchestrator",
    "ProfileMode",
]
