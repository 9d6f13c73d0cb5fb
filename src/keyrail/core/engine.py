"""
Signing Engine

Signs and verifies with the suite bound to a key record. Messages are
opaque bytes; any hashing is the suite's own business.

Signing requires an active key that holds a private handle.
Verification works against any record, including inactive and
verify-only ones, so historically issued signatures stay checkable.
"""

import base64
from dataclasses import dataclass
from typing import Any, Dict
import structlog

from ..crypto.registry import SuiteRegistry
from ..errors import (
    CorruptSuiteOutput,
    InactiveKey,
    MalformedSignature,
    VerifyOnlyKey,
)
from .keystore import KeyStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class Signature:
    """A signature bound to the key and suite that produced it."""
    value: bytes
    key_id: str
    suite_id: str

    @property
    def hex(self) -> str:
        return self.value.hex()

    @property
    def b64(self) -> str:
        return base64.b64encode(self.value).decode('utf-8')

    def __len__(self) -> int:
        return len(self.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_id": self.key_id,
            "suite_id": self.suite_id,
            "signature": self.hex,
            "signature_size": len(self.value),
        }


class SigningEngine:
    """Suite-dispatching sign/verify over a KeyStore."""

    def __init__(self, store: KeyStore, registry: SuiteRegistry):
        self.store = store
        self.registry = registry

    def sign(self, key_id: str, message: bytes) -> Signature:
        """
        Sign message with key_id.

        Raises:
            KeyNotFound: unknown key
            VerifyOnlyKey: the record has no private handle
            InactiveKey: the record is deactivated
            CorruptSuiteOutput: the primitive failed or returned the wrong size
        """
        record = self.store.get(key_id)
        if record.private_handle is None:
            logger.warning("sign_rejected", key_id=key_id, reason="verify_only")
            raise VerifyOnlyKey(key_id)
        if not record.is_active:
            logger.warning("sign_rejected", key_id=key_id, reason="inactive")
            raise InactiveKey(key_id)

        suite = self.registry.suite(record.suite_id)
        expected = suite.signature_size
        try:
            value = suite.sign(record.private_handle._reveal(), bytes(message))
        except Exception as e:
            logger.error("suite_sign_failed", key_id=key_id, suite_id=record.suite_id, error=str(e))
            raise CorruptSuiteOutput(record.suite_id, f"signing raised: {e}") from e

        value = bytes(value)
        if len(value) != expected:
            logger.error("suite_output_corrupt",
                         key_id=key_id,
                         suite_id=record.suite_id,
                         signature_size=len(value),
                         expected=expected)
            raise CorruptSuiteOutput(
                record.suite_id,
                f"signature is {len(value)} bytes, expected {expected}",
            )

        logger.debug("signature_created",
                     key_id=key_id,
                     suite_id=record.suite_id,
                     message_size=len(message),
                     signature_size=len(value))
        return Signature(value=value, key_id=key_id, suite_id=record.suite_id)

    def verify(self, key_id: str, message: bytes, signature: bytes) -> bool:
        """
        Verify signature over message with key_id's public key.

        Returns False for a well-formed signature that does not match.
        Raises KeyNotFound or MalformedSignature on structural problems.
        """
        if isinstance(signature, Signature):
            signature = signature.value

        record = self.store.get(key_id)
        suite = self.registry.suite(record.suite_id)
        signature = bytes(signature)
        if len(signature) != suite.signature_size:
            logger.warning("verify_rejected",
                           key_id=key_id,
                           suite_id=record.suite_id,
                           signature_size=len(signature),
                           expected=suite.signature_size)
            raise MalformedSignature(record.suite_id, suite.signature_size, len(signature))

        valid = suite.verify(record.public_key, bytes(message), signature)

        logger.debug("signature_verified",
                     key_id=key_id,
                     suite_id=record.suite_id,
                     valid=valid,
                     key_status=record.status.value)
        return bool(valid)
