"""
Import/Export Gateway

Format translation between stored public keys and portable encodings:
raw bytes, hexadecimal, base64 and a JSON bundle for sharing several
keys at once. Only public material ever crosses this boundary.

Invariant: decode(encode(x, enc), enc) == x for every encoding.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Union
import structlog

from ..errors import MalformedKey, UnknownSuite
from .keystore import IMPORTED_AGENT, KeyRecord, KeyStore

logger = structlog.get_logger()

BUNDLE_FORMAT = "keyrail-public-keys/v1"


class KeyEncoding(Enum):
    """Portable encodings for public key bytes."""
    RAW = "raw"
    HEX = "hex"
    BASE64 = "base64"


def encode(data: bytes, encoding: KeyEncoding = KeyEncoding.HEX) -> Union[bytes, str]:
    """Encode key bytes for transport."""
    encoding = KeyEncoding(encoding)
    data = bytes(data)
    if encoding == KeyEncoding.RAW:
        return data
    if encoding == KeyEncoding.HEX:
        return data.hex()
    return base64.b64encode(data).decode('ascii')


def decode(value: Union[bytes, str], encoding: KeyEncoding = KeyEncoding.HEX) -> bytes:
    """
    Decode transported key material back to bytes.

    Hex accepts an optional 0x prefix and surrounding whitespace.
    Raises MalformedKey for text that is not valid in the encoding.
    """
    encoding = KeyEncoding(encoding)
    if encoding == KeyEncoding.RAW:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise MalformedKey("Raw key material must be bytes")
        return bytes(value)

    if isinstance(value, (bytes, bytearray)):
        try:
            value = bytes(value).decode('ascii')
        except UnicodeDecodeError as e:
            raise MalformedKey(f"Encoded key is not ASCII text: {e}") from e

    text = value.strip()
    if encoding == KeyEncoding.HEX:
        if text[:2].lower() == "0x":
            text = text[2:]
        if len(text) % 2:
            raise MalformedKey("Hex key material has odd length")
        try:
            return bytes.fromhex(text)
        except ValueError as e:
            raise MalformedKey(f"Invalid hex key material: {e}") from e

    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedKey(f"Invalid base64 key material: {e}") from e


@dataclass(frozen=True)
class BundleEntry:
    """One exported public key."""
    key_id: str
    agent_id: str
    suite_id: str
    public_key: bytes
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_id": self.key_id,
            "agent_id": self.agent_id,
            "suite_id": self.suite_id,
            "public_key": self.public_key.hex(),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BundleEntry":
        return cls(
            key_id=data["key_id"],
            agent_id=data.get("agent_id", IMPORTED_AGENT),
            suite_id=data["suite_id"],
            public_key=decode(data["public_key"], KeyEncoding.HEX),
            created_at=data.get("created_at", ""),
        )

    @classmethod
    def from_record(cls, record: KeyRecord) -> "BundleEntry":
        return cls(
            key_id=record.key_id,
            agent_id=record.agent_id,
            suite_id=record.suite_id,
            public_key=record.public_key,
            created_at=record.created_at,
        )


@dataclass(frozen=True)
class PublicKeyBundle:
    """A shareable set of public keys."""
    keys: tuple = ()
    exported: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    format: str = BUNDLE_FORMAT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "exported": self.exported,
            "keys": [entry.to_dict() for entry in self.keys],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PublicKeyBundle":
        if data.get("format") != BUNDLE_FORMAT:
            raise MalformedKey(f"Unsupported bundle format: {data.get('format')!r}")
        return cls(
            keys=tuple(BundleEntry.from_dict(entry) for entry in data.get("keys", [])),
            exported=data.get("exported", ""),
            format=data["format"],
        )


def encode_bundle(bundle: PublicKeyBundle) -> str:
    return json.dumps(bundle.to_dict(), indent=2, sort_keys=True)


def decode_bundle(text: Union[str, bytes]) -> PublicKeyBundle:
    """Parse a JSON bundle. Raises MalformedKey on any structural problem."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedKey(f"Public key bundle is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedKey("Public key bundle must be a JSON object")
    try:
        return PublicKeyBundle.from_dict(data)
    except (KeyError, TypeError, AttributeError) as e:
        raise MalformedKey(f"Public key bundle entry is incomplete: {e}") from e


class KeyGateway:
    """Export and import of public keys against a KeyStore."""

    def __init__(self, store: KeyStore):
        self.store = store

    def export_public_key(
        self,
        key_id: str,
        encoding: KeyEncoding = KeyEncoding.RAW,
    ) -> Union[bytes, str]:
        public_key = self.store.get_public_key(key_id)
        logger.debug("public_key_exported", key_id=key_id, encoding=KeyEncoding(encoding).value)
        return encode(public_key, encoding)

    def import_public_key(
        self,
        data: Union[bytes, str],
        suite_id: str,
        encoding: KeyEncoding = KeyEncoding.RAW,
        agent_id: str = IMPORTED_AGENT,
    ) -> str:
        """Decode and import a public key as a verify-only record."""
        return self.store.import_public_key(decode(data, encoding), suite_id, agent_id=agent_id)

    def export_bundle(self, key_ids: Iterable[str]) -> str:
        entries = tuple(BundleEntry.from_record(self.store.get(k)) for k in key_ids)
        logger.info("public_key_bundle_exported", count=len(entries))
        return encode_bundle(PublicKeyBundle(keys=entries))

    def import_bundle(self, text: Union[str, bytes]) -> List[str]:
        """
        Import every key in a bundle as verify-only records.

        All entries are validated before any record is created, so a bad
        entry leaves the store untouched. Returns the new key ids in
        bundle order.
        """
        bundle = decode_bundle(text)
        registry = self.store.registry

        for position, entry in enumerate(bundle.keys):
            try:
                suite = registry.suite(entry.suite_id)
            except UnknownSuite as e:
                raise MalformedKey(
                    f"Bundle entry {position} uses unknown suite {entry.suite_id}"
                ) from e
            if len(entry.public_key) != suite.public_key_size:
                raise MalformedKey(
                    f"Bundle entry {position} has a {len(entry.public_key)}-byte key, "
                    f"{entry.suite_id} expects {suite.public_key_size}"
                )
            try:
                suite.validate_public_key(entry.public_key)
            except ValueError as e:
                raise MalformedKey(f"Bundle entry {position} is not a valid key: {e}") from e

        key_ids = [
            self.store.import_public_key(entry.public_key, entry.suite_id, agent_id=entry.agent_id)
            for entry in bundle.keys
        ]
        logger.info("public_key_bundle_imported", count=len(key_ids))
        return key_ids
