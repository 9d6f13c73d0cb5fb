"""
Error Taxonomy for Keyrail

Every failure raised by the core derives from KeyrailError.

- SuiteError: bad configuration or unknown suite (caller error)
- KeyNotFound: stale or nonexistent key identifier (caller error)
- PrimitiveFault: the underlying cryptographic primitive misbehaved (fatal)
- ValidationError: malformed keys or signatures (caller error)
- PolicyViolation: the key cannot be used for the requested operation

Nothing in the core retries on any of these.
"""

from typing import Optional


class KeyrailError(Exception):
    """Base class for all keyrail errors."""
    pass


class SuiteError(KeyrailError):
    """Raised for suite registration and lookup problems."""
    pass


class UnknownSuite(SuiteError):
    """Raised when a suite identifier is not registered."""

    def __init__(self, suite_id: str):
        self.suite_id = suite_id
        super().__init__(f"Unknown signature suite: {suite_id}")


class UnsupportedSuite(UnknownSuite):
    """Raised when key creation or import is requested for an unregistered suite."""

    def __init__(self, suite_id: str):
        super().__init__(suite_id)
        self.args = (f"Unsupported signature suite: {suite_id}",)


class RegistryFrozen(SuiteError):
    """Raised when registering a suite after the registry was frozen."""
    pass


class KeyNotFound(KeyrailError, KeyError):
    """Raised when a key identifier does not resolve to a record."""

    def __init__(self, key_id: str):
        self.key_id = key_id
        super().__init__(f"Key not found: {key_id}")

    def __str__(self) -> str:
        return self.args[0]


class PrimitiveFault(KeyrailError):
    """Raised when a cryptographic primitive fails or returns bad output."""
    pass


class KeyGenerationFailed(PrimitiveFault):
    """Raised when a suite cannot produce a key pair."""

    def __init__(self, suite_id: str, reason: str):
        self.suite_id = suite_id
        self.reason = reason
        super().__init__(f"Key generation failed for {suite_id}: {reason}")


class CorruptSuiteOutput(PrimitiveFault):
    """Raised when a suite produces output inconsistent with its descriptor."""

    def __init__(self, suite_id: str, reason: str):
        self.suite_id = suite_id
        self.reason = reason
        super().__init__(f"Corrupt output from {suite_id}: {reason}")


class ValidationError(KeyrailError):
    """Raised for structurally invalid caller input."""
    pass


class MalformedKey(ValidationError):
    """Raised when public key material does not match its suite."""
    pass


class MalformedSignature(ValidationError):
    """Raised when a signature is not the length its suite produces."""

    def __init__(self, suite_id: str, expected: int, actual: int):
        self.suite_id = suite_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Malformed signature for {suite_id}: expected {expected} bytes, got {actual}"
        )


class PolicyViolation(KeyrailError):
    """Raised when a key is not allowed to perform the requested operation."""

    def __init__(self, key_id: str, message: str):
        self.key_id = key_id
        super().__init__(message)


class InactiveKey(PolicyViolation):
    """Raised when signing with a deactivated key."""

    def __init__(self, key_id: str):
        super().__init__(key_id, f"Key is inactive and cannot sign: {key_id}")


class VerifyOnlyKey(PolicyViolation):
    """Raised when signing with a key that has no private handle."""

    def __init__(self, key_id: str):
        super().__init__(key_id, f"Key is verify-only and cannot sign: {key_id}")


class HybridSignError(KeyrailError):
    """
    Raised when one member of a hybrid signature fails.

    Carries the position of the failing key so callers can tell which
    suite broke the combined assurance. The original error is kept both
    as `cause` and as the exception's __cause__.
    """

    def __init__(
        self,
        index: int,
        key_id: str,
        cause: Exception,
        suite_id: Optional[str] = None,
    ):
        self.index = index
        self.key_id = key_id
        self.suite_id = suite_id
        self.cause = cause
        suite = suite_id or "unknown suite"
        super().__init__(
            f"Hybrid signing failed at index {index} ({key_id}, {suite}): {cause}"
        )
