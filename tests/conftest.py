"""
Pytest Configuration and Fixtures
"""

import os
import sys
import tempfile

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))

# Set test environment
os.environ["KEYRAIL_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["KEYRAIL_API_KEY"] = "test-key-12345"

from keyrail.config import Settings
from keyrail.core import KeyStore, LifecycleOrchestrator, SigningEngine
from keyrail.crypto import SignatureSuite, SecurityCategory, SuiteRegistry, default_registry


@pytest.fixture(scope="session")
def registry():
    """Frozen registry with every standard suite."""
    return default_registry(Settings())


@pytest.fixture
def store(registry):
    return KeyStore(registry)


@pytest.fixture
def engine(store, registry):
    return SigningEngine(store, registry)


@pytest.fixture
def orchestrator(registry):
    return LifecycleOrchestrator(registry)


@pytest.fixture
def temp_db():
    """Create a temporary database file for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield os.path.join(tmpdir, "keyrail-test.db")


class FaultySuite(SignatureSuite):
    """
    Suite whose primitive misbehaves on demand.

    fault is one of: None, "keygen-raises", "short-key", "sign-raises",
    "short-signature".
    """

    suite_id = "faulty"
    algorithm = "Faulty"
    category = SecurityCategory.CLASSICAL
    public_key_size = 16
    signature_size = 24
    key_prefix = "faulty"

    def __init__(self, fault=None):
        self.fault = fault

    def generate_keypair(self):
        if self.fault == "keygen-raises":
            raise RuntimeError("entropy source unavailable")
        if self.fault == "short-key":
            return b"\x01" * 8, object()
        return b"\x01" * 16, object()

    def sign(self, secret, message):
        if self.fault == "sign-raises":
            raise RuntimeError("primitive crashed")
        if self.fault == "short-signature":
            return b"\x02" * 10
        return b"\x02" * 24

    def verify(self, public_key, message, signature):
        return signature == b"\x02" * 24


@pytest.fixture
def faulty_store():
    """Build a store over a registry holding a FaultySuite with the given fault."""
    def build(fault=None):
        registry = SuiteRegistry()
        registry.register(FaultySuite(fault))
        registry.freeze()
        return KeyStore(registry)
    return build
