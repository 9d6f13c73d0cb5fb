"""
Suite Registry

Maps suite identifiers (and their aliases) to suite capability objects.
Registration is a single explicit step before the registry is frozen;
after that the table is read-only for the lifetime of the process.
"""

from typing import Callable, Dict, FrozenSet, Iterable, List, Optional
import structlog

from ..config import Settings
from ..errors import RegistryFrozen, SuiteError, UnknownSuite
from .suites import (
    Ed25519Suite,
    MLDSASuite,
    Secp256k1Suite,
    SignatureSuite,
    SuiteDescriptor,
)

logger = structlog.get_logger()


# canonical suite id -> aliases accepted from callers
DEFAULT_ALIASES: Dict[str, tuple] = {
    "classical-secp256k1": ("bsv-ecdsa-secp256k1", "ecdsa-secp256k1"),
    "classical-ed25519": ("ed25519",),
    "ml-dsa-44": ("lattice-level-2",),
    "ml-dsa-65": ("lattice-level-3",),
    "ml-dsa-87": ("lattice-level-5",),
}


class SuiteRegistry:
    """
    Lookup table of registered signature suites.

    Usage:
        registry = SuiteRegistry()
        registry.register(Secp256k1Suite(), aliases=["bsv-ecdsa-secp256k1"])
        registry.freeze()
        registry.describe("bsv-ecdsa-secp256k1").signature_size  # 64
    """

    def __init__(self):
        self._suites: Dict[str, SignatureSuite] = {}
        self._aliases: Dict[str, str] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, suite: SignatureSuite, aliases: Iterable[str] = ()) -> SuiteDescriptor:
        """Register a suite under its id and any aliases."""
        if self._frozen:
            raise RegistryFrozen(f"Cannot register {suite.suite_id}: registry is frozen")

        aliases = tuple(aliases)
        for name in (suite.suite_id, *aliases):
            if name in self._suites or name in self._aliases:
                raise SuiteError(f"Suite identifier already registered: {name}")

        if suite.public_key_size <= 0 or suite.signature_size <= 0:
            raise SuiteError(f"Suite {suite.suite_id} declares invalid sizes")

        self._suites[suite.suite_id] = suite
        for alias in aliases:
            self._aliases[alias] = suite.suite_id

        logger.debug("suite_registered",
                     suite_id=suite.suite_id,
                     aliases=list(aliases),
                     public_key_size=suite.public_key_size,
                     signature_size=suite.signature_size)
        return suite.descriptor

    def freeze(self) -> "SuiteRegistry":
        self._frozen = True
        logger.info("suite_registry_frozen", suites=sorted(self._suites))
        return self

    def resolve(self, suite_id: str) -> str:
        """Return the canonical id for suite_id or an alias of it."""
        if suite_id in self._suites:
            return suite_id
        canonical = self._aliases.get(suite_id)
        if canonical is None:
            raise UnknownSuite(suite_id)
        return canonical

    def suite(self, suite_id: str) -> SignatureSuite:
        """Get the capability object bound to suite_id."""
        return self._suites[self.resolve(suite_id)]

    def describe(self, suite_id: str) -> SuiteDescriptor:
        """Get the descriptor for suite_id. Raises UnknownSuite."""
        return self.suite(suite_id).descriptor

    def supported_suites(self) -> FrozenSet[SuiteDescriptor]:
        return frozenset(s.descriptor for s in self._suites.values())

    def suite_ids(self) -> List[str]:
        return list(self._suites)

    def aliases_for(self, suite_id: str) -> List[str]:
        canonical = self.resolve(suite_id)
        return [alias for alias, target in self._aliases.items() if target == canonical]

    def __contains__(self, suite_id: str) -> bool:
        return suite_id in self._suites or suite_id in self._aliases

    def __len__(self) -> int:
        return len(self._suites)


SUITE_FACTORIES: Dict[str, Callable[[str], SignatureSuite]] = {
    "classical-secp256k1": lambda backend: Secp256k1Suite(),
    "classical-ed25519": lambda backend: Ed25519Suite(),
    "ml-dsa-44": lambda backend: MLDSASuite("ML-DSA-44", backend=backend),
    "ml-dsa-65": lambda backend: MLDSASuite("ML-DSA-65", backend=backend),
    "ml-dsa-87": lambda backend: MLDSASuite("ML-DSA-87", backend=backend),
}


def _canonical_default_id(name: str) -> str:
    if name in SUITE_FACTORIES:
        return name
    for suite_id, aliases in DEFAULT_ALIASES.items():
        if name in aliases:
            return suite_id
    raise UnknownSuite(name)


def default_registry(settings: Optional[Settings] = None) -> SuiteRegistry:
    """
    Build and freeze the standard registry.

    If settings.enabled_suites is non-empty only those suites (by id or
    alias) are registered; an unknown name fails here at start-up.
    """
    settings = settings or Settings()

    selected: List[str] = []
    for name in settings.enabled_suites or tuple(SUITE_FACTORIES):
        suite_id = _canonical_default_id(name)
        if suite_id not in selected:
            selected.append(suite_id)

    registry = SuiteRegistry()
    for suite_id in selected:
        suite = SUITE_FACTORIES[suite_id](settings.lattice_backend)
        registry.register(suite, aliases=DEFAULT_ALIASES.get(suite_id, ()))
    return registry.freeze()
