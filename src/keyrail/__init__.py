"""
Keyrail - key lifecycle and hybrid classical/post-quantum signing.
"""

from typing import Optional

from .config import Settings
from .core import LifecycleOrchestrator
from .crypto import default_registry

__version__ = "0.1.0"


def build_core(settings: Optional[Settings] = None) -> LifecycleOrchestrator:
    """Build a fully wired core instance owned by the caller."""
    settings = settings or Settings.from_env()
    return LifecycleOrchestrator(default_registry(settings))


__all__ = ["Settings", "LifecycleOrchestrator", "build_core", "__version__"]
