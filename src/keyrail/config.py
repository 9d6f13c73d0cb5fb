"""
Runtime Configuration

All settings come from environment variables so the same build runs in
development, tests and production without code changes.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


LATTICE_BACKENDS = ("dilithium-py", "liboqs")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> Tuple[str, ...]:
    value = os.environ.get(name, "")
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    """Process-wide settings for a keyrail core instance."""
    api_key: str = "dev-key-change-in-production"
    database_url: str = "sqlite:///keyrail.db"
    lattice_backend: str = "dilithium-py"
    enabled_suites: Tuple[str, ...] = ()  # Empty means every known suite
    log_level: str = "INFO"
    log_json: bool = False
    cors_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))
    port: int = 8000

    def __post_init__(self):
        if self.lattice_backend not in LATTICE_BACKENDS:
            raise ValueError(
                f"Unknown lattice backend: {self.lattice_backend}. "
                f"Use one of: {', '.join(LATTICE_BACKENDS)}"
            )

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from KEYRAIL_* environment variables."""
        values = dict(
            api_key=os.environ.get("KEYRAIL_API_KEY", cls.api_key),
            database_url=os.environ.get("KEYRAIL_DATABASE_URL", cls.database_url),
            lattice_backend=os.environ.get("KEYRAIL_LATTICE_BACKEND", cls.lattice_backend),
            enabled_suites=_env_list("KEYRAIL_ENABLED_SUITES"),
            log_level=os.environ.get("KEYRAIL_LOG_LEVEL", cls.log_level).upper(),
            log_json=_env_bool("KEYRAIL_LOG_JSON"),
            cors_origins=_env_list("KEYRAIL_CORS_ORIGINS") or ("*",),
            port=int(os.environ.get("PORT", cls.port)),
        )
        values.update(overrides)
        return cls(**values)

    def sqlite_path(self) -> Optional[str]:
        """Return the file path for sqlite URLs, None otherwise."""
        if self.database_url.startswith("sqlite:///"):
            return self.database_url[len("sqlite:///"):]
        return None
