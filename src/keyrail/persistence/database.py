"""
Database Connection Layer

SQLite storage for public key records with automatic schema creation.
Private key material is never written here.
"""

import sqlite3
import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional
import structlog

from ..config import Settings

logger = structlog.get_logger()

# Schema version for migrations
SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Public key records (verify-side material only)
CREATE TABLE IF NOT EXISTS key_records (
    key_id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    suite_id TEXT NOT NULL,
    usage TEXT NOT NULL,  -- JSON array
    status TEXT NOT NULL DEFAULT 'active',
    public_key TEXT NOT NULL,  -- hex
    created_at TEXT NOT NULL,
    saved_at TEXT NOT NULL
);

-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_key_records_agent ON key_records(agent_id);
CREATE INDEX IF NOT EXISTS idx_key_records_suite ON key_records(suite_id);
"""


class Database:
    """
    SQLite connection manager.

    Usage:
        db = Database("sqlite:///keyrail.db")
        db.initialize()
        db.execute("SELECT * FROM key_records")

    "sqlite:///:memory:" keeps one shared in-memory connection so every
    thread sees the same tables.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or Settings.from_env().database_url
        if not self.database_url.startswith("sqlite:///"):
            raise ValueError(f"Only sqlite:/// database URLs are supported: {self.database_url}")
        self.path = self.database_url[len("sqlite:///"):]
        self.is_memory = self.path == ":memory:"
        self._local = threading.local()
        self._shared: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, check_same_thread=False, timeout=30.0)
        conn.row_factory = sqlite3.Row
        if not self.is_memory:
            # WAL mode for concurrent readers
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _get_connection(self) -> sqlite3.Connection:
        if self.is_memory:
            with self._lock:
                if self._shared is None:
                    self._shared = self._connect()
                return self._shared

        if getattr(self._local, 'conn', None) is None:
            self._local.conn = self._connect()
        return self._local.conn

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection; commits on success, rolls back on error."""
        conn = self._get_connection()
        lock = self._lock if self.is_memory else nullcontext()
        with lock:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def initialize(self) -> "Database":
        """Initialize database schema."""
        if self._initialized:
            return self

        with self.connection() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.execute(
                "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
                (SCHEMA_VERSION, datetime.now(timezone.utc).isoformat())
            )

        self._initialized = True
        logger.info("database_initialized", path=self.path, schema_version=SCHEMA_VERSION)
        return self

    def execute(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Execute a query and return results as list of dicts."""
        with self.connection() as conn:
            cursor = conn.execute(query, params)
            if cursor.description:
                return [dict(row) for row in cursor.fetchall()]
            return []

    def execute_many(self, query: str, params_list: List[tuple]) -> int:
        """Execute a query with multiple parameter sets."""
        with self.connection() as conn:
            cursor = conn.executemany(query, params_list)
            return cursor.rowcount

    def close(self) -> None:
        """Close database connections."""
        if getattr(self._local, 'conn', None) is not None:
            self._local.conn.close()
            self._local.conn = None
        if self._shared is not None:
            self._shared.close()
            self._shared = None
