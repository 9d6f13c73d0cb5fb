"""
Persistence Layer for Keyrail

SQLite storage of public key records. Private handles are never persisted.
"""

from .database import Database
from .models import StoredKeyRecord
from .repository import KeyRecordRepository

__all__ = [
    "Database",
    "StoredKeyRecord",
    "KeyRecordRepository",
]
