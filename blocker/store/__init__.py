"""
Blocker Persistent Store
"""

from blocker.store.interface import PersistentStore
from blocker.store.sqlite import SQLiteStore

__all__ = [
    "PersistentStore",
    "SQLiteStore",
]
