"""memory_store"""

from .sqlite_memory_store import SqliteMemoryStore

__all__ = [
    "SqliteMemoryStore",
]
