"""enumeration"""

from .memory_source import MemorySource
from .sync_state import SyncState

__all__ = [
    "MemorySource",
    "SyncState",
]
