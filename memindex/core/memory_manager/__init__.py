"""memory_manager"""

from .manager import MemoryIndexManager
from .memory_index import MemoryIndex
from .registry import MemoryManagerRegistry
from .status_reporter import StatusReporter

__all__ = [
    "MemoryIndex",
    "MemoryIndexManager",
    "MemoryManagerRegistry",
    "StatusReporter",
]
