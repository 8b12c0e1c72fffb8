"""file_watcher"""

from .memory_file_watcher import MemoryFileWatcher

__all__ = [
    "MemoryFileWatcher",
]
