"""States of the index synchronization state machine."""

from enum import Enum


class SyncState(str, Enum):
    """Lifecycle state of a memory index manager.

    A manager rests in one of the two idle states and passes through the
    three working states, in order, while a sync is running.
    """

    # Nothing changed since the last fully successful sync
    IDLE_CLEAN = "idle_clean"

    # At least one source change is not reflected in both indexes
    IDLE_DIRTY = "idle_dirty"

    # Enumerating sources and chunking files
    SCANNING = "scanning"

    # Purging removed chunks and embedding new or changed ones
    EMBEDDING = "embedding"

    # Writing full-text postings and vector records
    INDEXING = "indexing"
