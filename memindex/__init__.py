"""memindex"""

from . import core
from .core.errors import (
    IndexUnavailableError,
    ManagerUnavailableError,
    MemoryIndexError,
    ProviderExhaustedError,
    ProviderFailureError,
    SearchValidationError,
    SyncFailureError,
)
from .core.schema import IndexSnapshot, MemorySearchConfig, SearchResponse, SyncResponse
from .memory_search import MemorySearchService

__all__ = [
    "core",
    "IndexSnapshot",
    "IndexUnavailableError",
    "ManagerUnavailableError",
    "MemoryIndexError",
    "MemorySearchConfig",
    "MemorySearchService",
    "ProviderExhaustedError",
    "ProviderFailureError",
    "SearchResponse",
    "SearchValidationError",
    "SyncFailureError",
    "SyncResponse",
]

__version__ = "0.1.0"
