"""Core"""

from . import batch
from . import context
from . import embedding
from . import enumeration
from . import errors
from . import file_watcher
from . import fts_index
from . import ingestion
from . import memory_manager
from . import memory_store
from . import schema
from . import search
from . import utils
from . import vector_index
from .context import R, Registry, RegistryFactory

__all__ = [
    # Submodules
    "batch",
    "context",
    "embedding",
    "enumeration",
    "errors",
    "file_watcher",
    "fts_index",
    "ingestion",
    "memory_manager",
    "memory_store",
    "schema",
    "search",
    "utils",
    "vector_index",
    # Classes
    "R",
    "Registry",
    "RegistryFactory",
]
