"""vector_index"""

from loguru import logger

from .base_vector_index import BaseVectorIndex, NullVectorIndex
from .local_vector_index import LocalVectorIndex
from .sqlite_vec_index import SqliteVecIndex
from ..context import R
from ..schema import VectorConfig

__all__ = [
    "BaseVectorIndex",
    "LocalVectorIndex",
    "NullVectorIndex",
    "SqliteVecIndex",
    "create_vector_index",
]

R.vector_indexes.register("local")(LocalVectorIndex)
R.vector_indexes.register("sqlite_vec")(SqliteVecIndex)


def create_vector_index(config: VectorConfig, dims: int) -> BaseVectorIndex:
    """Select the vector index implementation once, at construction time."""
    if not config.enabled:
        return NullVectorIndex(dims=dims, enabled=False, extension_path=config.extension_path)

    index_cls = R.vector_indexes.get(config.backend)
    if index_cls is None:
        error = f"unknown vector backend '{config.backend}'"
        logger.warning(f"Vector search unavailable: {error}")
        return NullVectorIndex(dims=dims, load_error=error, extension_path=config.extension_path)

    try:
        return index_cls(dims=dims, extension_path=config.extension_path, db_path=config.db_path)
    except Exception as e:
        logger.warning(f"Vector search unavailable, failed to load {config.backend}: {e}")
        return NullVectorIndex(dims=dims, load_error=str(e), extension_path=config.extension_path)
