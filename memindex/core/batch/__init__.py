"""batch"""

from .batch_embedder import BatchEmbedder, BatchRun, BatchRunResult

__all__ = [
    "BatchEmbedder",
    "BatchRun",
    "BatchRunResult",
]
