"""search"""

from .hybrid_ranker import HybridRanker, RankOutcome
from .result_cache import CacheEntry, ResultCache

__all__ = [
    "CacheEntry",
    "HybridRanker",
    "RankOutcome",
    "ResultCache",
]
