"""ingestion"""

from .source_collector import SourceCollector

__all__ = [
    "SourceCollector",
]
