"""fts_index"""

from .full_text_index import FullTextIndex, tokenize

__all__ = [
    "FullTextIndex",
    "tokenize",
]
