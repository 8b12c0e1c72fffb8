"""In-memory BM25 full-text index over chunk contents."""

import math
import re
from collections import Counter

from loguru import logger

from ..enumeration import MemorySource
from ..errors import IndexUnavailableError
from ..schema import MemoryChunk

TOKEN_PATTERN = re.compile(r"\w+")
BM25_K1 = 1.2
BM25_B = 0.75


def tokenize(text: str) -> list[str]:
    """Tokenize into lowercase word terms, Unicode aware."""
    return [match.group(0).lower() for match in TOKEN_PATTERN.finditer(text)]


class FullTextIndex:
    """Inverted index with postings kept per source kind.

    Scores are BM25 normalized into [0, 1) with ``s / (s + 1)`` so they can be
    merged with cosine similarities. An internal failure is recorded in
    ``error`` and makes the index unavailable until it is rebuilt.
    """

    def __init__(self, enabled: bool = True):
        self.enabled: bool = enabled
        self.error: str | None = None

        # source -> term -> chunk_id -> term frequency
        self._postings: dict[MemorySource, dict[str, dict[str, int]]] = {}
        self._doc_len: dict[str, int] = {}
        self._doc_source: dict[str, MemorySource] = {}
        self._doc_terms: dict[str, Counter] = {}
        self._total_len: dict[MemorySource, int] = {}

    @property
    def available(self) -> bool:
        return self.enabled and self.error is None

    def upsert(self, chunk: MemoryChunk):
        """Index the text of a chunk, replacing the postings of its previous version."""
        if not self.enabled:
            return

        try:
            self._remove(chunk.id)
            terms = Counter(tokenize(chunk.text))
            postings = self._postings.setdefault(chunk.source, {})
            for term, tf in terms.items():
                postings.setdefault(term, {})[chunk.id] = tf

            length = sum(terms.values())
            self._doc_len[chunk.id] = length
            self._doc_source[chunk.id] = chunk.source
            self._doc_terms[chunk.id] = terms
            self._total_len[chunk.source] = self._total_len.get(chunk.source, 0) + length
        except Exception as e:
            self._fail(f"upsert of {chunk.path}:{chunk.start_line} failed", e)

    def remove(self, chunk_id: str):
        """Delete the postings of a chunk if present."""
        if not self.enabled:
            return

        try:
            self._remove(chunk_id)
        except Exception as e:
            self._fail(f"removal of {chunk_id} failed", e)

    def _remove(self, chunk_id: str):
        source = self._doc_source.pop(chunk_id, None)
        if source is None:
            return

        postings = self._postings.get(source, {})
        for term in self._doc_terms.pop(chunk_id):
            docs = postings.get(term)
            if docs is None:
                continue
            docs.pop(chunk_id, None)
            if not docs:
                del postings[term]

        self._total_len[source] -= self._doc_len.pop(chunk_id)

    def _fail(self, message: str, e: Exception):
        self.error = f"{message}: {type(e).__name__}: {e}"
        logger.error(f"Full-text index marked unavailable: {self.error}")

    def rebuild(self, chunks: list[MemoryChunk]):
        """Drop every posting, index the given chunks again and clear the error."""
        self.clear()
        self.error = None
        for chunk in chunks:
            self.upsert(chunk)
        if self.error is None:
            logger.info(f"Rebuilt full-text index with {len(chunks)} chunks")

    def clear(self):
        self._postings.clear()
        self._doc_len.clear()
        self._doc_source.clear()
        self._doc_terms.clear()
        self._total_len.clear()

    def count(self) -> int:
        return len(self._doc_len)

    def search(self, query: str, k: int, sources: list[MemorySource] | None = None) -> list[tuple[str, float]]:
        """Return up to k (chunk_id, normalized score) pairs, best first.

        Raises:
            IndexUnavailableError: If the index is disabled, failed earlier or fails now
        """
        if not self.available:
            raise IndexUnavailableError(self.error or "full-text search disabled")

        try:
            return self._search(query, k, sources)
        except Exception as e:
            self._fail("search failed", e)
            raise IndexUnavailableError(self.error) from e

    def _search(self, query: str, k: int, sources: list[MemorySource] | None) -> list[tuple[str, float]]:
        terms = sorted(set(tokenize(query)))
        if not terms or k <= 0:
            return []

        selected = [s for s in (sources or list(self._postings)) if s in self._postings]
        total_docs = sum(1 for source in self._doc_source.values() if source in selected)
        if total_docs == 0:
            return []
        avgdl = sum(self._total_len.get(s, 0) for s in selected) / total_docs
        if avgdl <= 0:
            return []

        scores: dict[str, float] = {}
        for term in terms:
            matches: dict[str, int] = {}
            for source in selected:
                matches.update(self._postings[source].get(term, {}))
            if not matches:
                continue

            n_qi = len(matches)
            idf = math.log(1.0 + ((total_docs - n_qi + 0.5) / (n_qi + 0.5)))
            for chunk_id, tf in matches.items():
                denom = tf + BM25_K1 * (1.0 - BM25_B + BM25_B * (self._doc_len[chunk_id] / avgdl))
                scores[chunk_id] = scores.get(chunk_id, 0.0) + idf * ((tf * (BM25_K1 + 1.0)) / denom)

        ranked = sorted(
            ((chunk_id, score) for chunk_id, score in scores.items() if score > 0),
            key=lambda item: (-item[1], item[0]),
        )
        return [(chunk_id, score / (score + 1.0)) for chunk_id, score in ranked[:k]]
