"""Merge of full-text and vector retrieval into one ranked list."""

import asyncio
import math

from loguru import logger
from pydantic import BaseModel, Field

from ..embedding import EmbeddingProviderChain
from ..enumeration import MemorySource
from ..errors import IndexUnavailableError, ProviderExhaustedError
from ..fts_index import FullTextIndex
from ..schema import FallbackInfo, HybridConfig, MemoryChunk, MemorySearchResult, QueryConfig
from ..vector_index import BaseVectorIndex

MAX_CANDIDATES = 200


class RankOutcome(BaseModel):
    """Ranked results of one query and the modalities that produced them."""

    results: list[MemorySearchResult] = Field(default_factory=list)
    provider: str | None = None
    model: str | None = None
    fallback: FallbackInfo | None = None
    error: str | None = None
    modes: list[str] = Field(default_factory=list, description="Modalities that answered: vector, text")


class HybridRanker:
    """Queries both indexes and merges their scores.

    A chunk found by both modalities scores ``wv * v + wt * t`` with the
    weights normalized to sum to one. A chunk found by only one modality,
    while both ran, keeps its score scaled by the single-modality discount,
    which defaults to that modality's weight. When only one modality ran its
    scores are used unchanged. The query embedding is bounded by
    ``timeout_ms``; when it times out only the full-text modality answers.
    """

    def __init__(
        self,
        fts: FullTextIndex,
        vector: BaseVectorIndex,
        chunks: dict[str, MemoryChunk],
        chain: EmbeddingProviderChain | None,
        hybrid: HybridConfig | None = None,
        query: QueryConfig | None = None,
        timeout_ms: int = 60_000,
    ):
        self.fts = fts
        self.vector = vector
        self.chunks = chunks
        self.chain = chain
        self.hybrid = hybrid or HybridConfig()
        self.query_config = query or QueryConfig()
        self.timeout_ms = timeout_ms

    def candidate_count(self, max_results: int) -> int:
        """Number of candidates fetched from each modality."""
        return min(MAX_CANDIDATES, max(max_results, math.ceil(max_results * self.query_config.candidate_multiplier)))

    async def _vector_candidates(self, query: str, n: int) -> tuple[list[tuple[str, float]], RankOutcome]:
        outcome = await asyncio.wait_for(self.chain.embed([query]), timeout=self.timeout_ms / 1000)
        hits = self.vector.query(outcome.vectors[0], n)
        return hits, RankOutcome(provider=outcome.provider, model=outcome.model, fallback=outcome.fallback)

    def merge(
        self,
        vector_hits: list[tuple[str, float]] | None,
        text_hits: list[tuple[str, float]] | None,
    ) -> dict[str, float]:
        """Combine per-modality scores by chunk id. ``None`` marks a modality that did not run."""
        wv, wt = self.hybrid.normalized_weights
        discount = self.hybrid.single_modality_discount
        both_ran = vector_hits is not None and text_hits is not None

        v_scores = dict(vector_hits or [])
        t_scores = dict(text_hits or [])

        merged: dict[str, float] = {}
        for chunk_id in v_scores.keys() | t_scores.keys():
            if chunk_id in v_scores and chunk_id in t_scores:
                merged[chunk_id] = wv * v_scores[chunk_id] + wt * t_scores[chunk_id]
            elif not both_ran:
                merged[chunk_id] = v_scores.get(chunk_id, t_scores.get(chunk_id, 0.0))
            elif chunk_id in v_scores:
                merged[chunk_id] = v_scores[chunk_id] * (wv if discount is None else discount)
            else:
                merged[chunk_id] = t_scores[chunk_id] * (wt if discount is None else discount)
        return merged

    async def rank(
        self,
        query: str,
        max_results: int,
        min_score: float = 0.0,
        sources: list[MemorySource] | None = None,
    ) -> RankOutcome:
        """Rank chunks for a query.

        Never raises for a failing modality; if neither modality can answer
        the outcome has no results and an explanatory ``error``.
        """
        n = self.candidate_count(max_results)
        outcome = RankOutcome(
            provider=self.chain.active_provider if self.chain else None,
            model=self.chain.active_model if self.chain else None,
            fallback=self.chain.fallback if self.chain else None,
        )
        errors: list[str] = []

        vector_hits: list[tuple[str, float]] | None = None
        if not self.vector.available:
            errors.append(f"vector search unavailable: {self.vector.load_error}")
        elif self.chain is None or self.chain.empty:
            errors.append("vector search unavailable: no embedding provider")
        else:
            try:
                vector_hits, embedded = await self._vector_candidates(query, n)
                outcome.provider, outcome.model, outcome.fallback = embedded.provider, embedded.model, embedded.fallback
                outcome.modes.append("vector")
            except (ProviderExhaustedError, IndexUnavailableError) as e:
                errors.append(f"vector search failed: {e}")
                logger.warning(f"Vector search skipped for this query: {e}")
            except asyncio.TimeoutError:
                errors.append(f"vector search timed out after {self.timeout_ms}ms")
                logger.warning(f"Vector search skipped for this query: embedding timed out after {self.timeout_ms}ms")

        text_hits: list[tuple[str, float]] | None = None
        if not self.fts.available:
            errors.append(f"full-text search unavailable: {self.fts.error or 'disabled'}")
        else:
            try:
                text_hits = self.fts.search(query, n, sources)
                outcome.modes.append("text")
            except IndexUnavailableError as e:
                errors.append(f"full-text search failed: {e}")
                logger.warning(f"Full-text search skipped for this query: {e}")

        if not outcome.modes:
            outcome.error = "; ".join(errors)
            logger.error(f"Search has no available modality: {outcome.error}")
            return outcome

        snippet_max = self.query_config.snippet_max_chars
        results: list[MemorySearchResult] = []
        for chunk_id, score in self.merge(vector_hits, text_hits).items():
            chunk = self.chunks.get(chunk_id)
            if chunk is None or (sources and chunk.source not in sources):
                continue
            if score < min_score:
                continue
            results.append(
                MemorySearchResult(
                    path=chunk.path,
                    start_line=chunk.start_line,
                    end_line=chunk.end_line,
                    score=score,
                    snippet=chunk.text[:snippet_max],
                    source=chunk.source,
                ),
            )

        results.sort(key=lambda r: (-r.score, r.path, r.start_line))
        outcome.results = results[:max_results]
        return outcome
