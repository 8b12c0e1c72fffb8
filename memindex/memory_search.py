"""Memory search service: the three operations exposed to callers."""

import math
from numbers import Real

from loguru import logger

from .core.enumeration import MemorySource
from .core.errors import ManagerUnavailableError, SearchValidationError
from .core.memory_manager import MemoryManagerRegistry
from .core.schema import IndexSnapshot, MemorySearchConfig, SearchResponse, SyncResponse
from .core.utils import init_logger


class MemorySearchService:
    """Facade over the per-agent memory index managers.

    ``status``, ``search`` and ``sync`` never raise because a manager is
    unavailable; they report it in their response instead. ``search``
    rejects invalid requests with ``SearchValidationError`` before any
    manager or index is touched.
    """

    def __init__(
        self,
        config: MemorySearchConfig | dict | None = None,
        log_dir: str | None = None,
        log_level: str = "INFO",
        log_to_console: bool = True,
    ):
        if isinstance(config, dict):
            config = MemorySearchConfig.model_validate(config)
        if log_dir is not None:
            init_logger(log_dir=log_dir, level=log_level, log_to_console=log_to_console)

        self.registry = MemoryManagerRegistry(config or MemorySearchConfig())

    @property
    def config(self) -> MemorySearchConfig:
        return self.registry.config

    async def __aenter__(self) -> "MemorySearchService":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def status(self, agent_id: str = "default") -> IndexSnapshot:
        """Snapshot of the index of an agent."""
        try:
            manager = await self.registry.get(agent_id)
        except ManagerUnavailableError as e:
            return IndexSnapshot(enabled=False, agent_id=agent_id, error=str(e))
        return manager.status()

    @staticmethod
    def validate_search(query: str, max_results, min_score, sources=None) -> str:
        """Check a search request and return the trimmed query.

        Raises:
            SearchValidationError: If the query is empty, a bound is not a valid
                number or a source is not a known source kind
        """
        if not isinstance(query, str) or not query.strip():
            raise SearchValidationError("query must be a non-empty string")

        if max_results is not None:
            if isinstance(max_results, bool) or not isinstance(max_results, int) or max_results < 1:
                raise SearchValidationError(f"max_results must be a positive integer, got {max_results!r}")

        if min_score is not None:
            if isinstance(min_score, bool) or not isinstance(min_score, Real):
                raise SearchValidationError(f"min_score must be a number, got {min_score!r}")
            if not math.isfinite(min_score) or min_score < 0:
                raise SearchValidationError(f"min_score must be a finite non-negative number, got {min_score!r}")

        for source in sources or []:
            try:
                MemorySource(source)
            except ValueError:
                raise SearchValidationError(f"unknown source {source!r}") from None

        return query.strip()

    async def search(
        self,
        query: str,
        agent_id: str = "default",
        max_results: int | None = None,
        min_score: float | None = None,
        sources: list[MemorySource] | None = None,
    ) -> SearchResponse:
        """Ranked memory search.

        Raises:
            SearchValidationError: If the request is invalid
        """
        query = self.validate_search(query, max_results, min_score, sources)

        try:
            manager = await self.registry.get(agent_id)
        except ManagerUnavailableError as e:
            return SearchResponse(results=[], error=str(e))

        return await manager.search(query, max_results=max_results, min_score=min_score, sources=sources)

    async def sync(self, reason: str = "manual", agent_id: str = "default", force: bool = False) -> SyncResponse:
        """Synchronize the index of an agent with its sources."""
        try:
            manager = await self.registry.get(agent_id)
        except ManagerUnavailableError as e:
            return SyncResponse(synced=False, error=str(e))

        synced = await manager.sync(reason=reason or "manual", force=force)
        if not synced:
            logger.warning(f"Sync ({reason}) of agent {agent_id} did not complete: {manager.last_error}")
        return SyncResponse(synced=synced, error=None if synced else manager.last_error)

    async def read_file(
        self,
        rel_path: str,
        agent_id: str = "default",
        from_line: int | None = None,
        num_lines: int | None = None,
    ) -> dict[str, str]:
        """Read a slice of an indexed memory file.

        Raises:
            ManagerUnavailableError: If the manager cannot be constructed
            ValueError: If the path is not an allowed memory file
        """
        manager = await self.registry.get(agent_id)
        return await manager.read_file(rel_path, from_line=from_line, num_lines=num_lines)

    async def close(self):
        """Close every manager."""
        await self.registry.close_all()
