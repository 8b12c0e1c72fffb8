"""Point-in-time status aggregation."""

from typing import TYPE_CHECKING

from ..schema import FtsStatus, IndexSnapshot, SourceCount, VectorStatus

if TYPE_CHECKING:
    from .manager import MemoryIndexManager


class StatusReporter:
    """Builds an ``IndexSnapshot`` from the live state of a manager. Has no side effects."""

    @staticmethod
    def build(manager: "MemoryIndexManager") -> IndexSnapshot:
        config = manager.config
        index = manager.index
        chunk_counts = index.chunk_counts()

        source_counts = [
            SourceCount(
                source=source,
                files=manager.file_counts.get(source, 0),
                chunks=chunk_counts.get(source, 0),
            )
            for source in config.sources
        ]

        vector = index.vector
        chain = manager.chain
        return IndexSnapshot(
            enabled=True,
            agent_id=manager.agent_id,
            state=manager.state,
            files=sum(manager.file_counts.values()),
            chunks=len(index.chunks),
            dirty=manager.dirty,
            workspace_dir=manager.collector.workspace_dir,
            db_path=manager.store.db_path if manager.store is not None else None,
            sources=list(config.sources),
            extra_paths=list(config.extra_paths),
            source_counts=source_counts,
            provider=chain.active_provider,
            model=chain.active_model,
            requested_provider=chain.requested_provider,
            fallback=chain.fallback,
            cache=manager.cache.status(),
            fts=FtsStatus(enabled=index.fts.enabled, available=index.fts.available, error=index.fts.error),
            vector=VectorStatus(
                enabled=vector.enabled,
                available=vector.available,
                extension_path=vector.extension_path,
                load_error=vector.load_error if vector.enabled else None,
                dims=vector.dims,
            ),
            batch=manager.batch.status(),
            last_sync=manager.last_sync,
            file_errors=dict(manager.file_errors) or None,
            error=manager.last_error,
        )
