"""Memory index manager: per-agent sync coordination and search."""

import asyncio
import os
import sqlite3
import time

from loguru import logger
from watchfiles import Change

from .memory_index import MemoryIndex
from .status_reporter import StatusReporter
from ..batch import BatchEmbedder, BatchRun
from ..embedding import EmbeddingOutcome, EmbeddingProviderChain
from ..enumeration import MemorySource, SyncState
from ..errors import ManagerUnavailableError, SyncFailureError
from ..file_watcher import MemoryFileWatcher
from ..fts_index import FullTextIndex
from ..ingestion import SourceCollector
from ..memory_store import SqliteMemoryStore
from ..schema import EmbeddingRecord, IndexSnapshot, LastSync, MemoryChunk, MemorySearchConfig, ScanResult, SearchResponse
from ..search import HybridRanker, ResultCache
from ..vector_index import BaseVectorIndex, create_vector_index


class MemoryIndexManager:
    """Owns the indexes of one agent and keeps them synchronized with its sources.

    The manager starts dirty. ``sync`` is single-flight: concurrent callers
    share the running sync and its result. ``dirty`` is cleared only after a
    sync in which scanning, embedding and indexing all completed without a
    failure and no change was reported meanwhile. With ``batch.wait``
    disabled it stays set until every background embedding run finished.
    """

    # ============================================================================
    # Initialization and Lifecycle
    # ============================================================================

    def __init__(
        self,
        agent_id: str,
        config: MemorySearchConfig,
        chain: EmbeddingProviderChain | None = None,
        vector_index: BaseVectorIndex | None = None,
    ):
        """Build the indexes and collaborators of one agent.

        Raises:
            ManagerUnavailableError: If memory search is disabled, vector
                search is enabled but no embedding provider can be built, or
                the persistent store cannot be opened
        """
        if not config.enabled:
            raise ManagerUnavailableError("memory search is disabled")

        self.agent_id = agent_id
        self.config = config
        self.chain = chain or EmbeddingProviderChain.from_config(config.embedding)
        if config.vector.enabled and self.chain.empty:
            reasons = "; ".join(f"{k}: {v}" for k, v in self.chain.construction_errors.items())
            raise ManagerUnavailableError(f"no embedding provider available ({reasons or 'none configured'})")

        self.store: SqliteMemoryStore | None = None
        if config.store.enabled:
            store = SqliteMemoryStore(config.store_path(agent_id), dims=config.vector_dims)
            try:
                store.open()
            except (sqlite3.Error, OSError) as e:
                raise ManagerUnavailableError(f"memory store {store.db_path} could not be opened: {e}") from e
            self.store = store

        vector = vector_index or create_vector_index(config.vector, config.vector_dims)
        self.index = MemoryIndex(FullTextIndex(enabled=config.fts.enabled), vector, store=self.store)
        self.collector = SourceCollector(config, agent_id)
        self.cache = ResultCache(enabled=config.cache.enabled, max_entries=config.cache.max_entries)
        self.batch = BatchEmbedder(self.chain, config.batch)
        self.ranker = HybridRanker(
            fts=self.index.fts,
            vector=vector,
            chunks=self.index.chunks,
            chain=self.chain,
            hybrid=config.hybrid,
            query=config.query,
            timeout_ms=config.batch.timeout_ms,
        )
        self.watcher: MemoryFileWatcher | None = None

        # State tracking
        self.state = SyncState.IDLE_DIRTY
        self.dirty = True
        self.closed = False
        self.file_counts: dict[MemorySource, int] = {}
        self.file_errors: dict[str, str] = {}
        self.last_error: str | None = None
        self.last_sync: LastSync | None = None

        # Sync control
        self.syncing: asyncio.Task | None = None
        self.interval_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._dirty_seq = 0
        self._clean_seq: int | None = None
        # content hashes still being embedded by each background run
        self._pending_runs: dict[BatchRun, set[str]] = {}

    async def open(self):
        """Restore the persisted index, start watchers and periodic sync, and schedule the initial sync.

        The restored index stays dirty until a sync confirms it against the sources.
        """
        if self.store is not None:
            self.index.restore()
            self.file_counts = self.store.load_file_counts()

        if self.config.watch.enabled:
            self.watcher = MemoryFileWatcher(
                watch_paths=self._watch_paths(),
                suffix_filters=["md", "jsonl"],
                recursive=True,
                debounce=self.config.watch.debounce_ms,
                callback=self._on_file_changes,
            )
            await self.watcher.start()

        if self.config.sync.interval_minutes > 0:
            self.interval_task = asyncio.create_task(self._interval_sync())

        if self.config.sync.on_start:
            self._schedule_sync("startup")

        logger.info(
            f"Opened memory index for agent {self.agent_id} "
            f"(fts={self.index.fts.available}, vector={self.index.vector.available}, "
            f"provider={self.chain.active_provider})",
        )

    async def close(self):
        """Cancel background work and release resources."""
        if self.closed:
            return

        self.closed = True

        if self.watcher is not None:
            await self.watcher.close()

        tasks = list(self._background)
        if self.interval_task is not None:
            tasks.append(self.interval_task)
        if self.syncing is not None and not self.syncing.done():
            tasks.append(self.syncing)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        await self.batch.close()
        await self.chain.close()
        self.index.vector.close()
        if self.store is not None:
            self.store.close()
        logger.info(f"Closed memory index for agent {self.agent_id}")

    # ============================================================================
    # Public API Methods
    # ============================================================================

    def mark_dirty(self, reason: str = "change"):
        """Record that a source changed since the last sync."""
        self.dirty = True
        self._dirty_seq += 1
        if self.state == SyncState.IDLE_CLEAN:
            self.state = SyncState.IDLE_DIRTY
        logger.debug(f"Memory index of agent {self.agent_id} marked dirty ({reason})")

    @property
    def sync_in_progress(self) -> bool:
        return self.syncing is not None and not self.syncing.done()

    async def sync(self, reason: str = "manual", force: bool = False) -> bool:
        """Synchronize the indexes with the sources.

        While a sync is running every caller awaits that same sync. Never
        raises for a failed sync; the failure is recorded for ``status``.

        Args:
            reason: Free-form reason recorded for diagnostics
            force: Re-index every chunk, reusing vectors by content hash

        Returns:
            Whether the sync completed without failures
        """
        if self.closed:
            return False

        if not self.sync_in_progress:
            self.syncing = asyncio.create_task(self._run_sync(reason, force))
        return await asyncio.shield(self.syncing)

    async def search(
        self,
        query: str,
        max_results: int | None = None,
        min_score: float | None = None,
        sources: list[MemorySource] | None = None,
    ) -> SearchResponse:
        """Search the indexes, serving repeated queries from the result cache.

        Never waits for a sync. A dirty index schedules a background sync
        when ``sync.on_search`` is enabled. Requested sources that are not
        configured are ignored; if none remains the response is empty.

        Raises:
            ValueError: If a requested source is not a known source kind
        """
        max_results = self.config.query.max_results if max_results is None else max_results
        min_score = self.config.query.min_score if min_score is None else min_score

        requested = [MemorySource(s) for s in sources or []]
        sources = [s for s in requested if s in self.config.sources] if requested else list(self.config.sources)

        if self.dirty and self.config.sync.on_search:
            self._schedule_sync("search")

        if not sources:
            return SearchResponse(
                results=[],
                provider=self.chain.active_provider,
                model=self.chain.active_model,
                fallback=self.chain.fallback,
            )

        fingerprint = ResultCache.fingerprint(query, self.agent_id, max_results, min_score, sources)
        cached = self.cache.get(fingerprint)
        if cached is not None:
            return cached

        generation = self.cache.generation
        outcome = await self.ranker.rank(query.strip(), max_results, min_score, sources)
        response = SearchResponse(
            results=outcome.results,
            provider=outcome.provider,
            model=outcome.model,
            fallback=outcome.fallback,
            error=outcome.error,
        )
        if outcome.error is None:
            self.cache.put(fingerprint, response, generation)
        return response

    def status(self) -> IndexSnapshot:
        """Point-in-time snapshot of the index."""
        return StatusReporter.build(self)

    async def read_file(
        self,
        rel_path: str,
        from_line: int | None = None,
        num_lines: int | None = None,
    ) -> dict[str, str]:
        """Read a memory file with optional line range.

        Args:
            rel_path: Relative path to file
            from_line: Starting line number (1-indexed)
            num_lines: Number of lines to read

        Returns:
            Dictionary with 'text' and 'path' keys

        Raises:
            ValueError: If path is invalid or not allowed
        """
        raw_path = (rel_path or "").strip()
        if not raw_path:
            raise ValueError("path required")

        workspace_dir = self.collector.workspace_dir
        abs_path = os.path.abspath(os.path.join(workspace_dir, raw_path))
        rel_path_clean = os.path.relpath(abs_path, workspace_dir).replace("\\", "/")

        in_workspace = not rel_path_clean.startswith("..") and not os.path.isabs(rel_path_clean)
        allowed = in_workspace and self._is_memory_path(rel_path_clean)

        if not allowed:
            for extra in self.collector.extra_roots():
                if abs_path == extra or os.path.commonpath([abs_path, extra]) == extra:
                    allowed = True
                    break

        if not allowed or not abs_path.endswith(".md"):
            raise ValueError(f"path not allowed: {raw_path}")

        with open(abs_path, "r", encoding="utf-8") as f:
            content = f.read()

        if from_line is None and num_lines is None:
            return {"text": content, "path": rel_path_clean}

        lines = content.split("\n")
        start = max(1, from_line or 1)
        count = max(1, num_lines or len(lines))
        slice_lines = lines[start - 1 : start - 1 + count]

        return {"text": "\n".join(slice_lines), "path": rel_path_clean}

    # ============================================================================
    # Sync Logic
    # ============================================================================

    async def _run_sync(self, reason: str, force: bool) -> bool:
        dirty_seq = self._dirty_seq
        started = time.monotonic()

        changed_any = False
        error: str | None = None
        pending: BatchRun | None = None

        try:
            self.state = SyncState.SCANNING
            scan = self.collector.scan(dict(self.index.chunks))
            if force:
                scan.changed.extend(scan.unchanged)
                scan.unchanged = []
            self.file_counts = scan.file_counts()
            self.file_errors = dict(scan.file_errors)
            if self.store is not None:
                self.store.replace_files(scan.files)
            changed_any = scan.has_changes

            self.state = SyncState.EMBEDDING
            if self.chain.fallback is not None and self.index.vector.available:
                await self._retry_requested_provider()

            # planned before removed chunks are purged so renamed content reuses their vectors
            records, to_embed, siblings = self._plan_vectors(scan)
            for chunk in scan.removed:
                self.index.remove(chunk.id)

            if to_embed and self.config.batch.wait:
                result = await self.batch.embed(
                    to_embed,
                    on_embedded=lambda chunks, outcome: records.update(
                        {r.chunk_id: r for r in self._to_records(chunks, outcome, siblings)},
                    ),
                )
                if result.failures:
                    error = f"{result.failures} embedding batches failed: {result.errors[-1]}"

            self.state = SyncState.INDEXING
            for chunk in scan.changed:
                self.index.apply(chunk, records.pop(chunk.id, None))
            for chunk_id, record in records.items():
                chunk = self.index.get(chunk_id)
                if chunk is not None:
                    self.index.attach_vector(chunk, record)

            if self.index.fts.enabled and self.index.fts.error:
                self.index.fts.rebuild(list(self.index.chunks.values()))
                if self.index.fts.error:
                    error = error or f"full-text index failed: {self.index.fts.error}"

            if to_embed and not self.config.batch.wait:
                hashes = {chunk.hash for chunk in to_embed}
                pending = self.batch.submit(
                    to_embed,
                    on_embedded=lambda chunks, outcome: self._attach_embedded(chunks, outcome, hashes),
                )
                self._pending_runs[pending] = hashes
        except SyncFailureError as e:
            error = str(e)
            logger.error(f"Memory sync failed ({reason}) for agent {self.agent_id}: {error}")
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.exception(f"Memory sync failed ({reason}) for agent {self.agent_id}: {error}")

        try:
            self.index.commit()
        except sqlite3.Error as e:
            error = error or f"memory store commit failed: {e}"
            logger.error(f"Memory sync ({reason}) for agent {self.agent_id} could not persist: {e}")

        ok = error is None
        if changed_any or ok:
            self.cache.invalidate()

        if pending is not None:
            self._track(asyncio.create_task(self._complete_background(pending)))

        self._clean_seq = dirty_seq if ok else None
        self.dirty = not ok or self._dirty_seq != dirty_seq or bool(self._pending_runs)
        self.last_error = error
        self.last_sync = LastSync(reason=reason, at_ms=int(time.time() * 1000), ok=ok, error=error)
        self.state = SyncState.IDLE_DIRTY if self.dirty else SyncState.IDLE_CLEAN
        logger.info(
            f"Memory sync ({reason}) for agent {self.agent_id} finished in {time.monotonic() - started:.2f}s: "
            f"ok={ok}, dirty={self.dirty}, chunks={len(self.index.chunks)}",
        )
        return ok

    async def _retry_requested_provider(self):
        """Give the requested provider a chance to replace the fallback before vectors are planned."""
        try:
            await asyncio.wait_for(self.chain.retry_requested(), timeout=self.batch.timeout_s)
        except asyncio.TimeoutError:
            logger.warning(f"Requested embedding provider {self.chain.requested_provider} did not answer in time")

    def _is_pending(self, content_hash: str) -> bool:
        return any(content_hash in hashes for hashes in self._pending_runs.values())

    def _needs_vector(self, chunk: MemoryChunk) -> bool:
        record = self.index.vector.get(chunk.id)
        if record is None:
            return True
        # upgrade vectors produced by a fallback once the requested provider serves again
        return self.chain.fallback is None and (record.provider, record.model) != (
            self.chain.active_provider,
            self.chain.active_model,
        )

    def _plan_vectors(
        self,
        scan: ScanResult,
    ) -> tuple[dict[str, EmbeddingRecord], list[MemoryChunk], dict[str, list[MemoryChunk]]]:
        """Split chunks needing a vector into reusable records and chunks to embed.

        Chunks whose content is still being embedded in the background are
        left to that run.

        Returns:
            Reused records by chunk id, chunks to embed (one per content hash)
            and every chunk needing a vector grouped by content hash
        """
        records: dict[str, EmbeddingRecord] = {}
        to_embed: list[MemoryChunk] = []
        siblings: dict[str, list[MemoryChunk]] = {}
        if not self.index.vector.available or self.chain.empty:
            return records, to_embed, siblings

        provider, model = self.chain.active_provider, self.chain.active_model
        needing = list(scan.changed) + [chunk for chunk in scan.unchanged if self._needs_vector(chunk)]
        for chunk in needing:
            existing = self.index.vector.find_by_hash(chunk.hash, provider, model)
            if existing is not None:
                records[chunk.id] = existing.model_copy(update={"chunk_id": chunk.id})
                continue
            if self._is_pending(chunk.hash):
                continue

            group = siblings.setdefault(chunk.hash, [])
            if not group:
                to_embed.append(chunk)
            group.append(chunk)

        logger.debug(f"Reusing {len(records)} vectors, embedding {len(to_embed)} chunks")
        return records, to_embed, siblings

    @staticmethod
    def _to_records(
        chunks: list[MemoryChunk],
        outcome: EmbeddingOutcome,
        siblings: dict[str, list[MemoryChunk]],
    ) -> list[EmbeddingRecord]:
        records = []
        for chunk, vector in zip(chunks, outcome.vectors):
            for target in siblings.get(chunk.hash, [chunk]):
                records.append(
                    EmbeddingRecord(
                        chunk_id=target.id,
                        content_hash=target.hash,
                        vector=vector,
                        provider=outcome.provider,
                        model=outcome.model,
                    ),
                )
        return records

    def _attach_embedded(self, chunks: list[MemoryChunk], outcome: EmbeddingOutcome, hashes: set[str]):
        """Attach background vectors to every current chunk with the embedded content."""
        vectors = {chunk.hash: vector for chunk, vector in zip(chunks, outcome.vectors)}
        hashes.difference_update(vectors)

        for current in list(self.index.chunks.values()):
            vector = vectors.get(current.hash)
            if vector is None:
                continue
            record = self.index.vector.get(current.id)
            if record is not None and record.content_hash == current.hash and (record.provider, record.model) == (
                outcome.provider,
                outcome.model,
            ):
                continue
            self.index.attach_vector(
                current,
                EmbeddingRecord(
                    chunk_id=current.id,
                    content_hash=current.hash,
                    vector=vector,
                    provider=outcome.provider,
                    model=outcome.model,
                ),
            )
        self.index.commit()

    async def _complete_background(self, run: BatchRun):
        """Finish a sync whose embedding was left running in the background."""
        try:
            result = await run.wait()
        finally:
            self._pending_runs.pop(run, None)
        if self.closed:
            return

        self.cache.invalidate()
        if result.failures:
            error = f"{result.failures} embedding batches failed: {result.errors[-1]}"
            self.last_error = error
            self._clean_seq = None
            if self.last_sync is not None:
                self.last_sync = self.last_sync.model_copy(update={"ok": False, "error": error})
            logger.error(f"Background embedding for agent {self.agent_id} failed: {error}")
            return

        if (
            not self._pending_runs
            and not self.sync_in_progress
            and self._clean_seq is not None
            and self._clean_seq == self._dirty_seq
        ):
            self.dirty = False
            self.state = SyncState.IDLE_CLEAN
            logger.info(f"Background embedding for agent {self.agent_id} finished, index is clean")

    def _schedule_sync(self, reason: str):
        if self.closed or self.sync_in_progress:
            return
        self._track(asyncio.create_task(self.sync(reason)))

    def _track(self, task: asyncio.Task):
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ============================================================================
    # File Watchers
    # ============================================================================

    def _watch_paths(self) -> list[str]:
        paths = []
        if MemorySource.MEMORY in self.config.sources:
            paths.extend(self.collector.memory_roots())
        if MemorySource.SESSIONS in self.config.sources:
            paths.append(self.collector.sessions_dir)
        return paths

    async def _on_file_changes(self, changes: set[tuple[Change, str]]):
        if not changes:
            return
        self.mark_dirty("watch")
        self._schedule_sync("watch")

    async def _interval_sync(self):
        """Periodically sync the index."""
        while not self.closed:
            await asyncio.sleep(self.config.sync.interval_minutes * 60)
            if not self.closed:
                await self.sync(reason="interval")

    # ============================================================================
    # Utility Methods
    # ============================================================================

    @staticmethod
    def _is_memory_path(rel_path: str) -> bool:
        """Check if path is a valid memory path."""
        normalized = rel_path.replace("\\", "/")

        if normalized in ("MEMORY.md", "memory.md"):
            return True

        if normalized.startswith("memory/") and normalized.endswith(".md"):
            return True

        return False
