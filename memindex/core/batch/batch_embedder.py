"""Bounded worker pool that embeds chunks in batches through the provider chain."""

import asyncio
from typing import Callable

from loguru import logger
from pydantic import BaseModel, Field

from ..embedding import EmbeddingOutcome, EmbeddingProviderChain
from ..errors import ProviderExhaustedError
from ..schema import BatchConfig, BatchJob, BatchStatus, MemoryChunk

EmbeddedCallback = Callable[[list[MemoryChunk], EmbeddingOutcome], None]


class BatchRunResult(BaseModel):
    """Aggregated outcome of every job of one submission."""

    embedded: int = 0
    failed_chunks: list[str] = Field(default_factory=list, description="Ids of chunks that were not embedded")
    failures: int = Field(default=0, description="Jobs that failed persistently")
    errors: list[str] = Field(default_factory=list)


class BatchRun:
    """Handle of one submission, resolved once all of its jobs succeeded or failed for good."""

    def __init__(self, run_id: int, total_jobs: int, on_embedded: EmbeddedCallback | None = None):
        self.run_id = run_id
        self.on_embedded = on_embedded
        self.pending = total_jobs
        self.result = BatchRunResult()
        self._done = asyncio.Event()
        if total_jobs == 0:
            self._done.set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def resolve_job(self, chunks: list[MemoryChunk], error: str | None = None):
        if self.done:
            return

        if error is None:
            self.result.embedded += len(chunks)
        else:
            self.result.failures += 1
            self.result.failed_chunks.extend(chunk.id for chunk in chunks)
            self.result.errors.append(error)

        self.pending -= 1
        if self.pending <= 0:
            self._done.set()

    def abort(self, reason: str):
        """Resolve every outstanding job as failed."""
        if self.done:
            return
        self.result.failures += self.pending
        self.result.errors.append(reason)
        self.pending = 0
        self._done.set()

    async def wait(self) -> BatchRunResult:
        await self._done.wait()
        return self.result


class BatchEmbedder:
    """Embeds chunks in batches of at most ``limit`` with ``concurrency`` workers.

    Every job is bounded by ``timeout_ms``. A timed out job or one for which
    all providers failed is retried once; a second failure is counted in
    ``failures``. Vectors are handed to ``on_embedded`` as soon as a job
    succeeds. With batching disabled jobs run one at a time in a single task.
    """

    def __init__(
        self,
        chain: EmbeddingProviderChain,
        config: BatchConfig | None = None,
        on_embedded: EmbeddedCallback | None = None,
    ):
        self.chain = chain
        self.config = config or BatchConfig()
        self.on_embedded = on_embedded

        self.failures: int = 0
        self.last_error: str | None = None
        self.last_provider: str | None = None

        self.queue: asyncio.Queue[BatchJob] | None = None
        self.workers: list[asyncio.Task] = []
        self._inline_tasks: set[asyncio.Task] = set()
        self._runs: dict[int, BatchRun] = {}
        self._run_seq = 0
        self._closed = False

    @property
    def timeout_s(self) -> float:
        return self.config.timeout_ms / 1000

    @property
    def poll_interval_s(self) -> float:
        return self.config.poll_interval_ms / 1000

    def _ensure_workers(self):
        if self.queue is None:
            self.queue = asyncio.Queue()

        self.workers = [w for w in self.workers if not w.done()]
        while len(self.workers) < self.config.concurrency:
            self.workers.append(asyncio.create_task(self._worker(len(self.workers))))

    def split(self, chunks: list[MemoryChunk]) -> list[list[MemoryChunk]]:
        """Split chunks into batches of at most ``limit``."""
        limit = self.config.limit
        return [chunks[i : i + limit] for i in range(0, len(chunks), limit)]

    def submit(self, chunks: list[MemoryChunk], on_embedded: EmbeddedCallback | None = None) -> BatchRun:
        """Enqueue chunks for embedding and return immediately.

        Vectors of this submission go to ``on_embedded`` when given, otherwise
        to the callback of the embedder.

        Raises:
            RuntimeError: If the embedder was closed
        """
        if self._closed:
            raise RuntimeError("batch embedder is closed")

        self._run_seq += 1
        batches = self.split(chunks)
        run = BatchRun(self._run_seq, len(batches), on_embedded or self.on_embedded)
        if not batches:
            return run

        self._runs[run.run_id] = run
        jobs = [BatchJob(run_id=run.run_id, chunks=batch) for batch in batches]

        if self.config.enabled:
            self._ensure_workers()
            for job in jobs:
                self.queue.put_nowait(job)
        else:
            task = asyncio.create_task(self._run_inline(jobs))
            self._inline_tasks.add(task)
            task.add_done_callback(self._inline_tasks.discard)

        logger.debug(f"Submitted {len(chunks)} chunks as {len(jobs)} batches (run {run.run_id})")
        return run

    async def embed(self, chunks: list[MemoryChunk], on_embedded: EmbeddedCallback | None = None) -> BatchRunResult:
        """Submit chunks and wait until every batch resolved."""
        return await self.submit(chunks, on_embedded).wait()

    async def _worker(self, worker_id: int):
        while not self._closed:
            try:
                job = await asyncio.wait_for(self.queue.get(), timeout=self.poll_interval_s)
            except asyncio.TimeoutError:
                continue

            try:
                retry = await self._process(job)
                if retry is not None:
                    self.queue.put_nowait(retry)
            finally:
                self.queue.task_done()

        logger.debug(f"Batch worker {worker_id} stopped")

    async def _run_inline(self, jobs: list[BatchJob]):
        for job in jobs:
            current: BatchJob | None = job
            while current is not None:
                current = await self._process(current)

    async def _process(self, job: BatchJob) -> BatchJob | None:
        """Run one job. Returns the retry job when the first attempt failed."""
        run = self._runs.get(job.run_id)
        if run is None or run.done:
            return None

        texts = [chunk.text for chunk in job.chunks]
        try:
            outcome = await asyncio.wait_for(self.chain.embed(texts), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            error = f"batch of {len(texts)} chunks timed out after {self.config.timeout_ms}ms"
        except ProviderExhaustedError as e:
            error = str(e)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.exception(f"Batch run {job.run_id}: embedding raised {error}")
        else:
            try:
                if run.on_embedded is not None:
                    run.on_embedded(job.chunks, outcome)
            except Exception as e:
                error = f"applying vectors failed: {type(e).__name__}: {e}"
                logger.exception(f"Batch run {job.run_id}: {error}")
                return self._fail(run, job, error, retry=False)

            self.last_provider = outcome.provider
            self._resolve(run, job)
            return None

        return self._fail(run, job, error, retry=job.attempt == 0)

    def _fail(self, run: BatchRun, job: BatchJob, error: str, retry: bool) -> BatchJob | None:
        self.last_error = error
        if retry:
            logger.warning(f"Batch run {job.run_id} failed, retrying once: {error}")
            return job.model_copy(update={"attempt": job.attempt + 1})

        self.failures += 1
        logger.error(f"Batch run {job.run_id} failed for {len(job.chunks)} chunks: {error}")
        run.resolve_job(job.chunks, error=error)
        if run.done:
            self._runs.pop(run.run_id, None)
        return None

    def _resolve(self, run: BatchRun, job: BatchJob):
        run.resolve_job(job.chunks)
        if run.done:
            self._runs.pop(run.run_id, None)

    def status(self) -> BatchStatus:
        return BatchStatus(
            enabled=self.config.enabled,
            failures=self.failures,
            limit=self.config.limit,
            wait=self.config.wait,
            concurrency=self.config.concurrency,
            poll_interval_ms=self.config.poll_interval_ms,
            timeout_ms=self.config.timeout_ms,
            last_error=self.last_error,
            last_provider=self.last_provider,
        )

    async def close(self):
        """Stop the workers and fail every run that is still outstanding."""
        self._closed = True
        tasks = [*self.workers, *self._inline_tasks]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.workers = []

        for run in list(self._runs.values()):
            run.abort("batch embedder closed")
        self._runs.clear()
