"""Tests for the batch embedding worker pool."""

import asyncio

import pytest

from memindex.core.batch import BatchEmbedder
from memindex.core.embedding import EmbeddingProviderChain
from memindex.core.schema import BatchConfig


def _embedder(model, collected=None, **config):
    chain = EmbeddingProviderChain([model], requested_provider=model.provider_name)
    batch_config = BatchConfig(**{"limit": 2, "concurrency": 2, "poll_interval_ms": 10, "timeout_ms": 1000, **config})

    def on_embedded(chunks, outcome):
        if collected is not None:
            for chunk, vector in zip(chunks, outcome.vectors):
                collected[chunk.id] = vector

    return BatchEmbedder(chain, batch_config, on_embedded=on_embedded)


@pytest.mark.asyncio
async def test_splits_into_bounded_batches(scripted_model, make_chunk):
    model = scripted_model()
    collected = {}
    embedder = _embedder(model, collected)
    chunks = [make_chunk(f"note {i}", line=i) for i in range(1, 6)]

    try:
        result = await embedder.embed(chunks)
    finally:
        await embedder.close()

    assert result.embedded == 5
    assert result.failures == 0
    assert model.calls == 3
    assert set(collected) == {chunk.id for chunk in chunks}
    assert embedder.last_provider == "scripted"
    assert embedder.failures == 0


@pytest.mark.asyncio
async def test_concurrency_is_bounded(scripted_model, make_chunk):
    model = scripted_model(delay=0.02)
    embedder = _embedder(model, limit=1, concurrency=2)
    chunks = [make_chunk(f"note {i}", line=i) for i in range(1, 7)]

    try:
        result = await embedder.embed(chunks)
    finally:
        await embedder.close()

    assert result.embedded == 6
    assert model.max_in_flight <= 2


@pytest.mark.asyncio
async def test_timeout_is_retried_once_then_counted(scripted_model, make_chunk):
    model = scripted_model(delay=0.5)
    embedder = _embedder(model, timeout_ms=20)
    chunk = make_chunk("slow note")

    try:
        result = await embedder.embed([chunk])
    finally:
        await embedder.close()

    assert model.calls == 2
    assert result.failures == 1
    assert result.failed_chunks == [chunk.id]
    assert embedder.failures == 1
    assert "timed out" in embedder.last_error
    assert embedder.status().failures == 1


@pytest.mark.asyncio
async def test_transient_failure_succeeds_on_retry(scripted_model, make_chunk):
    model = scripted_model(fail_times=1)
    embedder = _embedder(model)

    try:
        result = await embedder.embed([make_chunk("flaky note")])
    finally:
        await embedder.close()

    assert result.embedded == 1
    assert result.failures == 0
    assert embedder.failures == 0
    assert "scripted failure" in embedder.last_error


@pytest.mark.asyncio
async def test_failed_batch_does_not_stop_others(scripted_model, make_chunk):
    model = scripted_model(fail_on="poison")
    collected = {}
    embedder = _embedder(model, collected, limit=1)
    good_1, bad, good_2 = make_chunk("good one", line=1), make_chunk("poison pill", line=2), make_chunk("good two", line=3)

    try:
        result = await embedder.embed([good_1, bad, good_2])
    finally:
        await embedder.close()

    assert result.embedded == 2
    assert result.failures == 1
    assert result.failed_chunks == [bad.id]
    assert set(collected) == {good_1.id, good_2.id}


@pytest.mark.asyncio
async def test_inline_mode_without_pool(scripted_model, make_chunk):
    model = scripted_model(fail_times=1)
    embedder = _embedder(model, enabled=False)

    try:
        result = await embedder.embed([make_chunk(f"note {i}", line=i) for i in range(1, 4)])
    finally:
        await embedder.close()

    assert embedder.workers == []
    assert result.embedded == 3
    assert result.failures == 0
    assert model.max_in_flight == 1


@pytest.mark.asyncio
async def test_empty_submission_resolves_immediately(scripted_model):
    embedder = _embedder(scripted_model())

    run = embedder.submit([])

    assert run.done
    assert (await run.wait()).embedded == 0
    await embedder.close()


@pytest.mark.asyncio
async def test_close_aborts_outstanding_runs(scripted_model, make_chunk):
    embedder = _embedder(scripted_model(delay=5))

    run = embedder.submit([make_chunk("never finishes")])
    await embedder.close()
    result = await run.wait()

    assert result.failures == 1
    assert "closed" in result.errors[-1]
    with pytest.raises(RuntimeError):
        embedder.submit([make_chunk("too late")])


class RaisingChain(EmbeddingProviderChain):
    """Chain whose embed call raises an unexpected error."""

    async def embed(self, texts):
        raise RuntimeError("connection pool exploded")


@pytest.mark.asyncio
async def test_unexpected_chain_error_fails_the_batch(scripted_model, make_chunk):
    chain = RaisingChain([scripted_model()], requested_provider="scripted")
    embedder = BatchEmbedder(chain, BatchConfig(limit=2, concurrency=1, poll_interval_ms=10, timeout_ms=1000))
    chunk = make_chunk("doomed note")

    try:
        result = await asyncio.wait_for(embedder.embed([chunk]), timeout=2)
    finally:
        await embedder.close()

    assert result.failures == 1
    assert result.failed_chunks == [chunk.id]
    assert embedder.failures == 1
    assert "RuntimeError: connection pool exploded" in embedder.last_error
