"""End-to-end tests of the memory search service."""

import sys

import pytest
from loguru import logger

from memindex import MemorySearchService, SearchValidationError
from memindex.core.enumeration import MemorySource, SyncState


@pytest.fixture(autouse=True)
def no_embedding_env(monkeypatch):
    monkeypatch.delenv("MEMINDEX_EMBEDDING_API_KEY", raising=False)
    monkeypatch.delenv("MEMINDEX_EMBEDDING_BASE_URL", raising=False)


@pytest.mark.asyncio
async def test_sync_and_search_end_to_end(make_config):
    async with MemorySearchService(make_config().model_dump()) as service:
        synced = await service.sync(reason="test")
        assert synced.synced is True
        assert synced.to_wire() == {"synced": True}

        response = await service.search("where is the deploy key", max_results=2)
        assert response.results[0].path == "MEMORY.md"
        assert len(response.results) <= 2

        wire = response.to_wire()
        assert wire["provider"] == "local"
        assert "fallback" not in wire
        assert set(wire["results"][0]) == {"path", "startLine", "endLine", "score", "snippet", "source"}
        assert wire["results"][0]["source"] == "memory"

        status = await service.status()
        assert status.state == SyncState.IDLE_CLEAN
        assert status.dirty is False
        status_wire = status.to_wire()
        assert status_wire["agentId"] == "default"
        assert status_wire["lastSync"]["ok"] is True
        assert status_wire["sourceCounts"] == [{"source": "memory", "files": 3, "chunks": 3}]
        assert "fileErrors" not in status_wire


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["", "   ", "\n\t", None])
async def test_empty_query_is_rejected_before_any_index_access(make_config, query):
    service = MemorySearchService(make_config())

    with pytest.raises(SearchValidationError):
        await service.search(query)

    assert service.registry.peek("default") is None
    await service.close()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "bounds",
    [
        {"max_results": 0},
        {"max_results": -3},
        {"max_results": 2.5},
        {"max_results": "10"},
        {"max_results": True},
        {"min_score": -0.1},
        {"min_score": float("nan")},
        {"min_score": float("inf")},
        {"min_score": "0.5"},
    ],
)
async def test_invalid_bounds_are_rejected(make_config, bounds):
    service = MemorySearchService(make_config())

    with pytest.raises(SearchValidationError):
        await service.search("deploy", **bounds)

    assert service.registry.peek("default") is None
    await service.close()


@pytest.mark.asyncio
async def test_unknown_source_is_rejected(make_config):
    service = MemorySearchService(make_config())

    with pytest.raises(SearchValidationError, match="bogus"):
        await service.search("deploy", sources=["memory", "bogus"])

    assert service.registry.peek("default") is None
    await service.close()


@pytest.mark.asyncio
async def test_disabled_feature_reports_unavailable(make_config):
    async with MemorySearchService(make_config(enabled=False)) as service:
        status = await service.status()
        assert status.to_wire() == {"enabled": False, "agentId": "default", "error": "memory search is disabled"}

        response = await service.search("deploy")
        assert response.results == []
        assert response.error == "memory search is disabled"

        synced = await service.sync()
        assert synced.synced is False
        assert synced.error == "memory search is disabled"


@pytest.mark.asyncio
async def test_missing_provider_makes_manager_unavailable_until_reconfigured(make_config):
    service = MemorySearchService(make_config(embedding={"provider": "openai", "fallbacks": []}))

    status = await service.status()
    assert status.enabled is False
    assert "no API key" in status.error
    assert service.registry.peek("default") is None

    await service.registry.reconfigure(make_config())
    assert (await service.sync()).synced is True
    assert (await service.status()).enabled is True
    await service.close()


@pytest.mark.asyncio
async def test_text_only_search_without_provider_when_vector_disabled(make_config):
    config = make_config(embedding={"provider": "openai", "fallbacks": []}, vector={"enabled": False})
    async with MemorySearchService(config) as service:
        assert (await service.sync()).synced is True

        response = await service.search("zebra")
        assert [r.path for r in response.results] == ["memory/zebra.md"]

        status = await service.status()
        assert status.vector.enabled is False
        assert status.vector.load_error is None


@pytest.mark.asyncio
async def test_provider_fallback_is_reported(make_config):
    async with MemorySearchService(make_config(embedding={"provider": "openai", "fallbacks": ["local"]})) as service:
        await service.sync()

        status = await service.status()
        assert status.provider == "local"
        assert status.requested_provider == "openai"
        assert status.fallback.from_ == "openai"
        assert "no API key" in status.fallback.reason
        assert status.to_wire()["fallback"]["from"] == "openai"

        response = await service.search("alpha")
        assert response.provider == "local"
        assert response.fallback.from_ == "openai"


@pytest.mark.asyncio
async def test_agents_have_separate_indexes(make_config, workspace):
    sessions = workspace / "sessions" / "ops"
    sessions.mkdir(parents=True)
    (sessions / "s1.jsonl").write_text(
        '{"type": "message", "message": {"role": "user", "content": "rotate the quokka token"}}\n',
        encoding="utf-8",
    )
    config = make_config(sources=["memory", "sessions"])

    async with MemorySearchService(config) as service:
        await service.sync(agent_id="ops")
        await service.sync(agent_id="default")

        ops = await service.search("quokka", agent_id="ops")
        assert ops.results[0].path == "sessions/s1.jsonl"
        assert ops.results[0].source == MemorySource.SESSIONS
        default = await service.search("quokka", agent_id="default")
        assert all(r.source == MemorySource.MEMORY for r in default.results)
        assert service.registry.agent_ids() == ["default", "ops"]


@pytest.mark.asyncio
async def test_read_file_through_service(make_config):
    async with MemorySearchService(make_config()) as service:
        result = await service.read_file("memory/zebra.md")
        assert result["text"] == "zebra crossings are striped\n"

        with pytest.raises(ValueError):
            await service.read_file("../../etc/passwd")


@pytest.mark.asyncio
async def test_service_configures_file_logging(make_config, tmp_path):
    log_dir = tmp_path / "logs"
    try:
        async with MemorySearchService(make_config(), log_dir=str(log_dir), log_to_console=False) as service:
            await service.sync()
        logger.complete()

        log_files = list(log_dir.glob("memindex_*.log"))
        assert len(log_files) == 1
        assert "Memory sync (manual)" in log_files[0].read_text(encoding="utf-8")
    finally:
        logger.remove()
        logger.add(sys.stderr)
