"""Shared fixtures: a scripted embedding provider and a small workspace."""

import asyncio

import pytest

from memindex.core.embedding import LocalHashEmbeddingModel
from memindex.core.enumeration import MemorySource
from memindex.core.schema import MemoryChunk, MemorySearchConfig
from memindex.core.utils import chunk_id_for, hash_text

DIMS = 64


class ScriptedEmbeddingModel(LocalHashEmbeddingModel):
    """Hash embedder whose failures and latency are controlled by the test."""

    def __init__(
        self,
        provider_name: str = "scripted",
        fail_times: int = 0,
        always_fail: bool = False,
        fail_on: str | None = None,
        delay: float = 0.0,
        **kwargs,
    ):
        kwargs.setdefault("dimensions", DIMS)
        super().__init__(**kwargs)
        self.provider_name = provider_name
        self.fail_times = fail_times
        self.always_fail = always_fail
        self.fail_on = fail_on
        self.delay = delay

        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.embedded_texts: list[str] = []

    async def _get_embeddings(self, input_text: list[str], **kwargs) -> list[list[float]]:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.always_fail or self.calls <= self.fail_times:
                raise RuntimeError("scripted failure")
            if self.fail_on and any(self.fail_on in text for text in input_text):
                raise RuntimeError(f"refused text containing {self.fail_on}")
            self.embedded_texts.extend(input_text)
            return await super()._get_embeddings(input_text, **kwargs)
        finally:
            self.in_flight -= 1


@pytest.fixture
def scripted_model():
    """Factory of scripted embedding models."""
    return ScriptedEmbeddingModel


@pytest.fixture
def make_chunk():
    """Factory of single-line memory chunks."""

    def _make(text: str, path: str = "memory/note.md", line: int = 1, source: MemorySource = MemorySource.MEMORY):
        return MemoryChunk(
            id=chunk_id_for(source, path, line, line),
            path=path,
            source=source,
            start_line=line,
            end_line=line,
            text=text,
            hash=hash_text(text),
        )

    return _make


@pytest.fixture
def workspace(tmp_path):
    """Workspace with a root memory file and two notes."""
    (tmp_path / "MEMORY.md").write_text("# Memory\n\nThe deploy key lives in the vault.\n", encoding="utf-8")
    memory_dir = tmp_path / "memory"
    memory_dir.mkdir()
    (memory_dir / "alpha.md").write_text("alpha bravo charlie\n", encoding="utf-8")
    (memory_dir / "zebra.md").write_text("zebra crossings are striped\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def make_config(workspace):
    """Factory of hermetic configurations rooted at the workspace fixture."""

    def _make(**overrides) -> MemorySearchConfig:
        data = {
            "workspace_dir": str(workspace),
            "embedding": {"provider": "local", "fallbacks": [], "dimensions": DIMS},
            "vector": {"backend": "local"},
            "batch": {"limit": 8, "concurrency": 2, "poll_interval_ms": 10, "timeout_ms": 2000},
            "sync": {"on_start": False, "on_search": False},
        }
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        return MemorySearchConfig.model_validate(data)

    return _make
