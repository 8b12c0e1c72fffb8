"""Tests for source enumeration and chunk-level change detection."""

import json
import os

import pytest

from memindex.core.enumeration import MemorySource
from memindex.core.errors import SyncFailureError
from memindex.core.ingestion import SourceCollector


def _paths(scan):
    return sorted(f.path for f in scan.files)


def _index(chunks):
    return {chunk.id: chunk for chunk in chunks}


def test_enumerates_memory_files(workspace, make_config):
    (workspace / "memory" / "sub").mkdir()
    (workspace / "memory" / "sub" / "deep.md").write_text("deep note\n", encoding="utf-8")
    (workspace / "memory" / "ignored.txt").write_text("not markdown\n", encoding="utf-8")

    scan = SourceCollector(make_config()).scan({})

    assert _paths(scan) == ["MEMORY.md", "memory/alpha.md", "memory/sub/deep.md", "memory/zebra.md"]
    assert scan.file_counts() == {MemorySource.MEMORY: 4}
    assert not scan.file_errors


def test_extra_paths_symlinks_and_duplicates(workspace, tmp_path_factory, make_config):
    extra_dir = tmp_path_factory.mktemp("extra")
    (extra_dir / "project.md").write_text("project notes\n", encoding="utf-8")
    os.symlink(workspace / "memory" / "alpha.md", workspace / "memory" / "link.md")

    config = make_config(extra_paths=[str(extra_dir), str(workspace / "memory" / "alpha.md")])
    scan = SourceCollector(config).scan({})
    paths = _paths(scan)

    assert "memory/link.md" not in paths
    assert paths.count("memory/alpha.md") == 1
    assert any(path.endswith("project.md") for path in paths)


def test_session_transcripts_are_flattened(workspace, make_config):
    sessions_dir = workspace / "sessions" / "agent-1"
    sessions_dir.mkdir(parents=True)
    records = [
        {"type": "message", "message": {"role": "user", "content": "How do I  rotate\n the key?"}},
        {"type": "message", "message": {"role": "assistant", "content": [
            {"type": "text", "text": "Use the vault CLI."},
            {"type": "tool_use", "name": "bash"},
        ]}},
        {"type": "message", "message": {"role": "system", "content": "hidden"}},
        {"type": "event", "message": {"role": "user", "content": "not a message"}},
    ]
    lines = [json.dumps(r) for r in records] + ["{broken json"]
    (sessions_dir / "s1.jsonl").write_text("\n".join(lines), encoding="utf-8")

    config = make_config(sources=["memory", "sessions"])
    scan = SourceCollector(config, agent_id="agent-1").scan({})
    session_files = [f for f in scan.files if f.source == MemorySource.SESSIONS]

    assert len(session_files) == 1
    assert session_files[0].path == "sessions/s1.jsonl"
    assert session_files[0].content == "User: How do I rotate the key?\nAssistant: Use the vault CLI."
    assert any(c.source == MemorySource.SESSIONS for c in scan.changed)


def test_sessions_of_other_agents_are_ignored(workspace, make_config):
    other = workspace / "sessions" / "other"
    other.mkdir(parents=True)
    (other / "s.jsonl").write_text(json.dumps({"type": "message", "message": {"role": "user", "content": "hi"}}))

    scan = SourceCollector(make_config(sources=["sessions"]), agent_id="default").scan({})

    assert scan.files == []


def test_diff_detects_unchanged_changed_and_removed(workspace, make_config):
    collector = SourceCollector(make_config())
    first = collector.scan({})
    assert first.changed and not first.unchanged and not first.removed

    second = collector.scan(_index(first.changed))
    assert not second.has_changes
    assert len(second.unchanged) == len(first.changed)

    (workspace / "memory" / "alpha.md").write_text("alpha bravo delta\n", encoding="utf-8")
    (workspace / "memory" / "zebra.md").unlink()
    third = collector.scan(_index(second.unchanged))

    assert [c.path for c in third.changed] == ["memory/alpha.md"]
    assert [c.path for c in third.removed] == ["memory/zebra.md"]
    changed = third.changed[0]
    previous = _index(first.changed)[changed.id]
    assert previous.hash != changed.hash


def test_missing_workspace_fails_scan(tmp_path, make_config):
    config = make_config(workspace_dir=str(tmp_path / "does-not-exist"))

    with pytest.raises(SyncFailureError):
        SourceCollector(config).scan({})


def test_empty_workspace_is_not_a_failure(tmp_path_factory, make_config):
    empty = tmp_path_factory.mktemp("empty")

    scan = SourceCollector(make_config(workspace_dir=str(empty))).scan({})

    assert scan.files == []
    assert not scan.has_changes


def test_unreadable_file_is_recorded_and_keeps_its_chunks(workspace, make_config):
    collector = SourceCollector(make_config())
    first = collector.scan({})

    (workspace / "memory" / "zebra.md").write_bytes(b"\xff\xfe\xfa broken utf-8")
    second = collector.scan(_index(first.changed))

    assert "memory/zebra.md" in second.file_errors
    assert "memory/zebra.md" not in [c.path for c in second.removed]
    assert "memory/zebra.md" in [c.path for c in second.unchanged]
    assert "memory/zebra.md" not in _paths(second)


def test_all_files_unreadable_fails_scan(tmp_path_factory, make_config):
    root = tmp_path_factory.mktemp("broken")
    (root / "MEMORY.md").write_bytes(b"\xff\xfe\xfa")

    with pytest.raises(SyncFailureError):
        SourceCollector(make_config(workspace_dir=str(root))).scan({})
