"""Tests for the memory file watcher."""

import pytest
from watchfiles import Change

from memindex.core.file_watcher import MemoryFileWatcher


def test_watch_filter_matches_suffixes(tmp_path):
    watcher = MemoryFileWatcher(watch_paths=str(tmp_path), suffix_filters=["md", ".jsonl"])

    assert watcher.watch_filter(Change.added, "/w/memory/a.md") is True
    assert watcher.watch_filter(Change.modified, "/w/sessions/s.jsonl") is True
    assert watcher.watch_filter(Change.added, "/w/memory/a.txt") is False
    assert MemoryFileWatcher(watch_paths=[str(tmp_path)]).watch_filter(Change.added, "/w/a.txt") is True


def test_only_existing_paths_are_watched(tmp_path):
    watcher = MemoryFileWatcher(watch_paths=[str(tmp_path), str(tmp_path / "missing")])

    assert watcher.existing_paths() == [str(tmp_path)]


@pytest.mark.asyncio
async def test_changes_are_delivered_to_sync_and_async_callbacks(tmp_path):
    received = []

    async def on_change(changes):
        received.append(changes)

    changes = {(Change.modified, str(tmp_path / "MEMORY.md"))}
    await MemoryFileWatcher(watch_paths=[str(tmp_path)], callback=on_change).on_changes(changes)
    await MemoryFileWatcher(watch_paths=[str(tmp_path)], callback=received.append).on_changes(changes)

    assert received == [changes, changes]


@pytest.mark.asyncio
async def test_start_and_close(tmp_path):
    watcher = MemoryFileWatcher(watch_paths=[str(tmp_path)], suffix_filters=["md"], debounce=50)

    await watcher.start()
    assert watcher.is_running() is True

    await watcher.close()
    assert watcher.is_running() is False
