"""Source enumeration, reading and chunk-level change detection."""

import json
import os
import re
from typing import Any

from loguru import logger

from ..enumeration import MemorySource
from ..errors import SyncFailureError
from ..schema import FileMetadata, MemoryChunk, MemorySearchConfig, ScanResult, SourceSpec
from ..utils import chunk_markdown, hash_text


class SourceCollector:
    """Enumerates memory files and session transcripts of one agent and diffs them against the index.

    Memory sources are the workspace ``MEMORY.md``, ``memory.md``, every
    Markdown file under ``memory/`` and the configured extra paths. Session
    sources are the ``.jsonl`` transcripts under ``sessions/<agent_id>/``,
    flattened to ``User: ...`` / ``Assistant: ...`` lines.
    """

    def __init__(self, config: MemorySearchConfig, agent_id: str = "default"):
        self.config = config
        self.agent_id = agent_id
        self.workspace_dir = os.path.abspath(config.workspace_dir)

    @property
    def sessions_dir(self) -> str:
        return os.path.join(self.workspace_dir, "sessions", self.agent_id)

    def extra_roots(self) -> list[str]:
        """Configured extra paths as absolute paths, relative ones resolved against the workspace."""
        roots = []
        for extra in self.config.extra_paths:
            extra = extra.strip()
            if extra:
                roots.append(os.path.abspath(os.path.join(self.workspace_dir, os.path.expanduser(extra))))
        return roots

    def memory_roots(self) -> list[str]:
        """Configured memory roots as absolute paths."""
        return [
            os.path.join(self.workspace_dir, "MEMORY.md"),
            os.path.join(self.workspace_dir, "memory.md"),
            os.path.join(self.workspace_dir, "memory"),
            *self.extra_roots(),
        ]

    def to_rel_path(self, abs_path: str, source: MemorySource) -> str:
        """Workspace-relative path used as chunk identity."""
        if source == MemorySource.SESSIONS:
            return f"sessions/{os.path.basename(abs_path)}"
        return os.path.relpath(abs_path, self.workspace_dir).replace("\\", "/")

    @staticmethod
    def _walk_markdown(root: str) -> list[str]:
        if os.path.islink(root):
            return []
        if os.path.isfile(root):
            return [root] if root.endswith(".md") else []
        if not os.path.isdir(root):
            return []

        found = []
        # os.walk does not descend into symlinked directories by default
        for dirpath, _, filenames in os.walk(root):
            for filename in sorted(filenames):
                abs_path = os.path.join(dirpath, filename)
                if filename.endswith(".md") and not os.path.islink(abs_path):
                    found.append(abs_path)
        return sorted(found)

    def enumerate_sources(self) -> list[SourceSpec]:
        """Re-enumerate every configured root and the files discovered under it.

        Raises:
            SyncFailureError: If the workspace directory does not exist
        """
        if not os.path.isdir(self.workspace_dir):
            raise SyncFailureError(f"workspace directory not found: {self.workspace_dir}")

        specs: list[SourceSpec] = []
        seen: set[str] = set()

        def dedupe(paths: list[str]) -> list[str]:
            unique = []
            for path in paths:
                real = os.path.realpath(path)
                if real not in seen:
                    seen.add(real)
                    unique.append(path)
            return unique

        if MemorySource.MEMORY in self.config.sources:
            for root in self.memory_roots():
                specs.append(
                    SourceSpec(kind=MemorySource.MEMORY, root_path=root, discovered_paths=dedupe(self._walk_markdown(root))),
                )

        if MemorySource.SESSIONS in self.config.sources:
            paths = []
            if os.path.isdir(self.sessions_dir):
                for filename in sorted(os.listdir(self.sessions_dir)):
                    abs_path = os.path.join(self.sessions_dir, filename)
                    if filename.endswith(".jsonl") and os.path.isfile(abs_path) and not os.path.islink(abs_path):
                        paths.append(abs_path)
            specs.append(SourceSpec(kind=MemorySource.SESSIONS, root_path=self.sessions_dir, discovered_paths=dedupe(paths)))

        return specs

    def read_file(self, abs_path: str, source: MemorySource) -> FileMetadata:
        """Read one source file into indexable content.

        Raises:
            OSError: If the file cannot be read
            UnicodeDecodeError: If the file is not valid UTF-8
        """
        stat = os.stat(abs_path)
        with open(abs_path, "r", encoding="utf-8") as f:
            raw = f.read()

        content = self.parse_session(raw) if source == MemorySource.SESSIONS else raw
        return FileMetadata(
            path=self.to_rel_path(abs_path, source),
            abs_path=abs_path,
            source=source,
            hash=hash_text(content),
            mtime_ms=stat.st_mtime * 1000,
            size=stat.st_size,
            content=content,
        )

    def parse_session(self, raw: str) -> str:
        """Flatten a JSONL transcript into one line per user or assistant message."""
        collected = []
        for line in raw.split("\n"):
            if not line.strip():
                continue

            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                continue

            if not isinstance(record, dict) or record.get("type") != "message":
                continue

            message = record.get("message") or {}
            role = message.get("role") if isinstance(message, dict) else None
            if role not in ("user", "assistant"):
                continue

            text = self._extract_session_text(message.get("content"))
            if not text:
                continue

            label = "User" if role == "user" else "Assistant"
            collected.append(f"{label}: {text}")

        return "\n".join(collected)

    def _extract_session_text(self, content: Any) -> str | None:
        if isinstance(content, str):
            return self._normalize_session_text(content) or None

        if not isinstance(content, list):
            return None

        parts = []
        for block in content:
            if not isinstance(block, dict) or block.get("type") != "text":
                continue
            text = block.get("text")
            if isinstance(text, str):
                normalized = self._normalize_session_text(text)
                if normalized:
                    parts.append(normalized)

        return " ".join(parts) if parts else None

    @staticmethod
    def _normalize_session_text(text: str) -> str:
        return re.sub(r"\s+", " ", text).strip()

    def chunk_file(self, file_meta: FileMetadata) -> list[MemoryChunk]:
        """Split the content of a file into chunks."""
        return chunk_markdown(
            file_meta.content or "",
            path=file_meta.path,
            source=file_meta.source,
            chunk_tokens=self.config.chunking.chunk_tokens,
            overlap=self.config.chunking.chunk_overlap,
        )

    def scan(self, previous_chunks: dict[str, MemoryChunk]) -> ScanResult:
        """Collect every source and diff its chunks against the previously indexed ones.

        A chunk is changed if no previous chunk with the same identity shares
        its content hash, and removed if its identity no longer exists. Files
        that fail to read are recorded in ``file_errors`` and keep their
        previous chunks.

        Raises:
            SyncFailureError: If no source is scannable
        """
        specs = self.enumerate_sources()
        result = ScanResult(sources=specs)

        discovered = 0
        errored_paths: set[str] = set()
        for spec in specs:
            for abs_path in spec.discovered_paths:
                discovered += 1
                try:
                    file_meta = self.read_file(abs_path, spec.kind)
                except (OSError, UnicodeDecodeError) as e:
                    rel_path = self.to_rel_path(abs_path, spec.kind)
                    result.file_errors[rel_path] = f"{type(e).__name__}: {e}"
                    errored_paths.add(rel_path)
                    logger.warning(f"Skipping unreadable file {rel_path}: {e}")
                    continue

                result.files.append(file_meta)
                for chunk in self.chunk_file(file_meta):
                    previous = previous_chunks.get(chunk.id)
                    if previous is not None and previous.hash == chunk.hash:
                        result.unchanged.append(previous)
                    else:
                        result.changed.append(chunk)

        if discovered and not result.files:
            raise SyncFailureError(f"no readable sources, {discovered} files failed to read")

        current_ids = {chunk.id for chunk in result.unchanged}
        current_ids.update(chunk.id for chunk in result.changed)
        for chunk_id, chunk in previous_chunks.items():
            if chunk_id in current_ids:
                continue
            if chunk.path in errored_paths:
                result.unchanged.append(chunk)
            else:
                result.removed.append(chunk)

        logger.debug(
            f"Scanned {len(result.files)} files for agent {self.agent_id}: "
            f"{len(result.changed)} changed, {len(result.removed)} removed, {len(result.unchanged)} unchanged",
        )
        return result
