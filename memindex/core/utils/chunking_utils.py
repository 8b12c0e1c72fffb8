"""Chunking logic for Markdown files and flattened session transcripts."""

from typing import Any

from .common_utils import hash_text
from ..enumeration import MemorySource
from ..schema import MemoryChunk


def chunk_id_for(source: MemorySource, path: str, start_line: int, end_line: int) -> str:
    """Stable chunk identifier derived from the chunk identity only."""
    return hash_text(f"{source.value}:{path}:{start_line}:{end_line}")


def chunk_markdown(
    text: str,
    path: str,
    source: MemorySource,
    chunk_tokens: int = 400,
    overlap: int = 0,
) -> list[MemoryChunk]:
    """Split text into line-range chunks of bounded size.

    Lines are never split, so a single line longer than the bound becomes a
    chunk of its own. Whitespace-only chunks are dropped.

    Args:
        text: Input text
        path: File path relative to the workspace
        source: Memory source
        chunk_tokens: Maximum tokens per chunk (about 4 characters per token)
        overlap: Overlap tokens carried from one chunk into the next

    Returns:
        List of MemoryChunk objects ordered by start line
    """
    if not text:
        return []

    max_chars = max(32, chunk_tokens * 4)
    overlap_chars = max(0, overlap * 4)

    chunks: list[MemoryChunk] = []
    current: list[dict[str, Any]] = []  # [{'line': str, 'line_no': int}]
    current_chars = 0

    def flush():
        if not current:
            return

        chunk_text = "\n".join(entry["line"] for entry in current)
        if not chunk_text.strip():
            return

        start_line = current[0]["line_no"]
        end_line = current[-1]["line_no"]
        if chunks and chunks[-1].start_line == start_line and chunks[-1].end_line == end_line:
            return

        chunks.append(
            MemoryChunk(
                id=chunk_id_for(source, path, start_line, end_line),
                path=path,
                source=source,
                start_line=start_line,
                end_line=end_line,
                text=chunk_text,
                hash=hash_text(chunk_text),
            ),
        )

    def carry_overlap():
        nonlocal current, current_chars

        if overlap_chars <= 0 or not current:
            current = []
            current_chars = 0
            return

        acc = 0
        kept = []
        # Never carry the whole chunk, the next one must start later
        for entry in reversed(current[1:]):
            acc += len(entry["line"]) + 1
            kept.insert(0, entry)
            if acc >= overlap_chars:
                break

        current = kept
        current_chars = sum(len(entry["line"]) + 1 for entry in kept)

    for i, line in enumerate(text.split("\n")):
        line_size = len(line) + 1

        if current_chars + line_size > max_chars and current:
            flush()
            carry_overlap()

        current.append({"line": line, "line_no": i + 1})
        current_chars += line_size

    flush()

    return chunks
