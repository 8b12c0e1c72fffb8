"""Scan result schema."""

from pydantic import BaseModel, Field

from .file_metadata import FileMetadata
from .memory_chunk import MemoryChunk
from ..enumeration import MemorySource


class SourceSpec(BaseModel):
    """A configured root and the files discovered under it during one scan."""

    kind: MemorySource = Field(..., description="Source kind of the root")
    root_path: str = Field(..., description="Configured root, absolute")
    discovered_paths: list[str] = Field(default_factory=list, description="Files found under the root")


class ScanResult(BaseModel):
    """Chunk-level difference between the sources on disk and the index."""

    sources: list[SourceSpec] = Field(default_factory=list)
    files: list[FileMetadata] = Field(default_factory=list, description="Files that were read successfully")
    unchanged: list[MemoryChunk] = Field(default_factory=list)
    changed: list[MemoryChunk] = Field(default_factory=list, description="New chunks and new versions of chunks")
    removed: list[MemoryChunk] = Field(default_factory=list, description="Indexed chunks whose identity vanished")
    file_errors: dict[str, str] = Field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        """Whether applying this scan modifies the index."""
        return bool(self.changed or self.removed)

    def file_counts(self) -> dict[MemorySource, int]:
        """Number of readable files per source kind."""
        counts: dict[MemorySource, int] = {}
        for file_meta in self.files:
            counts[file_meta.source] = counts.get(file_meta.source, 0) + 1
        return counts
