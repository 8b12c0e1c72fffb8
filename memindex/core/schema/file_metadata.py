"""File metadata schema."""

from pydantic import BaseModel, Field

from ..enumeration import MemorySource


class FileMetadata(BaseModel):
    """Metadata of one discovered source file."""

    path: str = Field(default=..., description="Path relative to the workspace, forward slashes")
    abs_path: str = Field(default=..., description="Absolute path on disk")
    source: MemorySource = Field(default=MemorySource.MEMORY, description="Source kind of the file")
    hash: str = Field(default="", description="Hash of the file content")
    mtime_ms: float = Field(default=0.0, description="Last modification time in milliseconds")
    size: int = Field(default=0, description="File size in bytes")
    content: str | None = Field(default=None, description="Indexable content of the file")
