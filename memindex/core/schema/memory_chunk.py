"""Memory chunk schema."""

from pydantic import BaseModel, ConfigDict, Field

from ..enumeration import MemorySource


class MemoryChunk(BaseModel):
    """A line-range slice of a source file, the atomic unit of indexing.

    Chunks are immutable. A modified chunk is superseded by a new instance
    with the same id and a different ``hash``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable identifier derived from source, path and line range")
    path: str = Field(..., description="File path relative to workspace")
    source: MemorySource = Field(..., description="Source of the memory data")
    start_line: int = Field(..., description="Starting line number in the source file")
    end_line: int = Field(..., description="Ending line number in the source file")
    text: str = Field(..., description="Text content of the chunk")
    hash: str = Field(..., description="Hash of the chunk content")

    @property
    def identity(self) -> tuple[str, str, int, int]:
        """Identity tuple of the chunk, independent of its content."""
        return self.source.value, self.path, self.start_line, self.end_line
