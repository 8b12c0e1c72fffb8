"""Memory search result schema."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..enumeration import MemorySource


class MemorySearchResult(BaseModel):
    """Search result from memory index."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    path: str = Field(..., description="File path relative to workspace")
    start_line: int = Field(..., description="Starting line number of the match")
    end_line: int = Field(..., description="Ending line number of the match")
    score: float = Field(..., description="Relevance score of the search result")
    snippet: str = Field(..., description="Text snippet from the matched content")
    source: MemorySource = Field(..., description="Source of the memory data")
