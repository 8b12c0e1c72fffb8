"""Embedding record schema."""

from pydantic import BaseModel, Field, model_validator


class EmbeddingRecord(BaseModel):
    """Vector of one chunk version, owned by the vector index."""

    chunk_id: str = Field(..., description="Identifier of the embedded chunk")
    content_hash: str = Field(..., description="Content hash of the chunk version that was embedded")
    vector: list[float] = Field(..., description="Embedding vector")
    dims: int = Field(default=0, description="Vector dimensionality")
    provider: str = Field(default="", description="Provider that produced the vector")
    model: str = Field(default="", description="Model that produced the vector")

    @model_validator(mode="after")
    def _fill_dims(self) -> "EmbeddingRecord":
        if not self.dims:
            self.dims = len(self.vector)
        elif self.dims != len(self.vector):
            raise ValueError(f"dims={self.dims} does not match vector length {len(self.vector)}")
        return self
