"""Batch job schema."""

import time

from pydantic import BaseModel, Field

from .memory_chunk import MemoryChunk


class BatchJob(BaseModel):
    """A group of chunks queued for embedding."""

    run_id: int = Field(..., description="Identifier of the batch run the job belongs to")
    chunks: list[MemoryChunk] = Field(..., description="Chunks to embed, at most the batch limit")
    attempt: int = Field(default=0, description="Zero for the first try, one for the retry")
    enqueued_at: float = Field(default_factory=time.monotonic)
