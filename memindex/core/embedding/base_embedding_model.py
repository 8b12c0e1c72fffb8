"""Base embedding model interface for memindex.

Defines the abstract base class and the uniform ``attempt`` contract used by
the embedding provider chain.
"""

from abc import ABC, abstractmethod

from loguru import logger
from pydantic import BaseModel, Field

from ..errors import ProviderFailureError


class EmbeddingAttempt(BaseModel):
    """Outcome of asking one provider for a batch of vectors."""

    provider: str
    model: str
    ok: bool
    vectors: list[list[float]] = Field(default_factory=list)
    error: str | None = None


class BaseEmbeddingModel(ABC):
    """Abstract base class for embedding model implementations.

    Subclasses implement ``_get_embeddings``; callers use ``attempt`` which
    never raises for provider-side errors and reports them as data instead.
    """

    provider_name: str = "base"

    def __init__(
        self,
        model_name: str = "",
        dimensions: int = 256,
        max_input_length: int = 8192,
        **kwargs,
    ):
        """Initialize model configuration and parameters.

        Args:
            model_name: Name of the embedding model
            dimensions: Vector dimensions of the embeddings
            max_input_length: Maximum input text length in characters
            **kwargs: Additional model-specific parameters
        """
        self.model_name = model_name
        self.dimensions = dimensions
        self.max_input_length = max_input_length
        self.kwargs = kwargs

    def _truncate_text(self, text: str) -> str:
        """Truncate text to max_input_length if it exceeds the limit."""
        if len(text) > self.max_input_length:
            logger.debug(f"Text length {len(text)} exceeds {self.max_input_length}, truncating")
            return text[: self.max_input_length]
        return text

    @abstractmethod
    async def _get_embeddings(self, input_text: list[str], **kwargs) -> list[list[float]]:
        """Internal async implementation for calling the embedding backend with batch input."""

    async def get_embeddings(self, input_text: list[str], **kwargs) -> list[list[float]]:
        """Embed a batch of texts, validating count and dimensionality.

        Raises:
            ProviderFailureError: If the backend fails or returns malformed vectors
        """
        if not input_text:
            return []

        truncated = [self._truncate_text(text) for text in input_text]
        try:
            vectors = await self._get_embeddings(truncated, **kwargs)
        except ProviderFailureError:
            raise
        except Exception as e:
            raise ProviderFailureError(self.provider_name, f"{type(e).__name__}: {e}") from e

        vectors = vectors or []
        if len(vectors) != len(truncated):
            raise ProviderFailureError(
                self.provider_name,
                f"returned {len(vectors)} vectors for {len(truncated)} inputs",
            )
        for vec in vectors:
            if vec is None:
                raise ProviderFailureError(self.provider_name, "returned an empty vector")
            if len(vec) != self.dimensions:
                raise ProviderFailureError(
                    self.provider_name,
                    f"returned a {len(vec)}-dim vector, expected {self.dimensions}",
                )
        return vectors

    async def attempt(self, input_text: list[str], **kwargs) -> EmbeddingAttempt:
        """Try to embed a batch, reporting failure as data instead of raising."""
        try:
            vectors = await self.get_embeddings(input_text, **kwargs)
        except ProviderFailureError as e:
            logger.warning(f"Embedding provider {self.provider_name}/{self.model_name} failed: {e.reason}")
            return EmbeddingAttempt(provider=self.provider_name, model=self.model_name, ok=False, error=e.reason)
        return EmbeddingAttempt(provider=self.provider_name, model=self.model_name, ok=True, vectors=vectors)

    async def close(self):
        """Asynchronously release resources and close connections."""
