"""Asynchronous OpenAI-compatible embedding model implementation for memindex."""

from openai import AsyncOpenAI

from .base_embedding_model import BaseEmbeddingModel


class OpenAIEmbeddingModel(BaseEmbeddingModel):
    """Embedding model backed by any OpenAI-compatible embeddings endpoint."""

    provider_name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        encoding_format: str = "float",
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.model_name = self.model_name or "text-embedding-3-small"
        if not api_key:
            raise ValueError("no API key configured for the openai embedding provider")
        self.encoding_format = encoding_format
        self._client: AsyncOpenAI | None = AsyncOpenAI(api_key=api_key, base_url=base_url)

    @property
    def client(self) -> AsyncOpenAI:
        """Return the underlying client, failing if the model was closed."""
        if self._client is None:
            raise RuntimeError("openai embedding client is closed")
        return self._client

    async def _get_embeddings(self, input_text: list[str], **kwargs) -> list[list[float]]:
        """Fetch embeddings from the API for a batch of strings."""
        completion = await self.client.embeddings.create(
            model=self.model_name,
            input=input_text,
            dimensions=self.dimensions,
            encoding_format=self.encoding_format,
            **self.kwargs,
            **kwargs,
        )

        result_emb = [[] for _ in range(len(input_text))]
        for emb in completion.data:
            result_emb[emb.index] = emb.embedding
        return result_emb

    async def close(self):
        """Close the OpenAI client and release network resources."""
        if self._client is not None:
            await self._client.close()
            self._client = None
