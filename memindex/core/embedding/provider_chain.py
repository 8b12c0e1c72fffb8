"""Ordered chain of embedding providers with structured fallback metadata."""

from loguru import logger
from pydantic import BaseModel, Field

from .base_embedding_model import BaseEmbeddingModel
from ..context import R
from ..errors import ProviderExhaustedError
from ..schema import EmbeddingConfig, FallbackInfo


class EmbeddingOutcome(BaseModel):
    """Vectors for one request and the provider that actually served it."""

    vectors: list[list[float]] = Field(default_factory=list)
    provider: str
    model: str
    fallback: FallbackInfo | None = None


class EmbeddingProviderChain:
    """Tries each embedding provider in order until one succeeds.

    The first entry of ``provider_order`` is the requested provider. When a
    later provider serves a request the chain records ``{from, reason}`` as
    the fallback in effect; it is cleared as soon as the requested provider
    serves again.
    """

    def __init__(
        self,
        providers: list[BaseEmbeddingModel],
        requested_provider: str,
        construction_errors: dict[str, str] | None = None,
    ):
        self.providers = providers
        self.requested_provider = requested_provider
        self.construction_errors: dict[str, str] = dict(construction_errors or {})

        self.active_provider: str | None = providers[0].provider_name if providers else None
        self.active_model: str | None = providers[0].model_name if providers else None
        self.fallback: FallbackInfo | None = None
        if providers and self.active_provider != requested_provider:
            self.fallback = FallbackInfo(
                from_=requested_provider,
                reason=self.construction_errors.get(requested_provider, "provider unavailable"),
            )

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> "EmbeddingProviderChain":
        """Build the chain from configuration, skipping providers that cannot be constructed."""
        providers: list[BaseEmbeddingModel] = []
        errors: dict[str, str] = {}

        for name in config.provider_order:
            model_cls = R.embedding_models.get(name)
            if model_cls is None:
                errors[name] = f"unknown embedding provider '{name}'"
                logger.warning(f"Skipping embedding provider {name}: not registered")
                continue

            try:
                providers.append(
                    model_cls(
                        # the configured model name belongs to the requested provider only
                        model_name=config.model if name == config.provider else "",
                        dimensions=config.dimensions,
                        max_input_length=config.max_input_length,
                        api_key=config.resolved_api_key,
                        base_url=config.resolved_base_url,
                    ),
                )
            except Exception as e:
                errors[name] = str(e)
                logger.warning(f"Skipping embedding provider {name}: {e}")

        return cls(providers=providers, requested_provider=config.provider, construction_errors=errors)

    @property
    def empty(self) -> bool:
        """Whether no provider could be constructed."""
        return not self.providers

    @property
    def dimensions(self) -> int | None:
        """Dimensionality shared by the providers of the chain."""
        return self.providers[0].dimensions if self.providers else None

    async def embed(self, texts: list[str]) -> EmbeddingOutcome:
        """Embed texts with the first provider that succeeds.

        Raises:
            ProviderExhaustedError: If every provider failed
        """
        reasons: dict[str, str] = dict(self.construction_errors)

        for provider in self.providers:
            result = await provider.attempt(texts)
            if not result.ok:
                reasons[provider.provider_name] = result.error or "unknown error"
                continue

            fallback = None
            if provider.provider_name != self.requested_provider:
                fallback = FallbackInfo(
                    from_=self.requested_provider,
                    reason=reasons.get(self.requested_provider, "provider unavailable"),
                )
                if self.fallback is None or self.fallback.reason != fallback.reason:
                    logger.warning(
                        f"Embedding fell back from {self.requested_provider} to "
                        f"{provider.provider_name}: {fallback.reason}",
                    )

            self.active_provider = provider.provider_name
            self.active_model = provider.model_name
            self.fallback = fallback
            return EmbeddingOutcome(
                vectors=result.vectors,
                provider=provider.provider_name,
                model=provider.model_name,
                fallback=fallback,
            )

        raise ProviderExhaustedError(reasons)

    async def retry_requested(self, text: str = "ping") -> bool:
        """Ask the requested provider to embed a short text while a fallback is in effect.

        Clears the fallback when the requested provider serves again.

        Returns:
            Whether the requested provider is the active one afterwards
        """
        if self.fallback is None:
            return True

        requested = next((p for p in self.providers if p.provider_name == self.requested_provider), None)
        if requested is None:
            return False

        result = await requested.attempt([text])
        if not result.ok:
            self.fallback = FallbackInfo(from_=self.requested_provider, reason=result.error or self.fallback.reason)
            return False

        logger.info(f"Embedding provider {self.requested_provider} serves again, leaving fallback {self.active_provider}")
        self.active_provider = requested.provider_name
        self.active_model = requested.model_name
        self.fallback = None
        return True

    async def close(self):
        """Close every provider of the chain."""
        for provider in self.providers:
            await provider.close()
