"""embedding"""

from .base_embedding_model import BaseEmbeddingModel, EmbeddingAttempt
from .local_embedding_model import LocalHashEmbeddingModel
from .openai_embedding_model import OpenAIEmbeddingModel
from .provider_chain import EmbeddingOutcome, EmbeddingProviderChain
from ..context import R

__all__ = [
    "BaseEmbeddingModel",
    "EmbeddingAttempt",
    "EmbeddingOutcome",
    "EmbeddingProviderChain",
    "LocalHashEmbeddingModel",
    "OpenAIEmbeddingModel",
]

R.embedding_models.register("openai")(OpenAIEmbeddingModel)
R.embedding_models.register("local")(LocalHashEmbeddingModel)
