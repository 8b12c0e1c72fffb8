"""Exception taxonomy for the memory search subsystem."""


class MemoryIndexError(Exception):
    """Base class for all memindex errors."""


class ManagerUnavailableError(MemoryIndexError):
    """The memory index manager for an agent could not be constructed.

    Raised when the feature is disabled, no embedding provider can be built
    while vector search is enabled, or the index could not be opened. The
    failure is scoped to the current call; a retry after a configuration
    change may succeed.
    """


class SearchValidationError(MemoryIndexError, ValueError):
    """A search request was rejected before touching any index."""


class ProviderFailureError(MemoryIndexError):
    """A single embedding provider failed to serve a request."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class ProviderExhaustedError(ProviderFailureError):
    """Every provider in the embedding chain failed."""

    def __init__(self, reasons: dict[str, str]):
        summary = "; ".join(f"{name}: {reason}" for name, reason in reasons.items()) or "no providers configured"
        super().__init__(provider="chain", reason=f"all embedding providers failed ({summary})")
        self.reasons = reasons


class IndexUnavailableError(MemoryIndexError):
    """A retrieval modality failed while answering a query."""


class SyncFailureError(MemoryIndexError):
    """A sync could not produce any chunk or one of its phases failed."""
