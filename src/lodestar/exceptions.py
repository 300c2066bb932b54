"""Lodestar error taxonomy.

Indexing errors are isolated per file / batch where possible; retrieval errors
that happen before an "empty result" is known are surfaced to the caller.
"""

from __future__ import annotations


class LodestarError(Exception):
    """Base class for all Lodestar errors."""


class StorageUnavailable(LodestarError):
    """The chunk store could not be read or written. Not retried automatically."""


class NoCorpusAvailable(LodestarError):
    """A query resolved to zero eligible corpora."""


class UnsupportedProviderOnHost(LodestarError):
    """The embeddings provider cannot run on the current host. Non-retryable."""

    def __init__(self, provider_id: str, host_type: str) -> None:
        self.provider_id = provider_id
        self.host_type = host_type
        super().__init__(
            f"The '{provider_id}' embeddings provider is not supported on "
            f"'{host_type}' hosts. Configure a hosted provider (for example "
            "'openai/text-embedding-3-small') or run indexing from a host that "
            "supports it."
        )


class RemoteBackendUnconfigured(LodestarError):
    """Remote mode is missing its URI or credential pair."""


class EmbeddingBatchFailed(LodestarError):
    """One embedding batch failed during a reindex; the reindex continues."""

    def __init__(self, chunk_ids: list[str], cause: str) -> None:
        self.chunk_ids = chunk_ids
        super().__init__(f"Embedding batch of {len(chunk_ids)} chunks failed: {cause}")


class CorpusModelMismatch(LodestarError):
    """A corpus was created with a different embedding model or dimension."""


class IndexCancelled(LodestarError):
    """A reindex was cancelled before its commit; nothing was written."""


class RetrievalCancelled(LodestarError):
    """A query was superseded or torn down before it finished."""


class QueryEmbeddingFailed(LodestarError):
    """The embeddings provider could not embed the query text."""
