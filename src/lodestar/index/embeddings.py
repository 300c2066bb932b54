"""Embeddings providers and the (provider, host) capability table."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from lodestar.rag import llm_client

# Providers that need a local binary or runtime, paired with the hosts that
# cannot run one.
DEFAULT_UNSUPPORTED: frozenset[tuple[str, str]] = frozenset(
    {
        ("ollama", "web"),
        ("huggingface", "web"),
        ("transformers", "web"),
        ("transformers", "jetbrains"),
    }
)


class CapabilityTable:
    """Resolved-once answer to "can provider X run on host Y?".

    Any (provider_id, host_type) pair not listed as unsupported is supported.
    """

    def __init__(self, unsupported: Iterable[tuple[str, str]] = DEFAULT_UNSUPPORTED) -> None:
        self._unsupported = frozenset((p.lower(), h.lower()) for p, h in unsupported)

    def supported(self, provider_id: str, host_type: str) -> bool:
        return (provider_id.lower(), host_type.lower()) not in self._unsupported

    @classmethod
    def from_config(cls, extra: Iterable[Iterable[str]] = ()) -> CapabilityTable:
        """Defaults plus extra ``[provider, host]`` pairs from the ``host`` config section."""
        pairs = set(DEFAULT_UNSUPPORTED)
        for pair in extra:
            provider, host = list(pair)
            pairs.add((provider, host))
        return cls(pairs)


class EmbeddingsProvider(ABC):
    """Turns text into fixed-dimension vectors.

    ``metric`` is the similarity the provider's vectors are meant for; stores
    create corpora with it rather than choosing their own.
    """

    provider_id: str = ""
    model: str = ""
    dimensions: int = 0
    metric: str = "cosine"

    @abstractmethod
    def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per text, in input order."""

    def embed_one(self, text: str) -> list[float]:
        return self.embed([text])[0]

    def supported_on(self, host_type: str, table: CapabilityTable | None = None) -> bool:
        return (table or CapabilityTable()).supported(self.provider_id, host_type)


class LiteLLMEmbeddings(EmbeddingsProvider):
    """Embeddings through ``litellm.embedding``; provider id is the model prefix."""

    def __init__(
        self,
        model: str,
        dimensions: int,
        metric: str = "cosine",
        num_retries: int = 3,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.metric = metric
        self.num_retries = num_retries
        self.provider_id = llm_client.provider_of(model)

    def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return llm_client.embed_batch(self.model, texts, num_retries=self.num_retries)
