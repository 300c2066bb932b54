"""LiteLLM client wrapper: embeddings, completions and rerank calls.

Every model call in Lodestar routes through this module. LiteLLM's built-in
retry is used (``num_retries``, exponential backoff). API key presence is
checked up front so a missing key fails before any indexing work starts.
"""

from __future__ import annotations

import os

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "jina_ai": "JINA_AI_API_KEY",
    "ollama": None,  # Local, no key required
    "huggingface": None,
}


def provider_of(model: str) -> str:
    """Provider prefix of a LiteLLM model string ('openai' when absent)."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def embed_batch(model: str, texts: list[str], num_retries: int = 3) -> list[list[float]]:
    """Embed *texts* in one litellm.embedding() call, preserving input order."""
    response = litellm.embedding(
        model=model,
        input=texts,
        num_retries=num_retries,
    )
    data = sorted(response.data, key=lambda d: d["index"])
    return [d["embedding"] for d in data]


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 512,
    temperature: float = 0.0,
    num_retries: int = 3,
) -> str:
    """Call litellm.completion() with retry/backoff. Returns the content string."""
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""


def rerank(model: str, query: str, documents: list[str], top_n: int) -> list[tuple[int, float]]:
    """Score *documents* against *query* with a hosted reranker.

    Returns:
        (document index, relevance score) pairs, most relevant first.
    """
    response = litellm.rerank(
        model=model,
        query=query,
        documents=documents,
        top_n=top_n,
    )
    return [(r["index"], float(r["relevance_score"])) for r in response.results]


def get_context_window(model: str) -> int:
    """Return the context window size for *model* in tokens (8192 if unknown)."""
    try:
        info = litellm.get_model_info(model)
        return info.get("max_input_tokens") or info.get("max_tokens") or 8192
    except Exception:
        return 8_192
