"""Rich error messages for the lodestar CLI.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from lodestar.cli.errors import err_no_api_key
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

_ENV_MAP = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "cohere": "COHERE_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_API_KEY",
}


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = _ENV_MAP.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_not_a_directory(path: str) -> str:
    return (
        f"[red]Error:[/] Not a directory: '{escape(path)}'\n"
        "  Pass the workspace folder to index, e.g.  lodestar index ~/src/my-project"
    )


def err_unsupported_provider(message: str) -> str:
    return (
        f"[red]Error:[/] {escape(message)}\n"
        "  Set embedding.model in lodestar.yaml or LODESTAR_EMBEDDING_MODEL."
    )


def err_embedding_model_mismatch(message: str) -> str:
    """Corpus was indexed with another embedding model."""
    return (
        "[red]Error:[/] Embedding model mismatch.\n"
        f"  {escape(message)}\n"
        "  Switch back to the corpus model, or index into a fresh database with --db."
    )


def err_storage_unavailable(message: str, db_path: str) -> str:
    return (
        f"[red]Error:[/] Index storage is unavailable: {escape(message)}\n"
        f"  Check that '{escape(db_path)}' is writable and not on a full disk."
    )


def err_remote_unconfigured(reason: str) -> str:
    return (
        f"[yellow]Remote index unavailable:[/] {escape(reason)}\n"
        "  Set:  export LODESTAR_REMOTE_URI=s3://bucket/path\n"
        "        export AWS_ACCESS_KEY_ID=... AWS_SECRET_ACCESS_KEY=..."
    )


def err_config(message: str) -> str:
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {escape(message)}"
    )


def err_query_embedding_failed(message: str, model: str) -> str:
    return (
        f"[red]Error:[/] {escape(message)}\n"
        f"  Check that '{escape(model)}' is reachable and your API key is valid, then retry."
    )
