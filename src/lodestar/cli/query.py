"""lodestar query: retrieve context snippets for a query."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from lodestar.cli.errors import (
    err_query_embedding_failed,
    err_remote_unconfigured,
    err_storage_unavailable,
    err_unsupported_provider,
)
from lodestar.cli.runtime import build_runtime
from lodestar.exceptions import (
    QueryEmbeddingFailed,
    StorageUnavailable,
    UnsupportedProviderOnHost,
)
from lodestar.paths import normalize_path
from lodestar.rag.context import ContextResult
from lodestar.rag.llm_client import get_context_window
from lodestar.rag.providers import (
    ALL_REMOTE,
    CodebaseProvider,
    ContextProvider,
    FolderProvider,
    RemoteCodebaseProvider,
    RetrievalOptions,
)
from lodestar.rag.reranker import build_reranker
from lodestar.store.selector import BackendUnavailable

console = Console()
err_console = Console(stderr=True)


def query_cmd(
    text: Annotated[str, typer.Argument(help="Natural-language or code query.")],
    directory: Annotated[
        list[Path] | None,
        typer.Option("--dir", "-d", help="Workspace directory to search (repeatable; default: cwd)."),
    ] = None,
    filter_dir: Annotated[
        Path | None,
        typer.Option("--filter", help="Only return files under this directory."),
    ] = None,
    rerank: Annotated[
        bool | None,
        typer.Option("--rerank/--no-rerank", help="Rerank candidates before truncating."),
    ] = None,
    n_retrieve: Annotated[
        int | None,
        typer.Option("--n-retrieve", min=1, help="Candidates fetched per corpus."),
    ] = None,
    n_final: Annotated[
        int | None,
        typer.Option("--n-final", min=1, help="Results returned."),
    ] = None,
    remote: Annotated[
        str | None,
        typer.Option("--remote", help="Search the remote index: a corpus id or 'all'."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the context items as JSON."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Local index database (default: ~/.lodestar/index.db)."),
    ] = None,
) -> None:
    """Search indexed workspaces and print the matching snippets."""
    dirs = [normalize_path(str(d)) for d in (directory or [Path(".")])]
    rt = build_runtime(err_console, Path(dirs[0]), db)
    rcfg = rt.cfg.retrieval

    use_reranker = rcfg.use_reranker if rerank is None else rerank
    options = RetrievalOptions(
        n_retrieve=n_retrieve or rcfg.n_retrieve,
        n_final=n_final or rcfg.n_final,
        context_length=get_context_window(rcfg.context_model),
        use_reranker=use_reranker,
    )
    if options.n_final is not None and options.n_final > options.n_retrieve:
        err_console.print(
            f"[red]Error:[/] --n-final ({options.n_final}) must not exceed "
            f"--n-retrieve ({options.n_retrieve})."
        )
        rt.close()
        raise typer.Exit(1)
    reranker = build_reranker(rcfg.reranker, rcfg.reranker_model) if use_reranker else None

    provider: ContextProvider
    selection: str | None = None
    if remote is not None:
        remote_store = rt.selector.resolve("remote")
        if isinstance(remote_store, BackendUnavailable):
            err_console.print(err_remote_unconfigured(remote_store.reason))
        provider = RemoteCodebaseProvider(rt.selector, rt.embeddings, rt.session, options, reranker)
        selection = remote or ALL_REMOTE
    elif filter_dir is not None:
        provider = FolderProvider(rt.selector, rt.embeddings, rt.session, options, reranker)
        selection = normalize_path(str(filter_dir))
    else:
        provider = CodebaseProvider(rt.selector, rt.embeddings, rt.session, options, reranker)

    try:
        items = provider.get_context_items(text, dirs, selection)
    except UnsupportedProviderOnHost as exc:
        err_console.print(err_unsupported_provider(str(exc)))
        raise typer.Exit(1)
    except QueryEmbeddingFailed as exc:
        err_console.print(err_query_embedding_failed(str(exc), rt.cfg.embedding.model))
        raise typer.Exit(1)
    except StorageUnavailable as exc:
        err_console.print(err_storage_unavailable(str(exc), rt.cfg.storage.path))
        raise typer.Exit(1)
    finally:
        rt.close()

    if as_json:
        typer.echo(json.dumps([i.to_dict() for i in items], indent=2))
        return
    _print_items(items)


def _print_items(items: list[ContextResult]) -> None:
    if not items:
        console.print("[yellow]No results.[/]")
        return
    for item in items:
        console.rule(f"[bold]{escape(item.name)}[/] [dim]{escape(item.description)}[/]")
        console.print(item.content, markup=False, highlight=False)
