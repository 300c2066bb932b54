"""lodestar corpora: list indexed corpora, local or remote."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from lodestar.cli.errors import err_remote_unconfigured, err_storage_unavailable
from lodestar.cli.runtime import build_runtime
from lodestar.exceptions import StorageUnavailable
from lodestar.rag.providers import FolderProvider, RemoteCodebaseProvider, SubmenuItem
from lodestar.store.selector import BackendUnavailable

console = Console()


def corpora_cmd(
    root: Annotated[
        Path | None,
        typer.Option("--root", help="List indexed folders under this directory (deepest per lineage)."),
    ] = None,
    depth: Annotated[
        int,
        typer.Option("--depth", min=1, help="Scan depth under --root."),
    ] = 6,
    remote: Annotated[
        bool,
        typer.Option("--remote", help="List corpora on the remote index."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Local index database (default: ~/.lodestar/index.db)."),
    ] = None,
) -> None:
    """Show which workspaces have an index."""
    rt = build_runtime(console, None, db, require_api_key=False)
    try:
        if remote:
            store = rt.selector.resolve("remote")
            if isinstance(store, BackendUnavailable):
                console.print(err_remote_unconfigured(store.reason))
                return
            provider = RemoteCodebaseProvider(rt.selector, rt.embeddings, rt.session)
            _print_items("Remote corpora", provider.load_submenu_items())
        elif root is not None:
            folder = FolderProvider(
                rt.selector, rt.embeddings, rt.session, root=str(root.expanduser()), max_depth=depth
            )
            _print_items(f"Indexed folders under {root}", folder.load_submenu_items())
        else:
            _print_registry(rt)
    except StorageUnavailable as exc:
        console.print(err_storage_unavailable(str(exc), rt.cfg.storage.path))
        raise typer.Exit(1)
    finally:
        rt.close()


def _print_items(title: str, items: list[SubmenuItem]) -> None:
    if not items:
        console.print(f"[yellow]{escape(title)}: none found.[/]")
        return
    table = Table(title=title)
    table.add_column("Id", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Description")
    for item in items:
        table.add_row(escape(item.id), escape(item.title), escape(item.description))
    console.print(table)


def _print_registry(rt) -> None:
    store = rt.selector.resolve("local")
    ids = store.list_corpora()
    if not ids:
        console.print("[yellow]No corpora yet.[/]  Run:  lodestar index <dir>")
        return
    table = Table(title=f"Corpora in {rt.selector.db_path}")
    table.add_column("Corpus", style="dim")
    table.add_column("Directory", style="bold")
    table.add_column("Branch")
    table.add_column("Model")
    table.add_column("Chunks", justify="right")
    for cid in ids:
        corpus = store.describe(cid)
        table.add_row(
            cid,
            escape(corpus.directory),
            escape(corpus.branch),
            corpus.embedding_model,
            str(store.count(cid)),
        )
    console.print(table)
