"""lodestar index: bring the corpus of one workspace up to date."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from lodestar.cli.errors import (
    err_embedding_model_mismatch,
    err_not_a_directory,
    err_remote_unconfigured,
    err_storage_unavailable,
    err_unsupported_provider,
)
from lodestar.cli.runtime import build_runtime
from lodestar.exceptions import (
    CorpusModelMismatch,
    IndexCancelled,
    StorageUnavailable,
    UnsupportedProviderOnHost,
)
from lodestar.index.indexer import IndexDelta, Indexer
from lodestar.index.lines import LineChunker
from lodestar.index.walker import DirectoryWalker
from lodestar.paths import normalize_path
from lodestar.store.selector import BackendUnavailable
from lodestar.tags import Tag, current_branch

console = Console(stderr=True)


def index_cmd(
    directory: Annotated[
        Path,
        typer.Argument(help="Workspace directory to index (default: current directory)."),
    ] = Path("."),
    branch: Annotated[
        str | None,
        typer.Option("--branch", "-b", help="Branch name for the corpus (default: git HEAD)."),
    ] = None,
    remote: Annotated[
        bool,
        typer.Option("--remote", help="Write to the remote index instead of the local one."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Local index database (default: ~/.lodestar/index.db)."),
    ] = None,
) -> None:
    """Index (or incrementally re-index) a workspace directory."""
    if not directory.is_dir():
        console.print(err_not_a_directory(str(directory)))
        raise typer.Exit(1)

    root = normalize_path(str(directory))
    rt = build_runtime(console, Path(root), db)
    tag = Tag(directory=root, branch=branch or current_branch(root))

    store = rt.selector.resolve("remote" if remote else "local")
    if isinstance(store, BackendUnavailable):
        console.print(err_remote_unconfigured(store.reason))
        rt.close()
        raise typer.Exit(1)

    indexer = Indexer(
        store,
        rt.embeddings,
        rt.session,
        chunker=LineChunker(rt.cfg.indexing.lines_per_chunk),
        walker=DirectoryWalker(
            exclude=rt.cfg.indexing.exclude,
            max_file_bytes=rt.cfg.indexing.max_file_bytes,
        ),
        batch_size=rt.cfg.embedding.batch_size,
        max_depth=rt.cfg.indexing.max_depth,
    )

    console.print(f"[bold]→ {tag.directory}[/] [dim]({tag.branch}, {store.backend})[/]")
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            transient=True,
            console=console,
        ) as prog:
            task = prog.add_task("Embedding…", total=None)

            def _on_progress(done: int, total: int) -> None:
                prog.update(task, completed=done, total=total)

            delta = indexer.reindex(tag, on_progress=_on_progress)
    except UnsupportedProviderOnHost as exc:
        console.print(err_unsupported_provider(str(exc)))
        raise typer.Exit(1)
    except CorpusModelMismatch as exc:
        console.print(err_embedding_model_mismatch(str(exc)))
        raise typer.Exit(1)
    except StorageUnavailable as exc:
        console.print(err_storage_unavailable(str(exc), rt.cfg.storage.path))
        raise typer.Exit(1)
    except IndexCancelled as exc:
        console.print(f"[yellow]{exc}[/]")
        raise typer.Exit(1)
    finally:
        rt.close()

    _print_delta(delta)


def _print_delta(delta: IndexDelta) -> None:
    if delta.is_empty and not delta.failed:
        console.print(f"  [dim]↷ Unchanged: corpus {delta.corpus_id} is up to date[/]")
        return
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_row("Corpus", delta.corpus_id)
    table.add_row("Inserted", f"[green]{len(delta.inserted)}[/]")
    table.add_row("Deleted", f"[yellow]{len(delta.deleted)}[/]")
    if delta.failed:
        table.add_row("Failed", f"[red]{len(delta.failed)}[/] (retried on next run)")
    if delta.skipped_files:
        table.add_row("Skipped files", str(len(delta.skipped_files)))
    console.print(table)
