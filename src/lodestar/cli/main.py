"""Lodestar CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from lodestar.cli.corpora import corpora_cmd
from lodestar.cli.index import index_cmd
from lodestar.cli.query import query_cmd
from lodestar.logging import set_verbosity


def _version() -> str:
    try:
        return importlib.metadata.version("lodestar")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"lodestar {_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="lodestar",
    help=(
        "Lodestar: semantic code retrieval over indexed workspaces.\n\n"
        "  lodestar index    Incrementally index a workspace directory.\n"
        "  lodestar query    Retrieve the most relevant snippets for a query."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log progress to stderr."),
    ] = False,
) -> None:
    """Lodestar: semantic code retrieval over indexed workspaces."""
    if verbose:
        set_verbosity(True)


app.command("index")(index_cmd)
app.command("query")(query_cmd)
app.command("corpora")(corpora_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Lodestar version."""
    typer.echo(f"lodestar {_version()}")


if __name__ == "__main__":
    app()
