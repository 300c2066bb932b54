"""Wiring shared by the CLI commands: config → session, embeddings, stores."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console

from lodestar.cli.errors import err_config, err_no_api_key
from lodestar.config import ConfigError, LodestarConfig, load_config
from lodestar.index.embeddings import CapabilityTable, EmbeddingsProvider, LiteLLMEmbeddings
from lodestar.rag.llm_client import provider_of, validate_api_key
from lodestar.session import Session
from lodestar.store.selector import BackendSelector


@dataclass
class Runtime:
    cfg: LodestarConfig
    session: Session
    embeddings: EmbeddingsProvider
    selector: BackendSelector

    def close(self) -> None:
        self.selector.close()
        self.session.close()


def build_runtime(
    console: Console,
    project_dir: Path | None = None,
    db: Path | None = None,
    *,
    require_api_key: bool = True,
) -> Runtime:
    """Load config and build the runtime, exiting with a message on bad setup.

    Commands that never embed pass ``require_api_key=False``.
    """
    try:
        cfg = load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    if db is not None:
        cfg.storage.path = str(db)

    if require_api_key:
        try:
            validate_api_key(cfg.embedding.model)
        except EnvironmentError:
            console.print(err_no_api_key(provider_of(cfg.embedding.model)))
            raise typer.Exit(1)

    session = Session(
        host_type=cfg.host.type,
        capabilities=CapabilityTable.from_config(cfg.host.unsupported),
    ).open()
    embeddings = LiteLLMEmbeddings(
        cfg.embedding.model,
        cfg.embedding.dimensions,
        metric=cfg.embedding.metric,
    )
    return Runtime(
        cfg=cfg,
        session=session,
        embeddings=embeddings,
        selector=BackendSelector.from_config(cfg),
    )
