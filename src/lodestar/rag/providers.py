"""Context providers: the entry points a host calls to fetch code context.

Each provider decides which corpora a request covers and then hands off to a
retrieval pipeline. ``get_context_items`` never raises ``NoCorpusAvailable``;
it returns a preamble-only item explaining that nothing is indexed.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass

from lodestar.exceptions import NoCorpusAvailable
from lodestar.index.embeddings import EmbeddingsProvider
from lodestar.index.walker import DirectoryWalker, FileWalker, home_directory
from lodestar.logging import logger
from lodestar.paths import (
    get_basename,
    get_unique_file_path,
    group_by_last_n_path_parts,
    is_subpath,
    normalize_path,
)
from lodestar.rag.context import NO_CORPUS_INSTRUCTIONS, ContextResult, instructions_item
from lodestar.rag.reranker import Reranker
from lodestar.rag.retriever import RetrievalRequest, build_pipeline, default_n_final
from lodestar.session import Session
from lodestar.store.base import ChunkStore
from lodestar.store.selector import BackendSelector, BackendUnavailable
from lodestar.tags import Tag, list_candidate_directories, resolve_indexed

ALL_REMOTE = "all"


@dataclass(frozen=True)
class SubmenuItem:
    id: str
    title: str
    description: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "description": self.description}


@dataclass
class RetrievalOptions:
    """Sizing and reranking shared by all providers."""

    n_retrieve: int = 25
    n_final: int | None = None
    context_length: int = 8_192
    use_reranker: bool = False

    def sizes(self) -> tuple[int, int]:
        n_final = self.n_final or default_n_final(self.context_length)
        return max(self.n_retrieve, n_final), n_final


class ContextProvider(ABC):
    """Base class for providers.

    Args:
        selector: Hands out the local / remote chunk stores.
        embeddings: Provider the corpora were indexed with.
        session: Process context.
        options: Retrieval sizes; defaults when omitted.
        reranker: Required when ``options.use_reranker`` is set.
    """

    title: str = ""
    display_title: str = ""
    description: str = ""

    def __init__(
        self,
        selector: BackendSelector,
        embeddings: EmbeddingsProvider,
        session: Session,
        options: RetrievalOptions | None = None,
        reranker: Reranker | None = None,
    ) -> None:
        self.selector = selector
        self.embeddings = embeddings
        self.session = session
        self.options = options or RetrievalOptions()
        self.reranker = reranker

    @abstractmethod
    def get_context_items(
        self,
        input_text: str,
        workspace_dirs: list[str],
        selection: str | None = None,
        cancel: threading.Event | None = None,
    ) -> list[ContextResult]:
        """Context items for *input_text*; *selection* is a submenu item id."""

    def load_submenu_items(self) -> list[SubmenuItem]:
        return []

    def _retrieve(
        self,
        store: ChunkStore,
        input_text: str,
        tags: list[Tag],
        filter_directory: str | None = None,
        cancel: threading.Event | None = None,
    ) -> list[ContextResult]:
        n_retrieve, n_final = self.options.sizes()
        request = RetrievalRequest(
            input_text=input_text,
            n_retrieve=n_retrieve,
            n_final=n_final,
            tags=tags,
            filter_directory=filter_directory,
            use_reranker=self.options.use_reranker,
        )
        pipeline = build_pipeline(request, store, self.embeddings, self.reranker, self.session)
        try:
            return pipeline.retrieve(request, cancel)
        except NoCorpusAvailable as exc:
            logger.warning("%s: %s", self.title, exc)
            return [instructions_item(NO_CORPUS_INSTRUCTIONS)]


def registered_tags(store: ChunkStore) -> list[Tag]:
    """Tags of every corpus the store has a registry entry for."""
    tags: list[Tag] = []
    for cid in store.list_corpora():
        corpus = store.describe(cid)
        if corpus is not None:
            tags.append(Tag(directory=corpus.directory, branch=corpus.branch))
    return tags


def current_tags_near(store: ChunkStore, selection: str) -> list[Tag]:
    """Tags for indexed directories at, under or above *selection*.

    Each directory is tagged with its checked-out branch, so corpora of other
    branches never answer. Directories not indexed on that branch are skipped.
    """
    known = set(store.list_corpora())
    directories: dict[str, str] = {}
    for cid in known:
        corpus = store.describe(cid)
        if corpus is None:
            continue
        if is_subpath(corpus.directory, selection) or is_subpath(selection, corpus.directory):
            directories.setdefault(normalize_path(corpus.directory), corpus.directory)

    tags: dict[str, Tag] = {}
    for norm in sorted(directories):
        tag = Tag.for_workspace(directories[norm])
        if tag.corpus_id in known:
            tags.setdefault(tag.corpus_id, tag)
    return list(tags.values())


def _local_store(selector: BackendSelector) -> ChunkStore:
    store = selector.resolve("local")
    if isinstance(store, BackendUnavailable):
        raise RuntimeError(store.reason)
    return store


class CodebaseProvider(ContextProvider):
    """Search every open workspace directory on its current branch."""

    title = "codebase"
    display_title = "Codebase"
    description = "Automatically find relevant files"

    def get_context_items(
        self,
        input_text: str,
        workspace_dirs: list[str],
        selection: str | None = None,
        cancel: threading.Event | None = None,
    ) -> list[ContextResult]:
        tags = [Tag.for_workspace(d) for d in workspace_dirs]
        return self._retrieve(_local_store(self.selector), input_text, tags, cancel=cancel)


class FolderProvider(ContextProvider):
    """Pick one already-indexed folder under the home directory.

    Args:
        root: Directory scanned for submenu candidates (default: home).
        max_depth: Scan depth under *root*.
        walker: File walker used for the scan.
    """

    title = "folder"
    display_title = "Folder"
    description = "Type to search indexed folders"

    def __init__(
        self,
        selector: BackendSelector,
        embeddings: EmbeddingsProvider,
        session: Session,
        options: RetrievalOptions | None = None,
        reranker: Reranker | None = None,
        root: str | None = None,
        max_depth: int = 6,
        walker: FileWalker | None = None,
    ) -> None:
        super().__init__(selector, embeddings, session, options, reranker)
        self.root = root or home_directory()
        self.max_depth = max_depth
        self.walker = walker or DirectoryWalker()

    def indexed_folders(self) -> list[str]:
        store = _local_store(self.selector)
        candidates = list_candidate_directories(self.root, self.max_depth, self.walker)
        return resolve_indexed(candidates, store.list_corpora())

    def load_submenu_items(self) -> list[SubmenuItem]:
        folders = self.indexed_folders()
        groups = group_by_last_n_path_parts(folders, 2)
        return [
            SubmenuItem(
                id=folder,
                title=get_basename(folder),
                description=get_unique_file_path(folder, groups),
            )
            for folder in folders
        ]

    def get_context_items(
        self,
        input_text: str,
        workspace_dirs: list[str],
        selection: str | None = None,
        cancel: threading.Event | None = None,
    ) -> list[ContextResult]:
        store = _local_store(self.selector)
        if not selection:
            tags = [Tag.for_workspace(d) for d in workspace_dirs]
            return self._retrieve(store, input_text, tags, cancel=cancel)
        tags = current_tags_near(store, selection)
        return self._retrieve(store, input_text, tags, filter_directory=selection, cancel=cancel)


class RemoteCodebaseProvider(ContextProvider):
    """Search corpora mirrored to the remote index.

    Without remote settings both the submenu and the results are empty.
    """

    title = "remote-codebase"
    display_title = "Global"
    description = "Find relevant files on the remote index"

    def _store(self) -> ChunkStore | None:
        store = self.selector.resolve("remote")
        if isinstance(store, BackendUnavailable):
            return None
        return store

    def load_submenu_items(self) -> list[SubmenuItem]:
        store = self._store()
        if store is None:
            return []
        items = [SubmenuItem(id=ALL_REMOTE, title="All remote projects")]
        for cid in store.list_corpora():
            corpus = store.describe(cid)
            if corpus is None:
                items.append(SubmenuItem(id=cid, title=cid))
            else:
                items.append(
                    SubmenuItem(
                        id=cid,
                        title=get_basename(corpus.directory),
                        description=f"{corpus.directory} ({corpus.branch})",
                    )
                )
        return items

    def get_context_items(
        self,
        input_text: str,
        workspace_dirs: list[str],
        selection: str | None = None,
        cancel: threading.Event | None = None,
    ) -> list[ContextResult]:
        store = self._store()
        if store is None or not selection:
            return []
        tags = registered_tags(store)
        if selection != ALL_REMOTE:
            tags = [t for t in tags if t.corpus_id == selection]
        return self._retrieve(store, input_text, tags, cancel=cancel)
