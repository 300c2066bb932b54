"""Backend selection: one ChunkStore interface, local or remote implementation.

Remote mode needs a URI plus an AWS-style key pair supplied out of band. When
any of them is missing, ``resolve("remote")`` returns a ``BackendUnavailable``
value instead of raising; callers treat it as "no remote corpora".
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from lodestar.config import LodestarConfig
from lodestar.exceptions import RemoteBackendUnconfigured
from lodestar.logging import logger
from lodestar.store.base import ChunkStore
from lodestar.store.local import SqliteChunkStore

MODES = ("local", "remote")
DEFAULT_REGION = "ap-south-1"


@dataclass(frozen=True)
class RemoteSettings:
    uri: str = ""
    region: str = DEFAULT_REGION
    access_key: str = ""
    secret_key: str = ""

    @classmethod
    def from_env(cls, cfg: LodestarConfig | None = None) -> RemoteSettings:
        """Read remote settings; env wins over the ``remote`` config section."""
        uri = os.environ.get("LODESTAR_REMOTE_URI") or (cfg.remote.uri if cfg else "")
        region = os.environ.get("AWS_REGION") or (cfg.remote.region if cfg else "") or DEFAULT_REGION
        return cls(
            uri=uri,
            region=region,
            access_key=os.environ.get("AWS_ACCESS_KEY_ID", ""),
            secret_key=os.environ.get("AWS_SECRET_ACCESS_KEY") or os.environ.get("AWS_SECRET_KEY", ""),
        )

    @property
    def missing(self) -> list[str]:
        names = []
        if not self.uri:
            names.append("LODESTAR_REMOTE_URI")
        if not self.access_key:
            names.append("AWS_ACCESS_KEY_ID")
        if not self.secret_key:
            names.append("AWS_SECRET_ACCESS_KEY")
        return names

    def require(self) -> RemoteSettings:
        """Return self, or raise RemoteBackendUnconfigured naming what is missing."""
        if self.missing:
            raise RemoteBackendUnconfigured(
                "Remote index is not configured; missing " + ", ".join(self.missing)
            )
        return self


@dataclass(frozen=True)
class BackendUnavailable:
    """Explicit "no store" result of ``BackendSelector.resolve``."""

    mode: str
    reason: str

    def __bool__(self) -> bool:
        return False


class BackendSelector:
    """Hand out the local or remote ChunkStore, one instance per mode.

    Args:
        db_path: Local SQLite index path.
        remote: Remote settings; read from the environment when omitted.
    """

    def __init__(self, db_path: Path | str, remote: RemoteSettings | None = None) -> None:
        self.db_path = Path(db_path).expanduser()
        self.remote = remote if remote is not None else RemoteSettings.from_env()
        self._stores: dict[str, ChunkStore] = {}

    @classmethod
    def from_config(cls, cfg: LodestarConfig) -> BackendSelector:
        return cls(cfg.storage.path, RemoteSettings.from_env(cfg))

    def resolve(self, mode: str) -> ChunkStore | BackendUnavailable:
        if mode not in MODES:
            raise ValueError(f"Unknown backend mode '{mode}'; expected one of {MODES}")
        if mode in self._stores:
            return self._stores[mode]
        if mode == "local":
            store: ChunkStore = SqliteChunkStore(self.db_path)
        else:
            try:
                settings = self.remote.require()
            except RemoteBackendUnconfigured as exc:
                logger.debug("%s", exc)
                return BackendUnavailable(mode=mode, reason=str(exc))
            # Imported lazily so local-only use never loads lancedb.
            from lodestar.store.remote import LanceChunkStore

            store = LanceChunkStore(
                settings.uri, settings.region, settings.access_key, settings.secret_key
            )
        self._stores[mode] = store
        return store

    def close(self) -> None:
        for store in self._stores.values():
            store.close()
        self._stores.clear()
