"""Process-scoped session context.

A ``Session`` is created once per process (or per CLI invocation), opened and
closed explicitly, and handed to the components that report state. It carries
the host type, the capability table resolved at startup and an in-memory log
of recorded events.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from lodestar.index.embeddings import CapabilityTable
from lodestar.logging import logger


@dataclass
class SessionEvent:
    name: str
    props: dict[str, Any]
    at: str


@dataclass
class Session:
    host_type: str = "cli"
    capabilities: CapabilityTable = field(default_factory=CapabilityTable)
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    events: list[SessionEvent] = field(default_factory=list)
    is_open: bool = False

    def open(self) -> Session:
        self.is_open = True
        logger.debug("Session %s opened (host=%s)", self.session_id, self.host_type)
        return self

    def close(self) -> None:
        if self.is_open:
            logger.debug("Session %s closed after %d events", self.session_id, len(self.events))
        self.is_open = False

    def __enter__(self) -> Session:
        return self.open()

    def __exit__(self, *_: object) -> None:
        self.close()

    def supports(self, provider_id: str) -> bool:
        return self.capabilities.supported(provider_id, self.host_type)

    def record(self, event: str, **props: Any) -> None:
        """Keep *event* with its properties and log it at debug level."""
        self.events.append(
            SessionEvent(name=event, props=props, at=datetime.now(timezone.utc).isoformat())
        )
        logger.debug("event %s %s", event, props)
