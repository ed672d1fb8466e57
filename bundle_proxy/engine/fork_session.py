"""Lifecycle of the ephemeral forked execution context."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from bundle_proxy import metrics
from bundle_proxy.logger import StructuredLogger

LOG = StructuredLogger("fork_session")


class ForkHandle(Protocol):
    """What a fork collaborator must provide."""

    w3: Any

    def close(self) -> None:
        ...


ForkFactory = Callable[[int], ForkHandle]


@dataclass
class ForkSession:
    """A forked context pinned at ``block_number`` of the live chain."""

    block_number: int
    handle: ForkHandle
    created_at: float = field(default_factory=time.time)

    @property
    def client(self) -> Any:
        return self.handle.w3


class ForkSessionManager:
    """Create and tear down at most one fork session at a time.

    Callers serialize access; the manager itself only enforces that a
    second session is never opened on top of a live one.
    """

    def __init__(self, live_client: Any, fork_factory: ForkFactory) -> None:
        self.live_client = live_client
        self.fork_factory = fork_factory
        self.session: Optional[ForkSession] = None

    def open(self) -> ForkSession:
        if self.session is not None:
            raise RuntimeError("fork session already open")
        block_number = int(self.live_client.eth.block_number)
        handle = self.fork_factory(block_number)
        self.session = ForkSession(block_number, handle)
        metrics.record_fork_created()
        LOG.log("fork_created", block=block_number)
        return self.session

    def close(self) -> None:
        session, self.session = self.session, None
        if session is None:
            return
        try:
            session.handle.close()
        finally:
            metrics.record_fork_closed()
            LOG.log(
                "fork_closed",
                block=session.block_number,
                lifetime=round(time.time() - session.created_at, 3),
            )
