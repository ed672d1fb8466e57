"""Pending bundle state and the lock that serializes every change to it.

Module purpose and system role:
    - ``PendingBundle`` keeps transactions in submission order with at most
      one entry per (sender, nonce).
    - ``BundleStore`` owns the bundle together with its fork session; the
      bundle is either absent (calls go to the live node) or active (calls
      go to the fork).

Integration points and dependencies:
    - ``ForkSessionManager`` creates the fork when the first transaction
      arrives and destroys it on revert or terminal resolution.
    - The dispatcher, confirmation prompt and submitter all hold
      ``BundleStore.lock`` while they touch the bundle.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

from bundle_proxy import metrics
from bundle_proxy.logger import StructuredLogger

from .codec import PendingTransaction
from .console import OperatorConsole
from .fork_session import ForkSession, ForkSessionManager

LOG = StructuredLogger("bundle_store")


class BundleState(str, Enum):
    ABSENT = "absent"
    ACTIVE = "active"


class UpsertAction(str, Enum):
    APPENDED = "appended"
    REPLACED = "replaced"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class UpsertResult:
    action: UpsertAction
    index: int
    replaced: Optional[PendingTransaction] = None
    earlier_position: bool = False

    @property
    def changed(self) -> bool:
        return self.action is not UpsertAction.DUPLICATE


@dataclass
class PendingBundle:
    transactions: List[PendingTransaction] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.transactions)

    def upsert(self, tx: PendingTransaction) -> UpsertResult:
        """Insert ``tx`` or replace the entry holding its (sender, nonce).

        Entries are scanned newest first so the most recent one for a
        sender/nonce pair wins.
        """

        last = len(self.transactions) - 1
        for i in range(last, -1, -1):
            current = self.transactions[i]
            if not current.same_slot(tx):
                continue
            if current.hash == tx.hash:
                return UpsertResult(UpsertAction.DUPLICATE, i)
            self.transactions[i] = tx
            return UpsertResult(
                UpsertAction.REPLACED, i, replaced=current, earlier_position=i < last
            )
        self.transactions.append(tx)
        return UpsertResult(UpsertAction.APPENDED, len(self.transactions) - 1)


class BundleStore:
    """Single owner of the pending bundle and its fork session."""

    def __init__(
        self, forks: ForkSessionManager, console: OperatorConsole | None = None
    ) -> None:
        self.forks = forks
        self.console = console or OperatorConsole()
        self.lock = threading.RLock()
        self.bundle: Optional[PendingBundle] = None

    # ------------------------------------------------------------------
    @property
    def live_client(self) -> Any:
        return self.forks.live_client

    @property
    def session(self) -> Optional[ForkSession]:
        return self.forks.session

    @property
    def state(self) -> BundleState:
        return BundleState.ABSENT if self.bundle is None else BundleState.ACTIVE

    @property
    def active_client(self) -> Any:
        """Execution context that answers non-submission calls right now."""
        session = self.forks.session
        return self.forks.live_client if session is None else session.client

    # ------------------------------------------------------------------
    def _activate(self) -> Tuple[ForkSession, PendingBundle]:
        with self.lock:
            session = self.forks.session
            if self.bundle is not None and session is not None:
                return session, self.bundle
            session = self.forks.open()
            bundle = self.bundle = PendingBundle()
            self.console.write(f"Created fork at block {session.block_number}")
            return session, bundle

    def ensure_session(self) -> ForkSession:
        """Return the fork session, creating it and an empty bundle if absent."""
        return self._activate()[0]

    def teardown(self) -> None:
        """Discard the fork and every accumulated transaction."""
        with self.lock:
            had_bundle = self.bundle is not None
            self.bundle = None
            self.forks.close()
            if had_bundle:
                LOG.log("bundle_discarded")

    def add_transaction(self, tx: PendingTransaction) -> UpsertResult:
        with self.lock:
            _, bundle = self._activate()
            result = bundle.upsert(tx)
            metrics.record_transaction(result.action.value, len(bundle))
            LOG.log(
                f"tx_{result.action.value}",
                tx_hash=tx.hash_hex,
                sender=tx.sender,
                nonce=tx.nonce,
                index=result.index,
                replaced=result.replaced.hash_hex if result.replaced else None,
            )
            if result.earlier_position:
                self.console.write("Warning: Replacing TX from earlier in the bundle")
            return result

    def snapshot(self) -> Optional[List[PendingTransaction]]:
        """Copy of the current transactions, or ``None`` when absent."""
        with self.lock:
            if self.bundle is None:
                return None
            return list(self.bundle.transactions)
