"""Interactive confirmation of the pending bundle.

Module purpose and system role:
    - Re-render the bundle listing after every change and ask the operator
      to (S)ubmit or (R)evert.
    - A change cancels the outstanding question: each rendering bumps a
      generation counter. An answer is tagged with the generation on
      screen when its line arrives, so a read already waiting carries over
      to the new listing, while an answer overtaken by a later rendering
      is discarded instead of applied to the new bundle.

Integration points and dependencies:
    - Shares ``BundleStore.lock`` through a condition variable, so
      rendering, decisions and bundle mutations never interleave.
    - ``BundleSubmitter`` runs the submission when the operator picks
      ``s``; its error's ``terminal`` flag decides whether to re-prompt.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import List, Optional

from bundle_proxy.logger import StructuredLogger, log_error

from .bundle_store import BundleStore
from .codec import PendingTransaction
from .console import OperatorConsole
from .errors import BundleError
from .submission import BundleSubmitter

LOG = StructuredLogger("confirmation")

PROMPT = "(S)ubmit, (R)evert?"


class PromptState(str, Enum):
    IDLE = "idle"
    AWAITING_DECISION = "awaiting_decision"
    PROCESSING = "processing"


def render_listing(transactions: List[PendingTransaction]) -> List[str]:
    lines = []
    for i, tx in enumerate(transactions, start=1):
        lines.append(f"{i}. {tx.sender} -> {tx.to or '<contract creation>'}")
    return lines


class ConfirmationPrompt:
    """Operator prompt driven by bundle changes."""

    def __init__(
        self,
        store: BundleStore,
        submitter: BundleSubmitter,
        console: OperatorConsole | None = None,
    ) -> None:
        self.store = store
        self.submitter = submitter
        self.console = console or store.console
        self._cond = threading.Condition(store.lock)
        self.generation = 0
        self.state = PromptState.IDLE
        self.listing: List[PendingTransaction] = []
        self._closed = False
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    def refresh(self) -> int:
        """Cancel any outstanding question and present the current bundle."""
        with self._cond:
            self.generation += 1
            transactions = self.store.snapshot()
            if transactions is None:
                self.listing = []
                self.state = PromptState.IDLE
            else:
                self.listing = transactions
                for line in render_listing(transactions):
                    self.console.write(line)
                self.console.prompt(PROMPT)
                self.state = PromptState.AWAITING_DECISION
            self._cond.notify_all()
            return self.generation

    def _set_idle(self) -> None:
        self.state = PromptState.IDLE
        self.listing = []
        self._cond.notify_all()

    def answer(self, generation: int, response: str) -> bool:
        """Apply the operator's ``response`` to prompt ``generation``.

        Returns ``False`` when the answer belongs to a prompt that has
        since been replaced and was therefore ignored.
        """

        with self._cond:
            if generation != self.generation or self.state is not PromptState.AWAITING_DECISION:
                LOG.log(
                    "stale_answer_discarded",
                    answered=generation,
                    current=self.generation,
                )
                self.console.write(
                    "Bundle changed before your answer arrived; review the listing above."
                )
                return False

            choice = response.strip().lower()
            if choice == "s":
                self.state = PromptState.PROCESSING
                try:
                    self.submitter.submit()
                except BundleError as exc:
                    LOG.log(
                        "submission_failed",
                        reason=type(exc).__name__,
                        terminal=exc.terminal,
                        detail=str(exc),
                    )
                    if not exc.terminal:
                        self.refresh()
                        return True
                self._set_idle()
            elif choice == "r":
                self.console.write("Reverting.")
                self.store.teardown()
                LOG.log("bundle_reverted")
                self._set_idle()
            else:
                self.refresh()
            return True

    # ------------------------------------------------------------------
    def wait_for_prompt(self, timeout: float | None = None) -> Optional[int]:
        """Block until a question is outstanding and return its generation."""
        with self._cond:
            ready = self._cond.wait_for(
                lambda: self._closed or self.state is PromptState.AWAITING_DECISION,
                timeout,
            )
            if not ready or self._closed:
                return None
            return self.generation

    def serve(self) -> None:
        """Read operator answers until input ends or :meth:`close` is called."""
        while True:
            if self.wait_for_prompt() is None:
                return
            line = self.console.read_line()
            # the answer belongs to the listing on screen when the line arrived
            arrived = self.generation
            if line is None:
                LOG.log("console_closed")
                self.close()
                return
            try:
                self.answer(arrived, line)
            except Exception as exc:
                log_error("confirmation", str(exc), event="decision_fail")
                self.console.write(f"Unexpected error: {exc}")
                self.refresh()

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(
            target=self.serve, name="bundle-confirmation", daemon=True
        )
        self._thread.start()
        return self._thread

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()
