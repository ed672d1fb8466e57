"""Bundle submission protocol.

Module purpose and system role:
    - Package the pending bundle for the relay, submit it for the next
      block, simulate it and wait for an inclusion resolution.
    - Translate the resolution into a bundle lifecycle step: included and
      stale bundles are discarded, missed blocks leave the bundle for
      another attempt.

Integration points and dependencies:
    - Reads the live chain height from ``BundleStore.live_client``; the fork
      is never consulted here.
    - Talks to the relay through the tagged results in :mod:`.relay`.
    - Consults the kill switch before anything leaves the process.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bundle_proxy import metrics
from bundle_proxy.logger import StructuredLogger

from .bundle_store import BundleStore
from .codec import PendingTransaction
from .console import OperatorConsole
from .errors import (
    EmptyBundleError,
    MissedInclusionError,
    RelayError,
    StaleBundleError,
    SubmissionBlockedError,
)
from .kill_switch import kill_switch_triggered, record_kill_event
from .relay import (
    Relay,
    RelayRejected,
    Resolution,
    SimulationFailed,
    SimulationResponse,
)

LOG = StructuredLogger("submission")


@dataclass
class SubmissionAttempt:
    target_block: int
    payload: List[Dict[str, Any]]
    resolution: Optional[Resolution] = None


def build_payload(transactions: List[PendingTransaction]) -> List[Dict[str, Any]]:
    """Relay entries reuse each transaction's original signed envelope."""
    return [{"signed_transaction": tx.signed_transaction} for tx in transactions]


class BundleSubmitter:
    """Run one submission attempt for the pending bundle."""

    def __init__(
        self,
        store: BundleStore,
        relay: Relay,
        console: OperatorConsole | None = None,
    ) -> None:
        self.store = store
        self.relay = relay
        self.console = console or store.console

    def submit(self) -> SubmissionAttempt:
        """Submit the bundle and block until the relay resolves it.

        Returns the attempt when the bundle was included. Every other
        outcome raises a :class:`~.errors.BundleError` whose ``terminal``
        flag says whether the bundle was discarded.
        """

        with self.store.lock:
            transactions = self.store.snapshot()
            if not transactions:
                raise EmptyBundleError("no pending transactions to submit")

            if kill_switch_triggered():
                record_kill_event("submission", bundle_size=len(transactions))
                metrics.record_submission("blocked")
                self.console.write("Kill switch active; bundle not submitted.")
                raise SubmissionBlockedError("kill switch active")

            target_block = int(self.store.live_client.eth.block_number) + 1
            attempt = SubmissionAttempt(target_block, build_payload(transactions))
            self.console.write(
                f"Attempting to submit bundle at block number {target_block}"
            )

            sent = self.relay.send_bundle(attempt.payload, target_block)
            if isinstance(sent, RelayRejected):
                metrics.record_submission("relay_error")
                LOG.log(
                    "relay_rejected",
                    block=target_block,
                    risk_level="high",
                    error=sent.message,
                )
                self.console.write(f"Error submitting bundle: {sent.message}")
                raise RelayError(sent.error)

            LOG.log(
                "bundle_sent",
                block=target_block,
                bundle_hash=sent.bundle_hash,
                size=len(transactions),
            )
            self._report_simulation(self.relay.simulate(sent), target_block)

            attempt.resolution = self.relay.wait(sent, transactions)
            metrics.record_submission(attempt.resolution.value)
            LOG.log(
                "bundle_resolved",
                block=target_block,
                resolution=attempt.resolution.value,
                bundle_hash=sent.bundle_hash,
            )
            return self._resolve(attempt)

    def _report_simulation(self, sim: SimulationResponse, target_block: int) -> None:
        if isinstance(sim, SimulationFailed):
            LOG.log("simulation_error", block=target_block, sim_error=sim.error)
            self.console.write(f"Simulation produced an error: {sim.error}")
            return
        LOG.log(
            "simulation_result",
            block=target_block,
            reverted=sim.reverted,
            first_revert=sim.first_revert,
            total_gas_used=sim.total_gas_used,
        )
        self.console.write(
            f"Simulation result: {'failure' if sim.reverted else 'success'}"
        )

    def _resolve(self, attempt: SubmissionAttempt) -> SubmissionAttempt:
        if attempt.resolution is Resolution.INCLUDED:
            self.console.write("Bundle mined!")
            self.store.teardown()
            return attempt
        if attempt.resolution is Resolution.ACCOUNT_NONCE_TOO_HIGH:
            self.console.write(
                "Failed to mine bundle: account nonce too high. Resetting fork."
            )
            self.store.teardown()
            raise StaleBundleError(
                f"account nonce too high for block {attempt.target_block}"
            )
        self.console.write("Failed to include bundle in block; try again.")
        raise MissedInclusionError(
            f"block {attempt.target_block} passed without inclusion"
        )
