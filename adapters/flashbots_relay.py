"""Flashbots relay collaborator.

Bundles are signed for relay authentication with a throwaway identity
generated at startup; it never signs the bundled transactions themselves.
Inclusion is resolved by watching the live chain until the target block
has been produced.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount
from flashbots import flashbot
from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from bundle_proxy.engine.codec import PendingTransaction
from bundle_proxy.engine.relay import (
    BundleSubmitted,
    RelayRejected,
    RelayResponse,
    Resolution,
    SimulationFailed,
    SimulationResponse,
    SimulationSucceeded,
)
from bundle_proxy.logger import StructuredLogger

LOGGER = StructuredLogger("flashbots_relay")

DEFAULT_RELAY_URL = "https://relay.flashbots.net"


def _error_payload(exc: Exception) -> Dict[str, Any]:
    """JSON-RPC error object carried by ``exc`` (web3 raises ``ValueError(dict)``)."""
    arg = exc.args[0] if exc.args else str(exc)
    if isinstance(arg, dict):
        return dict(arg)
    return {"code": -32000, "message": str(arg)}


class FlashbotsRelay:
    """Submit bundles through the ``flashbots`` web3 middleware."""

    def __init__(
        self,
        w3: Web3,
        relay_url: str = DEFAULT_RELAY_URL,
        *,
        auth_account: LocalAccount | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        self.w3 = w3
        self.relay_url = relay_url
        self.auth_account = auth_account or Account.create()
        self.poll_interval = poll_interval
        flashbot(self.w3, self.auth_account, endpoint_uri=relay_url)
        LOGGER.log("relay_attached", relay=relay_url, auth=self.auth_account.address)

    # ------------------------------------------------------------------
    def send_bundle(self, payload: List[Dict[str, Any]], target_block: int) -> RelayResponse:
        try:
            response = self.w3.flashbots.send_bundle(
                payload, target_block_number=target_block
            )
        except (ValueError, Web3Exception) as exc:
            error = _error_payload(exc)
            LOGGER.log("send_rejected", block=target_block, error=str(error.get("message")))
            return RelayRejected(error)
        bundle_hash = response.bundle_hash()
        if isinstance(bundle_hash, bytes):
            bundle_hash = Web3.to_hex(bundle_hash)
        return BundleSubmitted(target_block, payload, bundle_hash, response)

    def simulate(self, submitted: BundleSubmitted) -> SimulationResponse:
        try:
            result = self.w3.flashbots.simulate(
                submitted.payload, block_tag=submitted.target_block
            )
        except (ValueError, Web3Exception) as exc:
            return SimulationFailed(_error_payload(exc))
        results = list(result.get("results", []))
        first_revert = next(
            (r for r in results if r.get("revert") or r.get("error")), None
        )
        return SimulationSucceeded(results, first_revert, result.get("totalGasUsed"))

    def wait(
        self, submitted: BundleSubmitted, transactions: Sequence[PendingTransaction]
    ) -> Resolution:
        """Block until the target block exists and classify the outcome."""
        while True:
            if int(self.w3.eth.block_number) >= submitted.target_block:
                if self._included(submitted.target_block, transactions):
                    return Resolution.INCLUDED
                if self._nonce_too_high(transactions):
                    return Resolution.ACCOUNT_NONCE_TOO_HIGH
                return Resolution.BLOCK_PASSED_WITHOUT_INCLUSION
            if self._nonce_too_high(transactions):
                # the target block may have landed since the height was read
                if self._included(submitted.target_block, transactions):
                    return Resolution.INCLUDED
                return Resolution.ACCOUNT_NONCE_TOO_HIGH
            time.sleep(self.poll_interval)

    # ------------------------------------------------------------------
    def _included(self, block: int, transactions: Sequence[PendingTransaction]) -> bool:
        for tx in transactions:
            try:
                receipt = self.w3.eth.get_transaction_receipt(tx.hash_hex)
            except TransactionNotFound:
                return False
            if int(receipt["blockNumber"]) != block:
                return False
        return True

    def _nonce_too_high(self, transactions: Sequence[PendingTransaction]) -> bool:
        for tx in transactions:
            if int(self.w3.eth.get_transaction_count(tx.sender, "latest")) > tx.nonce:
                return True
        return False
