"""Result types exchanged with the block-builder relay.

Every relay step returns a tagged value instead of raising, so the
submission protocol can branch on the outcome explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from .codec import PendingTransaction


class Resolution(str, Enum):
    INCLUDED = "included"
    ACCOUNT_NONCE_TOO_HIGH = "account_nonce_too_high"
    BLOCK_PASSED_WITHOUT_INCLUSION = "block_passed_without_inclusion"


@dataclass(frozen=True)
class BundleSubmitted:
    target_block: int
    payload: List[Dict[str, Any]]
    bundle_hash: Optional[str] = None
    handle: Any = None


@dataclass(frozen=True)
class RelayRejected:
    error: Dict[str, Any]

    @property
    def message(self) -> str:
        return str(self.error.get("message", self.error))


@dataclass(frozen=True)
class SimulationSucceeded:
    results: List[Dict[str, Any]] = field(default_factory=list)
    first_revert: Optional[Dict[str, Any]] = None
    total_gas_used: Optional[int] = None

    @property
    def reverted(self) -> bool:
        return self.first_revert is not None


@dataclass(frozen=True)
class SimulationFailed:
    error: Dict[str, Any]


RelayResponse = Union[BundleSubmitted, RelayRejected]
SimulationResponse = Union[SimulationSucceeded, SimulationFailed]


class Relay(Protocol):
    def send_bundle(
        self, payload: List[Dict[str, Any]], target_block: int
    ) -> RelayResponse:
        ...

    def simulate(self, submitted: BundleSubmitted) -> SimulationResponse:
        ...

    def wait(
        self, submitted: BundleSubmitted, transactions: Sequence[PendingTransaction]
    ) -> Resolution:
        ...
