"""Decode signed transaction envelopes received over ``eth_sendRawTransaction``.

Only the fields the bundle needs are extracted: sender, nonce, recipient
and hash. The original signed bytes are kept untouched so the relay payload
is exactly what the wallet signed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

import rlp
from eth_account import Account
from eth_utils import keccak, to_checksum_address, to_hex
from hexbytes import HexBytes

from .errors import TransportError

LEGACY_TYPE = 0
BLOB_TYPE = 3

# (nonce index, recipient index) inside the RLP payload of each typed envelope
_TYPED_FIELDS = {
    1: (1, 4),  # EIP-2930
    2: (1, 5),  # EIP-1559
    3: (1, 5),  # EIP-4844
    4: (1, 5),  # EIP-7702
}
_LEGACY_FIELDS = (0, 3)


@dataclass(frozen=True)
class PendingTransaction:
    """A decoded signed transaction held in the pending bundle."""

    raw: bytes
    hash: bytes
    sender: str
    nonce: int
    to: Optional[str]
    tx_type: int = LEGACY_TYPE

    @property
    def hash_hex(self) -> str:
        return to_hex(self.hash)

    @property
    def signed_transaction(self) -> str:
        """Original signed envelope as 0x-hex, ready for the relay."""
        return to_hex(self.raw)

    def same_slot(self, other: "PendingTransaction") -> bool:
        return self.sender == other.sender and self.nonce == other.nonce


def _as_int(value: bytes) -> int:
    return int.from_bytes(value, "big")


def _as_address(value: bytes) -> Optional[str]:
    if not value:
        return None
    return to_checksum_address(value)


def _split(data: bytes) -> tuple[int, List[Any], bytes]:
    """Return ``(type, fields, canonical envelope)`` for ``data``."""

    first = data[0]
    if first >= 0xC0:
        return LEGACY_TYPE, rlp.decode(data), data
    if first not in _TYPED_FIELDS:
        raise TransportError(f"unsupported transaction type 0x{first:02x}")
    fields = rlp.decode(data[1:])
    if first == BLOB_TYPE and fields and isinstance(fields[0], list):
        # network form: [tx_payload_body, blobs, commitments, proofs]
        fields = fields[0]
        return first, fields, bytes([first]) + rlp.encode(fields)
    return first, fields, data


def decode_raw_transaction(raw: str | bytes) -> PendingTransaction:
    """Decode a signed transaction envelope.

    Raises :class:`TransportError` when ``raw`` is not a decodable signed
    transaction.
    """

    try:
        data = bytes(HexBytes(raw))
    except (TypeError, ValueError) as exc:
        raise TransportError(f"raw transaction is not hex: {exc}") from exc
    if not data:
        raise TransportError("empty raw transaction")

    try:
        tx_type, fields, envelope = _split(data)
        nonce_idx, to_idx = _TYPED_FIELDS.get(tx_type, _LEGACY_FIELDS)
        nonce = _as_int(fields[nonce_idx])
        to = _as_address(fields[to_idx])
        sender = Account.recover_transaction(envelope)
    except TransportError:
        raise
    except Exception as exc:
        raise TransportError(f"could not decode raw transaction: {exc}") from exc

    return PendingTransaction(
        raw=data,
        hash=keccak(envelope),
        sender=sender,
        nonce=nonce,
        to=to,
        tx_type=tx_type,
    )
