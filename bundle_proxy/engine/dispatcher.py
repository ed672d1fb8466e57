"""Route inbound JSON-RPC calls.

Every method is forwarded verbatim to the active execution context (the
live node while no bundle exists, the fork otherwise) except
``eth_sendRawTransaction``, which is captured into the pending bundle.
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence

from bundle_proxy import metrics
from bundle_proxy.logger import StructuredLogger

from .bundle_store import BundleStore
from .codec import decode_raw_transaction
from .errors import TransportError, UpstreamError

LOG = StructuredLogger("dispatcher")

SEND_RAW_TRANSACTION = "eth_sendRawTransaction"


def forward(client: Any, method: str, params: Sequence[Any]) -> Any:
    """Send ``method`` to ``client`` and unwrap the JSON-RPC response.

    Structured errors are raised as :class:`UpstreamError` with the error
    object untouched.
    """

    response = client.provider.make_request(method, list(params))
    if response.get("error") is not None:
        raise UpstreamError(dict(response["error"]))
    return response.get("result")


class RpcDispatcher:
    """Holds no state of its own; the bundle lives in :class:`BundleStore`."""

    def __init__(
        self,
        store: BundleStore,
        on_bundle_change: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.store = store
        self.on_bundle_change = on_bundle_change

    def dispatch(self, method: str, params: Optional[List[Any]] = None) -> Any:
        params = [] if params is None else params
        if not isinstance(params, list):
            raise TransportError("params must be an array")
        metrics.record_rpc(method)
        if method == SEND_RAW_TRANSACTION:
            return self._intercept(params)
        return forward(self.store.active_client, method, params)

    def _intercept(self, params: List[Any]) -> Any:
        if not params or not isinstance(params[0], str):
            raise TransportError("eth_sendRawTransaction expects a hex string")
        tx = decode_raw_transaction(params[0])
        with self.store.lock:
            result = self.store.add_transaction(tx)
            session = self.store.ensure_session()
            if result.changed and self.on_bundle_change is not None:
                self.on_bundle_change()
            LOG.log(
                "tx_forwarded_to_fork",
                tx_hash=tx.hash_hex,
                block=session.block_number,
                action=result.action.value,
            )
            return forward(session.client, SEND_RAW_TRANSACTION, params[:1])
