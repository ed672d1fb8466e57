"""Error taxonomy for the bundle proxy.

Errors returned to JSON-RPC callers derive from :class:`BundleProxyError`
and know how to render themselves as a JSON-RPC error object. Submission
failures derive from :class:`BundleError` and carry a ``terminal`` flag:
terminal failures discard the bundle, non-terminal ones keep it for
another attempt.
"""

from __future__ import annotations

from typing import Any, Dict

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000


class BundleProxyError(Exception):
    """Base class for errors surfaced to JSON-RPC callers."""

    code = SERVER_ERROR

    def to_rpc_error(self) -> Dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class UpstreamError(BundleProxyError):
    """Structured error returned by the live node or the fork."""

    def __init__(self, error: Dict[str, Any]) -> None:
        self.error = error
        super().__init__(error.get("message", "upstream error"))

    @property
    def code(self) -> int:  # type: ignore[override]
        return int(self.error.get("code", SERVER_ERROR))

    def to_rpc_error(self) -> Dict[str, Any]:
        return self.error


class TransportError(BundleProxyError):
    """Malformed inbound request or undecodable raw transaction."""

    def __init__(self, message: str, code: int = INVALID_PARAMS) -> None:
        super().__init__(message)
        self.code = code


class ForkUnavailableError(BundleProxyError):
    """The forked execution context could not be created."""


class BundleError(Exception):
    """Submission attempt that did not end with inclusion."""

    terminal = False


class RelayError(BundleError):
    """Relay rejected the bundle outright."""

    def __init__(self, error: Dict[str, Any]) -> None:
        self.error = error
        super().__init__(error.get("message", "relay error"))


class StaleBundleError(BundleError):
    """A sender nonce moved past the bundle (AccountNonceTooHigh)."""

    terminal = True


class MissedInclusionError(BundleError):
    """Target block passed without the bundle (BlockPassedWithoutInclusion)."""


class EmptyBundleError(BundleError):
    """Nothing to submit."""


class SubmissionBlockedError(BundleError):
    """Kill switch is active."""
