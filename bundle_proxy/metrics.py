"""Prometheus metrics for the bundle proxy.

Counters are module-level and shared by every component in the process;
the RPC server exposes them on ``/metrics`` when enabled.
"""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

RPC_REQUESTS = Counter(
    "bundle_proxy_rpc_requests_total", "Inbound JSON-RPC calls", ["method"]
)
RPC_ERRORS = Counter(
    "bundle_proxy_rpc_errors_total", "JSON-RPC calls answered with an error", ["kind"]
)
TRANSACTIONS = Counter(
    "bundle_proxy_transactions_total",
    "Intercepted raw transactions by bundle action",
    ["action"],
)
FORK_SESSIONS = Counter("bundle_proxy_fork_sessions_total", "Fork sessions created")
BUNDLE_SIZE = Gauge("bundle_proxy_bundle_size", "Transactions in the pending bundle")
SUBMISSIONS = Counter(
    "bundle_proxy_submissions_total", "Bundle submission attempts", ["outcome"]
)
KILL_EVENTS = Counter("bundle_proxy_kill_events_total", "Kill switch events")


def record_rpc(method: str) -> None:
    RPC_REQUESTS.labels(method).inc()


def record_rpc_error(kind: str) -> None:
    RPC_ERRORS.labels(kind).inc()


def record_transaction(action: str, bundle_size: int) -> None:
    TRANSACTIONS.labels(action).inc()
    BUNDLE_SIZE.set(bundle_size)


def record_fork_created() -> None:
    FORK_SESSIONS.inc()
    BUNDLE_SIZE.set(0)


def record_fork_closed() -> None:
    BUNDLE_SIZE.set(0)


def record_submission(outcome: str) -> None:
    SUBMISSIONS.labels(outcome).inc()


def record_kill_event_metric() -> None:
    KILL_EVENTS.inc()


def render() -> tuple[bytes, str]:
    """Return the exposition body and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
