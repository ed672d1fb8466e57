"""JSON-RPC 2.0 HTTP endpoint for wallets.

Endpoints
=========
POST /         -- JSON-RPC request object or batch array.
GET /          -- Health check with the current bundle state.
GET /metrics   -- Prometheus metrics when metrics are enabled.

Structured upstream errors are returned to the caller untouched. Malformed
requests get a JSON-RPC parse/invalid-request error.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from flask import Flask, Response, jsonify, request

from bundle_proxy import metrics
from bundle_proxy.engine.bundle_store import BundleState
from bundle_proxy.engine.dispatcher import RpcDispatcher
from bundle_proxy.engine.errors import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    PARSE_ERROR,
    BundleProxyError,
    TransportError,
    UpstreamError,
)
from bundle_proxy.logger import StructuredLogger, log_error

LOGGER = StructuredLogger("rpc_server")


def _response(call_id: Any, *, result: Any = None, error: Dict[str, Any] | None = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"jsonrpc": "2.0", "id": call_id}
    if error is not None:
        body["error"] = error
    else:
        body["result"] = result
    return body


def handle_call(dispatcher: RpcDispatcher, call: Any) -> Dict[str, Any]:
    """Run a single JSON-RPC request object through ``dispatcher``."""

    if not isinstance(call, dict) or not isinstance(call.get("method"), str):
        metrics.record_rpc_error("invalid_request")
        LOGGER.log("invalid_request", risk_level="medium", request=call)
        call_id = call.get("id") if isinstance(call, dict) else None
        return _response(call_id, error={"code": INVALID_REQUEST, "message": "Invalid Request"})

    call_id = call.get("id")
    method = call["method"]
    try:
        result = dispatcher.dispatch(method, call.get("params"))
    except UpstreamError as exc:
        metrics.record_rpc_error("upstream")
        LOGGER.log("upstream_error", method=method, upstream=exc.error)
        return _response(call_id, error=exc.error)
    except TransportError as exc:
        metrics.record_rpc_error("transport")
        LOGGER.log("transport_error", method=method, risk_level="medium", error=str(exc))
        return _response(call_id, error=exc.to_rpc_error())
    except BundleProxyError as exc:
        metrics.record_rpc_error(type(exc).__name__)
        LOGGER.log("proxy_error", method=method, risk_level="high", error=str(exc))
        return _response(call_id, error=exc.to_rpc_error())
    except Exception as exc:
        metrics.record_rpc_error("internal")
        log_error("rpc_server", f"{type(exc).__name__}: {exc}", event="unhandled", method=method)
        return _response(call_id, error={"code": INTERNAL_ERROR, "message": "Internal error"})
    return _response(call_id, result=result)


def create_app(dispatcher: RpcDispatcher, *, enable_metrics: bool = False) -> Flask:
    app = Flask(__name__)

    @app.after_request
    def _cors(resp: Response) -> Response:
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        return resp

    @app.route("/", methods=["POST"])
    def _rpc() -> Any:
        try:
            body = json.loads(request.get_data(as_text=True))
        except ValueError as exc:
            metrics.record_rpc_error("parse")
            LOGGER.log("parse_error", risk_level="medium", error=str(exc))
            return jsonify(_response(None, error={"code": PARSE_ERROR, "message": "Parse error"}))
        if isinstance(body, list):
            if not body:
                return jsonify(
                    _response(None, error={"code": INVALID_REQUEST, "message": "Invalid Request"})
                )
            return jsonify([handle_call(dispatcher, call) for call in body])
        return jsonify(handle_call(dispatcher, body))

    @app.route("/", methods=["GET"])
    def _health() -> Any:
        store = dispatcher.store
        # unlocked read: a submission can hold the lock for several blocks
        bundle = store.bundle
        return jsonify(
            {
                "status": "ok",
                "bundle": (BundleState.ABSENT if bundle is None else BundleState.ACTIVE).value,
                "transactions": 0 if bundle is None else len(bundle),
            }
        )

    if enable_metrics:
        @app.route("/metrics")
        def _metrics() -> Any:
            body, content_type = metrics.render()
            return body, 200, {"Content-Type": content_type}

    return app
