"""JSON-RPC HTTP endpoint."""

from eth_account import Account
from eth_utils import to_hex

from adapters.rpc_server import create_app
from bundle_proxy.engine.dispatcher import RpcDispatcher
from bundle_proxy.engine.errors import ForkUnavailableError

from dummies import DummyForkFactory, make_store


def _client(**kw):
    store, live, factory = make_store(**kw)
    app = create_app(RpcDispatcher(store), enable_metrics=True)
    return app.test_client(), store, live, factory


def _raw_tx():
    signed = Account.sign_transaction(
        {
            "chainId": 1,
            "nonce": 0,
            "gasPrice": 1_000_000_000,
            "gas": 21000,
            "to": Account.from_key("0x" + "77" * 32).address,
            "value": 1,
            "data": b"",
        },
        "0x" + "66" * 32,
    )
    return to_hex(getattr(signed, "raw_transaction", None) or signed.rawTransaction)


def test_result_response():
    client, _, _, _ = _client()
    resp = client.post("/", json={"jsonrpc": "2.0", "id": 7, "method": "eth_chainId", "params": []})
    assert resp.status_code == 200
    assert resp.get_json() == {"jsonrpc": "2.0", "id": 7, "result": "live:eth_chainId"}
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


def test_upstream_error_passthrough():
    client, _, live, _ = _client()
    error = {"code": 3, "message": "execution reverted", "data": "0x"}
    live.provider.responses["eth_estimateGas"] = {"jsonrpc": "2.0", "id": 1, "error": error}
    resp = client.post("/", json={"id": "a", "method": "eth_estimateGas", "params": [{}]})
    assert resp.get_json() == {"jsonrpc": "2.0", "id": "a", "error": error}


def test_parse_error():
    client, _, _, _ = _client()
    resp = client.post("/", data="{not json", content_type="application/json")
    body = resp.get_json()
    assert body["error"]["code"] == -32700
    assert body["id"] is None


def test_invalid_request():
    client, _, _, _ = _client()
    resp = client.post("/", json={"id": 3, "params": []})
    assert resp.get_json()["error"]["code"] == -32600
    assert resp.get_json()["id"] == 3


def test_undecodable_transaction_gets_invalid_params():
    client, _, _, factory = _client()
    resp = client.post("/", json={"id": 1, "method": "eth_sendRawTransaction", "params": ["0x1234"]})
    assert resp.get_json()["error"]["code"] == -32602
    assert factory.created == []


def test_fork_failure_is_reported():
    client, store, _, _ = _client(fork_factory=DummyForkFactory(fail=ForkUnavailableError("no anvil")))
    resp = client.post("/", json={"id": 1, "method": "eth_sendRawTransaction", "params": [_raw_tx()]})
    body = resp.get_json()
    assert body["error"] == {"code": -32000, "message": "no anvil"}
    assert store.bundle is None


def test_unexpected_error_is_internal(monkeypatch):
    client, store, live, _ = _client()

    def boom(method, params):
        raise ConnectionError("node down")

    monkeypatch.setattr(live.provider, "make_request", boom)
    resp = client.post("/", json={"id": 9, "method": "eth_blockNumber", "params": []})
    assert resp.get_json()["error"]["code"] == -32603


def test_batch_and_health():
    client, _, _, factory = _client(live_block=12)
    resp = client.post(
        "/",
        json=[
            {"id": 1, "method": "eth_blockNumber", "params": []},
            {"id": 2, "method": "eth_sendRawTransaction", "params": [_raw_tx()]},
        ],
    )
    body = resp.get_json()
    assert [r["id"] for r in body] == [1, 2]
    assert body[1]["result"] == "fork@12:eth_sendRawTransaction"
    assert len(factory.created) == 1

    health = client.get("/").get_json()
    assert health == {"status": "ok", "bundle": "active", "transactions": 1}


def test_empty_batch_is_invalid():
    client, _, _, _ = _client()
    assert client.post("/", json=[]).get_json()["error"]["code"] == -32600


def test_metrics_endpoint():
    client, _, _, _ = _client()
    client.post("/", json={"id": 1, "method": "eth_chainId", "params": []})
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert b"bundle_proxy_rpc_requests_total" in resp.data
