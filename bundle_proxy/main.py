"""Command-line entry point: wire the proxy together and serve it."""

from __future__ import annotations

import argparse
import atexit
from functools import partial
from typing import List, Optional

from flask import Flask
from web3 import Web3

from adapters.anvil_fork import AnvilFork
from adapters.flashbots_relay import FlashbotsRelay
from adapters.rpc_server import create_app
from bundle_proxy.config import ProxyConfig, load_config
from bundle_proxy.engine.bundle_store import BundleStore
from bundle_proxy.engine.confirmation import ConfirmationPrompt
from bundle_proxy.engine.console import OperatorConsole
from bundle_proxy.engine.dispatcher import RpcDispatcher
from bundle_proxy.engine.fork_session import ForkSessionManager
from bundle_proxy.engine.submission import BundleSubmitter
from bundle_proxy.logger import StructuredLogger

LOGGER = StructuredLogger("bundle_proxy")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Collect wallet transactions into a bundle and submit it to a relay"
    )
    parser.add_argument("-r", "--rpc", dest="rpc_url", help="RPC URL to proxy to")
    parser.add_argument("-p", "--port", type=int, help="Port number to listen on")
    parser.add_argument("--host", help="Interface to bind")
    parser.add_argument("--relay", dest="relay_url", help="Bundle relay URL")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument(
        "--metrics",
        dest="enable_metrics",
        action="store_true",
        default=None,
        help="Expose /metrics",
    )
    return parser


def build_proxy(
    config: ProxyConfig, console: OperatorConsole | None = None
) -> tuple[Flask, ConfirmationPrompt, BundleStore]:
    console = console or OperatorConsole()
    live = Web3(Web3.HTTPProvider(config.rpc_url))
    fork_factory = partial(
        AnvilFork.start,
        config.rpc_url,
        block_time=config.fork_block_time,
        anvil_path=config.anvil_path,
        startup_timeout=config.fork_startup_timeout,
    )
    store = BundleStore(ForkSessionManager(live, fork_factory), console)
    relay = FlashbotsRelay(
        Web3(Web3.HTTPProvider(config.rpc_url)),
        config.relay_url,
        poll_interval=config.inclusion_poll_interval,
    )
    prompt = ConfirmationPrompt(store, BundleSubmitter(store, relay, console), console)
    dispatcher = RpcDispatcher(store, on_bundle_change=prompt.refresh)
    app = create_app(dispatcher, enable_metrics=config.enable_metrics)
    return app, prompt, store


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    overrides = {
        k: v for k, v in vars(args).items() if k != "config" and v is not None
    }
    config = load_config(args.config, overrides=overrides)
    app, prompt, store = build_proxy(config)
    atexit.register(store.teardown)
    prompt.start()
    LOGGER.log("start", port=config.port, rpc=config.rpc_url, relay=config.relay_url)
    store.console.write(f"Listening on port {config.port}")
    app.run(host=config.host, port=config.port, threaded=True)


if __name__ == "__main__":  # pragma: no cover - manual startup
    main()
