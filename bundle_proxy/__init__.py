"""Transaction-bundling JSON-RPC proxy.

Sits between a wallet and an execution node, collects signed
transactions into a pending bundle on a local fork and submits the
bundle to a block-builder relay once the operator approves it.
"""

__version__ = "0.1.0"
