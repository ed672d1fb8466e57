"""Adapters for the proxy's external collaborators.

Submodules are imported directly (``adapters.rpc_server``,
``adapters.anvil_fork``, ``adapters.flashbots_relay``) so the engine can be
used without pulling in every third-party stack.
"""
