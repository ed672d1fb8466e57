"""Process-wide proxy configuration.

Values are resolved once at startup from, in increasing precedence:
dataclass defaults, a YAML file, ``BUNDLE_PROXY_*`` environment variables
and command-line overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

ENV_PREFIX = "BUNDLE_PROXY_"
_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ProxyConfig:
    rpc_url: str = "http://localhost:8545/"
    port: int = 9545
    host: str = "0.0.0.0"
    relay_url: str = "https://relay.flashbots.net"
    anvil_path: str = "anvil"
    fork_block_time: int = 1
    fork_startup_timeout: float = 15.0
    inclusion_poll_interval: float = 1.0
    enable_metrics: bool = False


def _coerce(name: str, default: Any, value: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE
    try:
        return type(default)(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid value for {name}: {value!r}") from exc


def _from_mapping(base: ProxyConfig, data: Mapping[str, Any]) -> ProxyConfig:
    known = {f.name: getattr(base, f.name) for f in fields(ProxyConfig)}
    unknown = set(data) - set(known)
    if unknown:
        raise ValueError(f"unknown config keys: {', '.join(sorted(unknown))}")
    values = {k: _coerce(k, known[k], v) for k, v in data.items() if v is not None}
    return replace(base, **values)


def load_config(
    path: str | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> ProxyConfig:
    """Build a :class:`ProxyConfig` from file, environment and overrides."""

    config = ProxyConfig()
    if path:
        data = yaml.safe_load(Path(path).read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"config file {path} must contain a mapping")
        config = _from_mapping(config, data)

    env = os.environ if env is None else env
    from_env: Dict[str, Any] = {}
    for f in fields(ProxyConfig):
        key = ENV_PREFIX + f.name.upper()
        if key in env:
            from_env[f.name] = env[key]
    config = _from_mapping(config, from_env)

    if overrides:
        config = _from_mapping(config, overrides)
    return config
