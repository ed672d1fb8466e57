"""Structured JSON logger for bundle proxy modules.

Module purpose and system role:
    - One JSON object per line with a stable schema for every module.
    - Error entries are mirrored to a shared error log for triage.

Integration points and dependencies:
    - ``requests`` posts high-risk events to ``OPS_ALERT_WEBHOOK`` URLs.
    - Other modules create a module-level ``StructuredLogger``.

Simulation/test hooks:
    - ``register_hook`` lets tests observe entries without reading files.
    - ``LOG_DIR`` and ``ERROR_LOG_FILE`` redirect all output.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List

import requests


def log_dir() -> Path:
    return Path(os.getenv("LOG_DIR", "logs"))


def _error_log_file() -> Path:
    """Return the configured error log file path."""

    return Path(os.getenv("ERROR_LOG_FILE", str(log_dir() / "errors.log")))


def log_error(
    module: str,
    error: str,
    *,
    tx_hash: str = "",
    block: int | str | None = None,
    trace_id: str | None = None,
    **extra: Any,
) -> None:
    """Append a structured error entry to the shared error log."""

    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "module": module,
        "error": error,
        "tx_hash": tx_hash,
        "block": "" if block is None else block,
        "trace_id": os.getenv("TRACE_ID", "") if trace_id is None else trace_id,
        **extra,
    }
    path = _error_log_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a") as fh:
        fh.write(json.dumps(entry, default=str) + "\n")


_HOOKS: List[Callable[[Dict[str, Any]], None]] = []


def _alert_webhooks() -> List[str]:
    return [w for w in os.getenv("OPS_ALERT_WEBHOOK", "").split(",") if w]


def _send_alert(module: str, message: str) -> None:
    for url in _alert_webhooks():
        try:  # pragma: no cover - network
            requests.post(url, json={"text": message}, timeout=5)
        except requests.RequestException as exc:
            log_error(module, f"alert webhook failed: {exc}", event="alert_fail")


def register_hook(func: Callable[[Dict[str, Any]], None]) -> None:
    """Register ``func`` to receive every log entry."""
    _HOOKS.append(func)


def unregister_hook(func: Callable[[Dict[str, Any]], None]) -> None:
    if func in _HOOKS:
        _HOOKS.remove(func)


class StructuredLogger:
    """Write structured JSON logs to file and broadcast to hooks."""

    def __init__(self, module: str, log_file: str | None = None) -> None:
        self.module = module
        self._log_file = log_file

    @property
    def path(self) -> Path:
        # resolved per call so LOG_DIR changes apply to module-level loggers
        if self._log_file is not None:
            return Path(self._log_file)
        env_path = os.getenv(f"{self.module.upper()}_LOG")
        if env_path:
            return Path(env_path)
        return log_dir() / f"{self.module}.json"

    # ------------------------------------------------------------------
    def log(
        self,
        event: str,
        *,
        tx_hash: str = "",
        block: int | str | None = None,
        risk_level: str = "low",
        error: str | None = None,
        trace_id: str | None = None,
        **extra: Any,
    ) -> None:
        """Append log entry to file and send to hooks."""

        if trace_id is None:
            trace_id = os.getenv("TRACE_ID", "")
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "module": self.module,
            "tx_hash": tx_hash,
            "block": "" if block is None else block,
            "risk_level": risk_level,
            "error": error,
            "trace_id": trace_id,
        }
        entry.update(extra)
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a") as fh:
            fh.write(json.dumps(entry, default=str) + "\n")
        for hook in list(_HOOKS):
            try:
                hook(entry)
            except Exception as exc:
                log_error(self.module, f"hook error: {exc}", event="hook_fail")
        if error:
            log_error(
                self.module,
                error,
                event=event,
                tx_hash=tx_hash,
                block=block,
                trace_id=trace_id,
            )
        if error or risk_level == "high":
            _send_alert(self.module, f"{self.module}:{event}:{error or ''}")
