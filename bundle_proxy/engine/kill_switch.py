"""Kill switch that halts bundle submission to the relay."""

import os
from pathlib import Path

from bundle_proxy import metrics
from bundle_proxy.logger import StructuredLogger, log_error

ENV_VAR = "KILL_SWITCH"


def flag_file() -> Path:
    """Return path to the kill switch flag file."""

    return Path(os.getenv("KILL_SWITCH_FLAG_FILE", "./flags/kill_switch.txt"))


def log_file() -> Path:
    """Return path to the kill switch log file."""

    default = Path(os.getenv("LOG_DIR", "logs")) / "kill_log.json"
    return Path(os.getenv("KILL_SWITCH_LOG_FILE", str(default)))


def kill_switch_triggered() -> bool:
    """Check if kill switch is active via environment or flag file."""
    return os.getenv(ENV_VAR) == "1" or flag_file().exists()


def record_kill_event(origin_module: str, **context: object) -> None:
    """Append a structured kill event to the kill switch log."""
    source = (
        "env"
        if os.getenv(ENV_VAR) == "1"
        else "file" if flag_file().exists() else "unknown"
    )
    logger = StructuredLogger("kill_switch", log_file=str(log_file()))
    logger.log(
        "kill_switch",
        origin_module=origin_module,
        kill_event=True,
        risk_level="high",
        triggered_by=source,
        **context,
    )
    log_error(origin_module, "kill switch triggered", event="kill_switch")
    metrics.record_kill_event_metric()


def clear_kill_switch() -> None:
    """Remove kill switch flag file and environment variable."""
    ff = flag_file()
    if ff.exists():
        ff.unlink()
    os.environ.pop(ENV_VAR, None)
