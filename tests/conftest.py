import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_logs(tmp_path, monkeypatch):
    """Keep structured logs and kill switch state inside the test's tmp dir."""
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("ERROR_LOG_FILE", str(tmp_path / "logs" / "errors.log"))
    monkeypatch.setenv("KILL_SWITCH_FLAG_FILE", str(tmp_path / "flags" / "kill_switch.txt"))
    monkeypatch.delenv("KILL_SWITCH", raising=False)
    monkeypatch.delenv("OPS_ALERT_WEBHOOK", raising=False)
    for key in list(os.environ):
        if key.startswith("BUNDLE_PROXY_"):
            monkeypatch.delenv(key)
