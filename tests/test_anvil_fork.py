"""Anvil-backed fork startup and shutdown."""

import subprocess

import pytest

from adapters import anvil_fork
from adapters.anvil_fork import AnvilFork, anvil_command
from bundle_proxy.engine.errors import ForkUnavailableError


class DummyProcess:
    def __init__(self, cmd, exit_code=None, stderr="", stderr_sink=None):
        self.cmd = cmd
        self.returncode = exit_code
        self.stderr_sink = stderr_sink
        if stderr:
            stderr_sink.write(stderr)
            stderr_sink.flush()
        self.terminated = False
        self.killed = False

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminated = True
        self.returncode = 0

    def kill(self):
        self.killed = True
        self.returncode = -9

    def wait(self, timeout=None):
        return self.returncode


class DummyWeb3:
    connected = True

    def __init__(self, provider):
        self.provider = provider

    @staticmethod
    def HTTPProvider(url):
        return url

    def is_connected(self):
        return DummyWeb3.connected


class Spawner(list):
    def __init__(self):
        super().__init__()
        self.next = {}

    def __call__(self, cmd, **kw):
        proc = DummyProcess(cmd, stderr_sink=kw.get("stderr"), **self.next)
        self.append(proc)
        return proc


@pytest.fixture
def spawn(monkeypatch):
    spawned = Spawner()
    monkeypatch.setattr(anvil_fork.subprocess, "Popen", spawned)
    monkeypatch.setattr(anvil_fork, "Web3", DummyWeb3)
    monkeypatch.setattr(anvil_fork, "_free_port", lambda host: 18545)
    DummyWeb3.connected = True
    return spawned


def test_command_pins_block_and_interval():
    cmd = anvil_command("anvil", "http://node:8545", 123, 9000, "127.0.0.1", 1)
    assert cmd[0] == "anvil"
    assert cmd[cmd.index("--fork-url") + 1] == "http://node:8545"
    assert cmd[cmd.index("--fork-block-number") + 1] == "123"
    assert cmd[cmd.index("--block-time") + 1] == "1"
    assert cmd[cmd.index("--port") + 1] == "9000"


def test_start_and_close(spawn):
    fork = AnvilFork.start("http://node:8545", 77, block_time=2)
    assert fork.url == "http://127.0.0.1:18545"
    assert fork.w3.provider == "http://127.0.0.1:18545"
    assert "77" in spawn[0].cmd
    fork.close()
    assert spawn[0].terminated
    fork.close()


def test_exit_during_startup(spawn):
    spawn.next = {"exit_code": 1, "stderr": "error: fork url unreachable"}
    with pytest.raises(ForkUnavailableError, match="unreachable"):
        AnvilFork.start("http://node:8545", 1)


def test_startup_timeout_kills_process(spawn):
    DummyWeb3.connected = False
    with pytest.raises(ForkUnavailableError):
        AnvilFork.start("http://node:8545", 1, startup_timeout=0.05, poll_interval=0.01)
    assert spawn[0].killed


def test_missing_binary(monkeypatch):
    def fail(cmd, **kw):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(anvil_fork.subprocess, "Popen", fail)
    monkeypatch.setattr(anvil_fork, "_free_port", lambda host: 18545)
    with pytest.raises(ForkUnavailableError):
        AnvilFork.start("http://node:8545", 1, anvil_path="/missing/anvil")


def test_close_kills_after_grace(spawn):
    fork = AnvilFork.start("http://node:8545", 5)
    proc = spawn[0]

    def slow_wait(timeout=None):
        if not proc.killed:
            raise subprocess.TimeoutExpired("anvil", timeout)
        return proc.returncode

    proc.terminate = lambda: None
    proc.wait = slow_wait
    fork.close(grace=0.01)
    assert proc.killed


def test_stderr_goes_to_log_file(spawn, tmp_path):
    fork = AnvilFork.start("http://node:8545", 9)
    sink = spawn[0].stderr_sink
    assert sink is not subprocess.PIPE
    assert sink.name == str(tmp_path / "logs" / "anvil_18545.log")
    assert not sink.closed
    fork.close()
    assert sink.closed


def test_stderr_log_closed_when_startup_fails(spawn):
    spawn.next = {"exit_code": 2, "stderr": "boom"}
    with pytest.raises(ForkUnavailableError, match="boom"):
        AnvilFork.start("http://node:8545", 1)
    assert spawn[0].stderr_sink.closed
