"""Forked execution context backed by a local ``anvil`` process.

The fork is pinned at the block the live node reported when the bundle
was opened and mines a block every ``block_time`` seconds so wallets see
their pending transactions confirm locally.
"""

from __future__ import annotations

import socket
import subprocess
import time
from typing import IO, List, Optional

from web3 import Web3

from bundle_proxy.engine.errors import ForkUnavailableError
from bundle_proxy.logger import StructuredLogger, log_dir

LOGGER = StructuredLogger("anvil_fork")


def _free_port(host: str) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return int(sock.getsockname()[1])


def anvil_command(
    anvil_path: str, fork_url: str, block_number: int, port: int, host: str, block_time: int
) -> List[str]:
    return [
        anvil_path,
        "--fork-url",
        fork_url,
        "--fork-block-number",
        str(block_number),
        "--block-time",
        str(block_time),
        "--host",
        host,
        "--port",
        str(port),
        "--silent",
    ]


class AnvilFork:
    """Handle to a running anvil fork."""

    def __init__(
        self,
        process: subprocess.Popen,
        w3: Web3,
        url: str,
        block_number: int,
        stderr_log: Optional[IO[str]] = None,
    ) -> None:
        self.process = process
        self.w3 = w3
        self.url = url
        self.block_number = block_number
        self.stderr_log = stderr_log

    @classmethod
    def start(
        cls,
        fork_url: str,
        block_number: int,
        *,
        block_time: int = 1,
        anvil_path: str = "anvil",
        host: str = "127.0.0.1",
        startup_timeout: float = 15.0,
        poll_interval: float = 0.1,
    ) -> "AnvilFork":
        port = _free_port(host)
        cmd = anvil_command(anvil_path, fork_url, block_number, port, host, block_time)
        stderr_path = log_dir() / f"anvil_{port}.log"
        stderr_path.parent.mkdir(parents=True, exist_ok=True)
        stderr_log = open(stderr_path, "w")
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=stderr_log,
                text=True,
            )
        except OSError as exc:
            stderr_log.close()
            LOGGER.log("spawn_fail", block=block_number, risk_level="high", error=str(exc))
            raise ForkUnavailableError(f"could not start {anvil_path}: {exc}") from exc

        url = f"http://{host}:{port}"
        w3 = Web3(Web3.HTTPProvider(url))
        deadline = time.monotonic() + startup_timeout
        while time.monotonic() < deadline:
            if process.poll() is not None:
                stderr_log.close()
                stderr = stderr_path.read_text()
                LOGGER.log(
                    "exited",
                    block=block_number,
                    risk_level="high",
                    error=f"anvil exited with {process.returncode}",
                    stderr=stderr[-2000:],
                )
                raise ForkUnavailableError(
                    f"anvil exited with {process.returncode}: {stderr.strip()[-500:]}"
                )
            if w3.is_connected():
                LOGGER.log("ready", block=block_number, url=url, stderr_log=str(stderr_path))
                return cls(process, w3, url, block_number, stderr_log)
            time.sleep(poll_interval)

        process.kill()
        process.wait()
        stderr_log.close()
        LOGGER.log("startup_timeout", block=block_number, risk_level="high", error="timeout")
        raise ForkUnavailableError(f"anvil not ready after {startup_timeout}s")

    def close(self, grace: float = 5.0) -> None:
        if self.process.poll() is None:
            self.process.terminate()
            try:
                self.process.wait(timeout=grace)
            except subprocess.TimeoutExpired:
                self.process.kill()
                self.process.wait()
            LOGGER.log("stopped", block=self.block_number, url=self.url)
        if self.stderr_log is not None and not self.stderr_log.closed:
            self.stderr_log.close()
