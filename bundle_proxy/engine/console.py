"""Line-based operator console."""

from __future__ import annotations

import sys
import threading
from typing import Optional, TextIO


class OperatorConsole:
    """Write messages to and read answers from the operator terminal."""

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self._write_lock = threading.Lock()

    def write(self, message: str) -> None:
        with self._write_lock:
            print(message, file=self.stdout, flush=True)

    def prompt(self, text: str) -> None:
        with self._write_lock:
            print(text, end="", file=self.stdout, flush=True)

    def read_line(self) -> Optional[str]:
        """Block for one line of input; ``None`` on end of input."""
        line = self.stdin.readline()
        if not line:
            return None
        return line.rstrip("\r\n")
