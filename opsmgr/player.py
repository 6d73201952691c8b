"""Runs the steps of a playbook one after another on a host."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from opsmgr.steps.base import Step

_CYAN = "\x1b[36m"
_RESET = "\x1b[0m"
_WATCH_INTERVAL = 0.05


@dataclass
class WindowSize:
    cols: int
    rows: int


class Client(Protocol):
    """An SSH client able to open terminal sessions."""

    def new_pty(self) -> Any: ...

    def new_session_with_pty(self, cols: int, rows: int) -> Any: ...


class PlayerError(Exception):
    """Raised when a session for a step cannot be opened; carries the output so far."""

    def __init__(self, message: str, output: bytes) -> None:
        super().__init__(message)
        self.output = output


class Player:
    """Runs each step in a fresh terminal session and collects the output."""

    def __init__(
        self,
        client: Client,
        steps: Sequence[Step],
        sudo: bool,
        size: WindowSize | None = None,
    ) -> None:
        self.client = client
        self.steps = list(steps)
        self.sudo = sudo
        self.size = size

    def _open_session(self) -> Any:
        if self.size is not None:
            return self.client.new_session_with_pty(self.size.cols, self.size.rows)
        return self.client.new_pty()

    def run(self, cancel: threading.Event | None = None) -> bytes:
        """Run every step and return the combined output.

        A step that fails adds its error text to the output and the next step
        runs. Setting ``cancel`` closes the running session and stops further steps.
        """
        cancel = cancel if cancel is not None else threading.Event()
        buf = bytearray()
        lock = threading.Lock()
        current: list[Any] = [None]
        done = threading.Event()

        def watch() -> None:
            while not done.is_set():
                if cancel.wait(_WATCH_INTERVAL):
                    with lock:
                        if current[0] is not None:
                            current[0].close()
                    return

        watcher = threading.Thread(target=watch, daemon=True)
        watcher.start()
        try:
            for step in self.steps:
                if cancel.is_set():
                    break
                try:
                    session = self._open_session()
                except Exception as err:
                    buf += str(err).encode("utf-8")
                    raise PlayerError(str(err), bytes(buf)) from err
                with lock:
                    current[0] = session
                try:
                    header = f'[Step {step.name():>8}] ==> "{step.id}"\r\n'
                    buf += f"{_CYAN}{header}{_RESET}".encode("utf-8")
                    try:
                        buf += step.execute(session, self.sudo) or b""
                    except Exception as err:
                        buf += str(err).encode("utf-8")
                finally:
                    with lock:
                        current[0] = None
                    session.close()
        finally:
            done.set()
            watcher.join()
        return bytes(buf)