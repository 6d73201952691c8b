"""An in-memory buffer flushed to a file in the background."""

from __future__ import annotations

import threading
from typing import BinaryIO

FLUSH_INTERVAL = 0.12


def _as_bytes(data: bytes | bytearray | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


class SyncBuffer:
    """Collects writes from many threads and flushes them to ``fd`` every 120 ms."""

    def __init__(self, fd: BinaryIO) -> None:
        self._fd = fd
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._flush_loop, daemon=True)
        self._thread.start()

    def write(self, data: bytes | bytearray | str) -> int:
        """Append ``data``; return its length in bytes."""
        return self.write_with_msg(data, "")

    def write_with_msg(self, output: bytes | bytearray | str, msg: str) -> int:
        """Append ``msg`` then ``output`` as one unit; return the length of ``output``."""
        chunk = _as_bytes(output)
        with self._lock:
            self._buffer += msg.encode("utf-8") + chunk
        return len(chunk)

    def flush(self) -> None:
        """Write what is buffered to the file; on a write error keep it buffered."""
        with self._lock:
            if not self._buffer:
                return
            try:
                self._fd.write(bytes(self._buffer))
                self._fd.flush()
            except (OSError, ValueError):
                return
            self._buffer.clear()

    def close(self) -> None:
        """Flush what remains, stop the background flusher and close the file."""
        if self._stop.is_set():
            return
        self.flush()
        self._stop.set()
        self._thread.join()
        self._fd.close()

    def __enter__(self) -> SyncBuffer:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _flush_loop(self) -> None:
        while not self._stop.wait(FLUSH_INTERVAL):
            self.flush()