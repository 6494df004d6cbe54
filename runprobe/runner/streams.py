"""Deadline-aware reads on worker pipes (POSIX only)."""

import os
import select
import time
from typing import Callable, Optional

from runprobe.runner.errors import ResponseTimeout

CHUNK_SIZE = 65536


class DeadlineReader:
    """
    Buffered reader over a raw pipe that gives up at a deadline.

    Bytes read past the end of one frame stay buffered for the next, so a
    single reader must be kept for the lifetime of the pipe.

    While waiting, a second pipe (the worker's stderr) can be drained into
    ``on_drain`` so the writer never blocks on it before sending its frame.
    """

    def __init__(
        self,
        stream,
        drain=None,
        on_drain: Optional[Callable[[bytes], None]] = None,
    ):
        self.stream = stream
        self.drain = drain
        self.on_drain = on_drain
        self._buffer = bytearray()
        self._deadline: Optional[float] = None

    def arm(self, timeout: Optional[float]) -> None:
        """Set the deadline for subsequent reads (None waits forever)."""
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def read(self, n: int) -> bytes:
        if not self._buffer:
            self._wait_readable()
            chunk = os.read(self.stream.fileno(), max(n, CHUNK_SIZE))
            if not chunk:
                return b""
            self._buffer += chunk
        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        return data

    def _wait_readable(self) -> None:
        while True:
            watched = [self.stream]
            if self.drain is not None and not self.drain.closed:
                watched.append(self.drain)

            if self._deadline is None:
                readable, _, _ = select.select(watched, [], [])
            else:
                remaining = self._deadline - time.monotonic()
                if remaining <= 0:
                    raise ResponseTimeout("Timed out waiting for worker output")
                readable, _, _ = select.select(watched, [], [], remaining)
                if not readable:
                    raise ResponseTimeout("Timed out waiting for worker output")

            if self.stream in readable:
                return
            self._drain_once()

    def _drain_once(self) -> None:
        chunk = os.read(self.drain.fileno(), CHUNK_SIZE)
        if not chunk:
            # EOF: stop watching, it would stay readable forever
            self.drain = None
            return
        if self.on_drain is not None:
            self.on_drain(chunk)


def read_available(stream, limit: int = CHUNK_SIZE * 4) -> bytes:
    """Return whatever the pipe holds right now, without blocking."""
    if stream is None or stream.closed:
        return b""
    data = bytearray()
    fd = stream.fileno()
    while len(data) < limit:
        readable, _, _ = select.select([stream], [], [], 0)
        if not readable:
            break
        chunk = os.read(fd, min(CHUNK_SIZE, limit - len(data)))
        if not chunk:
            break
        data += chunk
    return bytes(data)
