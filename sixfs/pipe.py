"""A bounded byte pipe between a reader and a writer."""

from __future__ import annotations

import threading

PIPESIZE = 512


class Pipe:
    """Holds at most ``PIPESIZE`` bytes; writers wait when full, readers when empty."""

    def __init__(self) -> None:
        self._buf = bytearray()
        self._cond = threading.Condition()
        self.readopen = True
        self.writeopen = True

    def write(self, data: bytes) -> int:
        """Write all of ``data``; raise ``BrokenPipeError`` if the reader goes away."""
        data = bytes(data)
        pos = 0
        with self._cond:
            while pos < len(data):
                while len(self._buf) == PIPESIZE:
                    if not self.readopen:
                        raise BrokenPipeError("pipe has no reader")
                    self._cond.notify_all()
                    self._cond.wait()
                take = min(PIPESIZE - len(self._buf), len(data) - pos)
                self._buf += data[pos : pos + take]
                pos += take
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, waiting for data; ``b""`` once the writer is gone."""
        if n < 0:
            raise ValueError("cannot read a negative number of bytes")
        with self._cond:
            while not self._buf and self.writeopen:
                self._cond.wait()
            out = bytes(self._buf[:n])
            del self._buf[:n]
            self._cond.notify_all()
        return out

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable``, else the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return not self.readopen and not self.writeopen