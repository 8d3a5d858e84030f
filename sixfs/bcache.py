"""Buffer cache: cached copies of disk blocks, one user at a time each."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from .disk import MemDisk
from .layout import BSIZE, NBUF, Panic


class _SleepLock:
    """A lock that remembers which thread holds it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owner: int | None = None

    def acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def release(self) -> None:
        self._owner = None
        self._lock.release()

    def holding(self) -> bool:
        return self._owner == threading.get_ident()


@dataclass(eq=False)
class Buf:
    """A cached disk block."""

    dev: int = 0
    blockno: int = 0
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    _lock: _SleepLock = field(default_factory=_SleepLock, init=False, repr=False)

    @property
    def locked(self) -> bool:
        """Whether the calling thread holds this buffer."""
        return self._lock.holding()


class BufferCache:
    """Fixed set of buffers kept in most-recently-used order."""

    def __init__(self, disk: MemDisk, nbuf: int = NBUF) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self.disk = disk
        self._lock = threading.Lock()
        self._bufs = [Buf() for _ in range(nbuf)]  # most recently used first

    def _bget(self, dev: int, blockno: int) -> Buf:
        with self._lock:
            for b in self._bufs:
                if b.dev == dev and b.blockno == blockno:
                    b.refcnt += 1
                    break
            else:
                # A dirty buffer is pinned by the log even with no references.
                for b in reversed(self._bufs):
                    if b.refcnt == 0 and not b.dirty:
                        b.dev = dev
                        b.blockno = blockno
                        b.valid = False
                        b.dirty = False
                        b.refcnt = 1
                        break
                else:
                    raise Panic("bget: no buffers")
        b._lock.acquire()
        return b

    def _iderw(self, b: Buf) -> None:
        if not b.locked:
            raise Panic("iderw: buf not locked")
        if b.valid and not b.dirty:
            raise Panic("iderw: nothing to do")
        if b.dev != self.disk.dev:
            raise Panic(f"iderw: request not for disk {self.disk.dev}")
        if b.dirty:
            self.disk.write_block(b.blockno, bytes(b.data))
            b.dirty = False
        else:
            b.data[:] = self.disk.read_block(b.blockno)
        b.valid = True

    def bread(self, dev: int, blockno: int) -> Buf:
        """Return the locked buffer holding the block's contents."""
        b = self._bget(dev, blockno)
        if not b.valid:
            self._iderw(b)
        return b

    def bwrite(self, buf: Buf) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.locked:
            raise Panic("bwrite")
        buf.dirty = True
        self._iderw(buf)

    def brelse(self, buf: Buf) -> None:
        """Release a locked buffer, making it the most recently used."""
        if not buf.locked:
            raise Panic("brelse")
        buf._lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._bufs.remove(buf)
                self._bufs.insert(0, buf)

    @contextmanager
    def block(self, dev: int, blockno: int) -> Iterator[Buf]:
        """Hold a block for the duration of a ``with`` statement."""
        b = self.bread(dev, blockno)
        try:
            yield b
        finally:
            self.brelse(b)