"""Write-ahead redo log that makes groups of block writes atomic."""

from __future__ import annotations

import struct
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .bcache import Buf, BufferCache
from .layout import BSIZE, LOGSIZE, MAXOPBLOCKS, ROOTDEV, Panic, SuperBlock

_INT = struct.Struct("<i")


class Log:
    """Groups the writes of concurrent operations and commits them together.

    The log area holds a header block listing block numbers, followed by
    the logged copies of those blocks.
    """

    def __init__(self, cache: BufferCache, dev: int = ROOTDEV) -> None:
        if _INT.size * (LOGSIZE + 1) >= BSIZE:
            raise Panic("initlog: too big logheader")
        self.cache = cache
        self.dev = dev
        with cache.block(dev, 1) as b:
            sb = SuperBlock.unpack(bytes(b.data))
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        self.blocks: list[int] = []
        self._cond = threading.Condition()
        self.recover()

    def _install_trans(self) -> None:
        for tail, blockno in enumerate(self.blocks):
            lbuf = self.cache.bread(self.dev, self.start + tail + 1)
            dbuf = self.cache.bread(self.dev, blockno)
            dbuf.data[:] = lbuf.data
            self.cache.bwrite(dbuf)
            self.cache.brelse(lbuf)
            self.cache.brelse(dbuf)

    def _read_head(self) -> None:
        with self.cache.block(self.dev, self.start) as b:
            (n,) = _INT.unpack_from(b.data, 0)
            if not 0 <= n <= LOGSIZE:
                raise Panic("log header corrupt")
            self.blocks = list(struct.unpack_from(f"<{n}i", b.data, _INT.size))

    def _write_head(self) -> None:
        b = self.cache.bread(self.dev, self.start)
        _INT.pack_into(b.data, 0, len(self.blocks))
        struct.pack_into(f"<{len(self.blocks)}i", b.data, _INT.size, *self.blocks)
        self.cache.bwrite(b)
        self.cache.brelse(b)

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install_trans()
        self.blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            while self.committing or (
                len(self.blocks) + (self.outstanding + 1) * MAXOPBLOCKS > LOGSIZE
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """End an operation; the last one out commits."""
        do_commit = False
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise Panic("log.committing")
            if self.outstanding == 0:
                do_commit = True
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def _write_log(self) -> None:
        for tail, blockno in enumerate(self.blocks):
            to = self.cache.bread(self.dev, self.start + tail + 1)
            src = self.cache.bread(self.dev, blockno)
            to.data[:] = src.data
            self.cache.bwrite(to)
            self.cache.brelse(src)
            self.cache.brelse(to)

    def _commit(self) -> None:
        if self.blocks:
            self._write_log()
            self._write_head()  # the commit point
            self._install_trans()
            self.blocks = []
            self._write_head()

    def log_write(self, buf: Buf) -> None:
        """Record a modified buffer in the current transaction and pin it."""
        if len(self.blocks) >= LOGSIZE or len(self.blocks) >= self.size - 1:
            raise Panic("too big a transaction")
        if self.outstanding < 1:
            raise Panic("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self.blocks:
                self.blocks.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        """Run the body of a ``with`` statement as one operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()