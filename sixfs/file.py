"""Open files: a table of reference-counted files over inodes and pipes."""

from __future__ import annotations

import enum
import errno
import io
import threading
from dataclasses import dataclass

from .fs import FileSystem, Inode
from .layout import BSIZE, MAXOPBLOCKS, NFILE, Panic, Stat
from .pipe import Pipe

# Enough for the inode, an indirect block, bitmap blocks and two blocks of
# slop for unaligned writes to fit in one transaction.
_MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class FdType(enum.Enum):
    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class File:
    """An open file."""

    type: FdType = FdType.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """The system-wide table of open files."""

    def __init__(self, fs: FileSystem | None = None, nfile: int = NFILE) -> None:
        self.fs = fs
        self._lock = threading.Lock()
        self._files = [File() for _ in range(nfile)]

    def _filesystem(self) -> FileSystem:
        if self.fs is None:
            raise RuntimeError("this file table has no file system")
        return self.fs

    def alloc(self) -> File:
        """Take a free entry with one reference."""
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f.ref = 1
                    return f
        raise OSError(errno.ENFILE, "file table full")

    def dup(self, f: File) -> File:
        with self._lock:
            if f.ref < 1:
                raise Panic("filedup")
            f.ref += 1
        return f

    def close(self, f: File) -> None:
        """Drop a reference; release the pipe or inode on the last one."""
        with self._lock:
            if f.ref < 1:
                raise Panic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, writable, ip = f.type, f.pipe, f.writable, f.ip
            f.type = FdType.NONE
            f.pipe = None
            f.ip = None
        if kind is FdType.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FdType.INODE and ip is not None:
            fs = self._filesystem()
            with fs.log.transaction():
                fs.iput(ip)

    def stat(self, f: File) -> Stat:
        if f.type is not FdType.INODE:
            raise io.UnsupportedOperation("stat needs a file on an inode")
        fs = self._filesystem()
        fs.ilock(f.ip)
        try:
            return fs.stati(f.ip)
        finally:
            fs.iunlock(f.ip)

    def read(self, f: File, n: int) -> bytes:
        if not f.readable:
            raise io.UnsupportedOperation("file not open for reading")
        if f.type is FdType.PIPE:
            return f.pipe.read(n)
        if f.type is FdType.INODE:
            fs = self._filesystem()
            fs.ilock(f.ip)
            try:
                data = fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                fs.iunlock(f.ip)
            return data
        raise Panic("fileread")

    def write(self, f: File, data: bytes) -> int:
        if not f.writable:
            raise io.UnsupportedOperation("file not open for writing")
        if f.type is FdType.PIPE:
            return f.pipe.write(data)
        if f.type is FdType.INODE:
            fs = self._filesystem()
            data = bytes(data)
            done = 0
            while done < len(data):
                chunk = data[done : done + _MAX_WRITE]
                with fs.log.transaction():
                    fs.ilock(f.ip)
                    try:
                        r = fs.writei(f.ip, chunk, f.off)
                        if r > 0:
                            f.off += r
                    finally:
                        fs.iunlock(f.ip)
                if r != len(chunk):
                    raise Panic("short filewrite")
                done += r
            return len(data)
        raise Panic("filewrite")

    def open_inode(self, ip: Inode, readable: bool, writable: bool) -> File:
        """Open a referenced inode; the file takes over that reference."""
        f = self.alloc()
        f.type = FdType.INODE
        f.ip = ip
        f.off = 0
        f.readable = bool(readable)
        f.writable = bool(writable)
        return f

    def pipe(self) -> tuple[File, File]:
        """A new pipe as a read end and a write end."""
        rf = self.alloc()
        try:
            wf = self.alloc()
        except OSError:
            self.close(rf)
            raise
        p = Pipe()
        rf.type, rf.readable, rf.writable, rf.pipe = FdType.PIPE, True, False, p
        wf.type, wf.readable, wf.writable, wf.pipe = FdType.PIPE, False, True, p
        return rf, wf