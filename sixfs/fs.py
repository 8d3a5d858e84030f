"""Inodes, directories and path names on top of the log and buffer cache."""

from __future__ import annotations

import struct
import threading
from dataclasses import dataclass, field
from typing import Any

from .bcache import BufferCache, _SleepLock
from .disk import MemDisk
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NBUF,
    NDEV,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTINO,
    DirEntry,
    DiskInode,
    FileType,
    Panic,
    Stat,
    SuperBlock,
    bblock,
    iblock,
)
from .log import Log

_ADDR = struct.Struct("<I")
_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode, shared by everyone who refers to it."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    _lock: _SleepLock = field(default_factory=_SleepLock, init=False, repr=False)

    @property
    def locked(self) -> bool:
        """Whether the calling thread holds this inode's lock."""
        return self._lock.holding()


def _truncate_name(name: str) -> str:
    raw = name.encode("utf-8", "surrogateescape")[:DIRSIZ]
    return raw.decode("utf-8", "surrogateescape")


def namecmp(s: str, t: str) -> int:
    """Compare two names on their first ``DIRSIZ`` bytes, like ``strncmp``."""
    a = s.encode("utf-8", "surrogateescape")[:DIRSIZ].split(b"\0", 1)[0]
    b = t.encode("utf-8", "surrogateescape")[:DIRSIZ].split(b"\0", 1)[0]
    return (a > b) - (a < b)


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first element of a path.

    Returns the element (cut to ``DIRSIZ`` bytes) and the rest of the path
    without leading slashes, or ``None`` when no element is left.
    """
    path = path.lstrip("/")
    if not path:
        return None
    elem, _, rest = path.partition("/")
    return _truncate_name(elem), rest.lstrip("/")


class FileSystem:
    """A file system on one disk: block allocation, inodes, directories, paths."""

    def __init__(self, disk: MemDisk, ninode: int = NINODE, nbuf: int = NBUF) -> None:
        if ninode < 1:
            raise ValueError("the inode cache needs at least one entry")
        self.disk = disk
        self.dev = disk.dev
        self.cache = BufferCache(disk, nbuf)
        with self.cache.block(self.dev, 1) as b:
            self.sb = SuperBlock.unpack(bytes(b.data))
        self.log = Log(self.cache, self.dev)
        self.devsw: dict[int, Any] = {}
        self._icache_lock = threading.Lock()
        self._inodes = [Inode() for _ in range(ninode)]

    # Blocks.

    def _bzero(self, blockno: int) -> None:
        with self.cache.block(self.dev, blockno) as bp:
            bp.data[:] = bytes(BSIZE)
            self.log.log_write(bp)

    def _balloc(self) -> int:
        for base in range(0, self.sb.size, BPB):
            found = None
            with self.cache.block(self.dev, bblock(base, self.sb)) as bp:
                for bi in range(min(BPB, self.sb.size - base)):
                    m = 1 << (bi % 8)
                    if bp.data[bi // 8] & m == 0:
                        bp.data[bi // 8] |= m
                        self.log.log_write(bp)
                        found = base + bi
                        break
            if found is not None:
                self._bzero(found)
                return found
        raise Panic("balloc: out of blocks")

    def _bfree(self, blockno: int) -> None:
        with self.cache.block(self.dev, bblock(blockno, self.sb)) as bp:
            bi = blockno % BPB
            m = 1 << (bi % 8)
            if bp.data[bi // 8] & m == 0:
                raise Panic("freeing free block")
            bp.data[bi // 8] &= ~m & 0xFF
            self.log.log_write(bp)

    # Inodes.

    def _locate(self, inum: int) -> tuple[int, int]:
        return iblock(inum, self.sb), (inum % IPB) * DINODE_SIZE

    def ialloc(self, type: int) -> Inode:
        """Allocate an inode of the given type; return it referenced but unlocked."""
        for inum in range(1, self.sb.ninodes):
            blockno, off = self._locate(inum)
            with self.cache.block(self.dev, blockno) as bp:
                din = DiskInode.unpack(bytes(bp.data[off : off + DINODE_SIZE]))
                if din.type != 0:
                    continue
                bp.data[off : off + DINODE_SIZE] = DiskInode(type=int(type)).pack()
                self.log.log_write(bp)
            return self.iget(inum)
        raise Panic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a locked inode's fields to disk."""
        blockno, off = self._locate(ip.inum)
        din = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
        with self.cache.block(ip.dev, blockno) as bp:
            bp.data[off : off + DINODE_SIZE] = din.pack()
            self.log.log_write(bp)

    def iget(self, inum: int) -> Inode:
        """Return the cached inode for ``inum`` with one more reference; not locked."""
        with self._icache_lock:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise Panic("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Add a reference to ``ip`` and return it."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode | None) -> None:
        """Lock an inode, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise Panic("ilock")
        ip._lock.acquire()
        if not ip.valid:
            blockno, off = self._locate(ip.inum)
            with self.cache.block(ip.dev, blockno) as bp:
                din = DiskInode.unpack(bytes(bp.data[off : off + DINODE_SIZE]))
            ip.type = din.type
            ip.major = din.major
            ip.minor = din.minor
            ip.nlink = din.nlink
            ip.size = din.size
            ip.addrs = list(din.addrs)
            ip.valid = True
            if ip.type == 0:
                raise Panic("ilock: no type")

    def iunlock(self, ip: Inode | None) -> None:
        if ip is None or not ip.locked or ip.ref < 1:
            raise Panic("iunlock")
        ip._lock.release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        ip._lock.acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache_lock:
                    r = ip.ref
                if r == 1:
                    self._itrunc(ip)
                    ip.type = 0
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip._lock.release()
        with self._icache_lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                (addr,) = _ADDR.unpack_from(bp.data, bn * _ADDR.size)
                if addr == 0:
                    addr = self._balloc()
                    _ADDR.pack_into(bp.data, bn * _ADDR.size, addr)
                    self.log.log_write(bp)
            return addr
        raise Panic("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                entries = _INDIRECT.unpack(bytes(bp.data))
            for addr in entries:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of a locked inode."""
        return Stat(type=ip.type, dev=ip.dev, ino=ip.inum, nlink=ip.nlink, size=ip.size)

    def _call_device(self, ip: Inode, op: str, arg: Any) -> Any:
        device = self.devsw.get(ip.major) if 0 <= ip.major < NDEV else None
        handler = getattr(device, op, None)
        if handler is None:
            raise OSError(f"device {ip.major} has no {op} handler")
        held = ip.locked
        if held:
            ip._lock.release()
        try:
            return handler(arg)
        finally:
            if held:
                ip._lock.acquire()

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off`` from a locked inode."""
        if ip.type == FileType.DEV:
            return bytes(self._call_device(ip, "read", n))
        if n < 0 or off < 0 or off > ip.size:
            raise ValueError(f"cannot read {n} bytes at offset {off}")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            pos = off + len(out)
            start = pos % BSIZE
            m = min(n - len(out), BSIZE - start)
            with self.cache.block(ip.dev, self._bmap(ip, pos // BSIZE)) as bp:
                out += bp.data[start : start + m]
        return bytes(out)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` at ``off`` into a locked inode; return the count written."""
        if ip.type == FileType.DEV:
            return self._call_device(ip, "write", bytes(data))
        data = bytes(data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise ValueError(f"cannot write at offset {off} of a {ip.size}-byte file")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write would exceed the largest file size")
        done = 0
        while done < n:
            pos = off + done
            start = pos % BSIZE
            m = min(n - done, BSIZE - start)
            with self.cache.block(ip.dev, self._bmap(ip, pos // BSIZE)) as bp:
                bp.data[start : start + m] = data[done : done + m]
                self.log.log_write(bp)
            done += m
        if n > 0 and off + n > ip.size:
            ip.size = off + n
            self.iupdate(ip)
        return n

    # Directories.

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in a locked directory; return its inode and entry offset."""
        if dp.type != FileType.DIR:
            raise Panic("dirlookup not DIR")
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise Panic("dirlookup read")
            de = DirEntry.unpack(raw)
            if de.inum == 0:
                continue
            if namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry ``(name, inum)`` to a locked directory."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(name)
        off = 0
        while off < dp.size:
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise Panic("dirlink read")
            if DirEntry.unpack(raw).inum == 0:
                break
            off += DIRENT_SIZE
        if self.writei(dp, DirEntry(inum, name).pack(), off) != DIRENT_SIZE:
            raise Panic("dirlink")

    # Paths.

    def _namex(
        self, path: str, parent: bool, cwd: Inode | None
    ) -> tuple[Inode, str] | Inode | None:
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        step = skipelem(path)
        while step is not None:
            name, path = step
            self.ilock(ip)
            if ip.type != FileType.DIR:
                self.iunlockput(ip)
                return None
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            if found is None:
                self.iunlockput(ip)
                return None
            self.iunlockput(ip)
            ip = found[0]
            step = skipelem(path)
        if parent:
            self.iput(ip)
            return None
        return ip

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """Inode for a path, referenced and unlocked, or ``None`` if absent.

        Relative paths start at ``cwd``, or at the root when none is given.
        """
        return self._namex(path, False, cwd)

    def nameiparent(
        self, path: str, cwd: Inode | None = None
    ) -> tuple[Inode, str] | None:
        """Parent directory of a path and the path's final element."""
        return self._namex(path, True, cwd)