"""Build a file system image holding a set of files in its root directory."""

from __future__ import annotations

import struct
import sys
from collections.abc import Iterable
from pathlib import Path

from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    FileType,
    SuperBlock,
    iblock,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """An image under construction, with an empty root directory to start.

    Layout: boot block, superblock, log, inode blocks, free bitmap, data.
    """

    def __init__(self, size: int = FSSIZE, ninodes: int = NINODES) -> None:
        self.size = size
        self.ninodes = ninodes
        self.nbitmap = size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nlog = LOGSIZE
        self.nmeta = 2 + self.nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = size - self.nmeta
        if self.nblocks <= 0:
            raise ValueError("image too small for its metadata")
        self.sb = SuperBlock(
            size=size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=self.nlog,
            logstart=2,
            inodestart=2 + self.nlog,
            bmapstart=2 + self.nlog + self.ninodeblocks,
        )
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._image = bytearray(size * BSIZE)
        self._finished = False
        self._wsect(1, self.sb.pack().ljust(BSIZE, b"\0"))

        self.rootino = self.ialloc(FileType.DIR)
        assert self.rootino == ROOTINO
        self.iappend(self.rootino, DirEntry(self.rootino, ".").pack())
        self.iappend(self.rootino, DirEntry(self.rootino, "..").pack())

    def _rsect(self, sec: int) -> bytes:
        return bytes(self._image[sec * BSIZE : (sec + 1) * BSIZE])

    def _wsect(self, sec: int, data: bytes) -> None:
        self._image[sec * BSIZE : (sec + 1) * BSIZE] = data

    def _inode_offset(self, inum: int) -> tuple[int, int]:
        return iblock(inum, self.sb), (inum % IPB) * DINODE_SIZE

    def _rinode(self, inum: int) -> DiskInode:
        bn, off = self._inode_offset(inum)
        return DiskInode.unpack(self._rsect(bn)[off : off + DINODE_SIZE])

    def _winode(self, inum: int, din: DiskInode) -> None:
        bn, off = self._inode_offset(inum)
        block = bytearray(self._rsect(bn))
        block[off : off + DINODE_SIZE] = din.pack()
        self._wsect(bn, bytes(block))

    def _alloc_block(self) -> int:
        if self.freeblock >= self.size:
            raise ValueError("out of blocks")
        blockno = self.freeblock
        self.freeblock += 1
        return blockno

    def ialloc(self, type: int) -> int:
        """Allocate the next inode with the given type and one link."""
        if self.freeinode >= self.ninodes:
            raise ValueError("out of inodes")
        inum = self.freeinode
        self.freeinode += 1
        self._winode(inum, DiskInode(type=int(type), nlink=1))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append bytes to the end of an inode's contents."""
        din = self._rinode(inum)
        off = din.size
        view = memoryview(bytes(data))
        pos = 0
        while pos < len(view):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._alloc_block()
                x = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._alloc_block()
                indirect = list(_INDIRECT.unpack(self._rsect(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._alloc_block()
                    self._wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                x = indirect[fbn - NDIRECT]
            n1 = min(len(view) - pos, (fbn + 1) * BSIZE - off)
            block = bytearray(self._rsect(x))
            start = off - fbn * BSIZE
            block[start : start + n1] = view[pos : pos + n1]
            self._wsect(x, bytes(block))
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a file to the root directory; a leading ``_`` is dropped from its name."""
        if self._finished:
            raise RuntimeError("image already finished")
        if "/" in name:
            raise ValueError(f"file name {name!r} contains '/'")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(FileType.FILE)
        self.iappend(self.rootino, DirEntry(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def _balloc(self, used: int) -> None:
        if used >= BSIZE * 8:
            raise ValueError("too many blocks for one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        self._wsect(self.sb.bmapstart, bytes(bitmap))

    def finish(self) -> bytes:
        """Round up the root directory, write the bitmap and return the image."""
        if self._finished:
            raise RuntimeError("image already finished")
        din = self._rinode(self.rootino)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.rootino, din)
        self._balloc(self.freeblock)
        self._finished = True
        return bytes(self._image)


def make_image(files: Iterable[tuple[str, bytes]]) -> bytes:
    """Image whose root directory holds the given ``(name, data)`` files."""
    builder = ImageBuilder()
    for name, data in files:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    output, paths = args[0], args[1:]

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.size}"
    )
    for path in paths:
        if "/" in path:
            print(f"mkfs: {path}: file names may not contain '/'", file=sys.stderr)
            return 1
        try:
            data = Path(path).read_bytes()
        except OSError as err:
            print(f"{path}: {err.strerror}", file=sys.stderr)
            return 1
        try:
            builder.add_file(path, data)
        except ValueError as err:
            print(f"mkfs: {path}: {err}", file=sys.stderr)
            return 1

    used = builder.freeblock
    print(f"balloc: first {used} blocks have been allocated")
    try:
        image = builder.finish()
    except ValueError as err:
        print(f"mkfs: {err}", file=sys.stderr)
        return 1
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    try:
        Path(output).write_bytes(image)
    except OSError as err:
        print(f"{output}: {err.strerror}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())