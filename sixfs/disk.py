"""A disk held in memory."""

from __future__ import annotations

from .layout import BSIZE, FSSIZE, ROOTDEV, Panic


class MemDisk:
    """Disk of ``BSIZE`` blocks kept in a byte array."""

    def __init__(self, nblocks: int = FSSIZE, dev: int = ROOTDEV) -> None:
        if nblocks < 0:
            raise ValueError("a disk cannot have a negative size")
        self.dev = dev
        self._data = bytearray(nblocks * BSIZE)

    @classmethod
    def from_image(cls, data: bytes, dev: int = ROOTDEV) -> MemDisk:
        """Disk holding the whole blocks of an image; a trailing partial block is dropped."""
        disk = cls(0, dev)
        whole = len(data) // BSIZE * BSIZE
        disk._data = bytearray(data[:whole])
        return disk

    @property
    def nblocks(self) -> int:
        return len(self._data) // BSIZE

    def _offset(self, blockno: int) -> int:
        if not 0 <= blockno < self.nblocks:
            raise Panic("iderw: block out of range")
        return blockno * BSIZE

    def read_block(self, blockno: int) -> bytes:
        start = self._offset(blockno)
        return bytes(self._data[start : start + BSIZE])

    def write_block(self, blockno: int, data: bytes) -> None:
        if len(data) != BSIZE:
            raise ValueError(f"a block is {BSIZE} bytes, got {len(data)}")
        start = self._offset(blockno)
        self._data[start : start + BSIZE] = data

    def to_bytes(self) -> bytes:
        return bytes(self._data)