import pytest

from sixfs.bcache import BufferCache
from sixfs.disk import MemDisk
from sixfs.layout import BSIZE, Panic


def make(nbuf=4, nblocks=8):
    disk = MemDisk(nblocks)
    for i in range(nblocks):
        disk.write_block(i, bytes([i]) * BSIZE)
    return disk, BufferCache(disk, nbuf)


def test_bread_returns_disk_contents():
    disk, cache = make()
    b = cache.bread(disk.dev, 3)
    assert bytes(b.data) == disk.read_block(3)
    assert b.valid and b.locked
    cache.brelse(b)


def test_same_block_same_buffer():
    disk, cache = make()
    first = cache.bread(disk.dev, 2)
    cache.brelse(first)
    second = cache.bread(disk.dev, 2)
    assert second is first
    assert second.refcnt == 1
    cache.brelse(second)


def test_bwrite_writes_through():
    disk, cache = make()
    b = cache.bread(disk.dev, 1)
    b.data[:4] = b"abcd"
    cache.bwrite(b)
    assert not b.dirty
    assert b.valid
    assert disk.read_block(1)[:4] == b"abcd"
    cache.brelse(b)


def test_bwrite_requires_lock():
    disk, cache = make()
    b = cache.bread(disk.dev, 1)
    cache.brelse(b)
    with pytest.raises(Panic, match="bwrite"):
        cache.bwrite(b)


def test_brelse_requires_lock():
    disk, cache = make()
    b = cache.bread(disk.dev, 1)
    cache.brelse(b)
    with pytest.raises(Panic, match="brelse"):
        cache.brelse(b)


def test_no_free_buffers():
    disk, cache = make(nbuf=1)
    cache.bread(disk.dev, 0)
    with pytest.raises(Panic, match="no buffers"):
        cache.bread(disk.dev, 1)


def test_dirty_buffer_is_not_recycled():
    disk, cache = make(nbuf=1)
    b = cache.bread(disk.dev, 0)
    b.dirty = True
    cache.brelse(b)
    assert b.refcnt == 0
    with pytest.raises(Panic, match="no buffers"):
        cache.bread(disk.dev, 1)


def test_least_recently_used_is_recycled():
    disk, cache = make(nbuf=2)
    a = cache.bread(disk.dev, 0)
    cache.brelse(a)
    b = cache.bread(disk.dev, 1)
    cache.brelse(b)
    c = cache.bread(disk.dev, 2)
    cache.brelse(c)
    assert c is a
    # Block 1 is still cached, so a change made behind the cache is not seen.
    disk.write_block(1, b"\xff" * BSIZE)
    again = cache.bread(disk.dev, 1)
    assert again is b
    assert bytes(again.data) == bytes([1]) * BSIZE
    cache.brelse(again)


def test_block_context_releases():
    disk, cache = make()
    with cache.block(disk.dev, 4) as b:
        assert b.locked
        assert bytes(b.data) == disk.read_block(4)
    assert b.refcnt == 0
    assert not b.locked


def test_wrong_device():
    disk, cache = make()
    with pytest.raises(Panic, match="not for disk"):
        cache.bread(disk.dev + 1, 0)


def test_bad_cache_size():
    with pytest.raises(ValueError):
        BufferCache(MemDisk(1), 0)