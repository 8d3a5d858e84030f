import pytest

from sixfs.disk import MemDisk
from sixfs.layout import BSIZE, Panic


def test_new_disk_is_zeroed():
    disk = MemDisk(4)
    assert disk.nblocks == 4
    assert disk.read_block(3) == bytes(BSIZE)


def test_write_then_read():
    disk = MemDisk(4)
    payload = bytes(range(256)) * 2
    disk.write_block(2, payload)
    assert disk.read_block(2) == payload
    assert disk.read_block(1) == bytes(BSIZE)


def test_to_bytes_places_blocks():
    disk = MemDisk(3)
    disk.write_block(1, b"\x07" * BSIZE)
    image = disk.to_bytes()
    assert len(image) == 3 * BSIZE
    assert image[BSIZE : 2 * BSIZE] == b"\x07" * BSIZE
    assert image[:BSIZE] == bytes(BSIZE)


def test_from_image_round_trip():
    image = b"\x01" * BSIZE + b"\x02" * BSIZE
    disk = MemDisk.from_image(image, dev=5)
    assert disk.dev == 5
    assert disk.to_bytes() == image


def test_from_image_drops_partial_block():
    disk = MemDisk.from_image(b"\x09" * (2 * BSIZE + BSIZE // 2))
    assert disk.nblocks == 2


@pytest.mark.parametrize("blockno", [-1, 4, 100])
def test_out_of_range(blockno):
    disk = MemDisk(4)
    with pytest.raises(Panic, match="out of range"):
        disk.read_block(blockno)
    with pytest.raises(Panic, match="out of range"):
        disk.write_block(blockno, bytes(BSIZE))


def test_write_wrong_size():
    disk = MemDisk(2)
    with pytest.raises(ValueError):
        disk.write_block(0, b"short")