import struct

import pytest

from sixfs.layout import (
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
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
from sixfs.mkfs import NINODES, ImageBuilder, main, make_image


def read_sb(image):
    return SuperBlock.unpack(image[BSIZE : 2 * BSIZE])


def read_inode(image, sb, inum):
    off = iblock(inum, sb) * BSIZE + (inum % IPB) * DINODE_SIZE
    return DiskInode.unpack(image[off : off + DINODE_SIZE])


def block(image, n):
    return image[n * BSIZE : (n + 1) * BSIZE]


def read_file(image, sb, inum):
    din = read_inode(image, sb, inum)
    out = bytearray()
    nblocks = (din.size + BSIZE - 1) // BSIZE
    indirect = None
    for fbn in range(nblocks):
        if fbn < NDIRECT:
            addr = din.addrs[fbn]
        else:
            if indirect is None:
                indirect = struct.unpack(f"<{NINDIRECT}I", block(image, din.addrs[NDIRECT]))
            addr = indirect[fbn - NDIRECT]
        out += block(image, addr)
    return bytes(out[: din.size])


def root_entries(image, sb):
    raw = read_file(image, sb, ROOTINO)
    entries = [DirEntry.unpack(raw[i : i + DIRENT_SIZE]) for i in range(0, len(raw), DIRENT_SIZE)]
    return [e for e in entries if e.inum != 0]


def test_image_size():
    assert len(make_image([])) == FSSIZE * BSIZE


def test_superblock_layout():
    builder = ImageBuilder()
    sb = read_sb(builder.finish())
    assert sb == builder.sb
    assert sb.size == FSSIZE
    assert sb.ninodes == NINODES
    assert sb.nlog == LOGSIZE
    assert sb.logstart == 2
    assert sb.inodestart == sb.logstart + sb.nlog
    assert sb.bmapstart == sb.inodestart + builder.ninodeblocks
    assert sb.nblocks == sb.size - builder.nmeta


def test_root_directory():
    image = make_image([])
    sb = read_sb(image)
    root = read_inode(image, sb, ROOTINO)
    assert root.type == FileType.DIR
    assert root.nlink == 1
    assert root.size > 0 and root.size % BSIZE == 0
    entries = root_entries(image, sb)
    assert [(e.name, e.inum) for e in entries] == [(".", ROOTINO), ("..", ROOTINO)]


def test_file_contents_and_name():
    image = make_image([("_cat", b"hello"), ("README", b"read me\n")])
    sb = read_sb(image)
    entries = {e.name: e.inum for e in root_entries(image, sb)}
    assert set(entries) == {".", "..", "cat", "README"}
    assert read_file(image, sb, entries["cat"]) == b"hello"
    assert read_file(image, sb, entries["README"]) == b"read me\n"
    assert read_inode(image, sb, entries["cat"]).type == FileType.FILE


def test_large_file_uses_indirect_block():
    data = bytes(i % 251 for i in range((NDIRECT + 3) * BSIZE + 17))
    image = make_image([("big", data)])
    sb = read_sb(image)
    inum = {e.name: e.inum for e in root_entries(image, sb)}["big"]
    din = read_inode(image, sb, inum)
    assert din.addrs[NDIRECT] != 0
    assert read_file(image, sb, inum) == data


def test_long_name_truncated():
    image = make_image([("n" * 20, b"x")])
    names = [e.name for e in root_entries(image, read_sb(image))]
    assert "n" * DIRSIZ in names


def test_bitmap_marks_used_blocks():
    builder = ImageBuilder()
    builder.add_file("a", b"x" * (3 * BSIZE))
    image = builder.finish()
    # one block for the root directory, three for the file
    assert builder.freeblock == builder.nmeta + 4
    bitmap = block(image, builder.sb.bmapstart)
    marked = [b for b in range(BSIZE * 8) if bitmap[b // 8] & (1 << (b % 8))]
    assert marked == list(range(builder.freeblock))


def test_name_with_slash_rejected():
    with pytest.raises(ValueError):
        make_image([("dir/file", b"")])


def test_file_too_large():
    with pytest.raises(ValueError, match="too large"):
        make_image([("huge", bytes(MAXFILE * BSIZE + 1))])


def test_out_of_inodes():
    builder = ImageBuilder(ninodes=3)
    builder.add_file("a", b"")
    with pytest.raises(ValueError, match="inodes"):
        builder.add_file("b", b"")


def test_finish_only_once():
    builder = ImageBuilder()
    builder.finish()
    with pytest.raises(RuntimeError):
        builder.finish()
    with pytest.raises(RuntimeError):
        builder.add_file("late", b"")


def test_main_writes_image(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "_echo").write_bytes(b"echo body")
    assert main(["fs.img", "_echo"]) == 0
    image = (tmp_path / "fs.img").read_bytes()
    assert len(image) == FSSIZE * BSIZE
    sb = read_sb(image)
    entries = {e.name: e.inum for e in root_entries(image, sb)}
    assert read_file(image, sb, entries["echo"]) == b"echo body"
    assert "balloc" in capsys.readouterr().out


def test_main_usage(capsys):
    assert main([]) == 1
    assert "Usage" in capsys.readouterr().err


def test_main_missing_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["fs.img", "missing"]) == 1
    assert not (tmp_path / "fs.img").exists()