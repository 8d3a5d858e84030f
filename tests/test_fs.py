import pytest

from sixfs.disk import MemDisk
from sixfs.fs import FileSystem, namecmp, skipelem
from sixfs.layout import (
    BSIZE,
    DIRSIZ,
    MAXFILE,
    NDIRECT,
    ROOTINO,
    FileType,
    Panic,
    Stat,
)
from sixfs.mkfs import make_image

README = b"hello world\n"
CAT = bytes(range(256)) * 8


def _fs(**kwargs):
    disk = MemDisk.from_image(make_image([("README", README), ("_cat", CAT)]))
    return FileSystem(disk, **kwargs)


def _create(fs, name, data=b""):
    with fs.log.transaction():
        ip = fs.ialloc(FileType.FILE)
        fs.ilock(ip)
        ip.nlink = 1
        fs.iupdate(ip)
        fs.iunlock(ip)
        root = fs.iget(ROOTINO)
        fs.ilock(root)
        fs.dirlink(root, name, ip.inum)
        fs.iunlockput(root)
    for start in range(0, len(data), 1536):
        with fs.log.transaction():
            fs.ilock(ip)
            fs.writei(ip, data[start : start + 1536], start)
            fs.iunlock(ip)
    return ip


def _read_all(fs, path):
    ip = fs.namei(path)
    fs.ilock(ip)
    data = fs.readi(ip, 0, ip.size)
    fs.iunlockput(ip)
    return data


def test_read_file_from_image():
    fs = _fs()
    ip = fs.namei("/README")
    fs.ilock(ip)
    assert fs.readi(ip, 0, 100) == README
    assert fs.readi(ip, 6, 100) == b"world\n"
    fs.iunlockput(ip)


def test_leading_underscore_dropped():
    fs = _fs()
    assert _read_all(fs, "/cat") == CAT
    assert fs.namei("/_cat") is None


def test_missing_paths():
    fs = _fs()
    assert fs.namei("/nothing") is None
    assert fs.namei("/README/x") is None


@pytest.mark.parametrize("path", ["/", "/.", "/..", ".", "//./"])
def test_root_entries(path):
    fs = _fs()
    assert fs.namei(path).inum == ROOTINO


def test_relative_path_uses_cwd():
    fs = _fs()
    root = fs.namei("/")
    assert fs.namei("README", root).inum == fs.namei("/README").inum


def test_nameiparent():
    fs = _fs()
    parent, name = fs.nameiparent("/newfile")
    assert parent.inum == ROOTINO
    assert name == "newfile"
    assert fs.nameiparent("/") is None


@pytest.mark.parametrize(
    "path, expected",
    [
        ("a/bb/c", ("a", "bb/c")),
        ("///a//bb", ("a", "bb")),
        ("a", ("a", "")),
        ("", None),
        ("////", None),
    ],
)
def test_skipelem(path, expected):
    assert skipelem(path) == expected


def test_skipelem_truncates():
    assert skipelem("a" * 20 + "/x") == ("a" * DIRSIZ, "x")


def test_namecmp():
    assert namecmp("abc", "abc") == 0
    assert namecmp("a" * DIRSIZ + "x", "a" * DIRSIZ + "y") == 0
    assert namecmp("abc", "abd") < 0
    assert namecmp("abd", "abc") > 0


def test_created_file_persists():
    fs = _fs()
    _create(fs, "notes", b"some notes")
    again = FileSystem(fs.disk)
    assert _read_all(again, "/notes") == b"some notes"


def test_large_file_uses_indirect_block():
    fs = _fs()
    data = bytes(i % 251 for i in range((NDIRECT + 3) * BSIZE))
    ip = _create(fs, "big", data)
    assert ip.addrs[NDIRECT] != 0
    assert ip.size == len(data)
    assert _read_all(FileSystem(fs.disk), "/big") == data


def test_read_and_write_limits():
    fs = _fs()
    ip = fs.namei("/README")
    fs.ilock(ip)
    with pytest.raises(ValueError):
        fs.readi(ip, ip.size + 1, 1)
    with fs.log.transaction():
        with pytest.raises(ValueError):
            fs.writei(ip, b"x", ip.size + 1)
        with pytest.raises(ValueError):
            fs.writei(ip, bytes(MAXFILE * BSIZE + 1), 0)
    fs.iunlockput(ip)


def test_dirlink_duplicate():
    fs = _fs()
    root = fs.namei("/")
    fs.ilock(root)
    with fs.log.transaction():
        with pytest.raises(FileExistsError):
            fs.dirlink(root, "README", 5)
    fs.iunlockput(root)


def test_unlinked_inode_is_freed_and_reused():
    fs = _fs()
    ip = _create(fs, "tmp", b"x" * 1000)
    inum = ip.inum
    with fs.log.transaction():
        fs.ilock(ip)
        ip.nlink = 0
        fs.iupdate(ip)
        fs.iunlock(ip)
        fs.iput(ip)
    assert ip.ref == 0
    assert ip.type == 0
    with fs.log.transaction():
        again = fs.ialloc(FileType.FILE)
    assert again.inum == inum


def test_stati():
    fs = _fs()
    ip = fs.namei("/README")
    fs.ilock(ip)
    st = fs.stati(ip)
    fs.iunlockput(ip)
    assert st == Stat(
        type=FileType.FILE, dev=fs.dev, ino=ip.inum, nlink=1, size=len(README)
    )


def test_iget_shares_entries():
    fs = _fs()
    a = fs.iget(5)
    b = fs.iget(5)
    assert a is b
    assert a.ref == 2
    assert fs.idup(a).ref == 3


def test_iget_exhausted():
    fs = _fs(ninode=2)
    fs.iget(1)
    fs.iget(2)
    with pytest.raises(Panic):
        fs.iget(3)


def test_lock_misuse():
    fs = _fs()
    with pytest.raises(Panic):
        fs.ilock(None)
    ip = fs.iget(ROOTINO)
    with pytest.raises(Panic):
        fs.iunlock(ip)


def test_dirlookup_requires_directory():
    fs = _fs()
    ip = fs.namei("/README")
    fs.ilock(ip)
    with pytest.raises(Panic):
        fs.dirlookup(ip, "x")
    fs.iunlockput(ip)


class _Device:
    def __init__(self):
        self.written = []

    def read(self, n):
        return b"x" * n

    def write(self, data):
        self.written.append(data)
        return len(data)


def test_device_inode():
    fs = _fs()
    with fs.log.transaction():
        ip = fs.ialloc(FileType.DEV)
    fs.ilock(ip)
    ip.major = 1
    device = _Device()
    fs.devsw[1] = device
    assert fs.readi(ip, 0, 4) == b"xxxx"
    assert fs.writei(ip, b"hi", 0) == 2
    assert device.written == [b"hi"]
    assert ip.locked
    ip.major = 2
    with pytest.raises(OSError):
        fs.readi(ip, 0, 1)
    fs.iunlock(ip)