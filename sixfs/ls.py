"""Listing of files and directories in a file system."""

from __future__ import annotations

from .fs import FileSystem
from .layout import DIRENT_SIZE, DIRSIZ, DirEntry, FileType, Stat

_PATHBUF = 512


def has_wildcard(s: str) -> bool:
    return "*" in s


def wildmatch(pat: str, s: str) -> bool:
    """Whether ``s`` matches ``pat``, where ``*`` stands for any run of characters."""
    if not pat:
        return not s
    if pat[0] == "*":
        pat = pat.lstrip("*")
        if not pat:
            return True
        return any(wildmatch(pat, s[i:]) for i in range(len(s)))
    if s and pat[0] == s[0]:
        return wildmatch(pat[1:], s[1:])
    return False


def fmtname(path: str) -> str:
    """Last element of ``path``, padded with blanks to ``DIRSIZ``."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _line(name: str, st: Stat) -> str:
    return f"{fmtname(name)} {st.type} {st.ino} {st.size}"


def _stat(fs: FileSystem, path: str) -> Stat | None:
    with fs.log.transaction():
        ip = fs.namei(path)
        if ip is None:
            return None
        fs.ilock(ip)
        try:
            return fs.stati(ip)
        finally:
            fs.iunlockput(ip)


def _open(fs: FileSystem, path: str) -> tuple[Stat, list[DirEntry]] | None:
    with fs.log.transaction():
        ip = fs.namei(path)
        if ip is None:
            return None
        fs.ilock(ip)
        try:
            st = fs.stati(ip)
            entries = []
            if st.type == FileType.DIR:
                off = 0
                while len(raw := fs.readi(ip, off, DIRENT_SIZE)) == DIRENT_SIZE:
                    entries.append(DirEntry.unpack(raw))
                    off += DIRENT_SIZE
        finally:
            fs.iunlockput(ip)
    return st, entries


def ls(fs: FileSystem, path: str) -> list[str]:
    """Lines describing a file, or each entry of a directory."""
    opened = _open(fs, path)
    if opened is None:
        raise FileNotFoundError(f"ls: cannot open {path}")
    st, entries = opened
    if st.type == FileType.FILE:
        return [_line(path, st)]
    if st.type != FileType.DIR:
        return []
    if len(path.encode("utf-8", "surrogateescape")) + 1 + DIRSIZ + 1 > _PATHBUF:
        return ["ls: path too long"]
    lines = []
    for de in entries:
        if de.inum == 0:
            continue
        full = f"{path}/{de.name}"
        est = _stat(fs, full)
        if est is None:
            lines.append(f"ls: cannot stat {full}")
            continue
        lines.append(_line(full, est))
    return lines


def ls_glob(fs: FileSystem, pattern: str) -> list[str]:
    """List every entry of the current directory whose name matches ``pattern``."""
    opened = _open(fs, ".")
    if opened is None:
        raise FileNotFoundError("ls: cannot open .")
    _, entries = opened
    lines = []
    for de in entries:
        if de.inum != 0 and wildmatch(pattern, de.name):
            lines.extend(ls(fs, de.name))
    return lines