"""Command line: echo arguments, or cat, ls and grep files inside an image."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Iterator
from pathlib import Path

from .disk import MemDisk
from .file import FileTable
from .fs import FileSystem
from .grep import grep
from .ls import has_wildcard, ls, ls_glob

_CHUNK = 512

_USAGE = (
    "usage: sixfs echo [args...]\n"
    "       sixfs cat IMAGE [file ...]\n"
    "       sixfs ls IMAGE [path ...]\n"
    "       sixfs grep PATTERN IMAGE [file ...]\n"
)


def cat(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Pass the input through unchanged; an empty chunk marks the end of input."""
    for chunk in chunks:
        data = bytes(chunk)
        if not data:
            return
        yield data


def echo(args: Iterable[str]) -> str:
    """The arguments separated by blanks and followed by a newline.

    With no arguments nothing at all is printed.
    """
    words = list(args)
    if not words:
        return ""
    return " ".join(words) + "\n"


def _out(data: bytes) -> None:
    stream = sys.stdout
    stream.flush()
    buffer = getattr(stream, "buffer", None)
    if buffer is None:
        stream.write(data.decode("utf-8", "replace"))
    else:
        buffer.write(data)
        buffer.flush()


def _stdin_chunks() -> Iterator[bytes]:
    stream = getattr(sys.stdin, "buffer", sys.stdin)
    while True:
        data = stream.read(_CHUNK)
        if isinstance(data, str):
            data = data.encode("utf-8", "surrogateescape")
        if not data:
            return
        yield data


def _load(image: str) -> FileSystem:
    return FileSystem(MemDisk.from_image(Path(image).read_bytes()))


def _file_chunks(fs: FileSystem, files: FileTable, path: str) -> Iterator[bytes]:
    with fs.log.transaction():
        ip = fs.namei(path)
    if ip is None:
        raise FileNotFoundError(path)
    f = files.open_inode(ip, True, False)
    try:
        while chunk := files.read(f, _CHUNK):
            yield chunk
    finally:
        files.close(f)


def _open_image(image: str) -> FileSystem | None:
    try:
        return _load(image)
    except OSError as err:
        sys.stderr.write(f"{image}: {err.strerror or err}\n")
        return None


def _cat(rest: list[str]) -> int:
    if not rest:
        sys.stderr.write(_USAGE)
        return 1
    if len(rest) == 1:
        for chunk in cat(_stdin_chunks()):
            _out(chunk)
        return 0
    fs = _open_image(rest[0])
    if fs is None:
        return 1
    files = FileTable(fs)
    for path in rest[1:]:
        try:
            for chunk in cat(_file_chunks(fs, files, path)):
                _out(chunk)
        except FileNotFoundError:
            _out(f"cat: cannot open {path}\n".encode())
            return 1
    return 0


def _ls(rest: list[str]) -> int:
    if not rest:
        sys.stderr.write(_USAGE)
        return 1
    fs = _open_image(rest[0])
    if fs is None:
        return 1
    status = 0
    for path in rest[1:] or ["."]:
        try:
            lines = ls_glob(fs, path) if has_wildcard(path) else ls(fs, path)
        except FileNotFoundError as err:
            sys.stderr.write(f"{err.args[0]}\n")
            status = 1
            continue
        for line in lines:
            _out(f"{line}\n".encode("utf-8", "surrogateescape"))
    return status


def _grep(rest: list[str]) -> int:
    if not rest:
        sys.stderr.write("usage: grep pattern [file ...]\n")
        return 1
    pattern = rest[0]
    if len(rest) == 1:
        for line in grep(pattern, _stdin_chunks()):
            _out(line)
        return 0
    fs = _open_image(rest[1])
    if fs is None:
        return 1
    files = FileTable(fs)
    for path in rest[2:]:
        try:
            for line in grep(pattern, _file_chunks(fs, files, path)):
                _out(line)
        except FileNotFoundError:
            _out(f"grep: cannot open {path}\n".encode())
            return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write(_USAGE)
        return 1
    command, rest = args[0], args[1:]
    if command == "echo":
        _out(echo(rest).encode("utf-8", "surrogateescape"))
        return 0
    if command == "cat":
        return _cat(rest)
    if command == "ls":
        return _ls(rest)
    if command == "grep":
        return _grep(rest)
    sys.stderr.write(_USAGE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())