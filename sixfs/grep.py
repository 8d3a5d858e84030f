"""A small grep supporting the ``^ . * $`` regular expression operators."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

_BUFSIZE = 1024


def match(re: str, text: str) -> bool:
    """Whether ``re`` matches anywhere in ``text``."""
    if re.startswith("^"):
        return matchhere(re[1:], text)
    return any(matchhere(re, text[i:]) for i in range(len(text) + 1))


def matchhere(re: str, text: str) -> bool:
    """Whether ``re`` matches at the start of ``text``."""
    while True:
        if not re:
            return True
        if len(re) > 1 and re[1] == "*":
            return matchstar(re[0], re[2:], text)
        if re == "$":
            return not text
        if text and (re[0] == "." or re[0] == text[0]):
            re, text = re[1:], text[1:]
            continue
        return False


def matchstar(c: str, re: str, text: str) -> bool:
    """Whether ``c*`` followed by ``re`` matches at the start of ``text``."""
    i = 0
    while True:
        if matchhere(re, text[i:]):
            return True
        if not (i < len(text) and (text[i] == c or c == ".")):
            return False
        i += 1


class _Reader:
    """Hands out data from chunks, at most a given amount at a time."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks = iter(chunks)
        self._pending = b""

    def read(self, n: int) -> bytes:
        while not self._pending:
            chunk = next(self._chunks, None)
            if chunk is None:
                return b""
            self._pending = bytes(chunk)
        data, self._pending = self._pending[:n], self._pending[n:]
        return data


def grep(pattern: str, chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Yield each complete line of the input that matches ``pattern``.

    A read that completes no line while nothing is buffered before it is
    discarded, as is a final line without a newline.
    """
    pat = pattern.encode("utf-8", "surrogateescape").decode("latin-1")
    reader = _Reader(chunks)
    buf = bytearray()
    while True:
        data = reader.read(_BUFSIZE - len(buf) - 1)
        if not data:
            break
        buf += data
        p = 0
        while (q := buf.find(b"\n", p)) >= 0:
            line = bytes(buf[p:q])
            if match(pat, line.decode("latin-1")):
                yield line + b"\n"
            p = q + 1
        if p == 0:
            buf.clear()
        else:
            del buf[:p]