"""Console: line-edited keyboard input and character output."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

from .fmt import format_int
from .layout import Panic

CONSOLE = 1
INPUT_BUF = 128
BACKSPACE = 0x100

_LOWER = "0123456789abcdef"


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


_CTRL_D = _ctrl("D")
_CTRL_H = _ctrl("H")
_CTRL_P = _ctrl("P")
_CTRL_U = _ctrl("U")
_NL = ord("\n")


class Console:
    """Echoes typed characters and hands out whole lines to readers.

    Output goes to ``output``. The object can serve as the read/write
    handler of a device inode.
    """

    def __init__(self, procdump: Callable[[], object] | None = None) -> None:
        self.output = bytearray()
        self.procdump = procdump
        self._cond = threading.Condition()
        self._buf = [0] * INPUT_BUF
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index

    def _putc(self, c: int) -> None:
        if c == BACKSPACE:
            self.output += b"\b \b"
        else:
            self.output.append(c & 0xFF)

    def intr(self, chars: Iterable[int | str]) -> None:
        """Handle typed characters; a negative code ends the input."""
        doprocdump = False
        with self._cond:
            for ch in chars:
                c = ord(ch) if isinstance(ch, str) else int(ch)
                if c < 0:
                    break
                if c == _CTRL_P:
                    doprocdump = True
                elif c == _CTRL_U:
                    while (
                        self._e != self._w
                        and self._buf[(self._e - 1) % INPUT_BUF] != _NL
                    ):
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c in (_CTRL_H, 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = _NL
                    self._buf[self._e % INPUT_BUF] = c & 0xFF
                    self._e += 1
                    self._putc(c)
                    if c in (_NL, _CTRL_D) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if doprocdump and self.procdump is not None:
            self.procdump()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, stopping after a newline; wait for a line."""
        if n < 0:
            raise ValueError("cannot read a negative number of bytes")
        target = n
        out = bytearray()
        with self._cond:
            while n > 0:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _CTRL_D:
                    if n < target:
                        # Keep ^D so the next read returns nothing.
                        self._r -= 1
                    break
                out.append(c)
                n -= 1
                if c == _NL:
                    break
        return bytes(out)

    def write(self, data: bytes) -> int:
        data = bytes(data)
        with self._cond:
            for b in data:
                self._putc(b)
        return len(data)

    def cprintf(self, fmt: str | None, *args: object) -> str:
        """Print understanding ``%d``, ``%x``, ``%p``, ``%s``; return the text."""
        if fmt is None:
            raise Panic("null fmt")
        out: list[str] = []
        pending = iter(args)

        def arg() -> object:
            try:
                return next(pending)
            except StopIteration:
                raise ValueError("not enough arguments") from None

        chars = iter(fmt)
        for c in chars:
            if c != "%":
                out.append(c)
                continue
            spec = next(chars, None)
            if spec is None:
                break
            if spec == "d":
                out.append(format_int(int(arg()), 10, True, _LOWER))
            elif spec in ("x", "p"):
                out.append(format_int(int(arg()), 16, False, _LOWER))
            elif spec == "s":
                s = arg()
                out.append("(null)" if s is None else str(s))
            elif spec == "%":
                out.append("%")
            else:
                out.append("%" + spec)
        text = "".join(out)
        with self._cond:
            for b in text.encode("utf-8", "surrogateescape"):
                self._putc(b)
        return text