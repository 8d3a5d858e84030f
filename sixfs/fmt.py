"""Formatting of the small printf dialect used by user programs."""

from __future__ import annotations

DIGITS = "0123456789ABCDEF"

_MASK = 0xFFFFFFFF
_SIGN = 0x80000000


def format_int(
    value: int, base: int = 10, signed: bool = True, digits: str = DIGITS
) -> str:
    """Render a 32-bit integer in ``base``; negative only when ``signed``."""
    if not 2 <= base <= len(digits):
        raise ValueError(f"base must be between 2 and {len(digits)}")
    x = value & _MASK
    neg = signed and bool(x & _SIGN)
    if neg:
        x = (-x) & _MASK
    out = []
    while True:
        out.append(digits[x % base])
        x //= base
        if x == 0:
            break
    if neg:
        out.append("-")
    return "".join(reversed(out))


def format(fmt: str, *args: object) -> str:
    """Format ``fmt`` understanding ``%d``, ``%x``, ``%p``, ``%s``, ``%c`` and ``%%``.

    An unknown sequence is kept as written; a lone ``%`` at the end is dropped.
    """
    out: list[str] = []
    pending = iter(args)

    def arg(spec: str) -> object:
        try:
            return next(pending)
        except StopIteration:
            raise ValueError(f"not enough arguments for %{spec}") from None

    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        spec = next(chars, None)
        if spec is None:
            break
        if spec == "d":
            out.append(format_int(int(arg(spec)), 10, True))
        elif spec in ("x", "p"):
            out.append(format_int(int(arg(spec)), 16, False))
        elif spec == "s":
            s = arg(spec)
            out.append("(null)" if s is None else str(s))
        elif spec == "c":
            ch = arg(spec)
            out.append(ch[:1] if isinstance(ch, str) else chr(int(ch) & 0xFF))
        elif spec == "%":
            out.append("%")
        else:
            out.append("%" + spec)
    return "".join(out)