"""NUL-terminated byte string and memory helpers."""

from __future__ import annotations

from typing import BinaryIO


def _check_span(length: int, start: int, n: int) -> None:
    if n < 0 or start < 0 or start + n > length:
        raise IndexError("range outside buffer")


def memset(buf: bytearray, c: int, n: int) -> bytearray:
    """Fill the first n bytes of buf with the low byte of c."""
    _check_span(len(buf), 0, n)
    buf[:n] = bytes([c & 0xFF]) * n
    return buf


def memmove(buf: bytearray, dst: int, src: int, n: int) -> bytearray:
    """Copy n bytes within buf from offset src to offset dst; overlap is safe."""
    _check_span(len(buf), src, n)
    _check_span(len(buf), dst, n)
    buf[dst:dst + n] = bytes(buf[src:src + n])
    return buf


def memcmp(a: bytes, b: bytes, n: int) -> int:
    """Difference of the first differing bytes among the first n, else 0."""
    if n > len(a) or n > len(b):
        raise IndexError("range outside buffer")
    for x, y in zip(a[:n], b[:n]):
        if x != y:
            return x - y
    return 0


def _at(s: bytes, i: int) -> int:
    return s[i] if i < len(s) else 0


def strncmp(p: bytes, q: bytes, n: int) -> int:
    """Compare at most n bytes of two NUL-terminated strings."""
    for i in range(n):
        cp, cq = _at(p, i), _at(q, i)
        if cp == 0 or cp != cq:
            return cp - cq
    return 0


def strcmp(p: bytes, q: bytes) -> int:
    """Compare two NUL-terminated strings."""
    i = 0
    while True:
        cp, cq = _at(p, i), _at(q, i)
        if cp == 0 or cp != cq:
            return cp - cq
        i += 1


def strlen(s: bytes) -> int:
    """Length up to the first NUL byte."""
    end = bytes(s).find(b"\0")
    return len(s) if end < 0 else end


def strncpy(t: bytes, n: int) -> bytes:
    """Exactly n bytes: t's string truncated to n and NUL-padded."""
    if n <= 0:
        return b""
    s = bytes(t[:strlen(t)][:n])
    return s + bytes(n - len(s))


def safestrcpy(t: bytes, n: int) -> bytes:
    """At most n-1 bytes of t's string followed by a NUL terminator."""
    if n <= 0:
        return b""
    return bytes(t[:strlen(t)][:n - 1]) + b"\0"


def strchr(s: bytes, c: int | bytes) -> int | None:
    """Index of the first c before the terminator, or None."""
    if isinstance(c, (bytes, bytearray)):
        if len(c) != 1:
            raise ValueError("expected a single byte")
        c = c[0]
    for index, ch in enumerate(s):
        if ch == 0:
            break
        if ch == c:
            return index
    return None


def atoi(s: str | bytes) -> int:
    """Value of the leading decimal digits, wrapping like a 32-bit int."""
    if isinstance(s, (bytes, bytearray)):
        s = bytes(s).decode("latin-1")
    n = 0
    for ch in s:
        if not "0" <= ch <= "9":
            break
        n = (n * 10 + ord(ch) - ord("0")) & 0xFFFFFFFF
    return n - (1 << 32) if n >= (1 << 31) else n


def gets(stream: BinaryIO, max: int) -> bytes:
    """Read up to max-1 bytes, stopping after a newline or carriage return."""
    out = bytearray()
    while len(out) + 1 < max:
        ch = stream.read(1)
        if not ch:
            break
        out += ch
        if ch in (b"\n", b"\r"):
            break
    return bytes(out)