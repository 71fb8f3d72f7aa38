"""Count lines, words and bytes."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import BinaryIO

_CHUNK = 512
# The NUL byte also separates words.
_SEPARATORS = frozenset(b" \r\t\n\v\0")


@dataclass(frozen=True)
class Counts:
    """Line, word and byte counts of a stream."""

    lines: int = 0
    words: int = 0
    chars: int = 0

    def report(self, name: str) -> str:
        return f"{self.lines} {self.words} {self.chars} {name}"


def count(stream: BinaryIO) -> Counts:
    """Count the lines, words and bytes that remain in a binary stream."""
    lines = words = chars = 0
    inword = False
    while chunk := stream.read(_CHUNK):
        chars += len(chunk)
        for byte in chunk:
            if byte == 0x0A:
                lines += 1
            if byte in _SEPARATORS:
                inword = False
            elif not inword:
                words += 1
                inword = True
    return Counts(lines, words, chars)


def main(argv: list[str] | None = None) -> int:
    """Print counts for each named file, or for standard input."""
    if argv is None:
        argv = sys.argv[1:]
    try:
        if not argv:
            print(count(sys.stdin.buffer).report(""))
            return 0
        for name in argv:
            try:
                stream = open(name, "rb")
            except OSError:
                print(f"wc: cannot open {name}")
                return 1
            with stream:
                print(count(stream).report(name))
    except OSError:
        print("wc: read error")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())