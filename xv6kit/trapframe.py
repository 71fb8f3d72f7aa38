"""Trap frame laid out on the kernel stack by hardware and the trap entry code."""

from __future__ import annotations

import struct
from dataclasses import astuple, dataclass

from xv6kit.mmu import DPL_USER

_LAYOUT = struct.Struct("<8I" + "H2x" * 4 + "3I" + "H2x" + "2I" + "H2x")


@dataclass
class TrapFrame:
    """Saved registers of an interrupted context."""

    edi: int = 0
    esi: int = 0
    ebp: int = 0
    oesp: int = 0
    ebx: int = 0
    edx: int = 0
    ecx: int = 0
    eax: int = 0
    gs: int = 0
    fs: int = 0
    es: int = 0
    ds: int = 0
    trapno: int = 0
    err: int = 0
    eip: int = 0
    cs: int = 0
    eflags: int = 0
    esp: int = 0
    ss: int = 0

    SIZE = _LAYOUT.size

    def pack(self) -> bytes:
        try:
            return _LAYOUT.pack(*astuple(self))
        except struct.error as exc:
            raise ValueError(str(exc)) from exc

    @classmethod
    def unpack(cls, data: bytes) -> "TrapFrame":
        if len(data) != _LAYOUT.size:
            raise ValueError(f"trap frame must be {_LAYOUT.size} bytes, got {len(data)}")
        return cls(*_LAYOUT.unpack(data))

    def from_user(self) -> bool:
        """True when the trap came from user mode."""
        return (self.cs & 3) == DPL_USER