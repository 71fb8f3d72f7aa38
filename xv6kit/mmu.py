"""x86 MMU structures, paging helpers and the kernel memory layout."""

from __future__ import annotations

from dataclasses import dataclass, fields

UINT_MASK = 0xFFFFFFFF

# Eflags register
FL_IF = 0x00000200

# Control register flags
CR0_PE = 0x00000001
CR0_WP = 0x00010000
CR0_PG = 0x80000000
CR4_PSE = 0x00000010

# Segment selectors
SEG_KCODE = 1
SEG_KDATA = 2
SEG_UCODE = 3
SEG_UDATA = 4
SEG_TSS = 5
NSEGS = 6

DPL_USER = 0x3

# Application segment type bits
STA_X = 0x8
STA_W = 0x2
STA_R = 0x2

# System segment type bits
STS_T32A = 0x9
STS_IG32 = 0xE
STS_TG32 = 0xF

# Paging
NPDENTRIES = 1024
NPTENTRIES = 1024
PGSIZE = 4096
PTXSHIFT = 12
PDXSHIFT = 22

PTE_P = 0x001
PTE_W = 0x002
PTE_U = 0x004
PTE_PS = 0x080

# Memory layout
EXTMEM = 0x100000
PHYSTOP = 0xE000000
DEVSPACE = 0xFE000000
KERNBASE = 0x80000000
KERNLINK = KERNBASE + EXTMEM


def _u32(value: int) -> int:
    return value & UINT_MASK


def _pack_fields(obj, widths: dict[str, int]) -> bytes:
    value = 0
    shift = 0
    for f in fields(obj):
        value |= getattr(obj, f.name) << shift
        shift += widths[f.name]
    return value.to_bytes(8, "little")


def _unpack_fields(cls, widths: dict[str, int], data: bytes):
    if len(data) != 8:
        raise ValueError(f"descriptor must be 8 bytes, got {len(data)}")
    value = int.from_bytes(data, "little")
    values = {}
    for f in fields(cls):
        width = widths[f.name]
        values[f.name] = value & ((1 << width) - 1)
        value >>= width
    return cls(**values)


class _BitPacked:
    """Eight-byte descriptor built from consecutive little-endian bit fields."""

    _WIDTHS: dict[str, int] = {}

    def __post_init__(self) -> None:
        for name, width in self._WIDTHS.items():
            value = getattr(self, name)
            if not 0 <= value < (1 << width):
                raise ValueError(f"{name}={value!r} does not fit in {width} bits")


@dataclass(frozen=True)
class SegmentDescriptor(_BitPacked):
    """A GDT segment descriptor."""

    lim_15_0: int = 0
    base_15_0: int = 0
    base_23_16: int = 0
    type: int = 0
    s: int = 0
    dpl: int = 0
    p: int = 0
    lim_19_16: int = 0
    avl: int = 0
    rsv1: int = 0
    db: int = 0
    g: int = 0
    base_31_24: int = 0

    _WIDTHS = {
        "lim_15_0": 16, "base_15_0": 16, "base_23_16": 8, "type": 4,
        "s": 1, "dpl": 2, "p": 1, "lim_19_16": 4, "avl": 1, "rsv1": 1,
        "db": 1, "g": 1, "base_31_24": 8,
    }

    def pack(self) -> bytes:
        """Encode the descriptor as the 8 bytes the CPU reads."""
        return _pack_fields(self, self._WIDTHS)

    @classmethod
    def unpack(cls, data: bytes) -> "SegmentDescriptor":
        """Decode a descriptor from its 8-byte form."""
        return _unpack_fields(cls, cls._WIDTHS, data)


@dataclass(frozen=True)
class GateDescriptor(_BitPacked):
    """An IDT interrupt or trap gate."""

    off_15_0: int = 0
    cs: int = 0
    args: int = 0
    rsv1: int = 0
    type: int = 0
    s: int = 0
    dpl: int = 0
    p: int = 0
    off_31_16: int = 0

    _WIDTHS = {
        "off_15_0": 16, "cs": 16, "args": 5, "rsv1": 3, "type": 4,
        "s": 1, "dpl": 2, "p": 1, "off_31_16": 16,
    }

    def pack(self) -> bytes:
        """Encode the gate as the 8 bytes the CPU reads."""
        return _pack_fields(self, self._WIDTHS)

    @classmethod
    def unpack(cls, data: bytes) -> "GateDescriptor":
        """Decode a gate from its 8-byte form."""
        return _unpack_fields(cls, cls._WIDTHS, data)


def pdx(va: int) -> int:
    """Page directory index of a virtual address."""
    return (_u32(va) >> PDXSHIFT) & 0x3FF


def ptx(va: int) -> int:
    """Page table index of a virtual address."""
    return (_u32(va) >> PTXSHIFT) & 0x3FF


def pgaddr(d: int, t: int, o: int) -> int:
    """Build a virtual address from directory index, table index and offset."""
    return _u32((d << PDXSHIFT) | (t << PTXSHIFT) | o)


def pg_round_up(sz: int) -> int:
    return _u32(sz + PGSIZE - 1) & ~(PGSIZE - 1) & UINT_MASK


def pg_round_down(a: int) -> int:
    return _u32(a) & ~(PGSIZE - 1) & UINT_MASK


def pte_addr(pte: int) -> int:
    return _u32(pte) & ~0xFFF & UINT_MASK


def pte_flags(pte: int) -> int:
    return _u32(pte) & 0xFFF


def v2p(a: int) -> int:
    """Kernel virtual address to physical address."""
    return _u32(a - KERNBASE)


def p2v(a: int) -> int:
    """Physical address to kernel virtual address."""
    return _u32(a + KERNBASE)


def seg(type: int, base: int, lim: int, dpl: int) -> SegmentDescriptor:
    """Normal 32-bit segment with a limit in 4 KiB units."""
    base = _u32(base)
    lim = _u32(lim)
    return SegmentDescriptor(
        lim_15_0=(lim >> 12) & 0xFFFF,
        base_15_0=base & 0xFFFF,
        base_23_16=(base >> 16) & 0xFF,
        type=type & 0xF,
        s=1,
        dpl=dpl & 0x3,
        p=1,
        lim_19_16=(lim >> 28) & 0xF,
        avl=0,
        rsv1=0,
        db=1,
        g=1,
        base_31_24=base >> 24,
    )


def seg16(type: int, base: int, lim: int, dpl: int) -> SegmentDescriptor:
    """Segment with a byte-granular limit."""
    base = _u32(base)
    lim = _u32(lim)
    return SegmentDescriptor(
        lim_15_0=lim & 0xFFFF,
        base_15_0=base & 0xFFFF,
        base_23_16=(base >> 16) & 0xFF,
        type=type & 0xF,
        s=1,
        dpl=dpl & 0x3,
        p=1,
        lim_19_16=(lim >> 16) & 0xF,
        avl=0,
        rsv1=0,
        db=1,
        g=0,
        base_31_24=base >> 24,
    )


def seg_asm(type: int, base: int, lim: int) -> bytes:
    """The 8 bytes the boot assembler emits for a flat ring-0 segment."""
    base = _u32(base)
    lim = _u32(lim)
    return bytes([
        *((lim >> 12) & 0xFFFF).to_bytes(2, "little"),
        *(base & 0xFFFF).to_bytes(2, "little"),
        (base >> 16) & 0xFF,
        0x90 | type,
        0xC0 | ((lim >> 28) & 0xF),
        (base >> 24) & 0xFF,
    ])


def set_gate(istrap: bool, sel: int, off: int, dpl: int) -> GateDescriptor:
    """An interrupt gate, or a trap gate when istrap is true."""
    off = _u32(off)
    return GateDescriptor(
        off_15_0=off & 0xFFFF,
        cs=sel,
        args=0,
        rsv1=0,
        type=STS_TG32 if istrap else STS_IG32,
        s=0,
        dpl=dpl,
        p=1,
        off_31_16=off >> 16,
    )