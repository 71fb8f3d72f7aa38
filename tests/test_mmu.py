import pytest

from xv6kit.mmu import (
    DPL_USER,
    EXTMEM,
    KERNBASE,
    KERNLINK,
    NPDENTRIES,
    NPTENTRIES,
    PGSIZE,
    SEG_KCODE,
    STA_R,
    STA_W,
    STA_X,
    STS_IG32,
    STS_T32A,
    STS_TG32,
    GateDescriptor,
    SegmentDescriptor,
    p2v,
    pdx,
    pg_round_down,
    pg_round_up,
    pgaddr,
    pte_addr,
    pte_flags,
    ptx,
    seg,
    seg16,
    seg_asm,
    set_gate,
    v2p,
)


@pytest.mark.parametrize("va", [0, 1, 0x1234, KERNBASE, KERNLINK + 0x5678, 0xFFFFFFFF])
def test_address_split_recombines(va):
    assert pgaddr(pdx(va), ptx(va), va & 0xFFF) == va
    assert pdx(va) < NPDENTRIES
    assert ptx(va) < NPTENTRIES


def test_round_up_and_down():
    assert pg_round_up(0) == 0
    assert pg_round_up(1) == PGSIZE
    assert pg_round_up(PGSIZE) == PGSIZE
    assert pg_round_down(PGSIZE + 1) == PGSIZE
    assert pg_round_down(PGSIZE - 1) == 0


@pytest.mark.parametrize("pte", [0, 0x7, 0x12345007, 0xFFFFFFFF])
def test_pte_parts(pte):
    assert pte_addr(pte) | pte_flags(pte) == pte
    assert pte_addr(pte) % PGSIZE == 0


def test_v2p_p2v():
    assert v2p(KERNLINK) == EXTMEM
    assert p2v(EXTMEM) == KERNLINK
    assert v2p(p2v(0x1234)) == 0x1234


def test_flat_kernel_code_segment_bytes():
    assert seg(STA_X | STA_R, 0, 0xFFFFFFFF, 0).pack() == bytes.fromhex("ffff0000009acf00")


@pytest.mark.parametrize("type_", [STA_X | STA_R, STA_W])
def test_seg_asm_matches_seg(type_):
    assert seg_asm(type_, 0, 0xFFFFFFFF) == seg(type_, 0, 0xFFFFFFFF, 0).pack()


def test_user_segment_fields():
    d = seg(STA_W, 0, 0xFFFFFFFF, DPL_USER)
    assert d.dpl == DPL_USER
    assert d.g == 1
    assert d.db == 1
    assert SegmentDescriptor.unpack(d.pack()) == d


def test_seg16_is_byte_granular():
    base = 0x12345678
    d = seg16(STS_T32A, base, 103, 0)
    assert d.g == 0
    assert d.lim_15_0 == 103
    assert d.base_15_0 | (d.base_23_16 << 16) | (d.base_31_24 << 24) == base


def test_segment_field_width_checked():
    with pytest.raises(ValueError):
        SegmentDescriptor(dpl=4)


def test_unpack_wrong_length():
    with pytest.raises(ValueError):
        SegmentDescriptor.unpack(b"\x00" * 7)
    with pytest.raises(ValueError):
        GateDescriptor.unpack(b"\x00" * 9)


def test_trap_and_interrupt_gates():
    off = 0x12345678
    trap_gate = set_gate(True, SEG_KCODE << 3, off, DPL_USER)
    intr_gate = set_gate(False, SEG_KCODE << 3, off, 0)
    assert trap_gate.type == STS_TG32
    assert intr_gate.type == STS_IG32
    assert trap_gate.dpl == DPL_USER
    assert trap_gate.p == 1 and trap_gate.s == 0
    assert trap_gate.off_15_0 | (trap_gate.off_31_16 << 16) == off
    assert trap_gate.cs == SEG_KCODE << 3


def test_gate_round_trip():
    g = set_gate(False, SEG_KCODE << 3, 0xDEADBEEF, 0)
    assert GateDescriptor.unpack(g.pack()) == g