import pytest

from xv6kit.mmu import DPL_USER, SEG_KCODE, SEG_UCODE, SEG_UDATA
from xv6kit.trapframe import TrapFrame


def _frame():
    return TrapFrame(
        edi=1, esi=2, ebp=3, oesp=4, ebx=5, edx=6, ecx=7, eax=8,
        gs=9, fs=10, es=11, ds=(SEG_UDATA << 3) | DPL_USER, trapno=64,
        err=0, eip=0x1234, cs=(SEG_UCODE << 3) | DPL_USER, eflags=0x200,
        esp=0x3000, ss=(SEG_UDATA << 3) | DPL_USER,
    )


def test_round_trip():
    tf = _frame()
    data = tf.pack()
    assert len(data) == TrapFrame.SIZE
    assert TrapFrame.unpack(data) == tf


def test_first_register_little_endian():
    assert TrapFrame(edi=0x11223344).pack()[:4] == bytes.fromhex("44332211")


def test_from_user():
    assert _frame().from_user() is True
    assert TrapFrame(cs=SEG_KCODE << 3).from_user() is False


def test_unpack_wrong_size():
    with pytest.raises(ValueError):
        TrapFrame.unpack(b"\x00" * (TrapFrame.SIZE - 1))


def test_pack_rejects_oversized_selector():
    with pytest.raises(ValueError):
        TrapFrame(cs=0x10000).pack()