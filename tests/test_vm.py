import pytest

from xv6kit.mmu import (
    DEVSPACE,
    EXTMEM,
    KERNBASE,
    KERNLINK,
    PGSIZE,
    PTE_P,
    PTE_U,
    PTE_W,
    p2v,
    pte_addr,
    pte_flags,
    v2p,
)
from xv6kit.vm import KernelPanic, PageDirectory, PhysicalMemory

START = 0x200000
END = 0x400000
DATA = KERNLINK + 0x80000


@pytest.fixture
def mem():
    return PhysicalMemory(start=START, end=END)


@pytest.fixture
def kvm(mem):
    return PageDirectory.setupkvm(mem, DATA)


def _pte(pd, va):
    addr = pd.walk(va, False)
    assert addr is not None
    return int.from_bytes(pd.mem.read(addr, 4), "little")


def test_kalloc_returns_distinct_aligned_pages(mem):
    initial = mem.free_pages()
    pages = [mem.kalloc() for _ in range(5)]
    assert len(set(pages)) == 5
    assert all(p % PGSIZE == 0 and START <= p < END for p in pages)
    assert mem.free_pages() == initial - 5
    for p in pages:
        mem.kfree(p)
    assert mem.free_pages() == initial


def test_free_pages_counts_whole_range(mem):
    assert mem.free_pages() == (END - START) // PGSIZE


def test_kfree_rejects_bad_pages(mem):
    pa = mem.kalloc()
    mem.kfree(pa)
    with pytest.raises(KernelPanic, match="kfree"):
        mem.kfree(pa)
    with pytest.raises(KernelPanic):
        mem.kfree(mem.kalloc() + 1)
    with pytest.raises(KernelPanic):
        mem.kfree(END)


def test_kalloc_exhaustion():
    small = PhysicalMemory(start=PGSIZE, end=3 * PGSIZE)
    small.kalloc()
    small.kalloc()
    with pytest.raises(MemoryError):
        small.kalloc()


def test_read_write_across_pages(mem):
    payload = bytes(range(256)) * 3
    pa = START + PGSIZE - 100
    mem.write(pa, payload)
    assert mem.read(pa, len(payload)) == payload
    assert mem.read(START, 16) == bytes(16)


def test_read_outside_memory(mem):
    with pytest.raises(ValueError):
        mem.read(END - 2, 4)


def test_bad_memory_bounds():
    with pytest.raises(ValueError):
        PhysicalMemory(start=PGSIZE, end=PGSIZE)
    with pytest.raises(ValueError):
        PhysicalMemory(start=1, end=PGSIZE * 2)


def test_setupkvm_maps_io_space(kvm):
    entry = _pte(kvm, KERNBASE)
    assert pte_addr(entry) == 0
    assert pte_flags(entry) == PTE_P | PTE_W


def test_setupkvm_maps_kernel_text_read_only(kvm):
    entry = _pte(kvm, KERNLINK)
    assert pte_addr(entry) == EXTMEM
    assert pte_flags(entry) == PTE_P


def test_setupkvm_maps_kernel_data(kvm):
    entry = _pte(kvm, DATA)
    assert pte_addr(entry) == v2p(DATA)
    assert pte_flags(entry) == PTE_P | PTE_W
    assert pte_addr(_pte(kvm, p2v(END - PGSIZE))) == END - PGSIZE


def test_setupkvm_maps_devices(kvm):
    assert _pte(kvm, DEVSPACE) == DEVSPACE | PTE_W | PTE_P
    top = 0xFFFFF000
    assert pte_addr(_pte(kvm, top)) == top


def test_setupkvm_has_no_user_mappings(kvm):
    assert kvm.walk(0, False) is None
    assert kvm.uva2ka(0) is None
    assert kvm.uva2ka(KERNBASE) is None


def test_setupkvm_rejects_bad_data(mem):
    with pytest.raises(ValueError):
        PageDirectory.setupkvm(mem, KERNLINK)
    with pytest.raises(ValueError):
        PageDirectory.setupkvm(mem, KERNBASE + END)


def test_setupkvm_memory_too_high():
    big = PhysicalMemory(start=PGSIZE, end=DEVSPACE - KERNBASE + PGSIZE)
    with pytest.raises(KernelPanic, match="PHYSTOP too high"):
        PageDirectory.setupkvm(big, DATA)


def test_free_returns_all_pages(mem):
    initial = mem.free_pages()
    pd = PageDirectory.setupkvm(mem, DATA)
    assert mem.free_pages() < initial
    pd.allocuvm(0, 3 * PGSIZE)
    pd.free()
    assert mem.free_pages() == initial
    with pytest.raises(KernelPanic, match="freevm"):
        pd.free()


def test_inituvm(kvm, mem):
    init = b"\x01\x02hello"
    kvm.inituvm(init)
    pa = kvm.uva2ka(0)
    assert mem.read(pa, len(init)) == init
    assert mem.read(pa + len(init), 16) == bytes(16)
    assert pte_flags(_pte(kvm, 0)) == PTE_P | PTE_W | PTE_U


def test_inituvm_too_big(kvm):
    with pytest.raises(KernelPanic, match="more than a page"):
        kvm.inituvm(bytes(PGSIZE))


def test_allocuvm_and_deallocuvm(kvm, mem):
    initial = mem.free_pages()
    size = 3 * PGSIZE + 1
    assert kvm.allocuvm(0, size) == size
    pages = [kvm.uva2ka(va) for va in range(0, size, PGSIZE)]
    assert all(p is not None for p in pages)
    assert len(set(pages)) == len(pages)
    assert all(pte_flags(_pte(kvm, va)) == PTE_P | PTE_W | PTE_U for va in range(0, size, PGSIZE))
    assert mem.free_pages() < initial - len(pages) + 1
    assert kvm.deallocuvm(size, 0) == 0
    assert all(kvm.uva2ka(va) is None for va in range(0, size, PGSIZE))


def test_allocuvm_shrink_and_limits(kvm):
    assert kvm.allocuvm(2 * PGSIZE, PGSIZE) == 2 * PGSIZE
    with pytest.raises(ValueError):
        kvm.allocuvm(0, KERNBASE)
    assert kvm.deallocuvm(PGSIZE, 2 * PGSIZE) == PGSIZE


def test_allocuvm_out_of_memory_rolls_back():
    small = PhysicalMemory(start=END - 16 * PGSIZE, end=END)
    total = small.free_pages()
    pd = PageDirectory.setupkvm(small, DATA)
    with pytest.raises(MemoryError):
        pd.allocuvm(0, 20 * PGSIZE)
    assert pd.uva2ka(0) is None
    pd.free()
    assert small.free_pages() == total


def test_map_pages_remap_panics(kvm):
    with pytest.raises(KernelPanic, match="remap"):
        kvm.map_pages(KERNBASE, PGSIZE, 0, PTE_W)
    with pytest.raises(ValueError):
        kvm.map_pages(0, 0, START, PTE_W)


def test_copy_duplicates_user_memory(kvm, mem):
    initial = mem.free_pages()
    kvm.allocuvm(0, 2 * PGSIZE)
    kvm.copyout(0, b"parent data")
    child = kvm.copy(2 * PGSIZE)
    assert child.uva2ka(0) != kvm.uva2ka(0)
    assert mem.read(child.uva2ka(0), 11) == b"parent data"
    assert pte_flags(_pte(child, PGSIZE)) == pte_flags(_pte(kvm, PGSIZE))
    kvm.copyout(0, b"changed")
    assert mem.read(child.uva2ka(0), 11) == b"parent data"
    child.free()
    kvm.allocuvm(0, 0)
    assert mem.free_pages() < initial


def test_copy_of_unmapped_panics(kvm):
    with pytest.raises(KernelPanic, match="pte should exist"):
        kvm.copy(PGSIZE)


def test_copyout_spans_pages(kvm, mem):
    kvm.allocuvm(0, 2 * PGSIZE)
    payload = bytes(range(200))
    va = PGSIZE - 100
    kvm.copyout(va, payload)
    assert mem.read(kvm.uva2ka(0) + va, 100) == payload[:100]
    assert mem.read(kvm.uva2ka(PGSIZE), 100) == payload[100:]


def test_copyout_unmapped(kvm):
    with pytest.raises(ValueError):
        kvm.copyout(0, b"x")
    with pytest.raises(ValueError):
        kvm.copyout(KERNBASE, b"x")


def test_clearpteu(kvm):
    kvm.allocuvm(0, 2 * PGSIZE)
    kvm.clearpteu(0)
    assert kvm.uva2ka(0) is None
    assert kvm.uva2ka(PGSIZE) is not None
    flags = pte_flags(_pte(kvm, 0))
    assert flags & PTE_U == 0
    assert flags & PTE_P == PTE_P


def test_clearpteu_missing_panics(kvm):
    with pytest.raises(KernelPanic, match="clearpteu"):
        kvm.clearpteu(0x1400000)


def test_loaduvm(kvm, mem):
    kvm.allocuvm(0, 2 * PGSIZE)
    data = b"x" * 10 + bytes(range(256)) * 20
    sz = len(data) - 10
    kvm.loaduvm(0, data, 10, sz)
    loaded = mem.read(kvm.uva2ka(0), PGSIZE) + mem.read(kvm.uva2ka(PGSIZE), sz - PGSIZE)
    assert loaded == data[10:]


def test_loaduvm_errors(kvm):
    kvm.allocuvm(0, PGSIZE)
    with pytest.raises(KernelPanic, match="page aligned"):
        kvm.loaduvm(1, b"abc", 0, 3)
    with pytest.raises(ValueError):
        kvm.loaduvm(0, b"abc", 0, 10)
    with pytest.raises(KernelPanic, match="should exist"):
        kvm.loaduvm(0x1400000, b"abc", 0, 3)