"""Two-level x86 page tables kept in a simulated physical memory."""

from __future__ import annotations

import struct

from xv6kit.mmu import (
    DEVSPACE,
    EXTMEM,
    KERNBASE,
    KERNLINK,
    NPDENTRIES,
    PDXSHIFT,
    PGSIZE,
    PHYSTOP,
    PTE_P,
    PTE_U,
    PTE_W,
    UINT_MASK,
    pdx,
    pg_round_down,
    pg_round_up,
    pte_addr,
    pte_flags,
    ptx,
    v2p,
)

NPROC = 64  # maximum number of processes
KSTACKSIZE = 4096  # size of per-process kernel stack
NCPU = 8  # maximum number of CPUs
NOFILE = 16  # open files per process
NFILE = 100  # open files per system
NINODE = 50  # maximum number of active i-nodes
NDEV = 10  # maximum major device number
ROOTDEV = 1  # device number of file system root disk
MAXARG = 32  # max exec arguments
MAXOPBLOCKS = 10  # max # of blocks any FS op writes
LOGSIZE = MAXOPBLOCKS * 3  # max data blocks in on-disk log
NBUF = MAXOPBLOCKS * 3  # size of disk block cache
FSSIZE = 1000  # size of file system in blocks

_WORD = struct.Struct("<I")
_TABLE = struct.Struct(f"<{NPDENTRIES}I")


class KernelPanic(RuntimeError):
    """An invariant the kernel relies on was violated."""


class PhysicalMemory:
    """Page-granular physical memory with a page allocator over [start, end)."""

    def __init__(self, start: int = 0x400000, end: int = PHYSTOP) -> None:
        if start % PGSIZE or end % PGSIZE:
            raise ValueError("memory bounds must be page aligned")
        if not 0 < start < end:
            raise ValueError("memory range must satisfy 0 < start < end")
        self.start = start
        self.end = end
        self._pages: dict[int, bytearray] = {}
        self._free: list[int] = []
        self._next = start
        self._allocated: set[int] = set()

    def kalloc(self) -> int:
        """Allocate one page and return its physical address."""
        if self._free:
            pa = self._free.pop()
        elif self._next < self.end:
            pa = self._next
            self._next += PGSIZE
        else:
            raise MemoryError("out of physical memory")
        self._allocated.add(pa)
        return pa

    def kfree(self, pa: int) -> None:
        """Return a page obtained from kalloc."""
        if pa % PGSIZE or not self.start <= pa < self.end or pa not in self._allocated:
            raise KernelPanic("kfree")
        self._allocated.discard(pa)
        self._free.append(pa)

    def free_pages(self) -> int:
        """Number of pages kalloc can still hand out."""
        return len(self._free) + (self.end - self._next) // PGSIZE

    def _check(self, pa: int, n: int) -> None:
        if pa < 0 or n < 0 or pa + n > self.end:
            raise ValueError(f"physical range {pa:#x}+{n} outside memory")

    def read(self, pa: int, n: int) -> bytes:
        """Read n bytes starting at physical address pa."""
        self._check(pa, n)
        out = bytearray()
        while n > 0:
            base = pa - pa % PGSIZE
            off = pa - base
            chunk = min(n, PGSIZE - off)
            page = self._pages.get(base)
            out += page[off:off + chunk] if page is not None else bytes(chunk)
            pa += chunk
            n -= chunk
        return bytes(out)

    def write(self, pa: int, data: bytes) -> None:
        """Write data starting at physical address pa."""
        view = memoryview(bytes(data))
        self._check(pa, len(view))
        while view:
            base = pa - pa % PGSIZE
            off = pa - base
            chunk = min(len(view), PGSIZE - off)
            page = self._pages.setdefault(base, bytearray(PGSIZE))
            page[off:off + chunk] = view[:chunk]
            view = view[chunk:]
            pa += chunk


class PageDirectory:
    """A process or kernel page directory and the page tables beneath it."""

    def __init__(self, mem: PhysicalMemory, pgdir: int, data: int) -> None:
        self.mem = mem
        self.pgdir: int | None = pgdir
        self.data = data

    @classmethod
    def setupkvm(cls, mem: PhysicalMemory, data: int) -> "PageDirectory":
        """Build a page directory holding the kernel's mappings.

        data is the kernel virtual address where writable kernel data starts.
        """
        top = mem.end
        if top + KERNBASE > DEVSPACE:
            raise KernelPanic("PHYSTOP too high")
        if not KERNLINK < data < KERNBASE + top:
            raise ValueError("kernel data address outside the kernel image")
        pa = mem.kalloc()
        mem.write(pa, bytes(PGSIZE))
        pd = cls(mem, pa, data)
        kmap = [
            (KERNBASE, 0, EXTMEM, PTE_W),  # I/O space
            (KERNLINK, v2p(KERNLINK), v2p(data), 0),  # kernel text and rodata
            (data, v2p(data), top, PTE_W),  # kernel data and free memory
            (DEVSPACE, DEVSPACE, 0, PTE_W),  # more devices
        ]
        try:
            for virt, phys_start, phys_end, perm in kmap:
                size = (phys_end - phys_start) & UINT_MASK
                pd.map_pages(virt, size, phys_start, perm)
        except MemoryError:
            pd.free()
            raise
        return pd

    def _root(self) -> int:
        if self.pgdir is None:
            raise KernelPanic("freevm: no pgdir")
        return self.pgdir

    def _load(self, addr: int) -> int:
        return _WORD.unpack(self.mem.read(addr, 4))[0]

    def _store(self, addr: int, value: int) -> None:
        self.mem.write(addr, _WORD.pack(value & UINT_MASK))

    def walk(self, va: int, alloc: bool = False) -> int | None:
        """Physical address of the PTE for va, creating its page table if alloc."""
        pde_slot = self._root() + 4 * pdx(va)
        pde = self._load(pde_slot)
        if pde & PTE_P:
            pgtab = pte_addr(pde)
        else:
            if not alloc:
                return None
            pgtab = self.mem.kalloc()
            self.mem.write(pgtab, bytes(PGSIZE))
            self._store(pde_slot, pgtab | PTE_P | PTE_W | PTE_U)
        return pgtab + 4 * ptx(va)

    def map_pages(self, va: int, size: int, pa: int, perm: int) -> None:
        """Map the pages covering [va, va+size) to physical memory from pa."""
        if size <= 0:
            raise ValueError("mapping size must be positive")
        a = pg_round_down(va)
        last = pg_round_down(va + size - 1)
        while True:
            pte = self.walk(a, True)
            assert pte is not None
            if self._load(pte) & PTE_P:
                raise KernelPanic("remap")
            self._store(pte, pa | perm | PTE_P)
            if a == last:
                break
            a += PGSIZE
            pa += PGSIZE

    def inituvm(self, init: bytes) -> None:
        """Load init (less than a page) at user address 0."""
        if len(init) >= PGSIZE:
            raise KernelPanic("inituvm: more than a page")
        pa = self.mem.kalloc()
        self.mem.write(pa, bytes(PGSIZE))
        self.map_pages(0, PGSIZE, pa, PTE_W | PTE_U)
        self.mem.write(pa, init)

    def loaduvm(self, addr: int, data: bytes, offset: int, sz: int) -> None:
        """Copy sz bytes of data from offset into already mapped pages at addr."""
        if addr % PGSIZE:
            raise KernelPanic("loaduvm: addr must be page aligned")
        for i in range(0, sz, PGSIZE):
            pte = self.walk(addr + i, False)
            if pte is None:
                raise KernelPanic("loaduvm: address should exist")
            pa = pte_addr(self._load(pte))
            n = min(sz - i, PGSIZE)
            chunk = data[offset + i:offset + i + n]
            if len(chunk) != n:
                raise ValueError("segment extends past the end of the data")
            self.mem.write(pa, chunk)

    def allocuvm(self, oldsz: int, newsz: int) -> int:
        """Grow user memory from oldsz to newsz and return the new size."""
        if newsz >= KERNBASE:
            raise ValueError("user memory cannot reach the kernel")
        if newsz < oldsz:
            return oldsz
        for a in range(pg_round_up(oldsz), newsz, PGSIZE):
            try:
                pa = self.mem.kalloc()
            except MemoryError:
                self.deallocuvm(newsz, oldsz)
                raise
            self.mem.write(pa, bytes(PGSIZE))
            try:
                self.map_pages(a, PGSIZE, pa, PTE_W | PTE_U)
            except MemoryError:
                self.deallocuvm(newsz, oldsz)
                self.mem.kfree(pa)
                raise
        return newsz

    def deallocuvm(self, oldsz: int, newsz: int) -> int:
        """Free user pages to shrink from oldsz to newsz; return the new size."""
        if newsz >= oldsz:
            return oldsz
        a = pg_round_up(newsz)
        while a < oldsz:
            pte = self.walk(a, False)
            if pte is None:
                a = ((pdx(a) + 1) << PDXSHIFT) - PGSIZE
            else:
                entry = self._load(pte)
                if entry & PTE_P:
                    pa = pte_addr(entry)
                    if pa == 0:
                        raise KernelPanic("kfree")
                    self.mem.kfree(pa)
                    self._store(pte, 0)
            a += PGSIZE
        return newsz

    def free(self) -> None:
        """Free all user pages, the page tables and the directory itself."""
        root = self._root()
        self.deallocuvm(KERNBASE, 0)
        for entry in _TABLE.unpack(self.mem.read(root, PGSIZE)):
            if entry & PTE_P:
                self.mem.kfree(pte_addr(entry))
        self.mem.kfree(root)
        self.pgdir = None

    def clearpteu(self, uva: int) -> None:
        """Make the page at uva inaccessible from user mode."""
        pte = self.walk(uva, False)
        if pte is None:
            raise KernelPanic("clearpteu")
        self._store(pte, self._load(pte) & ~PTE_U)

    def copy(self, sz: int) -> "PageDirectory":
        """A new directory holding a copy of the first sz bytes of user memory."""
        child = PageDirectory.setupkvm(self.mem, self.data)
        try:
            for i in range(0, sz, PGSIZE):
                pte = self.walk(i, False)
                if pte is None:
                    raise KernelPanic("copyuvm: pte should exist")
                entry = self._load(pte)
                if not entry & PTE_P:
                    raise KernelPanic("copyuvm: page not present")
                pa = self.mem.kalloc()
                self.mem.write(pa, self.mem.read(pte_addr(entry), PGSIZE))
                try:
                    child.map_pages(i, PGSIZE, pa, pte_flags(entry))
                except MemoryError:
                    self.mem.kfree(pa)
                    raise
        except MemoryError:
            child.free()
            raise
        return child

    def uva2ka(self, uva: int) -> int | None:
        """Physical address of the user page at uva, or None if not user-mapped."""
        pte = self.walk(uva, False)
        if pte is None:
            return None
        entry = self._load(pte)
        if not entry & PTE_P or not entry & PTE_U:
            return None
        return pte_addr(entry)

    def copyout(self, va: int, data: bytes) -> None:
        """Copy data to user address va."""
        view = memoryview(bytes(data))
        while view:
            va0 = pg_round_down(va)
            pa0 = self.uva2ka(va0)
            if pa0 is None:
                raise ValueError(f"user address {va:#x} is not mapped")
            n = min(PGSIZE - (va - va0), len(view))
            self.mem.write(pa0 + (va - va0), view[:n])
            view = view[n:]
            va = va0 + PGSIZE