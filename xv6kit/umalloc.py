"""First-fit free-list memory allocator over a growable heap."""

from __future__ import annotations

HEADER_SIZE = 8
MIN_UNITS = 4096

_BASE = -HEADER_SIZE  # sentinel header that lies below every heap address


class Heap:
    """A contiguous region whose end (the break) can be moved."""

    def __init__(self, start: int = 0, limit: int | None = None) -> None:
        if start < 0:
            raise ValueError("heap start must not be negative")
        if limit is not None and limit < start:
            raise ValueError("heap limit below its start")
        self.start = start
        self.limit = limit
        self.brk = start

    def sbrk(self, n: int) -> int:
        """Move the break by n bytes and return the old break."""
        new = self.brk + n
        if new < self.start or (self.limit is not None and new > self.limit):
            raise MemoryError(f"cannot move break by {n}")
        old = self.brk
        self.brk = new
        return old


class Allocator:
    """Allocates blocks from a Heap, keeping a circular address-ordered free list."""

    def __init__(self, heap: Heap | None = None) -> None:
        self.heap = heap if heap is not None else Heap()
        self._size: dict[int, int] = {}
        self._next: dict[int, int] = {}
        self._allocated: set[int] = set()
        self._freep: int | None = None

    def _end(self, header: int) -> int:
        return header + self._size[header] * HEADER_SIZE

    def malloc(self, nbytes: int) -> int:
        """Return the address of a block of at least nbytes bytes."""
        if nbytes < 0:
            raise ValueError("negative allocation size")
        nunits = (nbytes + HEADER_SIZE - 1) // HEADER_SIZE + 1
        if self._freep is None:
            self._size[_BASE] = 0
            self._next[_BASE] = _BASE
            self._freep = _BASE
        prevp = self._freep
        p = self._next[prevp]
        while True:
            if self._size[p] >= nunits:
                if self._size[p] == nunits:
                    self._next[prevp] = self._next.pop(p)
                else:
                    self._size[p] -= nunits
                    p = self._end(p)
                    self._size[p] = nunits
                self._freep = prevp
                self._allocated.add(p)
                return p + HEADER_SIZE
            if p == self._freep:
                p = self._morecore(nunits)
            prevp, p = p, self._next[p]

    def _morecore(self, nunits: int) -> int:
        nunits = max(nunits, MIN_UNITS)
        header = self.heap.sbrk(nunits * HEADER_SIZE)
        self._size[header] = nunits
        self._insert(header)
        assert self._freep is not None
        return self._freep

    def free(self, ap: int) -> None:
        """Return a block obtained from malloc to the free list."""
        bp = ap - HEADER_SIZE
        if bp not in self._allocated:
            raise ValueError(f"address {ap:#x} was not allocated")
        self._allocated.discard(bp)
        self._insert(bp)

    def _insert(self, bp: int) -> None:
        p = self._freep
        assert p is not None
        nxt = self._next
        while not (p < bp < nxt[p]):
            if p >= nxt[p] and (bp > p or bp < nxt[p]):
                break
            p = nxt[p]

        if self._end(bp) == nxt[p]:
            absorbed = nxt[p]
            self._size[bp] += self._size.pop(absorbed)
            nxt[bp] = nxt.pop(absorbed)
        else:
            nxt[bp] = nxt[p]
        if self._end(p) == bp:
            self._size[p] += self._size.pop(bp)
            nxt[p] = nxt.pop(bp)
        else:
            nxt[p] = bp
        self._freep = p

    def free_blocks(self) -> list[tuple[int, int]]:
        """Free blocks as (header address, size in header units), in address order."""
        if self._freep is None:
            return []
        blocks = []
        p = self._next[_BASE]
        while p != _BASE:
            blocks.append((p, self._size[p]))
            p = self._next[p]
        return blocks