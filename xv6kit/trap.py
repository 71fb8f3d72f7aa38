"""Trap numbers, the tick clock and trap dispatch."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from typing import Callable, Sequence

from xv6kit.mmu import DPL_USER, SEG_KCODE, GateDescriptor, UINT_MASK, set_gate
from xv6kit.syscall import SyscallContext, SyscallError, SyscallTable
from xv6kit.trapframe import TrapFrame
from xv6kit.vm import KernelPanic

NVECTORS = 256


class Trap(enum.IntEnum):
    """x86 trap and interrupt vector numbers."""

    DIVIDE = 0
    DEBUG = 1
    NMI = 2
    BRKPT = 3
    OFLOW = 4
    BOUND = 5
    ILLOP = 6
    DEVICE = 7
    DBLFLT = 8
    TSS = 10
    SEGNP = 11
    STACK = 12
    GPFLT = 13
    PGFLT = 14
    FPERR = 16
    ALIGN = 17
    MCHK = 18
    SIMDERR = 19
    IRQ0 = 32
    SYSCALL = 64
    DEFAULT = 500


class Irq(enum.IntEnum):
    """Hardware interrupt request lines, relative to Trap.IRQ0."""

    TIMER = 0
    KBD = 1
    COM1 = 4
    IDE = 14
    ERROR = 19
    SPURIOUS = 31


class TickClock:
    """Counts timer interrupts and lets callers sleep for a number of ticks."""

    def __init__(self) -> None:
        self._ticks = 0
        self._cond = threading.Condition()

    def tick(self) -> None:
        """Record one timer interrupt and wake sleepers."""
        with self._cond:
            self._ticks = (self._ticks + 1) & UINT_MASK
            self._cond.notify_all()

    def uptime(self) -> int:
        """Ticks since the clock started."""
        with self._cond:
            return self._ticks

    def sleep(self, n: int, killed: Callable[[], bool] | None = None) -> None:
        """Wait for n ticks; raise SyscallError if killed() becomes true."""
        target = n & UINT_MASK
        with self._cond:
            ticks0 = self._ticks
            while (self._ticks - ticks0) & UINT_MASK < target:
                if killed is not None and killed():
                    raise SyscallError("killed while sleeping")
                self._cond.wait()


@dataclass(frozen=True)
class TrapOutcome:
    """What handling a trap did to the interrupted process and the CPU."""

    eoi: bool = False
    yielded: bool = False
    exited: bool = False


def _noop() -> None:
    return None


@dataclass
class TrapDispatcher:
    """Routes traps to system calls, device handlers and the clock."""

    clock: TickClock = field(default_factory=TickClock)
    syscalls: SyscallTable = field(default_factory=SyscallTable)
    console: Callable[[str], None] = print
    cpu_id: int = 0
    ide_intr: Callable[[], None] = _noop
    kbd_intr: Callable[[], None] = _noop
    uart_intr: Callable[[], None] = _noop
    yield_cpu: Callable[[], None] = _noop
    read_cr2: Callable[[], int] = lambda: 0

    def build_idt(self, vectors: Sequence[int]) -> list[GateDescriptor]:
        """Interrupt descriptor table for the given 256 entry points."""
        if len(vectors) != NVECTORS:
            raise ValueError(f"need {NVECTORS} vectors, got {len(vectors)}")
        idt = [set_gate(False, SEG_KCODE << 3, v, 0) for v in vectors]
        idt[Trap.SYSCALL] = set_gate(True, SEG_KCODE << 3, vectors[Trap.SYSCALL], DPL_USER)
        return idt

    def trap(self, tf: TrapFrame, proc: SyscallContext | None) -> TrapOutcome:
        """Handle one trap described by tf, taken while proc was current."""
        if tf.trapno == Trap.SYSCALL:
            if proc is None:
                raise KernelPanic("syscall with no process")
            if proc.killed:
                return TrapOutcome(exited=True)
            proc.tf = tf
            self.syscalls.dispatch(proc)
            return TrapOutcome(exited=proc.killed)

        eoi = True
        irq = tf.trapno - Trap.IRQ0
        if irq == Irq.TIMER:
            if self.cpu_id == 0:
                self.clock.tick()
        elif irq == Irq.IDE:
            self.ide_intr()
        elif irq == Irq.IDE + 1:
            eoi = False  # spurious IDE1 interrupts
        elif irq == Irq.KBD:
            self.kbd_intr()
        elif irq == Irq.COM1:
            self.uart_intr()
        elif irq in (7, Irq.SPURIOUS):
            self.console(f"cpu{self.cpu_id}: spurious interrupt at {tf.cs:x}:{tf.eip:x}")
        else:
            eoi = False
            if proc is None or (tf.cs & 3) == 0:
                self.console(
                    f"unexpected trap {tf.trapno} from cpu {self.cpu_id} "
                    f"eip {tf.eip:x} (cr2=0x{self.read_cr2():x})"
                )
                raise KernelPanic("trap")
            self.console(
                f"pid {proc.pid} {proc.name}: trap {tf.trapno} err {tf.err} "
                f"on cpu {self.cpu_id} eip 0x{tf.eip:x} "
                f"addr 0x{self.read_cr2():x}--kill proc"
            )
            proc.killed = True

        if proc is not None and proc.killed and tf.from_user():
            return TrapOutcome(eoi=eoi, exited=True)

        yielded = False
        if proc is not None and proc.running and tf.trapno == Trap.IRQ0 + Irq.TIMER:
            self.yield_cpu()
            yielded = True

        exited = proc is not None and proc.killed and tf.from_user()
        return TrapOutcome(eoi=eoi, yielded=yielded, exited=exited)