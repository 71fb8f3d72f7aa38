"""Spin locks with nested interrupt disabling, and sleeping locks."""

from __future__ import annotations

import threading
import traceback
from dataclasses import dataclass

from xv6kit.vm import KernelPanic

_MAX_PCS = 10


class LockPanic(KernelPanic):
    """A lock was used in a way that breaks its rules."""


@dataclass
class Cpu:
    """Per-CPU interrupt state used by the locks."""

    id: int = 0
    interrupts_enabled: bool = True
    ncli: int = 0
    intena: bool = False

    def push_cli(self) -> None:
        """Disable interrupts; matched by pop_cli."""
        enabled = self.interrupts_enabled
        self.interrupts_enabled = False
        if self.ncli == 0:
            self.intena = enabled
        self.ncli += 1

    def pop_cli(self) -> None:
        """Undo one push_cli, restoring interrupts after the outermost one."""
        if self.interrupts_enabled:
            raise LockPanic("popcli - interruptible")
        self.ncli -= 1
        if self.ncli < 0:
            raise LockPanic("popcli")
        if self.ncli == 0 and self.intena:
            self.interrupts_enabled = True


def _caller_pcs() -> list[str]:
    frames = traceback.extract_stack(limit=_MAX_PCS + 2)[:-2]
    return [f"{f.name} ({f.filename}:{f.lineno})" for f in reversed(frames)][:_MAX_PCS]


class SpinLock:
    """Mutual exclusion lock held by one CPU at a time."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self.cpu: Cpu | None = None
        self.pcs: list[str] = []
        self._lock = threading.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    def acquire(self, cpu: Cpu) -> None:
        """Take the lock on cpu, waiting while another CPU holds it."""
        cpu.push_cli()
        if self.holding(cpu):
            raise LockPanic("acquire")
        self._lock.acquire()
        self.cpu = cpu
        self.pcs = _caller_pcs()

    def release(self, cpu: Cpu) -> None:
        """Release the lock held by cpu."""
        if not self.holding(cpu):
            raise LockPanic("release")
        self.pcs = []
        self.cpu = None
        self._lock.release()
        cpu.pop_cli()

    def holding(self, cpu: Cpu) -> bool:
        """Whether cpu holds this lock."""
        cpu.push_cli()
        held = self.locked and self.cpu is cpu
        cpu.pop_cli()
        return held


class SleepLock:
    """Long-term lock; waiters sleep until it is released."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self.locked = False
        self.pid = 0
        self._cond = threading.Condition()

    def acquire(self, pid: int) -> None:
        """Take the lock for process pid, sleeping while it is held."""
        with self._cond:
            while self.locked:
                self._cond.wait()
            self.locked = True
            self.pid = pid

    def release(self) -> None:
        """Release the lock and wake every waiter."""
        with self._cond:
            self.locked = False
            self.pid = 0
            self._cond.notify_all()

    def holding(self, pid: int) -> bool:
        """Whether process pid holds the lock."""
        with self._cond:
            return self.locked and self.pid == pid