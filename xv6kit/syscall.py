"""System call numbers, argument fetching from user memory, and dispatch."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import Callable

from xv6kit.mmu import UINT_MASK
from xv6kit.trapframe import TrapFrame

_INT = struct.Struct("<i")
_STAT = struct.Struct("<h2xiIh2xI")


class Syscall(enum.IntEnum):
    """System call numbers passed in %eax."""

    FORK = 1
    EXIT = 2
    WAIT = 3
    PIPE = 4
    READ = 5
    KILL = 6
    EXEC = 7
    FSTAT = 8
    CHDIR = 9
    DUP = 10
    GETPID = 11
    SBRK = 12
    SLEEP = 13
    UPTIME = 14
    OPEN = 15
    WRITE = 16
    MKNOD = 17
    UNLINK = 18
    LINK = 19
    MKDIR = 20
    CLOSE = 21


class FileType(enum.IntEnum):
    """Kind of object an inode describes."""

    DIR = 1
    FILE = 2
    DEV = 3


@dataclass
class Stat:
    """File status returned by fstat."""

    type: int = 0
    dev: int = 0
    ino: int = 0
    nlink: int = 0
    size: int = 0

    SIZE = _STAT.size

    def pack(self) -> bytes:
        try:
            return _STAT.pack(self.type, self.dev, self.ino, self.nlink, self.size)
        except struct.error as exc:
            raise ValueError(str(exc)) from exc

    @classmethod
    def unpack(cls, data: bytes) -> "Stat":
        if len(data) != _STAT.size:
            raise ValueError(f"stat must be {_STAT.size} bytes, got {len(data)}")
        return cls(*_STAT.unpack(data))


@dataclass
class RtcDate:
    """Calendar time read from the real-time clock."""

    second: int = 0
    minute: int = 0
    hour: int = 0
    day: int = 0
    month: int = 0
    year: int = 0


class SyscallError(Exception):
    """A system call failed; the caller sees -1."""


class ProcessMemory:
    """The user address space of a process, from address 0 up to its size."""

    def __init__(self, data: bytes | bytearray = b"") -> None:
        self.data = bytearray(data)

    @property
    def sz(self) -> int:
        return len(self.data)

    def fetchint(self, addr: int) -> int:
        """The 32-bit signed integer stored at addr."""
        if addr < 0 or addr >= self.sz or addr + 4 > self.sz:
            raise SyscallError(f"bad int address {addr:#x}")
        return _INT.unpack_from(self.data, addr)[0]

    def fetchstr(self, addr: int) -> bytes:
        """The NUL-terminated string at addr, without its terminator."""
        if addr < 0 or addr >= self.sz:
            raise SyscallError(f"bad string address {addr:#x}")
        end = self.data.find(b"\0", addr)
        if end < 0:
            raise SyscallError(f"unterminated string at {addr:#x}")
        return bytes(self.data[addr:end])


@dataclass
class SyscallContext:
    """The calling process as a system call sees it."""

    memory: ProcessMemory
    tf: TrapFrame = field(default_factory=TrapFrame)
    pid: int = 0
    name: str = ""
    killed: bool = False
    running: bool = True

    def argint(self, n: int) -> int:
        """The nth 32-bit argument on the user stack."""
        return self.memory.fetchint((self.tf.esp + 4 + 4 * n) & UINT_MASK)

    def argptr(self, n: int, size: int) -> int:
        """The nth argument as an address of size bytes inside the process."""
        addr = self.argint(n) & UINT_MASK
        if size < 0 or addr >= self.memory.sz or addr + size > self.memory.sz:
            raise SyscallError(f"bad pointer {addr:#x} of size {size}")
        return addr

    def argstr(self, n: int) -> bytes:
        """The nth argument as a NUL-terminated string."""
        return self.memory.fetchstr(self.argint(n) & UINT_MASK)


Handler = Callable[[SyscallContext], int]


class SyscallTable:
    """Maps system call numbers to handlers and runs them."""

    def __init__(self, console: Callable[[str], None] = print) -> None:
        self.console = console
        self._handlers: dict[int, Handler] = {}

    def register(self, num: int, handler: Handler) -> None:
        """Install handler for system call number num."""
        if not 0 < num <= max(Syscall):
            raise ValueError(f"system call number {num} out of range")
        self._handlers[int(num)] = handler

    def dispatch(self, ctx: SyscallContext) -> int:
        """Run the call named by %eax and store its result back in %eax."""
        raw = ctx.tf.eax & UINT_MASK
        num = raw - (1 << 32) if raw >= (1 << 31) else raw
        handler = self._handlers.get(num) if num > 0 else None
        if handler is None:
            self.console(f"{ctx.pid} {ctx.name}: unknown sys call {num}")
            result = -1
        else:
            try:
                result = handler(ctx)
            except SyscallError:
                result = -1
        ctx.tf.eax = result & UINT_MASK
        return result