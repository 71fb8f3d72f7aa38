# xv6kit

Pure-Python models of the pieces of a small x86 teaching kernel and its
user-space library. Everything is ordinary Python objects: no hardware,
no emulator, no native code.

## What is inside

| Module | Contents |
| --- | --- |
| `xv6kit.mmu` | Address arithmetic (`pdx`, `ptx`, `pgaddr`, `pg_round_up`, `pg_round_down`, `pte_addr`, `pte_flags`, `v2p`, `p2v`), memory-layout and flag constants, and 8-byte segment and gate descriptors (`SegmentDescriptor`, `GateDescriptor` with `pack`/`unpack`; builders `seg`, `seg16`, `seg_asm`, `set_gate`). |
| `xv6kit.elf` | `ElfHeader` and `ProgramHeader` (`parse`/`pack`) for 32-bit little-endian ELF images, and `program_headers()` to iterate over an image's program headers. Bad input raises `ElfFormatError`. |
| `xv6kit.cstring` | C-style byte-string helpers over `bytes`/`bytearray`: `memset`, `memmove`, `memcmp`, `strncmp`, `strcmp`, `strncpy`, `safestrcpy`, `strlen`, `strchr`, `atoi`, `gets`. |
| `xv6kit.trapframe` | `TrapFrame`, the register snapshot pushed on a trap, with `pack`/`unpack` and `from_user()`. |
| `xv6kit.shell` | The shell grammar: `Lexer`, `parse_command()` and the command tree (`ExecCommand`, `RedirCommand`, `PipeCommand`, `ListCommand`, `BackCommand`), plus `OpenFlag`. Syntax errors raise `ShellSyntaxError`. |
| `xv6kit.umalloc` | A first-fit, address-ordered free-list allocator (`Allocator` with `malloc`, `free`, `free_blocks`) over a growable `Heap` (`sbrk`). |
| `xv6kit.wc` | Line, word and byte counting (`count`, returning `Counts`) and the `xv6-wc` command. |
| `xv6kit.vm` | Two-level page tables (`PageDirectory`) stored in simulated `PhysicalMemory`, with kernel mappings, user memory growth and shrinking, copying and `copyout`. Broken invariants raise `KernelPanic`. Also holds the kernel's size limits (`NPROC`, `NOFILE`, `MAXARG`, ...). |
| `xv6kit.locks` | `SpinLock` and `SleepLock`, and `Cpu` with nested interrupt disabling (`push_cli`/`pop_cli`). Misuse raises `LockPanic`. |
| `xv6kit.syscall` | System-call numbers (`Syscall`), `FileType`, `Stat`, `RtcDate`, argument fetching from a process's memory (`ProcessMemory`, `SyscallContext`) and a dispatch table (`SyscallTable`). Failed calls raise `SyscallError` and yield -1. |
| `xv6kit.trap` | Trap and IRQ numbers (`Trap`, `Irq`), the tick clock (`TickClock`) and trap dispatch (`TrapDispatcher`, returning a `TrapOutcome`). |

## Install

```
pip install .
```

## Examples

Parse a shell line:

```python
from xv6kit.shell import parse_command

cmd = parse_command("cat < input | wc > out &")
print(cmd)  # BackCommand(cmd=PipeCommand(left=RedirCommand(...), right=RedirCommand(...)))
```

Translate addresses:

```python
from xv6kit.mmu import pdx, ptx, pg_round_up

va = 0x80123456
print(pdx(va), ptx(va), hex(pg_round_up(0x1001)))  # 512 291 0x2000
```

Allocate from the user heap:

```python
from xv6kit.umalloc import Allocator

alloc = Allocator()
p = alloc.malloc(100)
alloc.free(p)
print(alloc.free_blocks())
```

Build a page table and write into user memory:

```python
from xv6kit.vm import PhysicalMemory, PageDirectory

mem = PhysicalMemory(end=0x1000000)
pgdir = PageDirectory.setupkvm(mem, data=0x80108000)
pgdir.allocuvm(0, 8192)
pgdir.copyout(100, b"hello")
print(mem.read(pgdir.uva2ka(0) + 100, 5))  # b'hello'
```

Dispatch a system call:

```python
from xv6kit.syscall import ProcessMemory, Syscall, SyscallContext, SyscallTable

table = SyscallTable()
table.register(Syscall.GETPID, lambda ctx: ctx.pid)
ctx = SyscallContext(memory=ProcessMemory(bytes(64)), pid=7)
ctx.tf.eax = Syscall.GETPID
print(table.dispatch(ctx))  # 7
```

## Command line

Count lines, words and bytes of files, or of standard input when none are
given:

```
xv6-wc README.md
```

Each line of output is `lines words bytes name`. A file that cannot be
opened prints `wc: cannot open NAME` and ends the run with status 1.

## What it does not do

- There is no file system, disk, inode or buffer cache; `Stat` and
  `FileType` are only the record formats.
- There are no processes, scheduler, `fork`, `exec` or `wait`. System-call
  handlers are whatever callables you register with `SyscallTable`.
- The shell module parses command lines into a tree; it does not run them.
- Device handlers (disk, keyboard, serial port) are plain callbacks given to
  `TrapDispatcher`; nothing talks to real devices.

## Tests

```
pip install .[test]
pytest
```