"""ELF executable file header and program header formats."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator

ELF_MAGIC = 0x464C457F  # "\x7FELF" in little endian

ELF_PROG_LOAD = 1

ELF_PROG_FLAG_EXEC = 1
ELF_PROG_FLAG_WRITE = 2
ELF_PROG_FLAG_READ = 4

_ELF_HEADER = struct.Struct("<I12sHHIIIIIHHHHHH")
_PROG_HEADER = struct.Struct("<8I")


class ElfFormatError(ValueError):
    """The data is not a well-formed ELF image."""


@dataclass
class ElfHeader:
    """ELF file header."""

    magic: int = ELF_MAGIC
    elf: bytes = bytes(12)
    type: int = 0
    machine: int = 0
    version: int = 0
    entry: int = 0
    phoff: int = 0
    shoff: int = 0
    flags: int = 0
    ehsize: int = 0
    phentsize: int = 0
    phnum: int = 0
    shentsize: int = 0
    shnum: int = 0
    shstrndx: int = 0

    SIZE = _ELF_HEADER.size

    @classmethod
    def parse(cls, data: bytes) -> "ElfHeader":
        """Read the header at the start of data, checking the magic number."""
        if len(data) < _ELF_HEADER.size:
            raise ElfFormatError("data too short for an ELF header")
        header = cls(*_ELF_HEADER.unpack_from(data))
        if header.magic != ELF_MAGIC:
            raise ElfFormatError(f"bad ELF magic {header.magic:#010x}")
        return header

    def pack(self) -> bytes:
        if len(self.elf) != 12:
            raise ElfFormatError("elf identification must be 12 bytes")
        try:
            return _ELF_HEADER.pack(
                self.magic, bytes(self.elf), self.type, self.machine,
                self.version, self.entry, self.phoff, self.shoff, self.flags,
                self.ehsize, self.phentsize, self.phnum, self.shentsize,
                self.shnum, self.shstrndx,
            )
        except struct.error as exc:
            raise ElfFormatError(str(exc)) from exc


@dataclass
class ProgramHeader:
    """ELF program (segment) header."""

    type: int = 0
    off: int = 0
    vaddr: int = 0
    paddr: int = 0
    filesz: int = 0
    memsz: int = 0
    flags: int = 0
    align: int = 0

    SIZE = _PROG_HEADER.size

    @classmethod
    def parse(cls, data: bytes) -> "ProgramHeader":
        if len(data) < _PROG_HEADER.size:
            raise ElfFormatError("data too short for a program header")
        return cls(*_PROG_HEADER.unpack_from(data))

    def pack(self) -> bytes:
        try:
            return _PROG_HEADER.pack(
                self.type, self.off, self.vaddr, self.paddr,
                self.filesz, self.memsz, self.flags, self.align,
            )
        except struct.error as exc:
            raise ElfFormatError(str(exc)) from exc


def program_headers(data: bytes) -> Iterator[ProgramHeader]:
    """Yield each program header of the ELF image in data."""
    header = ElfHeader.parse(data)
    view = memoryview(data)
    for index in range(header.phnum):
        start = header.phoff + index * ProgramHeader.SIZE
        yield ProgramHeader.parse(view[start:start + ProgramHeader.SIZE])