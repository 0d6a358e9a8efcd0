"""Parsing of 64-bit ELF file and program headers."""

from __future__ import annotations

import struct
from dataclasses import dataclass

ELF_MAGIC = 0x464C457F

PROG_LOAD = 1

PROG_FLAG_EXEC = 1
PROG_FLAG_WRITE = 2
PROG_FLAG_READ = 4

_ELF_HEADER = struct.Struct("<I12sHHIQQQIHHHHHH")
_PROGRAM_HEADER = struct.Struct("<IIQQQQQQ")

ELF_HEADER_SIZE = _ELF_HEADER.size
PROGRAM_HEADER_SIZE = _PROGRAM_HEADER.size


class ElfFormatError(ValueError):
    """Raised when bytes do not hold a well-formed ELF header."""


@dataclass(frozen=True)
class ElfHeader:
    """The ELF file header."""

    magic: int
    ident: bytes
    type: int
    machine: int
    version: int
    entry: int
    phoff: int
    shoff: int
    flags: int
    ehsize: int
    phentsize: int
    phnum: int
    shentsize: int
    shnum: int
    shstrndx: int

    @classmethod
    def parse(cls, data: bytes) -> ElfHeader:
        if len(data) < ELF_HEADER_SIZE:
            raise ElfFormatError(
                f"ELF header needs {ELF_HEADER_SIZE} bytes, got {len(data)}"
            )
        header = cls(*_ELF_HEADER.unpack_from(data))
        if header.magic != ELF_MAGIC:
            raise ElfFormatError(f"bad ELF magic {header.magic:#x}")
        return header


@dataclass(frozen=True)
class ProgramHeader:
    """One program (segment) header."""

    type: int
    flags: int
    offset: int
    vaddr: int
    paddr: int
    filesz: int
    memsz: int
    align: int

    @classmethod
    def parse(cls, data: bytes) -> ProgramHeader:
        if len(data) < PROGRAM_HEADER_SIZE:
            raise ElfFormatError(
                f"program header needs {PROGRAM_HEADER_SIZE} bytes, got {len(data)}"
            )
        return cls(*_PROGRAM_HEADER.unpack_from(data))


def program_headers(data: bytes) -> list[ProgramHeader]:
    """Return every program header of an ELF image."""
    header = ElfHeader.parse(data)
    if header.phnum == 0:
        return []
    if header.phentsize < PROGRAM_HEADER_SIZE:
        raise ElfFormatError(f"program header entry size {header.phentsize} is too small")
    headers = []
    for index in range(header.phnum):
        start = header.phoff + index * header.phentsize
        end = start + PROGRAM_HEADER_SIZE
        if end > len(data):
            raise ElfFormatError(f"program header {index} runs past the end of the data")
        headers.append(ProgramHeader.parse(data[start:end]))
    return headers