import struct

import pytest

from dionysos.elf import (
    ELF_HEADER_SIZE,
    ELF_MAGIC,
    PROG_FLAG_EXEC,
    PROG_FLAG_READ,
    PROG_FLAG_WRITE,
    PROG_LOAD,
    PROGRAM_HEADER_SIZE,
    ElfFormatError,
    ElfHeader,
    ProgramHeader,
    program_headers,
)

IDENT = b"\x02\x01\x01" + bytes(9)


def make_header(entry=0x401000, phnum=0, phoff=64, phentsize=56, magic=ELF_MAGIC):
    return struct.pack(
        "<I12sHHIQQQIHHHHHH",
        magic, IDENT, 2, 0x3E, 1, entry, phoff, 0, 0, 64, phentsize, phnum, 64, 0, 0,
    )


def make_program(ptype, flags, offset, vaddr, size):
    return struct.pack("<IIQQQQQQ", ptype, flags, offset, vaddr, vaddr, size, size, 0x1000)


def test_header_sizes_match_elf64():
    header = make_header(entry=0x1234)
    assert len(header) == ELF_HEADER_SIZE == 64
    assert ElfHeader.parse(header).entry == 0x1234
    program = make_program(PROG_LOAD, PROG_FLAG_READ, 0, 0x5000, 8)
    assert len(program) == PROGRAM_HEADER_SIZE == 56
    assert ProgramHeader.parse(program).vaddr == 0x5000


def test_parse_header():
    header = ElfHeader.parse(make_header(entry=0x401000, phnum=2))
    assert header.magic == ELF_MAGIC
    assert header.ident == IDENT
    assert header.entry == 0x401000
    assert header.phnum == 2
    assert header.machine == 0x3E


def test_magic_is_elf_bytes():
    data = make_header()
    assert data[:4] == b"\x7fELF"
    assert ElfHeader.parse(data).type == 2


def test_bad_magic_raises():
    with pytest.raises(ElfFormatError):
        ElfHeader.parse(make_header(magic=0x12345678))


def test_short_header_raises():
    with pytest.raises(ElfFormatError):
        ElfHeader.parse(make_header()[:20])


def test_program_headers_round_trip():
    text = make_program(PROG_LOAD, PROG_FLAG_EXEC | PROG_FLAG_READ, 0x1000, 0x401000, 0x200)
    data = make_program(PROG_LOAD, PROG_FLAG_WRITE | PROG_FLAG_READ, 0x2000, 0x402000, 0x80)
    image = make_header(phnum=2) + text + data
    headers = program_headers(image)
    assert headers == [ProgramHeader.parse(text), ProgramHeader.parse(data)]
    assert headers[0].type == PROG_LOAD
    assert headers[0].flags & PROG_FLAG_EXEC
    assert not headers[1].flags & PROG_FLAG_EXEC
    assert headers[1].vaddr == 0x402000


def test_no_program_headers():
    assert program_headers(make_header(phnum=0)) == []


def test_program_headers_past_end_raise():
    image = make_header(phnum=3) + make_program(PROG_LOAD, PROG_FLAG_READ, 0, 0, 1)
    with pytest.raises(ElfFormatError):
        program_headers(image)


def test_small_entry_size_raises():
    image = make_header(phnum=1, phentsize=8) + make_program(PROG_LOAD, 0, 0, 0, 0)
    with pytest.raises(ElfFormatError):
        program_headers(image)