"""On-disk layout of a diosfs image: constants, record formats and size planning."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

BLOCK_SIZE = 1024
MAGIC = 0x7777777777777777
VERSION = 1
MAX_FILENAME_LENGTH = 128

NUM_INODE_POINTER_BLOCKS = 16
NUM_BLOCK_POINTER_BLOCKS = 128

NUM_BLOCKS_DIRECT = 10
POINTERS_PER_BLOCK = BLOCK_SIZE // 8
NUM_BLOCKS_SINGLE_INDIRECTION = POINTERS_PER_BLOCK
NUM_BLOCKS_DOUBLE_INDIRECTION = POINTERS_PER_BLOCK * POINTERS_PER_BLOCK
NUM_BLOCKS_TRIPLE_INDIRECTION = POINTERS_PER_BLOCK ** 3
MAX_BLOCKS_IN_INODE = NUM_BLOCKS_DIRECT * BLOCK_SIZE * POINTERS_PER_BLOCK ** 3

_SUPERBLOCK_STRUCT = struct.Struct("<12Q928x")
_INODE_STRUCT = struct.Struct("<5H128s2xII4x10Q3Q")
_DIRENT_STRUCT = struct.Struct("<128sIIHHI")

SUPERBLOCK_SIZE = _SUPERBLOCK_STRUCT.size
INODE_SIZE = _INODE_STRUCT.size
DIRENT_SIZE = _DIRENT_STRUCT.size

INODES_PER_BLOCK = BLOCK_SIZE // INODE_SIZE
DIRENTS_PER_BLOCK = BLOCK_SIZE // DIRENT_SIZE
MAX_FILES_IN_DIRECTORY = (NUM_BLOCKS_DIRECT * BLOCK_SIZE) // DIRENT_SIZE


class DiosfsError(Exception):
    """Raised when a diosfs structure or operation is invalid."""


class InodeType(IntEnum):
    DIRECTORY = 0
    REG_FILE = 1
    SYMLINK = 2


def _as_type(value: int) -> int:
    try:
        return InodeType(value)
    except ValueError:
        return value


def _encode_name(name: str) -> bytes:
    raw = name.encode("utf-8", "surrogateescape")
    if b"\0" in raw:
        raise DiosfsError(f"name {name!r} contains a NUL byte")
    if len(raw) >= MAX_FILENAME_LENGTH:
        raise DiosfsError(
            f"name {name!r} is longer than {MAX_FILENAME_LENGTH - 1} bytes"
        )
    return raw


def _decode_name(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")


def _pack(layout: struct.Struct, what: str, *values) -> bytes:
    try:
        return layout.pack(*values)
    except struct.error as exc:
        raise DiosfsError(f"cannot encode {what}: {exc}") from exc


def _unpack(layout: struct.Struct, what: str, data: bytes) -> tuple:
    if len(data) < layout.size:
        raise DiosfsError(
            f"{what} needs {layout.size} bytes, got {len(data)}"
        )
    return layout.unpack_from(data)


@dataclass(frozen=True)
class SizeCalculation:
    """How an image of a given size is divided between metadata and data."""

    total_blocks: int
    total_inodes: int
    total_data_blocks: int
    total_block_bitmap_blocks: int
    total_inode_bitmap_blocks: int


def size_info(gigabytes: int, block_size: int = BLOCK_SIZE) -> SizeCalculation:
    """Plan the block and inode counts for an image of ``gigabytes`` GiB."""
    if gigabytes <= 0:
        raise DiosfsError("image size must be at least 1 GB")
    if block_size < INODE_SIZE:
        raise DiosfsError(f"block size {block_size} is smaller than an inode")
    size_bytes = gigabytes << 30
    total_blocks = size_bytes // block_size
    padding = total_blocks // 150
    split = total_blocks // 32 - padding
    total_inodes = split * (block_size // INODE_SIZE)
    total_data_blocks = total_blocks - split - padding
    return SizeCalculation(
        total_blocks=total_blocks,
        total_inodes=total_inodes,
        total_data_blocks=total_data_blocks,
        total_block_bitmap_blocks=total_data_blocks // block_size // 8,
        total_inode_bitmap_blocks=total_inodes // block_size // 8,
    )


@dataclass
class Superblock:
    """The first block of an image, describing where everything else lives."""

    magic: int = MAGIC
    version: int = VERSION
    block_size: int = BLOCK_SIZE
    num_blocks: int = 0
    num_inodes: int = 0
    total_size: int = 0
    inode_bitmap_size: int = 0
    block_bitmap_size: int = 0
    inode_bitmap_pointers_start: int = 0
    block_bitmap_pointers_start: int = 0
    inode_start_pointer: int = 0
    block_start_pointer: int = 0

    def pack(self) -> bytes:
        return _pack(
            _SUPERBLOCK_STRUCT,
            "superblock",
            self.magic,
            self.version,
            self.block_size,
            self.num_blocks,
            self.num_inodes,
            self.total_size,
            self.inode_bitmap_size,
            self.block_bitmap_size,
            self.inode_bitmap_pointers_start,
            self.block_bitmap_pointers_start,
            self.inode_start_pointer,
            self.block_start_pointer,
        )

    @classmethod
    def unpack(cls, data: bytes) -> Superblock:
        superblock = cls(*_unpack(_SUPERBLOCK_STRUCT, "superblock", data))
        if superblock.magic != MAGIC:
            raise DiosfsError(f"bad superblock magic {superblock.magic:#x}")
        return superblock


@dataclass
class Inode:
    """An inode record; four of them fill one block."""

    inode_number: int = 0
    uid: int = 0
    parent_inode_number: int = 0
    type: int = InodeType.DIRECTORY
    refcount: int = 0
    name: str = ""
    size: int = 0
    block_count: int = 0
    blocks: list[int] = field(default_factory=lambda: [0] * NUM_BLOCKS_DIRECT)
    single_indirect: int = 0
    double_indirect: int = 0
    triple_indirect: int = 0

    def pack(self) -> bytes:
        if len(self.blocks) != NUM_BLOCKS_DIRECT:
            raise DiosfsError(
                f"inode needs {NUM_BLOCKS_DIRECT} direct blocks, has {len(self.blocks)}"
            )
        return _pack(
            _INODE_STRUCT,
            "inode",
            self.uid,
            self.inode_number,
            self.parent_inode_number,
            int(self.type),
            self.refcount,
            _encode_name(self.name),
            self.size,
            self.block_count,
            *self.blocks,
            self.single_indirect,
            self.double_indirect,
            self.triple_indirect,
        )

    @classmethod
    def unpack(cls, data: bytes) -> Inode:
        values = _unpack(_INODE_STRUCT, "inode", data)
        uid, number, parent, kind, refcount, name, size, block_count = values[:8]
        blocks = list(values[8:8 + NUM_BLOCKS_DIRECT])
        single, double, triple = values[8 + NUM_BLOCKS_DIRECT:]
        return cls(
            inode_number=number,
            uid=uid,
            parent_inode_number=parent,
            type=_as_type(kind),
            refcount=refcount,
            name=_decode_name(name),
            size=size,
            block_count=block_count,
            blocks=blocks,
            single_indirect=single,
            double_indirect=double,
            triple_indirect=triple,
        )


@dataclass
class DirectoryEntry:
    """One entry in a directory's data block."""

    name: str = ""
    inode_number: int = 0
    parent_inode_number: int = 0
    type: int = InodeType.DIRECTORY
    device_number: int = 0
    size: int = 0

    def pack(self) -> bytes:
        return _pack(
            _DIRENT_STRUCT,
            "directory entry",
            _encode_name(self.name),
            self.inode_number,
            self.parent_inode_number,
            int(self.type),
            self.device_number,
            self.size,
        )

    @classmethod
    def unpack(cls, data: bytes) -> DirectoryEntry:
        name, number, parent, kind, device, size = _unpack(
            _DIRENT_STRUCT, "directory entry", data
        )
        return cls(
            name=_decode_name(name),
            inode_number=number,
            parent_inode_number=parent,
            type=_as_type(kind),
            device_number=device,
            size=size,
        )


@dataclass(frozen=True)
class IndirectionIndices:
    """Where a file-relative block number sits in an inode's block tree."""

    levels: int
    direct: int = 0
    first: int = 0
    second: int = 0
    third: int = 0


def indirection_indices(block_number: int) -> IndirectionIndices:
    """Locate a file-relative block among direct and indirect pointers."""
    if block_number < 0:
        raise DiosfsError(f"invalid block number {block_number}")
    if block_number < NUM_BLOCKS_DIRECT:
        return IndirectionIndices(levels=0, direct=block_number)

    n = block_number - NUM_BLOCKS_DIRECT
    if n < NUM_BLOCKS_SINGLE_INDIRECTION:
        return IndirectionIndices(levels=1, first=n % POINTERS_PER_BLOCK)

    n -= NUM_BLOCKS_SINGLE_INDIRECTION
    if n < NUM_BLOCKS_DOUBLE_INDIRECTION:
        second, first = divmod(n, POINTERS_PER_BLOCK)
        return IndirectionIndices(levels=2, first=first, second=second)

    n -= NUM_BLOCKS_DOUBLE_INDIRECTION
    if n < NUM_BLOCKS_TRIPLE_INDIRECTION:
        third, rest = divmod(n, NUM_BLOCKS_DOUBLE_INDIRECTION)
        second, first = divmod(rest, POINTERS_PER_BLOCK)
        return IndirectionIndices(levels=3, first=first, second=second, third=third)

    raise DiosfsError(f"invalid block number {block_number}")