"""An in-memory diosfs image with inode, directory and block allocation."""

from __future__ import annotations

import struct
from dataclasses import fields

from .layout import (
    BLOCK_SIZE,
    DIRENT_SIZE,
    DIRENTS_PER_BLOCK,
    INODE_SIZE,
    INODES_PER_BLOCK,
    MAX_FILES_IN_DIRECTORY,
    NUM_BLOCKS_DIRECT,
    NUM_BLOCKS_DOUBLE_INDIRECTION,
    NUM_BLOCKS_SINGLE_INDIRECTION,
    NUM_BLOCKS_TRIPLE_INDIRECTION,
    POINTERS_PER_BLOCK,
    DiosfsError,
    DirectoryEntry,
    Inode,
    InodeType,
    SizeCalculation,
    Superblock,
    indirection_indices,
    size_info,
)

_POINTER_BLOCK = struct.Struct(f"<{POINTERS_PER_BLOCK}Q")

DIRECTORY_CAPACITY = min(MAX_FILES_IN_DIRECTORY, DIRENTS_PER_BLOCK * NUM_BLOCKS_DIRECT)
FILE_CAPACITY = (
    NUM_BLOCKS_DIRECT
    + NUM_BLOCKS_SINGLE_INDIRECTION
    + NUM_BLOCKS_DOUBLE_INDIRECTION
    + NUM_BLOCKS_TRIPLE_INDIRECTION
)


class DiosfsImage:
    """A diosfs image held in memory; only blocks that were touched are stored."""

    def __init__(self, layout: SizeCalculation) -> None:
        self.layout = layout
        inode_bitmap_start = 1
        block_bitmap_start = inode_bitmap_start + layout.total_inode_bitmap_blocks
        inode_start = block_bitmap_start + layout.total_block_bitmap_blocks
        block_start = inode_start + layout.total_inodes // INODES_PER_BLOCK
        if block_start >= layout.total_blocks:
            raise DiosfsError(
                f"layout leaves no room for data: blocks start at {block_start} "
                f"of {layout.total_blocks}"
            )
        self.superblock = Superblock(
            num_blocks=layout.total_blocks,
            num_inodes=layout.total_inodes,
            total_size=layout.total_blocks * BLOCK_SIZE,
            inode_bitmap_size=layout.total_inode_bitmap_blocks,
            block_bitmap_size=layout.total_block_bitmap_blocks,
            inode_bitmap_pointers_start=inode_bitmap_start,
            block_bitmap_pointers_start=block_bitmap_start,
            inode_start_pointer=inode_start,
            block_start_pointer=block_start,
        )
        self._blocks: dict[int, bytearray] = {}
        self._inode_capacity = min(
            layout.total_inode_bitmap_blocks * BLOCK_SIZE * 8,
            layout.total_inodes // INODES_PER_BLOCK * INODES_PER_BLOCK,
        )
        self._block_capacity = min(
            layout.total_block_bitmap_blocks * BLOCK_SIZE * 8,
            layout.total_blocks - block_start,
        )
        self.write_block(0, self.superblock.pack())

    @classmethod
    def from_gigabytes(cls, gigabytes: int) -> DiosfsImage:
        """Create an empty image sized for ``gigabytes`` GiB."""
        return cls(size_info(gigabytes))

    @property
    def block_start(self) -> int:
        return self.superblock.block_start_pointer

    @property
    def inode_start(self) -> int:
        return self.superblock.inode_start_pointer

    # -- raw blocks -------------------------------------------------------

    def _check_block(self, block_number: int) -> None:
        if not 0 <= block_number < self.layout.total_blocks:
            raise DiosfsError(
                f"block {block_number} is outside the image "
                f"({self.layout.total_blocks} blocks)"
            )

    @staticmethod
    def _check_span(offset: int, size: int) -> None:
        if offset < 0 or size < 0 or offset + size > BLOCK_SIZE:
            raise DiosfsError(
                f"span of {size} bytes at offset {offset} does not fit in a block"
            )

    def read_block(self, block_number: int, offset: int = 0, size: int | None = None) -> bytes:
        """Read bytes from an absolute block number."""
        self._check_block(block_number)
        if size is None:
            size = BLOCK_SIZE - offset
        self._check_span(offset, size)
        stored = self._blocks.get(block_number)
        if stored is None:
            return bytes(size)
        return bytes(stored[offset:offset + size])

    def write_block(self, block_number: int, data: bytes, offset: int = 0) -> None:
        """Write bytes into an absolute block number."""
        self._check_block(block_number)
        self._check_span(offset, len(data))
        stored = self._blocks.setdefault(block_number, bytearray(BLOCK_SIZE))
        stored[offset:offset + len(data)] = data

    def _read_data(self, block_number: int, offset: int = 0, size: int | None = None) -> bytes:
        return self.read_block(self.block_start + block_number, offset, size)

    def _write_data(self, block_number: int, data: bytes, offset: int = 0) -> None:
        self.write_block(self.block_start + block_number, data, offset)

    # -- inodes -----------------------------------------------------------

    def _inode_location(self, inode_number: int) -> tuple[int, int]:
        if not 0 <= inode_number < self._inode_capacity:
            raise DiosfsError(f"inode {inode_number} is outside the inode table")
        block, slot = divmod(inode_number, INODES_PER_BLOCK)
        return self.inode_start + block, slot * INODE_SIZE

    def read_inode(self, inode_number: int) -> Inode:
        block, offset = self._inode_location(inode_number)
        return Inode.unpack(self.read_block(block, offset, INODE_SIZE))

    def write_inode(self, inode: Inode) -> None:
        block, offset = self._inode_location(inode.inode_number)
        self.write_block(block, inode.pack(), offset)

    def _refresh(self, inode: Inode) -> None:
        fresh = self.read_inode(inode.inode_number)
        for item in fields(fresh):
            setattr(inode, item.name, getattr(fresh, item.name))

    # -- bitmaps ----------------------------------------------------------

    def _allocate_bit(self, bitmap_start: int, bitmap_blocks: int, capacity: int, what: str) -> int:
        for index in range(bitmap_blocks):
            bitmap = self._blocks.setdefault(bitmap_start + index, bytearray(BLOCK_SIZE))
            for byte_index, value in enumerate(bitmap):
                if value == 0xFF:
                    continue
                bit = (~value & (value + 1)).bit_length() - 1
                number = (index * BLOCK_SIZE + byte_index) * 8 + bit
                if number >= capacity:
                    raise DiosfsError(f"no free {what}")
                bitmap[byte_index] |= 1 << bit
                return number
        raise DiosfsError(f"no free {what}")

    def allocate_inode(self) -> Inode:
        """Claim the first free inode and return a blank record for it."""
        number = self._allocate_bit(
            self.superblock.inode_bitmap_pointers_start,
            self.superblock.inode_bitmap_size,
            self._inode_capacity,
            "inodes",
        )
        return Inode(inode_number=number)

    def allocate_block(self) -> int:
        """Claim the first free data block and return its number."""
        return self._allocate_bit(
            self.superblock.block_bitmap_pointers_start,
            self.superblock.block_bitmap_size,
            self._block_capacity,
            "blocks",
        )

    # -- directories ------------------------------------------------------

    def create_root(self) -> Inode:
        """Create the root directory inode."""
        inode = self.allocate_inode()
        inode.name = "/"
        inode.type = InodeType.DIRECTORY
        inode.uid = 0
        inode.parent_inode_number = inode.inode_number
        inode.refcount = 1
        self.write_inode(inode)
        return self.read_inode(inode.inode_number)

    def create(self, parent: Inode, name: str, inode_type: int) -> int:
        """Create ``name`` inside ``parent`` and return the new inode number."""
        self._refresh(parent)
        if parent.type != InodeType.DIRECTORY:
            raise DiosfsError(f"{parent.name!r} is not a directory")
        if parent.size >= DIRECTORY_CAPACITY:
            raise DiosfsError(f"directory {parent.name!r} is full")
        Inode(name=name).pack()  # validate the name before claiming an inode

        inode = self.allocate_inode()
        inode.type = InodeType(inode_type)
        inode.block_count = 0
        inode.parent_inode_number = parent.inode_number
        inode.name = name
        inode.uid = 0
        self.write_inode(inode)

        entry = DirectoryEntry(
            name=name,
            inode_number=inode.inode_number,
            parent_inode_number=parent.inode_number,
            type=inode.type,
            size=0,
        )
        self.write_dirent(parent, entry)
        return inode.inode_number

    def write_dirent(self, inode: Inode, entry: DirectoryEntry) -> None:
        """Append a directory entry, allocating a direct block when needed."""
        self._refresh(inode)
        if inode.type != InodeType.DIRECTORY:
            raise DiosfsError(f"{inode.name!r} is not a directory")
        if inode.size >= DIRECTORY_CAPACITY:
            raise DiosfsError(f"directory {inode.name!r} is full")
        block, slot = divmod(inode.size, DIRENTS_PER_BLOCK)
        if block >= inode.block_count:
            inode.blocks[block] = self.allocate_block()
            inode.block_count += 1
        self._write_data(inode.blocks[block], entry.pack(), slot * DIRENT_SIZE)
        inode.size += 1
        self.write_inode(inode)

    def directory_entries(self, inode: Inode) -> list[DirectoryEntry]:
        """Return the entries of a directory in the order they were written."""
        current = self.read_inode(inode.inode_number)
        if current.type != InodeType.DIRECTORY:
            raise DiosfsError(f"{current.name!r} is not a directory")
        entries = []
        for position in range(current.size):
            block, slot = divmod(position, DIRENTS_PER_BLOCK)
            raw = self._read_data(current.blocks[block], slot * DIRENT_SIZE, DIRENT_SIZE)
            entries.append(DirectoryEntry.unpack(raw))
        return entries

    # -- file blocks ------------------------------------------------------

    def _read_pointers(self, block_number: int) -> list[int]:
        return list(_POINTER_BLOCK.unpack(self._read_data(block_number)))

    def _write_pointers(self, block_number: int, pointers: list[int]) -> None:
        self._write_data(block_number, _POINTER_BLOCK.pack(*pointers))

    def _new_pointer_block(self) -> int:
        number = self.allocate_block()
        self._write_data(number, bytes(BLOCK_SIZE))
        return number

    def _root_table(self, inode: Inode, attribute: str) -> int:
        table = getattr(inode, attribute)
        if table == 0:
            table = self._new_pointer_block()
            setattr(inode, attribute, table)
        return table

    def _child_table(self, table: int, index: int) -> int:
        pointers = self._read_pointers(table)
        if pointers[index] == 0:
            pointers[index] = self._new_pointer_block()
            self._write_pointers(table, pointers)
        return pointers[index]

    def _set_block_pointer(self, inode: Inode, relative_block: int, block_number: int) -> None:
        where = indirection_indices(relative_block)
        if where.levels == 0:
            inode.blocks[where.direct] = block_number
            return
        if where.levels == 1:
            table = self._root_table(inode, "single_indirect")
        elif where.levels == 2:
            table = self._child_table(self._root_table(inode, "double_indirect"), where.second)
        else:
            middle = self._child_table(self._root_table(inode, "triple_indirect"), where.third)
            table = self._child_table(middle, where.second)
        pointers = self._read_pointers(table)
        pointers[where.first] = block_number
        self._write_pointers(table, pointers)

    def allocate_inode_blocks(self, inode: Inode, count: int) -> list[int]:
        """Append ``count`` data blocks to an inode and return their numbers."""
        if count < 0:
            raise DiosfsError(f"cannot allocate {count} blocks")
        target = inode.block_count + count
        if inode.type == InodeType.DIRECTORY and target > NUM_BLOCKS_DIRECT:
            raise DiosfsError("directories may only use direct blocks")
        if target > FILE_CAPACITY:
            raise DiosfsError(f"an inode cannot hold {target} blocks")
        allocated = []
        try:
            for relative in range(inode.block_count, target):
                number = self.allocate_block()
                self._set_block_pointer(inode, relative, number)
                inode.block_count = relative + 1
                allocated.append(number)
        finally:
            self.write_inode(inode)
        return allocated

    def block_number_for(self, inode: Inode, relative_block: int) -> int:
        """Map a file-relative block to its data block number."""
        if not 0 <= relative_block < inode.block_count:
            raise DiosfsError(
                f"block {relative_block} is beyond the {inode.block_count} "
                f"blocks of {inode.name!r}"
            )
        where = indirection_indices(relative_block)
        if where.levels == 0:
            return inode.blocks[where.direct]
        if where.levels == 1:
            table = inode.single_indirect
        elif where.levels == 2:
            table = self._read_pointers(inode.double_indirect)[where.second]
        else:
            middle = self._read_pointers(inode.triple_indirect)[where.third]
            table = self._read_pointers(middle)[where.second]
        return self._read_pointers(table)[where.first]

    def write_bytes(self, inode: Inode, data: bytes, offset: int = 0) -> int:
        """Write ``data`` into a regular file at ``offset``; return bytes written."""
        self._refresh(inode)
        if inode.type != InodeType.REG_FILE:
            raise DiosfsError(f"{inode.name!r} is not a regular file")
        if offset < 0 or offset > inode.size:
            raise DiosfsError(
                f"offset {offset} is beyond the end of {inode.name!r} ({inode.size} bytes)"
            )
        if not data:
            return 0
        end = offset + len(data)
        last_block = (end - 1) // BLOCK_SIZE
        if last_block >= inode.block_count:
            self.allocate_inode_blocks(inode, last_block + 1 - inode.block_count)

        view = memoryview(bytes(data))
        position = offset
        while view:
            relative, within = divmod(position, BLOCK_SIZE)
            chunk = min(BLOCK_SIZE - within, len(view))
            self._write_data(self.block_number_for(inode, relative), view[:chunk], within)
            view = view[chunk:]
            position += chunk

        inode.size = max(inode.size, end)
        self.write_inode(inode)
        return len(data)

    def to_bytes(self) -> bytes:
        """Return the whole image as it would be written to disk."""
        image = bytearray(self.layout.total_blocks * BLOCK_SIZE)
        for number, block in self._blocks.items():
            image[number * BLOCK_SIZE:(number + 1) * BLOCK_SIZE] = block
        return bytes(image)