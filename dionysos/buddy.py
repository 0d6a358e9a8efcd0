"""Buddy allocator for physical pages, built from the bootloader memory map."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from .memmap import MemoryMapEntry, MemoryType, next_power_of_two, usable_ranges
from .paging import PAGE_SIZE, UINT64_MASK

MAX_ORDER = 11
MAX_ORDER_PAGES = 1 << MAX_ORDER
STATIC_POOL_SIZE = 11000


class OutOfMemoryError(MemoryError):
    """Raised when no free block can satisfy a request."""


@dataclass(eq=False)
class BuddyBlock:
    """A run of ``2 ** order`` pages inside one usable memory zone."""

    start_address: int
    order: int
    zone: int
    is_free: bool = True
    chain_length: int = 1

    @property
    def pages(self) -> int:
        return 1 << self.order

    @property
    def size(self) -> int:
        return self.pages * PAGE_SIZE

    @property
    def end_address(self) -> int:
        return self.start_address + self.size


def _carve(pages: int) -> Iterator[tuple[int, int]]:
    """Split a page count into (page offset, order) blocks, largest first."""
    offset = 0
    while pages - offset >= MAX_ORDER_PAGES:
        yield offset, MAX_ORDER
        offset += MAX_ORDER_PAGES
    remaining = pages - offset
    for order in reversed(range(MAX_ORDER)):
        if remaining & (1 << order):
            yield offset, order
            offset += 1 << order


class BuddyAllocator:
    """Hands out physical page runs as power-of-two blocks and merges them back.

    Requests larger than one maximum-order block are served by a run of
    adjacent free maximum-order blocks in the same zone.
    """

    def __init__(self, memory_map: Iterable[MemoryMapEntry], hhdm_offset: int = 0) -> None:
        if not 0 <= hhdm_offset <= UINT64_MASK:
            raise ValueError(f"offset {hhdm_offset} is not a 64-bit unsigned value")
        entries = list(memory_map)
        self.hhdm_offset = hhdm_offset
        usable = [entry for entry in entries if entry.type == MemoryType.USABLE]
        self.usable_pages = sum(entry.page_count for entry in usable)
        self.reserved_pages = sum(
            entry.page_count
            for entry in entries
            if entry.type == MemoryType.KERNEL_AND_MODULES
        )
        self.highest_page_index = max((entry.end for entry in usable), default=0) // PAGE_SIZE
        self.ranges = usable_ranges(entries)
        self.total_allocated = 0

        self._free: dict[int, dict[int, BuddyBlock]] = {
            order: {} for order in range(MAX_ORDER + 1)
        }
        self._blocks: dict[int, BuddyBlock] = {}
        self._allocated: dict[int, list[BuddyBlock]] = {}
        self._zone_bases: list[int] = []

        count = 0
        for zone, page_range in enumerate(self.ranges):
            base = page_range.start_address & ~0xFFF
            self._zone_bases.append(base)
            for offset, order in _carve(page_range.pages):
                count += 1
                if count >= STATIC_POOL_SIZE:
                    raise ValueError("memory map needs more blocks than the pool holds")
                block = BuddyBlock(base + offset * PAGE_SIZE, order, zone)
                self._blocks[block.start_address] = block
                self._push(block)

    # -- free lists -------------------------------------------------------

    def _push(self, block: BuddyBlock) -> None:
        self._free[block.order][block.start_address] = block

    def _pop(self, order: int) -> BuddyBlock:
        bucket = self._free[order]
        return bucket.pop(next(iter(bucket)))

    # -- allocation -------------------------------------------------------

    def _split(self, block: BuddyBlock) -> None:
        block.order -= 1
        buddy = BuddyBlock(block.start_address + block.size, block.order, block.zone)
        self._blocks[buddy.start_address] = buddy
        self._push(buddy)

    def _take(self, order: int) -> BuddyBlock:
        for candidate in range(order, MAX_ORDER + 1):
            if self._free[candidate]:
                block = self._pop(candidate)
                while block.order > order:
                    self._split(block)
                return block
        raise OutOfMemoryError(f"no free block of {1 << order} pages")

    def _take_run(self, count: int) -> list[BuddyBlock]:
        for head in list(self._free[MAX_ORDER].values()):
            run = [head]
            while len(run) < count:
                following = self._blocks.get(run[-1].end_address)
                if (
                    following is None
                    or not following.is_free
                    or following.order != MAX_ORDER
                    or following.zone != head.zone
                ):
                    break
                run.append(following)
            if len(run) == count:
                for block in run:
                    del self._free[MAX_ORDER][block.start_address]
                return run
        raise OutOfMemoryError(f"no run of {count} free maximum-order blocks")

    def alloc(self, pages: int) -> int:
        """Allocate at least ``pages`` pages and return the physical start address."""
        if pages < 0:
            raise ValueError(f"cannot allocate {pages} pages")
        if pages > MAX_ORDER_PAGES:
            blocks = self._take_run(-(-pages // MAX_ORDER_PAGES))
        else:
            order = next_power_of_two(pages).bit_length() - 1
            blocks = [self._take(order)]
        for block in blocks:
            block.is_free = False
            self.total_allocated += block.pages
        head = blocks[0]
        head.chain_length = len(blocks)
        self._allocated[head.start_address] = blocks
        return head.start_address

    # -- freeing ----------------------------------------------------------

    def _coalesce(self, block: BuddyBlock) -> None:
        while block.order < MAX_ORDER:
            index = (block.start_address - self._zone_bases[block.zone]) // PAGE_SIZE
            if index % (2 << block.order) == 0:
                left, other = block, self._blocks.get(block.end_address)
                right = other
            else:
                other = self._blocks.get(block.start_address - block.size)
                left, right = other, block
            if (
                other is None
                or not other.is_free
                or other.order != block.order
                or other.zone != block.zone
            ):
                break
            del self._free[other.order][other.start_address]
            del self._blocks[right.start_address]
            left.order += 1
            block = left
        self._push(block)

    def free(self, address: int) -> None:
        """Return an allocation made by :meth:`alloc`, merging free buddies."""
        blocks = self._allocated.pop(address, None)
        if blocks is None:
            raise ValueError(f"address {address:#x} was not allocated")
        for block in blocks:
            block.is_free = True
            block.chain_length = 1
            self.total_allocated -= block.pages
            self._coalesce(block)

    def free_blocks(self, order: int) -> list[BuddyBlock]:
        """The free blocks of ``order``, in the order they will be handed out."""
        if not 0 <= order <= MAX_ORDER:
            raise ValueError(f"order must be between 0 and {MAX_ORDER}, got {order}")
        return list(self._free[order].values())