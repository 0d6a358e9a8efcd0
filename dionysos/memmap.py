"""Physical memory map handling: usable page ranges and power-of-two helpers."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import IntEnum

from .paging import PAGE_SIZE, UINT64_MASK

MAX_PAGE_RANGES = 10


def _u64(value: int) -> int:
    if not 0 <= value <= UINT64_MASK:
        raise ValueError(f"{value} is not a 64-bit unsigned value")
    return value


def is_power_of_two(x: int) -> bool:
    """True when ``x`` is a non-zero power of two."""
    _u64(x)
    return x != 0 and x & (x - 1) == 0


def next_power_of_two(x: int) -> int:
    """The smallest power of two not below ``x``; 1 for 0, 0 when it overflows 64 bits."""
    _u64(x)
    if x == 0:
        return 1
    return (1 << (x - 1).bit_length()) & UINT64_MASK


class MemoryType(IntEnum):
    """Kinds of memory reported by the bootloader's memory map."""

    USABLE = 0
    RESERVED = 1
    ACPI_RECLAIMABLE = 2
    ACPI_NVS = 3
    BAD_MEMORY = 4
    BOOTLOADER_RECLAIMABLE = 5
    KERNEL_AND_MODULES = 6
    FRAMEBUFFER = 7


@dataclass(frozen=True)
class MemoryMapEntry:
    """One region of physical memory as reported by the bootloader."""

    base: int
    length: int
    type: MemoryType

    def __post_init__(self) -> None:
        _u64(self.base)
        _u64(self.length)
        _u64(self.base + self.length)

    @property
    def end(self) -> int:
        return self.base + self.length

    @property
    def page_count(self) -> int:
        """Pages the region touches, counting a partial last page."""
        return (self.length + PAGE_SIZE - 1) // PAGE_SIZE


@dataclass(frozen=True)
class PageRange:
    """A contiguous run of usable physical pages."""

    start_address: int
    end_address: int
    pages: int


def usable_ranges(memory_map: Iterable[MemoryMapEntry]) -> list[PageRange]:
    """Collect the usable regions as page ranges, largest first.

    Ranges with the same page count keep their order from the map. At most
    ``MAX_PAGE_RANGES`` usable regions are accepted.
    """
    ranges = [
        PageRange(
            start_address=entry.base,
            end_address=entry.end,
            pages=entry.length // PAGE_SIZE,
        )
        for entry in memory_map
        if entry.type == MemoryType.USABLE
    ]
    if len(ranges) > MAX_PAGE_RANGES:
        raise ValueError(
            f"memory map has {len(ranges)} usable regions; at most "
            f"{MAX_PAGE_RANGES} are supported"
        )
    ranges.sort(key=lambda page_range: page_range.pages, reverse=True)
    return ranges