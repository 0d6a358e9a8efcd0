"""Four-level x86-64 paging arithmetic: table indices, rounding and entries."""

from __future__ import annotations

PAGE_SIZE = 4096

NP4DENTRIES = 512
NPUDENTRIES = 512
NPMDENTRIES = 512
NPTENTRIES = 512

PAGE_DIR_MASK = 0x1FF
PAGE_OFFSET_MASK = 0x3FF

PTXSHIFT = 12
PMDXSHIFT = 21
PUDXSHIFT = 30
P4DXSHIFT = 39

PTE_P = 0x001
PTE_RW = 0x002
PTE_U = 0x004
PTE_A = 0x020
PTE_PS = 0x080
PTE_NX = 1 << 63

UINT64_MASK = (1 << 64) - 1


def _u64(value: int, what: str) -> int:
    if not 0 <= value <= UINT64_MASK:
        raise ValueError(f"{what} {value:#x} is not a 64-bit unsigned value")
    return value


def p4d_index(va: int) -> int:
    """Index into the page 4 directory."""
    return (_u64(va, "address") >> P4DXSHIFT) & PAGE_DIR_MASK


def pud_index(va: int) -> int:
    """Index into the page upper directory."""
    return (_u64(va, "address") >> PUDXSHIFT) & PAGE_DIR_MASK


def pmd_index(va: int) -> int:
    """Index into the page middle directory."""
    return (_u64(va, "address") >> PMDXSHIFT) & PAGE_DIR_MASK


def pt_index(va: int) -> int:
    """Index into the page table."""
    return (_u64(va, "address") >> PTXSHIFT) & PAGE_DIR_MASK


def page_round_up(size: int) -> int:
    """Round up to a page boundary, wrapping like a 64-bit register."""
    return (_u64(size, "size") + PAGE_SIZE - 1) & ~(PAGE_SIZE - 1) & UINT64_MASK


def page_round_down(address: int) -> int:
    """Round down to a page boundary."""
    return _u64(address, "address") & ~(PAGE_SIZE - 1)


def pte_address(pte: int) -> int:
    """The entry with its low twelve flag bits cleared."""
    return _u64(pte, "entry") & ~0xFFF & UINT64_MASK


def pte_flags(pte: int) -> int:
    """The low twelve flag bits of an entry."""
    return _u64(pte, "entry") & 0xFFF


def phys_to_virt(address: int, hhdm_offset: int) -> int:
    """Map a physical address into the higher-half direct map."""
    return (_u64(address, "address") + _u64(hhdm_offset, "offset")) & UINT64_MASK


def virt_to_phys(address: int, hhdm_offset: int) -> int:
    """Map a higher-half direct map address back to physical."""
    return (_u64(address, "address") - _u64(hhdm_offset, "offset")) & UINT64_MASK