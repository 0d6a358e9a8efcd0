import pytest

from dionysos.paging import (
    P4DXSHIFT,
    PAGE_SIZE,
    PMDXSHIFT,
    PTE_NX,
    PTE_P,
    PTE_RW,
    PTE_U,
    PTXSHIFT,
    PUDXSHIFT,
    page_round_down,
    page_round_up,
    phys_to_virt,
    pmd_index,
    p4d_index,
    pt_index,
    pte_address,
    pte_flags,
    pud_index,
    virt_to_phys,
)


def test_indices_from_composed_address():
    va = (1 << P4DXSHIFT) | (2 << PUDXSHIFT) | (3 << PMDXSHIFT) | (4 << PTXSHIFT) | 5
    assert p4d_index(va) == 1
    assert pud_index(va) == 2
    assert pmd_index(va) == 3
    assert pt_index(va) == 4


def test_index_ignores_bits_above_table():
    va = (1 << 48) | (7 << P4DXSHIFT)
    assert p4d_index(va) == 7
    assert pt_index(va) == 0


@pytest.mark.parametrize("size", [0, 1, PAGE_SIZE - 1, PAGE_SIZE, PAGE_SIZE + 1, 10 * PAGE_SIZE + 3])
def test_round_up_invariants(size):
    up = page_round_up(size)
    assert up % PAGE_SIZE == 0
    assert size <= up < size + PAGE_SIZE


@pytest.mark.parametrize("address", [0, 1, PAGE_SIZE, 3 * PAGE_SIZE + 17])
def test_round_down_invariants(address):
    down = page_round_down(address)
    assert down % PAGE_SIZE == 0
    assert address - PAGE_SIZE < down <= address


def test_round_up_single_byte():
    assert page_round_up(1) == PAGE_SIZE


def test_pte_split():
    frame = 0x1234 * PAGE_SIZE
    pte = frame | PTE_P | PTE_RW | PTE_U
    assert pte_address(pte) == frame
    assert pte_flags(pte) == PTE_P | PTE_RW | PTE_U


def test_pte_address_keeps_high_bits():
    pte = PTE_NX | (5 * PAGE_SIZE) | PTE_P
    assert pte_address(pte) == PTE_NX | (5 * PAGE_SIZE)


def test_hhdm_round_trip():
    offset = 0xFFFF800000000000
    for phys in (0, PAGE_SIZE, 0x7FFFF000):
        virt = phys_to_virt(phys, offset)
        assert virt_to_phys(virt, offset) == phys
    assert phys_to_virt(virt_to_phys(0, PAGE_SIZE), PAGE_SIZE) == 0


def test_negative_address_raises():
    with pytest.raises(ValueError):
        p4d_index(-1)
    with pytest.raises(ValueError):
        page_round_up(1 << 64)