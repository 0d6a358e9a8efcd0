import pytest

from dionysos.intmath import UINT64_MAX, checked_pow


@pytest.mark.parametrize("base", [0, 1, 2, 7, UINT64_MAX])
def test_power_one_is_identity(base):
    assert checked_pow(base, 1) == base


def test_small_power():
    assert checked_pow(3, 4) == 81


@pytest.mark.parametrize("base", [2, 3, 5, 6])
def test_successive_powers_multiply(base):
    for power in range(1, 10):
        assert checked_pow(base, power + 1) == checked_pow(base, power) * base


def test_largest_power_of_two_fits():
    assert checked_pow(2, 63) == 1 << 63


def test_overflow_returns_zero():
    assert checked_pow(2, 64) == 0
    assert checked_pow(10, 20) == 0
    assert checked_pow(UINT64_MAX, 2) == 0


def test_trivial_bases():
    assert checked_pow(0, 5) == 0
    assert checked_pow(1, 1000) == 1


def test_invalid_arguments_raise():
    with pytest.raises(ValueError):
        checked_pow(2, 0)
    with pytest.raises(ValueError):
        checked_pow(-2, 3)