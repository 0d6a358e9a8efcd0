"""Integer helpers bounded to 64-bit unsigned results."""

from __future__ import annotations

UINT64_MAX = (1 << 64) - 1


def checked_pow(base: int, power: int) -> int:
    """Return ``base`` to ``power``, or 0 when the result overflows 64 bits."""
    if not 0 <= base <= UINT64_MAX:
        raise ValueError(f"base {base} is not a 64-bit unsigned value")
    if power < 1:
        raise ValueError(f"power must be at least 1, got {power}")
    if base >= 2 and power >= 64:
        return 0
    result = base ** power
    return result if result <= UINT64_MAX else 0