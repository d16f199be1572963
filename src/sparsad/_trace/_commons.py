"""Bitset helpers shared by the tracer types.

A dependency set over input indices is stored as a Python ``int``:
bit ``i`` is set iff the traced value may depend on input ``i``.
Union is a single ``|`` regardless of how many inputs there are.

Second-order structure is stored as ``Pairs``,
a symmetric mapping ``row -> bitset of cols``.
Pair ``(i, j)`` is present iff ``(j, i)`` is present.
"""

from collections.abc import Iterator

Bitset = int
Pairs = dict[int, Bitset]

EMPTY: Bitset = 0


def singleton(i: int) -> Bitset:
    """Bitset containing only ``i``."""
    return 1 << i


def bits(mask: Bitset) -> Iterator[int]:
    """Iterate over set bit positions in increasing order.

    Example: bits(0b1011) yields 0, 1, 3.
    """
    while mask:
        low = mask & -mask
        yield low.bit_length() - 1
        mask ^= low


def union_pairs(*operands: Pairs) -> Pairs:
    """Union of symmetric pair sets, returning a new mapping."""
    result: Pairs = {}
    for pairs in operands:
        for row, mask in pairs.items():
            result[row] = result.get(row, EMPTY) | mask
    return result


def outer_pairs(a: Bitset, b: Bitset) -> Pairs:
    """Symmetric product ``a x b ∪ b x a``.

    Example: outer_pairs(0b01, 0b10) == {0: 0b10, 1: 0b01}
    """
    result: Pairs = {}
    if not a or not b:
        return result
    for i in bits(a):
        result[i] = result.get(i, EMPTY) | b
    for j in bits(b):
        result[j] = result.get(j, EMPTY) | a
    return result
