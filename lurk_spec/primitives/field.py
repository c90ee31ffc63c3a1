"""Goldilocks field GF(p) and the signed view of its elements.

Uses galois for array arithmetic (FF) and plain Python ints for scalar work.
Scalars are always canonical: 0 <= x < p.
"""

from typing import List

import galois
import numpy as np

# --- Field Construction ---

GOLDILOCKS_PRIME = 0xFFFFFFFF00000001

FF = galois.GF(GOLDILOCKS_PRIME)
"""Base field GF(p) - Goldilocks prime field."""

HALF = (GOLDILOCKS_PRIME - 1) // 2
"""Largest non-negative element in the signed view."""

# Bits needed to range-check a value in [0, HALF]
SIGNED_BITS = 63

# Bytes packed into one element when hashing strings
BYTES_PER_ELEMENT = 7


# --- Scalar Helpers ---


def to_field(n: int) -> int:
    """Reduce an arbitrary integer into canonical form."""
    return n % GOLDILOCKS_PRIME


def is_negative(x: int) -> bool:
    """True when x lies in the upper half of the field."""
    return x > HALF


def to_signed(x: int) -> int:
    """Map a canonical element to the integer in (-p/2, p/2] it represents."""
    return x - GOLDILOCKS_PRIME if is_negative(x) else x


def inverse(x: int) -> int:
    """Multiplicative inverse of a non-zero element."""
    if x % GOLDILOCKS_PRIME == 0:
        raise ZeroDivisionError("0 has no inverse in GF(p)")
    return int(FF(x % GOLDILOCKS_PRIME) ** -1)


def pack_bytes(data: bytes) -> List[int]:
    """Pack bytes little-endian into elements, BYTES_PER_ELEMENT per element.

    Each chunk is below 2^56, so packing is injective for a known length.
    """
    return [
        int.from_bytes(data[i:i + BYTES_PER_ELEMENT], "little")
        for i in range(0, len(data), BYTES_PER_ELEMENT)
    ]


# --- Array Helpers ---


def ff_array(values: List[int]) -> FF:
    """Lift canonical ints into an FF array."""
    return FF(np.asarray(values, dtype=np.uint64))
