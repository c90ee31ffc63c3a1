"""Primitives - field arithmetic and the algebraic hash."""

from lurk_spec.primitives.field import (
    FF,
    GOLDILOCKS_PRIME,
    HALF,
    ff_array,
    inverse,
    is_negative,
    pack_bytes,
    to_field,
    to_signed,
)
from lurk_spec.primitives.poseidon2 import (
    CAPACITY,
    DIGEST_SIZE,
    RATE,
    WIDTH,
    hash_elements,
    permute,
)

__all__ = [
    # Field
    "FF",
    "GOLDILOCKS_PRIME",
    "HALF",
    "ff_array",
    "inverse",
    "is_negative",
    "pack_bytes",
    "to_field",
    "to_signed",
    # Poseidon2
    "CAPACITY",
    "DIGEST_SIZE",
    "RATE",
    "WIDTH",
    "hash_elements",
    "permute",
]
