"""
Poseidon2 permutation and sponge over the Goldilocks field.

Width 16 with a capacity of 4 elements, so each permutation absorbs 12
elements and a sponge squeezes a 4-element digest. The linear layers are
written against anything supporting `+` and multiplication by an int, so
the in-circuit gadget (circuit/gadgets.py) runs the exact same layers over
linear combinations. Only the S-box differs between the two.

Round constants and the internal diagonal are derived deterministically
from SHAKE-256 of a fixed domain string, reduced mod p.
"""

import hashlib
from typing import List, Sequence, Tuple

from lurk_spec.primitives.field import GOLDILOCKS_PRIME

# --- Constants ---

WIDTH = 16
CAPACITY = 4
RATE = WIDTH - CAPACITY
DIGEST_SIZE = CAPACITY

ROUNDS_F = 8
ROUNDS_P = 22

_CONSTANTS_DOMAIN = b"lurk-spec/poseidon2/goldilocks/w16"


def _derive_constants(label: bytes, count: int) -> List[int]:
    """Expand `count` field elements from SHAKE-256(domain || label)."""
    stream = hashlib.shake_256(_CONSTANTS_DOMAIN + b"/" + label).digest(16 * count)
    return [
        int.from_bytes(stream[16 * i:16 * (i + 1)], "little") % GOLDILOCKS_PRIME
        for i in range(count)
    ]


ROUND_CONSTANTS: List[int] = _derive_constants(b"rc", ROUNDS_F * WIDTH + ROUNDS_P)
"""Full-round constants (WIDTH per round) followed by one per partial round."""

# Diagonal of the internal matrix, kept away from 0 and 1
INTERNAL_DIAG: List[int] = [2 + d % (GOLDILOCKS_PRIME - 2) for d in _derive_constants(b"diag", WIDTH)]


# --- Linear Layers ---
# Generic over ints and circuit linear combinations; callers reduce ints.


def matmul_m4(x: Sequence) -> list:
    """Apply the 4x4 block matrix of the external layer."""
    t0 = x[0] + x[1]
    t1 = x[2] + x[3]
    t2 = x[1] + x[1] + t1
    t3 = x[3] + x[3] + t0
    t1_2 = t1 + t1
    t0_2 = t0 + t0
    t4 = t1_2 + t1_2 + t3
    t5 = t0_2 + t0_2 + t2
    t6 = t3 + t5
    t7 = t2 + t4
    return [t6, t5, t7, t4]


def matmul_external(state: Sequence) -> list:
    """Apply m4 to each 4-element block, then add the column sums."""
    result = []
    for i in range(0, WIDTH, 4):
        result.extend(matmul_m4(state[i:i + 4]))

    stored = [sum(result[j] for j in range(c, WIDTH, 4)) for c in range(4)]
    return [result[i] + stored[i % 4] for i in range(WIDTH)]


def matmul_internal(state: Sequence) -> list:
    """Apply the internal layer: x[i] = x[i] * D[i] + sum(x)."""
    total = sum(state)
    return [state[i] * INTERNAL_DIAG[i] + total for i in range(WIDTH)]


def round_constants(r: int) -> List[int]:
    """Constants for full round r (0 <= r < ROUNDS_F)."""
    offset = r * WIDTH if r < ROUNDS_F // 2 else r * WIDTH + ROUNDS_P
    return ROUND_CONSTANTS[offset:offset + WIDTH]


def partial_round_constant(r: int) -> int:
    return ROUND_CONSTANTS[(ROUNDS_F // 2) * WIDTH + r]


# --- Native Permutation ---


def _pow7(x: int) -> int:
    """Compute x^7 as x^3 * x^4."""
    x2 = (x * x) % GOLDILOCKS_PRIME
    x3 = (x * x2) % GOLDILOCKS_PRIME
    x4 = (x2 * x2) % GOLDILOCKS_PRIME
    return (x3 * x4) % GOLDILOCKS_PRIME


def _reduce(state: Sequence[int]) -> List[int]:
    return [x % GOLDILOCKS_PRIME for x in state]


def _full_round(state: List[int], r: int) -> List[int]:
    rc = round_constants(r)
    state = [_pow7((state[i] + rc[i]) % GOLDILOCKS_PRIME) for i in range(WIDTH)]
    return _reduce(matmul_external(state))


def permute(input_data: Sequence[int]) -> List[int]:
    """
    Compute the Poseidon2 permutation of WIDTH field elements.

    Args:
        input_data: WIDTH canonical field elements

    Returns:
        WIDTH field elements after the permutation
    """
    if len(input_data) != WIDTH:
        raise ValueError(f"input_data must have {WIDTH} elements, got {len(input_data)}")

    half_full_rounds = ROUNDS_F // 2
    state = _reduce(matmul_external(_reduce(input_data)))

    for r in range(half_full_rounds):
        state = _full_round(state, r)

    for r in range(ROUNDS_P):
        state[0] = _pow7((state[0] + partial_round_constant(r)) % GOLDILOCKS_PRIME)
        state = _reduce(matmul_internal(state))

    for r in range(half_full_rounds, ROUNDS_F):
        state = _full_round(state, r)

    return state


# --- Sponge ---


def sponge_blocks(length: int) -> int:
    """Number of permutations the sponge runs for an input of `length`."""
    return max(1, -(-length // RATE))


def initial_capacity(length: int) -> List[int]:
    """Capacity before the first absorb; the input length separates domains."""
    return [length % GOLDILOCKS_PRIME, 0, 0, 0]


def hash_elements(input_data: Sequence[int]) -> Tuple[int, ...]:
    """
    Hash a variable-length sequence of field elements to a DIGEST_SIZE digest.

    Overwrite-mode sponge: each block replaces the rate portion (zero-padded)
    while the capacity carries the previous output. The first capacity holds
    the input length, so inputs that differ only by trailing zeros never
    collide. At least one permutation always runs.
    """
    size = len(input_data)
    capacity = initial_capacity(size)
    state: List[int] = []

    for block in range(sponge_blocks(size)):
        chunk = [x % GOLDILOCKS_PRIME for x in input_data[block * RATE:(block + 1) * RATE]]
        state = permute(chunk + [0] * (RATE - len(chunk)) + capacity)
        capacity = state[:CAPACITY]

    return tuple(state[:DIGEST_SIZE])
