"""Constraint gadgets: booleans, zero tests, selection, signed order, Poseidon2.

Each gadget computes its witness from the values carried by its inputs and
emits constraints that hold for every input; gating by a rule selector is
done by the caller through `implies_equal`.
"""

from typing import List, Sequence, Tuple

from lurk_spec.circuit.system import ConstraintSystem, LinearCombination, as_lc
from lurk_spec.primitives.field import HALF, SIGNED_BITS, inverse, is_negative as _is_negative
from lurk_spec.primitives.poseidon2 import (
    CAPACITY,
    DIGEST_SIZE,
    RATE,
    ROUNDS_F,
    ROUNDS_P,
    WIDTH,
    initial_capacity,
    matmul_external,
    matmul_internal,
    partial_round_constant,
    round_constants,
    sponge_blocks,
)

LC = LinearCombination


# --- Booleans and Equality ---


def boolean(cs: ConstraintSystem, b: LC) -> None:
    """Constrain b to {0, 1}."""
    cs.enforce(b, 1 - b, 0)


def alloc_bit(cs: ConstraintSystem, value: int) -> LC:
    bit = cs.alloc(int(bool(value)))
    boolean(cs, bit)
    return bit


def is_zero(cs: ConstraintSystem, x: LC) -> Tuple[LC, LC]:
    """
    Return (z, inv) with z = 1 iff x = 0 and inv = 1/x when x != 0.

    Constraints: x * inv = 1 - z and x * z = 0.
    """
    x = as_lc(x)
    if x.is_constant:
        return as_lc(int(x.value == 0)), as_lc(inverse(x.value) if x.value else 0)
    inv = cs.alloc(inverse(x.value) if x.value else 0)
    z = cs.alloc(int(x.value == 0))
    cs.enforce(x, inv, 1 - z)
    cs.enforce(x, z, 0)
    return z, inv


def implies_equal(cs: ConstraintSystem, cond: LC, x: LC, y: LC) -> None:
    """When cond is 1, x must equal y."""
    cs.enforce(cond, as_lc(x) - y, 0)


def select(cs: ConstraintSystem, b: LC, x: LC, y: LC) -> LC:
    """x if b else y, for boolean b; one constraint unless x - y is constant."""
    x, y = as_lc(x), as_lc(y)
    diff = x - y
    if diff.is_constant:
        return y + as_lc(b) * diff.value
    r = cs.alloc(x.value if as_lc(b).value else y.value)
    cs.enforce(b, diff, r - y)
    return r


# --- Range and Order ---


def bits(cs: ConstraintSystem, x: LC, n: int) -> List[LC]:
    """Little-endian bit decomposition of x; proves 0 <= x < 2^n."""
    x = as_lc(x)
    result = [alloc_bit(cs, (x.value >> i) & 1) for i in range(n)]
    total = LinearCombination({}, 0)
    for i, bit in enumerate(result):
        total = total + bit * (1 << i)
    cs.enforce(total, 1, x)
    return result


def is_negative(cs: ConstraintSystem, x: LC) -> LC:
    """
    Return n = 1 iff x > HALF.

    With r = (1 - n)(HALF - x) + n(x - HALF - 1), both r and HALF - r are
    range-checked to SIGNED_BITS bits, which forces r into [0, HALF] and
    therefore pins n.
    """
    x = as_lc(x)
    n = alloc_bit(cs, _is_negative(x.value))
    nx = cs.mul(n, x)
    r = HALF - x + 2 * nx - n * (2 * HALF + 1)
    bits(cs, r, SIGNED_BITS)
    bits(cs, HALF - r, SIGNED_BITS)
    return n


def div_rem(cs: ConstraintSystem, cond: LC, a: LC, b: LC, n: int) -> Tuple[LC, LC]:
    """
    Integer quotient and remainder of a by b, enforced when cond is 1.

    q, r and b - 1 - r are range-checked to n bits. The caller guarantees
    a, b < 2^n with n <= 32, so b * q + r stays below p and the field
    identity a = b * q + r holds over the integers. When cond is 0 both are 0.
    """
    a, b, cond = as_lc(a), as_lc(b), as_lc(cond)
    q_value, r_value = divmod(a.value, b.value) if cond.value and b.value else (0, 0)
    q = cs.alloc(q_value)
    r = cs.alloc(r_value)
    bits(cs, q, n)
    bits(cs, r, n)
    bits(cs, cs.mul(cond, b - r - 1), n)
    implies_equal(cs, cond, cs.mul(b, q) + r, a)
    return q, r


def less_than(cs: ConstraintSystem, a: LC, b: LC) -> LC:
    """Signed a < b: by sign when signs differ, else by the sign of a - b."""
    a, b = as_lc(a), as_lc(b)
    na = is_negative(cs, a)
    nb = is_negative(cs, b)
    nd = is_negative(cs, a - b)
    nab = cs.mul(na, nb)
    same_sign = 1 - na - nb + 2 * nab
    return select(cs, same_sign, nd, na)


# --- Poseidon2 ---


def _pow7(cs: ConstraintSystem, x: LC) -> LC:
    """x^7 in five constraints; x is first pinned to a single variable."""
    x = as_lc(x)
    x1 = cs.alloc(x.value)
    cs.enforce(x, 1, x1)
    x2 = cs.mul(x1, x1)
    x3 = cs.mul(x2, x1)
    x4 = cs.mul(x2, x2)
    return cs.mul(x3, x4)


def _full_round(cs: ConstraintSystem, state: List[LC], r: int) -> List[LC]:
    rc = round_constants(r)
    return matmul_external([_pow7(cs, state[i] + rc[i]) for i in range(WIDTH)])


def permute(cs: ConstraintSystem, state: Sequence[LC]) -> List[LC]:
    """In-circuit Poseidon2 permutation, layer for layer with primitives.poseidon2.permute."""
    if len(state) != WIDTH:
        raise ValueError(f"state must have {WIDTH} elements, got {len(state)}")

    half_full_rounds = ROUNDS_F // 2
    state = matmul_external([as_lc(x) for x in state])

    for r in range(half_full_rounds):
        state = _full_round(cs, state, r)

    for r in range(ROUNDS_P):
        state[0] = _pow7(cs, state[0] + partial_round_constant(r))
        state = matmul_internal(state)

    for r in range(half_full_rounds, ROUNDS_F):
        state = _full_round(cs, state, r)

    return state


def sponge(cs: ConstraintSystem, elements: Sequence[LC]) -> List[LC]:
    """In-circuit counterpart of primitives.poseidon2.hash_elements."""
    size = len(elements)
    capacity = [as_lc(c) for c in initial_capacity(size)]
    zero = as_lc(0)
    state: List[LC] = []

    for block in range(sponge_blocks(size)):
        chunk = [as_lc(x) for x in elements[block * RATE:(block + 1) * RATE]]
        state = permute(cs, chunk + [zero] * (RATE - len(chunk)) + capacity)
        capacity = state[:CAPACITY]

    return state[:DIGEST_SIZE]


def bind_all(cs: ConstraintSystem, cond: LC, xs: Sequence[LC], ys: Sequence[LC]) -> None:
    for x, y in zip(xs, ys):
        implies_equal(cs, cond, x, y)


def one_hot(cs: ConstraintSystem, index: int, count: int) -> List[LC]:
    """Allocate `count` selector bits with only bit `index` set, summing to 1."""
    selectors = [alloc_bit(cs, i == index) for i in range(count)]
    total = LinearCombination({}, 0)
    for s in selectors:
        total = total + s
    cs.enforce(total, 1, 1)
    return selectors
