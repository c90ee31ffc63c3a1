"""R1CS over the Goldilocks field.

Every circuit value is a linear combination of witness variables, stored as
a dict mapping variable index to coefficient (x = w0 + 5*w2 + 7*w3 is
{0: 1, 2: 5, 3: 7}). Variable 0 is the constant 1. A linear combination
also carries its value under the current assignment, so witness generation
happens while the constraints are built.

A constraint is a triple (a, b, c) stating <a,w> * <b,w> = <c,w>.
"""

import hashlib
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple, Union

from lurk_spec.errors import CircuitSizeExceeded
from lurk_spec.primitives.field import FF, GOLDILOCKS_PRIME, ff_array

ONE = 0

Terms = Tuple[Tuple[int, int], ...]


class LinearCombination:
    """Sum of coefficient * variable, together with its current value.

    Supports +, - and multiplication by ints. Products of two linear
    combinations need a constraint: see ConstraintSystem.mul.
    """

    __slots__ = ("terms", "value")

    def __init__(self, terms: Dict[int, int], value: int):
        self.terms = terms
        self.value = value

    @classmethod
    def constant(cls, value: int) -> "LinearCombination":
        value %= GOLDILOCKS_PRIME
        return cls({ONE: value} if value else {}, value)

    @property
    def is_constant(self) -> bool:
        return all(index == ONE for index in self.terms)

    def key(self) -> Terms:
        """Structural identity: equal keys mean equal values under any assignment."""
        return tuple(sorted(self.terms.items()))

    def _combine(self, other: "LC", sign: int) -> "LinearCombination":
        if isinstance(other, int):
            other = LinearCombination.constant(other)
        terms = dict(self.terms)
        for index, coeff in other.terms.items():
            merged = (terms.get(index, 0) + sign * coeff) % GOLDILOCKS_PRIME
            if merged:
                terms[index] = merged
            else:
                terms.pop(index, None)
        return LinearCombination(terms, (self.value + sign * other.value) % GOLDILOCKS_PRIME)

    def __add__(self, other: "LC") -> "LinearCombination":
        return self._combine(other, 1)

    def __radd__(self, other: int) -> "LinearCombination":
        return self._combine(other, 1)

    def __sub__(self, other: "LC") -> "LinearCombination":
        return self._combine(other, -1)

    def __rsub__(self, other: int) -> "LinearCombination":
        return LinearCombination.constant(other)._combine(self, -1)

    def __neg__(self) -> "LinearCombination":
        return self * -1

    def __mul__(self, scalar: int) -> "LinearCombination":
        if not isinstance(scalar, int):
            return NotImplemented
        scalar %= GOLDILOCKS_PRIME
        if scalar == 0:
            return LinearCombination({}, 0)
        terms = {index: (coeff * scalar) % GOLDILOCKS_PRIME for index, coeff in self.terms.items()}
        return LinearCombination(terms, (self.value * scalar) % GOLDILOCKS_PRIME)

    __rmul__ = __mul__

    def __repr__(self) -> str:
        return f"LC({self.value}, {len(self.terms)} terms)"


LC = Union[LinearCombination, int]


def as_lc(x: LC) -> LinearCombination:
    return x if isinstance(x, LinearCombination) else LinearCombination.constant(int(x))


class ConstraintSystem:
    """
    Rank-1 constraint system with an embedded witness.

    Public variables occupy indices 1..num_public and must be allocated
    before any private variable.

    Args:
        max_constraints: Raise CircuitSizeExceeded beyond this many constraints
    """

    def __init__(self, max_constraints: Optional[int] = None):
        self.max_constraints = max_constraints
        self.assignment: List[int] = [1]
        self.num_public = 0
        self.constraints: List[Tuple[Terms, Terms, Terms]] = []
        self.labels: List[str] = []
        self._namespace: List[str] = []
        self._label = ""

    # --- Allocation ---

    @property
    def num_variables(self) -> int:
        return len(self.assignment)

    @property
    def num_constraints(self) -> int:
        return len(self.constraints)

    def alloc(self, value: int, public: bool = False) -> LinearCombination:
        """Allocate a variable holding `value`."""
        if public:
            if self.num_public != len(self.assignment) - 1:
                raise ValueError("public variables must be allocated before private ones")
            self.num_public += 1
        index = len(self.assignment)
        value %= GOLDILOCKS_PRIME
        self.assignment.append(value)
        return LinearCombination({index: 1}, value)

    def public_values(self) -> List[int]:
        return self.assignment[1:1 + self.num_public]

    @contextmanager
    def namespace(self, name: str) -> Iterator[None]:
        """Label constraints enforced inside the block (for diagnostics only)."""
        self._namespace.append(name)
        self._label = "/".join(self._namespace)
        try:
            yield
        finally:
            self._namespace.pop()
            self._label = "/".join(self._namespace)

    # --- Constraints ---

    def enforce(self, a: LC, b: LC, c: LC) -> None:
        """Add the constraint a * b = c."""
        if self.max_constraints is not None and len(self.constraints) >= self.max_constraints:
            raise CircuitSizeExceeded(self.max_constraints)
        a, b, c = as_lc(a), as_lc(b), as_lc(c)
        self.constraints.append((a.key(), b.key(), c.key()))
        self.labels.append(self._label)

    def mul(self, a: LC, b: LC) -> LinearCombination:
        """Product of two linear combinations; free when either is constant."""
        a, b = as_lc(a), as_lc(b)
        if a.is_constant:
            return b * a.value
        if b.is_constant:
            return a * b.value
        c = self.alloc(a.value * b.value)
        self.enforce(a, b, c)
        return c

    # --- Checking ---

    def _evaluate(self, terms: Terms) -> int:
        w = self.assignment
        return sum(coeff * w[index] for index, coeff in terms) % GOLDILOCKS_PRIME

    def _sides(self) -> Tuple[FF, FF, FF]:
        a = [self._evaluate(t) for t, _, _ in self.constraints]
        b = [self._evaluate(t) for _, t, _ in self.constraints]
        c = [self._evaluate(t) for _, _, t in self.constraints]
        return ff_array(a), ff_array(b), ff_array(c)

    def unsatisfied_constraints(self) -> List[Tuple[int, str]]:
        """(index, label) of every violated constraint."""
        if not self.constraints:
            return []
        a, b, c = self._sides()
        failing = (a * b != c).nonzero()[0]
        return [(int(i), self.labels[i]) for i in failing]

    def is_satisfied(self) -> bool:
        return not self.unsatisfied_constraints()

    def shape_digest(self) -> str:
        """Digest of the constraint layout, independent of the assignment.

        Two systems with equal digests have the same variable count, the same
        public inputs layout and identical constraint matrices.
        """
        h = hashlib.sha256()
        h.update(f"{self.num_variables}:{self.num_public}:{len(self.constraints)}".encode())
        for a, b, c in self.constraints:
            h.update(repr((a, b, c)).encode())
        return h.hexdigest()
