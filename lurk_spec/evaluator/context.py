"""Step contexts: one rule code path for evaluation and circuit synthesis.

Evaluator rules (evaluator/rules.py) are straight-line functions written
against StepContext. ConcreteStepContext runs them over Python ints and
store pointers to compute a step; CircuitStepContext (circuit/frame_circuit.py)
runs the very same functions over linear combinations and emits the
constraints that check the step. Rules never branch in Python on data:
every data-dependent choice goes through `select`.

Example:
    def rule(ctx: StepContext, expr, env, cont):
        is_num = ctx.tag_is(expr, Tag.NUM)
        return ctx.select_ptr(is_num, expr, ctx.const_ptr(NIL))

    # Computes the answer on the store
    rule(ConcreteStepContext(store, config), *state)

    # Emits constraints that the answer is right
    rule(CircuitStepContext(cs, frame, config), *state_vars)

Hash slots:
    Every hash or unhash a rule performs goes through a numbered slot keyed
    by (phase, arity, index). Indices advance in program order whether or
    not the operation is enabled, so the concrete evaluator and the circuit
    agree on which slot each operation uses. Disabled operations leave the
    slot empty; the circuit fills empty slots with an all-zero preimage,
    which decodes to nil children.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from lurk_spec.config import EvalConfig
from lurk_spec.primitives.field import GOLDILOCKS_PRIME, HALF, inverse, to_signed
from lurk_spec.store.pointer import NIL, Ptr
from lurk_spec.store.store import Store, node_preimage
from lurk_spec.store.tag import Tag

logger = logging.getLogger(__name__)

# Field element: int in ConcreteStepContext, LinearCombination in the circuit
Elem = Any
# Pointer: Ptr in ConcreteStepContext, PtrVar in the circuit
PtrLike = Any

SlotKey = Tuple[int, int, int]

# Operands of integer division are below 2^INT_BITS
INT_BITS = 32


class Phase(IntEnum):
    """The two halves of a step, each with its own rule set and slots."""
    EVAL = 0
    CONT = 1


class StepContext(ABC):
    """Uniform interface for evaluator rules.

    Booleans are field elements constrained to {0, 1}.
    """

    def __init__(self, config: EvalConfig):
        self.config = config
        self.phase = Phase.EVAL
        self._counters: Dict[int, int] = defaultdict(int)
        self._rule_base: Dict[int, int] = {}

    # --- Slot bookkeeping ---

    def begin_phase(self, phase: Phase) -> None:
        self.phase = phase
        self._counters = defaultdict(int)

    def begin_rule(self) -> None:
        """Mark the end of the phase prelude; rules start numbering slots here."""
        self._rule_base = dict(self._counters)

    def reset_rule(self) -> None:
        """Rewind slot numbering to where the rules of this phase start."""
        self._counters = defaultdict(int, self._rule_base)

    def next_slot(self, arity: int) -> SlotKey:
        index = self._counters[arity]
        self._counters[arity] = index + 1
        return (int(self.phase), arity, index)

    # --- Constants ---

    @abstractmethod
    def const(self, value: int) -> Elem:
        pass

    @abstractmethod
    def const_ptr(self, ptr: Ptr) -> PtrLike:
        pass

    @abstractmethod
    def make_ptr(self, tag: Elem, digest: Sequence[Elem]) -> PtrLike:
        pass

    # --- Arithmetic ---

    @abstractmethod
    def add(self, a: Elem, b: Elem) -> Elem:
        pass

    @abstractmethod
    def sub(self, a: Elem, b: Elem) -> Elem:
        pass

    @abstractmethod
    def mul(self, a: Elem, b: Elem) -> Elem:
        pass

    @abstractmethod
    def div(self, a: Elem, b: Elem) -> Tuple[Elem, Elem]:
        """Return (a / b, b == 0); the quotient is 0 when b is 0."""
        pass

    @abstractmethod
    def is_zero(self, a: Elem) -> Elem:
        pass

    @abstractmethod
    def is_negative(self, a: Elem) -> Elem:
        """1 when a lies above (p-1)/2."""
        pass

    @abstractmethod
    def lt(self, a: Elem, b: Elem) -> Elem:
        """Signed comparison a < b, reading elements above (p-1)/2 as negative."""
        pass

    @abstractmethod
    def div_rem(self, a: Elem, b: Elem, when: Optional[Elem] = None) -> Tuple[Elem, Elem]:
        """Integer quotient and remainder of a by b.

        Only defined for 0 <= a, b < 2^INT_BITS and b != 0; `when` must imply
        that. Both results are 0 when `when` is 0.
        """
        pass

    def eq(self, a: Elem, b: Elem) -> Elem:
        return self.is_zero(self.sub(a, b))

    # --- Booleans ---

    def not_(self, b: Elem) -> Elem:
        return self.sub(self.const(1), b)

    def and_(self, *bs: Elem) -> Elem:
        result = bs[0]
        for b in bs[1:]:
            result = self.mul(result, b)
        return result

    def one_of(self, *bs: Elem) -> Elem:
        """Or of booleans known to be mutually exclusive."""
        result = bs[0]
        for b in bs[1:]:
            result = self.add(result, b)
        return result

    def xor(self, a: Elem, b: Elem) -> Elem:
        ab = self.mul(a, b)
        return self.sub(self.add(a, b), self.add(ab, ab))

    @abstractmethod
    def select(self, b: Elem, x: Elem, y: Elem) -> Elem:
        """x when b is 1, y when b is 0."""
        pass

    # --- Pointers ---

    def select_ptr(self, b: Elem, p: PtrLike, q: PtrLike) -> PtrLike:
        return self.make_ptr(
            self.select(b, p.tag, q.tag),
            [self.select(b, x, y) for x, y in zip(p.digest, q.digest)],
        )

    @abstractmethod
    def tag_is(self, p: PtrLike, tag: Tag) -> Elem:
        pass

    def tag_in(self, p: PtrLike, tags: Iterable[Tag]) -> Elem:
        return self.one_of(*[self.tag_is(p, tag) for tag in sorted(tags)])

    def ptr_eq(self, p: PtrLike, q: PtrLike) -> Elem:
        return self.and_(*[self.eq(x, y) for x, y in zip(p.elements(), q.elements())])

    # --- Store ---

    @abstractmethod
    def hash(self, tag: Any, children: Sequence[PtrLike], when: Optional[Elem] = None) -> PtrLike:
        """Pointer to the node (tag, children); a dummy when `when` is 0."""
        pass

    @abstractmethod
    def unhash(self, p: PtrLike, arity: int, when: Optional[Elem] = None) -> Tuple[PtrLike, ...]:
        """Children of node p; nil children when `when` is 0."""
        pass

    def emit(self, p: PtrLike, when: Optional[Elem] = None) -> None:
        """Report p as program output. Constrains nothing."""


class ConcreteStepContext(StepContext):
    """Runs rules on the store, recording every slot preimage it uses."""

    def __init__(self, store: Store, config: EvalConfig):
        super().__init__(config)
        self.store = store
        self.slots: Dict[SlotKey, Tuple[int, ...]] = {}
        self.emitted: List[Ptr] = []

    def const(self, value: int) -> int:
        return value % GOLDILOCKS_PRIME

    def const_ptr(self, ptr: Ptr) -> Ptr:
        return ptr

    def make_ptr(self, tag: int, digest: Sequence[int]) -> Ptr:
        return Ptr(Tag(tag), tuple(digest))

    def add(self, a: int, b: int) -> int:
        return (a + b) % GOLDILOCKS_PRIME

    def sub(self, a: int, b: int) -> int:
        return (a - b) % GOLDILOCKS_PRIME

    def mul(self, a: int, b: int) -> int:
        return (a * b) % GOLDILOCKS_PRIME

    def div(self, a: int, b: int) -> Tuple[int, int]:
        if b == 0:
            return 0, 1
        return (a * inverse(b)) % GOLDILOCKS_PRIME, 0

    def is_zero(self, a: int) -> int:
        return int(a == 0)

    def is_negative(self, a: int) -> int:
        return int(a > HALF)

    def lt(self, a: int, b: int) -> int:
        return int(to_signed(a) < to_signed(b))

    def div_rem(self, a: int, b: int, when: Optional[int] = None) -> Tuple[int, int]:
        if when is not None and not when:
            return 0, 0
        return divmod(a, b)

    def select(self, b: int, x: int, y: int) -> int:
        return x if b else y

    def select_ptr(self, b: int, p: Ptr, q: Ptr) -> Ptr:
        return p if b else q

    def tag_is(self, p: Ptr, tag: Tag) -> int:
        return int(p.tag == tag)

    def ptr_eq(self, p: Ptr, q: Ptr) -> int:
        return int(p == q)

    def hash(self, tag, children: Sequence[Ptr], when: Optional[int] = None) -> Ptr:
        key = self.next_slot(len(children))
        if when is not None and not when:
            return NIL
        ptr = self.store.intern_node(Tag(tag), children)
        self.slots[key] = tuple(node_preimage(ptr.tag, children))
        return ptr

    def unhash(self, p: Ptr, arity: int, when: Optional[int] = None) -> Tuple[Ptr, ...]:
        key = self.next_slot(arity)
        if when is not None and not when:
            return (NIL,) * arity
        children = self.store.fetch(p, arity)
        self.slots[key] = tuple(node_preimage(p.tag, children))
        return children

    def emit(self, p: Ptr, when: Optional[int] = None) -> None:
        if when is not None and not when:
            return
        self.emitted.append(p)
        logger.info("emit: %s", self.store.render(p))
