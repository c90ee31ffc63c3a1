"""Frame circuit: one uniform constraint system per evaluation step.

Layout of every frame, in allocation order:

1. public input state, then public output state (15 elements each);
2. the intermediate state between the two phases and its `ret` bit;
3. per phase: the prelude, one selector bit per rule (one-hot, and each
   selector implies its rule's guard), then every rule of the phase with
   its constraints gated by its selector;
4. hash slots, allocated the first time a rule asks for them.

All rules are synthesized for every frame; which one fired only changes the
selector values, never the constraints, so every frame shares one shape.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from lurk_spec.circuit import gadgets
from lurk_spec.circuit.system import ConstraintSystem, LinearCombination, as_lc
from lurk_spec.config import DEFAULT_CONFIG, EvalConfig
from lurk_spec.errors import MalformedEntryError
from lurk_spec.evaluator.context import INT_BITS, Phase, SlotKey, StepContext
from lurk_spec.evaluator.frame import Frame, State
from lurk_spec.evaluator.rules import (
    CONT_RULES,
    EVAL_RULES,
    Step,
    cont_guards,
    cont_prelude,
    eval_guards,
    eval_prelude,
)
from lurk_spec.store.pointer import PTR_SIZE, Ptr
from lurk_spec.store.tag import preimage_size

logger = logging.getLogger(__name__)

LC = LinearCombination


class PtrVar(NamedTuple):
    """A pointer inside the circuit: tag and digest as linear combinations."""
    tag: LC
    digest: Tuple[LC, ...]

    def elements(self) -> Tuple[LC, ...]:
        return (self.tag,) + tuple(self.digest)

    @property
    def value(self) -> Ptr:
        return Ptr.from_elements([x.value for x in self.elements()])


class HashSlot(NamedTuple):
    preimage: List[LC]
    image: List[LC]


def alloc_ptr(cs: ConstraintSystem, ptr: Ptr, public: bool = False) -> PtrVar:
    tag, *digest = [cs.alloc(x, public=public) for x in ptr.elements()]
    return PtrVar(tag, tuple(digest))


def alloc_state(cs: ConstraintSystem, state: State, public: bool = False) -> Tuple[PtrVar, PtrVar, PtrVar]:
    return tuple(alloc_ptr(cs, ptr, public=public) for ptr in state)


class CircuitStepContext(StepContext):
    """Runs evaluator rules symbolically, emitting constraints into `cs`.

    Args:
        cs: Constraint system being built
        frame: Supplies hash-slot preimages; all other witness values are
            derived from the allocated states
        config: Must be the config the frame was evaluated with
    """

    def __init__(self, cs: ConstraintSystem, frame: Frame, config: EvalConfig):
        super().__init__(config)
        self.cs = cs
        self.frame = frame
        self.gate: Optional[LC] = None
        self._slots: Dict[SlotKey, HashSlot] = {}
        self._zero_tests: Dict[tuple, Tuple[LC, LC]] = {}

    # --- Constants ---

    def const(self, value: int) -> LC:
        return LinearCombination.constant(int(value))

    def const_ptr(self, ptr: Ptr) -> PtrVar:
        tag, *digest = [self.const(x) for x in ptr.elements()]
        return PtrVar(tag, tuple(digest))

    def make_ptr(self, tag, digest: Sequence) -> PtrVar:
        return PtrVar(as_lc(tag), tuple(as_lc(x) for x in digest))

    # --- Arithmetic ---

    def add(self, a: LC, b: LC) -> LC:
        return as_lc(a) + b

    def sub(self, a: LC, b: LC) -> LC:
        return as_lc(a) - b

    def mul(self, a: LC, b: LC) -> LC:
        return self.cs.mul(a, b)

    def _zero_test(self, x: LC) -> Tuple[LC, LC]:
        """is_zero, shared between structurally equal inputs."""
        key = as_lc(x).key()
        cached = self._zero_tests.get(key)
        if cached is None:
            cached = gadgets.is_zero(self.cs, x)
            self._zero_tests[key] = cached
        return cached

    def is_zero(self, a: LC) -> LC:
        return self._zero_test(a)[0]

    def div(self, a: LC, b: LC) -> Tuple[LC, LC]:
        z, inv = self._zero_test(b)
        return self.cs.mul(a, inv), z

    def is_negative(self, a: LC) -> LC:
        return gadgets.is_negative(self.cs, a)

    def lt(self, a: LC, b: LC) -> LC:
        return gadgets.less_than(self.cs, a, b)

    def div_rem(self, a: LC, b: LC, when: Optional[LC] = None) -> Tuple[LC, LC]:
        return gadgets.div_rem(self.cs, self._condition(when), a, b, INT_BITS)

    def select(self, b: LC, x: LC, y: LC) -> LC:
        return gadgets.select(self.cs, b, x, y)

    def tag_is(self, p: PtrVar, tag) -> LC:
        return self.is_zero(p.tag - int(tag))

    # --- Store ---

    def _condition(self, when: Optional[LC]) -> LC:
        """Selector of the running rule, and `when` if given."""
        if when is None:
            return self.gate if self.gate is not None else self.const(1)
        if self.gate is None:
            return as_lc(when)
        return self.cs.mul(self.gate, when)

    def _slot(self, arity: int) -> HashSlot:
        key = self.next_slot(arity)
        slot = self._slots.get(key)
        if slot is None:
            size = preimage_size(arity)
            values = self.frame.slots.get(key, (0,) * size)
            if len(values) != size:
                raise MalformedEntryError(f"slot {key} holds {len(values)} elements, expected {size}")
            with self.cs.namespace(f"slot{key}"):
                preimage = [self.cs.alloc(v) for v in values]
                slot = HashSlot(preimage, gadgets.sponge(self.cs, preimage))
            self._slots[key] = slot
        return slot

    def _children(self, slot: HashSlot, arity: int) -> Tuple[PtrVar, ...]:
        return tuple(
            PtrVar(slot.preimage[1 + PTR_SIZE * i], tuple(slot.preimage[2 + PTR_SIZE * i:1 + PTR_SIZE * (i + 1)]))
            for i in range(arity)
        )

    def hash(self, tag, children: Sequence[PtrVar], when: Optional[LC] = None) -> PtrVar:
        slot = self._slot(len(children))
        cond = self._condition(when)
        tag = as_lc(tag)
        elements = [tag] + [x for child in children for x in child.elements()]
        gadgets.bind_all(self.cs, cond, slot.preimage, elements)
        return PtrVar(tag, tuple(slot.image))

    def unhash(self, p: PtrVar, arity: int, when: Optional[LC] = None) -> Tuple[PtrVar, ...]:
        slot = self._slot(arity)
        cond = self._condition(when)
        gadgets.implies_equal(self.cs, cond, slot.preimage[0], p.tag)
        gadgets.bind_all(self.cs, cond, slot.image, p.digest)
        return self._children(slot, arity)


# --- Synthesis ---


def _select_rule(ctx: CircuitStepContext, guards: Dict, fired: int) -> Dict:
    """One-hot selector per rule, each forcing its guard to hold."""
    cs = ctx.cs
    rules = list(guards)
    bits = gadgets.one_hot(cs, rules.index(fired), len(rules))
    selectors = dict(zip(rules, bits))
    for rule, guard in guards.items():
        gadgets.implies_equal(cs, selectors[rule], guard, 1)
    return selectors


def _run_rules(ctx: CircuitStepContext, rules: Dict, scope, selectors: Dict,
               target: Sequence[LC], label: str, with_ret: bool) -> None:
    """Synthesize every rule, binding its output to `target` under its selector."""
    cs = ctx.cs
    ctx.begin_rule()
    for rule, body in rules.items():
        with cs.namespace(f"{label}/{rule.name.lower()}"):
            ctx.reset_rule()
            ctx.gate = selectors[rule]
            out = body(ctx, scope)
            produced = out.expr.elements() + out.env.elements() + out.cont.elements()
            if with_ret:
                produced += (as_lc(out.ret),)
            gadgets.bind_all(cs, selectors[rule], produced, target)
    ctx.gate = None


def synthesize_frame(frame: Frame, config: EvalConfig = DEFAULT_CONFIG) -> ConstraintSystem:
    """
    Build the constraint system for one frame, with the frame as witness.

    Args:
        frame: Frame produced by the evaluator under `config`
        config: Evaluation parameters; fixes the circuit shape

    Returns:
        ConstraintSystem whose public values are the input then output state
    """
    cs = ConstraintSystem(max_constraints=config.max_constraints)
    ctx = CircuitStepContext(cs, frame, config)

    with cs.namespace("io"):
        inputs = alloc_state(cs, frame.input, public=True)
        outputs = alloc_state(cs, frame.output, public=True)
    with cs.namespace("intermediate"):
        mid = alloc_state(cs, frame.intermediate)
        ret = gadgets.alloc_bit(cs, frame.returned)
    mid_elements = tuple(x for ptr in mid for x in ptr.elements())
    out_elements = tuple(x for ptr in outputs for x in ptr.elements())

    ctx.begin_phase(Phase.EVAL)
    with cs.namespace("eval/prelude"):
        scope = eval_prelude(ctx, *inputs)
        selectors = _select_rule(ctx, eval_guards(ctx, scope), frame.rule)
    _run_rules(ctx, EVAL_RULES, scope, selectors, mid_elements + (ret,), "eval", with_ret=True)

    ctx.begin_phase(Phase.CONT)
    with cs.namespace("cont/prelude"):
        cont_scope = cont_prelude(ctx, Step(*mid, ret))
        selectors = _select_rule(ctx, cont_guards(ctx, cont_scope), frame.return_rule)
    _run_rules(ctx, CONT_RULES, cont_scope, selectors, out_elements, "cont", with_ret=False)

    logger.debug("synthesized %s/%s frame: %d constraints, %d variables",
                 frame.rule.name, frame.return_rule.name, cs.num_constraints, cs.num_variables)
    return cs


def synthesize_trace(frames: Sequence[Frame], config: EvalConfig = DEFAULT_CONFIG,
                     max_workers: Optional[int] = None) -> List[ConstraintSystem]:
    """Synthesize frames independently on a thread pool; results keep trace order."""
    workers = max_workers if max_workers is not None else config.synthesis_workers
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(lambda frame: synthesize_frame(frame, config), frames))
