"""Machine states and frames."""

from dataclasses import dataclass, field
from typing import Dict, NamedTuple, Tuple

from lurk_spec.evaluator.context import SlotKey
from lurk_spec.evaluator.rules import ContRule, EvalRule
from lurk_spec.store.pointer import OUTERMOST, PTR_SIZE, Ptr
from lurk_spec.store.tag import HALTED_CONT_TAGS, Tag

# Field elements in one (expr, env, cont) state
STATE_SIZE = 3 * PTR_SIZE


class State(NamedTuple):
    """(expression, environment, continuation) of the CEK machine."""
    expr: Ptr
    env: Ptr
    cont: Ptr

    def elements(self) -> Tuple[int, ...]:
        return self.expr.elements() + self.env.elements() + self.cont.elements()

    @classmethod
    def from_elements(cls, elements) -> "State":
        return cls(*(Ptr.from_elements(elements[i:i + PTR_SIZE])
                     for i in range(0, STATE_SIZE, PTR_SIZE)))

    @property
    def is_terminal(self) -> bool:
        return self.cont.tag in HALTED_CONT_TAGS

    @property
    def is_error(self) -> bool:
        return self.cont.tag == Tag.ERROR


def initial_state(expr: Ptr, env: Ptr) -> State:
    return State(expr, env, OUTERMOST)


@dataclass(frozen=True)
class Frame:
    """One evaluation step.

    A step runs an eval rule on `input`, producing `intermediate`; when that
    rule produced a value (`returned`), a continuation rule then applies the
    continuation to it, producing `output`. Otherwise the continuation rule
    is PASS and `output` equals `intermediate`.

    Attributes:
        input: State before the step
        output: State after the step
        rule: Eval rule that fired
        return_rule: Continuation rule that fired
        intermediate: State between the two phases
        returned: Whether the eval rule produced a value
        slots: Hash preimages used by the step, keyed by (phase, arity, index)
        emitted: Values the step passed to emit
    """
    input: State
    output: State
    rule: EvalRule
    return_rule: ContRule
    intermediate: State
    returned: bool
    slots: Dict[SlotKey, Tuple[int, ...]] = field(default_factory=dict, compare=False, repr=False)
    emitted: Tuple[Ptr, ...] = field(default=(), compare=False)

    @property
    def is_identity(self) -> bool:
        """True for the fixed-point frames produced from terminal states."""
        return self.input.is_terminal
