"""Tests for frame synthesis: satisfaction, uniform shape and tamper detection.

Synthesizing a frame runs every rule and a few dozen in-circuit Poseidon2
permutations, so the corpus below is synthesized once per module.
"""

from dataclasses import replace

import pytest

from lurk_spec.circuit import CircuitStepContext, synthesize_frame, synthesize_trace
from lurk_spec.circuit.system import ConstraintSystem
from lurk_spec.config import DEFAULT_CONFIG, EvalConfig
from lurk_spec.errors import CircuitSizeExceeded
from lurk_spec.evaluator import ContRule, EvalRule, Phase, State, pad_trace, step
from lurk_spec.evaluator.frame import STATE_SIZE
from lurk_spec.store import ERROR, NIL, OUTERMOST, TERMINAL, ErrorCode, Store, err, num

from lurk_spec.tests.helpers import run

# Programs that together fire every rule of both phases
PROGRAMS = {
    "number": "42",
    "unbound": "x",
    "identity": "((lambda (x) x) 5)",
    "div_zero": "(/ 1 0)",
    "let_if_quote": "(let ((a 1)) (if a 'b 2))",
    "letrec": "(letrec ((f (lambda (n) n))) (f 1))",
    "car_cons": "(car (cons 1 2))",
    "nullary": "((lambda () 7))",
    "two_args": "((lambda (a b) (- a b)) 9 7)",
    "invalid_form": "(quote)",
    "not_a_function": "(5 1)",
    "commitment": "(open (hide 3 (% 7 4)))",
    "emit": "(secret (emit (commit 1)))",
    "bad_argument": "(car 5)",
    "remainder_range": "(% -1 2)",
}

FORGED = num(424242)


@pytest.fixture(scope="module")
def traces():
    """Frames of every program, plus single steps from hand-built states."""
    store = Store()
    traces = {name: run(store, source).frames for name, source in PROGRAMS.items()}

    x = store.intern_symbol("x")
    env = NIL
    for name in "abcde":
        env = store.env(store.intern_symbol(name), num(1), env)
    traces["depth_exceeded"] = (step(store, State(x, env, OUTERMOST)),)
    traces["invalid_expr"] = (step(store, State(err(ErrorCode.ARGUMENT_ERROR), NIL, OUTERMOST)),)
    traces["invalid_cont"] = (step(store, State(num(1), NIL, env)),)
    identity = traces["identity"]
    traces["padded"] = tuple(pad_trace(identity, len(identity) + 1, store))
    return traces


@pytest.fixture(scope="module")
def frames(traces):
    """Every frame of the corpus, in program order."""
    return [frame for name in sorted(traces) for frame in traces[name]]


@pytest.fixture(scope="module")
def systems(frames):
    return synthesize_trace(frames, DEFAULT_CONFIG, max_workers=2)


def _frame(frames, rule, return_rule):
    return next(f for f in frames if (f.rule, f.return_rule) == (rule, return_rule))


class TestSatisfaction:
    """Honest frames give satisfied systems."""

    def test_all_satisfied(self, frames, systems) -> None:
        """Every honest frame satisfies its circuit."""
        for frame, cs in zip(frames, systems):
            assert cs.unsatisfied_constraints() == [], (frame.rule, frame.return_rule)

    def test_every_rule_reached(self, frames) -> None:
        """The corpus fires every rule of both phases."""
        assert {f.rule for f in frames} == set(EvalRule)
        assert {f.return_rule for f in frames} == set(ContRule)

    def test_every_error_reached(self, frames) -> None:
        """The corpus ends in each error the circuit must reproduce."""
        halted = {f.output.expr for f in frames if f.output.cont == ERROR}
        assert {err(code) for code in ErrorCode} <= halted

    def test_public_values_are_the_states(self, frames, systems) -> None:
        """Public inputs are the input state then the output state."""
        for frame, cs in zip(frames, systems):
            public = cs.public_values()
            assert len(public) == 2 * STATE_SIZE
            assert tuple(public[:STATE_SIZE]) == frame.input.elements()
            assert tuple(public[STATE_SIZE:]) == frame.output.elements()

    def test_trace_order_preserved(self, frames, systems) -> None:
        """synthesize_trace keeps frame order."""
        assert [tuple(cs.public_values()[:STATE_SIZE]) for cs in systems] == \
            [f.input.elements() for f in frames]


class TestUniformity:
    """Every frame has one constraint layout."""

    def test_single_shape(self, systems) -> None:
        """All frames share a shape digest."""
        assert len({cs.shape_digest() for cs in systems}) == 1

    def test_config_changes_shape(self, traces, systems) -> None:
        """A different lookup depth gives a different circuit."""
        frame = traces["number"][0]
        cs = synthesize_frame(frame, EvalConfig(max_lookup_depth=2))
        assert cs.is_satisfied()
        assert cs.shape_digest() != systems[0].shape_digest()


class TestTampering:
    """Dishonest frames give unsatisfied systems."""

    @pytest.mark.parametrize("field", ["expr", "env", "cont"])
    @pytest.mark.parametrize("rules", [
        (EvalRule.SELF_EVALUATING, ContRule.OUTERMOST),
        (EvalRule.SELF_EVALUATING, ContRule.CALL2),
        (EvalRule.LAMBDA, ContRule.LETREC),
        (EvalRule.SELF_EVALUATING, ContRule.LET),
        (EvalRule.LOOKUP, ContRule.IF),
        (EvalRule.SELF_EVALUATING, ContRule.BINOP2),
        (EvalRule.THUNK, ContRule.UNOP),
        (EvalRule.APPLY, ContRule.PASS),
    ])
    def test_wrong_output_pointer(self, frames, rules, field: str) -> None:
        """Changing any one output pointer is caught."""
        frame = _frame(frames, *rules)
        forged = replace(frame, output=frame.output._replace(**{field: FORGED}))
        assert not synthesize_frame(forged).is_satisfied()

    def test_wrong_result(self, traces) -> None:
        """Claiming a different result is caught."""
        frame = traces["number"][0]
        forged = replace(frame, output=State(num(43), NIL, TERMINAL))
        assert not synthesize_frame(forged).is_satisfied()

    def test_wrong_rule(self, traces) -> None:
        """Selecting a rule whose guard fails is caught."""
        frame = traces["number"][0]
        forged = replace(frame, rule=EvalRule.LOOKUP)
        assert not synthesize_frame(forged).is_satisfied()

    def test_wrong_slot_preimage(self, traces) -> None:
        """A hash preimage that does not match its digest is caught."""
        frame = traces["identity"][-1]
        slots = dict(frame.slots)
        key = next(k for k in sorted(slots) if k[0] == Phase.EVAL and k[1] == 3)
        preimage = list(slots[key])
        preimage[-1] += 1
        slots[key] = tuple(preimage)
        forged = replace(frame, slots=slots)
        assert not synthesize_frame(forged).is_satisfied()


class TestLimits:
    """Resource limits on synthesis."""

    def test_constraint_budget(self, traces) -> None:
        """A tiny budget raises CircuitSizeExceeded."""
        with pytest.raises(CircuitSizeExceeded):
            synthesize_frame(traces["number"][0], EvalConfig(max_constraints=100))

    def test_context_reads_frame_slots(self, traces) -> None:
        """The circuit context takes hash preimages from the frame."""
        frame = traces["identity"][0]
        ctx = CircuitStepContext(ConstraintSystem(), frame, DEFAULT_CONFIG)
        ctx.begin_phase(Phase.EVAL)
        slot = ctx._slot(2)
        assert [x.value for x in slot.preimage] == list(frame.slots[(Phase.EVAL, 2, 0)])
