"""Tests for the step function and the evaluation driver."""

import threading
from dataclasses import FrozenInstanceError, replace

import pytest

from lurk_spec.config import EvalConfig
from lurk_spec.errors import ConfigError, RuleDispatchError
from lurk_spec.evaluator import (
    ContRule,
    EvalRule,
    Reason,
    State,
    evaluate,
    evaluate_batch,
    pad_trace,
    step,
)
from lurk_spec.evaluator.evaluate import _dispatch
from lurk_spec.store import ERROR, NIL, OUTERMOST, TERMINAL, ErrorCode, Store, Tag, err, num, read
from lurk_spec.store.symbols import T

from lurk_spec.tests.helpers import run


def result_of(store: Store, source: str, **kwargs):
    evaluation = run(store, source, **kwargs)
    return evaluation, evaluation.result


class TestScenarios:
    """End-to-end traces of small programs."""

    def test_self_evaluating_number(self, store: Store) -> None:
        """42 takes one frame to halt."""
        evaluation = run(store, "42")
        assert evaluation.reason == Reason.COMPLETED
        assert evaluation.iterations == 1
        frame = evaluation.frames[0]
        assert frame.input == State(num(42), NIL, OUTERMOST)
        assert frame.output == State(num(42), NIL, TERMINAL)
        assert (frame.rule, frame.return_rule) == (EvalRule.SELF_EVALUATING, ContRule.OUTERMOST)

    def test_unbound_variable(self, store: Store) -> None:
        """An unbound symbol halts with an error value."""
        evaluation = run(store, "x")
        assert evaluation.reason == Reason.ERROR_HALTED
        assert evaluation.iterations == 1
        assert evaluation.final == State(err(ErrorCode.UNBOUND_VARIABLE), NIL, ERROR)

    def test_identity_application(self, store: Store) -> None:
        """((lambda (x) x) 5) runs in four frames."""
        evaluation = run(store, "((lambda (x) x) 5)")
        assert evaluation.reason == Reason.COMPLETED
        assert evaluation.result == num(5)
        assert [(f.rule, f.return_rule) for f in evaluation.frames] == [
            (EvalRule.APPLY, ContRule.PASS),
            (EvalRule.LAMBDA, ContRule.CALL),
            (EvalRule.SELF_EVALUATING, ContRule.CALL2),
            (EvalRule.LOOKUP, ContRule.OUTERMOST),
        ]

    def test_step_cap(self, store: Store) -> None:
        """A budget shorter than the program yields exactly that many frames."""
        evaluation = run(store, "((lambda (x) x) 5)", max_steps=2)
        assert evaluation.reason == Reason.MAX_STEPS_REACHED
        assert evaluation.iterations == 2
        assert not evaluation.final.is_terminal

    def test_zero_budget(self, store: Store) -> None:
        """max_steps=0 returns the initial state untouched."""
        evaluation = run(store, "42", max_steps=0)
        assert evaluation.reason == Reason.MAX_STEPS_REACHED
        assert evaluation.frames == ()
        assert evaluation.final == evaluation.initial

    def test_negative_budget_rejected(self, store: Store) -> None:
        """A negative budget is a caller error."""
        with pytest.raises(ValueError):
            run(store, "1", max_steps=-1)

    def test_trace_is_contiguous(self, store: Store) -> None:
        """Each frame starts where the previous one ended."""
        frames = run(store, "(let ((a 1) (b 2)) (+ a b))").frames
        for prev, nxt in zip(frames, frames[1:]):
            assert prev.output == nxt.input

    def test_cancel(self, store: Store) -> None:
        """A set cancel event stops evaluation before the next frame."""
        cancel = threading.Event()
        cancel.set()
        evaluation = evaluate(store, read(store, "(+ 1 2)"), max_steps=100, cancel=cancel)
        assert evaluation.reason == Reason.CANCELLED
        assert evaluation.frames == ()


class TestSpecialForms:
    """Results of the special forms."""

    @pytest.mark.parametrize("source, expected", [
        ("(quote (1 2))", "(1 2)"),
        ("'x", "x"),
        ("t", "t"),
        ("nil", "nil"),
        ("(if t 1 2)", "1"),
        ("(if nil 1 2)", "2"),
        ("(if 0 1 2)", "1"),
        ("(let ((a 1) (b 2)) (+ a b))", "3"),
        ("(let () 7)", "7"),
        ("(let ((a 1)) (let ((a 2)) a))", "2"),
        ("((lambda () 9))", "9"),
        ("((lambda (a b) (+ (* a 3) b)) 9 7)", "34"),
        ("(((lambda (a) (lambda (b) (- a b))) 10) 4)", "6"),
    ])
    def test_result(self, store: Store, source: str, expected: str) -> None:
        """Programs evaluate to the expected value."""
        evaluation, result = result_of(store, source)
        assert evaluation.reason == Reason.COMPLETED
        assert store.render(result) == expected

    def test_closure_captures_environment(self, store: Store) -> None:
        """A closure sees the bindings in force where it was created."""
        _, result = result_of(store, "(let ((y 10)) (let ((f (lambda (x) (+ x y)))) (let ((y 1)) (f 5))))")
        assert result == num(15)

    def test_letrec_factorial(self, store: Store) -> None:
        """A recursive closure re-closes over its own binding."""
        source = """
            (letrec ((fact (lambda (n)
                             (if (= n 0) 1 (* n (fact (- n 1)))))))
              (fact 5))
        """
        evaluation, result = result_of(store, source)
        assert evaluation.reason == Reason.COMPLETED
        assert result == num(120)

    def test_letrec_bindings_are_sequential(self, store: Store) -> None:
        """Later letrec bindings see earlier ones."""
        source = """
            (letrec ((double (lambda (n) (* n 2)))
                     (quad (lambda (n) (double (double n)))))
              (quad 3))
        """
        assert result_of(store, source)[1] == num(12)

    def test_letrec_forward_reference_is_unbound(self, store: Store) -> None:
        """An earlier binding cannot call a later one."""
        source = """
            (letrec ((even (lambda (n) (if (= n 0) t (odd (- n 1)))))
                     (odd (lambda (n) (if (= n 0) nil (even (- n 1))))))
              (even 1))
        """
        assert result_of(store, source)[1] == err(ErrorCode.UNBOUND_VARIABLE)


class TestBuiltins:
    """Unary and binary builtins."""

    @pytest.mark.parametrize("source, expected", [
        ("(+ 2 3)", 5),
        ("(- 3 5)", -2),
        ("(* -4 6)", -24),
        ("(/ 12 4)", 3),
    ])
    def test_arithmetic(self, store: Store, source: str, expected: int) -> None:
        """Arithmetic on numbers, read back signed."""
        _, result = result_of(store, source)
        assert store.read_number(result) == expected

    def test_division_is_field_division(self, store: Store) -> None:
        """Inexact quotients are field elements: (* (/ 1 3) 3) is 1."""
        _, result = result_of(store, "(* (/ 1 3) 3)")
        assert result == num(1)

    @pytest.mark.parametrize("source, truth", [
        ("(< 1 2)", True),
        ("(< 2 1)", False),
        ("(< -1 2)", True),
        ("(> -1 2)", False),
        ("(<= 2 2)", True),
        ("(>= 1 2)", False),
        ("(>= -3 -5)", True),
        ("(= 4 4)", True),
        ("(eq 'a 'a)", True),
        ("(eq 'a 'b)", False),
        ("(atom 1)", True),
        ("(atom '(1))", False),
    ])
    def test_predicates(self, store: Store, source: str, truth: bool) -> None:
        """Predicates return t or nil."""
        _, result = result_of(store, source)
        assert result == (T if truth else NIL)

    def test_list_operations(self, store: Store) -> None:
        """car, cdr and cons."""
        assert result_of(store, "(car '(1 2))")[1] == num(1)
        assert store.render(result_of(store, "(cdr '(1 2))")[1]) == "(2)"
        assert result_of(store, "(car nil)")[1] == NIL
        assert store.render(result_of(store, "(cons 1 '(2))")[1]) == "(1 2)"

    @pytest.mark.parametrize("source, expected", [
        ("(% 17 5)", 2),
        ("(% 4 4)", 0),
        ("(% 3 8)", 3),
        ("(% 4294967295 7)", 3),
    ])
    def test_remainder(self, store: Store, source: str, expected: int) -> None:
        """% is the integer remainder of 32-bit operands."""
        _, result = result_of(store, source)
        assert result == num(expected)

    def test_commitments(self, store: Store) -> None:
        """hide/commit build commitments that open/secret take apart."""
        assert result_of(store, "(commit 5)")[1] == store.commit(num(5))
        assert result_of(store, "(hide 7 '(1 2))")[1] == store.hide(7, store.intern([1, 2]))
        assert result_of(store, "(open (commit 5))")[1] == num(5)
        assert result_of(store, "(secret (commit 5))")[1] == num(0)
        assert result_of(store, "(secret (hide 7 '(1 2)))")[1] == num(7)
        assert store.render(result_of(store, "(open (hide 7 '(1 2)))")[1]) == "(1 2)"
        assert result_of(store, "(eq (commit 1) (commit 1))")[1] == T
        assert result_of(store, "(eq (commit 1) (hide 1 1))")[1] == NIL

    def test_commitment_is_self_evaluating(self, store: Store) -> None:
        """A commitment evaluates to itself."""
        comm = store.commit(num(5))
        frame = step(store, State(comm, NIL, OUTERMOST))
        assert frame.rule == EvalRule.SELF_EVALUATING
        assert frame.output == State(comm, NIL, TERMINAL)

    def test_emit(self, store: Store) -> None:
        """emit returns its argument and records it in order."""
        evaluation, result = result_of(store, "(+ (emit 1) (emit 2))")
        assert result == num(3)
        assert evaluation.emitted == (num(1), num(2))
        assert run(store, "(+ 1 2)").emitted == ()


class TestErrors:
    """Errors are data in ERROR-halted states."""

    @pytest.mark.parametrize("source, code", [
        ("(/ 1 0)", ErrorCode.DIVISION_BY_ZERO),
        ("(car 5)", ErrorCode.ARGUMENT_ERROR),
        ("(+ 1 'a)", ErrorCode.ARGUMENT_ERROR),
        ("(5 1)", ErrorCode.NOT_A_FUNCTION),
        ("((lambda (x) x))", ErrorCode.ARGUMENT_ERROR),
        ("((lambda () 1) 2)", ErrorCode.ARGUMENT_ERROR),
        ("(if 1 2)", ErrorCode.INVALID_FORM),
        ("(lambda x)", ErrorCode.INVALID_FORM),
        ("(let ((1 2)) 3)", ErrorCode.INVALID_FORM),
        ("(quote 1 2)", ErrorCode.INVALID_FORM),
        ("(% 5 0)", ErrorCode.DIVISION_BY_ZERO),
        ("(% -1 2)", ErrorCode.ARGUMENT_ERROR),
        ("(% 4294967296 3)", ErrorCode.ARGUMENT_ERROR),
        ("(% 1 'a)", ErrorCode.ARGUMENT_ERROR),
        ("(hide 'a 1)", ErrorCode.ARGUMENT_ERROR),
        ("(open 5)", ErrorCode.ARGUMENT_ERROR),
        ("(secret '(1))", ErrorCode.ARGUMENT_ERROR),
        ("(let ((a 1) (b 2) (c 3) (d 4) (e 5)) a)", ErrorCode.DEPTH_EXCEEDED),
    ])
    def test_error_code(self, store: Store, source: str, code: ErrorCode) -> None:
        """Each failure halts with its reason."""
        evaluation, result = result_of(store, source)
        assert evaluation.reason == Reason.ERROR_HALTED
        assert result == err(code)
        assert evaluation.final.cont == ERROR

    def test_deeper_lookup_with_larger_config(self, store: Store) -> None:
        """Raising max_lookup_depth reaches the binding."""
        config = EvalConfig(max_lookup_depth=6)
        _, result = result_of(store, "(let ((a 1) (b 2) (c 3) (d 4) (e 5)) a)", config=config)
        assert result == num(1)

    def test_invalid_expression(self, store: Store) -> None:
        """Evaluating a non-expression tag is an error."""
        state = State(err(ErrorCode.ARGUMENT_ERROR), NIL, OUTERMOST)
        frame = step(store, state)
        assert frame.rule == EvalRule.INVALID_EXPR
        assert frame.output.expr == err(ErrorCode.INVALID_EXPRESSION)

    def test_invalid_continuation(self, store: Store) -> None:
        """Returning to a non-continuation is an error."""
        env = store.env(store.intern_symbol("x"), num(1))
        frame = step(store, State(num(1), NIL, env))
        assert frame.return_rule == ContRule.INVALID_CONT
        assert frame.output == State(err(ErrorCode.INVALID_CONTINUATION), NIL, ERROR)


class TestStep:
    """Properties of single steps."""

    @pytest.mark.parametrize("cont", [TERMINAL, ERROR])
    def test_terminal_fixed_point(self, store: Store, cont) -> None:
        """Terminal states step to themselves."""
        state = State(store.intern([1, 2]), NIL, cont)
        frame = step(store, state)
        assert frame.output == state
        assert frame.is_identity
        assert frame.rule == EvalRule.TERMINAL
        assert frame.return_rule == ContRule.PASS

    def test_step_is_deterministic(self) -> None:
        """Two stores compute identical frames."""
        frames = [run(Store(), "((lambda (x) (+ x 1)) 2)").frames for _ in range(2)]
        assert frames[0] == frames[1]
        assert [f.slots for f in frames[0]] == [f.slots for f in frames[1]]

    def test_thunk_wraps_returned_values(self, store: Store) -> None:
        """Builtin results reach the next continuation as thunks."""
        frames = run(store, "(+ 1 2)").frames
        assert frames[-1].rule == EvalRule.THUNK
        assert frames[-2].output.expr.tag == Tag.THUNK

    def test_dispatch_requires_exactly_one_rule(self) -> None:
        """Overlapping or empty guards are invariant violations."""
        with pytest.raises(RuleDispatchError):
            _dispatch({EvalRule.TERMINAL: 1, EvalRule.LOOKUP: 1})
        with pytest.raises(RuleDispatchError):
            _dispatch({EvalRule.TERMINAL: 0})


class TestPadding:
    """Tests for pad_trace."""

    def test_pad_with_identity_frames(self, store: Store) -> None:
        """Padding appends fixed-point frames."""
        frames = run(store, "42").frames
        padded = pad_trace(frames, 4, store)
        assert len(padded) == 4
        assert all(f.is_identity for f in padded[1:])
        assert padded[-1].output == frames[-1].output

    def test_pad_rejects_unfinished_trace(self, store: Store) -> None:
        """Only terminated traces can be padded."""
        frames = run(store, "((lambda (x) x) 5)", max_steps=2).frames
        with pytest.raises(ValueError):
            pad_trace(frames, 5, store)

    def test_pad_rejects_long_trace(self, store: Store) -> None:
        """A trace longer than the target cannot be padded."""
        frames = run(store, "((lambda (x) x) 5)").frames
        with pytest.raises(ValueError):
            pad_trace(frames, 2, store)

    def test_pad_empty_trace_from_initial(self, store: Store) -> None:
        """An empty trace pads from a terminal initial state."""
        initial = State(num(1), NIL, TERMINAL)
        padded = pad_trace([], 3, store, initial=initial)
        assert len(padded) == 3
        assert all(f.is_identity and f.input == initial for f in padded)

    def test_pad_empty_trace_needs_initial(self, store: Store) -> None:
        """Without an initial state an empty trace cannot be padded."""
        with pytest.raises(ValueError):
            pad_trace([], 2, store)
        with pytest.raises(ValueError):
            pad_trace([], 2, store, initial=State(num(1), NIL, OUTERMOST))
        assert pad_trace([], 0, store) == []


class TestBatch:
    """Tests for evaluate_batch."""

    def test_batch_matches_sequential(self) -> None:
        """Parallel evaluation returns results in job order."""
        sources = ["(+ 1 2)", "((lambda (x) (* x x)) 7)", "y"]
        jobs = []
        for source in sources:
            s = Store()
            jobs.append((s, read(s, source), None))
        results = evaluate_batch(jobs, max_steps=100, max_workers=3)
        assert [r.result for r in results] == [num(3), num(49), err(ErrorCode.UNBOUND_VARIABLE)]

    def test_shared_store_required(self) -> None:
        """An unshared store cannot back two jobs."""
        s = Store()
        jobs = [(s, read(s, "1"), None), (s, read(s, "2"), None)]
        with pytest.raises(ValueError):
            evaluate_batch(jobs, max_steps=10)

    def test_shared_store(self) -> None:
        """A shared store can back several jobs."""
        s = Store(shared=True)
        jobs = [(s, read(s, f"(+ {i} 1)"), None) for i in range(4)]
        results = evaluate_batch(jobs, max_steps=100, max_workers=4)
        assert [r.result for r in results] == [num(i + 1) for i in range(4)]


class TestConfig:
    """Tests for EvalConfig validation."""

    @pytest.mark.parametrize("kwargs", [
        {"max_lookup_depth": 0},
        {"max_constraints": 0},
        {"synthesis_workers": 0},
    ])
    def test_invalid_values(self, kwargs) -> None:
        """Out-of-range fields raise ConfigError."""
        with pytest.raises(ConfigError):
            EvalConfig(**kwargs)

    def test_frozen(self) -> None:
        """Configs are immutable."""
        config = EvalConfig()
        with pytest.raises(FrozenInstanceError):
            config.max_lookup_depth = 2
        assert replace(config, max_lookup_depth=2).max_lookup_depth == 2
