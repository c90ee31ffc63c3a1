"""Step function and evaluation driver.

`step` is pure and total: any state maps to exactly one frame, and terminal
states map to themselves. `evaluate` iterates it until the state is
terminal, the step budget runs out, or the caller cancels.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from lurk_spec.config import DEFAULT_CONFIG, EvalConfig
from lurk_spec.errors import RuleDispatchError
from lurk_spec.evaluator.context import ConcreteStepContext, Phase
from lurk_spec.evaluator.frame import Frame, State, initial_state
from lurk_spec.evaluator.rules import (
    CONT_RULES,
    EVAL_RULES,
    cont_guards,
    cont_prelude,
    eval_guards,
    eval_prelude,
)
from lurk_spec.store.pointer import NIL, Ptr
from lurk_spec.store.store import Store

logger = logging.getLogger(__name__)


class Reason(Enum):
    """Why evaluation stopped."""
    COMPLETED = "completed"
    ERROR_HALTED = "error_halted"
    MAX_STEPS_REACHED = "max_steps_reached"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Evaluation:
    """Result of `evaluate`: a valid trace and why it ended.

    Attributes:
        frames: Frames in trace order; frames[i].output == frames[i+1].input
        reason: Why evaluation stopped
        initial: State the trace starts from
    """
    frames: Tuple[Frame, ...]
    reason: Reason
    initial: State

    @property
    def final(self) -> State:
        return self.frames[-1].output if self.frames else self.initial

    @property
    def result(self) -> Ptr:
        """Value (or Err) of the final state."""
        return self.final.expr

    @property
    def iterations(self) -> int:
        return len(self.frames)

    @property
    def emitted(self) -> Tuple[Ptr, ...]:
        """Everything the program emitted, in order."""
        return tuple(p for frame in self.frames for p in frame.emitted)


def _dispatch(guards: Dict) -> object:
    """The single rule whose guard holds."""
    fired = [rule for rule, guard in guards.items() if guard]
    if len(fired) != 1:
        raise RuleDispatchError(f"guards selected {[r.name for r in fired]}, expected exactly one")
    return fired[0]


def step(store: Store, state: State, config: EvalConfig = DEFAULT_CONFIG) -> Frame:
    """Apply one reduction step to `state`."""
    ctx = ConcreteStepContext(store, config)

    ctx.begin_phase(Phase.EVAL)
    scope = eval_prelude(ctx, *state)
    rule = _dispatch(eval_guards(ctx, scope))
    ctx.begin_rule()
    mid = EVAL_RULES[rule](ctx, scope)

    ctx.begin_phase(Phase.CONT)
    cont_scope = cont_prelude(ctx, mid)
    return_rule = _dispatch(cont_guards(ctx, cont_scope))
    ctx.begin_rule()
    out = CONT_RULES[return_rule](ctx, cont_scope)

    logger.debug("step %s/%s: %r -> %r", rule.name, return_rule.name, state.expr, out.expr)
    return Frame(
        input=state,
        output=State(out.expr, out.env, out.cont),
        rule=rule,
        return_rule=return_rule,
        intermediate=State(mid.expr, mid.env, mid.cont),
        returned=bool(mid.ret),
        slots=ctx.slots,
        emitted=tuple(ctx.emitted),
    )


def evaluate(
    store: Store,
    expr: Ptr,
    env: Optional[Ptr] = None,
    *,
    max_steps: int,
    config: EvalConfig = DEFAULT_CONFIG,
    cancel: Optional[threading.Event] = None,
) -> Evaluation:
    """
    Evaluate `expr` in `env` (nil when omitted) for at most `max_steps` frames.

    Args:
        store: Store holding expr and env; new nodes are interned into it
        expr: Expression to evaluate
        env: Environment, nil by default
        max_steps: Upper bound on the number of frames
        config: Evaluation parameters
        cancel: Checked between frames; when set, evaluation stops with CANCELLED

    Returns:
        Evaluation whose trace is valid however it ended
    """
    if max_steps < 0:
        raise ValueError(f"max_steps must be non-negative, got {max_steps}")

    start = initial_state(store.intern(expr), store.intern(env) if env is not None else NIL)
    state = start
    frames: List[Frame] = []

    while True:
        if state.is_terminal:
            reason = Reason.ERROR_HALTED if state.is_error else Reason.COMPLETED
            break
        if len(frames) >= max_steps:
            reason = Reason.MAX_STEPS_REACHED
            logger.warning("step budget of %d exhausted before termination", max_steps)
            break
        if cancel is not None and cancel.is_set():
            reason = Reason.CANCELLED
            break
        frame = step(store, state, config)
        frames.append(frame)
        state = frame.output

    logger.info("evaluation stopped after %d steps: %s", len(frames), reason.value)
    return Evaluation(tuple(frames), reason, start)


def pad_trace(frames: Sequence[Frame], length: int, store: Store,
              config: EvalConfig = DEFAULT_CONFIG, initial: Optional[State] = None) -> List[Frame]:
    """Extend a terminated trace to `length` frames with identity frames.

    Args:
        initial: State the trace starts from; needed to pad an empty trace

    Raises:
        ValueError: the trace is longer than `length`, or does not end in a
            terminal state
    """
    if len(frames) > length:
        raise ValueError(f"trace has {len(frames)} frames, cannot pad to {length}")
    padded = list(frames)
    if len(padded) == length:
        return padded
    final = padded[-1].output if padded else initial
    if final is None or not final.is_terminal:
        raise ValueError("only traces ending in a terminal state can be padded")

    identity = step(store, final, config)
    padded.extend([identity] * (length - len(padded)))
    return padded


def evaluate_batch(
    jobs: Sequence[Tuple[Store, Ptr, Optional[Ptr]]],
    *,
    max_steps: int,
    config: EvalConfig = DEFAULT_CONFIG,
    max_workers: Optional[int] = None,
) -> List[Evaluation]:
    """Evaluate independent (store, expr, env) jobs in parallel.

    Jobs may share a store only if it was created with shared=True.
    Results are returned in job order.
    """
    for store, _, _ in jobs:
        if not store.shared and sum(1 for other, _, _ in jobs if other is store) > 1:
            raise ValueError("jobs sharing a store require Store(shared=True)")

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(
            lambda job: evaluate(job[0], job[1], job[2], max_steps=max_steps, config=config),
            jobs,
        ))
