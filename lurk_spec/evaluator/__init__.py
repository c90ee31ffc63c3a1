"""Evaluator - the CEK step function and its driver."""

from lurk_spec.evaluator.context import ConcreteStepContext, Phase, StepContext
from lurk_spec.evaluator.evaluate import (
    Evaluation,
    Reason,
    evaluate,
    evaluate_batch,
    pad_trace,
    step,
)
from lurk_spec.evaluator.frame import STATE_SIZE, Frame, State, initial_state
from lurk_spec.evaluator.rules import ContRule, EvalRule

__all__ = [
    # Contexts
    "ConcreteStepContext",
    "Phase",
    "StepContext",
    # Frames
    "STATE_SIZE",
    "Frame",
    "State",
    "initial_state",
    # Rules
    "ContRule",
    "EvalRule",
    # Evaluation
    "Evaluation",
    "Reason",
    "evaluate",
    "evaluate_batch",
    "pad_trace",
    "step",
]
