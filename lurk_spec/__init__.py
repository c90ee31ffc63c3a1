"""lurk_spec - content-addressed Lisp evaluation with per-step R1CS frames.

Typical use:

    store = Store()
    evaluation = evaluate(store, read(store, "((lambda (x) x) 5)"), max_steps=100)
    bundle = bundle_trace(evaluation)
    proof = ReceiptChainFolder().fold(bundle)
"""

from lurk_spec.circuit import ConstraintSystem, synthesize_frame, synthesize_trace
from lurk_spec.config import DEFAULT_CONFIG, EvalConfig
from lurk_spec.errors import (
    CircuitSizeExceeded,
    ConfigError,
    DanglingPointerError,
    InvariantViolation,
    LurkSpecError,
    MalformedEntryError,
    ReadError,
    ResourceLimitExceeded,
    RuleDispatchError,
    TraceContiguityError,
    UnsatisfiedStepError,
)
from lurk_spec.evaluator import (
    ContRule,
    EvalRule,
    Evaluation,
    Frame,
    Reason,
    State,
    evaluate,
    evaluate_batch,
    pad_trace,
    step,
)
from lurk_spec.protocol import ReceiptChainFolder, TraceBundle, TraceFolder, bundle_trace, state_commitment
from lurk_spec.store import ErrorCode, Ptr, Store, Tag, read, read_all

__all__ = [
    # Config
    "DEFAULT_CONFIG",
    "EvalConfig",
    # Errors
    "CircuitSizeExceeded",
    "ConfigError",
    "DanglingPointerError",
    "InvariantViolation",
    "LurkSpecError",
    "MalformedEntryError",
    "ReadError",
    "ResourceLimitExceeded",
    "RuleDispatchError",
    "TraceContiguityError",
    "UnsatisfiedStepError",
    # Store
    "ErrorCode",
    "Ptr",
    "Store",
    "Tag",
    "read",
    "read_all",
    # Evaluator
    "ContRule",
    "EvalRule",
    "Evaluation",
    "Frame",
    "Reason",
    "State",
    "evaluate",
    "evaluate_batch",
    "pad_trace",
    "step",
    # Circuit
    "ConstraintSystem",
    "synthesize_frame",
    "synthesize_trace",
    # Folding
    "ReceiptChainFolder",
    "TraceBundle",
    "TraceFolder",
    "bundle_trace",
    "state_commitment",
]
