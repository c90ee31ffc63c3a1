"""Circuit - R1CS constraint system and the uniform frame circuit."""

from lurk_spec.circuit.frame_circuit import (
    CircuitStepContext,
    PtrVar,
    synthesize_frame,
    synthesize_trace,
)
from lurk_spec.circuit.system import ONE, ConstraintSystem, LinearCombination, as_lc

__all__ = [
    # Constraint system
    "ONE",
    "ConstraintSystem",
    "LinearCombination",
    "as_lc",
    # Frame circuit
    "CircuitStepContext",
    "PtrVar",
    "synthesize_frame",
    "synthesize_trace",
]
