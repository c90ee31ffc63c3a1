"""Evaluation and synthesis configuration."""

from dataclasses import dataclass
from typing import Optional

from lurk_spec.errors import ConfigError

# --- Defaults ---

DEFAULT_MAX_LOOKUP_DEPTH = 4


@dataclass(frozen=True)
class EvalConfig:
    """Static parameters shared by the evaluator and the frame circuit.

    Every field that changes the step relation (only max_lookup_depth today)
    also changes the circuit shape, so traces meant to be folded together
    must use one config.

    Attributes:
        max_lookup_depth: Environment nodes a single lookup step may inspect;
            deeper bindings halt with DEPTH_EXCEEDED
        max_constraints: Upper bound on constraints per frame circuit, or None
        synthesis_workers: Thread pool size for trace synthesis, or None for
            the executor default
    """
    max_lookup_depth: int = DEFAULT_MAX_LOOKUP_DEPTH
    max_constraints: Optional[int] = None
    synthesis_workers: Optional[int] = None

    def __post_init__(self):
        if self.max_lookup_depth < 1:
            raise ConfigError(f"max_lookup_depth must be >= 1, got {self.max_lookup_depth}")
        if self.max_constraints is not None and self.max_constraints < 1:
            raise ConfigError(f"max_constraints must be positive, got {self.max_constraints}")
        if self.synthesis_workers is not None and self.synthesis_workers < 1:
            raise ConfigError(f"synthesis_workers must be positive, got {self.synthesis_workers}")


DEFAULT_CONFIG = EvalConfig()
