"""Helpers shared by test modules."""

from lurk_spec.config import DEFAULT_CONFIG, EvalConfig
from lurk_spec.evaluator import Evaluation, evaluate
from lurk_spec.store import Store, read

# Step budget for the small programs used in tests
MAX_STEPS = 1000


def run(store: Store, source: str, max_steps: int = MAX_STEPS, config: EvalConfig = DEFAULT_CONFIG) -> Evaluation:
    """Read `source` into `store` and evaluate it in the empty environment."""
    return evaluate(store, read(store, source), max_steps=max_steps, config=config)
