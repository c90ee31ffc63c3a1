"""Exception hierarchy.

Evaluation errors (unbound variables, bad arguments, ...) are never raised:
they are Err-tagged values in the store. Exceptions here mean either a bug
in a producer of pointers (InvariantViolation), a configured resource limit
(ResourceLimitExceeded), or bad caller input (ConfigError, ReadError).
"""


class LurkSpecError(Exception):
    """Base class for every error raised by lurk_spec."""


# --- Invariant Violations ---


class InvariantViolation(LurkSpecError):
    """A structural invariant of the store or trace does not hold."""


class DanglingPointerError(InvariantViolation, KeyError):
    """A pointer was resolved that no store entry backs."""

    def __init__(self, ptr):
        super().__init__(f"dangling pointer: {ptr!r}")
        self.ptr = ptr


class MalformedEntryError(InvariantViolation):
    """A store entry does not have the shape its tag requires."""


class RuleDispatchError(InvariantViolation):
    """Rule guards did not select exactly one rule for a state."""


class TraceContiguityError(InvariantViolation):
    """Frame i's output differs from frame i+1's input."""


class UnsatisfiedStepError(InvariantViolation):
    """A step instance handed to a folder is not satisfied."""


# --- Resource Limits ---


class ResourceLimitExceeded(LurkSpecError):
    """A configured bound was hit; retry with a larger budget."""


class CircuitSizeExceeded(ResourceLimitExceeded):
    """Frame synthesis allocated more constraints than allowed."""

    def __init__(self, limit: int):
        super().__init__(f"frame circuit exceeds max_constraints={limit}")
        self.limit = limit


# --- Caller Errors ---


class ConfigError(LurkSpecError, ValueError):
    """An EvalConfig field is out of range."""


class ReadError(LurkSpecError, ValueError):
    """Source text is not a well-formed expression."""
