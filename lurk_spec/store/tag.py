"""The closed tag set shared by the store, the evaluator and the circuit.

Tag values are field elements: they are absorbed first into every node
hash and appear as the first element of every pointer. NIL is 0, so an
all-zero hash preimage decodes to nil children.
"""

from enum import IntEnum
from typing import Dict, FrozenSet


class Tag(IntEnum):
    # Expressions and values
    NIL = 0
    CONS = 1
    SYM = 2
    NUM = 3
    FUN = 4
    THUNK = 5
    ERR = 6
    # Environments
    ENV = 7
    REC_ENV = 8
    # Continuations without children
    OUTERMOST = 9
    TERMINAL = 10
    ERROR = 11
    # Continuations with four children
    CALL0 = 12
    CALL = 13
    CALL2 = 14
    LET = 15
    LETREC = 16
    IF = 17
    UNOP = 18
    BINOP = 19
    BINOP2 = 20
    # Commitments to (secret, payload)
    COMM = 21


class ErrorCode(IntEnum):
    """Reason carried by an ERR value."""
    UNBOUND_VARIABLE = 1
    ARGUMENT_ERROR = 2
    DEPTH_EXCEEDED = 3
    DIVISION_BY_ZERO = 4
    INVALID_FORM = 5
    NOT_A_FUNCTION = 6
    INVALID_EXPRESSION = 7
    INVALID_CONTINUATION = 8


# --- Tag Groups ---

IMMEDIATE_TAGS: FrozenSet[Tag] = frozenset({
    Tag.NIL, Tag.NUM, Tag.ERR, Tag.OUTERMOST, Tag.TERMINAL, Tag.ERROR,
})
"""Tags whose pointers carry their value inline and never touch the hash."""

ENV_TAGS: FrozenSet[Tag] = frozenset({Tag.ENV, Tag.REC_ENV})

LEAF_CONT_TAGS: FrozenSet[Tag] = frozenset({Tag.OUTERMOST, Tag.TERMINAL, Tag.ERROR})

NODE_CONT_TAGS: FrozenSet[Tag] = frozenset({
    Tag.CALL0, Tag.CALL, Tag.CALL2, Tag.LET, Tag.LETREC,
    Tag.IF, Tag.UNOP, Tag.BINOP, Tag.BINOP2,
})

CONT_TAGS: FrozenSet[Tag] = LEAF_CONT_TAGS | NODE_CONT_TAGS

HALTED_CONT_TAGS: FrozenSet[Tag] = frozenset({Tag.TERMINAL, Tag.ERROR})
"""A state whose continuation carries one of these tags is terminal."""

ARITY: Dict[Tag, int] = {
    Tag.CONS: 2,
    Tag.THUNK: 2,
    Tag.COMM: 2,
    Tag.FUN: 3,
    Tag.ENV: 3,
    Tag.REC_ENV: 3,
    **{tag: 4 for tag in NODE_CONT_TAGS},
}
"""Child count of every hashed node tag (SYM hashes its name instead)."""

HASH_ARITIES = (2, 3, 4)


def preimage_size(arity: int) -> int:
    """Elements absorbed for a node: its tag, then (tag, digest) per child."""
    return 1 + 5 * arity
