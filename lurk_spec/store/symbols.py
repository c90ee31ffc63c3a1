"""Symbol hashing and the builtin symbol table.

Builtin symbols are constants: their pointers are computed once at import
and used directly by the evaluator rules and the circuit, neither of which
ever dereferences a symbol.
"""

from typing import Dict

from lurk_spec.primitives.field import pack_bytes
from lurk_spec.primitives.poseidon2 import hash_elements
from lurk_spec.store.pointer import Ptr
from lurk_spec.store.tag import Tag


def symbol_ptr(name: str) -> Ptr:
    """Pointer of the symbol `name`: SYM tag, byte length, packed UTF-8 bytes."""
    data = name.encode("utf-8")
    return Ptr(Tag.SYM, hash_elements([int(Tag.SYM), len(data)] + pack_bytes(data)))


# --- Builtins ---

T = symbol_ptr("t")
QUOTE = symbol_ptr("quote")
LAMBDA = symbol_ptr("lambda")
IF = symbol_ptr("if")
LET = symbol_ptr("let")
LETREC = symbol_ptr("letrec")

# Parameter of closures that take no arguments
DUMMY_ARG = symbol_ptr("_")

UNOPS: Dict[str, Ptr] = {
    name: symbol_ptr(name)
    for name in ("car", "cdr", "atom", "commit", "open", "secret", "emit")
}
BINOPS: Dict[str, Ptr] = {
    name: symbol_ptr(name)
    for name in ("+", "-", "*", "/", "%", "=", "<", ">", "<=", ">=", "eq", "cons", "hide")
}

BUILTIN_NAMES: Dict[Ptr, str] = {
    ptr: name
    for name, ptr in {
        "t": T, "quote": QUOTE, "lambda": LAMBDA, "if": IF,
        "let": LET, "letrec": LETREC, "_": DUMMY_ARG, **UNOPS, **BINOPS,
    }.items()
}
