"""Store - tags, pointers and the content-addressed arena."""

from lurk_spec.store.pointer import (
    ERROR,
    NIL,
    OUTERMOST,
    PTR_SIZE,
    TERMINAL,
    Ptr,
    err,
    num,
)
from lurk_spec.store.reader import read, read_all
from lurk_spec.store.store import Store, node_digest, node_preimage
from lurk_spec.store.symbols import symbol_ptr
from lurk_spec.store.tag import ARITY, ErrorCode, Tag

__all__ = [
    # Tags
    "ARITY",
    "ErrorCode",
    "Tag",
    # Pointers
    "ERROR",
    "NIL",
    "OUTERMOST",
    "PTR_SIZE",
    "TERMINAL",
    "Ptr",
    "err",
    "num",
    "symbol_ptr",
    # Store
    "Store",
    "node_digest",
    "node_preimage",
    # Reader
    "read",
    "read_all",
]
