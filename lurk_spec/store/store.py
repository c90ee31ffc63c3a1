"""Content-addressed, hash-consing store.

A pointer is a pure function of content: a node's digest is the Poseidon2
sponge of its tag followed by (tag, digest) of each child. The dicts held
here are caches from pointers back to content; two stores fed the same
inserts in any order hand out identical pointers.
"""

import threading
from contextlib import nullcontext
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from lurk_spec.errors import DanglingPointerError, MalformedEntryError
from lurk_spec.primitives.field import to_signed
from lurk_spec.primitives.poseidon2 import hash_elements
from lurk_spec.store import pointer
from lurk_spec.store.pointer import NIL, Ptr
from lurk_spec.store.symbols import BUILTIN_NAMES, DUMMY_ARG, symbol_ptr
from lurk_spec.store.tag import ARITY, IMMEDIATE_TAGS, ErrorCode, Tag

Datum = Union[Ptr, int, str, None, Sequence]


def node_preimage(tag: int, children: Sequence[Ptr]) -> List[int]:
    """Elements absorbed when hashing a node."""
    preimage = [int(tag)]
    for child in children:
        preimage.extend(child.elements())
    return preimage


def node_digest(tag: Tag, children: Sequence[Ptr]) -> Tuple[int, ...]:
    return hash_elements(node_preimage(tag, children))


class Store:
    """Hash-consing arena of expressions, environments and continuations.

    Args:
        shared: Guard interning with a lock so several threads can evaluate
            independent traces against one store
    """

    def __init__(self, shared: bool = False):
        self.shared = shared
        self._lock = threading.Lock() if shared else nullcontext()
        self._nodes: Dict[Ptr, Tuple[Ptr, ...]] = {}
        self._interned: Dict[Tuple[Tag, Tuple[Ptr, ...]], Ptr] = {}
        self._symbols: Dict[Ptr, str] = dict(BUILTIN_NAMES)

    def __len__(self) -> int:
        return len(self._nodes) + len(self._symbols)

    def __contains__(self, ptr: Ptr) -> bool:
        return ptr.tag in IMMEDIATE_TAGS or ptr in self._nodes or ptr in self._symbols

    # --- Interning ---

    def intern_node(self, tag: Tag, children: Sequence[Ptr]) -> Ptr:
        """Intern a node with the given child pointers."""
        tag = Tag(tag)
        arity = ARITY.get(tag)
        if arity is None or len(children) != arity:
            raise MalformedEntryError(
                f"{tag.name} takes {arity} children, got {len(children)}")
        children = tuple(children)
        for child in children:
            if child not in self:
                raise DanglingPointerError(child)

        key = (tag, children)
        with self._lock:
            existing = self._interned.get(key)
        if existing is not None:
            return existing

        ptr = Ptr(tag, node_digest(tag, children))
        with self._lock:
            ptr = self._interned.setdefault(key, ptr)
            self._nodes.setdefault(ptr, children)
        return ptr

    def intern_symbol(self, name: str) -> Ptr:
        if name == "nil":
            return NIL
        ptr = symbol_ptr(name)
        with self._lock:
            self._symbols.setdefault(ptr, name)
        return ptr

    def intern(self, datum: Datum) -> Ptr:
        """Intern a Python datum.

        ints become numbers, strings symbols ("nil" is nil), None nil, and
        lists or tuples proper lists. Pointers pass through unchanged.
        """
        if isinstance(datum, Ptr):
            if datum not in self:
                raise DanglingPointerError(datum)
            return datum
        if datum is None:
            return NIL
        if isinstance(datum, bool):
            raise TypeError("booleans are not data; use 't' or None")
        if isinstance(datum, int):
            return pointer.num(datum)
        if isinstance(datum, str):
            return self.intern_symbol(datum)
        if isinstance(datum, (list, tuple)):
            return self.list([self.intern(item) for item in datum])
        raise TypeError(f"cannot intern {type(datum).__name__}")

    def num(self, n: int) -> Ptr:
        return pointer.num(n)

    def error(self, code: ErrorCode) -> Ptr:
        return pointer.err(code)

    def cons(self, car: Ptr, cdr: Ptr) -> Ptr:
        return self.intern_node(Tag.CONS, (car, cdr))

    def list(self, items: Iterable[Ptr], tail: Ptr = NIL) -> Ptr:
        result = tail
        for item in reversed(list(items)):
            result = self.cons(item, result)
        return result

    def thunk(self, value: Ptr) -> Ptr:
        return self.intern_node(Tag.THUNK, (value, NIL))

    def fun(self, arg: Ptr, body: Ptr, env: Ptr) -> Ptr:
        return self.intern_node(Tag.FUN, (arg, body, env))

    def env(self, var: Ptr, val: Ptr, parent: Ptr = NIL, recursive: bool = False) -> Ptr:
        return self.intern_node(Tag.REC_ENV if recursive else Tag.ENV, (var, val, parent))

    def cont(self, tag: Tag, *children: Ptr) -> Ptr:
        """Continuation node; missing trailing children are nil."""
        return self.intern_node(tag, children + (NIL,) * (ARITY[Tag(tag)] - len(children)))

    def hide(self, secret: int, payload: Ptr) -> Ptr:
        """Commitment to payload, blinded by the number `secret`."""
        return self.intern_node(Tag.COMM, (pointer.num(secret), payload))

    def commit(self, payload: Ptr) -> Ptr:
        return self.hide(0, payload)

    # --- Dereferencing ---

    def fetch(self, ptr: Ptr, arity: Optional[int] = None) -> Tuple[Ptr, ...]:
        """Children of a node pointer.

        Raises:
            MalformedEntryError: ptr is not a node, or not of `arity`
            DanglingPointerError: no entry backs ptr
        """
        expected = ARITY.get(ptr.tag)
        if expected is None or (arity is not None and arity != expected):
            raise MalformedEntryError(f"{ptr!r} is not a node of arity {arity}")
        children = self._nodes.get(ptr)
        if children is None:
            raise DanglingPointerError(ptr)
        return children

    def resolve(self, ptr: Ptr) -> Union[Tuple[Ptr, ...], str, int]:
        """Dereference: children for nodes, the name for symbols, the value otherwise."""
        if ptr.tag in IMMEDIATE_TAGS:
            return ptr.digest[0]
        if ptr.tag == Tag.SYM:
            name = self._symbols.get(ptr)
            if name is None:
                raise DanglingPointerError(ptr)
            return name
        return self.fetch(ptr)

    def digest(self, ptr: Ptr) -> Tuple[int, ...]:
        """Commitment to the value behind ptr, binding its tag.

        Hashed pointers already absorb their tag. Immediates carry a raw
        value, so their tag and value are hashed here; the preimage starts
        with an immediate tag and can never equal a node or symbol preimage.
        """
        if ptr not in self:
            raise DanglingPointerError(ptr)
        if ptr.tag in IMMEDIATE_TAGS:
            return hash_elements(list(ptr.elements()))
        return ptr.digest

    # --- Printing ---

    def render(self, ptr: Ptr) -> str:
        """Human-readable form of any pointer."""
        tag = ptr.tag
        if tag == Tag.NIL:
            return "nil"
        if tag == Tag.NUM:
            return str(to_signed(ptr.digest[0]))
        if tag == Tag.SYM:
            return self.resolve(ptr)
        if tag == Tag.ERR:
            return f"<ERR {ErrorCode(ptr.digest[0]).name}>"
        if tag == Tag.CONS:
            return self._render_list(ptr)
        if tag == Tag.FUN:
            arg, body, _ = self.fetch(ptr)
            params = "" if arg == DUMMY_ARG else self.render(arg)
            return f"<FUN ({params}) {self.render(body)}>"
        if tag == Tag.THUNK:
            return f"<THUNK {self.render(self.fetch(ptr)[0])}>"
        if tag == Tag.COMM:
            return f"<COMM {ptr.digest[0]:016x}>"
        if tag in (Tag.ENV, Tag.REC_ENV):
            return self._render_env(ptr)
        return f"<CONT {tag.name}>"

    def _render_list(self, ptr: Ptr) -> str:
        parts = []
        while ptr.tag == Tag.CONS:
            car, ptr = self.fetch(ptr)
            parts.append(self.render(car))
        if ptr.tag != Tag.NIL:
            parts.extend([".", self.render(ptr)])
        return "(" + " ".join(parts) + ")"

    def _render_env(self, ptr: Ptr) -> str:
        bindings = []
        while ptr.tag in (Tag.ENV, Tag.REC_ENV):
            var, val, ptr = self.fetch(ptr)
            bindings.append(f"({self.render(var)} . {self.render(val)})")
        return "<ENV " + " ".join(bindings) + ">"

    def read_number(self, ptr: Ptr) -> int:
        """Signed integer value of a NUM pointer."""
        if ptr.tag != Tag.NUM:
            raise MalformedEntryError(f"{ptr!r} is not a number")
        return to_signed(ptr.digest[0])
