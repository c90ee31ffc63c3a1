"""Pointers: (tag, digest) handles into the store."""

from typing import NamedTuple, Tuple

from lurk_spec.primitives.field import to_field
from lurk_spec.primitives.poseidon2 import DIGEST_SIZE
from lurk_spec.store.tag import ErrorCode, Tag

ZERO_DIGEST: Tuple[int, ...] = (0,) * DIGEST_SIZE

# Elements in one pointer
PTR_SIZE = 1 + DIGEST_SIZE


class Ptr(NamedTuple):
    """Content-addressed handle.

    Equality is (tag, digest) equality; it never dereferences. For
    immediate tags the digest holds the value itself.
    """
    tag: Tag
    digest: Tuple[int, ...]

    def elements(self) -> Tuple[int, ...]:
        """Field elements of this pointer: tag then digest."""
        return (int(self.tag),) + tuple(self.digest)

    @classmethod
    def from_elements(cls, elements) -> "Ptr":
        return cls(Tag(elements[0]), tuple(int(x) for x in elements[1:PTR_SIZE]))

    def __repr__(self) -> str:
        if self.tag == Tag.NUM:
            return f"Ptr(NUM, {self.digest[0]})"
        if self.tag == Tag.ERR:
            return f"Ptr(ERR, {ErrorCode(self.digest[0]).name})"
        return f"Ptr({self.tag.name}, {self.digest[0]:016x}...)"


def immediate(tag: Tag, value: int = 0) -> Ptr:
    """Pointer for an immediate tag carrying `value` in its first digest element."""
    return Ptr(tag, (to_field(value),) + ZERO_DIGEST[1:])


def num(n: int) -> Ptr:
    """Numbers are always inline: any field element fits in one digest slot."""
    return immediate(Tag.NUM, n)


def err(code: ErrorCode) -> Ptr:
    return immediate(Tag.ERR, int(code))


NIL = immediate(Tag.NIL)
OUTERMOST = immediate(Tag.OUTERMOST)
TERMINAL = immediate(Tag.TERMINAL)
ERROR = immediate(Tag.ERROR)
