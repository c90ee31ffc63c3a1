"""S-expression reader.

Grammar: integers (optionally signed), symbols, `nil`, parenthesized lists
with an optional dotted tail, `'x` for `(quote x)`, and `;` line comments.
Negative literals read as their field negation.
"""

import re
from typing import List

from lurk_spec.errors import ReadError
from lurk_spec.store.pointer import NIL, Ptr
from lurk_spec.store.store import Store

_TOKEN = re.compile(r"""\s*(?:;[^\n]*|([()']|[^\s()';]+))""")
_INTEGER = re.compile(r"[+-]?\d+")


def tokenize(text: str) -> List[str]:
    tokens = []
    pos = 0
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if match is None or match.end() == pos:
            if text[pos:].strip():
                raise ReadError(f"unexpected character at offset {pos}: {text[pos]!r}")
            break
        if match.group(1):
            tokens.append(match.group(1))
        pos = match.end()
    return tokens


class _Parser:

    def __init__(self, store: Store, tokens: List[str]):
        self.store = store
        self.tokens = tokens
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.tokens)

    def next(self) -> str:
        if self.at_end():
            raise ReadError("unexpected end of input")
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def expr(self) -> Ptr:
        token = self.next()
        if token == "(":
            return self.list_tail()
        if token == ")":
            raise ReadError("unexpected ')'")
        if token == "'":
            quote = self.store.intern_symbol("quote")
            return self.store.list([quote, self.expr()])
        if _INTEGER.fullmatch(token):
            return self.store.num(int(token))
        return self.store.intern_symbol(token)

    def list_tail(self) -> Ptr:
        items = []
        tail = NIL
        while True:
            if self.at_end():
                raise ReadError("unterminated list")
            token = self.tokens[self.pos]
            if token == ")":
                self.pos += 1
                break
            if token == "." and items:
                self.pos += 1
                tail = self.expr()
                if self.next() != ")":
                    raise ReadError("expected ')' after dotted tail")
                break
            items.append(self.expr())
        return self.store.list(items, tail)


def read_all(store: Store, text: str) -> List[Ptr]:
    """Read every top-level expression in `text`."""
    parser = _Parser(store, tokenize(text))
    exprs = []
    while not parser.at_end():
        exprs.append(parser.expr())
    return exprs


def read(store: Store, text: str) -> Ptr:
    """Read exactly one expression."""
    exprs = read_all(store, text)
    if len(exprs) != 1:
        raise ReadError(f"expected one expression, found {len(exprs)}")
    return exprs[0]
