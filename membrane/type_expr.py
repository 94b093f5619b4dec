"""Tokenizer and recursive descent parser for Rust type expressions"""

import re
from typing import Optional

from .errors import MalformedDeclaration
from .types import TypeExpr

TOKEN_RE = re.compile(r"\s*(?:(::|->)|('[A-Za-z_]\w*)|([A-Za-z_]\w*)|(\d+)|(.))")

OPEN = "<([{"
CLOSE = ">)]}"


def tokenize(text: str) -> list[str]:
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = TOKEN_RE.match(text, pos)
        if not m:
            break
        token = next(g for g in m.groups() if g is not None)
        tokens.append(token)
        pos = m.end()
    return tokens


def split_top_level(text: str, sep: str = ",") -> list[str]:
    """Split on ``sep`` outside of any bracket pair. Empty pieces are dropped."""
    parts = []
    depth = 0
    current = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "-" and text[i + 1:i + 2] == ">":
            current.append("->")
            i += 2
            continue
        if ch in OPEN:
            depth += 1
        elif ch in CLOSE:
            depth -= 1
        if ch == sep and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    parts.append("".join(current).strip())
    return [p for p in parts if p]


class TypeParser:
    """Parses one type expression from a token list"""

    def __init__(self, text: str):
        self.text = text.strip()
        self.tokens = tokenize(self.text)
        self.pos = 0

    def parse(self) -> TypeExpr:
        if not self.tokens:
            self._fail("expected a type")
        ty = self._type()
        if self.pos != len(self.tokens):
            self._fail(f"unexpected `{self.tokens[self.pos]}`")
        return ty

    def _peek(self, offset: int = 0) -> Optional[str]:
        i = self.pos + offset
        return self.tokens[i] if i < len(self.tokens) else None

    def _next(self) -> str:
        token = self._peek()
        if token is None:
            self._fail("unexpected end of type")
        self.pos += 1
        return token

    def _expect(self, token: str):
        got = self._next()
        if got != token:
            self._fail(f"expected `{token}`, found `{got}`")

    def _fail(self, reason: str):
        raise MalformedDeclaration(f"invalid type `{self.text}`: {reason}")

    def _type(self) -> TypeExpr:
        token = self._peek()
        if token == "&":
            self._next()
            if self._peek() and self._peek().startswith("'"):
                self._next()
            if self._peek() == "mut":
                self._next()
            inner = self._type()
            return TypeExpr(inner.name, inner.args, inner.bindings, inner.path,
                            is_impl=inner.is_impl, is_ref=True, is_array=inner.is_array)
        if token == "*":
            self._next()
            if self._peek() in ("const", "mut"):
                self._next()
            inner = self._type()
            return TypeExpr(inner.name, inner.args, inner.bindings, inner.path, is_ref=True)
        if token in ("impl", "dyn"):
            self._next()
            inner = self._path_type()
            return TypeExpr(inner.name, inner.args, inner.bindings, inner.path, is_impl=True)
        if token == "(":
            return self._tuple()
        if token == "[":
            self._next()
            inner = self._type()
            if self._peek() == ";":
                self._next()
                self._next()
            self._expect("]")
            return TypeExpr("[]", (inner,), is_array=True)
        return self._path_type()

    def _tuple(self) -> TypeExpr:
        self._expect("(")
        elems = []
        while self._peek() != ")":
            elems.append(self._type())
            if self._peek() == ",":
                self._next()
            elif self._peek() != ")":
                self._fail(f"expected `,` or `)`, found `{self._peek()}`")
        self._expect(")")
        return TypeExpr("()", tuple(elems))

    def _path_type(self) -> TypeExpr:
        segments = [self._ident()]
        while self._peek() == "::":
            self._next()
            segments.append(self._ident())
        args = []
        bindings = []
        if self._peek() == "<":
            self._next()
            while self._peek() != ">":
                token = self._peek()
                if token is not None and token.startswith("'"):
                    self._next()
                elif self._peek(1) == "=" and re.match(r"[A-Za-z_]", token or ""):
                    key = self._next()
                    self._next()
                    bindings.append((key, self._type()))
                else:
                    args.append(self._type())
                if self._peek() == ",":
                    self._next()
                elif self._peek() != ">":
                    self._fail(f"expected `,` or `>`, found `{self._peek()}`")
            self._expect(">")
        return TypeExpr(segments[-1], tuple(args), tuple(bindings), tuple(segments[:-1]))

    def _ident(self) -> str:
        token = self._next()
        if not re.match(r"[A-Za-z_]\w*$", token):
            self._fail(f"expected an identifier, found `{token}`")
        return token


def parse_type(text: str) -> TypeExpr:
    return TypeParser(text).parse()
