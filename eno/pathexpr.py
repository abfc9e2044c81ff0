"""Path expressions addressing values inside nested objects.

Supported syntax:

- ``field.anotherfield``: object field traversal
- ``field[2]``: array indexing
- ``field[*]``: array wildcards
- ``field[someKey="value"]``: matching objects within arrays
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, NamedTuple


class PathSyntaxError(ValueError):
    """Raised when a path expression cannot be parsed."""


@dataclass(frozen=True)
class Matcher:
    """Selects array elements whose ``key`` field equals ``value``."""

    key: str
    value: str


@dataclass(frozen=True)
class Index:
    """An array index: a wildcard, a position or a matcher."""

    wildcard: bool = False
    element: int | None = None
    matcher: Matcher | None = None


@dataclass(frozen=True)
class Section:
    """One step of a path: a field name or an index."""

    field: str | None = None
    index: Index | None = None


@dataclass(frozen=True)
class PathExpr:
    """A parsed path expression."""

    sections: tuple[Section, ...] = ()

    def __str__(self) -> str:
        parts = []
        for position, section in enumerate(self.sections):
            if section.field is not None:
                parts.append(section.field if position == 0 else "." + section.field)
            elif section.index is not None:
                parts.append(f"[{_format_index(section.index)}]")
        return "".join(parts)


def _format_index(index: Index) -> str:
    if index.wildcard:
        return "*"
    if index.element is not None:
        return str(index.element)
    if index.matcher is not None:
        return f"{index.matcher.key}={_quote(index.matcher.value)}"
    return ""


_QUOTE_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
}


def _quote_char(char: str) -> str:
    if char in _QUOTE_ESCAPES:
        return _QUOTE_ESCAPES[char]
    if char.isprintable():
        return char
    code = ord(char)
    return f"\\u{code:04x}" if code <= 0xFFFF else f"\\U{code:08x}"


def _quote(text: str) -> str:
    return '"' + "".join(_quote_char(c) for c in text) + '"'


_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    '"': '"',
}

_ESCAPE = re.compile(
    r"\\(x[0-9a-fA-F]{2}|u[0-9a-fA-F]{4}|U[0-9a-fA-F]{8}|[0-7]{3}|.)", re.DOTALL
)


def _unquote(literal: str, position: int) -> str:
    def replace(match: re.Match[str]) -> str:
        escape = match.group(1)
        if escape in _SIMPLE_ESCAPES:
            return _SIMPLE_ESCAPES[escape]
        if escape[0] in "xuU" and len(escape) > 1:
            code = int(escape[1:], 16)
        elif len(escape) == 3 and escape.isdigit():
            code = int(escape, 8)
            if code > 0xFF:
                raise PathSyntaxError(f"octal escape out of range at offset {position}")
        else:
            raise PathSyntaxError(f"invalid escape sequence \\{escape} at offset {position}")
        if code > 0x10FFFF:
            raise PathSyntaxError(f"escape sequence out of range at offset {position}")
        return chr(code)

    return _ESCAPE.sub(replace, literal[1:-1])


class _Lexeme(NamedTuple):
    kind: str
    text: str
    position: int


_LEXER_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<ident>[^\W\d]\w*)
    |(?P<int>\d+)
    |(?P<string>"(?:[^"\\\n]|\\.)*")
    |(?P<punct>.)
    """,
    re.VERBOSE | re.DOTALL,
)


def _lex(expr: str) -> Iterator[_Lexeme]:
    for match in _LEXER_PATTERN.finditer(expr):
        kind = match.lastgroup or "punct"
        if kind != "ws":
            yield _Lexeme(kind, match.group(), match.start())


class _Parser:
    def __init__(self, expr: str) -> None:
        self._lexemes = list(_lex(expr))
        self._pos = 0
        self._end = len(expr)

    def _peek(self) -> _Lexeme | None:
        return self._lexemes[self._pos] if self._pos < len(self._lexemes) else None

    def _is_punct(self, text: str) -> bool:
        lexeme = self._peek()
        return lexeme is not None and lexeme.kind == "punct" and lexeme.text == text

    def _fail(self, expected: str) -> PathSyntaxError:
        lexeme = self._peek()
        if lexeme is None:
            return PathSyntaxError(f"unexpected end of expression at offset {self._end}, expected {expected}")
        return PathSyntaxError(
            f"unexpected token {lexeme.text!r} at offset {lexeme.position}, expected {expected}"
        )

    def _take(self) -> _Lexeme:
        lexeme = self._lexemes[self._pos]
        self._pos += 1
        return lexeme

    def _expect(self, text: str) -> None:
        if not self._is_punct(text):
            raise self._fail(repr(text))
        self._pos += 1

    def parse(self) -> PathExpr:
        sections = []
        while self._peek() is not None:
            while self._is_punct("."):
                self._pos += 1
            lexeme = self._peek()
            if lexeme is not None and lexeme.kind == "ident":
                sections.append(Section(field=self._take().text))
            elif self._is_punct("["):
                self._pos += 1
                index = self._parse_index()
                self._expect("]")
                sections.append(Section(index=index))
            else:
                raise self._fail("a field name or '['")
        return PathExpr(tuple(sections))

    def _parse_index(self) -> Index:
        lexeme = self._peek()
        if self._is_punct("*"):
            self._pos += 1
            return Index(wildcard=True)
        if lexeme is not None and lexeme.kind == "int":
            return Index(element=int(self._take().text, 10))
        if lexeme is not None and lexeme.kind == "ident":
            key = self._take().text
            self._expect("=")
            value = self._peek()
            if value is None or value.kind != "string":
                raise self._fail("a quoted string")
            self._pos += 1
            return Index(matcher=Matcher(key=key, value=_unquote(value.text, value.position)))
        raise self._fail("'*', an integer or a matcher")


def parse_path_expr(expr: str) -> PathExpr:
    """Parse a path expression, raising PathSyntaxError when it is malformed."""
    return _Parser(expr).parse()