"""
Restricted GraphQL query parser.

Supports the subset the executor understands:

    document    → operation_type? NAME? "{" selection+ "}"
    selection   → NAME ("(" argument* ")")? field_set?
    argument    → NAME ":" value ","?
    value       → STRING | INT | FLOAT | "true" | "false" | "null" | NAME | object
    object      → "{" (NAME ":" scalar ","?)* "}"
    field_set   → "{" (NAME field_set? ","?)* "}"

Object literals are one level deep (used for ``input:`` payloads); nested
objects, lists, variables, fragments and directives are not supported.

``parse_graphql`` never raises: anything outside the grammar yields an
operation with no selections.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import StrEnum, auto
from typing import Any, Literal

logger = logging.getLogger(__name__)

OperationType = Literal["query", "mutation", "subscription"]

_OPERATION_KEYWORDS: frozenset[str] = frozenset({"query", "mutation", "subscription"})


# =============================================================================
# Parsed structure
# =============================================================================


@dataclass
class Selection:
    """A top-level field selection, e.g. ``todo(id: "1") { id title }``."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    fields: list[str] | None = None


@dataclass
class ParsedOperation:
    operation_type: OperationType = "query"
    selections: list[Selection] = field(default_factory=list)
    name: str | None = None


class GraphQLParseError(Exception):
    """Raised by the strict parser when a query falls outside the grammar."""

    def __init__(self, message: str, pos: int = 0) -> None:
        super().__init__(message)
        self.pos = pos


# =============================================================================
# Tokenizer
# =============================================================================


class TokenKind(StrEnum):
    NAME = auto()
    STRING = auto()
    INT = auto()
    FLOAT = auto()
    LBRACE = auto()
    RBRACE = auto()
    LPAREN = auto()
    RPAREN = auto()
    COLON = auto()
    COMMA = auto()
    EOF = auto()


class Token:
    __slots__ = ("kind", "value", "pos")

    def __init__(self, kind: TokenKind, value: str, pos: int) -> None:
        self.kind = kind
        self.value = value
        self.pos = pos

    def __repr__(self) -> str:
        return f"Token({self.kind}, {self.value!r}, pos={self.pos})"


_NUMBER_RE = re.compile(r"-?\d+(\.\d+)?")
_NAME_RE = re.compile(r"[_A-Za-z][_0-9A-Za-z]*")

_PUNCTUATION: dict[str, TokenKind] = {
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    ":": TokenKind.COLON,
    ",": TokenKind.COMMA,
}


def tokenize(source: str) -> list[Token]:
    """Tokenize a query string."""
    tokens: list[Token] = []
    i = 0
    n = len(source)

    while i < n:
        c = source[i]

        if c in " \t\n\r":
            i += 1
            continue

        # Comments run to end of line
        if c == "#":
            while i < n and source[i] != "\n":
                i += 1
            continue

        if c == '"':
            i, tok = _read_string(source, i)
            tokens.append(tok)
            continue

        if c.isdigit() or (c == "-" and i + 1 < n and source[i + 1].isdigit()):
            m = _NUMBER_RE.match(source, i)
            assert m is not None
            kind = TokenKind.FLOAT if m.group(1) else TokenKind.INT
            tokens.append(Token(kind, m.group(0), i))
            i = m.end()
            continue

        if c.isalpha() or c == "_":
            m = _NAME_RE.match(source, i)
            assert m is not None
            tokens.append(Token(TokenKind.NAME, m.group(0), i))
            i = m.end()
            continue

        if c in _PUNCTUATION:
            tokens.append(Token(_PUNCTUATION[c], c, i))
            i += 1
            continue

        raise GraphQLParseError(f"Unexpected character: {c!r}", i)

    tokens.append(Token(TokenKind.EOF, "", n))
    return tokens


def _read_string(source: str, start: int) -> tuple[int, Token]:
    i = start + 1
    n = len(source)
    chars: list[str] = []

    while i < n:
        c = source[i]
        if c == "\\":
            if i + 1 < n:
                chars.append(source[i + 1])
                i += 2
                continue
            raise GraphQLParseError("Unterminated escape sequence", i)
        if c == '"':
            return i + 1, Token(TokenKind.STRING, "".join(chars), start)
        chars.append(c)
        i += 1

    raise GraphQLParseError("Unterminated string literal", start)


# =============================================================================
# Parser
# =============================================================================


class _Parser:
    """Recursive descent parser over the token list."""

    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return tok

    def expect(self, kind: TokenKind) -> Token:
        tok = self.current
        if tok.kind != kind:
            raise GraphQLParseError(f"Expected {kind}, got {tok.kind} ({tok.value!r})", tok.pos)
        return self.advance()

    def match(self, kind: TokenKind) -> Token | None:
        if self.current.kind == kind:
            return self.advance()
        return None

    def parse_document(self) -> ParsedOperation:
        operation = ParsedOperation()

        if self.current.kind == TokenKind.NAME and self.current.value in _OPERATION_KEYWORDS:
            operation.operation_type = self.advance().value  # type: ignore[assignment]
            name = self.match(TokenKind.NAME)
            if name is not None:
                operation.name = name.value

        self.expect(TokenKind.LBRACE)
        while self.current.kind != TokenKind.RBRACE:
            operation.selections.append(self.parse_selection())
            self.match(TokenKind.COMMA)
        self.expect(TokenKind.RBRACE)
        self.expect(TokenKind.EOF)

        if not operation.selections:
            raise GraphQLParseError("Empty selection set", self.current.pos)
        return operation

    def parse_selection(self) -> Selection:
        name = self.expect(TokenKind.NAME).value
        args: dict[str, Any] = {}

        if self.match(TokenKind.LPAREN):
            while self.current.kind != TokenKind.RPAREN:
                arg_name = self.expect(TokenKind.NAME).value
                self.expect(TokenKind.COLON)
                args[arg_name] = self.parse_value(allow_object=True)
                self.match(TokenKind.COMMA)
            self.expect(TokenKind.RPAREN)

        fields: list[str] | None = None
        if self.current.kind == TokenKind.LBRACE:
            fields = self.parse_field_set()

        return Selection(name=name, args=args, fields=fields)

    def parse_field_set(self) -> list[str]:
        """Collect field names; nested sub-selections are skipped over."""
        self.expect(TokenKind.LBRACE)
        fields: list[str] = []
        while self.current.kind != TokenKind.RBRACE:
            fields.append(self.expect(TokenKind.NAME).value)
            if self.current.kind == TokenKind.LBRACE:
                self.parse_field_set()
            self.match(TokenKind.COMMA)
        self.expect(TokenKind.RBRACE)
        return fields

    def parse_value(self, allow_object: bool) -> Any:
        tok = self.current

        if tok.kind == TokenKind.STRING:
            return self.advance().value
        if tok.kind == TokenKind.INT:
            return int(self.advance().value)
        if tok.kind == TokenKind.FLOAT:
            return float(self.advance().value)
        if tok.kind == TokenKind.NAME:
            word = self.advance().value
            if word == "true":
                return True
            if word == "false":
                return False
            if word == "null":
                return None
            # Bare names (enum values) are passed through as strings
            return word
        if tok.kind == TokenKind.LBRACE and allow_object:
            return self.parse_object()

        raise GraphQLParseError(f"Unsupported value {tok.value!r}", tok.pos)

    def parse_object(self) -> dict[str, Any]:
        self.expect(TokenKind.LBRACE)
        obj: dict[str, Any] = {}
        while self.current.kind != TokenKind.RBRACE:
            key = self.expect(TokenKind.NAME).value
            self.expect(TokenKind.COLON)
            obj[key] = self.parse_value(allow_object=False)
            self.match(TokenKind.COMMA)
        self.expect(TokenKind.RBRACE)
        return obj


def parse_graphql_strict(query: str) -> ParsedOperation:
    """
    Parse a query, raising on anything outside the supported grammar.

    Raises:
        GraphQLParseError: On malformed input
    """
    return _Parser(tokenize(query)).parse_document()


def parse_graphql(query: str) -> ParsedOperation:
    """
    Parse a query into its operation type and top-level selections.

    Malformed input produces an operation with no selections, so it
    executes to an empty ``data`` object.

    >>> op = parse_graphql('mutation { createTodo(input: {title: "x"}) { id } }')
    >>> op.operation_type, op.selections[0].name, op.selections[0].args
    ('mutation', 'createTodo', {'input': {'title': 'x'}})
    """
    if not isinstance(query, str):
        return ParsedOperation()
    try:
        return parse_graphql_strict(query)
    except GraphQLParseError as e:
        logger.debug("Ignoring unparseable GraphQL query at %d: %s", e.pos, e)
        return ParsedOperation(operation_type=_leading_operation_type(query))


def _leading_operation_type(query: str) -> OperationType:
    stripped = query.strip()
    for keyword in ("mutation", "subscription"):
        if stripped.startswith(keyword):
            return keyword  # type: ignore[return-value]
    return "query"
