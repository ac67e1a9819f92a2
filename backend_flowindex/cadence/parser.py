"""
Cadence declaration parser: source bytes to a declaration-level Program.

Understands only what the listener needs: import declarations, top-level
function signatures (the `main` entry point of a script) and transaction
declarations with their parameter and `prepare` lists. Bodies are skipped
by bracket matching, so statements inside them are never interpreted.
Purely structural; no type checking.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass
from typing import NamedTuple

from backend_flowindex.core.exceptions import ParseError
from backend_flowindex.utils.address_utils import canonical_address

ENTRY_POINT_NAME = "main"

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>[ \t\r\n\f]+)
  | (?P<line_comment>//[^\n]*)
  | (?P<string>"(?:[^"\\\n]|\\.)*")
  | (?P<hex>0x[0-9A-Fa-f_]*)
  | (?P<number>\d[\d_]*(?:\.\d[\d_]*)?)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<punct>[{}()\[\]<>:,.;?!&@=+\-*/%|^~#$])
    """,
    re.VERBOSE,
)

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")", "]", "}"}


class Token(NamedTuple):
    kind: str
    text: str
    start: int
    end: int


@dataclass(frozen=True)
class Parameter:
    """One declared parameter: optional argument label, name and type annotation."""

    name: str
    type: str
    label: str | None = None


@dataclass(frozen=True)
class ImportDeclaration:
    """
    An import statement.

    location_kind is "address", "string" or "identifier"; address is the
    canonical 0x-prefixed address for address locations, None otherwise.
    """

    identifiers: tuple[str, ...]
    location: str
    location_kind: str
    address: str | None = None

    @property
    def is_address_import(self) -> bool:
        return self.location_kind == "address"


@dataclass(frozen=True)
class FunctionDeclaration:
    name: str
    parameters: tuple[Parameter, ...]


@dataclass(frozen=True)
class TransactionDeclaration:
    parameters: tuple[Parameter, ...]
    prepare_parameters: tuple[Parameter, ...] = ()


@dataclass(frozen=True)
class Program:
    imports: tuple[ImportDeclaration, ...]
    functions: tuple[FunctionDeclaration, ...]
    transactions: tuple[TransactionDeclaration, ...]

    def entry_point(self) -> FunctionDeclaration | None:
        """Return the top-level `main` function of a script, if declared."""
        for fn in self.functions:
            if fn.name == ENTRY_POINT_NAME:
                return fn
        return None


class _Parser:
    def __init__(self, source: str) -> None:
        self._source = source
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", source)]
        self._tokens = self._tokenize()
        self._match = self._match_brackets()

    def _position(self, offset: int) -> tuple[int, int]:
        line = bisect.bisect_right(self._line_starts, offset)
        return line, offset - self._line_starts[line - 1] + 1

    def _error(self, message: str, offset: int) -> ParseError:
        line, column = self._position(offset)
        return ParseError(message, line, column)

    def _tokenize(self) -> list[Token]:
        src = self._source
        tokens: list[Token] = []
        pos = 0
        while pos < len(src):
            if src.startswith("/*", pos):
                pos = self._skip_block_comment(pos)
                continue
            m = _TOKEN_RE.match(src, pos)
            if m is None:
                if src[pos] == '"':
                    raise self._error("unterminated string literal", pos)
                raise self._error(f"unexpected character {src[pos]!r}", pos)
            kind = m.lastgroup or ""
            if kind not in ("ws", "line_comment"):
                tokens.append(Token(kind, m.group(), m.start(), m.end()))
            pos = m.end()
        return tokens

    def _skip_block_comment(self, start: int) -> int:
        # Cadence block comments nest
        src = self._source
        depth = 0
        pos = start
        while pos < len(src):
            if src.startswith("/*", pos):
                depth += 1
                pos += 2
            elif src.startswith("*/", pos):
                depth -= 1
                pos += 2
                if depth == 0:
                    return pos
            else:
                pos += 1
        raise self._error("unterminated block comment", start)

    def _match_brackets(self) -> dict[int, int]:
        match: dict[int, int] = {}
        stack: list[int] = []
        for i, tok in enumerate(self._tokens):
            if tok.kind != "punct":
                continue
            if tok.text in _OPENERS:
                stack.append(i)
            elif tok.text in _CLOSERS:
                if not stack:
                    raise self._error(f"unexpected {tok.text!r}", tok.start)
                opener = stack.pop()
                expected = _OPENERS[self._tokens[opener].text]
                if tok.text != expected:
                    raise self._error(f"expected {expected!r}, found {tok.text!r}", tok.start)
                match[opener] = i
        if stack:
            tok = self._tokens[stack[-1]]
            raise self._error(f"unclosed {tok.text!r}", tok.start)
        return match

    def _tok(self, i: int) -> Token:
        if i >= len(self._tokens):
            raise self._error("unexpected end of input", len(self._source))
        return self._tokens[i]

    def _is(self, i: int, text: str) -> bool:
        return i < len(self._tokens) and self._tokens[i].text == text

    def parse(self) -> Program:
        imports: list[ImportDeclaration] = []
        functions: list[FunctionDeclaration] = []
        transactions: list[TransactionDeclaration] = []
        i = 0
        while i < len(self._tokens):
            tok = self._tokens[i]
            if tok.kind == "ident" and tok.text == "import":
                decl, i = self._parse_import(i + 1)
                imports.append(decl)
            elif tok.kind == "ident" and tok.text == "fun":
                decl_fn, i = self._parse_function(i + 1)
                functions.append(decl_fn)
            elif tok.kind == "ident" and tok.text == "transaction":
                decl_tx, i = self._parse_transaction(i + 1)
                transactions.append(decl_tx)
            elif i in self._match:
                i = self._match[i] + 1
            else:
                i += 1
        return Program(tuple(imports), tuple(functions), tuple(transactions))

    def _parse_location(self, i: int) -> tuple[str, str, str | None]:
        tok = self._tok(i)
        if tok.kind == "hex":
            try:
                address = canonical_address(tok.text)
            except ValueError as e:
                raise self._error(f"invalid address location {tok.text!r}", tok.start) from e
            return tok.text, "address", address
        if tok.kind == "string":
            return tok.text[1:-1], "string", None
        if tok.kind == "ident":
            return tok.text, "identifier", None
        raise self._error(f"expected import location, found {tok.text!r}", tok.start)

    def _parse_import(self, i: int) -> tuple[ImportDeclaration, int]:
        tok = self._tok(i)
        if tok.kind in ("hex", "string"):
            location, kind, address = self._parse_location(i)
            return ImportDeclaration((), location, kind, address), i + 1
        if tok.kind != "ident":
            raise self._error(f"expected identifier after import, found {tok.text!r}", tok.start)

        identifiers: list[str] = []
        aliased = False
        while True:
            name = self._tok(i)
            if name.kind != "ident":
                raise self._error(f"expected identifier, found {name.text!r}", name.start)
            identifiers.append(name.text)
            i += 1
            if self._is(i, "as"):
                alias = self._tok(i + 1)
                if alias.kind != "ident":
                    raise self._error(f"expected alias, found {alias.text!r}", alias.start)
                aliased = True
                i += 2
            if self._is(i, ","):
                i += 1
                continue
            break

        if self._is(i, "from"):
            location, kind, address = self._parse_location(i + 1)
            return ImportDeclaration(tuple(identifiers), location, kind, address), i + 2
        if len(identifiers) > 1 or aliased:
            raise self._error("expected 'from' in import declaration", self._tok(i - 1).end)
        return ImportDeclaration((), identifiers[0], "identifier", None), i

    def _parse_function(self, i: int) -> tuple[FunctionDeclaration, int]:
        name = self._tok(i)
        if name.kind != "ident":
            raise self._error(f"expected function name, found {name.text!r}", name.start)
        if not self._is(i + 1, "("):
            raise self._error("expected '(' after function name", name.end)
        params, i = self._parse_parameters(i + 1)
        return FunctionDeclaration(name.text, params), i

    def _parse_transaction(self, i: int) -> tuple[TransactionDeclaration, int]:
        params: tuple[Parameter, ...] = ()
        if self._is(i, "("):
            params, i = self._parse_parameters(i)
        body = self._tok(i)
        if body.text != "{":
            raise self._error(f"expected transaction body, found {body.text!r}", body.start)
        close = self._match[i]
        prepare: tuple[Parameter, ...] = ()
        j = i + 1
        while j < close:
            tok = self._tokens[j]
            if tok.kind == "ident" and tok.text == "prepare" and self._is(j + 1, "("):
                prepare, j = self._parse_parameters(j + 1)
            elif j in self._match:
                j = self._match[j] + 1
            else:
                j += 1
        return TransactionDeclaration(params, prepare), close + 1

    def _parse_parameters(self, open_idx: int) -> tuple[tuple[Parameter, ...], int]:
        close = self._match[open_idx]
        segments: list[tuple[int, int]] = []
        seg_start = open_idx + 1
        angle = 0
        j = open_idx + 1
        while j < close:
            text = self._tokens[j].text
            if j in self._match:
                j = self._match[j] + 1
                continue
            if text == "<":
                angle += 1
            elif text == ">":
                angle -= 1
            elif text == "," and angle == 0:
                segments.append((seg_start, j))
                seg_start = j + 1
            j += 1
        if seg_start < close or segments:
            segments.append((seg_start, close))
        params = tuple(self._parse_parameter(a, b) for a, b in segments)
        return params, close + 1

    def _parse_parameter(self, start: int, end: int) -> Parameter:
        if start >= end:
            raise self._error("empty parameter", self._tok(start).start)
        colon = None
        j = start
        while j < end:
            if self._tokens[j].text == ":":
                colon = j
                break
            j = self._match[j] + 1 if j in self._match else j + 1
        if colon is None:
            raise self._error("expected ':' in parameter", self._tokens[start].start)
        head = self._tokens[start:colon]
        if not 1 <= len(head) <= 2 or any(t.kind != "ident" for t in head):
            raise self._error("expected parameter name", self._tokens[start].start)
        if colon + 1 >= end:
            raise self._error("expected parameter type", self._tokens[colon].end)
        type_text = self._source[self._tokens[colon + 1].start:self._tokens[end - 1].end]
        return Parameter(
            name=head[-1].text,
            type=" ".join(type_text.split()),
            label=head[0].text if len(head) == 2 else None,
        )


def parse_program(code: bytes | str) -> Program:
    """
    Parse Cadence source into a Program.

    Raises ParseError on undecodable bytes, unbalanced brackets, unterminated
    strings/comments or malformed import, function and transaction headers.
    """
    if isinstance(code, bytes):
        try:
            code = code.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"source is not valid UTF-8: {e}") from e
    return _Parser(code).parse()
