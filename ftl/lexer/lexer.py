"""
Lexer for FTL: turns source text into a lazy stream of tokens.

Lexical errors never abort scanning; they are recorded as diagnostics and
an INVALID token takes the place of the offending input.
"""

import logging
from collections import deque
from typing import Callable, Deque, Iterable, Iterator, List, Optional

from ftl.lexer.tokens import KEYWORDS, StringSegment, Token, TokenKind
from ftl.shared.diagnostics import DiagnosticBag, Stage
from ftl.shared.position import SourcePosition

logger = logging.getLogger(__name__)

SIMPLE_TOKENS = {
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    "[": TokenKind.LBRACKET,
    "]": TokenKind.RBRACKET,
    ",": TokenKind.COMMA,
    ";": TokenKind.SEMICOLON,
    ":": TokenKind.COLON,
    ".": TokenKind.DOT,
    "@": TokenKind.AT,
    "+": TokenKind.PLUS,
    "-": TokenKind.MINUS,
    "*": TokenKind.STAR,
    "/": TokenKind.SLASH,
}

ESCAPES = {
    "n": "\n",
    "t": "\t",
    "\\": "\\",
    '"': '"',
    "{": "{",
    "}": "}",
}


def _is_identifier_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def _is_identifier_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


class Lexer:
    """Scans FTL source code character by character."""

    def __init__(self, source: str, diagnostics: Optional[DiagnosticBag] = None) -> None:
        self.source = source
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticBag()
        self.pos = 0
        self.line = 1
        self.column = 1
        self.offset = 0

    def _current(self) -> str:
        return self.source[self.pos] if self.pos < len(self.source) else ""

    def _lookahead(self, distance: int = 1) -> str:
        index = self.pos + distance
        return self.source[index] if index < len(self.source) else ""

    def _advance(self) -> str:
        ch = self._current()
        self.pos += 1
        self.offset += len(ch.encode("utf-8"))
        if ch == "\n":
            self.line, self.column = self.line + 1, 1
        else:
            self.column += 1
        return ch

    def _position(self) -> SourcePosition:
        return SourcePosition(self.line, self.column, self.offset)

    def _read_while(self, predicate: Callable[[str], bool]) -> str:
        start = self.pos
        while self._current() and predicate(self._current()):
            self._advance()
        return self.source[start : self.pos]

    def _invalid(self, message: str, text: str, position: SourcePosition) -> Token:
        self.diagnostics.report_error(message, position, Stage.LEXER)
        return Token(TokenKind.INVALID, text, position)

    def _skip_trivia(self) -> None:
        """Skip whitespace and `#` comments."""
        while True:
            ch = self._current()
            if ch and ch.isspace():
                self._advance()
            elif ch == "#":
                self._read_while(lambda c: c != "\n")
            else:
                return

    def __iter__(self) -> Iterator[Token]:
        return self.tokens()

    def tokens(self) -> Iterator[Token]:
        """Yield tokens lazily, ending with exactly one EOF token."""
        while True:
            self._skip_trivia()
            position = self._position()
            ch = self._current()
            if not ch:
                yield Token(TokenKind.EOF, "", position)
                return
            yield self._next_token(ch, position)

    def _next_token(self, ch: str, position: SourcePosition) -> Token:
        match ch:
            case c if c.isdigit():
                return self._read_number(position)
            case '"':
                return self._read_string(position)
            case c if _is_identifier_start(c):
                word = self._read_while(_is_identifier_char)
                return Token(KEYWORDS.get(word, TokenKind.IDENT), word, position)
            case "=":
                return self._read_equals(position)
            case "<":
                return self._one_or_two(TokenKind.LT, TokenKind.LE, position)
            case ">":
                return self._one_or_two(TokenKind.GT, TokenKind.GE, position)
            case c if c in SIMPLE_TOKENS:
                self._advance()
                return Token(SIMPLE_TOKENS[c], c, position)
            case _:
                self._advance()
                return self._invalid(f"Unexpected character '{ch}'", ch, position)

    def _one_or_two(
        self,
        single: TokenKind,
        with_equal: TokenKind,
        position: SourcePosition,
    ) -> Token:
        first = self._advance()
        if self._current() == "=":
            self._advance()
            return Token(with_equal, first + "=", position)
        return Token(single, first, position)

    def _read_equals(self, position: SourcePosition) -> Token:
        """Handle `=`, `==` and `=/=`."""
        self._advance()
        if self._current() == "=":
            self._advance()
            return Token(TokenKind.EQ, "==", position)
        if self._current() == "/":
            self._advance()
            if self._current() == "=":
                self._advance()
                return Token(TokenKind.NE, "=/=", position)
            return self._invalid("Expected '=/=' but found '=/'", "=/", position)
        return Token(TokenKind.ASSIGN, "=", position)

    def _read_number(self, position: SourcePosition) -> Token:
        digits = self._read_while(str.isdigit)
        # a dot only belongs to the number when a digit follows it
        if self._current() == "." and self._lookahead().isdigit():
            self._advance()
            fraction = self._read_while(str.isdigit)
            return Token(TokenKind.FLOAT, f"{digits}.{fraction}", position)
        return Token(TokenKind.INT, digits, position)

    def _read_string(self, position: SourcePosition) -> Token:
        """Read a string literal, recording `{identifier}` interpolation spans."""
        self._advance()  # opening quote
        segments: List[StringSegment] = []
        chars: List[str] = []
        raw: List[str] = []

        def flush() -> None:
            if chars:
                segments.append(StringSegment("".join(chars)))
                chars.clear()

        while True:
            ch = self._current()
            if not ch or ch == "\n":
                flush()
                text = "".join(raw)
                return self._invalid("Unterminated string literal", text, position)
            if ch == '"':
                self._advance()
                break
            if ch == "\\":
                escape_position = self._position()
                self._advance()
                escaped = self._current()
                if escaped in ESCAPES:
                    self._advance()
                    chars.append(ESCAPES[escaped])
                    raw.append(ESCAPES[escaped])
                else:
                    self.diagnostics.report_error(
                        f"Invalid escape sequence '\\{escaped}'",
                        escape_position,
                        Stage.LEXER,
                    )
                continue
            if ch == "{":
                name = self._read_interpolation()
                if name is not None:
                    flush()
                    segments.append(StringSegment(name, is_interpolation=True))
                    raw.append("{" + name + "}")
                continue
            chars.append(self._advance())
            raw.append(ch)

        flush()
        return Token(TokenKind.STRING, "".join(raw), position, tuple(segments))

    def _read_interpolation(self) -> Optional[str]:
        start = self._position()
        self._advance()  # `{`
        name = self._read_while(_is_identifier_char)
        if self._current() == "}" and name and _is_identifier_start(name[0]):
            self._advance()
            return name
        self.diagnostics.report_error(
            "Malformed string interpolation, expected '{identifier}'",
            start,
            Stage.LEXER,
        )
        return None


class TokenStream:
    """Peekable view over a token iterator. It never moves backwards."""

    def __init__(self, tokens: Iterable[Token]) -> None:
        self._tokens = iter(tokens)
        self._buffer: Deque[Token] = deque()
        self._last: Optional[Token] = None
        self.consumed = 0

    def _fill(self, count: int) -> None:
        while len(self._buffer) < count:
            try:
                self._buffer.append(next(self._tokens))
            except StopIteration:
                # keep handing out the final EOF token
                eof = self._buffer[-1] if self._buffer else self._last
                if eof is None or eof.kind != TokenKind.EOF:
                    raise
                self._buffer.append(eof)

    def peek(self, distance: int = 0) -> Token:
        self._fill(distance + 1)
        return self._buffer[distance]

    def next(self) -> Token:
        self._fill(1)
        token = self._buffer.popleft()
        self._last = token
        if token.kind != TokenKind.EOF:
            self.consumed += 1
        return token

    @property
    def previous(self) -> Optional[Token]:
        return self._last


def tokenize(source: str, diagnostics: Optional[DiagnosticBag] = None) -> List[Token]:
    """Convenience function to tokenize a whole source string."""
    tokens = list(Lexer(source, diagnostics))
    logger.debug("lexed %d tokens", len(tokens))
    return tokens
