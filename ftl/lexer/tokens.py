"""Token definitions for FTL."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Tuple

from ftl.shared.position import SourcePosition


class TokenKind(Enum):
    # Keywords: memory
    REF = auto()
    DEREF = auto()
    ALLOC = auto()
    DEL = auto()
    NEW = auto()
    DEFAULT = auto()
    NIL = auto()
    PTR = auto()

    # Keywords: math and logic
    SHL = auto()
    SHR = auto()
    BITXOR = auto()
    BITOR = auto()
    BITAND = auto()
    AND = auto()
    OR = auto()
    XOR = auto()
    NOT = auto()
    MOD = auto()
    AS = auto()
    TRUE = auto()
    FALSE = auto()

    # Keywords: structural
    STRUCT = auto()
    ARR = auto()
    CONST = auto()
    ENUM = auto()

    # Keywords: control flow
    FOR = auto()
    IN = auto()
    OF = auto()
    WHILE = auto()
    IF = auto()
    ELSE = auto()
    RETURN = auto()

    # Keywords: declarations
    DEF = auto()
    EXTERN = auto()
    VAR = auto()

    # Keywords: builtin statements
    ERROR = auto()
    PRINT = auto()
    DEBUG = auto()

    # Identifiers and literals
    IDENT = auto()
    INT = auto()
    FLOAT = auto()
    STRING = auto()

    # Punctuation
    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    COMMA = auto()
    SEMICOLON = auto()
    COLON = auto()
    DOT = auto()
    AT = auto()

    # Operators
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    ASSIGN = auto()
    EQ = auto()
    NE = auto()
    LT = auto()
    LE = auto()
    GT = auto()
    GE = auto()

    # Placeholder for input the lexer could not classify
    INVALID = auto()

    EOF = auto()


KEYWORDS: Dict[str, TokenKind] = {
    "ref": TokenKind.REF,
    "deref": TokenKind.DEREF,
    "alloc": TokenKind.ALLOC,
    "del": TokenKind.DEL,
    "new": TokenKind.NEW,
    "default": TokenKind.DEFAULT,
    "nil": TokenKind.NIL,
    "ptr": TokenKind.PTR,
    "shl": TokenKind.SHL,
    "shr": TokenKind.SHR,
    "bitxor": TokenKind.BITXOR,
    "bitor": TokenKind.BITOR,
    "bitand": TokenKind.BITAND,
    "and": TokenKind.AND,
    "or": TokenKind.OR,
    "xor": TokenKind.XOR,
    "not": TokenKind.NOT,
    "mod": TokenKind.MOD,
    "as": TokenKind.AS,
    "true": TokenKind.TRUE,
    "false": TokenKind.FALSE,
    "struct": TokenKind.STRUCT,
    "arr": TokenKind.ARR,
    "const": TokenKind.CONST,
    "enum": TokenKind.ENUM,
    "for": TokenKind.FOR,
    "in": TokenKind.IN,
    "of": TokenKind.OF,
    "while": TokenKind.WHILE,
    "if": TokenKind.IF,
    "else": TokenKind.ELSE,
    "return": TokenKind.RETURN,
    "def": TokenKind.DEF,
    "extern": TokenKind.EXTERN,
    "var": TokenKind.VAR,
    "error": TokenKind.ERROR,
    "print": TokenKind.PRINT,
    "debug": TokenKind.DEBUG,
}


@dataclass(frozen=True)
class StringSegment:
    """A piece of a string literal; interpolation segments hold an identifier name."""

    text: str
    is_interpolation: bool = False


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    position: SourcePosition
    segments: Tuple[StringSegment, ...] = ()

    @property
    def is_interpolated(self) -> bool:
        return any(segment.is_interpolation for segment in self.segments)

    def __repr__(self) -> str:
        return f"Token({self.kind.name}, {self.value!r}, {self.position})"
