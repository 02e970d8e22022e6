"""
Binding powers for the Pratt expression parser. Higher binds tighter.
"""

from typing import Dict

from ftl.lexer.tokens import TokenKind

BINARY_PRECEDENCE: Dict[TokenKind, int] = {
    TokenKind.OR: 1,
    TokenKind.XOR: 1,
    TokenKind.AND: 2,
    TokenKind.EQ: 3,
    TokenKind.NE: 3,
    TokenKind.LT: 4,
    TokenKind.LE: 4,
    TokenKind.GT: 4,
    TokenKind.GE: 4,
    TokenKind.BITAND: 5,
    TokenKind.BITXOR: 5,
    TokenKind.BITOR: 5,
    TokenKind.SHL: 6,
    TokenKind.SHR: 6,
    TokenKind.PLUS: 7,
    TokenKind.MINUS: 7,
    TokenKind.STAR: 8,
    TokenKind.SLASH: 8,
    TokenKind.MOD: 8,
}

CAST_PRECEDENCE = 9
UNARY_PRECEDENCE = 10
POSTFIX_PRECEDENCE = 11

# operator spelling as it appears in source and in the AST
OPERATOR_TEXT: Dict[TokenKind, str] = {
    TokenKind.OR: "or",
    TokenKind.XOR: "xor",
    TokenKind.AND: "and",
    TokenKind.EQ: "==",
    TokenKind.NE: "=/=",
    TokenKind.LT: "<",
    TokenKind.LE: "<=",
    TokenKind.GT: ">",
    TokenKind.GE: ">=",
    TokenKind.BITAND: "bitand",
    TokenKind.BITXOR: "bitxor",
    TokenKind.BITOR: "bitor",
    TokenKind.SHL: "shl",
    TokenKind.SHR: "shr",
    TokenKind.PLUS: "+",
    TokenKind.MINUS: "-",
    TokenKind.STAR: "*",
    TokenKind.SLASH: "/",
    TokenKind.MOD: "mod",
}

OPERATOR_PRECEDENCE: Dict[str, int] = {
    OPERATOR_TEXT[kind]: precedence for kind, precedence in BINARY_PRECEDENCE.items()
}
