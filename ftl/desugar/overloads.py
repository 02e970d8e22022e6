"""
The overload table: operator convention names and associated functions
mapped to the functions that implement them.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ftl.ast.nodes import Expression, FloatLiteral, IntLiteral, NilLiteral, UnaryExpr
from ftl.resolver.symbols import OverloadSet, Scope, Symbol
from ftl.typechecker.ftl_types import (
    FloatType,
    IntType,
    PointerType,
    Type,
    is_assignable,
)

logger = logging.getLogger(__name__)

BINARY_CONVENTIONS: Dict[str, str] = {
    "+": "__plus",
    "-": "__minus",
    "*": "__times",
    "/": "__divide",
    "mod": "__mod",
    "==": "__equals",
    "=/=": "__not_equals",
    "<": "__less",
    "<=": "__less_equal",
    ">": "__greater",
    ">=": "__greater_equal",
    "shl": "__shl",
    "shr": "__shr",
    "bitand": "__bitand",
    "bitor": "__bitor",
    "bitxor": "__bitxor",
    "and": "__and",
    "or": "__or",
    "xor": "__xor",
}

UNARY_CONVENTIONS: Dict[str, str] = {
    "-": "__neg",
    "not": "__not",
}

CONVENTION_NAMES = frozenset(BINARY_CONVENTIONS.values()) | frozenset(
    UNARY_CONVENTIONS.values(),
)

OperatorKey = Tuple[str, Tuple[Type, ...]]


def _literal(expr: Expression) -> Optional[Expression]:
    """The literal behind `expr`, looking through a unary minus."""
    match expr:
        case IntLiteral() | FloatLiteral() | NilLiteral():
            return expr
        case UnaryExpr(operator="-", operand=IntLiteral() | FloatLiteral() as inner):
            return inner
        case _:
            return None


def _literal_value(expr: Expression) -> Optional[float]:
    literal = _literal(expr)
    if not isinstance(literal, (IntLiteral, FloatLiteral)):
        return None
    return -literal.value if literal is not expr else literal.value


def literal_adapts(expr: Expression, target: Type) -> bool:
    """Whether a literal expression may take `target` as its type."""
    literal = _literal(expr)
    match (literal, target):
        case (IntLiteral(), IntType()):
            value = _literal_value(expr)
            return target.min_value <= value <= target.max_value
        case (IntLiteral() | FloatLiteral(), FloatType()):
            return True
        case (NilLiteral(), PointerType()):
            return True
        case _:
            return False


def adapt_literal(expr: Expression, target: Type) -> None:
    """Retype a literal (and a unary minus around it) to `target`."""
    literal = _literal(expr)
    if literal is None:
        return
    literal.ty = target
    expr.ty = target


def accepts(param: Type, arg: Expression) -> bool:
    """Whether an already typed argument can be passed for `param`."""
    if arg.ty is not None and is_assignable(param, arg.ty):
        return True
    return literal_adapts(arg, param)


def select_overload(candidates: List[Symbol], args: List[Expression]) -> List[Symbol]:
    """Candidates matching `args`: exact matches win over literal adaptation."""
    arity = [c for c in candidates if len(c.param_types) == len(args)]
    arg_types = tuple(arg.ty for arg in args)
    exact = [c for c in arity if c.param_types == arg_types]
    if exact:
        return exact
    return [
        c
        for c in arity
        if all(accepts(param, arg) for param, arg in zip(c.param_types, args))
    ]


class OverloadTable:
    """Compile-time dispatch table, private to one compilation."""

    def __init__(self) -> None:
        self.operators: Dict[OperatorKey, Symbol] = {}
        self.functions: Dict[str, List[Symbol]] = {}

    @classmethod
    def from_scope(cls, scope: Scope) -> "OverloadTable":
        table = cls()
        for entry in scope.values.values():
            if isinstance(entry, OverloadSet):
                for symbol in entry:
                    table.register(symbol)
        logger.debug(
            "overload table: %d operator overloads, %d function names",
            len(table.operators),
            len(table.functions),
        )
        return table

    def register(self, symbol: Symbol) -> None:
        self.functions.setdefault(symbol.name, []).append(symbol)
        if symbol.name in CONVENTION_NAMES and not symbol.is_generic:
            self.operators[(symbol.name, symbol.param_types)] = symbol

    def lookup(self, name: str, types: Tuple[Type, ...]) -> Optional[Symbol]:
        """The non-generic function `name` taking exactly `types`."""
        for symbol in self.functions.get(name, []):
            if not symbol.is_generic and symbol.param_types == types:
                return symbol
        return None

    def lookup_operator(self, name: str, types: Tuple[Type, ...]) -> Optional[Symbol]:
        return self.operators.get((name, types))

    def operator_candidates(self, name: str) -> List[Symbol]:
        return [s for (n, _), s in self.operators.items() if n == name]

    def associated(self, name: str, receiver: Type) -> List[Symbol]:
        """Non-generic functions `name` whose first parameter is exactly `receiver`."""
        return [
            symbol
            for symbol in self.functions.get(name, [])
            if not symbol.is_generic
            and symbol.param_types
            and symbol.param_types[0] == receiver
        ]

    def generic(self, name: str) -> List[Symbol]:
        return [s for s in self.functions.get(name, []) if s.is_generic]
