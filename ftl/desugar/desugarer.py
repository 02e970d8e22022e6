"""
Type-directed desugaring of operators and associated calls.

The type checker calls into the desugarer once the operand types of a node
are known. Each hook returns the node that replaces the original, or None
when the original keeps its built-in meaning.
"""

import logging
from typing import List, Optional

from ftl.ast.nodes import BinaryExpr, Call, Expression, MethodCall, UnaryExpr
from ftl.desugar.overloads import (
    BINARY_CONVENTIONS,
    UNARY_CONVENTIONS,
    OverloadTable,
    adapt_literal,
    select_overload,
)
from ftl.resolver.symbols import OverloadSet, Symbol
from ftl.shared.diagnostics import FTLError, Stage
from ftl.shared.position import SourcePosition
from ftl.typechecker.ftl_types import (
    BOOL_TYPE,
    NOTHING_TYPE,
    STR_TYPE,
    Type,
    is_pointer,
    is_primitive,
)
from ftl.typechecker.unify import UnificationError, bind_type_params

logger = logging.getLogger(__name__)


class DesugarError(FTLError):
    stage = Stage.DESUGAR


def _call(symbol: Symbol, args: List[Expression], position: SourcePosition) -> Call:
    """A call bound to `symbol`, typed by its result."""
    for param, arg in zip(symbol.param_types, args):
        adapt_literal(arg, param)
    signature = symbol.signature
    result = signature.result if signature is not None else NOTHING_TYPE
    return Call(symbol.name, args, symbol=symbol, ty=result, position=position)


class Desugarer:
    def __init__(self, table: OverloadTable) -> None:
        self.table = table

    def _operator_symbol(self, name: str, args: List[Expression]) -> Optional[Symbol]:
        types = tuple(arg.ty for arg in args)
        symbol = self.table.lookup_operator(name, types)
        if symbol is not None:
            return symbol
        matches = select_overload(self.table.operator_candidates(name), args)
        return matches[0] if len(matches) == 1 else None

    def desugar_binary(self, expr: BinaryExpr) -> Optional[Expression]:
        left, right = expr.left, expr.right
        if is_primitive(left.ty) and is_primitive(right.ty):
            return None
        if expr.operator == "+" and STR_TYPE in (left.ty, right.ty):
            return self._concatenate(expr)

        symbol = self._operator_symbol(BINARY_CONVENTIONS[expr.operator], [left, right])
        if symbol is not None:
            logger.debug("desugared %s %s %s to %s", left.ty, expr.operator, right.ty, symbol.name)
            return _call(symbol, [left, right], expr.position)

        if expr.operator in ("==", "=/=") and is_pointer(left.ty) and is_pointer(right.ty):
            # pointer identity without a user-defined overload
            return None

        if expr.operator == "=/=":
            equals = self._operator_symbol("__equals", [left, right])
            if equals is not None:
                call = _call(equals, [left, right], expr.position)
                if call.ty != BOOL_TYPE:
                    raise DesugarError(
                        f"'__equals' for {left.ty} and {right.ty} must return bool",
                        expr.position,
                    )
                return UnaryExpr("not", call, ty=BOOL_TYPE, position=expr.position)

        raise DesugarError(
            f"No applicable operator '{expr.operator}' for {left.ty} and {right.ty}",
            expr.position,
        )

    def desugar_unary(self, expr: UnaryExpr) -> Optional[Expression]:
        operand = expr.operand
        if is_primitive(operand.ty):
            return None
        symbol = self._operator_symbol(UNARY_CONVENTIONS[expr.operator], [operand])
        if symbol is None:
            raise DesugarError(
                f"No applicable operator '{expr.operator}' for {operand.ty}",
                expr.position,
            )
        return _call(symbol, [operand], expr.position)

    def _to_str(self, expr: Expression) -> Expression:
        if expr.ty == STR_TYPE:
            return expr
        assert expr.ty is not None
        conversion = self.table.lookup("str", (expr.ty,))
        if conversion is None:
            raise DesugarError(
                f"No conversion 'str({expr.ty})' for string concatenation",
                expr.position,
            )
        return _call(conversion, [expr], expr.position)

    def _concatenate(self, expr: BinaryExpr) -> Expression:
        left = self._to_str(expr.left)
        right = self._to_str(expr.right)
        concat = self.table.lookup_operator("__plus", (STR_TYPE, STR_TYPE))
        if concat is None:
            raise DesugarError(
                "No applicable operator '+' for str and str",
                expr.position,
            )
        return _call(concat, [left, right], expr.position)

    def desugar_method_call(self, expr: MethodCall, receiver_type: Type) -> Call:
        """Rewrite `receiver.f(args)` into `f(receiver, args)`.

        The returned call still needs its arguments checked; its overload set
        is narrowed to the functions that take the receiver type first.
        """
        candidates = self.table.associated(expr.method, receiver_type)
        if len(candidates) > 1:
            raise DesugarError(
                f"Ambiguous associated call '{expr.method}' on {receiver_type}",
                expr.position,
            )
        if not candidates:
            candidates = [
                symbol
                for symbol in self.table.generic(expr.method)
                if self._binds_receiver(symbol, receiver_type)
            ]
        if not candidates:
            raise DesugarError(
                f"No function '{expr.method}' takes {receiver_type} as its first parameter",
                expr.position,
            )
        overloads = OverloadSet(expr.method)
        for symbol in candidates:
            overloads.add(symbol)
        logger.debug("associated call %s on %s", expr.method, receiver_type)
        return Call(
            expr.method,
            [expr.receiver, *expr.args],
            overloads=overloads,
            position=expr.position,
        )

    @staticmethod
    def _binds_receiver(symbol: Symbol, receiver_type: Type) -> bool:
        if not symbol.param_types:
            return False
        try:
            bind_type_params(symbol.param_types[0], receiver_type, {})
        except UnificationError:
            return False
        return True
