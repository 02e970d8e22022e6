"""
Type checker for FTL.

Inference is local and never generalizes: a variable declared without a type
takes the type of its initializer, everything else is checked against the
declared types. The checker drives the desugarer (operators on non-primitive
operands, associated calls) and the monomorphizer (calls to generic
functions) as soon as the operand types of a node are known.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Set, Tuple

from ftl.ast.nodes import (
    LVALUE_NODES,
    ArrayIndex,
    ArrayLiteral,
    Assign,
    ASTNode,
    BinaryExpr,
    Block,
    BoolLiteral,
    Call,
    Cast,
    DeleteStmt,
    Deref,
    ErrorStmt,
    Expression,
    ExprStmt,
    FieldAccess,
    FloatLiteral,
    For,
    FunctionDef,
    Identifier,
    If,
    IntLiteral,
    MethodCall,
    New,
    NilLiteral,
    PrintStmt,
    Program,
    Ref,
    Return,
    Statement,
    StringLiteral,
    UnaryExpr,
    VarDecl,
    While,
)
from ftl.desugar.desugarer import Desugarer, DesugarError
from ftl.desugar.overloads import accepts, adapt_literal, literal_adapts, select_overload
from ftl.monomorphizer.monomorphizer import MonomorphizationError, Monomorphizer
from ftl.resolver.resolver import Resolver
from ftl.resolver.symbols import Symbol
from ftl.shared.diagnostics import DiagnosticBag, FTLError, Stage
from ftl.typechecker.ftl_types import (
    ANY_TYPE,
    BOOL_TYPE,
    FLOAT_TYPE,
    INT_TYPE,
    NIL_TYPE,
    NOTHING_TYPE,
    STR_TYPE,
    ArrayType,
    BoolType,
    FloatType,
    IntType,
    PointerType,
    StructType,
    Type,
    is_assignable,
    is_cast_allowed,
    is_integer,
    is_numeric,
    is_pointer,
)
from ftl.typechecker.unify import UnificationError, bind_type_params

logger = logging.getLogger(__name__)

ARITHMETIC_OPERATORS = {"+", "-", "*", "/"}
INTEGER_OPERATORS = {"mod", "shl", "shr", "bitand", "bitor", "bitxor"}
COMPARISON_OPERATORS = {"<", "<=", ">", ">="}
EQUALITY_OPERATORS = {"==", "=/="}
LOGICAL_OPERATORS = {"and", "or", "xor"}


class TypeCheckError(FTLError):
    stage = Stage.TYPECHECKER

    def __init__(self, message: str, node: Optional[ASTNode] = None) -> None:
        super().__init__(message, node.position if node is not None else None)
        self.node = node


class _InvalidSubtree(Exception):
    """A subexpression failed and was already reported."""


def _format_types(types: Tuple[Optional[Type], ...]) -> str:
    return "(" + ", ".join(str(t) for t in types) + ")"


def can_fall_through(statements: List[Statement]) -> bool:
    """Whether control may reach the end of a statement list."""
    for statement in statements:
        match statement:
            case Return() | ErrorStmt():
                return False
            case Block(statements=inner) if not can_fall_through(inner):
                return False
            case If() if not _if_falls_through(statement):
                return False
    return True


def _if_falls_through(statement: If) -> bool:
    match statement.else_branch:
        case None:
            return True
        case If() as nested:
            else_falls = _if_falls_through(nested)
        case Block(statements=inner):
            else_falls = can_fall_through(inner)
    return else_falls or can_fall_through(statement.then_block.statements)


class TypeChecker:
    def __init__(
        self,
        resolver: Resolver,
        desugarer: Desugarer,
        diagnostics: Optional[DiagnosticBag] = None,
    ) -> None:
        self.resolver = resolver
        self.desugarer = desugarer
        self.diagnostics = diagnostics if diagnostics is not None else resolver.diagnostics
        self.monomorphizer: Optional[Monomorphizer] = None
        self._return_types: List[Type] = []
        # symbols whose declaration failed; their uses are not reported again
        self._failed: Set[int] = set()

    @contextmanager
    def _recover(self) -> Iterator[None]:
        try:
            yield
        except (TypeCheckError, DesugarError) as error:
            self.diagnostics.report_exception(error)
        except _InvalidSubtree:
            pass
        except MonomorphizationError as error:
            # fatal for the whole instantiation chain, reported where it started
            if self.monomorphizer is not None and self.monomorphizer.depth > 0:
                raise
            self.diagnostics.report_exception(error)

    # Program structure
    def check(self, program: Program) -> None:
        self._return_types.append(NOTHING_TYPE)
        try:
            for statement in program.statements:
                self.check_statement(statement)
        finally:
            self._return_types.pop()
        for func in program.functions:
            if not func.is_generic:
                self.check_function(func)

    def check_function(self, func: FunctionDef) -> None:
        if func.symbol is None or func.symbol.signature is None:
            return
        result = func.symbol.signature.result
        logger.debug("checking function %s", func.name)
        self._return_types.append(result)
        try:
            for statement in func.body.statements:
                self.check_statement(statement)
        finally:
            self._return_types.pop()
        if result != NOTHING_TYPE and can_fall_through(func.body.statements):
            self.diagnostics.report_warning(
                f"Function '{func.name}' may reach its end without returning a value",
                func.position,
                Stage.TYPECHECKER,
            )

    # Statements
    def check_statement(self, statement: Statement) -> None:
        with self._recover():
            self._check_statement(statement)

    def _check_statement(self, statement: Statement) -> None:
        match statement:
            case VarDecl():
                self._check_var_decl(statement)
            case Assign():
                self._check_assign(statement)
            case ExprStmt(expression=expression):
                statement.expression = self.check_expr(expression, allow_nothing=True)
            case Block(statements=statements):
                for inner in statements:
                    self.check_statement(inner)
            case If(then_block=then_block, else_branch=else_branch):
                with self._recover():
                    statement.condition = self._check_condition(statement.condition)
                self.check_statement(then_block)
                if else_branch is not None:
                    self.check_statement(else_branch)
            case While(body=body):
                with self._recover():
                    statement.condition = self._check_condition(statement.condition)
                self.check_statement(body)
            case For(body=body):
                with self._recover():
                    self._check_for_header(statement)
                self.check_statement(body)
            case Return():
                self._check_return(statement)
            case ErrorStmt():
                pass
            case PrintStmt(value=value):
                statement.value = self.check_expr(value)
            case DeleteStmt(value=value):
                statement.value = self.check_expr(value)
                if not is_pointer(statement.value.ty):
                    raise TypeCheckError(
                        f"Can only delete a pointer, found {statement.value.ty}",
                        statement.value,
                    )

    def _check_var_decl(self, decl: VarDecl) -> None:
        symbol = decl.symbol
        declared = decl.type_expr.resolved if decl.type_expr is not None else None
        try:
            if decl.type_expr is not None and declared is None:
                raise _InvalidSubtree()
            if decl.value is None:
                return
            decl.value = self.check_expr(decl.value, expected=declared)
            if declared is not None:
                self._require(decl.value, declared, f"initializer of '{decl.name}'")
            elif isinstance(decl.value, NilLiteral):
                raise TypeCheckError(
                    f"Cannot infer the type of '{decl.name}' from nil",
                    decl.value,
                )
            elif symbol is not None:
                symbol.ty = decl.value.ty
        except (TypeCheckError, DesugarError, _InvalidSubtree):
            if symbol is not None and symbol.ty is None:
                self._failed.add(id(symbol))
            raise

    def _check_assign(self, assign: Assign) -> None:
        target_failed = False
        try:
            assign.target = self.check_expr(assign.target)
        except _InvalidSubtree:
            target_failed = True
        expected = None if target_failed else assign.target.ty
        assign.value = self.check_expr(assign.value, expected=expected)
        if target_failed:
            raise _InvalidSubtree()
        assert expected is not None
        self._require(assign.value, expected, "assignment")

    def _check_condition(self, condition: Expression) -> Expression:
        condition = self.check_expr(condition)
        if condition.ty != BOOL_TYPE:
            raise TypeCheckError(f"Condition must be bool, found {condition.ty}", condition)
        return condition

    def _check_for_header(self, loop: For) -> None:
        try:
            loop.iterable = self.check_expr(loop.iterable)
            iterable_type = loop.iterable.ty
            if loop.mode == "in":
                if not is_integer(iterable_type):
                    raise TypeCheckError(
                        f"'for ... in' needs an integer count, found {iterable_type}",
                        loop.iterable,
                    )
                element = iterable_type
            elif isinstance(iterable_type, ArrayType):
                element = iterable_type.element
            else:
                raise TypeCheckError(
                    f"'for ... of' needs an array, found {iterable_type}",
                    loop.iterable,
                )
        except (TypeCheckError, _InvalidSubtree):
            if loop.symbol is not None:
                self._failed.add(id(loop.symbol))
            raise
        if loop.symbol is not None:
            loop.symbol.ty = element

    def _check_return(self, statement: Return) -> None:
        expected = self._return_types[-1] if self._return_types else NOTHING_TYPE
        if statement.value is None:
            if expected != NOTHING_TYPE:
                raise TypeCheckError(f"Missing return value of type {expected}", statement)
            return
        if expected == NOTHING_TYPE:
            statement.value = self.check_expr(statement.value, allow_nothing=True)
            raise TypeCheckError("Cannot return a value here", statement.value)
        statement.value = self.check_expr(statement.value, expected=expected)
        self._require(statement.value, expected, "return value")

    def _require(self, expr: Expression, expected: Type, what: str) -> None:
        if expr.ty == expected:
            return
        if literal_adapts(expr, expected):
            adapt_literal(expr, expected)
            return
        if expr.ty is not None and is_assignable(expected, expr.ty):
            return
        raise TypeCheckError(
            f"Type mismatch in {what}: expected {expected}, found {expr.ty}",
            expr,
        )

    # Expressions
    def check_expr(
        self,
        expr: Expression,
        expected: Optional[Type] = None,
        allow_nothing: bool = False,
    ) -> Expression:
        """Type an expression, returning the node that replaces it.

        Errors are reported here; the caller sees `_InvalidSubtree`.
        """
        if expr.ty is None:
            try:
                expr = self._infer(expr, expected)
            except (TypeCheckError, DesugarError) as error:
                self.diagnostics.report_exception(error)
                raise _InvalidSubtree() from error
        if expr.ty == NOTHING_TYPE and not allow_nothing:
            name = expr.callee if isinstance(expr, Call) else "expression"
            self.diagnostics.report_error(
                f"'{name}' returns nothing and cannot be used as a value",
                expr.position,
                Stage.TYPECHECKER,
            )
            raise _InvalidSubtree()
        return expr

    def _check_operands(self, *exprs: Expression) -> List[Expression]:
        """Check sibling expressions, reporting every failure before giving up."""
        results: List[Expression] = []
        failed = False
        for expr in exprs:
            try:
                results.append(self.check_expr(expr))
            except _InvalidSubtree:
                results.append(expr)
                failed = True
        if failed:
            raise _InvalidSubtree()
        return results

    def _infer(self, expr: Expression, expected: Optional[Type]) -> Expression:
        match expr:
            case IntLiteral(value=value):
                if isinstance(expected, (IntType, FloatType)):
                    if not literal_adapts(expr, expected):
                        raise TypeCheckError(
                            f"Integer literal {value} is out of range for {expected}",
                            expr,
                        )
                    expr.ty = expected
                elif value > INT_TYPE.max_value:
                    raise TypeCheckError(f"Integer literal {value} is out of range for int", expr)
                else:
                    expr.ty = INT_TYPE
            case FloatLiteral():
                expr.ty = expected if isinstance(expected, FloatType) else FLOAT_TYPE
            case StringLiteral():
                expr.ty = STR_TYPE
            case BoolLiteral():
                expr.ty = BOOL_TYPE
            case NilLiteral():
                expr.ty = expected if isinstance(expected, PointerType) else NIL_TYPE
            case Identifier():
                expr.ty = self._identifier_type(expr)
            case BinaryExpr():
                return self._check_binary(expr)
            case UnaryExpr():
                return self._check_unary(expr, expected)
            case Deref():
                expr.operand = self.check_expr(expr.operand)
                operand_type = expr.operand.ty
                if not isinstance(operand_type, PointerType):
                    raise TypeCheckError(f"Cannot dereference a value of type {operand_type}", expr)
                if operand_type.target == ANY_TYPE:
                    raise TypeCheckError("Cannot dereference 'ptr any', cast it first", expr)
                expr.ty = operand_type.target
            case Ref():
                if not isinstance(expr.operand, LVALUE_NODES):
                    raise TypeCheckError(
                        "Can only take a reference to a variable, field, "
                        "dereference or array element",
                        expr,
                    )
                expr.operand = self.check_expr(expr.operand)
                assert expr.operand.ty is not None
                expr.ty = PointerType(expr.operand.ty)
            case Cast():
                expr.operand = self.check_expr(expr.operand)
                target = expr.target.resolved
                if target is None:
                    raise _InvalidSubtree()
                source = expr.operand.ty
                assert source is not None
                if not is_cast_allowed(source, target):
                    raise TypeCheckError(f"Invalid cast from {source} to {target}", expr)
                expr.ty = target
            case Call():
                return self._check_call(expr)
            case MethodCall():
                expr.receiver = self.check_expr(expr.receiver)
                assert expr.receiver.ty is not None
                call = self.desugarer.desugar_method_call(expr, expr.receiver.ty)
                return self._check_call(call)
            case FieldAccess():
                expr.obj = self.check_expr(expr.obj)
                expr.ty = self._field_type(expr)
            case ArrayIndex():
                expr.array, expr.index = self._check_operands(expr.array, expr.index)
                if not is_integer(expr.index.ty):
                    raise TypeCheckError(
                        f"Array index must be an integer, found {expr.index.ty}",
                        expr.index,
                    )
                match expr.array.ty:
                    case ArrayType(element=element):
                        expr.ty = element
                    case PointerType(target=target) if target != ANY_TYPE:
                        expr.ty = target
                    case other:
                        raise TypeCheckError(f"Cannot index a value of type {other}", expr)
            case ArrayLiteral():
                expr.ty = self._check_array_literal(expr, expected)
            case New(target=target):
                if target.resolved is None:
                    raise _InvalidSubtree()
                expr.ty = PointerType(target.resolved)
            case _:
                raise TypeCheckError(f"Cannot type {type(expr).__name__}", expr)
        return expr

    def _identifier_type(self, ident: Identifier) -> Type:
        symbol = ident.symbol
        if symbol is None or id(symbol) in self._failed:
            raise _InvalidSubtree()
        if symbol.ty is None:
            raise TypeCheckError(f"'{ident.name}' is used before its type is known", ident)
        return symbol.ty

    def _field_type(self, access: FieldAccess) -> Type:
        obj_type = access.obj.ty
        if access.field is None:
            if not isinstance(obj_type, StructType):
                raise TypeCheckError(f"Type '{obj_type}' has no fields", access)
            # same diagnostic the resolver gives for statically known objects
            if not self.resolver.bind_field(access, obj_type):
                raise _InvalidSubtree()
        assert access.field is not None
        field_type = access.field.type_expr.resolved
        if field_type is None:
            raise _InvalidSubtree()
        return field_type

    def _check_array_literal(self, literal: ArrayLiteral, expected: Optional[Type]) -> Type:
        element: Optional[Type] = None
        if isinstance(expected, ArrayType):
            element = expected.element
        elif not literal.elements:
            raise TypeCheckError("Cannot infer the type of an empty array literal", literal)
        checked: List[Expression] = []
        failed = False
        for item in literal.elements:
            try:
                item = self.check_expr(item, expected=element)
                if element is None:
                    element = item.ty
                else:
                    self._require(item, element, "array element")
            except (TypeCheckError, DesugarError) as error:
                self.diagnostics.report_exception(error)
                failed = True
            except _InvalidSubtree:
                failed = True
            checked.append(item)
        literal.elements = checked
        if failed or element is None:
            raise _InvalidSubtree()
        return ArrayType(element, len(literal.elements))

    def _unify_literals(self, left: Expression, right: Expression) -> None:
        """Let a literal operand take the type of the other operand."""
        if left.ty == right.ty or left.ty is None or right.ty is None:
            return
        if literal_adapts(right, left.ty):
            adapt_literal(right, left.ty)
        elif literal_adapts(left, right.ty):
            adapt_literal(left, right.ty)

    def _check_binary(self, expr: BinaryExpr) -> Expression:
        expr.left, expr.right = self._check_operands(expr.left, expr.right)
        self._unify_literals(expr.left, expr.right)
        replacement = self.desugarer.desugar_binary(expr)
        if replacement is not None:
            return replacement
        expr.ty = self._builtin_binary(expr)
        return expr

    def _builtin_binary(self, expr: BinaryExpr) -> Type:
        op = expr.operator
        left, right = expr.left.ty, expr.right.ty
        assert left is not None and right is not None
        same = left == right
        if op in ARITHMETIC_OPERATORS:
            if same and is_numeric(left):
                return left
            raise TypeCheckError(
                f"Operator '{op}' needs operands of the same numeric type, "
                f"found {left} and {right}",
                expr,
            )
        if op in INTEGER_OPERATORS:
            if same and is_integer(left):
                return left
            raise TypeCheckError(
                f"Operator '{op}' needs operands of the same integer type, "
                f"found {left} and {right}",
                expr,
            )
        if op in COMPARISON_OPERATORS:
            if same and is_numeric(left):
                return BOOL_TYPE
            raise TypeCheckError(f"Cannot compare {left} and {right} with '{op}'", expr)
        if op in EQUALITY_OPERATORS:
            if same and (is_numeric(left) or isinstance(left, BoolType)):
                return BOOL_TYPE
            if is_assignable(left, right) or is_assignable(right, left):
                if is_pointer(left):
                    return BOOL_TYPE
            raise TypeCheckError(f"Cannot compare {left} and {right} with '{op}'", expr)
        if op in LOGICAL_OPERATORS:
            if left == BOOL_TYPE and right == BOOL_TYPE:
                return BOOL_TYPE
            raise TypeCheckError(
                f"Operator '{op}' needs bool operands, found {left} and {right}",
                expr,
            )
        raise TypeCheckError(f"Unknown operator '{op}'", expr)

    def _check_unary(self, expr: UnaryExpr, expected: Optional[Type]) -> Expression:
        if (
            expr.operator == "-"
            and isinstance(expr.operand, (IntLiteral, FloatLiteral))
            and isinstance(expected, (IntType, FloatType))
        ):
            # a negative literal adapts as a whole
            if not literal_adapts(expr, expected):
                raise TypeCheckError(
                    f"Literal -{expr.operand.value} is out of range for {expected}",
                    expr,
                )
            adapt_literal(expr, expected)
            return expr
        expr.operand = self.check_expr(expr.operand)
        replacement = self.desugarer.desugar_unary(expr)
        if replacement is not None:
            return replacement
        operand = expr.operand.ty
        if expr.operator == "-" and is_numeric(operand):
            expr.ty = operand
        elif expr.operator == "not" and operand == BOOL_TYPE:
            expr.ty = BOOL_TYPE
        else:
            raise TypeCheckError(f"Operator '{expr.operator}' cannot be applied to {operand}", expr)
        return expr

    # Calls
    def _check_call(self, call: Call) -> Expression:
        if call.symbol is not None and call.ty is not None:
            return call
        overloads = call.overloads
        if overloads is None:
            raise _InvalidSubtree()
        call.args = self._check_operands(*call.args)
        explicit: Optional[List[Type]] = None
        if call.type_args:
            resolved = [t.resolved for t in call.type_args]
            if any(t is None for t in resolved):
                raise _InvalidSubtree()
            explicit = [t for t in resolved if t is not None]

        candidates = list(overloads)
        plain = [c for c in candidates if not c.is_generic]
        generic = [c for c in candidates if c.is_generic]
        symbol: Optional[Symbol] = None
        if explicit is None:
            matches = select_overload(plain, call.args)
            if len(matches) > 1:
                raise TypeCheckError(
                    f"Ambiguous call to '{call.callee}' with argument types "
                    f"{_format_types(tuple(a.ty for a in call.args))}",
                    call,
                )
            if matches:
                symbol = matches[0]
        elif not generic:
            raise TypeCheckError(f"'{call.callee}' is not a generic function", call)

        if symbol is None and generic:
            symbol = self._instantiate(call, generic, explicit)
        if symbol is None:
            self._explain_mismatch(call, candidates)

        assert symbol is not None and symbol.signature is not None
        if len(symbol.param_types) != len(call.args):
            raise TypeCheckError(
                f"'{symbol.name}' expects {len(symbol.param_types)} arguments, "
                f"got {len(call.args)}",
                call,
            )
        for param, arg in zip(symbol.param_types, call.args):
            if arg.ty != param and literal_adapts(arg, param):
                adapt_literal(arg, param)
        call.symbol = symbol
        call.ty = symbol.signature.result
        return call

    def _explain_mismatch(self, call: Call, candidates: List[Symbol]) -> None:
        arg_types = tuple(arg.ty for arg in call.args)
        if len(candidates) == 1:
            candidate = candidates[0]
            params = candidate.param_types
            if len(params) != len(call.args):
                raise TypeCheckError(
                    f"'{call.callee}' expects {len(params)} arguments, got {len(call.args)}",
                    call,
                )
            for index, (param, arg) in enumerate(zip(params, call.args), start=1):
                if not accepts(param, arg):
                    raise TypeCheckError(
                        f"Argument {index} of '{call.callee}' expects {param}, found {arg.ty}",
                        arg,
                    )
        raise TypeCheckError(
            f"No overload of '{call.callee}' accepts argument types {_format_types(arg_types)}",
            call,
        )

    def infer_bindings(
        self,
        generic: Symbol,
        args: List[Expression],
        explicit: Optional[List[Type]] = None,
    ) -> Dict[str, Type]:
        """Bind the type parameters of a generic function for one call."""
        bindings: Dict[str, Type] = {}
        if explicit is not None:
            if len(explicit) != len(generic.type_params):
                raise UnificationError(
                    f"'{generic.name}' expects {len(generic.type_params)} type arguments, "
                    f"got {len(explicit)}",
                )
            bindings = dict(zip(generic.type_params, explicit))
        params = generic.param_types
        if len(params) != len(args):
            raise UnificationError(
                f"'{generic.name}' expects {len(params)} arguments, got {len(args)}",
            )
        for param, arg in zip(params, args):
            concrete = param.substitute(bindings)
            if not concrete.is_generic:
                if not accepts(concrete, arg):
                    raise UnificationError(f"expected {concrete}, found {arg.ty}")
                continue
            assert arg.ty is not None
            bind_type_params(concrete, arg.ty, bindings)
        for name in generic.type_params:
            if name not in bindings:
                raise UnificationError(f"cannot infer type parameter {name}")
        return bindings

    def _instantiate(
        self,
        call: Call,
        generic: List[Symbol],
        explicit: Optional[List[Type]],
    ) -> Optional[Symbol]:
        assert self.monomorphizer is not None, "generic call without a monomorphizer"
        viable: List[Tuple[Symbol, Dict[str, Type]]] = []
        failures: List[UnificationError] = []
        for candidate in generic:
            try:
                viable.append((candidate, self.infer_bindings(candidate, call.args, explicit)))
            except UnificationError as error:
                failures.append(error)
        if len(viable) > 1:
            raise TypeCheckError(f"Ambiguous call to generic function '{call.callee}'", call)
        if not viable:
            if len(generic) == 1 and failures:
                raise TypeCheckError(f"In call to '{call.callee}': {failures[0]}", call)
            return None
        candidate, bindings = viable[0]
        type_args = tuple(bindings[name] for name in candidate.type_params)
        return self.monomorphizer.instantiate(candidate, type_args, call)
