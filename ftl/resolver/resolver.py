"""
Name resolution for FTL.

The resolver walks the AST with a stack of scopes (global, function, block)
and binds every identifier, call, named type and statically known field
access to its declaration. Global declarations are registered in a first
pass, so functions, structs and top-level variables may be used before the
place they are defined.
"""

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

from ftl.ast.nodes import (
    ArrayIndex,
    ArrayLiteral,
    ArrayTypeExpr,
    Assign,
    ASTNode,
    BinaryExpr,
    Block,
    Call,
    Cast,
    DeleteStmt,
    Deref,
    Expression,
    ExprStmt,
    ExternDecl,
    FieldAccess,
    For,
    FunctionDef,
    Identifier,
    If,
    MethodCall,
    NamedTypeExpr,
    New,
    PointerTypeExpr,
    PrintStmt,
    Program,
    Ref,
    Return,
    Statement,
    StructDef,
    TypeExpr,
    UnaryExpr,
    VarDecl,
    While,
)
from ftl.resolver.symbols import (
    OverloadSet,
    Scope,
    Symbol,
    SymbolKind,
    is_const_name,
    is_private_name,
)
from ftl.shared.diagnostics import DiagnosticBag, Stage
from ftl.shared.position import UNKNOWN_POSITION, SourcePosition
from ftl.typechecker.ftl_types import (
    ANY_TYPE,
    BUILTIN_TYPES,
    NOTHING_TYPE,
    ArrayType,
    FunctionType,
    GenericType,
    PointerType,
    StructType,
    Type,
)

if TYPE_CHECKING:
    from ftl.runtime.prelude import ExternSignature

logger = logging.getLogger(__name__)


def _format_types(types: Tuple[Type, ...]) -> str:
    return "(" + ", ".join(str(t) for t in types) + ")"


class Resolver:
    def __init__(self, diagnostics: Optional[DiagnosticBag] = None) -> None:
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticBag()
        self.globals = Scope("global")
        self.scope = self.globals
        self.structs: Dict[str, Symbol] = {}
        # the variable whose initializer is being resolved
        self._initializing: Optional[Symbol] = None

    def _error(self, message: str, position: SourcePosition) -> None:
        self.diagnostics.report_error(message, position, Stage.RESOLVER)

    # Scope handling
    def _push(self, kind: str) -> Scope:
        self.scope = Scope(kind, self.scope)
        return self.scope

    def _pop(self) -> None:
        assert self.scope.parent is not None
        self.scope = self.scope.parent

    def _declare_value(self, symbol: Symbol, position: SourcePosition) -> None:
        existing = self.scope.values.get(symbol.name)
        if existing is symbol:
            return
        if existing is not None:
            self._error(f"'{symbol.name}' is already declared in this scope", position)
            return
        self.scope.values[symbol.name] = symbol

    def _declare_function(self, symbol: Symbol, position: SourcePosition) -> None:
        entry = self.globals.values.get(symbol.name)
        if entry is None:
            entry = OverloadSet(symbol.name)
            self.globals.values[symbol.name] = entry
        elif not isinstance(entry, OverloadSet):
            self._error(f"'{symbol.name}' is already declared in this scope", position)
            return
        if symbol in entry:
            return
        existing = entry.find(symbol.param_types)
        if existing is None:
            entry.add(symbol)
            return
        if (
            existing.kind == SymbolKind.EXTERN
            and symbol.kind == SymbolKind.EXTERN
            and existing.ty == symbol.ty
        ):
            # identical extern redeclarations describe the same runtime function
            logger.debug("merged duplicate extern %s", symbol.name)
            return
        self._error(
            f"Function '{symbol.name}' with parameter types "
            f"{_format_types(symbol.param_types)} is already defined",
            position,
        )

    # Types
    def resolve_type(self, type_expr: TypeExpr, behind_pointer: bool = False) -> Optional[Type]:
        """Resolve a type expression, caching the result on the node."""
        resolved: Optional[Type] = None
        match type_expr:
            case NamedTypeExpr(name=name):
                symbol = self.scope.lookup_type(name)
                if symbol is not None:
                    resolved = symbol.ty
                elif name in BUILTIN_TYPES:
                    resolved = BUILTIN_TYPES[name]
                else:
                    self._error(f"Unknown type '{name}'", type_expr.position)
                if resolved == ANY_TYPE and not behind_pointer:
                    self._error("Type 'any' is only valid behind a pointer", type_expr.position)
                    resolved = None
            case PointerTypeExpr(target=target):
                inner = self.resolve_type(target, behind_pointer=True)
                resolved = PointerType(inner) if inner is not None else None
            case ArrayTypeExpr(element=element, size=size):
                inner = self.resolve_type(element)
                if size <= 0:
                    self._error("Array size must be positive", type_expr.position)
                elif inner is not None:
                    resolved = ArrayType(inner, size)
        type_expr.resolved = resolved
        return resolved

    def _resolve_return_type(self, type_expr: Optional[TypeExpr]) -> Optional[Type]:
        if type_expr is None:
            return NOTHING_TYPE
        return self.resolve_type(type_expr)

    def _declare_type_params(self, names: List[str], position: SourcePosition) -> None:
        for name in names:
            if name in self.scope.types:
                self._error(f"Type parameter '{name}' is declared twice", position)
                continue
            self.scope.types[name] = Symbol(
                name,
                SymbolKind.TYPE_PARAMETER,
                ty=GenericType(name),
            )

    def _signature(self, node: ASTNode) -> Optional[FunctionType]:
        assert isinstance(node, (FunctionDef, ExternDecl))
        params = [self.resolve_type(param.type_expr) for param in node.params]
        result = self._resolve_return_type(node.return_type)
        if result is None or any(p is None for p in params):
            return None
        return FunctionType(tuple(params), result)

    # Global declarations
    def declare_prelude(self, prelude: Program) -> None:
        """Declare the externs of the runtime prelude in the global scope."""
        for item in prelude.items:
            if isinstance(item, ExternDecl):
                self._declare_extern(item)

    def declare_externs(self, signatures: Iterable["ExternSignature"]) -> None:
        for signature in signatures:
            symbol = Symbol(
                signature.name,
                SymbolKind.EXTERN,
                ty=FunctionType(tuple(signature.params), signature.result),
            )
            self._declare_function(symbol, UNKNOWN_POSITION)

    def _declare_struct(self, struct: StructDef) -> None:
        symbol = struct.symbol
        if symbol is None:
            symbol = Symbol(
                struct.name,
                SymbolKind.STRUCT,
                ty=StructType(struct.name),
                node=struct,
                is_private=is_private_name(struct.name),
            )
        existing = self.globals.types.get(struct.name)
        if existing is symbol:
            return
        if existing is not None or struct.name in BUILTIN_TYPES:
            self._error(f"Type '{struct.name}' is already defined", struct.position)
            return
        struct.symbol = symbol
        self.globals.types[struct.name] = symbol
        self.structs[struct.name] = symbol

    def _declare_fields(self, struct: StructDef) -> None:
        symbol = struct.symbol
        if symbol is None:
            return
        symbol.fields = {}
        for decl in struct.fields:
            if decl.name in symbol.fields:
                self._error(
                    f"Field '{decl.name}' is declared twice in struct '{struct.name}'",
                    decl.position,
                )
                continue
            self.resolve_type(decl.type_expr)
            symbol.fields[decl.name] = decl

    def _declare_extern(self, extern: ExternDecl) -> None:
        symbol = extern.symbol
        if symbol is None:
            signature = self._signature(extern)
            if signature is None:
                return
            symbol = Symbol(
                extern.name,
                SymbolKind.EXTERN,
                ty=signature,
                node=extern,
                is_private=is_private_name(extern.name),
            )
            extern.symbol = symbol
        self._declare_function(symbol, extern.position)

    def _declare_function_def(self, func: FunctionDef) -> None:
        symbol = func.symbol
        if symbol is None:
            self._push("signature")
            self._declare_type_params(func.type_params, func.position)
            signature = self._signature(func)
            self._pop()
            if signature is None:
                return
            symbol = Symbol(
                func.name,
                SymbolKind.FUNCTION,
                ty=signature,
                node=func,
                is_private=is_private_name(func.name),
                type_params=list(func.type_params),
            )
            func.symbol = symbol
        self._declare_function(symbol, func.position)

    def _variable_symbol(self, decl: VarDecl) -> Symbol:
        if decl.symbol is None:
            decl.symbol = Symbol(
                decl.name,
                SymbolKind.VARIABLE,
                ty=decl.type_expr.resolved if decl.type_expr is not None else None,
                node=decl,
                is_const=decl.is_const or is_const_name(decl.name),
                is_private=is_private_name(decl.name),
            )
        return decl.symbol

    def _declare_globals(self, program: Program) -> None:
        structs = program.structs
        for struct in structs:
            self._declare_struct(struct)
        for struct in structs:
            self._declare_fields(struct)
        for item in program.items:
            match item:
                case ExternDecl():
                    self._declare_extern(item)
                case FunctionDef():
                    self._declare_function_def(item)
                case VarDecl():
                    if item.type_expr is not None:
                        self.resolve_type(item.type_expr)
                    self._declare_value(self._variable_symbol(item), item.position)

    # Entry points
    def resolve(self, program: Program) -> None:
        self.scope = self.globals
        self._declare_globals(program)
        for item in program.items:
            match item:
                case StructDef() | ExternDecl():
                    pass
                case FunctionDef():
                    self._resolve_function(item)
                case Statement():
                    self.resolve_statement(item)
        logger.debug(
            "resolved %d globals, %d structs",
            len(self.globals.values),
            len(self.structs),
        )

    def _resolve_function(self, func: FunctionDef) -> None:
        self._push("function")
        self._declare_type_params(func.type_params, func.position)
        self._resolve_body(func)
        self._pop()

    def _resolve_body(self, func: FunctionDef) -> None:
        for param in func.params:
            ty = self.resolve_type(param.type_expr)
            if param.symbol is None:
                param.symbol = Symbol(
                    param.name,
                    SymbolKind.PARAMETER,
                    ty=ty,
                    node=param,
                    is_private=is_private_name(param.name),
                )
            self._declare_value(param.symbol, param.position)
        self._resolve_return_type(func.return_type)
        # parameters and top-level body statements share one scope
        for statement in func.body.statements:
            self.resolve_statement(statement)

    def resolve_specialization(
        self,
        func: FunctionDef,
        bindings: Dict[str, Type],
    ) -> Optional[Symbol]:
        """Resolve a cloned generic function with its type parameters bound.

        The clone is resolved from the global scope, independent of where the
        instantiating call appears. Returns the specialization's Symbol.
        """
        saved = self.scope
        self.scope = self.globals
        self._push("function")
        for name, ty in bindings.items():
            self.scope.types[name] = Symbol(name, SymbolKind.TYPE_PARAMETER, ty=ty)
        signature = self._signature(func)
        self._resolve_body(func)
        self._pop()
        self.scope = saved
        if signature is None:
            return None
        func.symbol = Symbol(
            func.name,
            SymbolKind.FUNCTION,
            ty=signature,
            node=func,
            is_private=is_private_name(func.generic_name or func.name),
        )
        return func.symbol

    # Statements
    def resolve_statement(self, statement: Statement) -> None:
        match statement:
            case VarDecl(type_expr=type_expr, value=value):
                if type_expr is not None:
                    self.resolve_type(type_expr)
                # a local is declared after its initializer; a global already is, by
                # the first pass, so a reference to it there is reported instead
                if value is not None:
                    self._initializing = statement.symbol
                    self.resolve_expression(value)
                    self._initializing = None
                self._declare_value(self._variable_symbol(statement), statement.position)
            case Assign(target=target, value=value):
                self.resolve_expression(target)
                self.resolve_expression(value)
            case ExprStmt(expression=expression):
                self.resolve_expression(expression)
            case Block(statements=statements):
                self._push("block")
                for inner in statements:
                    self.resolve_statement(inner)
                self._pop()
            case If(condition=condition, then_block=then_block, else_branch=else_branch):
                self.resolve_expression(condition)
                self.resolve_statement(then_block)
                if else_branch is not None:
                    self.resolve_statement(else_branch)
            case While(condition=condition, body=body):
                self.resolve_expression(condition)
                self.resolve_statement(body)
            case For(variable=variable, iterable=iterable, body=body):
                self.resolve_expression(iterable)
                self._push("loop")
                if statement.symbol is None:
                    statement.symbol = Symbol(
                        variable,
                        SymbolKind.VARIABLE,
                        node=statement,
                        is_private=is_private_name(variable),
                    )
                self._declare_value(statement.symbol, statement.position)
                self.resolve_statement(body)
                self._pop()
            case Return(value=value):
                if value is not None:
                    self.resolve_expression(value)
            case PrintStmt(value=value) | DeleteStmt(value=value):
                self.resolve_expression(value)
            case _:
                pass

    # Expressions
    def resolve_expression(self, expr: Expression) -> None:
        match expr:
            case Identifier(name=name):
                entry = self.scope.lookup_value(name)
                if entry is None:
                    self._error(f"Unresolved name '{name}'", expr.position)
                elif isinstance(entry, OverloadSet):
                    self._error(
                        f"Function '{name}' cannot be used as a value",
                        expr.position,
                    )
                elif entry is self._initializing:
                    self._error(f"'{name}' is used in its own initializer", expr.position)
                else:
                    expr.symbol = entry
            case Call(callee=callee, args=args, type_args=type_args):
                overloads = self.scope.lookup_function(callee)
                if overloads is None:
                    if self.scope.lookup_value(callee) is not None:
                        self._error(f"'{callee}' is not a function", expr.position)
                    else:
                        self._error(f"Unresolved function '{callee}'", expr.position)
                expr.overloads = overloads
                for type_arg in type_args:
                    self.resolve_type(type_arg)
                for arg in args:
                    self.resolve_expression(arg)
            case MethodCall(receiver=receiver, method=method, args=args):
                self.resolve_expression(receiver)
                if self.scope.lookup_function(method) is None:
                    self._error(f"Unresolved function '{method}'", expr.position)
                for arg in args:
                    self.resolve_expression(arg)
            case FieldAccess(obj=obj):
                self.resolve_expression(obj)
                self._bind_field(expr)
            case BinaryExpr(left=left, right=right):
                self.resolve_expression(left)
                self.resolve_expression(right)
            case UnaryExpr(operand=operand) | Deref(operand=operand) | Ref(operand=operand):
                self.resolve_expression(operand)
            case Cast(operand=operand, target=target):
                self.resolve_expression(operand)
                self.resolve_type(target)
            case ArrayIndex(array=array, index=index):
                self.resolve_expression(array)
                self.resolve_expression(index)
            case ArrayLiteral(elements=elements):
                for element in elements:
                    self.resolve_expression(element)
            case New(target=target):
                self.resolve_type(target)
            case _:
                pass

    def _static_type(self, expr: Expression) -> Optional[Type]:
        """The type of an expression known from declarations alone."""
        match expr:
            case Identifier(symbol=Symbol(ty=ty)):
                return ty
            case FieldAccess(field=decl) if decl is not None:
                return decl.type_expr.resolved
            case Deref(operand=operand):
                inner = self._static_type(operand)
                return inner.target if isinstance(inner, PointerType) else None
            case _:
                return expr.ty

    def _bind_field(self, access: FieldAccess) -> None:
        obj_type = self._static_type(access.obj)
        if not isinstance(obj_type, StructType):
            return
        self.bind_field(access, obj_type)

    def bind_field(self, access: FieldAccess, obj_type: StructType) -> bool:
        """Bind a field access on a struct type, reporting unknown fields."""
        symbol = self.structs.get(obj_type.name)
        if symbol is None:
            self._error(f"Type '{obj_type}' has no fields", access.position)
            return False
        decl = symbol.fields.get(access.field_name)
        if decl is None:
            self._error(
                f"Struct '{obj_type.name}' has no field '{access.field_name}'",
                access.position,
            )
            return False
        access.field = decl
        return True
