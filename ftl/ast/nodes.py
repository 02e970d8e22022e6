"""
AST node definitions for FTL.

Positions and the annotations added by later stages (`ty`, `symbol`,
`field`, `resolved`, `overloads`) are excluded from equality, so two trees
compare equal when they have the same structure.
"""

from abc import ABC
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, Iterator, List, Optional, Tuple, Union

from ftl.shared.position import UNKNOWN_POSITION, SourcePosition
from ftl.typechecker.ftl_types import Type

if TYPE_CHECKING:
    from ftl.resolver.symbols import OverloadSet, Symbol

ANNOTATION_FIELDS = ("ty", "symbol", "field", "resolved", "overloads")


def _annotation(default: Any = None) -> Any:
    return field(default=default, compare=False, repr=False, kw_only=True)


@dataclass
class ASTNode(ABC):
    position: SourcePosition = field(
        default=UNKNOWN_POSITION,
        compare=False,
        repr=False,
        kw_only=True,
    )


# Type expressions
@dataclass
class TypeExpr(ASTNode):
    resolved: Optional[Type] = _annotation()


@dataclass
class NamedTypeExpr(TypeExpr):
    name: str


@dataclass
class PointerTypeExpr(TypeExpr):
    target: TypeExpr


@dataclass
class ArrayTypeExpr(TypeExpr):
    element: TypeExpr
    size: int


# Expressions
@dataclass
class Expression(ASTNode):
    ty: Optional[Type] = _annotation()


@dataclass
class IntLiteral(Expression):
    value: int


@dataclass
class FloatLiteral(Expression):
    value: float


@dataclass
class StringLiteral(Expression):
    value: str


@dataclass
class BoolLiteral(Expression):
    value: bool


@dataclass
class NilLiteral(Expression):
    pass


@dataclass
class Identifier(Expression):
    name: str
    symbol: Optional["Symbol"] = _annotation()


@dataclass
class BinaryExpr(Expression):
    operator: str
    left: Expression
    right: Expression


@dataclass
class UnaryExpr(Expression):
    operator: str
    operand: Expression


@dataclass
class Deref(Expression):
    operand: Expression


@dataclass
class Ref(Expression):
    operand: Expression


@dataclass
class Cast(Expression):
    operand: Expression
    target: TypeExpr


@dataclass
class Call(Expression):
    callee: str
    args: List[Expression]
    type_args: List[TypeExpr] = field(default_factory=list)
    symbol: Optional["Symbol"] = _annotation()
    overloads: Optional["OverloadSet"] = _annotation()


@dataclass
class MethodCall(Expression):
    """Associated-call sugar `receiver.method(args)`, rewritten by the desugarer."""

    receiver: Expression
    method: str
    args: List[Expression]


@dataclass
class FieldAccess(Expression):
    obj: Expression
    field_name: str
    field: Optional["FieldDecl"] = _annotation()


@dataclass
class ArrayIndex(Expression):
    array: Expression
    index: Expression


@dataclass
class ArrayLiteral(Expression):
    elements: List[Expression]


@dataclass
class New(Expression):
    target: TypeExpr


# Statements
@dataclass
class Statement(ASTNode):
    pass


@dataclass
class VarDecl(Statement):
    name: str
    type_expr: Optional[TypeExpr] = None
    value: Optional[Expression] = None
    is_const: bool = False
    symbol: Optional["Symbol"] = _annotation()


@dataclass
class Assign(Statement):
    target: Expression
    value: Expression


@dataclass
class ExprStmt(Statement):
    expression: Expression


@dataclass
class Block(Statement):
    statements: List[Statement]


@dataclass
class If(Statement):
    condition: Expression
    then_block: Block
    else_branch: Optional[Union[Block, "If"]] = None


@dataclass
class While(Statement):
    condition: Expression
    body: Block


@dataclass
class For(Statement):
    """`for x in n` counts from 0 to n-1, `for x of a` walks the elements of array a."""

    variable: str
    mode: str
    iterable: Expression
    body: Block
    symbol: Optional["Symbol"] = _annotation()


@dataclass
class Return(Statement):
    value: Optional[Expression] = None


@dataclass
class ErrorStmt(Statement):
    """User-level abort: the backend lowers it to a runtime abort with `message`."""

    message: str


@dataclass
class PrintStmt(Statement):
    value: Expression
    debug: bool = False


@dataclass
class DeleteStmt(Statement):
    value: Expression


# Declarations
@dataclass
class Param(ASTNode):
    name: str
    type_expr: TypeExpr
    symbol: Optional["Symbol"] = _annotation()


@dataclass
class FieldDecl(ASTNode):
    name: str
    type_expr: TypeExpr


@dataclass
class StructDef(ASTNode):
    name: str
    fields: List[FieldDecl]
    symbol: Optional["Symbol"] = _annotation()


@dataclass
class FunctionDef(ASTNode):
    name: str
    params: List[Param]
    return_type: Optional[TypeExpr]
    body: Block
    type_params: List[str] = field(default_factory=list)
    symbol: Optional["Symbol"] = _annotation()
    # set on specializations produced by the monomorphizer
    generic_name: Optional[str] = field(default=None, compare=False, kw_only=True)
    type_arguments: Tuple[Type, ...] = field(default=(), compare=False, kw_only=True)

    @property
    def is_generic(self) -> bool:
        return bool(self.type_params)


@dataclass
class ExternDecl(ASTNode):
    name: str
    params: List[Param]
    return_type: Optional[TypeExpr]
    symbol: Optional["Symbol"] = _annotation()


@dataclass
class Program(ASTNode):
    items: List[ASTNode]

    @property
    def functions(self) -> List[FunctionDef]:
        return [item for item in self.items if isinstance(item, FunctionDef)]

    @property
    def structs(self) -> List[StructDef]:
        return [item for item in self.items if isinstance(item, StructDef)]

    @property
    def statements(self) -> List[Statement]:
        return [item for item in self.items if isinstance(item, Statement)]


LVALUE_NODES = (Identifier, FieldAccess, Deref, ArrayIndex)


def iter_child_nodes(node: ASTNode) -> Iterator[ASTNode]:
    """Yield the direct children of a node, skipping annotations."""
    for f in fields(node):
        if f.name in ANNOTATION_FIELDS:
            continue
        value = getattr(node, f.name)
        if isinstance(value, ASTNode):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, ASTNode):
                    yield item


def walk(node: ASTNode) -> Iterator[ASTNode]:
    """Yield a node and all of its descendants, depth first."""
    yield node
    for child in iter_child_nodes(node):
        yield from walk(child)


def clone(node: Any) -> Any:
    """Deep copy of a subtree with every stage annotation cleared."""
    if isinstance(node, ASTNode):
        values = {}
        for f in fields(node):
            if f.name in ANNOTATION_FIELDS:
                continue
            values[f.name] = clone(getattr(node, f.name))
        return type(node)(**values)
    if isinstance(node, list):
        return [clone(item) for item in node]
    return node
