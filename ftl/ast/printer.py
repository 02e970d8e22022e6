"""
Pretty printers for the FTL AST.

`format_program` renders source text that parses back to an equal tree.
`print_annotated_ast` dumps the tree with its type annotations using rich.
"""

from dataclasses import fields
from decimal import Decimal
from typing import List, Optional

from rich.console import Console
from rich.text import Text
from rich.tree import Tree

from ftl.ast.nodes import (
    ANNOTATION_FIELDS,
    ArrayIndex,
    ArrayLiteral,
    ArrayTypeExpr,
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
    ExternDecl,
    FieldAccess,
    FloatLiteral,
    For,
    FunctionDef,
    Identifier,
    If,
    IntLiteral,
    MethodCall,
    NamedTypeExpr,
    New,
    NilLiteral,
    Param,
    PointerTypeExpr,
    PrintStmt,
    Program,
    Ref,
    Return,
    Statement,
    StringLiteral,
    StructDef,
    TypeExpr,
    UnaryExpr,
    VarDecl,
    While,
)
from ftl.parser.precedence import (
    CAST_PRECEDENCE,
    OPERATOR_PRECEDENCE,
    POSTFIX_PRECEDENCE,
    UNARY_PRECEDENCE,
)
from ftl.typechecker.ftl_types import Type

INDENT = "    "
PRIMARY_PRECEDENCE = POSTFIX_PRECEDENCE + 1

STRING_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\t": "\\t",
    "{": "\\{",
    "}": "\\}",
}


def format_type_expr(type_expr: TypeExpr) -> str:
    match type_expr:
        case NamedTypeExpr(name=name):
            return name
        case PointerTypeExpr(target=target):
            return f"ptr {format_type_expr(target)}"
        case ArrayTypeExpr(element=element, size=size):
            return f"arr {format_type_expr(element)} {size}"
        case _:
            raise TypeError(f"Unknown type expression {type_expr!r}")


def _format_string(value: str) -> str:
    return '"' + "".join(STRING_ESCAPES.get(ch, ch) for ch in value) + '"'


def _format_float(value: float) -> str:
    # positional notation only, the lexer has no exponent syntax
    text = format(Decimal(repr(value)), "f")
    return text if "." in text else text + ".0"


def _precedence(expr: Expression) -> int:
    match expr:
        case BinaryExpr(operator=operator):
            return OPERATOR_PRECEDENCE[operator]
        case Cast():
            return CAST_PRECEDENCE
        case UnaryExpr() | Deref() | Ref():
            return UNARY_PRECEDENCE
        case Call() | MethodCall() | FieldAccess() | ArrayIndex():
            return POSTFIX_PRECEDENCE
        case _:
            return PRIMARY_PRECEDENCE


def _operand(expr: Expression, precedence: int, allow_equal: bool = True) -> str:
    text = format_expression(expr)
    own = _precedence(expr)
    if own < precedence or (own == precedence and not allow_equal):
        return f"({text})"
    return text


def _arguments(args: List[Expression]) -> str:
    return "(" + ", ".join(format_expression(arg) for arg in args) + ")"


def format_expression(expr: Expression) -> str:
    """Render an expression with the minimal parentheses needed to reparse it."""
    match expr:
        case IntLiteral(value=value):
            return str(value)
        case FloatLiteral(value=value):
            return _format_float(value)
        case StringLiteral(value=value):
            return _format_string(value)
        case BoolLiteral(value=value):
            return "true" if value else "false"
        case NilLiteral():
            return "nil"
        case Identifier(name=name):
            return name
        case BinaryExpr(operator=operator, left=left, right=right):
            precedence = OPERATOR_PRECEDENCE[operator]
            # every binary operator is left associative
            lhs = _operand(left, precedence)
            rhs = _operand(right, precedence, allow_equal=False)
            return f"{lhs} {operator} {rhs}"
        case UnaryExpr(operator="-", operand=operand):
            return "-" + _operand(operand, UNARY_PRECEDENCE)
        case UnaryExpr(operator=operator, operand=operand):
            return f"{operator} " + _operand(operand, UNARY_PRECEDENCE)
        case Deref(operand=operand):
            return "deref " + _operand(operand, UNARY_PRECEDENCE)
        case Ref(operand=operand):
            return "ref " + _operand(operand, UNARY_PRECEDENCE)
        case Cast(operand=operand, target=target):
            return f"{_operand(operand, CAST_PRECEDENCE)} as {format_type_expr(target)}"
        case Call(callee=callee, args=args, type_args=type_args):
            text = callee
            if type_args:
                text += "[" + ", ".join(format_type_expr(t) for t in type_args) + "]"
            return text + _arguments(args)
        case MethodCall(receiver=receiver, method=method, args=args):
            return f"{_operand(receiver, POSTFIX_PRECEDENCE)}.{method}{_arguments(args)}"
        case FieldAccess(obj=obj, field_name=field_name):
            return f"{_operand(obj, POSTFIX_PRECEDENCE)}.{field_name}"
        case ArrayIndex(array=array, index=index):
            return (
                f"{_operand(array, POSTFIX_PRECEDENCE)} @ "
                f"{_operand(index, PRIMARY_PRECEDENCE)}"
            )
        case ArrayLiteral(elements=elements):
            return "[" + ", ".join(format_expression(e) for e in elements) + "]"
        case New(target=target):
            return f"new {format_type_expr(target)}"
        case _:
            raise TypeError(f"Unknown expression {expr!r}")


# newlines are insignificant, so a statement opening with one of these would
# extend the expression that ends the statement before it
CONTINUATION_STARTS = ("(", "[", "-")


def _append_statement(lines: List[str], statement_lines: List[str]) -> None:
    if (
        lines
        and lines[-1]
        and not lines[-1].endswith("}")
        and statement_lines[0].lstrip().startswith(CONTINUATION_STARTS)
    ):
        lines[-1] += ";"
    lines.extend(statement_lines)


def _format_block(block: Block, depth: int) -> List[str]:
    lines: List[str] = []
    for statement in block.statements:
        _append_statement(lines, _format_statement(statement, depth + 1))
    return lines


def _format_if(node: If, depth: int, prefix: str) -> List[str]:
    pad = INDENT * depth
    lines = [f"{pad}{prefix}if {format_expression(node.condition)} {{"]
    lines.extend(_format_block(node.then_block, depth))
    match node.else_branch:
        case None:
            lines.append(pad + "}")
        case If() as elif_branch:
            # `} else if` continues on the closing line
            nested = _format_if(elif_branch, depth, "} else ")
            lines.extend(nested)
        case Block() as else_block:
            lines.append(pad + "} else {")
            lines.extend(_format_block(else_block, depth))
            lines.append(pad + "}")
    return lines


def _format_statement(statement: Statement, depth: int) -> List[str]:
    pad = INDENT * depth
    match statement:
        case VarDecl(name=name, type_expr=type_expr, value=value, is_const=is_const):
            text = ("const " if is_const else "var ") + name
            if type_expr is not None:
                text += ": " + format_type_expr(type_expr)
            if value is not None:
                text += " = " + format_expression(value)
            return [pad + text]
        case Assign(target=target, value=value):
            return [f"{pad}{format_expression(target)} = {format_expression(value)}"]
        case ExprStmt(expression=expression):
            return [pad + format_expression(expression)]
        case Block():
            return [pad + "{", *_format_block(statement, depth), pad + "}"]
        case If():
            return _format_if(statement, depth, "")
        case While(condition=condition, body=body):
            return [
                f"{pad}while {format_expression(condition)} {{",
                *_format_block(body, depth),
                pad + "}",
            ]
        case For(variable=variable, mode=mode, iterable=iterable, body=body):
            return [
                f"{pad}for {variable} {mode} {format_expression(iterable)} {{",
                *_format_block(body, depth),
                pad + "}",
            ]
        case Return(value=None):
            return [pad + "return"]
        case Return(value=value):
            return [f"{pad}return {format_expression(value)}"]
        case ErrorStmt(message=message):
            return [f"{pad}error {_format_string(message)}"]
        case PrintStmt(value=value, debug=debug):
            keyword = "debug" if debug else "print"
            return [f"{pad}{keyword} {format_expression(value)}"]
        case DeleteStmt(value=value):
            return [f"{pad}del {format_expression(value)}"]
        case _:
            raise TypeError(f"Unknown statement {statement!r}")


def _format_params(params: List[Param]) -> str:
    return ", ".join(f"{p.name}: {format_type_expr(p.type_expr)}" for p in params)


def _format_item(item: ASTNode) -> List[str]:
    match item:
        case FunctionDef(name=name, params=params, return_type=return_type, body=body):
            header = "def " + name
            if item.type_params:
                header += "[" + ", ".join(item.type_params) + "]"
            header += f"({_format_params(params)})"
            if return_type is not None:
                header += ": " + format_type_expr(return_type)
            return [header + " {", *_format_block(body, 0), "}"]
        case ExternDecl(name=name, params=params, return_type=return_type):
            text = f"extern {name}({_format_params(params)})"
            if return_type is not None:
                text += ": " + format_type_expr(return_type)
            return [text]
        case StructDef(name=name, fields=struct_fields):
            body = [f"{INDENT}{f.name}: {format_type_expr(f.type_expr)}" for f in struct_fields]
            return [f"struct {name} {{", *body, "}"]
        case _:
            return _format_statement(item, 0)


def format_program(program: Program) -> str:
    """Render a whole program as canonical FTL source."""
    chunks: List[str] = []
    previous: Optional[ASTNode] = None
    for item in program.items:
        standalone = isinstance(item, (FunctionDef, StructDef))
        if previous is not None and (
            standalone or isinstance(previous, (FunctionDef, StructDef))
        ):
            chunks.append("")
        _append_statement(chunks, _format_item(item))
        previous = item
    return "\n".join(chunks) + "\n" if chunks else ""


# Annotated tree dump
NODE_STYLES = {
    "literal": "cyan",
    "reference": "green",
    "operation": "yellow",
    "control": "magenta",
    "type": "red",
    "declaration": "bright_magenta",
}


def _node_style(node: ASTNode) -> str:
    name = type(node).__name__
    if "Literal" in name:
        return NODE_STYLES["literal"]
    if isinstance(node, (Identifier, FieldAccess, Call, MethodCall)):
        return NODE_STYLES["reference"]
    if isinstance(node, Expression):
        return NODE_STYLES["operation"]
    if isinstance(node, TypeExpr):
        return NODE_STYLES["type"]
    if isinstance(node, (If, While, For, Return, Block)):
        return NODE_STYLES["control"]
    if isinstance(node, (FunctionDef, StructDef, ExternDecl, VarDecl, Param)):
        return NODE_STYLES["declaration"]
    return "white"


def format_type(ty: Optional[Type]) -> str:
    return " :: <?>" if ty is None else f" :: {ty}"


def _label(node: ASTNode, show_types: bool) -> Text:
    text = Text()
    text.append(type(node).__name__, style=_node_style(node))
    scalars = []
    for f in fields(node):
        if f.name in ANNOTATION_FIELDS or f.name == "position":
            continue
        value = getattr(node, f.name)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            scalars.append(repr(value) if isinstance(value, str) else str(value))
        elif isinstance(value, bool) and value:
            scalars.append(f.name)
    if scalars:
        text.append("(" + ", ".join(scalars) + ")", style="bright_white")
    if show_types and isinstance(node, Expression):
        text.append(format_type(node.ty), style="dim red")
    if show_types and isinstance(node, TypeExpr) and node.resolved is not None:
        text.append(format_type(node.resolved), style="dim red")
    return text


def ast_tree(node: ASTNode, show_types: bool = True, tree: Optional[Tree] = None) -> Tree:
    """Build a rich Tree mirroring the AST below `node`."""
    label = _label(node, show_types)
    branch = Tree(label) if tree is None else tree.add(label)
    for f in fields(node):
        if f.name in ANNOTATION_FIELDS:
            continue
        value = getattr(node, f.name)
        if isinstance(value, ASTNode):
            ast_tree(value, show_types, branch)
        elif isinstance(value, list) and value and isinstance(value[0], ASTNode):
            group = branch.add(Text(f"{f.name}:", style="dim"))
            for item in value:
                ast_tree(item, show_types, group)
    return branch


def print_annotated_ast(
    program: Program,
    show_types: bool = True,
    console: Optional[Console] = None,
) -> None:
    """Print the AST as a tree, with inferred types on every expression."""
    (console or Console()).print(ast_tree(program, show_types))
