from typing import Optional

from ftl.ast.nodes import ExternDecl, FunctionDef, Program, StructDef, VarDecl
from ftl.ast.printer import format_type_expr
from ftl.pipeline import CompilerOptions, compile_source


def get_type_str(program: Program) -> str:
    """One line per global declaration of a checked program."""
    res = ""
    for item in program.items:
        match item:
            case StructDef(name=name, fields=fields):
                members = ", ".join(f"{f.name}: {format_type_expr(f.type_expr)}" for f in fields)
                res += f"  {name} :: struct({members})\n"
            case FunctionDef(symbol=symbol) | ExternDecl(symbol=symbol) if symbol is not None:
                res += f"  {item.name} :: {symbol.ty}\n"
            case VarDecl(symbol=symbol) if symbol is not None:
                res += f"  {item.name} :: {symbol.ty if symbol.ty is not None else '<?>'}\n"
    return res


def type_check(source: str, options: Optional[CompilerOptions] = None) -> bool:
    return compile_source(source, options).succeeded
