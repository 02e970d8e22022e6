"""
Extern signatures provided by the FTL runtime.

The prelude is written in FTL itself and declared into the global scope of
every compilation unless disabled in the compiler options.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from ftl.ast.nodes import ExternDecl, Program
from ftl.parser.parser import parse_source
from ftl.resolver.resolver import Resolver
from ftl.shared.diagnostics import DiagnosticBag
from ftl.typechecker.ftl_types import NOTHING_TYPE, Type

PRIMITIVE_TYPE_NAMES = (
    "int8",
    "int16",
    "int32",
    "int",
    "uint8",
    "uint16",
    "uint32",
    "uint",
    "float32",
    "float",
    "bool",
)

_STR_CONVERSIONS = "\n".join(
    f"extern str(value: {name}): str" for name in PRIMITIVE_TYPE_NAMES
)

PRELUDE_SOURCE = f"""\
# string conversions used by string concatenation
{_STR_CONVERSIONS}

extern __plus(left: str, right: str): str
extern __equals(left: str, right: str): bool
extern strlen(value: str): uint

# libc
extern malloc(size: uint): ptr any
extern free(pointer: ptr any)
extern puts(value: str): int32
extern printf(format: str): int32
"""


@dataclass(frozen=True)
class ExternSignature:
    """Signature of a function the runtime provides."""

    name: str
    params: Tuple[Type, ...]
    result: Type = NOTHING_TYPE

    def __str__(self) -> str:
        params = ", ".join(str(param) for param in self.params)
        return f"{self.name}({params}): {self.result}"


def load_prelude(diagnostics: Optional[DiagnosticBag] = None) -> Program:
    """Parse the prelude into a fresh AST."""
    return parse_source(PRELUDE_SOURCE, diagnostics)


def prelude_signatures() -> List[ExternSignature]:
    """The prelude as a table of resolved signatures."""
    resolver = Resolver()
    program = load_prelude(resolver.diagnostics)
    resolver.declare_prelude(program)
    signatures = []
    for item in program.items:
        if isinstance(item, ExternDecl) and item.symbol is not None:
            signature = item.symbol.signature
            assert signature is not None
            signatures.append(ExternSignature(item.name, signature.params, signature.result))
    return signatures
