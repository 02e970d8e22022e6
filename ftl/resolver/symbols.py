"""
Symbols, overload sets and scopes used by name resolution.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Tuple, Union

from ftl.typechecker.ftl_types import FunctionType, Type

if TYPE_CHECKING:
    from ftl.ast.nodes import ASTNode, FieldDecl


class SymbolKind(Enum):
    VARIABLE = "variable"
    PARAMETER = "parameter"
    FUNCTION = "function"
    STRUCT = "struct"
    EXTERN = "extern"
    TYPE_PARAMETER = "type parameter"


def is_private_name(name: str) -> bool:
    """Leading underscore marks a private name; `__` names are conventions."""
    return name.startswith("_") and not name.startswith("__")


def is_const_name(name: str) -> bool:
    return name.isupper()


@dataclass(eq=False)
class Symbol:
    """A declared entity. Compared by identity."""

    name: str
    kind: SymbolKind
    ty: Optional[Type] = None
    node: Optional["ASTNode"] = None
    is_const: bool = False
    is_private: bool = False
    type_params: List[str] = field(default_factory=list)
    # struct symbols only
    fields: Dict[str, "FieldDecl"] = field(default_factory=dict)

    @property
    def is_generic(self) -> bool:
        return bool(self.type_params)

    @property
    def signature(self) -> Optional[FunctionType]:
        return self.ty if isinstance(self.ty, FunctionType) else None

    @property
    def param_types(self) -> Tuple[Type, ...]:
        signature = self.signature
        return signature.params if signature is not None else ()

    def field_type(self, name: str) -> Optional[Type]:
        decl = self.fields.get(name)
        return decl.type_expr.resolved if decl is not None else None

    def __repr__(self) -> str:
        return f"Symbol({self.kind.value} {self.name}: {self.ty})"


class OverloadSet:
    """All functions and externs sharing one name."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.symbols: List[Symbol] = []

    def add(self, symbol: Symbol) -> None:
        self.symbols.append(symbol)

    def find(self, param_types: Tuple[Type, ...]) -> Optional[Symbol]:
        for symbol in self.symbols:
            if symbol.param_types == param_types:
                return symbol
        return None

    def __contains__(self, symbol: object) -> bool:
        return any(existing is symbol for existing in self.symbols)

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self.symbols)

    def __len__(self) -> int:
        return len(self.symbols)

    def __repr__(self) -> str:
        return f"OverloadSet({self.name}, {len(self.symbols)} candidates)"


ValueEntry = Union[Symbol, OverloadSet]


class Scope:
    """One lexical scope; values and types live in separate namespaces."""

    def __init__(self, kind: str, parent: Optional["Scope"] = None) -> None:
        self.kind = kind
        self.parent = parent
        self.values: Dict[str, ValueEntry] = {}
        self.types: Dict[str, Symbol] = {}

    def lookup_value(self, name: str) -> Optional[ValueEntry]:
        scope: Optional[Scope] = self
        while scope is not None:
            if name in scope.values:
                return scope.values[name]
            scope = scope.parent
        return None

    def lookup_function(self, name: str) -> Optional[OverloadSet]:
        """Like lookup_value, but only overload sets are considered."""
        scope: Optional[Scope] = self
        while scope is not None:
            entry = scope.values.get(name)
            if isinstance(entry, OverloadSet):
                return entry
            scope = scope.parent
        return None

    def lookup_type(self, name: str) -> Optional[Symbol]:
        scope: Optional[Scope] = self
        while scope is not None:
            if name in scope.types:
                return scope.types[name]
            scope = scope.parent
        return None

    def __repr__(self) -> str:
        return f"Scope({self.kind}, {sorted(self.values)})"
