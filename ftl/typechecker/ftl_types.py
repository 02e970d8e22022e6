"""
Type representations for FTL
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Set, Tuple


class Type(ABC):
    """Base class for all types"""

    @abstractmethod
    def free_vars(self) -> Set[str]:
        """Return the names of the generic placeholders inside this type"""
        pass

    @abstractmethod
    def substitute(self, subst: Dict[str, "Type"]) -> "Type":
        """Replace generic placeholders according to `subst`"""
        pass

    @property
    def is_generic(self) -> bool:
        return bool(self.free_vars())

    @abstractmethod
    def __str__(self) -> str:
        pass


class _Leaf(Type):
    def free_vars(self) -> Set[str]:
        return set()

    def substitute(self, subst: Dict[str, Type]) -> Type:
        return self


@dataclass(frozen=True)
class IntType(_Leaf):
    width: int = 64
    signed: bool = True

    @property
    def min_value(self) -> int:
        return -(1 << (self.width - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        return (1 << (self.width - 1)) - 1 if self.signed else (1 << self.width) - 1

    def __str__(self) -> str:
        prefix = "int" if self.signed else "uint"
        return prefix if self.width == 64 else f"{prefix}{self.width}"


@dataclass(frozen=True)
class FloatType(_Leaf):
    width: int = 64

    def __str__(self) -> str:
        return "float" if self.width == 64 else f"float{self.width}"


@dataclass(frozen=True)
class BoolType(_Leaf):
    def __str__(self) -> str:
        return "bool"


@dataclass(frozen=True)
class NothingType(_Leaf):
    def __str__(self) -> str:
        return "nothing"


@dataclass(frozen=True)
class AnyType(_Leaf):
    """Untyped pointee, only valid behind a pointer"""

    def __str__(self) -> str:
        return "any"


@dataclass(frozen=True)
class StructType(_Leaf):
    """Nominal struct type; `str` is the runtime's opaque struct"""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class PointerType(Type):
    target: Type

    def free_vars(self) -> Set[str]:
        return self.target.free_vars()

    def substitute(self, subst: Dict[str, Type]) -> Type:
        return PointerType(self.target.substitute(subst))

    def __str__(self) -> str:
        return f"ptr {self.target}"


@dataclass(frozen=True)
class ArrayType(Type):
    element: Type
    size: int

    def free_vars(self) -> Set[str]:
        return self.element.free_vars()

    def substitute(self, subst: Dict[str, Type]) -> Type:
        return ArrayType(self.element.substitute(subst), self.size)

    def __str__(self) -> str:
        return f"arr {self.element} {self.size}"


@dataclass(frozen=True)
class GenericType(Type):
    """Type parameter placeholder, eliminated by monomorphization"""

    name: str

    def free_vars(self) -> Set[str]:
        return {self.name}

    def substitute(self, subst: Dict[str, Type]) -> Type:
        return subst.get(self.name, self)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class FunctionType(Type):
    params: Tuple[Type, ...]
    result: Type

    def free_vars(self) -> Set[str]:
        result = set(self.result.free_vars())
        for param in self.params:
            result |= param.free_vars()
        return result

    def substitute(self, subst: Dict[str, Type]) -> Type:
        return FunctionType(
            tuple(param.substitute(subst) for param in self.params),
            self.result.substitute(subst),
        )

    def __str__(self) -> str:
        params = ", ".join(str(param) for param in self.params)
        return f"({params}): {self.result}"


# Built-in types
INT_TYPE = IntType(64, True)
UINT_TYPE = IntType(64, False)
FLOAT_TYPE = FloatType(64)
BOOL_TYPE = BoolType()
NOTHING_TYPE = NothingType()
ANY_TYPE = AnyType()
STR_TYPE = StructType("str")
NIL_TYPE = PointerType(ANY_TYPE)

BUILTIN_TYPES: Dict[str, Type] = {
    "int": INT_TYPE,
    "uint": UINT_TYPE,
    "float": FLOAT_TYPE,
    "bool": BOOL_TYPE,
    "nothing": NOTHING_TYPE,
    "any": ANY_TYPE,
    "str": STR_TYPE,
}
for _width in (8, 16, 32, 64):
    BUILTIN_TYPES[f"int{_width}"] = IntType(_width, True)
    BUILTIN_TYPES[f"uint{_width}"] = IntType(_width, False)
BUILTIN_TYPES["float32"] = FloatType(32)
BUILTIN_TYPES["float64"] = FLOAT_TYPE


def is_integer(ty: Optional[Type]) -> bool:
    return isinstance(ty, IntType)


def is_numeric(ty: Optional[Type]) -> bool:
    return isinstance(ty, (IntType, FloatType))


def is_primitive(ty: Optional[Type]) -> bool:
    """Types whose operators always have built-in semantics"""
    return isinstance(ty, (IntType, FloatType, BoolType))


def is_pointer(ty: Optional[Type]) -> bool:
    return isinstance(ty, PointerType)


def contains(outer: Type, inner: Type) -> bool:
    """True when `inner` occurs strictly inside `outer`"""
    match outer:
        case PointerType(target=target):
            return target == inner or contains(target, inner)
        case ArrayType(element=element):
            return element == inner or contains(element, inner)
        case FunctionType(params=params, result=result):
            return any(p == inner or contains(p, inner) for p in params + (result,))
        case _:
            return False


def is_cast_allowed(source: Type, target: Type) -> bool:
    """The explicit `as` conversion table"""
    if source == target:
        return True
    if is_numeric(source) and is_numeric(target):
        return True
    # covers ptr any <-> ptr T as well
    return is_pointer(source) and is_pointer(target)


def is_assignable(target: Type, source: Type) -> bool:
    """Implicit conversions: identity, and `ptr any` (the type of nil) to or from any pointer"""
    if source == target:
        return True
    if source == NIL_TYPE:
        return is_pointer(target)
    return target == NIL_TYPE and is_pointer(source)
