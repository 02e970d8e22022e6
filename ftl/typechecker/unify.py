from typing import Dict

from ftl.typechecker.ftl_types import (
    ArrayType,
    FunctionType,
    GenericType,
    PointerType,
    Type,
)


class UnificationError(Exception):
    pass


def bind_type_params(
    pattern: Type,
    actual: Type,
    bindings: Dict[str, Type],
) -> Dict[str, Type]:
    """Match a generic parameter type against a concrete argument type.

    Extends `bindings` in place with every placeholder the match fixes and
    raises UnificationError when the shapes differ or a placeholder would be
    bound to two different types.
    """
    match (pattern, actual):
        case (GenericType(name=name), _):
            bound = bindings.get(name)
            if bound is None:
                bindings[name] = actual
            elif bound != actual:
                raise UnificationError(
                    f"conflicting types for type parameter {name}: {bound} and {actual}",
                )
            return bindings
        case (PointerType(target=t1), PointerType(target=t2)):
            return bind_type_params(t1, t2, bindings)
        case (ArrayType(element=e1, size=s1), ArrayType(element=e2, size=s2)):
            if s1 != s2:
                raise UnificationError(f"Cannot match {pattern} with {actual}")
            return bind_type_params(e1, e2, bindings)
        case (
            FunctionType(params=params1, result=result1),
            FunctionType(params=params2, result=result2),
        ):
            if len(params1) != len(params2):
                raise UnificationError(f"Cannot match {pattern} with {actual}")
            for p1, p2 in zip(params1, params2):
                bind_type_params(p1, p2, bindings)
            return bind_type_params(result1, result2, bindings)
        case _:
            if pattern != actual:
                raise UnificationError(f"Cannot match {pattern} with {actual}")
            return bindings
