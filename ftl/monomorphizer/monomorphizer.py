"""
Generic function monomorphization.

Every call to a generic function is served by a specialization: a clone of
the generic definition with its type parameters bound to concrete types.
Specializations are cached by `(name, type arguments)`, so each one is
created and checked exactly once. Generic overloads sharing a name are told
apart by their parameter list, e.g. `f(T)` and `f(T, T)`.
"""

import logging
from typing import TYPE_CHECKING, Dict, List, Tuple

from ftl.ast.nodes import Call, Expression, FunctionDef, Program, clone, walk
from ftl.resolver.resolver import Resolver
from ftl.resolver.symbols import Symbol
from ftl.shared.diagnostics import FTLError, Stage
from ftl.typechecker.ftl_types import Type, contains

if TYPE_CHECKING:
    from ftl.typechecker.checker import TypeChecker

logger = logging.getLogger(__name__)

InstantiationKey = Tuple[str, Tuple[Type, ...]]

DEFAULT_MAX_DEPTH = 64


class MonomorphizationError(FTLError):
    stage = Stage.MONOMORPHIZER


def mangle(name: str, type_args: Tuple[Type, ...]) -> str:
    """Name of a specialization, e.g. `plus[int]`."""
    return f"{name}[{', '.join(str(t) for t in type_args)}]"


def _grows(older: Tuple[Type, ...], newer: Tuple[Type, ...]) -> bool:
    """True when `newer` nests `older` inside itself, e.g. (int,) -> (ptr int,)."""
    if len(older) != len(newer):
        return False
    return any(contains(new, old) for old, new in zip(older, newer)) and all(
        new == old or contains(new, old) for old, new in zip(older, newer)
    )


class Monomorphizer:
    def __init__(
        self,
        resolver: Resolver,
        checker: "TypeChecker",
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.resolver = resolver
        self.checker = checker
        self.max_depth = max_depth
        self.cache: Dict[InstantiationKey, Symbol] = {}
        self.specializations: List[FunctionDef] = []
        self._active: List[InstantiationKey] = []
        checker.monomorphizer = self

    @property
    def depth(self) -> int:
        return len(self._active)

    def _guard(self, key: InstantiationKey, call: Call) -> None:
        name, type_args = key
        for active_name, active_args in self._active:
            if active_name == name and _grows(active_args, type_args):
                raise MonomorphizationError(
                    f"Non-terminating generic instantiation: {mangle(name, active_args)} "
                    f"requires {mangle(name, type_args)}",
                    call.position,
                )
        if self.depth >= self.max_depth:
            raise MonomorphizationError(
                f"Generic instantiation of {mangle(name, type_args)} exceeds "
                f"the depth limit of {self.max_depth}",
                call.position,
            )

    def generic_name(self, generic: Symbol) -> str:
        """`f`, or `f(T, T)` when several generic overloads are named `f`."""
        overloads = self.resolver.globals.lookup_function(generic.name)
        if overloads is None or sum(1 for s in overloads if s.is_generic) <= 1:
            return generic.name
        return f"{generic.name}({', '.join(str(t) for t in generic.param_types)})"

    def instantiate(self, generic: Symbol, type_args: Tuple[Type, ...], call: Call) -> Symbol:
        """The specialization of `generic` for `type_args`, creating it on first use."""
        name = self.generic_name(generic)
        key = (name, type_args)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        self._guard(key, call)

        definition = generic.node
        assert isinstance(definition, FunctionDef)
        specialization = clone(definition)
        specialization.name = mangle(name, type_args)
        specialization.type_params = []
        specialization.generic_name = generic.name
        specialization.type_arguments = type_args
        specialization.position = definition.position

        bindings = dict(zip(generic.type_params, type_args))
        symbol = self.resolver.resolve_specialization(specialization, bindings)
        if symbol is None:
            raise MonomorphizationError(
                f"Cannot specialize '{generic.name}' for {mangle(name, type_args)}",
                call.position,
            )
        # registered before the body is checked, so recursive calls hit the cache
        self.cache[key] = symbol
        self.specializations.append(specialization)
        logger.debug("instantiated %s", specialization.name)

        self._active.append(key)
        try:
            self.checker.check_function(specialization)
        finally:
            self._active.pop()
        return symbol

    def finalize(self, program: Program) -> Program:
        """Replace generic definitions by the specializations created for them."""
        items = [
            item
            for item in program.items
            if not (isinstance(item, FunctionDef) and item.is_generic)
        ]
        items.extend(self.specializations)
        program.items = items
        self._verify(program)
        return program

    def _verify(self, program: Program) -> None:
        for node in walk(program):
            if isinstance(node, Expression) and node.ty is not None and node.ty.is_generic:
                raise MonomorphizationError(
                    f"Generic type {node.ty} left after monomorphization",
                    node.position,
                )
