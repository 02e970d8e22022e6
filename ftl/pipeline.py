"""
The front-end driver: source text in, typed and monomorphized AST out.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ftl.ast.nodes import Program
from ftl.desugar.desugarer import Desugarer
from ftl.desugar.overloads import OverloadTable
from ftl.monomorphizer.monomorphizer import (
    DEFAULT_MAX_DEPTH,
    InstantiationKey,
    MonomorphizationError,
    Monomorphizer,
)
from ftl.parser.parser import parse_source
from ftl.resolver.resolver import Resolver
from ftl.resolver.symbols import Symbol
from ftl.runtime.prelude import ExternSignature, load_prelude
from ftl.shared.diagnostics import Diagnostic, DiagnosticBag
from ftl.typechecker.checker import TypeChecker

logger = logging.getLogger(__name__)


@dataclass
class CompilerOptions:
    extern_signatures: Sequence[ExternSignature] = ()
    include_prelude: bool = True
    max_instantiation_depth: int = DEFAULT_MAX_DEPTH
    warnings_as_errors: bool = False


@dataclass
class CompilationResult:
    """Outcome of one run. `program` is None when any error was reported."""

    program: Optional[Program]
    diagnostics: List[Diagnostic]
    # the annotated tree, also kept when compilation failed
    ast: Optional[Program] = None
    instantiations: Dict[InstantiationKey, Symbol] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.program is not None

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.is_error]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if not d.is_error]


def _finish(
    program: Program,
    diagnostics: DiagnosticBag,
    options: CompilerOptions,
    instantiations: Optional[Dict[InstantiationKey, Symbol]] = None,
) -> CompilationResult:
    failed = diagnostics.has_errors or (options.warnings_as_errors and bool(diagnostics.warnings))
    return CompilationResult(
        program=None if failed else program,
        diagnostics=diagnostics.sorted(),
        ast=program,
        instantiations=instantiations or {},
    )


def compile_source(source: str, options: Optional[CompilerOptions] = None) -> CompilationResult:
    """Run every front-end stage over one translation unit."""
    options = options or CompilerOptions()
    diagnostics = DiagnosticBag()

    # statements with syntax errors are dropped; the rest is still checked
    program = parse_source(source, diagnostics)
    if diagnostics.has_errors:
        logger.debug("continuing after parse with %d diagnostics", len(diagnostics))

    resolver = Resolver(diagnostics)
    if options.include_prelude:
        resolver.declare_prelude(load_prelude(diagnostics))
    resolver.declare_externs(options.extern_signatures)
    resolver.resolve(program)

    desugarer = Desugarer(OverloadTable.from_scope(resolver.globals))
    checker = TypeChecker(resolver, desugarer, diagnostics)
    monomorphizer = Monomorphizer(resolver, checker, options.max_instantiation_depth)
    checker.check(program)
    try:
        monomorphizer.finalize(program)
    except MonomorphizationError as error:
        diagnostics.report_exception(error)
    logger.debug(
        "front end finished: %d diagnostics, %d specializations",
        len(diagnostics),
        len(monomorphizer.specializations),
    )
    return _finish(program, diagnostics, options, dict(monomorphizer.cache))


def compile_file(path: Path, options: Optional[CompilerOptions] = None) -> CompilationResult:
    with open(path) as f:
        return compile_source(f.read(), options)
