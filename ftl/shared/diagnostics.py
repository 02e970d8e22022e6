"""
Diagnostic records shared by every stage of the front end.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from ftl.shared.position import UNKNOWN_POSITION, SourcePosition


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class Stage(Enum):
    LEXER = "lexer"
    PARSER = "parser"
    RESOLVER = "resolver"
    DESUGAR = "desugar"
    TYPECHECKER = "typechecker"
    MONOMORPHIZER = "monomorphizer"


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    message: str
    position: SourcePosition
    stage: Stage

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def as_tuple(self) -> Tuple[str, str, int, int]:
        """The (severity, message, line, column) record handed to presentation."""
        return (
            self.severity.value,
            self.message,
            self.position.line,
            self.position.column,
        )

    def __str__(self) -> str:
        return f"{self.position}: {self.severity.value}: {self.message}"


class FTLError(Exception):
    """Base class for errors raised inside a stage before they become diagnostics."""

    stage: Optional[Stage] = None

    def __init__(
        self,
        message: str,
        position: Optional[SourcePosition] = None,
    ) -> None:
        self.message = message
        self.position = position or UNKNOWN_POSITION
        super().__init__(message)


class DiagnosticBag:
    """Collects diagnostics of one compilation run."""

    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []

    def report(
        self,
        severity: Severity,
        message: str,
        position: SourcePosition,
        stage: Stage,
    ) -> Diagnostic:
        diagnostic = Diagnostic(severity, message, position, stage)
        self._diagnostics.append(diagnostic)
        return diagnostic

    def report_error(
        self,
        message: str,
        position: SourcePosition,
        stage: Stage,
    ) -> Diagnostic:
        return self.report(Severity.ERROR, message, position, stage)

    def report_warning(
        self,
        message: str,
        position: SourcePosition,
        stage: Stage,
    ) -> Diagnostic:
        return self.report(Severity.WARNING, message, position, stage)

    def report_exception(
        self,
        error: FTLError,
        stage: Optional[Stage] = None,
    ) -> Diagnostic:
        stage = stage or error.stage
        assert stage is not None, "stage unknown for %r" % error
        return self.report_error(error.message, error.position, stage)

    @property
    def has_errors(self) -> bool:
        return any(d.is_error for d in self._diagnostics)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self._diagnostics if d.is_error]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self._diagnostics if not d.is_error]

    def sorted(self) -> List[Diagnostic]:
        """Diagnostics in source order, exact duplicates dropped."""
        unique: List[Diagnostic] = []
        seen = set()
        for diagnostic in self._diagnostics:
            if diagnostic in seen:
                continue
            seen.add(diagnostic)
            unique.append(diagnostic)
        # sort is stable, so equal positions keep the order they were reported in
        return sorted(unique, key=lambda d: d.position)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._diagnostics)

    def __len__(self) -> int:
        return len(self._diagnostics)
