from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class SourcePosition:
    """A location in the source text: 1-based line and column, 0-based byte offset."""

    line: int
    column: int
    offset: int = 0

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


UNKNOWN_POSITION = SourcePosition(0, 0, 0)
