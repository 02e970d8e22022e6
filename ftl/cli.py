import logging
from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ftl.ast.printer import format_program, print_annotated_ast
from ftl.lexer.lexer import tokenize
from ftl.lexer.tokens import TokenKind
from ftl.parser.parser import parse_source
from ftl.pipeline import CompilerOptions, compile_source
from ftl.shared.diagnostics import Diagnostic, DiagnosticBag
from ftl.typechecker.typecheck import get_type_str

app = typer.Typer(pretty_exceptions_enable=False)
console = Console()


def format_diagnostic(diagnostic: Diagnostic, file_name: str) -> str:
    severity, message, line, _ = diagnostic.as_tuple()
    return f"{severity.capitalize()} in {file_name} line {line}: {message}"


def _print_diagnostics(diagnostics: Iterable[Diagnostic], input_file: Path) -> None:
    for diagnostic in diagnostics:
        style = "bold red" if diagnostic.is_error else "yellow"
        console.print(
            format_diagnostic(diagnostic, input_file.name),
            style=style,
            markup=False,
            highlight=False,
            soft_wrap=True,
        )


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log stage details"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.command()
def lex(
    input_file: Path = typer.Argument(..., exists=True, help="Path to input file"),
) -> None:
    diagnostics = DiagnosticBag()
    tokens = tokenize(input_file.read_text(), diagnostics)
    table = Table(title=input_file.name)
    table.add_column("Position", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Value")
    for token in tokens:
        if token.kind != TokenKind.EOF:
            table.add_row(str(token.position), token.kind.name, repr(token.value))
    console.print(table)
    _print_diagnostics(diagnostics.sorted(), input_file)
    if diagnostics.has_errors:
        raise typer.Exit(code=1)


@app.command()
def parse(
    input_file: Path = typer.Argument(..., exists=True, help="Path to input file"),
) -> None:
    diagnostics = DiagnosticBag()
    program = parse_source(input_file.read_text(), diagnostics)
    print_annotated_ast(program, show_types=False, console=console)
    _print_diagnostics(diagnostics.sorted(), input_file)
    if diagnostics.has_errors:
        raise typer.Exit(code=1)


@app.command()
def fmt(
    input_file: Path = typer.Argument(..., exists=True, help="Path to input file"),
    write: bool = typer.Option(False, "--write", "-w", help="Rewrite the file in place"),
) -> None:
    diagnostics = DiagnosticBag()
    program = parse_source(input_file.read_text(), diagnostics)
    if diagnostics.has_errors:
        _print_diagnostics(diagnostics.sorted(), input_file)
        raise typer.Exit(code=1)
    formatted = format_program(program)
    if write:
        input_file.write_text(formatted)
    else:
        console.print(formatted, end="", markup=False, highlight=False, soft_wrap=True)


@app.command()
def check(
    input_file: Path = typer.Argument(..., exists=True, help="Path to input file"),
    no_prelude: bool = typer.Option(
        False,
        "--no-prelude",
        help="Do not declare the runtime prelude",
    ),
    max_depth: int = typer.Option(64, "--max-depth", help="Generic instantiation depth limit"),
    werror: bool = typer.Option(False, "--werror", help="Treat warnings as errors"),
    show_ast: bool = typer.Option(False, "--ast", help="Print the annotated AST"),
) -> None:
    options = CompilerOptions(
        include_prelude=not no_prelude,
        max_instantiation_depth=max_depth,
        warnings_as_errors=werror,
    )
    result = compile_source(input_file.read_text(), options)
    _print_diagnostics(result.diagnostics, input_file)
    if show_ast and result.ast is not None:
        print_annotated_ast(result.ast, console=console)
    if not result.succeeded:
        console.print("Type checking failed", style="bold red")
        raise typer.Exit(code=1)
    console.print("Type checking succeeded", style="bold green")


@app.command()
def types(
    input_file: Path = typer.Argument(..., exists=True, help="Path to input file"),
) -> None:
    result = compile_source(input_file.read_text())
    _print_diagnostics(result.diagnostics, input_file)
    if result.program is None:
        raise typer.Exit(code=1)
    console.print(
        get_type_str(result.program),
        end="",
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
