from pathlib import Path

from typer.testing import CliRunner

from ftl.cli import app

FILES = Path(__file__).parent / "files"

runner = CliRunner()


def test_check_success():
    result = runner.invoke(app, ["check", str(FILES / "generics.ftl")])
    assert result.exit_code == 0, result.output
    assert "Type checking succeeded" in result.output


def test_check_failure_lists_diagnostics():
    result = runner.invoke(app, ["check", str(FILES / "redeclaration.ftl")])
    assert result.exit_code == 1
    assert (
        "Error in redeclaration.ftl line 4: 'a' is already declared in this scope"
        in result.output
    )
    assert "Type checking failed" in result.output


def test_check_options():
    result = runner.invoke(app, ["-v", "check", "--no-prelude", str(FILES / "strings.ftl")])
    assert result.exit_code == 1
    assert "No applicable operator '+' for str and str" in result.output


def test_werror(tmp_path):
    source = tmp_path / "warn.ftl"
    source.write_text("def f(x: int): int {\n    if x > 0 {\n        return 1\n    }\n}\n")
    assert runner.invoke(app, ["check", str(source)]).exit_code == 0
    result = runner.invoke(app, ["check", "--werror", str(source)])
    assert result.exit_code == 1
    assert "Warning in warn.ftl line 1" in result.output


def test_types():
    result = runner.invoke(app, ["types", str(FILES / "generics.ftl")])
    assert result.exit_code == 0
    assert "  a :: int\n" in result.output
    assert "  plus[float] :: (float, float): float\n" in result.output


def test_fmt(tmp_path):
    source = tmp_path / "messy.ftl"
    source.write_text("var   x=1+2\ndef f(){print x}")
    result = runner.invoke(app, ["fmt", str(source)])
    assert result.exit_code == 0
    assert result.output == "var x = 1 + 2\n\ndef f() {\n    print x\n}\n"

    runner.invoke(app, ["fmt", "--write", str(source)])
    assert source.read_text() == result.output


def test_fmt_refuses_invalid_source(tmp_path):
    source = tmp_path / "broken.ftl"
    source.write_text("var = 1\n")
    result = runner.invoke(app, ["fmt", "-w", str(source)])
    assert result.exit_code == 1
    assert source.read_text() == "var = 1\n"


def test_lex_and_parse():
    lexed = runner.invoke(app, ["lex", str(FILES / "arithmetic.ftl")])
    assert lexed.exit_code == 0
    assert "VAR" in lexed.output

    parsed = runner.invoke(app, ["parse", str(FILES / "arithmetic.ftl")])
    assert parsed.exit_code == 0
    assert "Program" in parsed.output
    assert "VarDecl" in parsed.output
