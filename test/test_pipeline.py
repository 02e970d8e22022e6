from pathlib import Path

import pytest

from ftl.ast.nodes import Assign, PrintStmt, VarDecl
from ftl.pipeline import CompilerOptions, compile_file, compile_source
from ftl.runtime.prelude import ExternSignature, prelude_signatures
from ftl.shared.diagnostics import Stage
from ftl.typechecker.ftl_types import FLOAT_TYPE, INT_TYPE, STR_TYPE, UINT_TYPE

from .utility.file_tester import file_test_check, get_all_test_files

FTL_BASE_TEST_FILES_PATH = Path(__file__).parent / "files"


@pytest.mark.parametrize(
    "file_name",
    list(get_all_test_files(FTL_BASE_TEST_FILES_PATH, "ftl")),
    ids=lambda p: p.name,
)
def test_check_files(file_name: Path) -> None:
    file_test_check(file_name, compile_file)


def test_constant_expression_is_int():
    result = compile_source("var b = 2 * (3 + 1)")
    assert result.succeeded
    (decl,) = result.program.items
    assert decl.symbol.ty == INT_TYPE


def test_struct_field_assignment():
    result = compile_source('struct Person(name: str, age: uint8)\nvar p: Person; p.name = "Linus"')
    assert result.succeeded
    struct, _, assign = result.program.items
    assert isinstance(assign, Assign)
    assert assign.target.field is struct.fields[0]
    assert assign.value.ty == STR_TYPE


def test_shadowing_does_not_leak_out_of_the_block():
    result = compile_source(
        "var a = 1\n"
        "if a > 0 {\n"
        '    var a = "shadow"\n'
        "    print a\n"
        "}\n"
        "var b = a + 1\n"
    )
    assert result.succeeded
    assert result.program.items[-1].symbol.ty == INT_TYPE


def test_redeclaration_in_same_block():
    result = compile_source("if true {\n    var a = 1\n    var a = 2\n}")
    (error,) = result.errors
    assert error.stage == Stage.RESOLVER
    assert error.message == "'a' is already declared in this scope"


def test_checks_the_rest_after_syntax_errors():
    result = compile_source('var x = )\nvar y: int = "s"\nprint missing')
    assert [(d.stage, d.message) for d in result.errors] == [
        (Stage.PARSER, "Expected an expression, found ')'"),
        (Stage.TYPECHECKER, "Type mismatch in initializer of 'y': expected int, found str"),
        (Stage.RESOLVER, "Unresolved name 'missing'"),
    ]
    assert result.program is None
    assert [type(item) for item in result.ast.items] == [VarDecl, PrintStmt]


def test_failed_result_keeps_annotated_tree():
    result = compile_source("var a = 1\nvar b: int = true")
    assert not result.succeeded
    a = result.ast.items[0]
    assert isinstance(a, VarDecl) and a.symbol.ty == INT_TYPE


def test_diagnostics_are_sorted_by_position():
    result = compile_source('var a: int = "s"\nprint missing')
    assert [(d.stage, d.position.line) for d in result.errors] == [
        (Stage.TYPECHECKER, 1),
        (Stage.RESOLVER, 2),
    ]


def test_diagnostic_tuple():
    (error,) = compile_source("print missing").errors
    assert error.as_tuple() == ("error", "Unresolved name 'missing'", 1, 7)


def test_without_prelude():
    options = CompilerOptions(include_prelude=False)
    assert [d.message for d in compile_source('var s = "a" + "b"', options).errors] == [
        "No applicable operator '+' for str and str",
    ]


def test_extern_signatures():
    options = CompilerOptions(extern_signatures=[ExternSignature("sqrt", (FLOAT_TYPE,), FLOAT_TYPE)])
    result = compile_source("var r = sqrt(2.0)", options)
    assert result.succeeded
    assert result.program.items[0].symbol.ty == FLOAT_TYPE


def test_extern_declarations_in_source():
    result = compile_source("extern abs(value: int): int\nvar r = abs(-3)")
    assert result.succeeded
    assert result.program.items[1].value.symbol.node is result.program.items[0]


def test_prelude_signatures():
    signatures = prelude_signatures()
    assert ExternSignature("strlen", (STR_TYPE,), UINT_TYPE) in signatures
    assert str(ExternSignature("strlen", (STR_TYPE,), UINT_TYPE)) == "strlen(str): uint"
    assert sum(1 for s in signatures if s.name == "str") == 11


def test_error_statement_is_kept():
    result = compile_source('def fail() {\n    error "boom"\n}')
    assert result.succeeded
    (func,) = result.program.items
    assert func.body.statements[0].message == "boom"
