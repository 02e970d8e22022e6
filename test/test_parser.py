from pathlib import Path

import pytest

from ftl.ast.nodes import (
    ArrayIndex,
    Assign,
    BinaryExpr,
    Block,
    Call,
    Cast,
    Deref,
    ExprStmt,
    FieldAccess,
    For,
    FunctionDef,
    Identifier,
    If,
    IntLiteral,
    MethodCall,
    NamedTypeExpr,
    PrintStmt,
    Return,
    StringLiteral,
    UnaryExpr,
    VarDecl,
)
from ftl.ast.printer import format_expression, format_program
from ftl.parser.parser import parse, parse_expression_source, parse_source
from ftl.shared.diagnostics import DiagnosticBag, Stage

from .utility.file_tester import get_all_test_files

FTL_BASE_TEST_FILES_PATH = Path(__file__).parent / "files"


def parse_ok(source):
    bag = DiagnosticBag()
    program = parse_source(source, bag)
    assert not bag.has_errors, [str(d) for d in bag]
    return program


def parse_errors(source):
    bag = DiagnosticBag()
    program = parse_source(source, bag)
    return program, [d.message for d in bag.errors]


def expr(source):
    bag = DiagnosticBag()
    result = parse_expression_source(source, bag)
    assert not bag.has_errors, [str(d) for d in bag]
    return result


def test_multiplication_binds_tighter():
    assert expr("1 + 2 * 3") == BinaryExpr(
        "+",
        IntLiteral(1),
        BinaryExpr("*", IntLiteral(2), IntLiteral(3)),
    )


def test_binary_operators_are_left_associative():
    assert expr("1 - 2 - 3") == BinaryExpr(
        "-",
        BinaryExpr("-", IntLiteral(1), IntLiteral(2)),
        IntLiteral(3),
    )


def test_logical_precedence():
    a, b, c = Identifier("a"), Identifier("b"), Identifier("c")
    assert expr("a or b and c") == BinaryExpr("or", a, BinaryExpr("and", b, c))
    assert expr("not a == b") == BinaryExpr("==", UnaryExpr("not", a), b)


def test_cast_binds_tighter_than_binary_operators():
    assert expr("a + b as int") == BinaryExpr(
        "+",
        Identifier("a"),
        Cast(Identifier("b"), NamedTypeExpr("int")),
    )


def test_postfix_operators():
    assert expr("deref p.next") == Deref(FieldAccess(Identifier("p"), "next"))
    assert expr("a @ 1 + 2") == BinaryExpr(
        "+",
        ArrayIndex(Identifier("a"), IntLiteral(1)),
        IntLiteral(2),
    )
    assert expr("p.norm(2)") == MethodCall(Identifier("p"), "norm", [IntLiteral(2)])
    assert expr("plus[int](1, 2)") == Call(
        "plus",
        [IntLiteral(1), IntLiteral(2)],
        [NamedTypeExpr("int")],
    )


def test_interpolated_string_becomes_concatenation():
    assert expr('"Hi {name}!"') == BinaryExpr(
        "+",
        BinaryExpr("+", StringLiteral("Hi "), Identifier("name")),
        StringLiteral("!"),
    )
    assert expr('"{name}"') == BinaryExpr("+", StringLiteral(""), Identifier("name"))


def test_struct_forms_are_equivalent():
    assert parse_ok("struct P(x: int, y: int)") == parse_ok("struct P {\n    x: int\n    y: int\n}")


def test_else_if_chain():
    (statement,) = parse_ok("if a {\n} else if b {\n} else {\n}").items
    assert statement == If(
        Identifier("a"),
        Block([]),
        If(Identifier("b"), Block([]), Block([])),
    )


def test_for_loops():
    (counting, walking) = parse_ok("for i in 10 {\n}\nfor x of xs {\n}").items
    assert counting == For("i", "in", IntLiteral(10), Block([]))
    assert walking == For("x", "of", Identifier("xs"), Block([]))


def test_return_value_must_start_on_the_same_line():
    (func,) = parse_ok("def f() {\n    return\n    1\n}").items
    assert func.body.statements == [Return(None), ExprStmt(IntLiteral(1))]


def test_assignment_targets():
    (statement,) = parse_ok("deref p = 1").items
    assert statement == Assign(Deref(Identifier("p")), IntLiteral(1))
    _, errors = parse_errors("1 = 2")
    assert errors == ["Invalid assignment target"]


def test_generic_function_header():
    (func,) = parse_ok("def plus[T](first: T, second: T): T {\n    return first + second\n}").items
    assert isinstance(func, FunctionDef)
    assert func.type_params == ["T"]
    assert func.is_generic


def test_recovers_at_statement_boundaries():
    program, errors = parse_errors("var = 1\nvar ok = 2\nprint ok +\nvar fine = 3")
    assert errors == [
        "Expected variable name, found '='",
        "Expected an expression, found 'var'",
    ]
    assert [item.name for item in program.items if isinstance(item, VarDecl)] == ["ok", "fine"]


def test_recovers_inside_blocks():
    program, errors = parse_errors("def f() {\n    var x = )\n    print 1\n}\nvar y = 2")
    assert errors == ["Expected an expression, found ')'"]
    func, decl = program.items
    assert func.body.statements == [PrintStmt(IntLiteral(1))]
    assert decl.name == "y"


@pytest.mark.parametrize(
    "source, message",
    [
        ("var x = alloc", "'alloc' is reserved but not supported"),
        ("const LIMIT: int", "Constant 'LIMIT' needs an initializer"),
        ("var x", "Variable 'x' needs a type or an initializer"),
        ("def f() {\n    def g() {\n    }\n}", "'def' definitions are only allowed at top level"),
        ("struct P x: int", "Expected '(' or '{' after struct name, found 'x'"),
        ("for i to 3 {\n}", "Expected 'in' or 'of', found 'to'"),
        ("f(1)(2)", "Only named functions can be called"),
    ],
)
def test_syntax_errors(source, message):
    _, errors = parse_errors(source)
    assert message in errors


def test_syntax_errors_are_parser_diagnostics():
    bag = DiagnosticBag()
    parse_source("var = 1", bag)
    assert [d.stage for d in bag] == [Stage.PARSER]


def test_trailing_input_after_expression():
    bag = DiagnosticBag()
    parse_expression_source("1 2", bag)
    assert [d.message for d in bag.errors] == ["Unexpected '2' after expression"]


def test_format_program():
    program = parse_ok("def add(x:int,y:int):int{return x+y}\nvar r=add(1,(2))")
    assert format_program(program) == (
        "def add(x: int, y: int): int {\n"
        "    return x + y\n"
        "}\n"
        "\n"
        "var r = add(1, 2)\n"
    )


@pytest.mark.parametrize(
    "source",
    [
        "(1 + 2) * 3",
        "1 - (2 - 3)",
        "(deref p).value",
        "-(a + b) as float",
        "xs @ (i + 1)",
        "not (a and b)",
        '"tab\\t and \\{braces\\}"',
        "0.1 + 100.0",
    ],
)
def test_expression_round_trip(source):
    parsed = expr(source)
    assert expr(format_expression(parsed)) == parsed


@pytest.mark.parametrize(
    "file_name",
    [
        f
        for f in get_all_test_files(FTL_BASE_TEST_FILES_PATH, "ftl")
        if f.name != "syntax_error.ftl"
    ],
    ids=lambda p: p.name,
)
def test_round_trip(file_name: Path) -> None:
    bag = DiagnosticBag()
    program = parse(file_name, bag)
    assert not bag.has_errors, [str(d) for d in bag]

    formatted = format_program(program)
    reparsed = parse_source(formatted, bag)
    assert not bag.has_errors, formatted
    assert reparsed == program
    assert format_program(reparsed) == formatted


@pytest.mark.parametrize(
    "source",
    [
        "var q = p; (deref q).x = 1",
        "var a = 1; -a",
        "def f(p: ptr int) {\n    print 1; (deref p) = 2; -deref p\n}",
        "if true {\n    var q = p\n}\n(deref q).x = 1",
    ],
)
def test_round_trip_keeps_statements_apart(source):
    program = parse_ok(source)
    formatted = format_program(program)
    assert parse_ok(formatted) == program
    assert format_program(parse_ok(formatted)) == formatted


def test_format_separates_statements_that_would_merge():
    assert format_program(parse_ok("var a = 1; -a; print a")) == "var a = 1;\n-a\nprint a\n"
