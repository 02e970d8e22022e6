import pytest

from ftl.ast.nodes import BinaryExpr, Block, ErrorStmt, If, IntLiteral, Return, VarDecl
from ftl.pipeline import CompilerOptions, compile_source
from ftl.shared.diagnostics import Stage
from ftl.typechecker.checker import can_fall_through
from ftl.typechecker.ftl_types import FLOAT_TYPE, INT_TYPE, IntType
from ftl.typechecker.typecheck import get_type_str, type_check


def types_of(source):
    result = compile_source(source)
    assert result.succeeded, [str(d) for d in result.diagnostics]
    return get_type_str(result.program)


def error_messages(source):
    return [d.message for d in compile_source(source).errors]


def var(program, name):
    return next(
        item for item in program.items if isinstance(item, VarDecl) and item.name == name
    )


def test_inference_from_initializers():
    source = (
        "var a = 1\n"
        "var b = 2.5\n"
        "var c = true\n"
        'var d = "s"\n'
        "var e = [1, 2]\n"
        "var f = new float\n"
        "var g = ref a\n"
        "var h = 2 * (3 + 1)\n"
    )
    assert types_of(source) == (
        "  a :: int\n"
        "  b :: float\n"
        "  c :: bool\n"
        "  d :: str\n"
        "  e :: arr int 2\n"
        "  f :: ptr float\n"
        "  g :: ptr int\n"
        "  h :: int\n"
    )


def test_declarations_are_listed():
    source = (
        "struct P(x: int, next: ptr P)\n"
        "def add(x: int, y: int): int {\n"
        "    return x + y\n"
        "}\n"
        "var r = add(3, 5)\n"
    )
    assert types_of(source) == (
        "  P :: struct(x: int, next: ptr P)\n"
        "  add :: (int, int): int\n"
        "  r :: int\n"
    )


def test_call_resolves_to_definition():
    result = compile_source("def add(x: int, y: int): int {\n    return x + y\n}\nvar r = add(3,5)")
    add, r = result.program.items
    assert r.value.symbol is add.symbol
    assert r.symbol.ty == INT_TYPE


def test_literals_adapt_to_declared_types():
    result = compile_source("var x: uint8 = 255\nvar y: float32 = 1\nvar z: int8 = -128")
    assert result.succeeded
    assert var(result.program, "x").value.ty == IntType(8, False)


@pytest.mark.parametrize(
    "source, message",
    [
        ("var y: int8 = -129", "Literal -129 is out of range for int8"),
        ("var y = 9223372036854775808", "Integer literal 9223372036854775808 is out of range for int"),
        (
            "var a: int = 1\nvar b: float = 2.0\nvar c = a + b",
            "Operator '+' needs operands of the same numeric type, found int and float",
        ),
        ("var c = 1 < true", "Cannot compare int and bool with '<'"),
        ("var c = 1 and true", "Operator 'and' needs bool operands, found int and bool"),
        ("var c = 1.5 mod 2.0", "Operator 'mod' needs operands of the same integer type, found float and float"),
        ("var c = not 1", "Operator 'not' cannot be applied to int"),
        ("while 1 {\n}", "Condition must be bool, found int"),
        ("def f() {\n}\nvar x = f()", "'f' returns nothing and cannot be used as a value"),
        ("def f(): int {\n    return\n}", "Missing return value of type int"),
        ("def g() {\n    return 1\n}", "Cannot return a value here"),
        ("return 1", "Cannot return a value here"),
        ("var p = nil", "Cannot infer the type of 'p' from nil"),
        ("var x = 1\ndel x", "Can only delete a pointer, found int"),
        ("var p = malloc(4)\nvar v = deref p", "Cannot dereference 'ptr any', cast it first"),
        ("var v = deref 1", "Cannot dereference a value of type int"),
        ("var r = ref 1", "Can only take a reference to a variable, field, dereference or array element"),
        ('var x = "a" as int', "Invalid cast from str to int"),
        ("var n: int = 1\nprint n.x", "Type 'int' has no fields"),
        ("for x of 5 {\n}", "'for ... of' needs an array, found int"),
        ("for i in 1.5 {\n}", "'for ... in' needs an integer count, found float"),
        ("var xs = [1, 2]\nvar y = xs @ 1.5", "Array index must be an integer, found float"),
        ("var x = 1\nvar y = x @ 0", "Cannot index a value of type int"),
        ('var xs = [1, "a"]', "Type mismatch in array element: expected int, found str"),
        ("var xs: arr int 2 = [1.5, 2.5]", "Type mismatch in array element: expected int, found float"),
        ("print later\nvar later = 1", "'later' is used before its type is known"),
        ('var x: int = 1\nx = "s"', "Type mismatch in assignment: expected int, found str"),
    ],
)
def test_type_errors(source, message):
    assert message in error_messages(source)


def test_type_errors_are_typechecker_diagnostics():
    result = compile_source('var x: int = "text"')
    (error,) = result.errors
    assert error.message == "Type mismatch in initializer of 'x': expected int, found str"
    assert error.stage == Stage.TYPECHECKER
    assert error.position.line == 1


def test_failed_declarations_do_not_cascade():
    messages = error_messages('var x: int = "a"\nvar y = missing + 1\nvar z = y + 1\nprint z')
    assert messages == [
        "Type mismatch in initializer of 'x': expected int, found str",
        "Unresolved name 'missing'",
    ]


def test_sibling_operands_are_all_reported():
    messages = error_messages("var c = (1 < true) + (2 and 3)")
    assert messages == [
        "Cannot compare int and bool with '<'",
        "Operator 'and' needs bool operands, found int and int",
    ]


def test_overload_resolution():
    result = compile_source(
        "def f(x: int): int {\n    return 1\n}\n"
        "def f(x: float): int {\n    return 2\n}\n"
        "var a = f(1)\n"
        "var b = f(1.5)\n"
    )
    assert result.succeeded
    assert var(result.program, "a").value.symbol.param_types == (INT_TYPE,)
    assert var(result.program, "b").value.symbol.param_types == (FLOAT_TYPE,)


def test_literal_argument_adapts_to_single_overload():
    result = compile_source("def f(x: uint8): int {\n    return 1\n}\nvar a = f(7)")
    assert result.succeeded
    assert var(result.program, "a").value.args[0].ty == IntType(8, False)


@pytest.mark.parametrize(
    "call, message",
    [
        ("g(1)", "Ambiguous call to 'g' with argument types (int)"),
        ('h("s")', "Argument 1 of 'h' expects int, found str"),
        ("h(1, 2)", "'h' expects 1 arguments, got 2"),
        ('g("s")', "No overload of 'g' accepts argument types (str)"),
        ("h[int](1)", "'h' is not a generic function"),
    ],
)
def test_call_errors(call, message):
    source = (
        "def g(x: uint8): int {\n    return 1\n}\n"
        "def g(x: int16): int {\n    return 2\n}\n"
        "def h(x: int): int {\n    return x\n}\n"
        f"var v = {call}\n"
    )
    assert error_messages(source) == [message]


def test_nil_adapts_to_pointers():
    result = compile_source("var p: ptr int = nil\nvar same = p == nil\nvar raw: ptr any = p")
    assert result.succeeded, [str(d) for d in result.diagnostics]


def test_fall_through_is_a_warning():
    source = "def f(x: int): int {\n    if x > 0 {\n        return 1\n    }\n}"
    result = compile_source(source)
    assert result.succeeded
    (warning,) = result.warnings
    assert warning.message == "Function 'f' may reach its end without returning a value"

    strict = compile_source(source, CompilerOptions(warnings_as_errors=True))
    assert not strict.succeeded


def test_can_fall_through():
    returns = Block([Return(IntLiteral(1))])
    empty = Block([])
    assert not can_fall_through([Return(IntLiteral(1))])
    assert not can_fall_through([ErrorStmt("boom")])
    assert not can_fall_through([If(IntLiteral(1), returns, returns)])
    assert can_fall_through([If(IntLiteral(1), returns, None)])
    assert can_fall_through([If(IntLiteral(1), returns, If(IntLiteral(2), returns, empty))])
    assert not can_fall_through([Block([Return(None)])])


def test_check_is_applied_to_every_function():
    messages = error_messages(
        "def f(): int {\n    return true\n}\n"
        "def g(): bool {\n    return 1\n}\n"
    )
    assert messages == [
        "Type mismatch in return value: expected int, found bool",
        "Type mismatch in return value: expected bool, found int",
    ]


def test_builtin_binary_keeps_node():
    result = compile_source("var b = 2 * (3 + 1)")
    value = var(result.program, "b").value
    assert isinstance(value, BinaryExpr)
    assert value.ty == INT_TYPE


def test_type_check():
    assert type_check("var x = 1")
    assert not type_check("var x: int = true")
