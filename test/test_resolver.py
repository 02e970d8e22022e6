import pytest

from ftl.parser.parser import parse_source
from ftl.resolver.resolver import Resolver
from ftl.resolver.symbols import OverloadSet, SymbolKind
from ftl.runtime.prelude import PRIMITIVE_TYPE_NAMES, ExternSignature, load_prelude
from ftl.shared.diagnostics import DiagnosticBag, Stage
from ftl.typechecker.ftl_types import FLOAT_TYPE, GenericType, PointerType, StructType


def resolve(source, prelude=False, externs=()):
    bag = DiagnosticBag()
    program = parse_source(source, bag)
    assert not bag.has_errors, [str(d) for d in bag]
    resolver = Resolver(bag)
    if prelude:
        resolver.declare_prelude(load_prelude(bag))
    resolver.declare_externs(externs)
    resolver.resolve(program)
    return program, resolver, bag


def messages(bag):
    return [d.message for d in bag.sorted() if d.is_error]


def test_identifier_binds_to_declaration():
    program, _, bag = resolve("var x = 1\nprint x")
    decl, statement = program.items
    assert statement.value.symbol is decl.symbol
    assert decl.symbol.kind == SymbolKind.VARIABLE
    assert not bag.has_errors


def test_functions_may_be_used_before_their_definition():
    program, _, bag = resolve("var r = f(1)\ndef f(x: int): int {\n    return x\n}")
    decl, func = program.items
    assert func.symbol in decl.value.overloads
    assert not bag.has_errors


def test_field_access_binds_to_struct_field():
    program, resolver, bag = resolve('struct Person(name: str, age: uint8)\nvar p: Person; p.name = "Linus"')
    struct, _, assign = program.items
    assert assign.target.field is struct.fields[0]
    assert resolver.structs["Person"].field_type("age") is not None
    assert not bag.has_errors


def test_shadowing_in_nested_block():
    program, _, bag = resolve(
        "var a = 1\n"
        "if true {\n"
        '    var a = "inner"\n'
        "    print a\n"
        "}\n"
        "print a\n"
    )
    outer, branch, after = program.items
    inner, inner_print = branch.then_block.statements
    assert inner_print.value.symbol is inner.symbol
    assert after.value.symbol is outer.symbol
    assert inner.symbol is not outer.symbol
    assert not bag.has_errors


def test_initializer_sees_the_enclosing_binding():
    program, _, _ = resolve("var a = 1\n{\n    var a = a\n}")
    outer, block = program.items
    (inner,) = block.statements
    assert inner.value.symbol is outer.symbol


def test_parameters_and_locals():
    program, _, bag = resolve(
        "def f(a: int): int {\n"
        "    if true {\n"
        "        var a = 2\n"
        "        return a\n"
        "    }\n"
        "    return a\n"
        "}\n"
    )
    (func,) = program.items
    branch, outer_return = func.body.statements
    inner_decl, inner_return = branch.then_block.statements
    assert inner_return.value.symbol is inner_decl.symbol
    assert outer_return.value.symbol is func.params[0].symbol
    assert func.params[0].symbol.kind == SymbolKind.PARAMETER
    assert not bag.has_errors


@pytest.mark.parametrize(
    "source",
    [
        "var a = 1\nvar a = 2",
        "def f() {\n    var a = 1\n    var a = 2\n}",
        "def f(a: int) {\n    var a = 2\n}",
    ],
)
def test_redeclaration_in_same_scope(source):
    _, _, bag = resolve(source)
    assert messages(bag) == ["'a' is already declared in this scope"]
    assert bag.errors[0].stage == Stage.RESOLVER


def test_overloads_by_parameter_types():
    _, resolver, bag = resolve("def f(x: int) {\n}\ndef f(x: float) {\n}")
    assert not bag.has_errors
    overloads = resolver.globals.values["f"]
    assert isinstance(overloads, OverloadSet)
    assert len(overloads) == 2


def test_duplicate_overload():
    _, _, bag = resolve("def f(x: int) {\n}\ndef f(y: int) {\n}")
    assert messages(bag) == ["Function 'f' with parameter types (int) is already defined"]


@pytest.mark.parametrize(
    "source, message",
    [
        ("print y", "Unresolved name 'y'"),
        ("g(1)", "Unresolved function 'g'"),
        ("var v = 1\nv(2)", "'v' is not a function"),
        ("def f() {\n}\nvar g = f", "Function 'f' cannot be used as a value"),
        ("var p: Point", "Unknown type 'Point'"),
        ("var a: any", "Type 'any' is only valid behind a pointer"),
        ("var a: arr int 0", "Array size must be positive"),
        ("struct int(x: int)", "Type 'int' is already defined"),
        ("struct P(x: int, x: int)", "Field 'x' is declared twice in struct 'P'"),
        ("struct P(x: int)\nvar p: P\nprint p.y", "Struct 'P' has no field 'y'"),
        ("var x = 1\nx.describe()", "Unresolved function 'describe'"),
    ],
)
def test_resolution_errors(source, message):
    _, _, bag = resolve(source)
    assert message in messages(bag)


def test_mutually_recursive_structs():
    program, _, bag = resolve("struct A(b: ptr B)\nstruct B(a: ptr A)")
    assert not bag.has_errors
    a, _ = program.items
    assert a.fields[0].type_expr.resolved == PointerType(StructType("B"))


def test_type_parameters():
    program, _, bag = resolve("def id[T](x: T): T {\n    return x\n}")
    (func,) = program.items
    assert not bag.has_errors
    assert func.params[0].type_expr.resolved == GenericType("T")
    assert func.symbol.is_generic


def test_resolving_twice_keeps_bindings():
    source = (
        "struct P(x: int)\n"
        "def get(p: P): int {\n"
        "    for i in 3 {\n"
        "        print i\n"
        "    }\n"
        "    return p.x\n"
        "}\n"
        "var p: P\n"
        "var v = get(p)\n"
    )
    program, resolver, bag = resolve(source)
    struct, func, decl, call_decl = program.items
    before = (
        struct.symbol,
        func.symbol,
        func.params[0].symbol,
        func.body.statements[0].symbol,
        decl.symbol,
        call_decl.value.args[0].symbol,
        func.body.statements[1].value.field,
    )

    resolver.resolve(program)

    after = (
        struct.symbol,
        func.symbol,
        func.params[0].symbol,
        func.body.statements[0].symbol,
        decl.symbol,
        call_decl.value.args[0].symbol,
        func.body.statements[1].value.field,
    )
    assert all(x is y for x, y in zip(before, after))
    assert len(bag) == 0
    assert len(resolver.globals.values["get"]) == 1


def test_prelude_declares_string_conversions():
    _, resolver, bag = resolve('var n = strlen("x")', prelude=True)
    assert not bag.has_errors
    assert len(resolver.globals.values["str"]) == len(PRIMITIVE_TYPE_NAMES)


def test_extern_signatures():
    sqrt = ExternSignature("sqrt", (FLOAT_TYPE,), FLOAT_TYPE)
    _, resolver, bag = resolve("var r = sqrt(2.0)", externs=[sqrt, sqrt])
    assert not bag.has_errors
    (symbol,) = resolver.globals.values["sqrt"]
    assert symbol.kind == SymbolKind.EXTERN


def test_naming_conventions_are_recorded():
    program, _, _ = resolve("var _hidden = 1\nvar LIMIT = 2\nvar __plus = 3")
    hidden, limit, dunder = (item.symbol for item in program.items)
    assert hidden.is_private and not hidden.is_const
    assert limit.is_const
    assert not dunder.is_private


def test_global_initializer_cannot_refer_to_itself():
    _, _, bag = resolve("var a = a + 1")
    assert messages(bag) == ["'a' is used in its own initializer"]


def test_local_initializer_sees_the_enclosing_binding():
    program, _, bag = resolve("var a = 1\nif true {\n    var a = a + 1\n}")
    outer, branch = program.items
    (inner,) = branch.then_block.statements
    assert inner.value.left.symbol is outer.symbol
    assert not bag.has_errors
