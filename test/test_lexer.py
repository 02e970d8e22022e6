import pytest

from ftl.lexer.lexer import Lexer, TokenStream, tokenize
from ftl.lexer.tokens import StringSegment, TokenKind
from ftl.shared.diagnostics import DiagnosticBag, Stage


def kinds(source, diagnostics=None):
    return [token.kind for token in tokenize(source, diagnostics)]


def test_keywords_and_identifiers():
    assert kinds("var deref_count = ptr") == [
        TokenKind.VAR,
        TokenKind.IDENT,
        TokenKind.ASSIGN,
        TokenKind.PTR,
        TokenKind.EOF,
    ]


@pytest.mark.parametrize(
    "source, expected",
    [
        ("=", TokenKind.ASSIGN),
        ("==", TokenKind.EQ),
        ("=/=", TokenKind.NE),
        ("<", TokenKind.LT),
        ("<=", TokenKind.LE),
        (">", TokenKind.GT),
        (">=", TokenKind.GE),
        ("@", TokenKind.AT),
        ("mod", TokenKind.MOD),
        ("bitxor", TokenKind.BITXOR),
    ],
)
def test_operators(source, expected):
    assert kinds(source) == [expected, TokenKind.EOF]


def test_numbers():
    tokens = tokenize("42 3.14 7.x")
    assert [(t.kind, t.value) for t in tokens] == [
        (TokenKind.INT, "42"),
        (TokenKind.FLOAT, "3.14"),
        (TokenKind.INT, "7"),
        (TokenKind.DOT, "."),
        (TokenKind.IDENT, "x"),
        (TokenKind.EOF, ""),
    ]


def test_positions():
    tokens = tokenize("var x\n  = 1")
    assign = tokens[2]
    assert (assign.position.line, assign.position.column, assign.position.offset) == (2, 3, 8)


def test_comments_are_skipped():
    assert kinds("# a comment\nprint 1 # trailing") == [
        TokenKind.PRINT,
        TokenKind.INT,
        TokenKind.EOF,
    ]


def test_string_escapes():
    (token, _) = tokenize(r'"a\n\"b\" \{c\}"')
    assert token.kind == TokenKind.STRING
    assert token.value == 'a\n"b" {c}'
    assert not token.is_interpolated


def test_string_interpolation():
    (token, _) = tokenize('"Hello {name}!"')
    assert token.is_interpolated
    assert token.segments == (
        StringSegment("Hello "),
        StringSegment("name", is_interpolation=True),
        StringSegment("!"),
    )


def test_unterminated_string_recovers():
    bag = DiagnosticBag()
    assert kinds('"abc\nvar', bag) == [TokenKind.INVALID, TokenKind.VAR, TokenKind.EOF]
    (error,) = bag.errors
    assert error.message == "Unterminated string literal"
    assert error.stage == Stage.LEXER


def test_invalid_character():
    bag = DiagnosticBag()
    assert kinds("var $x", bag) == [
        TokenKind.VAR,
        TokenKind.INVALID,
        TokenKind.IDENT,
        TokenKind.EOF,
    ]
    assert bag.errors[0].message == "Unexpected character '$'"


def test_bad_escape_and_interpolation():
    bag = DiagnosticBag()
    tokenize(r'"a\q" "b {1}"', bag)
    assert [d.message for d in bag.errors] == [
        "Invalid escape sequence '\\q'",
        "Malformed string interpolation, expected '{identifier}'",
    ]


def test_incomplete_not_equals():
    bag = DiagnosticBag()
    assert kinds("a =/ b", bag)[1] == TokenKind.INVALID
    assert bag.errors[0].message == "Expected '=/=' but found '=/'"


def test_lexer_is_lazy():
    lexer = Lexer("var x = 1")
    tokens = iter(lexer)
    assert next(tokens).kind == TokenKind.VAR
    assert lexer.pos == 3


def test_token_stream_keeps_returning_eof():
    stream = TokenStream(tokenize("x"))
    assert stream.next().kind == TokenKind.IDENT
    assert stream.next().kind == TokenKind.EOF
    assert stream.peek().kind == TokenKind.EOF
    assert stream.peek(3).kind == TokenKind.EOF
    assert stream.consumed == 1


def test_literal_braces_need_escapes():
    bag = DiagnosticBag()
    tokenize('"{}"', bag)
    assert [d.message for d in bag.errors] == [
        "Malformed string interpolation, expected '{identifier}'",
    ]

    (token, _) = tokenize(r'"\{\}"')
    assert token.value == "{}"
    assert not token.is_interpolated
