"""
Recursive-descent parser for FTL with Pratt-style expression parsing.

Syntax errors are reported as diagnostics; the parser then skips ahead to
the next statement boundary and keeps going, so one run collects as many
independent errors as possible.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from ftl.ast.nodes import (
    LVALUE_NODES,
    ASTNode,
    ArrayIndex,
    ArrayLiteral,
    ArrayTypeExpr,
    Assign,
    BinaryExpr,
    Block,
    BoolLiteral,
    Call,
    Cast,
    DeleteStmt,
    Deref,
    ErrorStmt,
    Expression,
    ExprStmt,
    ExternDecl,
    FieldAccess,
    FieldDecl,
    FloatLiteral,
    For,
    FunctionDef,
    Identifier,
    If,
    IntLiteral,
    MethodCall,
    NamedTypeExpr,
    New,
    NilLiteral,
    Param,
    PointerTypeExpr,
    PrintStmt,
    Program,
    Ref,
    Return,
    Statement,
    StringLiteral,
    StructDef,
    TypeExpr,
    UnaryExpr,
    VarDecl,
    While,
)
from ftl.lexer.lexer import Lexer, TokenStream
from ftl.lexer.tokens import Token, TokenKind
from ftl.parser.precedence import BINARY_PRECEDENCE, CAST_PRECEDENCE, OPERATOR_TEXT
from ftl.shared.diagnostics import DiagnosticBag, FTLError, Stage
from ftl.shared.position import SourcePosition

logger = logging.getLogger(__name__)

STATEMENT_START = {
    TokenKind.VAR,
    TokenKind.CONST,
    TokenKind.IF,
    TokenKind.WHILE,
    TokenKind.FOR,
    TokenKind.RETURN,
    TokenKind.ERROR,
    TokenKind.PRINT,
    TokenKind.DEBUG,
    TokenKind.DEL,
    TokenKind.DEF,
    TokenKind.EXTERN,
    TokenKind.STRUCT,
}

RESERVED_KEYWORDS = {TokenKind.ALLOC, TokenKind.DEFAULT, TokenKind.ENUM}


class ParseError(FTLError):
    stage = Stage.PARSER

    def __init__(self, message: str, token: Token) -> None:
        super().__init__(message, token.position)
        self.token = token


def _describe(token: Token) -> str:
    if token.kind == TokenKind.EOF:
        return "end of input"
    return f"'{token.value}'"


class Parser:
    def __init__(
        self,
        tokens: Iterable[Token],
        diagnostics: Optional[DiagnosticBag] = None,
    ) -> None:
        self.tokens = TokenStream(tokens)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticBag()

    # Token helpers
    def _peek(self, distance: int = 0) -> Token:
        return self.tokens.peek(distance)

    def _check(self, *kinds: TokenKind) -> bool:
        return self._peek().kind in kinds

    def _advance(self) -> Token:
        return self.tokens.next()

    def _match(self, *kinds: TokenKind) -> Optional[Token]:
        if self._check(*kinds):
            return self._advance()
        return None

    def _expect(self, kind: TokenKind, what: str) -> Token:
        token = self._peek()
        if token.kind == kind:
            return self._advance()
        raise ParseError(f"Expected {what}, found {_describe(token)}", token)

    # Error recovery
    def _report(self, error: ParseError) -> None:
        # the lexer already reported the input behind an INVALID token
        if error.token.kind != TokenKind.INVALID:
            self.diagnostics.report_exception(error)

    def _synchronize(self, start: int, top_level: bool = False) -> None:
        """Skip to the next statement start, `;` or `}`.

        At top level there is no block to close, so the `}` is skipped too.
        """
        if self.tokens.consumed == start and not self._check(TokenKind.EOF):
            self._advance()
        while not self._check(TokenKind.EOF):
            kind = self._peek().kind
            if kind == TokenKind.SEMICOLON:
                self._advance()
                return
            if kind == TokenKind.RBRACE:
                if top_level:
                    self._advance()
                return
            if kind in STATEMENT_START:
                return
            self._advance()

    # Program structure
    def parse_program(self) -> Program:
        items: List[ASTNode] = []
        while not self._check(TokenKind.EOF):
            start = self.tokens.consumed
            try:
                item = self._parse_item()
                if item is not None:
                    items.append(item)
            except ParseError as error:
                self._report(error)
                self._synchronize(start, top_level=True)
        logger.debug("parsed %d top-level items", len(items))
        return Program(items, position=SourcePosition(1, 1, 0))

    def _parse_item(self) -> Optional[ASTNode]:
        match self._peek().kind:
            case TokenKind.DEF:
                return self._parse_function()
            case TokenKind.EXTERN:
                return self._parse_extern()
            case TokenKind.STRUCT:
                return self._parse_struct()
            case _:
                return self._parse_statement()

    def _parse_function(self) -> FunctionDef:
        self._advance()  # def
        name = self._expect(TokenKind.IDENT, "function name")
        type_params: List[str] = []
        if self._match(TokenKind.LBRACKET):
            type_params.append(self._expect(TokenKind.IDENT, "type parameter").value)
            while self._match(TokenKind.COMMA):
                type_params.append(
                    self._expect(TokenKind.IDENT, "type parameter").value,
                )
            self._expect(TokenKind.RBRACKET, "']'")
        params = self._parse_params()
        return_type = self._parse_type() if self._match(TokenKind.COLON) else None
        body = self._parse_block()
        return FunctionDef(
            name.value,
            params,
            return_type,
            body,
            type_params,
            position=name.position,
        )

    def _parse_extern(self) -> ExternDecl:
        self._advance()  # extern
        name = self._expect(TokenKind.IDENT, "function name")
        params = self._parse_params()
        return_type = self._parse_type() if self._match(TokenKind.COLON) else None
        self._match(TokenKind.SEMICOLON)
        return ExternDecl(name.value, params, return_type, position=name.position)

    def _parse_params(self) -> List[Param]:
        self._expect(TokenKind.LPAREN, "'('")
        params: List[Param] = []
        if not self._check(TokenKind.RPAREN):
            params.append(self._parse_param())
            while self._match(TokenKind.COMMA):
                params.append(self._parse_param())
        self._expect(TokenKind.RPAREN, "')'")
        return params

    def _parse_param(self) -> Param:
        name = self._expect(TokenKind.IDENT, "parameter name")
        self._expect(TokenKind.COLON, "':'")
        return Param(name.value, self._parse_type(), position=name.position)

    def _parse_struct(self) -> StructDef:
        self._advance()  # struct
        name = self._expect(TokenKind.IDENT, "struct name")
        if self._match(TokenKind.LPAREN):
            closing = TokenKind.RPAREN
        elif self._match(TokenKind.LBRACE):
            closing = TokenKind.RBRACE
        else:
            token = self._peek()
            raise ParseError(
                f"Expected '(' or '{{' after struct name, found {_describe(token)}",
                token,
            )
        fields: List[FieldDecl] = []
        while not self._check(closing, TokenKind.EOF):
            field_name = self._expect(TokenKind.IDENT, "field name")
            self._expect(TokenKind.COLON, "':'")
            fields.append(
                FieldDecl(field_name.value, self._parse_type(), position=field_name.position),
            )
            # separators between fields are optional
            self._match(TokenKind.COMMA, TokenKind.SEMICOLON)
        self._expect(closing, "')'" if closing == TokenKind.RPAREN else "'}'")
        self._match(TokenKind.SEMICOLON)
        return StructDef(name.value, fields, position=name.position)

    def _parse_type(self) -> TypeExpr:
        token = self._peek()
        match token.kind:
            case TokenKind.PTR:
                self._advance()
                return PointerTypeExpr(self._parse_type(), position=token.position)
            case TokenKind.ARR:
                self._advance()
                element = self._parse_type()
                size = self._expect(TokenKind.INT, "array size")
                return ArrayTypeExpr(element, int(size.value), position=token.position)
            case TokenKind.IDENT:
                self._advance()
                return NamedTypeExpr(token.value, position=token.position)
            case _:
                raise ParseError(f"Expected a type, found {_describe(token)}", token)

    # Statements
    def _parse_block(self) -> Block:
        opening = self._expect(TokenKind.LBRACE, "'{'")
        statements: List[Statement] = []
        while not self._check(TokenKind.RBRACE, TokenKind.EOF):
            start = self.tokens.consumed
            try:
                statement = self._parse_statement()
                if statement is not None:
                    statements.append(statement)
            except ParseError as error:
                self._report(error)
                self._synchronize(start)
        self._expect(TokenKind.RBRACE, "'}'")
        return Block(statements, position=opening.position)

    def _parse_statement(self) -> Optional[Statement]:
        token = self._peek()
        statement: Optional[Statement]
        match token.kind:
            case TokenKind.VAR | TokenKind.CONST:
                statement = self._parse_var_decl()
            case TokenKind.IF:
                statement = self._parse_if()
            case TokenKind.WHILE:
                self._advance()
                condition = self.parse_expression()
                statement = While(condition, self._parse_block(), position=token.position)
            case TokenKind.FOR:
                statement = self._parse_for()
            case TokenKind.RETURN:
                statement = self._parse_return()
            case TokenKind.ERROR:
                self._advance()
                message = self._expect(TokenKind.STRING, "error message string")
                statement = ErrorStmt(message.value, position=token.position)
            case TokenKind.PRINT | TokenKind.DEBUG:
                self._advance()
                statement = PrintStmt(
                    self.parse_expression(),
                    debug=token.kind == TokenKind.DEBUG,
                    position=token.position,
                )
            case TokenKind.DEL:
                self._advance()
                statement = DeleteStmt(self.parse_expression(), position=token.position)
            case TokenKind.LBRACE:
                statement = self._parse_block()
            case TokenKind.SEMICOLON:
                self._advance()
                return None
            case TokenKind.DEF | TokenKind.EXTERN | TokenKind.STRUCT:
                raise ParseError(
                    f"{_describe(token)} definitions are only allowed at top level",
                    token,
                )
            case _:
                statement = self._parse_expression_statement()
        self._match(TokenKind.SEMICOLON)
        return statement

    def _parse_var_decl(self) -> VarDecl:
        keyword = self._advance()
        is_const = keyword.kind == TokenKind.CONST
        name = self._expect(TokenKind.IDENT, "variable name")
        type_expr = self._parse_type() if self._match(TokenKind.COLON) else None
        value = self.parse_expression() if self._match(TokenKind.ASSIGN) else None
        if is_const and value is None:
            raise ParseError(f"Constant '{name.value}' needs an initializer", name)
        if type_expr is None and value is None:
            raise ParseError(
                f"Variable '{name.value}' needs a type or an initializer",
                name,
            )
        return VarDecl(name.value, type_expr, value, is_const, position=name.position)

    def _parse_if(self) -> If:
        keyword = self._advance()
        condition = self.parse_expression()
        then_block = self._parse_block()
        else_branch = None
        if self._match(TokenKind.ELSE):
            if self._check(TokenKind.IF):
                else_branch = self._parse_if()
            else:
                else_branch = self._parse_block()
        return If(condition, then_block, else_branch, position=keyword.position)

    def _parse_for(self) -> For:
        keyword = self._advance()
        variable = self._expect(TokenKind.IDENT, "loop variable")
        mode = self._peek()
        if mode.kind not in (TokenKind.IN, TokenKind.OF):
            raise ParseError(f"Expected 'in' or 'of', found {_describe(mode)}", mode)
        self._advance()
        iterable = self.parse_expression()
        body = self._parse_block()
        return For(variable.value, mode.value, iterable, body, position=keyword.position)

    def _parse_return(self) -> Return:
        keyword = self._advance()
        following = self._peek()
        # the returned value has to start on the line of the `return`
        if (
            following.kind not in (TokenKind.RBRACE, TokenKind.SEMICOLON, TokenKind.EOF)
            and following.kind not in STATEMENT_START
            and following.position.line == keyword.position.line
        ):
            return Return(self.parse_expression(), position=keyword.position)
        return Return(None, position=keyword.position)

    def _parse_expression_statement(self) -> Statement:
        expression = self.parse_expression()
        assign = self._match(TokenKind.ASSIGN)
        if assign is None:
            return ExprStmt(expression, position=expression.position)
        if not isinstance(expression, LVALUE_NODES):
            raise ParseError("Invalid assignment target", assign)
        value = self.parse_expression()
        return Assign(expression, value, position=assign.position)

    # Expressions
    def parse_expression(self, min_precedence: int = 0) -> Expression:
        left = self._parse_unary()
        while True:
            token = self._peek()
            if token.kind == TokenKind.AS:
                if CAST_PRECEDENCE <= min_precedence:
                    break
                self._advance()
                left = Cast(left, self._parse_type(), position=token.position)
                continue
            precedence = BINARY_PRECEDENCE.get(token.kind)
            if precedence is None or precedence <= min_precedence:
                break
            self._advance()
            # binding the right side one level tighter keeps operators left associative
            right = self.parse_expression(precedence)
            left = BinaryExpr(
                OPERATOR_TEXT[token.kind],
                left,
                right,
                position=token.position,
            )
        return left

    def _parse_unary(self) -> Expression:
        token = self._peek()
        match token.kind:
            case TokenKind.NOT:
                self._advance()
                return UnaryExpr("not", self._parse_unary(), position=token.position)
            case TokenKind.MINUS:
                self._advance()
                return UnaryExpr("-", self._parse_unary(), position=token.position)
            case TokenKind.DEREF:
                self._advance()
                return Deref(self._parse_unary(), position=token.position)
            case TokenKind.REF:
                self._advance()
                return Ref(self._parse_unary(), position=token.position)
            case _:
                return self._parse_postfix(self._parse_primary())

    def _parse_postfix(self, expression: Expression) -> Expression:
        while True:
            token = self._peek()
            match token.kind:
                case TokenKind.LPAREN:
                    if not isinstance(expression, Identifier):
                        raise ParseError("Only named functions can be called", token)
                    expression = Call(
                        expression.name,
                        self._parse_arguments(),
                        position=expression.position,
                    )
                case TokenKind.LBRACKET if isinstance(expression, Identifier):
                    type_args = self._parse_type_arguments()
                    expression = Call(
                        expression.name,
                        self._parse_arguments(),
                        type_args,
                        position=expression.position,
                    )
                case TokenKind.DOT:
                    self._advance()
                    name = self._expect(TokenKind.IDENT, "field or function name")
                    if self._check(TokenKind.LPAREN):
                        expression = MethodCall(
                            expression,
                            name.value,
                            self._parse_arguments(),
                            position=name.position,
                        )
                    else:
                        expression = FieldAccess(
                            expression,
                            name.value,
                            position=name.position,
                        )
                case TokenKind.AT:
                    self._advance()
                    expression = ArrayIndex(
                        expression,
                        self._parse_primary(),
                        position=token.position,
                    )
                case _:
                    return expression

    def _parse_arguments(self) -> List[Expression]:
        self._expect(TokenKind.LPAREN, "'('")
        args: List[Expression] = []
        if not self._check(TokenKind.RPAREN):
            args.append(self.parse_expression())
            while self._match(TokenKind.COMMA):
                args.append(self.parse_expression())
        self._expect(TokenKind.RPAREN, "')'")
        return args

    def _parse_type_arguments(self) -> List[TypeExpr]:
        self._expect(TokenKind.LBRACKET, "'['")
        type_args = [self._parse_type()]
        while self._match(TokenKind.COMMA):
            type_args.append(self._parse_type())
        self._expect(TokenKind.RBRACKET, "']'")
        return type_args

    def _parse_primary(self) -> Expression:
        token = self._peek()
        match token.kind:
            case TokenKind.INT:
                self._advance()
                return IntLiteral(int(token.value), position=token.position)
            case TokenKind.FLOAT:
                self._advance()
                return FloatLiteral(float(token.value), position=token.position)
            case TokenKind.STRING:
                self._advance()
                return self._string_expression(token)
            case TokenKind.TRUE | TokenKind.FALSE:
                self._advance()
                return BoolLiteral(token.kind == TokenKind.TRUE, position=token.position)
            case TokenKind.NIL:
                self._advance()
                return NilLiteral(position=token.position)
            case TokenKind.IDENT:
                self._advance()
                return Identifier(token.value, position=token.position)
            case TokenKind.LPAREN:
                self._advance()
                expression = self.parse_expression()
                self._expect(TokenKind.RPAREN, "')'")
                return expression
            case TokenKind.LBRACKET:
                self._advance()
                elements: List[Expression] = []
                if not self._check(TokenKind.RBRACKET):
                    elements.append(self.parse_expression())
                    while self._match(TokenKind.COMMA):
                        elements.append(self.parse_expression())
                self._expect(TokenKind.RBRACKET, "']'")
                return ArrayLiteral(elements, position=token.position)
            case TokenKind.NEW:
                self._advance()
                return New(self._parse_type(), position=token.position)
            case kind if kind in RESERVED_KEYWORDS:
                raise ParseError(
                    f"'{token.value}' is reserved but not supported",
                    token,
                )
            case _:
                raise ParseError(
                    f"Expected an expression, found {_describe(token)}",
                    token,
                )

    def _string_expression(self, token: Token) -> Expression:
        """Desugar an interpolated string into a chain of `+` concatenations."""
        if not token.is_interpolated:
            return StringLiteral(token.value, position=token.position)
        parts: List[Expression] = []
        for segment in token.segments:
            if segment.is_interpolation:
                parts.append(Identifier(segment.text, position=token.position))
            elif segment.text:
                parts.append(StringLiteral(segment.text, position=token.position))
        if not isinstance(parts[0], StringLiteral):
            parts.insert(0, StringLiteral("", position=token.position))
        result = parts[0]
        for part in parts[1:]:
            result = BinaryExpr("+", result, part, position=token.position)
        return result


def parse_source(source: str, diagnostics: Optional[DiagnosticBag] = None) -> Program:
    bag = diagnostics if diagnostics is not None else DiagnosticBag()
    return Parser(Lexer(source, bag), bag).parse_program()


def parse(path: Path, diagnostics: Optional[DiagnosticBag] = None) -> Program:
    with open(path) as f:
        return parse_source(f.read(), diagnostics)


def parse_expression_source(
    source: str,
    diagnostics: Optional[DiagnosticBag] = None,
) -> Expression:
    """Parse a single expression; anything after it is a syntax error."""
    bag = diagnostics if diagnostics is not None else DiagnosticBag()
    parser = Parser(Lexer(source, bag), bag)
    expression = parser.parse_expression()
    trailing = parser.tokens.peek()
    if trailing.kind != TokenKind.EOF:
        bag.report_error(
            f"Unexpected {_describe(trailing)} after expression",
            trailing.position,
            Stage.PARSER,
        )
    return expression
