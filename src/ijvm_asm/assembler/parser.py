"""
JAS Assembly Language Parser
============================

This module implements a parser for JAS, the IJVM assembly language. It
converts the token stream from the lexer into a flat list of statements
that the code generator processes in order.

Program Structure
-----------------
```
.constant                 // optional, before any method
OBJREF 0xCAFE
.end-constant

.main
.var                      // optional, before the first instruction
total
.end-var
    BIPUSH 5
loop:
    GOTO loop
.end-main

.method add(a, b)
    ILOAD a
    ILOAD b
    IADD
    IRETURN
.end-method
```

Statement Types
---------------
1. **ConstantDef**: ``NAME value`` inside ``.constant``
2. **MethodDecl**: ``.main`` or ``.method header`` (header kept raw)
3. **VarDecl**: a local variable name inside ``.var``
4. **LabelDef**: ``name:``
5. **Instruction**: mnemonic plus operand tokens
6. **MethodEnd**: ``.end-main`` or ``.end-method``

Blocks must be properly nested; structural errors raise
AssemblySyntaxError with the offending location.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

from ijvm_asm.errors import AssemblySyntaxError, SourceLocation
from ijvm_asm.assembler.lexer import Lexer, Token, TokenType


# =============================================================================
# Statement Data Classes
# =============================================================================

@dataclass
class Statement:
    """Base class for all parsed statements."""
    location: SourceLocation


@dataclass
class ConstantDef(Statement):
    """Named 32-bit constant from the .constant block."""
    name: str
    value: int


@dataclass
class MethodDecl(Statement):
    """
    Start of a method.

    Attributes:
        header: ``"main"`` for .main, otherwise the raw ``name(params)`` text
    """
    header: str

    @property
    def is_main(self) -> bool:
        return self.header == "main"


@dataclass
class VarDecl(Statement):
    """Local variable declared in a .var block."""
    name: str


@dataclass
class LabelDef(Statement):
    """Label definition."""
    name: str


@dataclass
class Instruction(Statement):
    """
    Instruction statement.

    Attributes:
        mnemonic: The instruction mnemonic (uppercase)
        operands: One token (IDENTIFIER or NUMBER) per operand
    """
    mnemonic: str
    operands: list[Token] = field(default_factory=list)


@dataclass
class MethodEnd(Statement):
    """End of the current method (.end-main or .end-method)."""
    directive: str


# =============================================================================
# Directive Names
# =============================================================================

MAIN_DIRECTIVES = (".main", ".end-main")
METHOD_DIRECTIVES = (".method", ".end-method")
VAR_DIRECTIVES = (".var", ".end-var")
CONSTANT_DIRECTIVES = (".constant", ".end-constant")

ALL_DIRECTIVES = frozenset(
    MAIN_DIRECTIVES + METHOD_DIRECTIVES + VAR_DIRECTIVES + CONSTANT_DIRECTIVES
)


class _Block(Enum):
    """Parser block state."""
    TOP = auto()
    CONSTANT = auto()
    VARS = auto()
    BODY = auto()


# =============================================================================
# Parser Implementation
# =============================================================================

class Parser:
    """
    Parses JAS source tokens into statements.

    Usage:
        lexer = Lexer(source, filename)
        parser = Parser(list(lexer.tokenize()), filename, source)
        statements = parser.parse()
    """

    def __init__(self, tokens: list[Token], filename: str = "<input>", source: str = ""):
        """
        Initialize the parser.

        Args:
            tokens: List of tokens from lexer
            filename: Source filename for error reporting
            source: Original source text, used to quote lines in errors
        """
        self._tokens = tokens
        self._filename = filename
        self._lines = source.splitlines()
        self._pos = 0

        self._block = _Block.TOP
        self._method_end: Optional[str] = None   # directive that closes the open method
        self._method_location: Optional[SourceLocation] = None
        self._body_started = False
        self._vars_seen = False

    def parse(self) -> list[Statement]:
        """
        Parse all tokens into statements.

        Raises:
            AssemblySyntaxError: If a syntax error is encountered
        """
        statements: list[Statement] = []

        while not self._at_end():
            if self._match(TokenType.NEWLINE):
                continue
            statements.extend(self._parse_line())

        if self._block is _Block.CONSTANT:
            raise self._error("unterminated .constant block (missing .end-constant)")
        if self._block is _Block.VARS:
            raise self._error("unterminated .var block (missing .end-var)")
        if self._block is not _Block.TOP:
            opener = ".main" if self._method_end == ".end-main" else ".method"
            raise AssemblySyntaxError(
                f"unterminated {opener} block (missing {self._method_end})",
                self._method_location,
            )

        return statements

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self._tokens) or self._current().type == TokenType.EOF

    def _current(self) -> Token:
        if self._pos >= len(self._tokens):
            last = self._tokens[-1] if self._tokens else None
            return Token(
                TokenType.EOF, None,
                last.line if last else 1,
                last.column if last else 1,
                last.filename if last else self._filename,
            )
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._current()
        self._pos += 1
        return token

    def _check(self, *types: TokenType) -> bool:
        return self._current().type in types

    def _match(self, *types: TokenType) -> Optional[Token]:
        if self._check(*types):
            return self._advance()
        return None

    def _expect_eol(self) -> None:
        """Require the line to end here."""
        if not self._check(TokenType.NEWLINE, TokenType.EOF):
            tok = self._current()
            raise self._error(f"unexpected '{tok.value}' at end of line", tok)
        self._match(TokenType.NEWLINE)

    def _error(self, message: str, token: Optional[Token] = None) -> AssemblySyntaxError:
        """Create a syntax error at a token, quoting its source line."""
        tok = token or self._current()
        source_line = None
        if 0 < tok.line <= len(self._lines):
            source_line = self._lines[tok.line - 1]
        return AssemblySyntaxError(message, tok.location, source_line=source_line)

    # =========================================================================
    # Line Parsing
    # =========================================================================

    def _parse_line(self) -> list[Statement]:
        if self._check(TokenType.DIRECTIVE):
            return self._parse_directive()

        if self._block is _Block.TOP:
            raise self._error("expected .constant, .main or .method")

        if self._block is _Block.CONSTANT:
            return [self._parse_constant()]

        if self._block is _Block.VARS:
            return self._parse_vars()

        return self._parse_body_line()

    def _parse_directive(self) -> list[Statement]:
        token = self._advance()
        name = token.value

        if name not in ALL_DIRECTIVES:
            raise self._error(f"unknown directive '{name}'", token)

        if name == ".constant":
            if self._block is not _Block.TOP:
                raise self._error(".constant must appear outside methods", token)
            self._block = _Block.CONSTANT
            self._expect_eol()
            return []

        if name == ".end-constant":
            if self._block is not _Block.CONSTANT:
                raise self._error(".end-constant without .constant", token)
            self._block = _Block.TOP
            self._expect_eol()
            return []

        if name in (".main", ".method"):
            return [self._begin_method(token)]

        if name == ".var":
            if self._block is not _Block.BODY:
                raise self._error(".var must appear inside a method", token)
            if self._body_started or self._vars_seen:
                raise self._error(".var must come before the first instruction of a method", token)
            self._block = _Block.VARS
            self._vars_seen = True
            self._expect_eol()
            return []

        if name == ".end-var":
            if self._block is not _Block.VARS:
                raise self._error(".end-var without .var", token)
            self._block = _Block.BODY
            self._expect_eol()
            return []

        # .end-main / .end-method
        if self._block is _Block.VARS:
            raise self._error(f"missing .end-var before {name}", token)
        if self._block is not _Block.BODY or self._method_end != name:
            expected = self._method_end or "a method"
            raise self._error(f"unexpected {name} (expected {expected})", token)
        self._block = _Block.TOP
        self._method_end = None
        self._expect_eol()
        return [MethodEnd(token.location, name)]

    def _begin_method(self, token: Token) -> MethodDecl:
        if self._block is not _Block.TOP:
            raise self._error(f"{token.value} inside another block", token)

        if token.value == ".main":
            header = "main"
            self._method_end = ".end-main"
        else:
            header_tok = self._match(TokenType.HEADER)
            if header_tok is None:
                raise self._error("missing method declaration after .method", token)
            header = header_tok.value
            self._method_end = ".end-method"

        self._block = _Block.BODY
        self._method_location = token.location
        self._body_started = False
        self._vars_seen = False
        self._expect_eol()
        return MethodDecl(token.location, header)

    def _parse_constant(self) -> ConstantDef:
        name_tok = self._match(TokenType.IDENTIFIER)
        if name_tok is None:
            raise self._error("expected constant name")
        value_tok = self._match(TokenType.NUMBER)
        if value_tok is None:
            raise self._error(f"expected value for constant '{name_tok.value}'")
        self._expect_eol()
        return ConstantDef(name_tok.location, name_tok.value, value_tok.value)

    def _parse_vars(self) -> list[Statement]:
        decls: list[Statement] = []
        while not self._check(TokenType.NEWLINE, TokenType.EOF):
            if decls and self._match(TokenType.COMMA):
                continue
            tok = self._match(TokenType.IDENTIFIER)
            if tok is None:
                raise self._error("expected variable name")
            decls.append(VarDecl(tok.location, tok.value))
        self._expect_eol()
        return decls

    def _parse_body_line(self) -> list[Statement]:
        statements: list[Statement] = []

        # label:
        if self._check(TokenType.IDENTIFIER) and self._peek_type(1) == TokenType.COLON:
            tok = self._advance()
            self._advance()
            statements.append(LabelDef(tok.location, tok.value))
            self._body_started = True

        if self._check(TokenType.NEWLINE, TokenType.EOF):
            self._match(TokenType.NEWLINE)
            return statements

        mnemonic = self._match(TokenType.IDENTIFIER)
        if mnemonic is None:
            raise self._error(f"expected instruction, found '{self._current().value}'")

        operands: list[Token] = []
        while not self._check(TokenType.NEWLINE, TokenType.EOF):
            if operands and self._match(TokenType.COMMA):
                continue
            tok = self._match(TokenType.IDENTIFIER, TokenType.NUMBER)
            if tok is None:
                raise self._error(f"invalid operand '{self._current().value}'")
            operands.append(tok)
        self._match(TokenType.NEWLINE)

        statements.append(Instruction(mnemonic.location, mnemonic.value.upper(), operands))
        self._body_started = True
        return statements

    def _peek_type(self, offset: int) -> Optional[TokenType]:
        pos = self._pos + offset
        if pos >= len(self._tokens):
            return None
        return self._tokens[pos].type


# =============================================================================
# Convenience Function
# =============================================================================

def parse_source(source: str, filename: str = "<input>") -> list[Statement]:
    """
    Tokenize and parse JAS source.

    Args:
        source: JAS source code
        filename: Name used in error messages

    Returns:
        List of statements in source order

    Raises:
        AssemblySyntaxError: On any lexical or syntax error
    """
    lexer = Lexer(source, filename)
    parser = Parser(list(lexer.tokenize()), filename, source)
    return parser.parse()
