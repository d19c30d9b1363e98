"""
JAS Lexer
=========

Splits JAS source text into tokens for the parser. JAS is line oriented,
so the lexer works one line at a time and emits a NEWLINE token between
lines; within a line a single master regular expression picks out the
next token.

Tokens
------
- IDENTIFIER: mnemonics, labels and variable, constant or method names
- DIRECTIVE: ``.main``, ``.end-method``, ``.var`` ... (lowercased)
- HEADER: everything after ``.method`` up to a comment, unparsed
- NUMBER: an integer literal, see below
- COMMA, COLON
- NEWLINE, EOF

Numbers
-------
| Form        | Example | Value |
|-------------|---------|-------|
| decimal     | -12     | -12   |
| hex         | 0x7F    | 127   |
| binary      | 0b1010  | 10    |
| octal       | 0o177   | 127   |
| character   | 'A'     | 65    |

Character literals accept the escapes ``\\n \\r \\t \\\\ \\' \\0``.

``//`` comments run to the end of the line.

Method headers are kept as raw text because method construction does its
own validation of the ``name(params)`` form.

>>> for token in Lexer("loop: BIPUSH 0x41 // push 'A'").tokenize():
...     print(token)
Token(IDENTIFIER, 'loop', 1:1)
Token(COLON, ':', 1:5)
Token(IDENTIFIER, 'BIPUSH', 1:7)
Token(NUMBER, 65, 1:14)
Token(EOF, 1:30)
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator
import re

from ijvm_asm.errors import AssemblySyntaxError, SourceLocation


class TokenType(Enum):
    """Kinds of JAS token."""
    NEWLINE = auto()
    EOF = auto()

    IDENTIFIER = auto()
    DIRECTIVE = auto()
    HEADER = auto()
    NUMBER = auto()

    COMMA = auto()
    COLON = auto()


@dataclass(frozen=True)
class Token:
    """
    One lexical element.

    ``value`` is the text for names, directives and headers, the integer
    for numbers, the character for delimiters, and None for NEWLINE/EOF.
    """
    type: TokenType
    value: str | int | None
    line: int
    column: int
    filename: str

    def __repr__(self) -> str:
        shown = "" if self.value is None else f", {self.value!r}"
        return f"Token({self.type.name}{shown}, {self.line}:{self.column})"

    __str__ = __repr__

    @property
    def location(self) -> SourceLocation:
        return SourceLocation(self.filename, self.line, self.column)


# =============================================================================
# Scanner Tables
# =============================================================================

_TOKEN_RE = re.compile(r"""
      (?P<space>     [ \t\r]+ )
    | (?P<comment>   //.* )
    | (?P<directive> \.[A-Za-z0-9_-]* )
    | (?P<number>    -?[0-9][A-Za-z0-9_]* )
    | (?P<char>      '(?: \\(?P<escape>.) | (?P<plain>[^\\']) )' )
    | (?P<name>      [A-Za-z_][A-Za-z0-9_]* )
    | (?P<punct>     [,:] )
""", re.VERBOSE)

_PUNCTUATION = {",": TokenType.COMMA, ":": TokenType.COLON}

_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\", "'": "'", "0": "\0"}

# Prefix letter -> (base, valid digits)
_RADIX = {
    "x": (16, "0123456789abcdefABCDEF"),
    "b": (2, "01"),
    "o": (8, "01234567"),
}

METHOD_DIRECTIVE = ".method"


class Lexer:
    """
    Tokenizer for JAS source.

        tokens = list(Lexer(text, "prog.jas").tokenize())

    Raises AssemblySyntaxError (with the offending line quoted) on text
    that is not a token.
    """

    def __init__(self, source: str, filename: str = "<input>", line_number: int = 1):
        self.source = source
        self.filename = filename
        self.first_line = line_number

    def tokenize(self) -> Iterator[Token]:
        lines = self.source.split("\n")
        for i, text in enumerate(lines):
            line = self.first_line + i
            yield from self._scan_line(text, line)
            if i < len(lines) - 1:
                yield Token(TokenType.NEWLINE, None, line, len(text) + 1, self.filename)

        last = lines[-1]
        yield Token(TokenType.EOF, None, self.first_line + len(lines) - 1, len(last) + 1, self.filename)

    # =========================================================================
    # Line Scanning
    # =========================================================================

    def _scan_line(self, text: str, line: int) -> Iterator[Token]:
        pos = 0
        while pos < len(text):
            match = _TOKEN_RE.match(text, pos)
            if match is None:
                raise self._unexpected(text, line, pos)

            kind = match.lastgroup
            lexeme = match.group(kind)
            column = pos + 1
            pos = match.end()

            if kind in ("space", "comment"):
                continue

            if kind == "directive":
                if lexeme == ".":
                    raise self._error("expected directive name after '.'", text, line, column)
                directive = lexeme.lower()
                yield self._token(TokenType.DIRECTIVE, directive, line, column)
                if directive == METHOD_DIRECTIVE:
                    header = self._header(text, line, pos)
                    if header is not None:
                        yield header
                    return

            elif kind == "number":
                yield self._token(TokenType.NUMBER, self._number(lexeme, text, line, column), line, column)

            elif kind == "char":
                escape = match.group("escape")
                char = _ESCAPES.get(escape, escape) if escape is not None else match.group("plain")
                yield self._token(TokenType.NUMBER, ord(char), line, column)

            elif kind == "name":
                yield self._token(TokenType.IDENTIFIER, lexeme, line, column)

            else:
                yield self._token(_PUNCTUATION[lexeme], lexeme, line, column)

    def _header(self, text: str, line: int, pos: int) -> Token | None:
        """Raw header text after .method, or None when the line has none."""
        rest = text[pos:].split("//", 1)[0]
        header = rest.strip()
        if not header:
            return None
        column = pos + len(rest) - len(rest.lstrip()) + 1
        return self._token(TokenType.HEADER, header, line, column)

    def _number(self, lexeme: str, text: str, line: int, column: int) -> int:
        sign = -1 if lexeme.startswith("-") else 1
        body = lexeme.lstrip("-")
        offset = column + len(lexeme) - len(body)

        base, valid = 10, "0123456789"
        if len(body) > 1 and body[0] == "0" and body[1].lower() in _RADIX:
            base, valid = _RADIX[body[1].lower()]
            body = body[2:]
            offset += 2
            if not body:
                raise self._error(f"expected base-{base} digits", text, line, offset)

        for i, ch in enumerate(body):
            if ch not in valid:
                raise self._error(f"invalid character '{ch}' in number", text, line, offset + i)

        return sign * int(body, base)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _token(self, kind: TokenType, value: str | int, line: int, column: int) -> Token:
        return Token(kind, value, line, column, self.filename)

    def _unexpected(self, text: str, line: int, pos: int) -> AssemblySyntaxError:
        char = text[pos]
        if char == "'":
            return self._error("unterminated character literal", text, line, pos + 1)
        return self._error(f"unexpected character '{char}'", text, line, pos + 1)

    def _error(self, message: str, text: str, line: int, column: int) -> AssemblySyntaxError:
        return AssemblySyntaxError(
            message, SourceLocation(self.filename, line, column), source_line=text
        )
