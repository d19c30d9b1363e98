"""
Exceptions for the IJVM Toolchain
=================================

Everything the assembler, disassembler and CLI tools raise derives from
IJVMError, so a caller can trap any toolchain failure in one place.

Exception Hierarchy
-------------------
IJVMError
├── AssemblerError              problem in a JAS source program
│   ├── AssemblySyntaxError     malformed source text or block structure
│   │   └── MethodDeclarationError  bad ``name(params)`` header
│   ├── UndefinedSymbolError    label, method, variable or constant not found
│   ├── DuplicateSymbolError    name declared twice in one scope
│   ├── OperandError            operand count, shape or range
│   └── TooManyErrors           collector limit hit
├── ConfigError                 bad opcode configuration
├── IJVMFormatError             unreadable IJVM binary
└── InternalError               toolchain bug, never user input

Assembler errors render as a compiler-style diagnostic:

    add.jas:12:10: error: undefined label 'lop'
        GOTO lop
             ^
    hint: did you mean 'loop'?
"""

from dataclasses import dataclass
from typing import Optional


class IJVMError(Exception):
    """Root of the toolchain's exception tree."""


# =============================================================================
# Source Locations
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    Position in a source file.

    ``line`` and ``column`` count from 1; a column of 0 means the column
    is not known and is left out of the rendered form.
    """
    filename: str
    line: int
    column: int = 0

    def __str__(self) -> str:
        parts = [self.filename, str(self.line)]
        if self.column:
            parts.append(str(self.column))
        return ":".join(parts)


# =============================================================================
# Assembler Exceptions
# =============================================================================

class AssemblerError(IJVMError):
    """
    An error in a JAS program.

    Attributes:
        message: Short description, without location
        location: SourceLocation of the offending text, if known
        hint: Suggested fix, printed on its own line
        source_line: The offending source line, echoed under the message
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        prefix = f"{self.location}: " if self.location else ""
        out = [f"{prefix}error: {self.message}"]

        if self.location is not None and self.source_line is not None:
            out.append("    " + self.source_line)
            if self.location.column > 0:
                out.append(" " * (self.location.column + 3) + "^")

        if self.hint:
            out.append("hint: " + self.hint)
        return "\n".join(out)


class AssemblySyntaxError(AssemblerError):
    """
    The source text does not follow JAS grammar: a stray character, an
    unclosed block, an instruction outside any method and so on.
    """


class MethodDeclarationError(AssemblySyntaxError):
    """
    A ``.method`` header that cannot be split into ``name(params)``.

    Unlike most assembler errors this one is not collected and skipped:
    the method cannot be built, so assembly stops.
    """


class UndefinedSymbolError(AssemblerError):
    """
    A symbolic operand that names nothing.

    ``kind`` says what was being looked up ("label", "method", "variable",
    "constant") and ``scope`` names the method it was looked up from.
    Close matches, when given, become a "did you mean" hint.
    """

    def __init__(
        self,
        symbol: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
        similar_symbols: Optional[list[str]] = None,
        kind: str = "symbol",
        scope: Optional[str] = None,
    ):
        self.symbol = symbol
        self.kind = kind
        self.scope = scope
        self.similar_symbols = list(similar_symbols or [])

        if hint is None and self.similar_symbols:
            quoted = ", ".join(repr(name) for name in self.similar_symbols[:3])
            hint = f"did you mean {quoted}?"

        where = f"[.{scope}] " if scope else ""
        super().__init__(
            f"{where}undefined {kind} '{symbol}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class DuplicateSymbolError(AssemblerError):
    """A constant or method name that is already taken."""

    def __init__(
        self,
        symbol: str,
        location: Optional[SourceLocation] = None,
        original_location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.symbol = symbol
        self.original_location = original_location
        super().__init__(
            f"duplicate symbol '{symbol}'",
            location=location,
            hint=f"'{symbol}' was first defined at {original_location}" if original_location else None,
            source_line=source_line,
        )


class OperandError(AssemblerError):
    """
    Operands that do not fit the instruction.

    Covers the operand count (``BIPUSH`` with nothing after it), the
    operand shape (a name where a number is needed) and value ranges
    (a variable index above 255 without WIDE).
    """


class TooManyErrors(AssemblerError):
    """Raised by ErrorCollector.add(stop=True) once max_errors is reached."""

    def __init__(self, message: str = "too many errors"):
        super().__init__(message)


# =============================================================================
# Other Exceptions
# =============================================================================

class ConfigError(IJVMError):
    """
    An opcode configuration that cannot be loaded: a malformed line, an
    opcode outside 0x00-0xFF, an unknown operand kind, or a mnemonic or
    opcode defined twice.
    """


class IJVMFormatError(IJVMError):
    """An IJVM file with a wrong magic number or a block that overruns it."""


class InternalError(IJVMError):
    """
    The toolchain reached a state valid input cannot produce.

    Code generation raises this for an operand kind it has no encoding
    for; nothing is written in that case.
    """


# =============================================================================
# Batch Error Reporting
# =============================================================================

class ErrorCollector:
    """
    Accumulates errors and warnings so a whole run can be reported at once.

    The code generator records every statement it cannot assemble and
    every reference linking cannot resolve, then prints one report.

        errors = ErrorCollector()
        if not method.link_labels(errors):
            print(errors.report())

    ``max_errors`` bounds the report, not the collection. Callers that
    want to give up early pass ``stop=True`` to add(); linking never does,
    so every unresolved reference is recorded.
    """

    def __init__(self, max_errors: int = 100):
        self.max_errors = max_errors
        self.errors: list[AssemblerError] = []
        self.warnings: list[str] = []

    def add(self, error: AssemblerError, stop: bool = False) -> None:
        """
        Record an error.

        Raises:
            TooManyErrors: If ``stop`` is set and max_errors has been reached
        """
        self.errors.append(error)
        if stop and self.limit_reached():
            raise TooManyErrors(f"stopping after {self.max_errors} errors")

    def limit_reached(self) -> bool:
        return len(self.errors) >= self.max_errors

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def has_errors(self) -> bool:
        return bool(self.errors)

    def error_count(self) -> int:
        return len(self.errors)

    def warning_count(self) -> int:
        return len(self.warnings)

    def report(self) -> str:
        """Render up to max_errors errors, then the warnings, then a count summary."""
        blocks = [str(error) + "\n" for error in self.errors[:self.max_errors]]
        hidden = self.error_count() - self.max_errors
        if hidden > 0:
            blocks.append(f"... {hidden} more error{'' if hidden == 1 else 's'} not shown\n")
        if self.warnings:
            blocks.append("Warnings:")
            blocks.extend("  " + warning for warning in self.warnings)

        n_err, n_warn = self.error_count(), self.warning_count()
        blocks.append(
            f"\n{n_err} error{'' if n_err == 1 else 's'}, "
            f"{n_warn} warning{'' if n_warn == 1 else 's'}"
        )
        return "\n".join(blocks)

    def clear(self) -> None:
        self.errors.clear()
        self.warnings.clear()
