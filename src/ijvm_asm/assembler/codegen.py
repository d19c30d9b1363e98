"""
IJVM Code Generator
===================

This module turns parsed JAS statements into an IJVM binary. It works in
three phases:

Pass 1 (Collection)
-------------------
- Build the constant pool (named constants, then one entry per method in
  declaration order)
- Build every method: variable table, labels, instructions
- Resolve operands that are known immediately (bytes, variables,
  constants); label and method operands get a placeholder and a link flag
- Insert WIDE prefixes for large variable indices when widening is on

Linking
-------
- ``link_labels`` on every method, then ``link_methods`` on every method
- Both passes report all unresolved references before failing

Emission
--------
- Text block: ``main`` first, then the other methods in declaration order,
  each preceded by its 4-byte header
- Method constants receive their method's offset in the text block
- The result is framed as an IJVM file

IJVM File Format
----------------
```
Offset  Size  Description
------  ----  -----------
0       4     Magic: $1DEADFAD
4       4     Constant pool origin ($00000000)
8       4     Constant pool size in bytes (4 * entries)
12      n     Constant pool words, 4 bytes each
12+n    4     Text origin ($00000000)
16+n    4     Text size in bytes
20+n    m     Text
```
All integers are big-endian.

Force Mode
----------
With ``force=True`` a program that failed to resolve or link is still
emitted. Unresolved operands keep their placeholder value (0), so the
output is almost certainly wrong; a warning is logged.
"""

from io import BytesIO
from pathlib import Path
from typing import Optional
import difflib
import logging
import struct

from ijvm_asm.errors import (
    AssemblerError,
    AssemblySyntaxError,
    DuplicateSymbolError,
    ErrorCollector,
    MethodDeclarationError,
    OperandError,
    SourceLocation,
    UndefinedSymbolError,
)
from ijvm_asm.assembler.lexer import Token, TokenType
from ijvm_asm.assembler.parser import (
    ConstantDef,
    Instruction as InstructionStmt,
    LabelDef,
    MethodDecl,
    MethodEnd,
    Statement,
    VarDecl,
)
from ijvm_asm.assembler.opcodes import ArgType, OpcodeConfig
from ijvm_asm.assembler.method import Instruction, Method
from ijvm_asm.assembler.constants import ConstantPool

logger = logging.getLogger(__name__)


IJVM_MAGIC = 0x1DEADFAD
CONSTANT_POOL_ORIGIN = 0x00000000
TEXT_ORIGIN = 0x00000000

# Largest variable index WIDE can encode
MAX_WIDE_INDEX = 0xFFFF
MAX_NARROW_INDEX = 0xFF


class CodeGenerator:
    """
    Generates IJVM binaries from parsed statements.

    Usage:
        gen = CodeGenerator(OpcodeConfig.default(), auto_wide=True)
        image = gen.generate(parse_source(source, "prog.jas"))
        text = gen.get_code()
    """

    def __init__(
        self,
        config: Optional[OpcodeConfig] = None,
        auto_wide: bool = False,
        force: bool = False,
    ):
        """
        Initialize the code generator.

        Args:
            config: Instruction shapes (default: standard IJVM set)
            auto_wide: Insert WIDE before instructions whose variable index
                exceeds 255 instead of reporting an error
            force: Emit output even when resolution or linking failed
        """
        self._config = config or OpcodeConfig.default()
        self._auto_wide = auto_wide
        self._force = force

        self._errors = ErrorCollector()
        self._pool = ConstantPool()
        self._methods: list[Method] = []
        self._main: Optional[Method] = None
        self._current: Optional[Method] = None
        self._pending_wide: Optional[Instruction] = None
        self._offsets: dict[str, int] = {}
        self._text = b""
        self._linked = False

    # =========================================================================
    # Public Interface
    # =========================================================================

    def generate(self, statements: list[Statement]) -> bytes:
        """
        Generate an IJVM file from parsed statements.

        Args:
            statements: Statements from the parser, in source order

        Returns:
            The complete IJVM file

        Raises:
            AssemblerError: If assembly fails and force mode is off (the
                full report is also available from get_error_report())
            MethodDeclarationError: On a malformed method header
        """
        self._reset()

        self._pass1(statements)

        if self._errors.has_errors() and not self._force:
            raise AssemblerError(
                f"assembly failed with {self._errors.error_count()} error(s)"
            )

        self._linked = self.link()
        if not self._linked:
            if not self._force:
                raise AssemblerError(
                    f"linking failed with {self._errors.error_count()} error(s)"
                )
            logger.warning("Linking failed, forcing output generation")

        if self._errors.has_errors():
            logger.warning("Generating output despite %d error(s); the result is likely broken",
                           self._errors.error_count())

        self._emit()
        return self.build_ijvm()

    def link(self) -> bool:
        """
        Run both link passes over every method.

        All label links run before any method link. Every unresolved
        reference is reported to the error collector.

        Returns:
            True if everything resolved
        """
        ok = True
        for method in self._methods:
            if not method.link_labels(self._errors):
                ok = False
        for method in self._methods:
            if not method.link_methods(self._pool, self._errors):
                ok = False
        return ok

    def get_code(self) -> bytes:
        """Return the text block (method headers and code, no framing)."""
        return self._text

    def build_ijvm(self) -> bytes:
        """Frame the constant pool and text block as an IJVM file."""
        pool = b"".join(struct.pack(">I", word) for word in self._pool.words())
        out = bytearray()
        out += struct.pack(">I", IJVM_MAGIC)
        out += struct.pack(">II", CONSTANT_POOL_ORIGIN, len(pool))
        out += pool
        out += struct.pack(">II", TEXT_ORIGIN, len(self._text))
        out += self._text
        return bytes(out)

    @property
    def constant_pool(self) -> ConstantPool:
        return self._pool

    @property
    def methods(self) -> list[Method]:
        """Methods in declaration order (main included)."""
        return list(self._methods)

    @property
    def linked(self) -> bool:
        return self._linked

    def get_method_offsets(self) -> dict[str, int]:
        """Text block offset of every method, keyed by name."""
        return dict(self._offsets)

    def get_symbols(self) -> dict[str, int]:
        """
        Return constant and method symbols.

        Constants map to their value, methods to their text offset.
        """
        return {c.name: c.value for c in self._pool}

    def has_errors(self) -> bool:
        return self._errors.has_errors()

    def get_error_report(self) -> str:
        return self._errors.report()

    @property
    def errors(self) -> ErrorCollector:
        return self._errors

    # =========================================================================
    # Output Files
    # =========================================================================

    def get_listing(self) -> str:
        """
        Get the assembly listing as a string.

        Addresses are text block offsets.
        """
        lines = []
        lines.append("IJVM Assembler Listing")
        lines.append("=" * 60)
        lines.append("")
        lines.append("Addr  Code          Line  Source")
        lines.append("-" * 60)

        for method in self._ordered_methods():
            base = self._offsets.get(method.name, 0)
            if method.is_main:
                lines.append(f"{base:04X}                      .main")
            else:
                header = method.header_bytes().hex(" ").upper()
                params = ", ".join(method.parameters[1:])
                lines.append(f"{base:04X}  {header:12s}        .method {method.name}({params})")

            labels = {}
            for label in method.labels:
                labels.setdefault(label.byte_offset, []).append(label.name)

            for inst in method.instructions:
                for name in labels.pop(inst.byte_offset, []):
                    lines.append(f"{base + inst.byte_offset:04X}                      {name}:")
                code = inst.encode().hex(" ").upper()
                source = f"{inst.mnemonic} {inst.format_operands()}".rstrip()
                lines.append(f"{base + inst.byte_offset:04X}  {code:12s}  {inst.line:4d}      {source}")

            for offset, names in sorted(labels.items()):
                for name in names:
                    lines.append(f"{base + offset:04X}                      {name}:")
            lines.append("")

        lines.append("Constant Pool")
        lines.append("-" * 30)
        for constant in self._pool:
            kind = "method" if constant.is_method else "const"
            lines.append(f"#{constant.index:<4d} {constant.name:20s} = ${constant.value & 0xFFFFFFFF:08X}  {kind}")
        return "\n".join(lines)

    def write_listing(self, filepath: str | Path) -> None:
        """Write the assembly listing file."""
        with open(filepath, "w") as f:
            f.write(self.get_listing())

    def write_symbols(self, filepath: str | Path) -> None:
        """
        Write the symbol table file.

        Format: one ``kind name index value`` line per constant pool entry,
        then one ``label method.name offset`` line per label.
        """
        with open(filepath, "w") as f:
            f.write("# Symbol table\n")
            f.write("# Generated by ijasm\n")
            for constant in self._pool:
                kind = "method" if constant.is_method else "const"
                f.write(f"{kind} {constant.name} {constant.index} ${constant.value & 0xFFFFFFFF:08X}\n")
            for method in self._ordered_methods():
                base = self._offsets.get(method.name, 0)
                for label in method.labels:
                    f.write(f"label {method.name}.{label.name} ${base + label.byte_offset:04X}\n")

    def write_ijvm(self, filepath: str | Path) -> None:
        """Write the framed IJVM file."""
        Path(filepath).write_bytes(self.build_ijvm())

    def write_binary(self, filepath: str | Path) -> None:
        """Write the raw text block only."""
        Path(filepath).write_bytes(self._text)

    # =========================================================================
    # Pass 1: Collection and Operand Resolution
    # =========================================================================

    def _reset(self) -> None:
        self._errors.clear()
        self._pool = ConstantPool()
        self._methods = []
        self._main = None
        self._current = None
        self._pending_wide = None
        self._offsets = {}
        self._text = b""
        self._linked = False

    def _pass1(self, statements: list[Statement]) -> None:
        # Without force a flood of errors ends the run; with force every
        # statement is still assembled.
        stop = not self._force
        for stmt in statements:
            try:
                self._pass1_statement(stmt)
            except MethodDeclarationError as e:
                self._errors.add(e)
                raise
            except AssemblerError as e:
                self._errors.add(e, stop=stop)

        if self._main is None:
            self._errors.add(AssemblerError("program has no .main method"))

    def _pass1_statement(self, stmt: Statement) -> None:
        if isinstance(stmt, ConstantDef):
            self._pool.add_constant(stmt.name, stmt.value, stmt.location)

        elif isinstance(stmt, MethodDecl):
            self._begin_method(stmt)

        elif isinstance(stmt, VarDecl):
            self._declare_variable(stmt)

        elif isinstance(stmt, LabelDef):
            self._define_label(stmt)

        elif isinstance(stmt, InstructionStmt):
            self._assemble_instruction(stmt)

        elif isinstance(stmt, MethodEnd):
            if self._pending_wide is not None:
                self._warn(stmt.location, f"WIDE at end of .{self._current.name} has no effect")
            self._pending_wide = None
            self._current = None

    def _begin_method(self, stmt: MethodDecl) -> None:
        method = Method(stmt.header, stmt.location.line, stmt.location.filename)
        self._current = method
        self._pending_wide = None

        if method.is_main:
            if self._main is not None:
                raise DuplicateSymbolError(
                    "main",
                    location=stmt.location,
                    original_location=SourceLocation(self._main.filename, self._main.line),
                )
            self._main = method
            self._methods.append(method)
            return

        # A method with a duplicate name still gets its body assembled
        # so errors inside it are reported, but it is never emitted.
        self._pool.add_method(method, stmt.location)
        self._methods.append(method)
        logger.debug("Declared method %s with %d parameter slot(s)", method.name, method.num_params)

    def _declare_variable(self, stmt: VarDecl) -> None:
        method = self._current
        if method.var_index(stmt.name) is not None:
            self._warn(stmt.location,
                       f"variable '{stmt.name}' already declared in .{method.name}; "
                       f"references use the first declaration")
        method.add_variable(stmt.name)

    def _define_label(self, stmt: LabelDef) -> None:
        method = self._current
        existing = method.find_label(stmt.name)
        if existing is not None:
            self._warn(stmt.location,
                       f"label '{stmt.name}' already defined at line {existing.line} "
                       f"in .{method.name}; branches use the first definition")

        # A label between WIDE and its instruction marks the prefixed
        # instruction, so it must point at the prefix.
        if self._pending_wide is not None:
            offset = self._pending_wide.byte_offset
            logger.debug("Label %s follows WIDE, bound to offset %d", stmt.name, offset)
            method.add_label(stmt.name, stmt.location.line, byte_offset=offset)
        else:
            method.add_label(stmt.name, stmt.location.line)

    def _warn(self, location: SourceLocation, message: str) -> None:
        logger.warning("%s: %s", location, message)
        self._errors.add_warning(f"{location}: {message}")

    # =========================================================================
    # Instruction Assembly
    # =========================================================================

    def _assemble_instruction(self, stmt: InstructionStmt) -> None:
        method = self._current
        info = self._config.get(stmt.mnemonic)
        if info is None:
            similar = difflib.get_close_matches(stmt.mnemonic, sorted(self._config.mnemonics), n=3)
            hint = f"did you mean {', '.join(similar)}?" if similar else None
            raise AssemblySyntaxError(f"unknown instruction '{stmt.mnemonic}'", stmt.location, hint=hint)

        if len(stmt.operands) != len(info.args):
            kinds = " ".join(str(a) for a in info.args) or "none"
            raise OperandError(
                f"{info.mnemonic} expects {len(info.args)} operand(s) ({kinds}), "
                f"got {len(stmt.operands)}",
                stmt.location,
            )

        inst = Instruction(info, line=stmt.location.line, wide=self._pending_wide is not None)
        self._pending_wide = None

        for i, (arg, token) in enumerate(zip(info.args, stmt.operands)):
            inst.params[i] = self._resolve_operand(inst, arg, token)

        if inst.wide and not info.has_var:
            self._warn(stmt.location, f"WIDE has no effect on {info.mnemonic}")

        var_indices = [v for a, v in zip(info.args, inst.params) if a is ArgType.VAR]
        if var_indices and max(var_indices) > MAX_NARROW_INDEX and not inst.wide:
            wide = self._config.wide
            if not self._auto_wide or wide is None:
                raise OperandError(
                    f"variable index {max(var_indices)} in {info.mnemonic} exceeds {MAX_NARROW_INDEX}",
                    stmt.location,
                    hint="prefix the instruction with WIDE or assemble with --widen",
                )
            logger.debug("Inserting WIDE before %s at line %d", info.mnemonic, inst.line)
            method.append_instruction(Instruction(wide, line=inst.line))
            inst.wide = True

        if info is self._config.wide:
            self._pending_wide = inst

        method.append_instruction(inst)

    def _resolve_operand(self, inst: Instruction, arg: ArgType, token: Token) -> int:
        """Return the value of one operand, or a placeholder for link-time symbols."""
        location = token.location
        is_name = token.type == TokenType.IDENTIFIER

        if arg is ArgType.BYTE:
            if is_name:
                raise OperandError(f"{inst.mnemonic} expects a number, got '{token.value}'", location)
            if not -0x80 <= token.value <= 0xFF:
                self._warn(location, f"value {token.value} truncated to a byte")
            elif token.value > 0x7F:
                # IJVM byte operands are signed
                self._warn(location, f"value {token.value} is read back as {token.value - 0x100}")
            return token.value

        if arg is ArgType.VAR:
            if is_name:
                index = self._current.var_index(token.value)
                if index is None:
                    raise UndefinedSymbolError(
                        token.value,
                        location=location,
                        similar_symbols=difflib.get_close_matches(
                            token.value, self._current.variables, n=3),
                        kind="variable",
                        scope=self._current.name,
                    )
            else:
                index = token.value
            if not 0 <= index <= MAX_WIDE_INDEX:
                raise OperandError(f"variable index {index} out of range 0-{MAX_WIDE_INDEX}", location)
            return index

        if arg is ArgType.CONSTANT:
            if is_name:
                constant = self._pool.find(token.value)
                if constant is None:
                    raise UndefinedSymbolError(
                        token.value,
                        location=location,
                        similar_symbols=difflib.get_close_matches(token.value, self._pool.names(), n=3),
                        kind="constant",
                        scope=self._current.name,
                    )
                return constant.index
            return self._check_u16(token.value, "constant index", location)

        if arg is ArgType.LABEL:
            if is_name:
                self._set_symbol(inst, token)
                inst.link_label = True
                return 0
            if not -0x8000 <= token.value <= 0xFFFF:
                raise OperandError(f"branch offset {token.value} does not fit in 16 bits", location)
            return token.value

        if arg is ArgType.METHOD:
            if is_name:
                self._set_symbol(inst, token)
                inst.link_method = True
                return 0
            return self._check_u16(token.value, "method index", location)

        raise OperandError(f"unsupported operand kind {arg!r}", location)

    @staticmethod
    def _set_symbol(inst: Instruction, token: Token) -> None:
        if inst.symbol is not None and inst.symbol != token.value:
            raise OperandError(
                f"{inst.mnemonic} can reference only one label or method", token.location
            )
        inst.symbol = token.value

    @staticmethod
    def _check_u16(value: int, what: str, location: SourceLocation) -> int:
        if not 0 <= value <= 0xFFFF:
            raise OperandError(f"{what} {value} out of range 0-65535", location)
        return value

    # =========================================================================
    # Emission
    # =========================================================================

    def _ordered_methods(self) -> list[Method]:
        """Methods in text order: main first, then declaration order."""
        ordered = [self._main] if self._main is not None else []
        ordered.extend(m for m in self._methods if not m.is_main and self._is_registered(m))
        return ordered

    def _is_registered(self, method: Method) -> bool:
        constant = self._pool.find_method(method.name)
        return constant is not None and constant.method is method

    def _emit(self) -> None:
        offset = 0
        for method in self._ordered_methods():
            self._offsets[method.name] = offset
            if not method.is_main:
                self._pool.find_method(method.name).value = offset
            offset += method.size

        out = BytesIO()
        for method in self._ordered_methods():
            if not method.is_main:
                out.write(method.header_bytes())
            method.generate(out)
        self._text = out.getvalue()

        logger.info("Generated %d method(s), %d constant(s), %d byte(s) of text",
                    len(self._offsets), len(self._pool), len(self._text))
