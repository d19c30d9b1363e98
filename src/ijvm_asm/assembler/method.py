"""
IJVM Method Model and Linker
============================

This module holds the per-method state of the assembler and the two link
passes that turn symbolic operands into numbers.

Method Layout
-------------
Every method owns:

- an ordered instruction list (emission order)
- a variable table: parameters followed by ``.var`` locals
- a label table
- a running byte counter that stamps every instruction and label at the
  moment it is appended

Non-entry methods reserve slot 0 of the variable table for the return
link (``"LINK PTR"``) and start their byte counter at 4, the size of the
method header (2-byte argument count, 2-byte local count) that precedes
their code in the text block. The entry method ``main`` has neither.

Offsets are never recomputed, so the whole program must be parsed before
linking starts.

Linking
-------
Two independent passes run once all methods are known:

1. **link_labels**: branch operands become the signed displacement
   ``label.byte_offset - instruction.byte_offset``.
2. **link_methods**: call operands become the constant pool index of the
   called method.

Both passes report every unresolved reference instead of stopping at the
first, leave the placeholder (0) in place, and return False.

Encoding
--------
| Operand  | Bytes          | Notes                               |
|----------|----------------|-------------------------------------|
| byte     | 1              | two's complement for negatives      |
| var      | 1 (2 if WIDE)  | big-endian when wide                |
| label    | 2              | signed displacement, wraps to 16 bit |
| constant | 2              | big-endian                          |
| method   | 2              | big-endian                          |
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, BinaryIO, Optional
import difflib
import logging
import struct

from ijvm_asm.errors import (
    ErrorCollector,
    InternalError,
    MethodDeclarationError,
    SourceLocation,
    UndefinedSymbolError,
)
from ijvm_asm.assembler.opcodes import ArgType, OpcodeInfo

if TYPE_CHECKING:
    from ijvm_asm.assembler.constants import ConstantPool

logger = logging.getLogger(__name__)


MAIN_METHOD_NAME = "main"

# Placeholder for the return link in slot 0 of non-entry methods
LINK_PTR = "LINK PTR"

# Argument count (2 bytes) + local count (2 bytes)
METHOD_HEADER_SIZE = 4


# =============================================================================
# Method Header Parsing
# =============================================================================

def parse_method_header(
    header: str,
    location: Optional[SourceLocation] = None,
) -> tuple[str, list[str]]:
    """
    Split a method header into its name and parameter names.

    Accepts the bare entry header ``main`` or ``name(p1, p2, ...)``.
    Whitespace around the name and each parameter is trimmed.

    Args:
        header: Raw header text
        location: Where the header appears, for error messages

    Returns:
        Tuple of (name, parameters)

    Raises:
        MethodDeclarationError: On a missing '(' or ')', characters after
            ')', or an empty name or parameter
    """
    if header == MAIN_METHOD_NAME:
        return MAIN_METHOD_NAME, []

    if "(" not in header:
        raise MethodDeclarationError(
            "invalid method declaration: missing opening parenthesis",
            location,
            source_line=header,
        )
    raw_name, param_str = header.split("(", 1)
    name = raw_name.strip()

    if ")" not in param_str:
        raise MethodDeclarationError(
            "invalid method declaration: missing closing parenthesis",
            location,
            source_line=header,
        )
    param_str, junk = param_str.split(")", 1)
    if junk.strip():
        raise MethodDeclarationError(
            "invalid method declaration: characters remaining after parameter list",
            location,
            source_line=header,
        )

    if not name:
        raise MethodDeclarationError(
            "invalid method declaration: missing method name", location, source_line=header
        )

    if not param_str.strip():
        return name, []

    params = [p.strip() for p in param_str.split(",")]
    if "" in params:
        raise MethodDeclarationError(
            "invalid method declaration: empty parameter name", location, source_line=header
        )
    return name, params


# =============================================================================
# Labels and Instructions
# =============================================================================

@dataclass
class Label:
    """
    A named position in a method's byte stream.

    Attributes:
        name: Label name (scoped to one method)
        byte_offset: Method byte counter when the label was declared
        line: Source line, diagnostics only
    """
    name: str
    byte_offset: int
    line: int = 0


@dataclass
class Instruction:
    """
    One assembled instruction.

    ``params`` holds one integer per operand kind of the opcode. A
    symbolic operand is stored as a placeholder 0 plus ``symbol`` and a
    link flag telling which pass resolves it.

    Attributes:
        opcode: Instruction shape from the opcode configuration
        params: Operand values, rewritten in place by linking
        line: Source line, diagnostics only
        symbol: Pending label or method name
        link_label: Resolved by Method.link_labels
        link_method: Resolved by Method.link_methods
        wide: Preceded by WIDE (var operands take 2 bytes)
        byte_offset: Method byte counter when the instruction was appended
    """
    opcode: OpcodeInfo
    params: list[int] = field(default_factory=list)
    line: int = 0
    symbol: Optional[str] = None
    link_label: bool = False
    link_method: bool = False
    wide: bool = False
    byte_offset: int = 0

    def __post_init__(self) -> None:
        if not self.params:
            self.params = [0] * len(self.opcode.args)
        if len(self.params) != len(self.opcode.args):
            raise InternalError(
                f"{self.opcode.mnemonic} has {len(self.opcode.args)} operand kinds "
                f"but {len(self.params)} values"
            )

    @property
    def mnemonic(self) -> str:
        return self.opcode.mnemonic

    @property
    def size(self) -> int:
        """Encoded size in bytes."""
        return self.opcode.size(self.wide)

    def encode(self) -> bytes:
        """
        Encode the opcode byte followed by every operand.

        Raises:
            InternalError: If an operand kind has no encoding
        """
        out = bytearray([self.opcode.opcode])
        for arg, value in zip(self.opcode.args, self.params):
            if arg is ArgType.BYTE:
                out += struct.pack(">B", value & 0xFF)
            elif arg is ArgType.VAR:
                if self.wide:
                    out += struct.pack(">H", value & 0xFFFF)
                else:
                    out += struct.pack(">B", value & 0xFF)
            elif arg in (ArgType.LABEL, ArgType.CONSTANT, ArgType.METHOD):
                out += struct.pack(">H", value & 0xFFFF)
            else:
                raise InternalError(
                    f"cannot encode operand kind {arg!r} of {self.opcode.mnemonic}"
                )
        return bytes(out)

    def format_operands(self) -> str:
        """Operands as source-like text, used by listings."""
        parts = []
        for arg, value in zip(self.opcode.args, self.params):
            if self.symbol and arg in (ArgType.LABEL, ArgType.METHOD):
                parts.append(f"{self.symbol} ({value:+d})" if arg is ArgType.LABEL
                             else f"{self.symbol} (#{value})")
            else:
                parts.append(str(value))
        return " ".join(parts)


# =============================================================================
# Method
# =============================================================================

class Method:
    """
    A single IJVM method context.

    Usage:
        method = Method("add(a, b)", line=12)
        method.var_index("b")          # 2
        method.append_instruction(Instruction(config.get("ILOAD"), [1]))
        method.link_labels(errors)
        method.link_methods(pool, errors)
        method.generate(out)
    """

    def __init__(self, header: str, line: int = 0, filename: str = "<input>"):
        """
        Create a method from its declaration header.

        Args:
            header: ``"main"`` or ``"name(params)"``
            line: Declaration line
            filename: Source file, for diagnostics

        Raises:
            MethodDeclarationError: If the header is malformed
        """
        location = SourceLocation(filename, line)
        name, params = parse_method_header(header, location)

        self.is_main = header == MAIN_METHOD_NAME
        if not self.is_main and name == MAIN_METHOD_NAME:
            raise MethodDeclarationError(
                "'main' is reserved for the .main block", location, source_line=header
            )

        self.name = name
        self.line = line
        self.filename = filename

        self.variables: list[str] = [] if self.is_main else [LINK_PTR, *params]
        self.num_params = len(self.variables)

        self.instructions: list[Instruction] = []
        self.labels: list[Label] = []

        self.start_byte = 0 if self.is_main else METHOD_HEADER_SIZE
        self.current_byte = self.start_byte

    def __repr__(self) -> str:
        return f"Method({self.name!r}, params={self.num_params}, bytes={self.current_byte})"

    # =========================================================================
    # Variables
    # =========================================================================

    @property
    def parameters(self) -> list[str]:
        """Parameter slots, including the return link for non-entry methods."""
        return self.variables[:self.num_params]

    @property
    def locals(self) -> list[str]:
        """Variables declared in .var."""
        return self.variables[self.num_params:]

    @property
    def num_locals(self) -> int:
        return len(self.variables) - self.num_params

    def var_index(self, name: str) -> Optional[int]:
        """
        Index of a variable in the method's variable table.

        Returns the first match, or None if the name is not declared.
        """
        for i, var in enumerate(self.variables):
            if var == name:
                return i
        return None

    def add_variable(self, name: str) -> int:
        """Declare a local variable and return its index."""
        self.variables.append(name)
        return len(self.variables) - 1

    # =========================================================================
    # Instruction Stream
    # =========================================================================

    @property
    def size(self) -> int:
        """Bytes this method occupies in the text block, header included."""
        return self.current_byte

    def append_instruction(self, inst: Instruction) -> None:
        """Stamp an instruction with the current byte offset and append it."""
        inst.byte_offset = self.current_byte
        self.instructions.append(inst)
        self.current_byte += inst.size

    def add_label(self, name: str, line: int = 0, byte_offset: Optional[int] = None) -> Label:
        """Declare a label at the current byte offset, or at ``byte_offset`` if given."""
        if byte_offset is None:
            byte_offset = self.current_byte
        label = Label(name, byte_offset, line)
        self.labels.append(label)
        return label

    def find_label(self, name: str) -> Optional[Label]:
        """First label with the given name, or None."""
        for label in self.labels:
            if label.name == name:
                return label
        return None

    def header_bytes(self) -> bytes:
        """
        The 4-byte method header: argument count and local count.

        The argument count includes the return link slot.
        """
        return struct.pack(">HH", self.num_params, self.num_locals)

    # =========================================================================
    # Linking
    # =========================================================================

    def link_labels(self, errors: Optional[ErrorCollector] = None) -> bool:
        """
        Replace every label operand with its branch displacement.

        Unresolved labels are reported (logged, and added to ``errors``
        when given) and keep their placeholder value; linking continues
        with the remaining instructions.

        Returns:
            True if every label operand resolved
        """
        ok = True
        for inst in self.instructions:
            if not inst.link_label:
                continue
            for i, arg in enumerate(inst.opcode.args):
                if arg is not ArgType.LABEL:
                    continue
                label = self.find_label(inst.symbol)
                if label is None:
                    logger.error("[.%s] Undefined label `%s` at line %d",
                                 self.name, inst.symbol, inst.line)
                    self._report(errors, inst, "label", [lbl.name for lbl in self.labels])
                    ok = False
                    continue
                inst.params[i] = label.byte_offset - inst.byte_offset
                logger.debug("[.%s] Linking label, line %d: @%d -> %s@%d, offset = %d",
                             self.name, inst.line, inst.byte_offset,
                             label.name, label.byte_offset, inst.params[i])
        return ok

    def link_methods(self, pool: "ConstantPool", errors: Optional[ErrorCollector] = None) -> bool:
        """
        Replace every method operand with the callee's constant pool index.

        Args:
            pool: The program-wide constant pool
            errors: Optional collector for undefined-method errors

        Returns:
            True if every method operand resolved
        """
        ok = True
        for inst in self.instructions:
            if not inst.link_method:
                continue
            for i, arg in enumerate(inst.opcode.args):
                if arg is not ArgType.METHOD:
                    continue
                constant = pool.find_method(inst.symbol)
                if constant is None:
                    logger.error("[.%s] Undefined method `%s` at line %d",
                                 self.name, inst.symbol, inst.line)
                    self._report(errors, inst, "method", pool.method_names())
                    ok = False
                    continue
                inst.params[i] = constant.index
                logger.debug("[.%s] Linking method, line %d: %s -> %d",
                             self.name, inst.line, constant.name, inst.params[i])
        return ok

    def _report(
        self,
        errors: Optional[ErrorCollector],
        inst: Instruction,
        kind: str,
        candidates: list[str],
    ) -> None:
        if errors is None:
            return
        errors.add(UndefinedSymbolError(
            inst.symbol,
            location=SourceLocation(self.filename, inst.line),
            similar_symbols=difflib.get_close_matches(inst.symbol, candidates, n=3),
            kind=kind,
            scope=self.name,
        ))

    # =========================================================================
    # Code Generation
    # =========================================================================

    def generate(self, out: BinaryIO) -> None:
        """
        Write the method's instructions to a binary stream.

        The method header is not written here; framing is the caller's
        concern (see CodeGenerator).

        Raises:
            InternalError: If an instruction has an operand kind with no encoding
        """
        for inst in self.instructions:
            out.write(inst.encode())
