"""
IJVM Instruction Set Definition
===============================

This module defines the operand-shape configuration of the IJVM: for every
mnemonic, its opcode byte and the ordered list of operand kinds it takes.
The assembler, the linker, the code generator and the disassembler all
read instruction shapes from an OpcodeConfig, so a custom instruction set
can be swapped in without touching any of them.

Operand Kinds
-------------
| Kind       | Width          | Meaning                                   |
|------------|----------------|-------------------------------------------|
| byte       | 1              | Immediate signed/unsigned byte            |
| var        | 1 (2 if WIDE)  | Index into the method's variable table    |
| label      | 2              | Signed branch displacement                |
| constant   | 2              | Constant pool index                       |
| method     | 2              | Constant pool index of a method           |

Configuration File Format
-------------------------
One instruction per line, ``//`` or ``#`` start a comment:

    0x10 BIPUSH byte
    0xA7 GOTO label
    0x84 IINC var byte
    0xB6 INVOKEVIRTUAL method

The aliases ``varnum`` (var), ``offset`` (label) and ``index`` (constant)
are accepted for compatibility with other JAS configuration files.

Reference
---------
- Tanenbaum, Structured Computer Organization, chapter 4 (IJVM)
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Optional
import logging
import re

from ijvm_asm.errors import ConfigError

logger = logging.getLogger(__name__)


# =============================================================================
# Operand Kind Enumeration
# =============================================================================

class ArgType(Enum):
    """
    IJVM operand kinds.

    The value of each member is its name in configuration files.
    """
    BYTE = "byte"          # Immediate byte
    VAR = "var"            # Variable slot index
    LABEL = "label"        # Branch displacement
    CONSTANT = "constant"  # Constant pool index
    METHOD = "method"      # Method constant pool index

    def width(self, wide: bool = False) -> int:
        """Encoded width in bytes of one operand of this kind."""
        if self is ArgType.BYTE:
            return 1
        if self is ArgType.VAR:
            return 2 if wide else 1
        return 2

    def __str__(self) -> str:
        return self.value


# Names accepted in configuration files
ARG_TYPE_NAMES: dict[str, ArgType] = {
    "byte": ArgType.BYTE,
    "var": ArgType.VAR,
    "varnum": ArgType.VAR,
    "label": ArgType.LABEL,
    "offset": ArgType.LABEL,
    "constant": ArgType.CONSTANT,
    "index": ArgType.CONSTANT,
    "method": ArgType.METHOD,
}


# =============================================================================
# Instruction Information
# =============================================================================

@dataclass(frozen=True)
class OpcodeInfo:
    """
    Shape of a single instruction.

    This dataclass is immutable (frozen) so the configuration cannot be
    modified after loading.

    Attributes:
        mnemonic: Instruction mnemonic (uppercase)
        opcode: Opcode byte
        args: Ordered operand kinds
    """
    mnemonic: str
    opcode: int
    args: tuple[ArgType, ...] = ()

    def size(self, wide: bool = False) -> int:
        """Total encoded size: opcode byte plus operand widths."""
        return 1 + sum(arg.width(wide) for arg in self.args)

    @property
    def has_var(self) -> bool:
        """True if any operand is a variable slot (affected by WIDE)."""
        return ArgType.VAR in self.args

    def __repr__(self) -> str:
        args = " ".join(str(a) for a in self.args)
        return f"OpcodeInfo({self.mnemonic}, ${self.opcode:02X}{', ' + args if args else ''})"


# =============================================================================
# Default Opcode Table
# =============================================================================
# The standard IJVM instruction set plus the common I/O extensions
# (IN, OUT, ERR, HALT) found in most IJVM implementations.
# =============================================================================

WIDE_MNEMONIC = "WIDE"

DEFAULT_OPCODES: tuple[OpcodeInfo, ...] = (
    # Stack manipulation
    OpcodeInfo("BIPUSH", 0x10, (ArgType.BYTE,)),          # Push byte
    OpcodeInfo("DUP", 0x59),                              # Duplicate top word
    OpcodeInfo("POP", 0x57),                              # Discard top word
    OpcodeInfo("SWAP", 0x5F),                             # Swap top two words
    OpcodeInfo("LDC_W", 0x13, (ArgType.CONSTANT,)),       # Push constant

    # Arithmetic and logic
    OpcodeInfo("IADD", 0x60),                             # Add
    OpcodeInfo("ISUB", 0x64),                             # Subtract
    OpcodeInfo("IAND", 0x7E),                             # Bitwise AND
    OpcodeInfo("IOR", 0xB0),                              # Bitwise OR

    # Local variables
    OpcodeInfo("ILOAD", 0x15, (ArgType.VAR,)),            # Push local
    OpcodeInfo("ISTORE", 0x36, (ArgType.VAR,)),           # Pop into local
    OpcodeInfo("IINC", 0x84, (ArgType.VAR, ArgType.BYTE)),  # Add constant to local
    OpcodeInfo(WIDE_MNEMONIC, 0xC4),                      # Widen next var index

    # Control flow
    OpcodeInfo("GOTO", 0xA7, (ArgType.LABEL,)),           # Unconditional branch
    OpcodeInfo("IFEQ", 0x99, (ArgType.LABEL,)),           # Branch if zero
    OpcodeInfo("IFLT", 0x9B, (ArgType.LABEL,)),           # Branch if negative
    OpcodeInfo("IF_ICMPEQ", 0x9F, (ArgType.LABEL,)),      # Branch if equal
    OpcodeInfo("INVOKEVIRTUAL", 0xB6, (ArgType.METHOD,)),  # Call method
    OpcodeInfo("IRETURN", 0xAC),                          # Return from method
    OpcodeInfo("NOP", 0x00),                              # No operation

    # Extensions
    OpcodeInfo("IN", 0xFC),                               # Read character
    OpcodeInfo("OUT", 0xFD),                              # Write character
    OpcodeInfo("ERR", 0xFE),                              # Halt with error
    OpcodeInfo("HALT", 0xFF),                             # Halt
)


# =============================================================================
# Opcode Configuration
# =============================================================================

_CONFIG_COMMENT = re.compile(r"(//|#).*$")


class OpcodeConfig:
    """
    Read-only operand-shape configuration.

    Usage:
        config = OpcodeConfig.default()
        info = config.get("BIPUSH")
        info.size()            # 2

        custom = OpcodeConfig.from_file("ijvm.conf")
    """

    def __init__(self, opcodes: Iterable[OpcodeInfo]):
        """
        Build a configuration from instruction shapes.

        Raises:
            ConfigError: On duplicate mnemonics or opcode bytes
        """
        self._by_mnemonic: dict[str, OpcodeInfo] = {}
        self._by_opcode: dict[int, OpcodeInfo] = {}

        for info in opcodes:
            if not 0 <= info.opcode <= 0xFF:
                raise ConfigError(
                    f"opcode ${info.opcode:X} for {info.mnemonic} is outside $00-$FF"
                )
            if info.mnemonic in self._by_mnemonic:
                raise ConfigError(f"duplicate mnemonic '{info.mnemonic}'")
            if info.opcode in self._by_opcode:
                other = self._by_opcode[info.opcode]
                raise ConfigError(
                    f"opcode ${info.opcode:02X} used by both {other.mnemonic} and {info.mnemonic}"
                )
            self._by_mnemonic[info.mnemonic] = info
            self._by_opcode[info.opcode] = info

    @classmethod
    def default(cls) -> "OpcodeConfig":
        """Return the built-in IJVM instruction set."""
        return cls(DEFAULT_OPCODES)

    @classmethod
    def from_string(cls, text: str, filename: str = "<config>") -> "OpcodeConfig":
        """
        Parse a configuration from text.

        Args:
            text: Configuration text
            filename: Name used in error messages

        Raises:
            ConfigError: If any line is malformed
        """
        opcodes = []
        for line_no, raw in enumerate(text.splitlines(), start=1):
            line = _CONFIG_COMMENT.sub("", raw).strip()
            if not line:
                continue

            fields = line.split()
            if len(fields) < 2:
                raise ConfigError(f"{filename}:{line_no}: expected 'OPCODE MNEMONIC [ARGS...]'")

            try:
                opcode = int(fields[0], 0)
            except ValueError:
                raise ConfigError(f"{filename}:{line_no}: invalid opcode '{fields[0]}'") from None

            args = []
            for name in fields[2:]:
                arg = ARG_TYPE_NAMES.get(name.lower())
                if arg is None:
                    raise ConfigError(f"{filename}:{line_no}: unknown operand kind '{name}'")
                args.append(arg)

            opcodes.append(OpcodeInfo(fields[1].upper(), opcode, tuple(args)))

        config = cls(opcodes)
        logger.debug("Loaded %d opcodes from %s", len(config), filename)
        return config

    @classmethod
    def from_file(cls, path: str | Path) -> "OpcodeConfig":
        """Load a configuration file."""
        path = Path(path)
        return cls.from_string(path.read_text(), str(path))

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, mnemonic: str) -> Optional[OpcodeInfo]:
        """Look up an instruction by mnemonic (case-insensitive)."""
        return self._by_mnemonic.get(mnemonic.upper())

    def by_opcode(self, opcode: int) -> Optional[OpcodeInfo]:
        """Look up an instruction by opcode byte."""
        return self._by_opcode.get(opcode)

    @property
    def wide(self) -> Optional[OpcodeInfo]:
        """The WIDE prefix instruction, if this configuration defines one."""
        return self._by_mnemonic.get(WIDE_MNEMONIC)

    @property
    def mnemonics(self) -> frozenset[str]:
        return frozenset(self._by_mnemonic)

    def __contains__(self, mnemonic: str) -> bool:
        return mnemonic.upper() in self._by_mnemonic

    def __iter__(self) -> Iterator[OpcodeInfo]:
        return iter(self._by_mnemonic.values())

    def __len__(self) -> int:
        return len(self._by_mnemonic)
