"""
IJVM Assembler - Main Interface
===============================

This module provides the main Assembler class, the primary interface for
assembling JAS source code. It coordinates the lexer, parser and code
generator to produce IJVM binaries.

Example Usage
-------------
>>> from ijvm_asm.assembler import Assembler
>>>
>>> asm = Assembler()
>>> image = asm.assemble_string('''
... .main
...     BIPUSH 0x41
...     OUT
...     HALT
... .end-main
... ''')
>>>
>>> # Text block only
>>> code = asm.get_code()
>>> print(f"Generated {len(code)} bytes")
>>>
>>> asm.write_ijvm("hello.ijvm")

Command-Line Usage
------------------
    $ ijasm hello.jas -o hello.ijvm -l hello.lst -s hello.sym

Options:
    -o, --output FILE      Output file ('-' for stdout)
    -c, --config FILE      Opcode configuration file
    -f, --force            Generate output despite errors
    -w, --widen            Insert WIDE automatically
    -b, --binary           Write the raw text block only
    -l, --listing FILE     Generate listing file
    -s, --symbols FILE     Generate symbol file
"""

from pathlib import Path
from typing import Optional
import logging

from ijvm_asm.assembler.parser import parse_source
from ijvm_asm.assembler.codegen import CodeGenerator
from ijvm_asm.assembler.opcodes import OpcodeConfig
from ijvm_asm.assembler.method import Method
from ijvm_asm.assembler.constants import ConstantPool

logger = logging.getLogger(__name__)


class Assembler:
    """
    Main IJVM assembler class.

    The assembler supports:
    - The standard IJVM instruction set, or a custom one from a
      configuration file
    - Constants, methods with parameters and locals, labels
    - Automatic WIDE insertion for large variable indices
    - Force mode (emit despite unresolved references)
    - Multiple output formats (IJVM file, raw text, listing, symbols)
    """

    def __init__(
        self,
        config: Optional[OpcodeConfig] = None,
        auto_wide: bool = False,
        force: bool = False,
    ):
        """
        Initialize the assembler.

        Args:
            config: Instruction set (default: standard IJVM)
            auto_wide: Insert WIDE before instructions with variable
                indices above 255
            force: Generate output even if resolution or linking fails
        """
        self._config = config or OpcodeConfig.default()
        self._auto_wide = auto_wide
        self._force = force
        self._codegen = CodeGenerator(self._config, auto_wide=auto_wide, force=force)
        self._image = b""

    @property
    def config(self) -> OpcodeConfig:
        return self._config

    # =========================================================================
    # Assembly
    # =========================================================================

    def assemble_string(self, source: str, filename: str = "<input>") -> bytes:
        """
        Assemble source code from a string.

        Args:
            source: JAS source code
            filename: Name used in error messages

        Returns:
            The IJVM file contents

        Raises:
            AssemblerError: If assembly fails (see get_error_report())
        """
        logger.info("Assembling %s", filename)

        statements = parse_source(source, filename)
        logger.debug("Parsed %d statements", len(statements))

        self._image = self._codegen.generate(statements)
        logger.info("Generated %d bytes (%d bytes of text)",
                    len(self._image), len(self._codegen.get_code()))
        return self._image

    def assemble_file(self, filepath: str | Path) -> bytes:
        """
        Assemble a source file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            AssemblerError: If assembly fails
        """
        filepath = Path(filepath)
        source = filepath.read_text(encoding="utf-8")
        return self.assemble_string(source, str(filepath))

    # =========================================================================
    # Results
    # =========================================================================

    def get_ijvm(self) -> bytes:
        """Return the complete IJVM file from the last assembly."""
        return self._image

    def get_code(self) -> bytes:
        """Return the text block from the last assembly."""
        return self._codegen.get_code()

    def get_symbols(self) -> dict[str, int]:
        """Return constants (value) and methods (text offset) by name."""
        return self._codegen.get_symbols()

    def get_listing(self) -> str:
        return self._codegen.get_listing()

    def get_methods(self) -> list[Method]:
        return self._codegen.methods

    def get_method_offsets(self) -> dict[str, int]:
        return self._codegen.get_method_offsets()

    def get_constant_pool(self) -> ConstantPool:
        return self._codegen.constant_pool

    # =========================================================================
    # Output Files
    # =========================================================================

    def write_ijvm(self, filepath: str | Path) -> None:
        """Write the IJVM file."""
        self._codegen.write_ijvm(filepath)
        logger.info("Wrote %s", filepath)

    def write_binary(self, filepath: str | Path) -> None:
        """
        Write the raw text block (no magic, no constant pool).

        Useful for inspecting code with a hex viewer or feeding a
        simulator that loads the constant pool separately.
        """
        self._codegen.write_binary(filepath)
        logger.info("Wrote %d bytes to %s", len(self.get_code()), filepath)

    def write_listing(self, filepath: str | Path) -> None:
        """Write the assembly listing file."""
        self._codegen.write_listing(filepath)
        logger.info("Wrote listing to %s", filepath)

    def write_symbols(self, filepath: str | Path) -> None:
        """Write the symbol table file."""
        self._codegen.write_symbols(filepath)
        logger.info("Wrote symbols to %s", filepath)

    # =========================================================================
    # Error Handling
    # =========================================================================

    def has_errors(self) -> bool:
        """True if the last assembly produced errors (possibly forced through)."""
        return self._codegen.has_errors()

    def get_error_report(self) -> str:
        return self._codegen.get_error_report()

    def get_warnings(self) -> list[str]:
        return list(self._codegen.errors.warnings)


# =============================================================================
# Convenience Functions
# =============================================================================

def assemble(
    source: str,
    filename: str = "<input>",
    auto_wide: bool = False,
    force: bool = False,
) -> bytes:
    """
    Convenience function to assemble source code.

    Returns:
        The IJVM file contents

    Raises:
        AssemblerError: If assembly fails
    """
    asm = Assembler(auto_wide=auto_wide, force=force)
    return asm.assemble_string(source, filename)


def assemble_file(
    filepath: str | Path,
    auto_wide: bool = False,
    force: bool = False,
) -> bytes:
    """
    Convenience function to assemble a file.

    Raises:
        AssemblerError: If assembly fails
    """
    asm = Assembler(auto_wide=auto_wide, force=force)
    return asm.assemble_file(filepath)
