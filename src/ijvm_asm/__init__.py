"""
IJVM Toolchain - Assembler and Disassembler for the IJVM
========================================================

This package provides an assembler for JAS source files and a
disassembler for the resulting IJVM binaries.

The IJVM is the integer subset of the Java virtual machine described in
Tanenbaum's Structured Computer Organization. Programs consist of a
constant pool and a text block holding the entry method ``main`` followed
by the other methods, each with a small header.

Main Components
---------------
- **assembler**: JAS assembler (ijasm)
    Converts assembly source files (.jas) to IJVM binaries (.ijvm)

- **disassembler**: IJVM disassembler (ijdisasm)
    Decodes IJVM binaries back into readable instructions

Quick Start
-----------
Assemble a program:
    >>> from ijvm_asm.assembler import Assembler
    >>> asm = Assembler()
    >>> image = asm.assemble_file("hello.jas")
    >>> asm.write_ijvm("hello.ijvm")

Disassemble it again:
    >>> from ijvm_asm.disassembler import IJVMDisassembler, parse_ijvm
    >>> program = parse_ijvm(image)
    >>> print(IJVMDisassembler().disassemble_to_text(program.text))

Or use the command-line tools:
    $ ijasm hello.jas -o hello.ijvm
    $ ijdisasm hello.ijvm
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from ijvm_asm.assembler import Assembler, OpcodeConfig, assemble, assemble_file
from ijvm_asm.disassembler import IJVMDisassembler, IJVMProgram, parse_ijvm
from ijvm_asm.errors import (
    IJVMError,
    AssemblerError,
    AssemblySyntaxError,
    MethodDeclarationError,
    UndefinedSymbolError,
    DuplicateSymbolError,
    OperandError,
    ConfigError,
    IJVMFormatError,
    InternalError,
)

__all__ = [
    "__version__",
    "Assembler",
    "OpcodeConfig",
    "assemble",
    "assemble_file",
    "IJVMDisassembler",
    "IJVMProgram",
    "parse_ijvm",
    "IJVMError",
    "AssemblerError",
    "AssemblySyntaxError",
    "MethodDeclarationError",
    "UndefinedSymbolError",
    "DuplicateSymbolError",
    "OperandError",
    "ConfigError",
    "IJVMFormatError",
    "InternalError",
]
