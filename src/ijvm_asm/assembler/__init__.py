"""
IJVM Assembler
==============

This package provides an assembler for JAS, the assembly language of the
IJVM (the integer Java virtual machine subset used to teach
microprogramming).

Main Components
---------------
- **Assembler**: Orchestrates the assembly process
- **Lexer**: Tokenizes JAS source
- **Parser**: Parses tokens into statements (blocks, labels, instructions)
- **OpcodeConfig**: Instruction shapes, built in or loaded from a file
- **Method**: Per-method state and the label/method link passes
- **ConstantPool**: Named constants and method entries
- **CodeGenerator**: Builds methods, links them and frames the IJVM file

Assembly Process
----------------
1. **Parsing (Lexer + Parser)**: source to statements
2. **Collection**: constant pool, methods, variables, labels, instructions
3. **Linking**: label displacements, then method indices
4. **Emission**: text block (main first) and IJVM framing

Example Usage
-------------
>>> from ijvm_asm.assembler import Assembler
>>> asm = Assembler(auto_wide=True)
>>> image = asm.assemble_file("add.jas")
>>> asm.write_ijvm("add.ijvm")
"""

from ijvm_asm.assembler.assembler import Assembler, assemble, assemble_file
from ijvm_asm.assembler.lexer import Lexer, Token, TokenType
from ijvm_asm.assembler.parser import Parser, Statement, parse_source
from ijvm_asm.assembler.opcodes import ArgType, OpcodeConfig, OpcodeInfo
from ijvm_asm.assembler.method import Instruction, Label, Method, parse_method_header
from ijvm_asm.assembler.constants import Constant, ConstantPool
from ijvm_asm.assembler.codegen import CodeGenerator, IJVM_MAGIC

__all__ = [
    "Assembler",
    "assemble",
    "assemble_file",
    "Lexer",
    "Token",
    "TokenType",
    "Parser",
    "Statement",
    "parse_source",
    "ArgType",
    "OpcodeConfig",
    "OpcodeInfo",
    "Instruction",
    "Label",
    "Method",
    "parse_method_header",
    "Constant",
    "ConstantPool",
    "CodeGenerator",
    "IJVM_MAGIC",
]
