"""
IJVM Disassembler Module
========================

Decodes IJVM bytecode and framed IJVM files back into readable listings.

Usage:
    from ijvm_asm.disassembler import IJVMDisassembler, parse_ijvm

    program = parse_ijvm(image)
    disasm = IJVMDisassembler()
    instructions = disasm.disassemble(program.text, method_offsets=[17])
"""

from .ijvm import (
    DisassembledInstruction,
    IJVMDisassembler,
    IJVMProgram,
    parse_ijvm,
)

__all__ = [
    "DisassembledInstruction",
    "IJVMDisassembler",
    "IJVMProgram",
    "parse_ijvm",
]
