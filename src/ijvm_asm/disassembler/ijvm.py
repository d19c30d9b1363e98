"""
IJVM Disassembler
=================

This module decodes IJVM bytecode back into readable instructions. It
reads instruction shapes from the same OpcodeConfig the assembler uses,
so custom instruction sets disassemble without changes.

The disassembler handles:
- Every operand kind (byte, var, label, constant, method)
- The WIDE prefix (the following var operand is 2 bytes)
- Method headers at known offsets (argument and local counts)
- Unknown opcodes (shown as .BYTE)
- Truncated instructions at the end of the data

It also reads framed IJVM files (magic, constant pool, text).

Example:
    >>> from ijvm_asm.disassembler import IJVMDisassembler, parse_ijvm
    >>> program = parse_ijvm(open("add.ijvm", "rb").read())
    >>> disasm = IJVMDisassembler()
    >>> for inst in disasm.disassemble(program.text):
    ...     print(inst)
    0000: 10 05         BIPUSH 5
    0002: A7 00 03      GOTO +3                // -> 0005
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional
import struct

from ijvm_asm.errors import IJVMFormatError
from ijvm_asm.assembler.opcodes import ArgType, OpcodeConfig
from ijvm_asm.assembler.method import METHOD_HEADER_SIZE
from ijvm_asm.assembler.codegen import IJVM_MAGIC


# Mnemonic used for method headers in listings
METHOD_HEADER_MNEMONIC = ".METHOD"


# =============================================================================
# Disassembled Instruction Data Structure
# =============================================================================

@dataclass
class DisassembledInstruction:
    """
    A single decoded IJVM instruction.

    Attributes:
        offset: Byte offset in the text block
        opcode: The opcode byte
        mnemonic: Instruction mnemonic (".BYTE" for unknown opcodes,
            ".METHOD" for method headers)
        operands: Decoded operand values
        args: Operand kinds matching ``operands``
        wide: True if decoded with 2-byte var operands
        raw_bytes: All bytes of the instruction
        comment: Optional note (branch target, unknown opcode)
    """
    offset: int
    opcode: int
    mnemonic: str
    operands: tuple[int, ...] = ()
    args: tuple[ArgType, ...] = ()
    wide: bool = False
    raw_bytes: bytes = b""
    comment: str = ""

    @property
    def size(self) -> int:
        return len(self.raw_bytes)

    @property
    def operand_str(self) -> str:
        if self.mnemonic == ".BYTE":
            return f"0x{self.opcode:02X}"
        parts = []
        for arg, value in zip(self.args, self.operands):
            if arg is ArgType.LABEL:
                parts.append(f"{value:+d}")
            elif arg in (ArgType.CONSTANT, ArgType.METHOD):
                parts.append(f"#{value}")
            else:
                parts.append(str(value))
        if not self.args and self.operands:
            parts = [str(v) for v in self.operands]
        return " ".join(parts)

    def __str__(self) -> str:
        """Format as listing line: OFFSET: BYTES MNEMONIC OPERANDS"""
        hex_bytes = " ".join(f"{b:02X}" for b in self.raw_bytes).ljust(12)
        asm = f"{self.mnemonic} {self.operand_str}".rstrip()
        if self.comment:
            return f"{self.offset:04X}: {hex_bytes}  {asm:<22} // {self.comment}"
        return f"{self.offset:04X}: {hex_bytes}  {asm}"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "offset": self.offset,
            "opcode": f"0x{self.opcode:02X}",
            "mnemonic": self.mnemonic,
            "operands": list(self.operands),
            "wide": self.wide,
            "size": self.size,
            "bytes": [f"0x{b:02X}" for b in self.raw_bytes],
            "comment": self.comment,
        }


# =============================================================================
# IJVM File Reader
# =============================================================================

@dataclass
class IJVMProgram:
    """
    Contents of a framed IJVM file.

    Attributes:
        constants: Constant pool words (signed 32-bit)
        text: Text block bytes
        constant_origin: Declared constant pool origin
        text_origin: Declared text origin
    """
    constants: list[int] = field(default_factory=list)
    text: bytes = b""
    constant_origin: int = 0
    text_origin: int = 0


def _read_block(data: bytes, pos: int, what: str) -> tuple[int, bytes, int]:
    if pos + 8 > len(data):
        raise IJVMFormatError(f"truncated {what} block header at offset {pos}")
    origin, size = struct.unpack_from(">II", data, pos)
    pos += 8
    if pos + size > len(data):
        raise IJVMFormatError(
            f"{what} block declares {size} bytes but only {len(data) - pos} remain"
        )
    return origin, data[pos:pos + size], pos + size


def parse_ijvm(data: bytes) -> IJVMProgram:
    """
    Split an IJVM file into constant pool and text.

    Raises:
        IJVMFormatError: On a wrong magic number, a constant pool whose size
            is not a multiple of 4, or a block larger than the file
    """
    if len(data) < 4:
        raise IJVMFormatError("file too short for IJVM magic")
    (magic,) = struct.unpack_from(">I", data, 0)
    if magic != IJVM_MAGIC:
        raise IJVMFormatError(f"bad magic 0x{magic:08X} (expected 0x{IJVM_MAGIC:08X})")

    const_origin, pool, pos = _read_block(data, 4, "constant pool")
    if len(pool) % 4:
        raise IJVMFormatError(f"constant pool size {len(pool)} is not a multiple of 4")
    text_origin, text, _ = _read_block(data, pos, "text")

    constants = [value for (value,) in struct.iter_unpack(">i", pool)]
    return IJVMProgram(constants, text, const_origin, text_origin)


# =============================================================================
# IJVM Disassembler
# =============================================================================

class IJVMDisassembler:
    """
    Disassembler for IJVM bytecode.

    Usage:
        disasm = IJVMDisassembler()
        instructions = disasm.disassemble(text, method_offsets=[17])
        print(disasm.disassemble_to_text(text))
    """

    def __init__(self, config: Optional[OpcodeConfig] = None):
        self._config = config or OpcodeConfig.default()

    def disassemble_one(self, data: bytes, offset: int = 0, wide: bool = False) -> DisassembledInstruction:
        """
        Disassemble a single instruction.

        Args:
            data: Byte buffer
            offset: Offset of the instruction in data
            wide: Decode var operands as 2 bytes (previous instruction was WIDE)

        Raises:
            ValueError: If offset is beyond the data
        """
        if offset >= len(data):
            raise ValueError(f"Offset {offset} beyond data length {len(data)}")

        opcode = data[offset]
        info = self._config.by_opcode(opcode)
        if info is None:
            return DisassembledInstruction(
                offset, opcode, ".BYTE", (opcode,), (ArgType.BYTE,),
                raw_bytes=bytes([opcode]), comment="unknown opcode",
            )

        size = info.size(wide)
        if offset + size > len(data):
            return DisassembledInstruction(
                offset, opcode, ".BYTE", (opcode,), (ArgType.BYTE,),
                raw_bytes=bytes([opcode]), comment=f"truncated {info.mnemonic}",
            )

        operands = []
        pos = offset + 1
        comment = ""
        for arg in info.args:
            width = arg.width(wide)
            if arg is ArgType.BYTE:
                value = struct.unpack_from(">b", data, pos)[0]
            elif arg is ArgType.LABEL:
                value = struct.unpack_from(">h", data, pos)[0]
                comment = f"-> {offset + value:04X}"
            elif width == 2:
                value = struct.unpack_from(">H", data, pos)[0]
            else:
                value = data[pos]
            operands.append(value)
            pos += width

        return DisassembledInstruction(
            offset, opcode, info.mnemonic, tuple(operands), info.args,
            wide=wide and info.has_var, raw_bytes=bytes(data[offset:pos]), comment=comment,
        )

    def method_header(self, data: bytes, offset: int) -> DisassembledInstruction:
        """Decode a 4-byte method header as a pseudo-instruction."""
        if offset + METHOD_HEADER_SIZE > len(data):
            raise ValueError(f"Method header at {offset} runs past end of data")
        args, locals_ = struct.unpack_from(">HH", data, offset)
        return DisassembledInstruction(
            offset, data[offset], METHOD_HEADER_MNEMONIC, (args, locals_),
            raw_bytes=bytes(data[offset:offset + METHOD_HEADER_SIZE]),
            comment=f".args {args} .locals {locals_}",
        )

    def disassemble(
        self,
        data: bytes,
        start_offset: int = 0,
        method_offsets: Iterable[int] = (),
        count: Optional[int] = None,
    ) -> list[DisassembledInstruction]:
        """
        Disassemble a byte stream.

        Args:
            data: Text block bytes
            start_offset: Where to start decoding
            method_offsets: Offsets where a method header begins
            count: Maximum number of entries (None = all)

        Returns:
            List of DisassembledInstruction objects
        """
        headers = set(method_offsets)
        wide_opcode = self._config.wide.opcode if self._config.wide else None

        result = []
        offset = start_offset
        wide = False
        while offset < len(data):
            if count is not None and len(result) >= count:
                break

            if offset in headers:
                inst = self.method_header(data, offset)
                wide = False
            else:
                inst = self.disassemble_one(data, offset, wide)
                wide = inst.mnemonic != ".BYTE" and inst.opcode == wide_opcode

            result.append(inst)
            offset += inst.size

        return result

    def disassemble_to_text(
        self,
        data: bytes,
        start_offset: int = 0,
        method_offsets: Iterable[int] = (),
        count: Optional[int] = None,
    ) -> str:
        """Disassemble and return a multi-line listing."""
        instructions = self.disassemble(data, start_offset, method_offsets, count)
        return "\n".join(str(inst) for inst in instructions)

    def program_to_text(self, program: IJVMProgram, method_offsets: Iterable[int] = ()) -> str:
        """Listing of a whole IJVM file: constant pool followed by text."""
        lines = ["Constant Pool", "-" * 30]
        for index, value in enumerate(program.constants):
            lines.append(f"#{index:<4d} 0x{value & 0xFFFFFFFF:08X}  ({value})")
        lines.append("")
        lines.append("Text")
        lines.append("-" * 30)
        lines.append(self.disassemble_to_text(program.text, method_offsets=method_offsets))
        return "\n".join(lines)
