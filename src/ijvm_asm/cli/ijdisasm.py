"""
ijdisasm - IJVM Disassembler Command-Line Interface
===================================================

This module implements the command-line interface for the IJVM
disassembler. It reads framed IJVM files (or raw text blocks with
``--raw``) and prints the constant pool and a disassembly listing.

Usage Examples
--------------
Disassemble an IJVM file:
    $ ijdisasm add.ijvm

Decode method headers at known offsets:
    $ ijdisasm add.ijvm -m 17 -m 42

Raw text block written with ``ijasm --binary``:
    $ ijdisasm add.bin --raw

Custom instruction set:
    $ ijdisasm -c mic1.conf program.ijvm
"""

from pathlib import Path
from typing import Optional

import click

from ijvm_asm import __version__
from ijvm_asm.assembler import OpcodeConfig
from ijvm_asm.disassembler import IJVMDisassembler, IJVMProgram, parse_ijvm
from ijvm_asm.cli.errors import handle_cli_exception, setup_logging


def _parse_offset(ctx: click.Context, param: click.Parameter, values: tuple[str, ...]) -> list[int]:
    offsets = []
    for value in values:
        try:
            offsets.append(int(value, 0))
        except ValueError:
            raise click.BadParameter(f"invalid offset '{value}'") from None
    return offsets


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output file (default: stdout)",
)
@click.option(
    "-c", "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Opcode configuration file (default: built-in IJVM set)",
)
@click.option(
    "--raw",
    is_flag=True,
    help="Input is a raw text block, not a framed IJVM file",
)
@click.option(
    "-m", "--method",
    "methods",
    multiple=True,
    callback=_parse_offset,
    help="Text offset of a method header (can be repeated)",
)
@click.option(
    "-n", "--count",
    type=int,
    default=None,
    help="Maximum number of instructions",
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.version_option(version=__version__, prog_name="ijdisasm")
def main(
    input_file: Path,
    output: Optional[Path],
    config: Optional[Path],
    raw: bool,
    methods: list[int],
    count: Optional[int],
    verbose: bool,
) -> None:
    """
    Disassemble an IJVM binary.

    INPUT_FILE is the .ijvm file (or raw text block with --raw).

    \b
    Examples:
        ijdisasm add.ijvm
        ijdisasm add.ijvm -m 17
        ijdisasm add.bin --raw -o add.lst
    """
    setup_logging(info=verbose)

    try:
        opcodes = OpcodeConfig.from_file(config) if config else OpcodeConfig.default()
        disasm = IJVMDisassembler(opcodes)

        data = input_file.read_bytes()
        program = IJVMProgram(text=data) if raw else parse_ijvm(data)

        if verbose:
            click.echo(f"Input file: {input_file} ({len(data)} bytes)", err=True)
            click.echo(f"Constants: {len(program.constants)}, text: {len(program.text)} bytes", err=True)

        lines = [f"// Disassembly of {input_file.name}", ""]
        if raw:
            lines.append(disasm.disassemble_to_text(program.text, method_offsets=methods, count=count))
        else:
            lines.append(disasm.program_to_text(program, method_offsets=methods))
        result = "\n".join(lines) + "\n"

        if output:
            output.write_text(result, encoding="utf-8")
            if verbose:
                click.echo(f"Output written to: {output}", err=True)
        else:
            click.echo(result, nl=False)

    except Exception as e:
        handle_cli_exception(e, verbose=verbose, error_type="Disassembly")


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    main()
